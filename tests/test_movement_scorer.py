"""Tests for per-movement scoring.

Covers:
  - deep-squat knee-angle bands
  - shoulder-mobility arm raise scaling
  - insufficient keypoints and unknown movement fallbacks
  - registering a new movement scorer
"""

import pytest

from rehab_motion.errors import EvaluationResult
from rehab_motion.movement_analysis import (
    MOVEMENT_SCORER_REGISTRY,
    BaseMovementScorer,
    MovementEvaluation,
    MovementScorer,
    register_movement_scorer,
)
from rehab_motion.movement_analysis.movement_scorers import score_squat_depth

from pose_fixtures import make_keypoints, squat_overrides


@pytest.fixture
def scorer():
    return MovementScorer()


# ============================================================================
# Test: Deep Squat
# ============================================================================

class TestDeepSquat:

    @pytest.mark.parametrize("knee_angle, expected", [(95, 0.9), (105, 0.7), (60, 0.5)])
    def test_knee_angle_bands(self, scorer, knee_angle, expected):
        evaluation = scorer.evaluate(make_keypoints(squat_overrides(knee_angle)), "deep-squat")
        assert evaluation.score == pytest.approx(expected)
        assert evaluation.angles["average_knee"] == pytest.approx(knee_angle, abs=0.01)
        assert evaluation.details["result"] == EvaluationResult.SCORED.value

    @pytest.mark.parametrize("avg, expected", [
        (90, 0.9), (100, 0.9), (80, 0.7), (110, 0.7), (79.9, 0.5), (170, 0.5),
    ])
    def test_band_edges(self, avg, expected):
        assert score_squat_depth(avg) == expected

    def test_feedback_differs_by_band(self, scorer):
        good = scorer.evaluate(make_keypoints(squat_overrides(95)), "deep-squat")
        close = scorer.evaluate(make_keypoints(squat_overrides(105)), "deep-squat")
        shallow = scorer.evaluate(make_keypoints(squat_overrides(60)), "deep-squat")
        assert len({good.feedback, close.feedback, shallow.feedback}) == 3

    def test_details_populated(self, scorer):
        evaluation = scorer.evaluate(make_keypoints(squat_overrides(95)), "deep-squat")
        assert evaluation.details["keypoint_count"] == 17
        assert evaluation.details["mean_confidence"] == pytest.approx(0.9)


# ============================================================================
# Test: Shoulder Mobility
# ============================================================================

class TestShoulderMobility:

    def test_partial_raise(self, scorer):
        # 0.25 of a 480 px frame = 120 px, 120 / 200 = 0.6
        overrides = {"left_wrist": (0.37, 0.05), "right_wrist": (0.63, 0.05)}
        evaluation = scorer.evaluate(make_keypoints(overrides), "shoulder-mobility")
        assert evaluation.score == pytest.approx(0.6)
        assert evaluation.details["left_arm_raise_px"] == pytest.approx(120.0)

    def test_score_capped_at_one(self, scorer):
        overrides = {
            "left_shoulder": (0.40, 0.60), "right_shoulder": (0.60, 0.60),
            "left_wrist": (0.37, 0.05), "right_wrist": (0.63, 0.05),
        }
        assert scorer.evaluate(make_keypoints(overrides), "shoulder-mobility").score == 1.0

    def test_arms_down_scores_zero(self, scorer):
        evaluation = scorer.evaluate(make_keypoints(), "shoulder-mobility")
        assert evaluation.score == 0.0
        assert "left_shoulder" in evaluation.angles


# ============================================================================
# Test: Fallbacks
# ============================================================================

class TestFallbacks:

    def test_insufficient_keypoints(self, scorer):
        evaluation = scorer.evaluate(make_keypoints()[:9], "deep-squat")
        assert evaluation.score == 0.5
        assert evaluation.feedback
        assert evaluation.angles == {}
        assert evaluation.details["result"] == EvaluationResult.INSUFFICIENT_KEYPOINTS.value
        assert evaluation.details["keypoint_count"] == 9

    def test_squat_needs_both_knees(self, scorer):
        keypoints = [kp for kp in make_keypoints(squat_overrides(95)) if kp.name != "right_ankle"]
        evaluation = scorer.evaluate(keypoints, "deep-squat")
        assert evaluation.score == 0.5
        assert "Knees are not clearly visible" in evaluation.feedback
        assert "left_knee" in evaluation.angles
        assert "average_knee" not in evaluation.angles
        assert evaluation.details["result"] == EvaluationResult.SCORED.value

    def test_low_confidence_keypoints_do_not_count(self, scorer):
        evaluation = scorer.evaluate(make_keypoints(score=0.1), "deep-squat")
        assert evaluation.details["result"] == EvaluationResult.INSUFFICIENT_KEYPOINTS.value

    def test_unknown_movement_uses_mean_confidence(self, scorer):
        evaluation = scorer.evaluate(make_keypoints(score=0.75), "hurdle-step")
        assert evaluation.score == pytest.approx(0.75)
        assert evaluation.details["result"] == EvaluationResult.UNKNOWN_MOVEMENT_TYPE.value
        assert "left_knee" in evaluation.angles

    def test_failing_scorer_yields_neutral_result(self, scorer):
        @register_movement_scorer("broken-test-move")
        class BrokenScorer(BaseMovementScorer):
            def score(self, keypoints):
                raise ZeroDivisionError("boom")

        try:
            evaluation = scorer.evaluate(make_keypoints(), "broken-test-move")
        finally:
            MOVEMENT_SCORER_REGISTRY.pop("broken-test-move")
        assert evaluation.score == 0.5
        assert evaluation.details["result"] == EvaluationResult.SCORING_FAILED.value

    @pytest.mark.parametrize("bad_result", [
        MovementEvaluation(None, "no score"),
        MovementEvaluation("deep", "text score"),
        {"score": 0.9},
        None,
    ])
    def test_malformed_scorer_result_yields_neutral_result(self, scorer, bad_result):
        @register_movement_scorer("malformed-test-move")
        class MalformedScorer(BaseMovementScorer):
            def score(self, keypoints):
                return bad_result

        try:
            evaluation = scorer.evaluate(make_keypoints(), "malformed-test-move")
        finally:
            MOVEMENT_SCORER_REGISTRY.pop("malformed-test-move")
        assert isinstance(evaluation, MovementEvaluation)
        assert evaluation.score == 0.5
        assert evaluation.details["result"] == EvaluationResult.SCORING_FAILED.value


def test_registered_scorer_is_used_and_clamped():
    @register_movement_scorer("overhead-reach-test")
    class ReachScorer(BaseMovementScorer):
        def score(self, keypoints):
            return MovementEvaluation(1.7, "reach", {}, {"custom": True})

    try:
        scorer = MovementScorer()
        assert "overhead-reach-test" in scorer.supported_movements()
        evaluation = scorer.evaluate(make_keypoints(), "overhead-reach-test")
    finally:
        MOVEMENT_SCORER_REGISTRY.pop("overhead-reach-test")
    assert evaluation.score == 1.0
    assert evaluation.details["custom"] is True
    assert evaluation.details["result"] == EvaluationResult.SCORED.value
    assert evaluation.score_percent == 100
