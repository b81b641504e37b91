from typing import List, Optional

import numpy as np

from ..config_utils import load_pipeline_config
from ..pose_detection.keypoints import Keypoint, mean_confidence
from .base_scorer import BaseMovementScorer, MovementEvaluation, register_movement_scorer
from .pose_utils import compute_joint_angles, joint_angle, vertical_rise

_SCORING_CONFIG = load_pipeline_config()["scoring"]


# --- Feedback Templates ---
class FeedbackGenerator:
    @staticmethod
    def squat_good():
        return "Deep squat looks good: knee angle is in the target range."
    @staticmethod
    def squat_close():
        return "Deep squat is mostly correct. Try to lower your body a little further."
    @staticmethod
    def squat_shallow():
        return "Squat depth is not enough. Try to lower your centre of gravity."
    @staticmethod
    def knees_not_visible():
        return "Knees are not clearly visible. Make sure your legs are in view."
    @staticmethod
    def shoulder_good():
        return "Shoulder mobility is good: arms are raised high enough."
    @staticmethod
    def shoulder_fair():
        return "Shoulder mobility is average. Try to raise your arms higher."
    @staticmethod
    def shoulder_poor():
        return "Shoulder mobility needs work. Try to raise your arms above your shoulders."
    @staticmethod
    def arms_not_visible():
        return "Arms are not clearly visible. Make sure shoulders and wrists are in view."
    @staticmethod
    def generic_done():
        return "Movement detected. Hold your current position."


def _squat_band(avg_knee_angle: float) -> Optional[int]:
    for index, band in enumerate(_SCORING_CONFIG["deep_squat"]["bands"]):
        if band["min_angle"] <= avg_knee_angle <= band["max_angle"]:
            return index
    return None


def score_squat_depth(avg_knee_angle: float) -> float:
    """Map an average hip-knee-ankle angle to a 0-1 squat score."""
    band = _squat_band(avg_knee_angle)
    if band is None:
        return _SCORING_CONFIG["deep_squat"]["fallback_score"]
    return _SCORING_CONFIG["deep_squat"]["bands"][band]["score"]


@register_movement_scorer("deep-squat")
class DeepSquatScorer(BaseMovementScorer):
    movement_type = "deep-squat"

    def score(self, keypoints: List[Keypoint]) -> MovementEvaluation:
        points = self.lookup(keypoints)
        angles = {}
        knee_angles = []
        for side in ("left", "right"):
            measurement = joint_angle(points, f"{side}_knee")
            if measurement.valid:
                angles[measurement.joint_name] = measurement.degrees
                knee_angles.append(measurement.degrees)

        # depth is the mean of both knees
        if len(knee_angles) < 2:
            return MovementEvaluation(_SCORING_CONFIG["default_score"], FeedbackGenerator.knees_not_visible(), angles)

        avg_knee = float(np.mean(knee_angles))
        angles["average_knee"] = round(avg_knee, 2)
        value = score_squat_depth(avg_knee)
        band = _squat_band(avg_knee)
        if band == 0:
            feedback = FeedbackGenerator.squat_good()
        elif band is not None:
            feedback = FeedbackGenerator.squat_close()
        else:
            feedback = FeedbackGenerator.squat_shallow()
        return MovementEvaluation(value, feedback, angles)


@register_movement_scorer("shoulder-mobility")
class ShoulderMobilityScorer(BaseMovementScorer):
    """Scores how far the wrists rise above the shoulders.

    The rise is measured in pixels of a reference frame height so the fixed
    scale constant applies to normalized keypoints.
    """
    movement_type = "shoulder-mobility"

    def __init__(self, reference_frame_height: Optional[float] = None):
        cfg = _SCORING_CONFIG["shoulder_mobility"]
        self.scale = cfg["scale"]
        self.reference_frame_height = reference_frame_height or cfg["reference_frame_height"]

    def score(self, keypoints: List[Keypoint]) -> MovementEvaluation:
        cfg = _SCORING_CONFIG["shoulder_mobility"]
        points = self.lookup(keypoints)
        angles = {}
        for side in ("left", "right"):
            measurement = joint_angle(points, f"{side}_shoulder")
            if measurement.valid:
                angles[measurement.joint_name] = measurement.degrees

        left_rise = vertical_rise(points.get("left_shoulder"), points.get("left_wrist"))
        right_rise = vertical_rise(points.get("right_shoulder"), points.get("right_wrist"))
        if left_rise is None or right_rise is None:
            return MovementEvaluation(_SCORING_CONFIG["default_score"], FeedbackGenerator.arms_not_visible(), angles)

        avg_rise_px = (left_rise + right_rise) / 2 * self.reference_frame_height
        value = min(1.0, max(0.0, avg_rise_px / self.scale))
        if value > cfg["good_score"]:
            feedback = FeedbackGenerator.shoulder_good()
        elif value > cfg["fair_score"]:
            feedback = FeedbackGenerator.shoulder_fair()
        else:
            feedback = FeedbackGenerator.shoulder_poor()
        details = {
            "left_arm_raise_px": round(left_rise * self.reference_frame_height, 1),
            "right_arm_raise_px": round(right_rise * self.reference_frame_height, 1),
        }
        return MovementEvaluation(value, feedback, angles, details)


class GenericConfidenceScorer(BaseMovementScorer):
    """Used for movement types with no registered rule set."""
    movement_type = "generic"

    def score(self, keypoints: List[Keypoint]) -> MovementEvaluation:
        value = min(1.0, mean_confidence(keypoints))
        return MovementEvaluation(value, FeedbackGenerator.generic_done(), compute_joint_angles(keypoints))
