"""End-to-end test of a live session against a scripted capture and a fake backend."""

import asyncio

import pytest

from rehab_motion.assessment import AssessmentHistory
from rehab_motion.pose_detection import EstimatorState
from rehab_motion.session import AssessmentSession

from pose_fixtures import FakeBackend, make_frame, make_keypoints, squat_overrides


class ScriptedCapture:
    def __init__(self, frames):
        self.frames = frames
        self.reads = 0

    def read(self):
        if self.reads >= self.frames:
            return False, None
        self.reads += 1
        return True, make_frame()


def test_session_runs_until_capture_ends():
    backend = FakeBackend(pose=[kp.to_dict() for kp in make_keypoints(squat_overrides(95))])
    history = AssessmentHistory()

    async def scenario():
        session = AssessmentSession("deep-squat", backend=backend, history=history, refresh_interval=0.03)
        assessment = await session.run(ScriptedCapture(40), display=False)
        return session, assessment

    session, assessment = asyncio.run(scenario())
    assert session.frame_count == 40
    assert session.renderer.overlay.shape == (480, 640, 4)
    assert session.renderer.draw_count >= 1
    assert len(session.evaluations) >= 1
    assert all(e.score == 0.9 for e in session.evaluations)
    assert assessment is not None
    assert assessment.movement_type == "deep-squat"
    assert {m.id: m.score.value for m in assessment.metrics}["knee_stability"] == 3
    assert history.all() == [assessment]
    assert session.estimator.state is EstimatorState.DISPOSED
    assert backend.dispose_calls == 1


def test_max_frames_and_idempotent_close():
    backend = FakeBackend()

    async def scenario():
        session = AssessmentSession("shoulder-mobility", backend=backend, refresh_interval=0)
        await session.run(ScriptedCapture(100), display=False, max_frames=5)
        session.close()
        return session

    session = asyncio.run(scenario())
    assert session.frame_count == 5
    assert session.stop_event.is_set()
    assert backend.dispose_calls == 1


class FailingCapture(ScriptedCapture):
    def __init__(self, fail_after):
        super().__init__(frames=100)
        self.fail_after = fail_after

    def read(self):
        if self.reads >= self.fail_after:
            raise OSError("camera disconnected")
        return super().read()


def test_backend_released_when_capture_raises():
    backend = FakeBackend()
    history = AssessmentHistory()

    async def scenario():
        session = AssessmentSession("deep-squat", backend=backend, history=history, refresh_interval=0)
        with pytest.raises(OSError, match="camera disconnected"):
            await session.run(FailingCapture(fail_after=7), display=False)
        return session

    session = asyncio.run(scenario())

    assert session.frame_count == 7
    assert session.stop_event.is_set()
    assert session.estimator.state is EstimatorState.DISPOSED
    assert backend.dispose_calls == 1
    assert history.all() == []


class RenamedBackend(FakeBackend):
    def get_keypoint_names(self):
        return [f"joint_{i}" for i in range(17)]


def test_keypoint_names_come_from_backend():
    async def scenario():
        session = AssessmentSession("deep-squat", backend=RenamedBackend(), refresh_interval=0.03)
        await session.run(ScriptedCapture(40), display=False)
        return session

    session = asyncio.run(scenario())
    names = [kp.name for kp in session.channel.latest()]
    assert names == [f"joint_{i}" for i in range(17)]
