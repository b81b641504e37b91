import asyncio
from collections import deque
from typing import Any, Deque, Optional

import cv2
import numpy as np

from .assessment.assessment_aggregator import Assessment, AssessmentAggregator, assessment_input
from .assessment.history import AssessmentHistory
from .config_utils import load_pipeline_config
from .feedback.voice_feedback import VoiceFeedback
from .log_utils import get_logger
from .movement_analysis.base_scorer import MovementEvaluation
from .movement_analysis.movement_scorer import MovementScorer
from .pose_detection.base_detector import BasePoseBackend
from .pose_detection.keypoint_validator import KeypointValidator
from .pose_detection.pose_estimator import PoseEstimator
from .realtime.channel import LatestValueChannel
from .realtime.frame_scheduler import FrameScheduler
from .realtime.idle_queue import IdleTaskQueue
from .realtime.skeleton_renderer import SkeletonRenderer

_SCHEDULER_CONFIG = load_pipeline_config()["scheduler"]

logger = get_logger("rehab_motion.AssessmentSession")

WINDOW_NAME = "Rehab Motion Assessment"


class AssessmentSession:
    """Live assessment of one movement from a capture source."""

    def __init__(
        self,
        movement_type: str = "deep-squat",
        backend: Optional[BasePoseBackend] = None,
        voice: Optional[VoiceFeedback] = None,
        history: Optional[AssessmentHistory] = None,
        refresh_interval: float = _SCHEDULER_CONFIG["refresh_interval_ms"] / 1000.0,
    ):
        """
        Initialize the session.

        Args:
            movement_type: Movement id to score, e.g. "deep-squat"
            backend: Pose backend; MediaPipe is used when omitted
            voice: Optional spoken feedback
            history: Optional store the final assessment is saved to
            refresh_interval: Seconds to yield between display refreshes
        """
        if backend is None:
            from .pose_detection.mediapipe_detector import MediaPipePoseBackend
            backend = MediaPipePoseBackend()

        self.movement_type = movement_type
        self.voice = voice
        self.history = history
        self.refresh_interval = refresh_interval
        self.stop_event = asyncio.Event()

        self.estimator = PoseEstimator(backend)
        self.channel = LatestValueChannel([])
        self.evaluations: Deque[MovementEvaluation] = deque(maxlen=600)
        self.scheduler = FrameScheduler(
            self.estimator,
            validator=KeypointValidator(names=backend.get_keypoint_names()),
            scorer=MovementScorer(),
            channel=self.channel,
            idle_queue=IdleTaskQueue(),
            movement_type=movement_type,
            stop_event=self.stop_event,
            on_evaluation=self._on_evaluation,
        )
        self.renderer = SkeletonRenderer(1, 1, self.channel, stop_event=self.stop_event)
        self.aggregator = AssessmentAggregator()
        self.frame_count = 0
        self._closed = False

    def _on_evaluation(self, evaluation: MovementEvaluation) -> None:
        self.evaluations.append(evaluation)
        if self.voice is not None:
            self.voice.on_evaluation(evaluation)

    def step(self, frame: np.ndarray) -> None:
        """One display refresh: schedule inference, redraw the overlay, run idle scoring."""
        self.frame_count += 1
        self.renderer.resize(frame.shape[1], frame.shape[0])
        self.scheduler.tick(frame)
        self.renderer.tick()
        self.scheduler.run_idle()

    async def run(self, capture: Any, display: bool = True, max_frames: Optional[int] = None) -> Optional[Assessment]:
        """
        Read frames from ``capture`` until it ends, 'q' is pressed or ``stop`` is called.

        Args:
            capture: Object with a ``read() -> (ok, frame)`` method, e.g. cv2.VideoCapture
            display: Show the annotated frames in an OpenCV window
            max_frames: Stop after this many frames

        Returns:
            The final assessment, or None if no frame was scored
        """
        loop = asyncio.get_running_loop()
        if self.voice is not None:
            self.voice.start()
        try:
            while not self.stop_event.is_set():
                ok, frame = await loop.run_in_executor(None, capture.read)
                if not ok or frame is None:
                    logger.info("Capture ended")
                    break
                self.step(frame)
                if display:
                    view = self.renderer.composite(frame)
                    self._draw_hud(view)
                    cv2.imshow(WINDOW_NAME, view)
                    if cv2.waitKey(1) & 0xFF == ord('q'):
                        break
                if max_frames is not None and self.frame_count >= max_frames:
                    break
                await asyncio.sleep(self.refresh_interval)
        finally:
            self.close()
            if display:
                cv2.destroyAllWindows()
        return self.finish()

    def _draw_hud(self, frame: np.ndarray) -> None:
        lines = [(f"Movement: {self.movement_type}", (0, 255, 0))]
        if self.estimator.using_synthetic:
            lines.append(("Pose model unavailable - showing demo skeleton", (0, 0, 255)))
        evaluation = self.scheduler.last_evaluation
        if evaluation is not None:
            lines.append((f"Score: {evaluation.score_percent}/100", (0, 255, 0)))
            lines.append((evaluation.feedback, (0, 200, 255)))
        for idx, (text, color) in enumerate(lines):
            cv2.putText(frame, text, (10, 30 + 30 * idx), cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2)

    def finish(self) -> Optional[Assessment]:
        """Aggregate the scored frames into an assessment and store it."""
        if not self.evaluations:
            logger.warning("No frames were scored, skipping assessment")
            return None
        data = assessment_input(self.movement_type, [e.score for e in self.evaluations])
        assessment = self.aggregator.process(data)
        if self.history is not None:
            self.history.save(assessment)
        return assessment

    def stop(self) -> None:
        self.stop_event.set()

    def close(self) -> None:
        """Stop the loops and release the model. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.scheduler.stop()
        self.estimator.dispose()
        if self.voice is not None:
            self.voice.stop()
        logger.info(f"Session closed after {self.frame_count} frames, {len(self.evaluations)} evaluations")
