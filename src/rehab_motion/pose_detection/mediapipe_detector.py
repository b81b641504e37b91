import asyncio
from typing import Any, Dict, List, Optional

import cv2
import mediapipe as mp
import numpy as np

from ..config_utils import load_pipeline_config
from ..errors import ModelInitError
from ..log_utils import get_logger
from .base_detector import BasePoseBackend
from .keypoints import CANONICAL_KEYPOINT_NAMES

_MEDIAPIPE_CONFIG = load_pipeline_config()["mediapipe"]

logger = get_logger("rehab_motion.MediaPipePoseBackend")


def _log_late_failure(future: asyncio.Future) -> None:
    # retrieves the error of a call whose caller already timed out
    if not future.cancelled() and future.exception() is not None:
        logger.warning(f"MediaPipe inference failed: {future.exception()}")


class MediaPipePoseBackend(BasePoseBackend):
    """MediaPipe Pose backend emitting the 17 COCO keypoints in canonical order."""

    def __init__(
        self,
        min_detection_confidence: float = _MEDIAPIPE_CONFIG["min_detection_confidence"],
        min_tracking_confidence: float = _MEDIAPIPE_CONFIG["min_tracking_confidence"],
        model_complexity: int = _MEDIAPIPE_CONFIG["model_complexity"],
    ):
        """
        Initialize the MediaPipe pose backend. The model is not built until ``load``.

        Args:
            min_detection_confidence: Minimum confidence for pose detection
            min_tracking_confidence: Minimum confidence for pose tracking
            model_complexity: Complexity of the pose landmark model (0, 1, or 2)
        """
        self.pose = None
        self.min_detection_confidence = min_detection_confidence
        self.min_tracking_confidence = min_tracking_confidence
        self.model_complexity = model_complexity
        # MediaPipe's 33-landmark index for each canonical keypoint
        self._landmark_indices: List[int] = _MEDIAPIPE_CONFIG["landmark_indices"]
        self._pending: Optional[asyncio.Future] = None

    def _build(self, model_complexity: int):
        return mp.solutions.pose.Pose(
            static_image_mode=False,
            model_complexity=model_complexity,
            min_detection_confidence=self.min_detection_confidence,
            min_tracking_confidence=self.min_tracking_confidence,
        )

    async def load(self) -> None:
        if self.pose is not None:
            return
        try:
            self.pose = self._build(self.model_complexity)
        except Exception as e:
            fallback = _MEDIAPIPE_CONFIG["fallback_model_complexity"]
            if fallback == self.model_complexity:
                raise ModelInitError(f"MediaPipe Pose failed to load: {e}") from e
            logger.warning(f"Model complexity {self.model_complexity} failed to load ({e}), trying {fallback}")
            try:
                self.pose = self._build(fallback)
            except Exception as lite_error:
                raise ModelInitError(f"MediaPipe Pose failed to load: {lite_error}") from lite_error
        logger.info("MediaPipe Pose model loaded")

    def _process(self, frame: np.ndarray) -> List[Dict[str, Any]]:
        frame_rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        results = self.pose.process(frame_rgb)
        if not results.pose_landmarks:
            return []
        landmarks = results.pose_landmarks.landmark
        return [
            {"x": landmarks[idx].x, "y": landmarks[idx].y, "score": landmarks[idx].visibility}
            for idx in self._landmark_indices
        ]

    async def estimate(self, frame: np.ndarray) -> List[Dict[str, Any]]:
        if self.pose is None:
            raise RuntimeError("MediaPipe Pose model is not loaded")
        if self._pending is not None and not self._pending.done():
            # a timed-out call is still running on the executor; the graph is not re-entrant
            return []
        loop = asyncio.get_running_loop()
        self._pending = loop.run_in_executor(None, self._process, frame)
        self._pending.add_done_callback(_log_late_failure)
        return await asyncio.shield(self._pending)

    def dispose(self) -> None:
        if self.pose is not None:
            self.pose.close()
            self.pose = None
            logger.info("MediaPipe Pose model released")

    def get_keypoint_names(self) -> List[str]:
        return CANONICAL_KEYPOINT_NAMES
