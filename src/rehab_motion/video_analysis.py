import asyncio
import base64
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import cv2
import numpy as np

from .config_utils import load_pipeline_config
from .errors import EvaluationResult
from .log_utils import get_logger
from .movement_analysis.base_scorer import MovementEvaluation
from .movement_analysis.movement_scorer import MovementScorer
from .pose_detection.base_detector import BasePoseBackend
from .pose_detection.keypoint_validator import KeypointValidator
from .pose_detection.keypoints import Keypoint
from .pose_detection.pose_estimator import PoseEstimator
from .realtime.channel import LatestValueChannel
from .realtime.skeleton_renderer import SkeletonRenderer

_VIDEO_CONFIG = load_pipeline_config()["video"]

logger = get_logger("rehab_motion.VideoAnalyzer")


def encode_image(frame: np.ndarray) -> str:
    """PNG-encode a BGR frame as a base64 data URL."""
    ok, buffer = cv2.imencode(".png", frame)
    if not ok:
        return ""
    return "data:image/png;base64," + base64.b64encode(buffer.tobytes()).decode("ascii")


def build_analysis_result(
    evaluations: List[MovementEvaluation],
    best_keypoints: List[Keypoint],
    processing_time: float,
    sampled_frames: int,
    annotated_image: str = "",
    timestamp: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Shape per-frame evaluations into the analysis response.

    Args:
        evaluations: Evaluations of the sampled frames that had a pose
        best_keypoints: Keypoints of the highest-scoring frame
        processing_time: Wall time of the analysis in seconds
        sampled_frames: Number of frames sent to the estimator
        annotated_image: Optional data URL of the annotated best frame
        timestamp: ISO timestamp; now when omitted

    Returns:
        Dict with score, feedback, reason, angles, processing_time,
        keypoints_detected, annotated_image, details, timestamp and keypoints
    """
    timestamp = timestamp or datetime.now(timezone.utc).isoformat()
    scored = [e for e in evaluations if e.details.get("result") != EvaluationResult.INSUFFICIENT_KEYPOINTS.value]

    if not scored:
        return {
            "score": 0.0,
            "feedback": "No person was detected in the video.",
            "reason": f"None of the {sampled_frames} sampled frames had enough visible keypoints.",
            "angles": {},
            "processing_time": f"{processing_time:.1f}s",
            "keypoints_detected": False,
            "annotated_image": annotated_image,
            "details": {"sampled_frames": sampled_frames, "scored_frames": 0},
            "timestamp": timestamp,
            "keypoints": [],
        }

    best = max(scored, key=lambda e: e.score)
    mean_score = float(np.mean([e.score for e in scored]))
    return {
        "score": round(mean_score, 4),
        "feedback": best.feedback,
        "reason": f"Average of {len(scored)} scored frames out of {sampled_frames} sampled; best frame {best.score_percent}/100.",
        "angles": dict(best.angles),
        "processing_time": f"{processing_time:.1f}s",
        "keypoints_detected": bool(best_keypoints),
        "annotated_image": annotated_image,
        "details": {
            **best.details,
            "sampled_frames": sampled_frames,
            "scored_frames": len(scored),
            "best_score": best.score,
        },
        "timestamp": timestamp,
        "keypoints": [kp.to_dict() for kp in best_keypoints],
    }


class VideoAnalyzer:
    """Offline analysis of a recorded movement video."""

    def __init__(
        self,
        backend: Optional[BasePoseBackend] = None,
        sample_every: int = _VIDEO_CONFIG["sample_every_n_frames"],
    ):
        if backend is None:
            from .pose_detection.mediapipe_detector import MediaPipePoseBackend
            backend = MediaPipePoseBackend()
        self.backend = backend
        self.sample_every = max(1, sample_every)
        self.validator = KeypointValidator(names=backend.get_keypoint_names())
        self.scorer = MovementScorer()

    def analyze(self, video_path: str, movement_type: str) -> Dict[str, Any]:
        return asyncio.run(self.analyze_async(video_path, movement_type))

    async def analyze_async(self, video_path: str, movement_type: str) -> Dict[str, Any]:
        if not os.path.isfile(video_path):
            raise FileNotFoundError(f"Video file not found: {video_path}")
        cap = cv2.VideoCapture(video_path)
        if not cap.isOpened():
            raise ValueError(f"Unable to open video: {video_path}")

        start = time.perf_counter()
        evaluations: List[MovementEvaluation] = []
        best_score = -1.0
        best_frame: Optional[np.ndarray] = None
        best_keypoints: List[Keypoint] = []
        frame_index = 0
        sampled = 0
        try:
            async with PoseEstimator(self.backend) as estimator:
                while True:
                    ok, frame = cap.read()
                    if not ok:
                        break
                    frame_index += 1
                    if (frame_index - 1) % self.sample_every:
                        continue
                    sampled += 1
                    result = await estimator.infer(frame)
                    keypoints = self.validator.validate(result.raw) if result.usable else []
                    if not keypoints:
                        continue
                    evaluation = self.scorer.evaluate(keypoints, movement_type)
                    evaluations.append(evaluation)
                    if evaluation.score > best_score:
                        best_score = evaluation.score
                        best_frame = frame.copy()
                        best_keypoints = keypoints
        finally:
            cap.release()

        annotated = ""
        if best_frame is not None:
            renderer = SkeletonRenderer(best_frame.shape[1], best_frame.shape[0], LatestValueChannel(best_keypoints))
            renderer.draw(best_keypoints)
            annotated = encode_image(renderer.composite(best_frame))

        elapsed = time.perf_counter() - start
        logger.info(f"Analyzed {frame_index} frames ({sampled} sampled, {len(evaluations)} with a pose) in {elapsed:.1f}s")
        return build_analysis_result(evaluations, best_keypoints, elapsed, sampled, annotated)
