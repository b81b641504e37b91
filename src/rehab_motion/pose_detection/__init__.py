"""
Pose detection package: model backends, estimator lifecycle and keypoint validation.

The MediaPipe backend lives in ``mediapipe_detector`` and is imported on demand.
"""

from .base_detector import BasePoseBackend
from .keypoint_validator import KeypointValidator
from .keypoints import CANONICAL_KEYPOINT_NAMES, DEFAULT_CONNECTIONS, DETECTION_THRESHOLD, Keypoint, SkeletonConnection
from .pose_estimator import EstimatorState, InferenceResult, PoseEstimator
from .synthetic_pose import SyntheticPoseGenerator

__all__ = [
    'BasePoseBackend',
    'KeypointValidator',
    'CANONICAL_KEYPOINT_NAMES',
    'DEFAULT_CONNECTIONS',
    'DETECTION_THRESHOLD',
    'Keypoint',
    'SkeletonConnection',
    'EstimatorState',
    'InferenceResult',
    'PoseEstimator',
    'SyntheticPoseGenerator',
]
