from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config_utils import load_pipeline_config

_PIPELINE_CONFIG = load_pipeline_config()

# Positional contract with the pose backend: entry i of the raw output is CANONICAL_KEYPOINT_NAMES[i].
CANONICAL_KEYPOINT_NAMES: List[str] = list(_PIPELINE_CONFIG["keypoints"]["canonical_names"])
DETECTION_THRESHOLD: float = _PIPELINE_CONFIG["keypoints"]["detection_threshold"]


@dataclass(frozen=True)
class Keypoint:
    """A named 2D body landmark. x and y are fractions of the frame width/height."""
    name: str
    x: float
    y: float
    confidence: Optional[float] = None

    @property
    def effective_confidence(self) -> float:
        # Keypoints supplied without a score are treated as certain.
        return 1.0 if self.confidence is None else self.confidence

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "x": self.x, "y": self.y}
        if self.confidence is not None:
            data["score"] = self.confidence
        return data


@dataclass(frozen=True)
class SkeletonConnection:
    """A drawable bone between two named keypoints."""
    start: str
    end: str


DEFAULT_CONNECTIONS: List[SkeletonConnection] = [
    # face
    SkeletonConnection("nose", "left_eye"),
    SkeletonConnection("left_eye", "left_ear"),
    SkeletonConnection("nose", "right_eye"),
    SkeletonConnection("right_eye", "right_ear"),
    # arms
    SkeletonConnection("right_shoulder", "right_elbow"),
    SkeletonConnection("right_elbow", "right_wrist"),
    SkeletonConnection("left_shoulder", "left_elbow"),
    SkeletonConnection("left_elbow", "left_wrist"),
    # torso
    SkeletonConnection("left_shoulder", "right_shoulder"),
    SkeletonConnection("left_shoulder", "left_hip"),
    SkeletonConnection("right_shoulder", "right_hip"),
    SkeletonConnection("left_hip", "right_hip"),
    # legs
    SkeletonConnection("right_hip", "right_knee"),
    SkeletonConnection("right_knee", "right_ankle"),
    SkeletonConnection("left_hip", "left_knee"),
    SkeletonConnection("left_knee", "left_ankle"),
]


def keypoint_map(keypoints: List[Keypoint]) -> Dict[str, Keypoint]:
    """Index keypoints by name; the first occurrence of a name wins."""
    index: Dict[str, Keypoint] = {}
    for kp in keypoints:
        index.setdefault(kp.name, kp)
    return index


def mean_confidence(keypoints: List[Keypoint]) -> float:
    if not keypoints:
        return 0.0
    return sum(kp.effective_confidence for kp in keypoints) / len(keypoints)
