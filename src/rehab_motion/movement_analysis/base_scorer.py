from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..pose_detection.keypoints import Keypoint, keypoint_map


@dataclass
class MovementEvaluation:
    """Per-frame result of scoring one movement.

    ``score`` is always on a 0-1 scale; ``score_percent`` is the 0-100 value
    shown to the user.
    """
    score: float
    feedback: str
    angles: Dict[str, float] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def score_percent(self) -> int:
        return int(round(self.score * 100))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "feedback": self.feedback,
            "angles": dict(self.angles),
            "details": dict(self.details),
        }


# --- Movement Scorer Registry ---
MOVEMENT_SCORER_REGISTRY = {}


def register_movement_scorer(movement_type: str):
    def decorator(cls):
        MOVEMENT_SCORER_REGISTRY[movement_type] = cls
        return cls
    return decorator


class BaseMovementScorer(ABC):
    """Rule set for one movement type."""

    movement_type = "generic"

    @abstractmethod
    def score(self, keypoints: List[Keypoint]) -> MovementEvaluation:
        """
        Score a single frame.

        Args:
            keypoints: validated keypoints, at least the scorer's minimum count

        Returns:
            MovementEvaluation with score in [0, 1] and the angles it used
        """
        pass

    @staticmethod
    def lookup(keypoints: List[Keypoint]) -> Dict[str, Keypoint]:
        return keypoint_map(keypoints)
