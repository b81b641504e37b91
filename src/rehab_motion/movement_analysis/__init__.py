"""
Movement analysis package: joint geometry and per-movement scoring.
"""

from .base_scorer import MOVEMENT_SCORER_REGISTRY, BaseMovementScorer, MovementEvaluation, register_movement_scorer
from .movement_scorers import DeepSquatScorer, GenericConfidenceScorer, ShoulderMobilityScorer
from .movement_scorer import MovementScorer
from .pose_utils import AngleMeasurement, angle_at, compute_joint_angles

__all__ = [
    'MOVEMENT_SCORER_REGISTRY',
    'BaseMovementScorer',
    'MovementEvaluation',
    'register_movement_scorer',
    'DeepSquatScorer',
    'ShoulderMobilityScorer',
    'GenericConfidenceScorer',
    'MovementScorer',
    'AngleMeasurement',
    'angle_at',
    'compute_joint_angles',
]
