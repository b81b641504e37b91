from typing import Dict, List, Optional

from ..config_utils import load_pipeline_config
from ..errors import EvaluationResult
from ..log_utils import get_logger
from ..pose_detection.keypoints import DETECTION_THRESHOLD, Keypoint, mean_confidence
from .base_scorer import MOVEMENT_SCORER_REGISTRY, BaseMovementScorer, MovementEvaluation
from .movement_scorers import GenericConfidenceScorer

_SCORING_CONFIG = load_pipeline_config()["scoring"]

logger = get_logger("rehab_motion.MovementScorer")


class MovementScorer:
    """Dispatches a frame's keypoints to the rule set registered for a movement type."""

    def __init__(self, min_keypoints: Optional[int] = None, threshold: float = DETECTION_THRESHOLD):
        self.min_keypoints = min_keypoints if min_keypoints is not None else _SCORING_CONFIG["min_keypoints"]
        self.threshold = threshold
        self._scorers: Dict[str, BaseMovementScorer] = {}
        self._generic = GenericConfidenceScorer()

    def supported_movements(self) -> List[str]:
        return sorted(MOVEMENT_SCORER_REGISTRY)

    def scorer_for(self, movement_type: str) -> Optional[BaseMovementScorer]:
        if movement_type not in self._scorers:
            scorer_cls = MOVEMENT_SCORER_REGISTRY.get(movement_type)
            if scorer_cls is None:
                return None
            self._scorers[movement_type] = scorer_cls()
        return self._scorers[movement_type]

    def evaluate(self, keypoints: List[Keypoint], movement_type: str) -> MovementEvaluation:
        usable = [kp for kp in keypoints or [] if kp.confidence is None or kp.confidence >= self.threshold]
        details = {
            "keypoint_count": len(usable),
            "mean_confidence": round(mean_confidence(usable), 4),
            "movement_type": movement_type,
        }

        if len(usable) < self.min_keypoints:
            details["result"] = EvaluationResult.INSUFFICIENT_KEYPOINTS.value
            return MovementEvaluation(
                _SCORING_CONFIG["default_score"],
                "Unable to assess the movement. Make sure your whole body is inside the camera view.",
                {},
                details,
            )

        scorer = self.scorer_for(movement_type)
        result = EvaluationResult.SCORED
        if scorer is None:
            logger.debug(f"No scorer registered for '{movement_type}', using confidence-based scoring")
            scorer = self._generic
            result = EvaluationResult.UNKNOWN_MOVEMENT_TYPE

        try:
            evaluation = scorer.score(usable)
            if not isinstance(evaluation, MovementEvaluation):
                raise TypeError(f"scorer returned {type(evaluation).__name__}, not MovementEvaluation")
            evaluation.score = min(1.0, max(0.0, float(evaluation.score)))
            details["result"] = result.value
            evaluation.details = {**(evaluation.details or {}), **details}
        except Exception as e:
            logger.exception(f"Scoring '{movement_type}' failed: {e}")
            details["result"] = EvaluationResult.SCORING_FAILED.value
            return MovementEvaluation(
                _SCORING_CONFIG["default_score"],
                "Movement evaluation failed for this frame.",
                {},
                details,
            )
        return evaluation
