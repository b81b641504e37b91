import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..config_utils import load_pipeline_config
from ..log_utils import get_logger

_ASSESSMENT_CONFIG = load_pipeline_config()["assessment"]

logger = get_logger("rehab_motion.AssessmentAggregator")

MAX_SCORE: float = _ASSESSMENT_CONFIG["max_score"]
WEAK_METRIC_BELOW: float = _ASSESSMENT_CONFIG["weak_metric_below"]
ASYMMETRY_THRESHOLD: float = _ASSESSMENT_CONFIG["asymmetry_threshold"]
MAX_RECOMMENDATIONS: int = _ASSESSMENT_CONFIG["max_recommendations"]

# (minimum percentage, description, feedback), checked top-down
SCORE_BANDS = [
    (80, "Excellent", "Functional performance is good, keep it up"),
    (60, "Good", "Functional performance is good, with room to improve"),
    (40, "Fair", "Functional performance is average, targeted training is needed"),
    (0, "Needs improvement", "Functional performance is poor, strengthen the related training"),
]

# metric id -> (display name, category, input keys)
CANONICAL_METRICS = {
    "hip_mobility": ("Hip mobility", "mobility", ("hip_mobility_score", "hipMobilityScore")),
    "knee_stability": ("Knee stability", "stability", ("knee_stability_score", "kneeStabilityScore")),
    "shoulder_mobility": ("Shoulder mobility", "mobility", ("shoulder_mobility_score", "shoulderMobilityScore")),
    "core_activation": ("Core activation", "stability", ("core_activation_score", "coreActivationScore")),
    "postural_alignment": ("Postural alignment", "stability", ("postural_alignment_score", "posturalAlignmentScore")),
}

EXERCISE_TABLE = {
    "hip_mobility": ["Hip flexion mobility training", "Hip flexor stretching"],
    "knee_stability": ["Single-leg balance training", "Knee stability strengthening"],
    "core_activation": ["Core stability training", "Transverse abdominis activation"],
}

ASYMMETRY_RECOMMENDATION = "Balance training to correct left/right asymmetry"
MOBILITY_RECOMMENDATION = "Add joint range-of-motion training"
STABILITY_RECOMMENDATION = "Strengthen core and stability training"
MAINTENANCE_RECOMMENDATIONS = [
    "Keep the current training plan",
    "Consider increasing training difficulty and variety",
]


@dataclass
class Score:
    value: float
    max_value: float
    description: str = ""
    feedback: str = ""

    @property
    def ratio(self) -> float:
        return self.value / self.max_value if self.max_value > 0 else 0.0

    @property
    def percentage(self) -> float:
        return self.ratio * 100


@dataclass
class Metric:
    id: str
    name: str
    score: Score
    category: str = "general"
    details: Optional[Dict[str, Any]] = None


@dataclass
class Assessment:
    """Aggregate assessment record handed to storage/UI collaborators."""
    id: str
    movement_type: str
    timestamp: str
    metrics: List[Metric]
    overall_score: Score
    mobility_score: Score
    stability_score: Score
    asymmetry_detected: bool
    compensation_patterns: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    notes: str = ""
    movement_name: str = "Unknown Movement"
    type: str = "FMS"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def create_score(value: float, max_value: float) -> Score:
    """
    Build a Score with its description band.

    Args:
        value: Achieved points; clamped to ``[0, max_value]``
        max_value: Maximum achievable points

    Returns:
        Score with description and feedback for its percentage band
    """
    if value < 0 or value > max_value:
        clamped = min(max(value, 0), max_value)
        logger.warning(f"Score {value} outside [0, {max_value}], clamping to {clamped}")
        value = clamped
    percentage = (value / max_value) * 100 if max_value > 0 else 0.0
    for minimum, description, feedback in SCORE_BANDS:
        if percentage >= minimum:
            return Score(value, max_value, description, feedback)
    return Score(value, max_value)


def composite_score(metrics: Iterable[Metric]) -> Score:
    """sum(value) / sum(max_value) over the given metrics."""
    metrics = list(metrics)
    total = sum(m.score.value for m in metrics)
    total_max = sum(m.score.max_value for m in metrics)
    return create_score(total, total_max)


def _first_number(data: Mapping[str, Any], keys: Iterable[str]) -> float:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return float(value)
    return 0.0


class AssessmentAggregator:
    """Turns raw per-exercise scores into an FMS-style Assessment record."""

    def __init__(self, clock=time.time):
        self._clock = clock

    def process(self, data: Mapping[str, Any]) -> Assessment:
        metrics = self.extract_metrics(data)
        asymmetry = self.check_asymmetry(data.get("left_side_scores"), data.get("right_side_scores"))
        now = self._clock()
        assessment = Assessment(
            id=f"fms_{int(now * 1000)}",
            movement_type=data.get("movement_type") or "unknown",
            movement_name=data.get("movement_name") or "Unknown Movement",
            timestamp=datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            metrics=metrics,
            overall_score=composite_score(metrics),
            mobility_score=composite_score(m for m in metrics if m.category == "mobility"),
            stability_score=composite_score(m for m in metrics if m.category == "stability"),
            asymmetry_detected=asymmetry,
            compensation_patterns=list(data.get("compensation_patterns") or []),
            recommendations=self.generate_recommendations(metrics, asymmetry),
            notes=data.get("notes") or "",
        )
        logger.info(f"Assessment {assessment.id}: overall {assessment.overall_score.value}/"
                    f"{assessment.overall_score.max_value} ({assessment.overall_score.description})")
        return assessment

    def extract_metrics(self, data: Mapping[str, Any]) -> List[Metric]:
        """Canonical metrics first, then any ``additional_metrics`` not already present."""
        metrics: Dict[str, Metric] = {}
        for metric_id, (name, category, keys) in CANONICAL_METRICS.items():
            value = _first_number(data, keys)
            metrics[metric_id] = Metric(metric_id, name, create_score(value, MAX_SCORE), category)

        for key, extra in (data.get("additional_metrics") or {}).items():
            if key in metrics or not isinstance(extra, Mapping):
                continue
            metrics[key] = Metric(
                id=key,
                name=extra.get("name") or key.replace("_", " "),
                score=create_score(float(extra.get("score") or 0), float(extra.get("max_score") or MAX_SCORE)),
                category=extra.get("category") or "general",
                details=extra.get("details"),
            )
        return list(metrics.values())

    @staticmethod
    def check_asymmetry(left: Optional[Mapping[str, float]], right: Optional[Mapping[str, float]]) -> bool:
        """True if any left-side score differs from its right-side pair by at least the threshold."""
        if not left or right is None:
            return False
        return any(abs(value - right.get(key, 0)) >= ASYMMETRY_THRESHOLD for key, value in left.items())

    @staticmethod
    def generate_recommendations(metrics: List[Metric], asymmetry_detected: bool) -> List[str]:
        recommendations: List[str] = []
        for metric in metrics:
            if metric.score.value < WEAK_METRIC_BELOW:
                recommendations.extend(EXERCISE_TABLE.get(metric.id, [f"{metric.name} training"]))

        if asymmetry_detected:
            recommendations.append(ASYMMETRY_RECOMMENDATION)

        if any(m.category == "mobility" and m.score.value < m.score.max_value for m in metrics):
            recommendations.append(MOBILITY_RECOMMENDATION)
        if any(m.category == "stability" and m.score.value < m.score.max_value for m in metrics):
            recommendations.append(STABILITY_RECOMMENDATION)

        if all(m.score.value >= WEAK_METRIC_BELOW for m in metrics):
            recommendations.extend(MAINTENANCE_RECOMMENDATIONS)

        return list(dict.fromkeys(recommendations))[:MAX_RECOMMENDATIONS]

    @staticmethod
    def recommended_exercises(assessment: Assessment) -> List[str]:
        """Exercises for the weak metrics of an existing assessment, deduplicated and capped."""
        exercises: List[str] = []
        for metric in assessment.metrics:
            if metric.score.value < WEAK_METRIC_BELOW:
                exercises.extend(EXERCISE_TABLE.get(metric.id, [f"{metric.name} training"]))
        return list(dict.fromkeys(exercises))[:MAX_RECOMMENDATIONS]


# movement type -> canonical metric inputs it informs
MOVEMENT_METRIC_INPUTS = {
    "deep-squat": ("hip_mobility_score", "knee_stability_score"),
    "shoulder-mobility": ("shoulder_mobility_score",),
}


def assessment_input(movement_type: str, scores: Iterable[float], movement_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Build ``AssessmentAggregator.process`` input from per-frame 0-1 evaluation scores.

    The mean frame score is mapped onto the 0-3 metric scale and rounded to a whole point.

    Args:
        movement_type: Movement id the frames were scored as
        scores: Per-frame MovementEvaluation scores
        movement_name: Optional display name

    Returns:
        Raw assessment data dict
    """
    scores = list(scores)
    points = round(sum(scores) / len(scores) * MAX_SCORE) if scores else 0
    data: Dict[str, Any] = {
        "movement_type": movement_type,
        "movement_name": movement_name or movement_type.replace("-", " ").title(),
        "notes": f"{len(scores)} scored frames",
    }
    keys = MOVEMENT_METRIC_INPUTS.get(movement_type)
    if keys:
        for key in keys:
            data[key] = points
    else:
        metric_id = movement_type.replace("-", "_")
        data["additional_metrics"] = {metric_id: {"score": points, "max_score": MAX_SCORE}}
    return data
