import math
from collections.abc import Mapping, Sequence
from typing import Any, Iterable, List, Optional

from ..log_utils import get_logger
from .keypoints import CANONICAL_KEYPOINT_NAMES, DETECTION_THRESHOLD, Keypoint

logger = get_logger("rehab_motion.KeypointValidator")


def _as_number(value: Any) -> Optional[float]:
    """Return value as a finite float, or None if it is not a plain number."""
    if value is None or isinstance(value, (bool, str, bytes)):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _unpack_entry(entry: Any):
    """Pull (x, y, score) out of a mapping, a sequence or an object with attributes."""
    if isinstance(entry, Mapping):
        score = entry.get("score")
        if score is None:
            score = entry.get("confidence")
        return entry.get("x"), entry.get("y"), score
    if isinstance(entry, Sequence) and not isinstance(entry, (str, bytes)):
        if len(entry) < 2:
            return None, None, None
        return entry[0], entry[1], entry[2] if len(entry) > 2 else None
    return getattr(entry, "x", None), getattr(entry, "y", None), getattr(entry, "score", None)


class KeypointValidator:
    """Sanitizes raw, positionally ordered model output into canonical keypoints.

    Malformed entries are dropped, never fatal: ``validate`` does not raise.
    The canonical name of an entry is taken from its position in the raw
    output and ``names``, which defaults to ``CANONICAL_KEYPOINT_NAMES``
    and is normally the backend's ``get_keypoint_names()``.
    """

    def __init__(self, threshold: float = DETECTION_THRESHOLD, names: Optional[List[str]] = None):
        self.threshold = threshold
        self.names = list(names) if names is not None else CANONICAL_KEYPOINT_NAMES
        self.last_rejected = 0

    def name_for(self, index: int) -> str:
        if 0 <= index < len(self.names):
            return self.names[index]
        return f"keypoint_{index}"

    def validate(self, raw: Optional[Iterable[Any]]) -> List[Keypoint]:
        self.last_rejected = 0
        if raw is None or isinstance(raw, (str, bytes, Mapping)):
            return []
        try:
            entries = list(raw)
        except TypeError:
            logger.warning(f"Raw keypoint data is not iterable: {type(raw).__name__}")
            return []

        keypoints: List[Keypoint] = []
        for index, entry in enumerate(entries):
            reason = None
            if entry is None:
                reason = "empty entry"
            else:
                x, y, score = (_as_number(v) for v in _unpack_entry(entry))
                if x is None or y is None:
                    reason = "non-numeric coordinates"
                elif not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0):
                    reason = f"coordinates out of range ({x:.3f}, {y:.3f})"
                elif score is None:
                    reason = "missing confidence"
                elif score <= self.threshold:
                    reason = f"confidence {score:.2f} at or below {self.threshold}"
            if reason is not None:
                self.last_rejected += 1
                logger.debug(f"Dropping keypoint {index}: {reason}")
                continue
            keypoints.append(Keypoint(self.name_for(index), x, y, min(score, 1.0)))
        return keypoints
