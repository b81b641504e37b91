from collections import deque
from typing import Any, Deque, Dict, List, Optional

from ..config_utils import load_pipeline_config
from ..log_utils import get_logger
from .assessment_aggregator import Assessment

_HISTORY_CONFIG = load_pipeline_config()["history"]

logger = get_logger("rehab_motion.History")


class AssessmentHistory:
    """In-memory assessment store, most recent first, capped at ``limit`` records.

    Saving an assessment whose id is already stored replaces it and moves it to the front.
    """

    def __init__(self, limit: int = _HISTORY_CONFIG["assessment_limit"]):
        self.limit = limit
        self._items: List[Assessment] = []

    def __len__(self) -> int:
        return len(self._items)

    def save(self, assessment: Assessment) -> None:
        self._items = [a for a in self._items if a.id != assessment.id]
        self._items.insert(0, assessment)
        if len(self._items) > self.limit:
            dropped = len(self._items) - self.limit
            del self._items[self.limit:]
            logger.debug(f"Assessment history full, dropped {dropped} oldest record(s)")

    def get(self, assessment_id: str) -> Optional[Assessment]:
        return next((a for a in self._items if a.id == assessment_id), None)

    def all(self) -> List[Assessment]:
        return list(self._items)

    def delete(self, assessment_id: str) -> bool:
        before = len(self._items)
        self._items = [a for a in self._items if a.id != assessment_id]
        return len(self._items) < before

    def clear(self) -> None:
        self._items.clear()


class AnalysisHistory:
    """Most recent video-analysis results, newest first, capped at ``limit``."""

    def __init__(self, limit: int = _HISTORY_CONFIG["analysis_limit"]):
        self._items: Deque[Dict[str, Any]] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._items)

    def add(self, result: Dict[str, Any]) -> None:
        self._items.appendleft(result)

    def all(self) -> List[Dict[str, Any]]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()
