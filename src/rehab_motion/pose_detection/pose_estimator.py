import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..config_utils import load_pipeline_config
from ..errors import InferenceStatus, ModelInitError
from ..log_utils import get_logger
from .base_detector import BasePoseBackend
from .synthetic_pose import SyntheticPoseGenerator

_ESTIMATOR_CONFIG = load_pipeline_config()["pose_estimator"]

logger = get_logger("rehab_motion.PoseEstimator")


class EstimatorState(Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED_FALLBACK = "failed_fallback"
    DISPOSED = "disposed"


@dataclass
class InferenceResult:
    """Raw model output for one frame plus how it was obtained."""
    status: InferenceStatus
    raw: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def usable(self) -> bool:
        return self.status in (InferenceStatus.OK, InferenceStatus.SYNTHETIC) and bool(self.raw)


class PoseEstimator:
    """Owns the lifecycle of a pose backend: load with retries, guarded inference, disposal.

    After ``max_retries`` failed loads the estimator switches to fallback mode
    and serves synthetic skeletons, refreshed every ``synthetic_interval``
    seconds, so the rest of the pipeline keeps running.

    ``infer`` is not re-entrant. Callers should check ``in_flight`` first; a
    call made while another is outstanding returns ``BUSY`` with the last raw
    result instead of reaching the backend.
    """

    def __init__(
        self,
        backend: BasePoseBackend,
        max_retries: int = _ESTIMATOR_CONFIG["max_retries"],
        retry_backoff: float = _ESTIMATOR_CONFIG["retry_backoff_seconds"],
        timeout: float = _ESTIMATOR_CONFIG["inference_timeout_seconds"],
        synthetic_interval: float = _ESTIMATOR_CONFIG["synthetic_interval_seconds"],
        synthetic_seed: Optional[int] = _ESTIMATOR_CONFIG["synthetic_seed"],
        min_frame_size: int = _ESTIMATOR_CONFIG["min_frame_size"],
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._backend = backend
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.timeout = timeout
        self.synthetic_interval = synthetic_interval
        self.min_frame_size = min_frame_size
        self._sleep = sleep
        self._clock = clock

        self._state = EstimatorState.UNINITIALIZED
        self._init_task: Optional[asyncio.Future] = None
        self._in_flight = False
        self._last_raw: List[Dict[str, Any]] = []
        self.last_error: Optional[ModelInitError] = None

        self._synthetic = SyntheticPoseGenerator(seed=synthetic_seed)
        self._synthetic_raw: List[Dict[str, Any]] = []
        self._synthetic_time: Optional[float] = None

    @property
    def state(self) -> EstimatorState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def using_synthetic(self) -> bool:
        return self._state is EstimatorState.FAILED_FALLBACK

    @property
    def accepts_frames(self) -> bool:
        return self._state in (EstimatorState.READY, EstimatorState.FAILED_FALLBACK)

    async def __aenter__(self) -> "PoseEstimator":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # --- Lifecycle ---
    async def initialize(self) -> EstimatorState:
        """Load the backend once; concurrent callers share the same load."""
        if self._state in (EstimatorState.READY, EstimatorState.FAILED_FALLBACK):
            return self._state
        if self._state is EstimatorState.DISPOSED:
            logger.warning("initialize() called on a disposed estimator")
            return self._state
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._load_with_retries())
        await asyncio.shield(self._init_task)
        return self._state

    async def _load_with_retries(self) -> None:
        self._state = EstimatorState.LOADING
        for attempt in range(1, self.max_retries + 1):
            logger.info(f"Loading pose model (attempt {attempt}/{self.max_retries})...")
            try:
                await self._backend.load()
            except Exception as e:
                self.last_error = e if isinstance(e, ModelInitError) else ModelInitError(str(e))
                logger.error(f"Pose model load failed (attempt {attempt}/{self.max_retries}): {e}")
                if attempt < self.max_retries:
                    await self._sleep(self.retry_backoff * attempt)
                continue
            if self._state is EstimatorState.DISPOSED:
                # disposed while loading
                self._backend.dispose()
                return
            self._state = EstimatorState.READY
            logger.info("Pose model ready")
            return
        self._enter_fallback()

    def _enter_fallback(self) -> None:
        if self._state is EstimatorState.DISPOSED:
            return
        logger.error("All pose model load attempts failed, switching to synthetic keypoints")
        self._state = EstimatorState.FAILED_FALLBACK
        self._refresh_synthetic(force=True)

    def dispose(self) -> None:
        """Release backend resources. Safe to call more than once."""
        if self._state is EstimatorState.DISPOSED:
            return
        was_loading = self._state is EstimatorState.LOADING
        self._state = EstimatorState.DISPOSED
        self._in_flight = False
        if was_loading and self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        self._backend.dispose()
        logger.info("Pose estimator disposed")

    # --- Inference ---
    def _refresh_synthetic(self, force: bool = False) -> None:
        now = self._clock()
        if force or self._synthetic_time is None or now - self._synthetic_time >= self.synthetic_interval:
            self._synthetic_raw = self._synthetic.next_pose()
            self._synthetic_time = now

    def _frame_is_usable(self, frame: Any) -> bool:
        if frame is None:
            return False
        shape = getattr(frame, "shape", None)
        if shape is None:
            return True
        return len(shape) >= 2 and shape[0] >= self.min_frame_size and shape[1] >= self.min_frame_size

    async def infer(self, frame: Any) -> InferenceResult:
        """Estimate raw keypoints for one frame. Never raises for per-frame failures."""
        if self._state is EstimatorState.FAILED_FALLBACK:
            self._refresh_synthetic()
            return InferenceResult(InferenceStatus.SYNTHETIC, list(self._synthetic_raw))
        if self._state is not EstimatorState.READY:
            return InferenceResult(InferenceStatus.NOT_READY)
        if self._in_flight:
            return InferenceResult(InferenceStatus.BUSY, list(self._last_raw))
        if not self._frame_is_usable(frame):
            logger.debug("Frame is missing or too small, skipping inference")
            return InferenceResult(InferenceStatus.EMPTY)

        self._in_flight = True
        try:
            raw = await asyncio.wait_for(self._backend.estimate(frame), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Pose estimation timed out after {self.timeout:.1f}s, returning empty result")
            return InferenceResult(InferenceStatus.TIMEOUT)
        except Exception as e:
            logger.error(f"Pose estimation failed: {e}")
            return InferenceResult(InferenceStatus.FAILED)
        finally:
            self._in_flight = False

        if not raw:
            return InferenceResult(InferenceStatus.EMPTY)
        self._last_raw = list(raw)
        return InferenceResult(InferenceStatus.OK, list(self._last_raw))

