import asyncio
import time
from functools import partial
from typing import Any, Callable, List, Optional

from ..config_utils import load_pipeline_config
from ..errors import InferenceStatus
from ..log_utils import get_logger
from ..movement_analysis.base_scorer import MovementEvaluation
from ..movement_analysis.movement_scorer import MovementScorer
from ..pose_detection.keypoint_validator import KeypointValidator
from ..pose_detection.keypoints import Keypoint
from ..pose_detection.pose_estimator import EstimatorState, InferenceResult, PoseEstimator
from .channel import LatestValueChannel
from .idle_queue import IdleTaskQueue
from .throttle import AdaptiveInterval

_SCHEDULER_CONFIG = load_pipeline_config()["scheduler"]

logger = get_logger("rehab_motion.FrameScheduler")


class FrameScheduler:
    """Drives capture -> inference -> scoring from a periodic display-refresh callback.

    ``tick`` never waits for the model: it starts at most one inference task
    when the adaptive interval has elapsed and otherwise returns the cached
    last-good keypoints. Completed inferences are validated and published to
    ``channel``; every n-th processed frame is scored from the idle queue.
    Must be ticked from inside a running asyncio event loop.
    """

    def __init__(
        self,
        estimator: PoseEstimator,
        validator: Optional[KeypointValidator] = None,
        scorer: Optional[MovementScorer] = None,
        channel: Optional[LatestValueChannel] = None,
        idle_queue: Optional[IdleTaskQueue] = None,
        movement_type: Optional[str] = None,
        throttle: Optional[AdaptiveInterval] = None,
        stop_event: Optional[asyncio.Event] = None,
        on_evaluation: Optional[Callable[[MovementEvaluation], None]] = None,
        score_every: int = _SCHEDULER_CONFIG["score_every_n_frames"],
        clock: Callable[[], float] = time.monotonic,
    ):
        self.estimator = estimator
        self.validator = validator or KeypointValidator()
        self.scorer = scorer or MovementScorer()
        self.channel = channel if channel is not None else LatestValueChannel([])
        self.idle_queue = idle_queue or IdleTaskQueue()
        self.movement_type = movement_type
        self.throttle = throttle or AdaptiveInterval()
        self.stop_event = stop_event or asyncio.Event()
        self.on_evaluation = on_evaluation
        self.score_every = max(1, score_every)
        self._clock = clock

        self._pending: Optional[asyncio.Task] = None
        self._init_task: Optional[asyncio.Task] = None
        self._last_inference_time: Optional[float] = None
        self.processed_frames = 0
        self.inference_calls = 0
        self.last_status: Optional[InferenceStatus] = None
        self.last_evaluation: Optional[MovementEvaluation] = None

    @property
    def cached_keypoints(self) -> List[Keypoint]:
        return self.channel.latest() or []

    @property
    def inference_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def tick(self, frame: Any) -> List[Keypoint]:
        """Advance one display frame. Returns the keypoints to show for this frame."""
        if self.stop_event.is_set():
            return self.cached_keypoints
        now = self._clock()
        self.throttle.update(now)

        if self.estimator.state is EstimatorState.UNINITIALIZED:
            if self._init_task is None:
                # first use: load lazily without blocking the tick
                self._init_task = asyncio.ensure_future(self.estimator.initialize())
            return self.cached_keypoints
        if not self.estimator.accepts_frames:
            return self.cached_keypoints
        if self.inference_pending or self.estimator.in_flight:
            return self.cached_keypoints
        if not self.throttle.due(now, self._last_inference_time):
            return self.cached_keypoints

        self._last_inference_time = now
        self.inference_calls += 1
        self._pending = asyncio.ensure_future(self._run_inference(frame))
        return self.cached_keypoints

    async def _run_inference(self, frame: Any) -> None:
        result = await self.estimator.infer(frame)
        self.throttle.record()
        self._on_inference_done(result)

    def _on_inference_done(self, result: InferenceResult) -> None:
        """Single decision point: publish fresh keypoints or keep the last good ones."""
        self.last_status = result.status
        keypoints = self.validator.validate(result.raw) if result.usable else []
        if not keypoints:
            if result.status not in (InferenceStatus.OK, InferenceStatus.SYNTHETIC):
                logger.debug(f"Inference {result.status.value}, keeping last good keypoints")
            return
        if self.stop_event.is_set():
            return

        self.channel.publish(keypoints)
        self.processed_frames += 1
        if self.movement_type and self.processed_frames % self.score_every == 0:
            self.idle_queue.post(partial(self._evaluate, keypoints, self.movement_type))

    def _evaluate(self, keypoints: List[Keypoint], movement_type: str) -> None:
        evaluation = self.scorer.evaluate(keypoints, movement_type)
        self.last_evaluation = evaluation
        if self.on_evaluation is not None:
            self.on_evaluation(evaluation)

    def run_idle(self, budget: float = _SCHEDULER_CONFIG["idle_budget_ms"] / 1000.0) -> int:
        if self.stop_event.is_set():
            self.idle_queue.clear()
            return 0
        return self.idle_queue.run_pending(budget)

    def stop(self) -> None:
        """Signal the loop to stop and cancel any outstanding inference."""
        self.stop_event.set()
        self.idle_queue.clear()
        for task in (self._pending, self._init_task):
            if task is not None and not task.done():
                task.cancel()
