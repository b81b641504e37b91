"""Tests for the realtime scheduling loop.

Covers:
  - adaptive interval adjustments and bounds
  - latest-value channel and idle task queue
  - lazy initialization, single outstanding inference, last-good cache
  - deferred scoring of every third processed frame
"""

import asyncio

import pytest

from rehab_motion.errors import InferenceStatus
from rehab_motion.pose_detection import EstimatorState, PoseEstimator
from rehab_motion.realtime import AdaptiveInterval, FrameScheduler, IdleTaskQueue, LatestValueChannel

from pose_fixtures import FakeBackend, FakeClock, make_frame


async def settle(rounds: int = 10):
    for _ in range(rounds):
        await asyncio.sleep(0)


async def _no_sleep(seconds):
    return None


def _scheduler(backend, clock, **kwargs):
    estimator = PoseEstimator(backend, sleep=_no_sleep)
    kwargs.setdefault("movement_type", "deep-squat")
    return FrameScheduler(estimator, clock=clock, **kwargs)


# ============================================================================
# Test: Adaptive Interval
# ============================================================================

class TestAdaptiveInterval:

    def _run_window(self, throttle, start, completions):
        for _ in range(completions):
            throttle.record()
        return throttle.update(start + 1.0)

    def test_defaults(self):
        throttle = AdaptiveInterval()
        assert throttle.interval == pytest.approx(0.1)
        assert throttle.due(5.0, None)

    def test_no_update_inside_window(self):
        throttle = AdaptiveInterval()
        assert throttle.update(0.0) is None
        throttle.record()
        assert throttle.update(0.5) is None
        assert throttle.interval == pytest.approx(0.1)

    def test_slow_rate_lengthens_interval(self):
        throttle = AdaptiveInterval()
        throttle.update(0.0)
        assert self._run_window(throttle, 0.0, 5) == pytest.approx(5.0)
        assert throttle.interval == pytest.approx(0.11)

    def test_fast_rate_shortens_interval(self):
        throttle = AdaptiveInterval()
        throttle.update(0.0)
        self._run_window(throttle, 0.0, 40)
        assert throttle.interval == pytest.approx(0.09)

    def test_rate_in_band_keeps_interval(self):
        throttle = AdaptiveInterval()
        throttle.update(0.0)
        self._run_window(throttle, 0.0, 20)
        assert throttle.interval == pytest.approx(0.1)

    def test_bounds(self):
        slow = AdaptiveInterval()
        fast = AdaptiveInterval()
        slow.update(0.0)
        fast.update(0.0)
        for second in range(30):
            self._run_window(slow, float(second), 1)
            self._run_window(fast, float(second), 100)
        assert slow.interval == pytest.approx(0.2)
        assert fast.interval == pytest.approx(0.05)

    def test_due(self):
        throttle = AdaptiveInterval()
        assert not throttle.due(1.05, 1.0)
        assert throttle.due(1.1, 1.0)


# ============================================================================
# Test: Channel and Idle Queue
# ============================================================================

def test_channel_keeps_latest_value():
    channel = LatestValueChannel([])
    assert channel.snapshot() == (0, [])
    channel.publish([1])
    version = channel.publish([2])
    assert version == 2
    assert channel.latest() == [2]


class TestIdleTaskQueue:

    def test_runs_at_least_one_task(self):
        clock = FakeClock()
        queue = IdleTaskQueue(clock=clock)
        ran = []
        for i in range(3):
            queue.post(lambda i=i: (ran.append(i), clock.advance(1.0)))
        assert queue.run_pending(0.0) == 1
        assert ran == [0]
        assert len(queue) == 2

    def test_runs_all_within_budget(self):
        queue = IdleTaskQueue(clock=FakeClock())
        ran = []
        for i in range(3):
            queue.post(lambda i=i: ran.append(i))
        assert queue.run_pending(1.0) == 3
        assert ran == [0, 1, 2]

    def test_oldest_dropped_when_full(self):
        queue = IdleTaskQueue(maxlen=2, clock=FakeClock())
        ran = []
        for i in range(4):
            queue.post(lambda i=i: ran.append(i))
        queue.run_pending(1.0)
        assert ran == [2, 3]


# ============================================================================
# Test: Frame Scheduler
# ============================================================================

class TestFrameScheduler:

    def test_first_tick_starts_initialization(self):
        backend = FakeBackend()
        clock = FakeClock()

        async def scenario():
            scheduler = _scheduler(backend, clock)
            first = scheduler.tick(make_frame())
            await settle()
            return scheduler, first

        scheduler, first = asyncio.run(scenario())
        assert first == []
        assert scheduler.estimator.state is EstimatorState.READY
        assert backend.load_calls == 1
        assert backend.estimate_calls == 0

    def test_at_most_one_inference_outstanding(self):
        backend = FakeBackend(delay=1.0)
        clock = FakeClock()

        async def scenario():
            scheduler = _scheduler(backend, clock)
            scheduler.tick(make_frame())
            await settle()
            for _ in range(20):
                clock.advance(1.0)
                scheduler.tick(make_frame())
                await settle(2)
            calls = backend.estimate_calls
            scheduler.stop()
            await settle()
            return scheduler, calls

        scheduler, calls = asyncio.run(scenario())
        assert calls == 1
        assert backend.max_active == 1
        assert scheduler.inference_calls == 1

    def test_cached_keypoints_survive_empty_results(self):
        backend = FakeBackend()
        clock = FakeClock()

        async def scenario():
            scheduler = _scheduler(backend, clock)
            scheduler.tick(make_frame())
            await settle()
            clock.advance(0.2)
            scheduler.tick(make_frame())
            await settle()
            good = list(scheduler.cached_keypoints)
            backend.pose = []
            clock.advance(0.2)
            scheduler.tick(make_frame())
            await settle()
            clock.advance(0.2)
            shown = scheduler.tick(make_frame())
            await settle()
            scheduler.stop()
            return scheduler, good, shown

        scheduler, good, shown = asyncio.run(scenario())
        assert len(good) == 17
        assert shown == good
        assert scheduler.last_status is InferenceStatus.EMPTY
        assert scheduler.processed_frames == 1

    def test_every_third_frame_scored_from_idle_queue(self):
        backend = FakeBackend()
        clock = FakeClock()
        evaluations = []

        async def scenario():
            scheduler = _scheduler(backend, clock, on_evaluation=evaluations.append)
            scheduler.tick(make_frame())
            await settle()
            for _ in range(6):
                clock.advance(0.2)
                scheduler.tick(make_frame())
                await settle()
            posted = len(scheduler.idle_queue)
            ran = scheduler.run_idle(budget=1.0)
            scheduler.stop()
            return scheduler, posted, ran

        scheduler, posted, ran = asyncio.run(scenario())
        assert scheduler.processed_frames == 6
        assert posted == 2
        assert ran == 2
        assert len(evaluations) == 2
        assert scheduler.last_evaluation is evaluations[-1]
        assert evaluations[-1].details["movement_type"] == "deep-squat"

    def test_slow_completions_lengthen_interval(self):
        backend = FakeBackend()
        clock = FakeClock()

        async def scenario():
            scheduler = _scheduler(backend, clock)
            for _ in range(5):
                scheduler.tick(make_frame())
                await settle()
                clock.advance(0.25)
            scheduler.tick(make_frame())
            scheduler.stop()
            await settle()
            return scheduler

        scheduler = asyncio.run(scenario())
        assert scheduler.throttle.rate is not None
        assert scheduler.throttle.rate < 15
        assert scheduler.throttle.interval == pytest.approx(0.11)

    def test_stop_prevents_new_work(self):
        backend = FakeBackend()
        clock = FakeClock()

        async def scenario():
            scheduler = _scheduler(backend, clock)
            scheduler.stop()
            result = scheduler.tick(make_frame())
            await settle()
            return scheduler, result

        scheduler, result = asyncio.run(scenario())
        assert result == []
        assert backend.load_calls == 0
        assert scheduler.run_idle() == 0
