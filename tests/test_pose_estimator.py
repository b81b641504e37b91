"""Tests for the pose estimator lifecycle.

Covers:
  - load retries with linear backoff and synthetic fallback
  - shared initialization and async context manager
  - per-call statuses: OK, EMPTY, TIMEOUT, FAILED, BUSY, NOT_READY
  - idempotent disposal
"""

import asyncio

import pytest

from rehab_motion.errors import InferenceStatus
from rehab_motion.pose_detection import EstimatorState, KeypointValidator, PoseEstimator

from pose_fixtures import FakeBackend, FakeClock, make_frame


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def _estimator(backend, **kwargs):
    kwargs.setdefault("sleep", RecordingSleep())
    return PoseEstimator(backend, **kwargs)


# ============================================================================
# Test: Initialization
# ============================================================================

class TestInitialization:

    def test_ready_after_successful_load(self):
        backend = FakeBackend()
        estimator = _estimator(backend)
        assert estimator.state is EstimatorState.UNINITIALIZED
        state = asyncio.run(estimator.initialize())
        assert state is EstimatorState.READY
        assert backend.load_calls == 1

    def test_retry_then_ready(self):
        backend = FakeBackend(fail_loads=2)
        sleep = RecordingSleep()
        estimator = _estimator(backend, sleep=sleep)
        assert asyncio.run(estimator.initialize()) is EstimatorState.READY
        assert backend.load_calls == 3
        assert sleep.calls == [2.0, 4.0]

    def test_fallback_after_three_failures(self):
        backend = FakeBackend(fail_loads=10)
        sleep = RecordingSleep()
        estimator = _estimator(backend, sleep=sleep)
        assert asyncio.run(estimator.initialize()) is EstimatorState.FAILED_FALLBACK
        assert backend.load_calls == 3
        assert sleep.calls == [2.0, 4.0]
        assert estimator.using_synthetic
        assert estimator.last_error is not None

    def test_concurrent_callers_share_one_load(self):
        backend = FakeBackend()
        estimator = _estimator(backend)

        async def scenario():
            return await asyncio.gather(estimator.initialize(), estimator.initialize(), estimator.initialize())

        states = asyncio.run(scenario())
        assert states == [EstimatorState.READY] * 3
        assert backend.load_calls == 1

    def test_async_context_manager_disposes(self):
        backend = FakeBackend()

        async def scenario():
            async with _estimator(backend) as estimator:
                result = await estimator.infer(make_frame())
            return estimator, result

        estimator, result = asyncio.run(scenario())
        assert result.status is InferenceStatus.OK
        assert estimator.state is EstimatorState.DISPOSED
        assert backend.dispose_calls == 1


# ============================================================================
# Test: Synthetic Fallback
# ============================================================================

class TestSyntheticFallback:

    def _fallback_estimator(self, seed=11, clock=None):
        estimator = _estimator(FakeBackend(fail_loads=10), synthetic_seed=seed, clock=clock or FakeClock())
        asyncio.run(estimator.initialize())
        return estimator

    def test_seventeen_points_in_unit_range(self):
        estimator = self._fallback_estimator()
        result = asyncio.run(estimator.infer(make_frame()))
        assert result.status is InferenceStatus.SYNTHETIC
        assert len(result.raw) == 17
        for entry in result.raw:
            assert 0.0 <= entry["x"] <= 1.0
            assert 0.0 <= entry["y"] <= 1.0
            assert 0.0 <= entry["score"] <= 1.0
        assert len(KeypointValidator().validate(result.raw)) == 17

    def test_deterministic_for_seed(self):
        a = asyncio.run(self._fallback_estimator(seed=5).infer(make_frame()))
        b = asyncio.run(self._fallback_estimator(seed=5).infer(make_frame()))
        assert a.raw == b.raw

    def test_refreshed_every_half_second(self):
        clock = FakeClock()
        estimator = self._fallback_estimator(clock=clock)
        first = asyncio.run(estimator.infer(None))
        clock.advance(0.2)
        same = asyncio.run(estimator.infer(None))
        clock.advance(0.3)
        fresh = asyncio.run(estimator.infer(None))
        assert same.raw == first.raw
        assert fresh.raw != first.raw


# ============================================================================
# Test: Inference
# ============================================================================

class TestInference:

    def test_not_ready_before_initialize(self):
        estimator = _estimator(FakeBackend())
        result = asyncio.run(estimator.infer(make_frame()))
        assert result.status is InferenceStatus.NOT_READY
        assert result.raw == []

    @pytest.mark.parametrize("frame", [None, make_frame(40, 480), make_frame(640, 10)])
    def test_unusable_frame_is_empty(self, frame):
        backend = FakeBackend()
        estimator = _estimator(backend)

        async def scenario():
            await estimator.initialize()
            return await estimator.infer(frame)

        result = asyncio.run(scenario())
        assert result.status is InferenceStatus.EMPTY
        assert backend.estimate_calls == 0

    def test_no_pose_is_empty(self):
        estimator = _estimator(FakeBackend(pose=[]))

        async def scenario():
            await estimator.initialize()
            return await estimator.infer(make_frame())

        assert asyncio.run(scenario()).status is InferenceStatus.EMPTY

    def test_timeout_returns_empty_result(self):
        estimator = _estimator(FakeBackend(delay=1.0), timeout=0.05)

        async def scenario():
            await estimator.initialize()
            return await estimator.infer(make_frame())

        result = asyncio.run(scenario())
        assert result.status is InferenceStatus.TIMEOUT
        assert result.raw == []
        assert not estimator.in_flight

    def test_backend_error_is_failed(self):
        estimator = _estimator(FakeBackend(estimate_error=RuntimeError("graph crashed")))

        async def scenario():
            await estimator.initialize()
            return await estimator.infer(make_frame())

        result = asyncio.run(scenario())
        assert result.status is InferenceStatus.FAILED
        assert not result.usable

    def test_second_concurrent_call_is_busy(self):
        backend = FakeBackend(delay=0.05)
        estimator = _estimator(backend)

        async def scenario():
            await estimator.initialize()
            first = await estimator.infer(make_frame())
            pending = asyncio.ensure_future(estimator.infer(make_frame()))
            await asyncio.sleep(0)
            assert estimator.in_flight
            busy = await estimator.infer(make_frame())
            await pending
            return first, busy

        first, busy = asyncio.run(scenario())
        assert first.status is InferenceStatus.OK
        assert busy.status is InferenceStatus.BUSY
        assert busy.raw == first.raw
        assert backend.max_active == 1
        assert backend.estimate_calls == 2


# ============================================================================
# Test: Disposal
# ============================================================================

def test_dispose_is_idempotent():
    backend = FakeBackend()
    estimator = _estimator(backend)
    asyncio.run(estimator.initialize())
    estimator.dispose()
    estimator.dispose()
    assert estimator.state is EstimatorState.DISPOSED
    assert backend.dispose_calls == 1
    assert asyncio.run(estimator.infer(make_frame())).status is InferenceStatus.NOT_READY
