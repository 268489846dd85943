"""Tests for the bounded inference engine pool."""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import pytest

from classifyx.errors import ConfigurationError, InferenceError, PoolExhausted
from classifyx.ml.pool import InferenceEnginePool
from classifyx.storage import StagedImage
from fakes import ConcurrencyTracker, FakeEngine

if TYPE_CHECKING:
    from collections.abc import Iterator

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _image(name: str) -> StagedImage:
    return StagedImage(name=name, path=Path("/tmp") / name, size=1, created_at=datetime.now(UTC))


@pytest.fixture()
def pools() -> Iterator[list[InferenceEnginePool]]:
    """Collects pools created by a test and shuts them down afterwards."""
    created: list[InferenceEnginePool] = []
    yield created
    for pool in created:
        pool.shutdown()


def _make_pool(
    pools: list[InferenceEnginePool], engines: list[FakeEngine], acquire_timeout: float | None = None
) -> InferenceEnginePool:
    pool = InferenceEnginePool(engines, acquire_timeout=acquire_timeout)
    pools.append(pool)
    return pool


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestPredict:
    async def test_returns_flat_float32_vector(self, pools: list[InferenceEnginePool]) -> None:
        pool = _make_pool(pools, [FakeEngine([0.2, 0.8])])
        vector = await pool.predict(_image("a.jpg"))
        assert vector.dtype == np.float32
        assert vector.shape == (2,)

    async def test_passes_staged_path_to_engine(self, pools: list[InferenceEnginePool]) -> None:
        engine = FakeEngine()
        pool = _make_pool(pools, [engine])
        await pool.predict(_image("b.png"))
        assert engine.calls == [str(Path("/tmp") / "b.png")]

    def test_requires_at_least_one_engine(self) -> None:
        with pytest.raises(ConfigurationError):
            InferenceEnginePool([])


class TestBoundedParallelism:
    async def test_n_plus_one_requests_take_two_rounds(self, pools: list[InferenceEnginePool]) -> None:
        delay = 0.2
        pool = _make_pool(pools, [FakeEngine(delay=delay), FakeEngine(delay=delay)])

        started = time.perf_counter()
        await asyncio.gather(*(pool.predict(_image(f"{i}.jpg")) for i in range(3)))
        elapsed = time.perf_counter() - started

        assert elapsed >= 2 * delay * 0.95

    async def test_slots_run_in_parallel(self, pools: list[InferenceEnginePool]) -> None:
        delay = 0.2
        tracker = ConcurrencyTracker()
        pool = _make_pool(pools, [FakeEngine(delay=delay, tracker=tracker) for _ in range(3)])

        await asyncio.gather(*(pool.predict(_image(f"{i}.jpg")) for i in range(3)))

        assert tracker.max_running == 3

    async def test_no_slot_is_double_assigned(self, pools: list[InferenceEnginePool]) -> None:
        tracker = ConcurrencyTracker()
        engines = [FakeEngine(delay=0.02, tracker=tracker) for _ in range(2)]
        pool = _make_pool(pools, engines)

        await asyncio.gather(*(pool.predict(_image(f"{i}.jpg")) for i in range(20)))

        assert all(engine.overlaps == 0 for engine in engines)
        assert tracker.max_running <= 2
        assert sum(len(engine.calls) for engine in engines) == 20

    async def test_waiters_are_served_in_arrival_order(self, pools: list[InferenceEnginePool]) -> None:
        engine = FakeEngine(delay=0.02)
        pool = _make_pool(pools, [engine])

        tasks = []
        for i in range(6):
            tasks.append(asyncio.create_task(pool.predict(_image(f"{i}.jpg"))))
            await asyncio.sleep(0)
        await asyncio.gather(*tasks)

        assert [Path(call).name for call in engine.calls] == [f"{i}.jpg" for i in range(6)]

    async def test_counters_track_running_and_waiting(self, pools: list[InferenceEnginePool]) -> None:
        pool = _make_pool(pools, [FakeEngine(delay=0.2)])

        tasks = [asyncio.create_task(pool.predict(_image(f"{i}.jpg"))) for i in range(3)]
        await asyncio.sleep(0.05)
        assert pool.active_count == 1
        assert pool.queue_depth == 2

        await asyncio.gather(*tasks)
        assert pool.active_count == 0
        assert pool.queue_depth == 0


class TestFailures:
    async def test_engine_error_becomes_inference_error(self, pools: list[InferenceEnginePool]) -> None:
        pool = _make_pool(pools, [FakeEngine(error=ValueError("corrupt image"))])
        with pytest.raises(InferenceError, match="corrupt image"):
            await pool.predict(_image("bad.jpg"))

    async def test_failed_prediction_releases_slot(self, pools: list[InferenceEnginePool]) -> None:
        engine = FakeEngine(error=RuntimeError("model fault"))
        pool = _make_pool(pools, [engine], acquire_timeout=1.0)

        with pytest.raises(InferenceError):
            await pool.predict(_image("first.jpg"))

        engine.error = None
        vector = await pool.predict(_image("second.jpg"))
        assert vector.size == 3
        assert pool.active_count == 0

    async def test_acquire_timeout_raises_pool_exhausted(self, pools: list[InferenceEnginePool]) -> None:
        pool = _make_pool(pools, [FakeEngine(delay=0.3)], acquire_timeout=0.05)

        first = asyncio.create_task(pool.predict(_image("busy.jpg")))
        await asyncio.sleep(0.01)
        with pytest.raises(PoolExhausted):
            await pool.predict(_image("late.jpg"))
        assert pool.queue_depth == 0

        await first
        # The slot is still usable after a waiter gave up.
        await pool.predict(_image("after.jpg"))

    async def test_cancelled_request_keeps_slot_until_engine_finishes(
        self, pools: list[InferenceEnginePool]
    ) -> None:
        engine = FakeEngine(delay=0.2)
        pool = _make_pool(pools, [engine])

        doomed = asyncio.create_task(pool.predict(_image("doomed.jpg")))
        await asyncio.sleep(0.05)
        doomed.cancel()
        with pytest.raises(asyncio.CancelledError):
            await doomed

        assert pool.active_count == 1
        await pool.predict(_image("next.jpg"))

        assert engine.overlaps == 0
        assert engine.started_at[1] >= engine.finished_at[0]
        assert pool.active_count == 0

    async def test_pending_call_tracks_engine_after_cancellation(self, pools: list[InferenceEnginePool]) -> None:
        pool = _make_pool(pools, [FakeEngine(delay=0.2)])
        image = _image("doomed.jpg")

        assert pool.pending_call(image) is None
        doomed = asyncio.create_task(pool.predict(image))
        await asyncio.sleep(0.05)
        doomed.cancel()
        with pytest.raises(asyncio.CancelledError):
            await doomed

        pending = pool.pending_call(image)
        assert pending is not None
        await pending
        assert pool.pending_call(image) is None

    async def test_cancelled_waiter_does_not_leak_slot(self, pools: list[InferenceEnginePool]) -> None:
        pool = _make_pool(pools, [FakeEngine(delay=0.1)])

        running = asyncio.create_task(pool.predict(_image("running.jpg")))
        await asyncio.sleep(0.01)
        waiting = asyncio.create_task(pool.predict(_image("waiting.jpg")))
        await asyncio.sleep(0.01)
        waiting.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiting

        await running
        await asyncio.wait_for(pool.predict(_image("final.jpg")), timeout=1.0)
        assert pool.queue_depth == 0
