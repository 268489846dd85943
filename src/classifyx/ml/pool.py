"""Inference concurrency layer.

Architecture:
    FastAPI (async) -> engine slot (FIFO hand-off) -> ThreadPoolExecutor(N) -> engine.predict

The pool owns N pre-built engines. A request takes one free slot, runs its
prediction on the executor, and gives the slot back when the engine call
returns. Waiters are served strictly in arrival order: a released slot goes
straight to the oldest waiter instead of back to the free list. Requests that
wait longer than the acquisition timeout get :class:`PoolExhausted`.

All slot bookkeeping happens on the event loop thread, so it needs no lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING

import numpy as np

from classifyx.errors import ConfigurationError, InferenceError, PoolExhausted

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from classifyx.ml.engine import ClassificationEngine
    from classifyx.storage import StagedImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Slot:
    index: int
    engine: ClassificationEngine


class InferenceEnginePool:
    """Bounded, FIFO-fair access to a fixed set of inference engines."""

    def __init__(self, engines: Sequence[ClassificationEngine], *, acquire_timeout: float | None = None) -> None:
        if not engines:
            raise ConfigurationError("Engine pool needs at least one engine")

        self._slots = tuple(_Slot(index=i, engine=engine) for i, engine in enumerate(engines))
        self._free: deque[_Slot] = deque(self._slots)
        self._waiters: deque[asyncio.Future[_Slot]] = deque()
        self._acquire_timeout = acquire_timeout or None
        self._executor = ThreadPoolExecutor(
            max_workers=len(self._slots),
            thread_name_prefix="onnx-inference",
        )
        self._active_count: int = 0
        self._calls: dict[str, asyncio.Future[NDArray[np.float32]]] = {}

    async def predict(self, image: StagedImage) -> NDArray[np.float32]:
        """Score a staged image on the next free engine.

        Raises:
            PoolExhausted: If no engine frees up within the acquisition timeout.
            InferenceError: If the engine call raises.
        """
        slot = await self._acquire()
        loop = asyncio.get_running_loop()
        try:
            future = loop.run_in_executor(self._executor, slot.engine.predict, str(image.path))
        except RuntimeError as exc:
            self._release(slot)
            raise InferenceError(f"Inference pool is shut down: {exc}") from exc
        self._active_count += 1
        # The slot is returned only when the engine call itself has finished,
        # even if this coroutine is cancelled while waiting for it.
        self._calls[image.name] = future
        future.add_done_callback(partial(self._on_engine_done, slot, image.name))

        try:
            raw = await asyncio.shield(future)
        except Exception as exc:
            logger.warning("Engine %d failed on %s: %s", slot.index, image.name, exc)
            raise InferenceError(f"Inference failed: {exc}") from exc

        return np.asarray(raw, dtype=np.float32).ravel()

    def pending_call(self, image: StagedImage) -> asyncio.Future[NDArray[np.float32]] | None:
        """Return the engine call still reading *image*, if there is one."""
        future = self._calls.get(image.name)
        if future is None or future.done():
            return None
        return future

    @property
    def size(self) -> int:
        """Number of engines in the pool."""
        return len(self._slots)

    @property
    def engines(self) -> tuple[ClassificationEngine, ...]:
        return tuple(slot.engine for slot in self._slots)

    @property
    def active_count(self) -> int:
        """Number of currently running predictions."""
        return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of requests waiting for a free engine."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    def shutdown(self) -> None:
        """Shut down the thread pool executor."""
        self._executor.shutdown(wait=True)

    # -- Internal -----------------------------------------------------------

    async def _acquire(self) -> _Slot:
        if self._free and not self.queue_depth:
            return self._free.popleft()

        waiter: asyncio.Future[_Slot] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            async with asyncio.timeout(self._acquire_timeout):
                return await waiter
        except TimeoutError:
            self._abandon(waiter)
            raise PoolExhausted(f"No inference engine became free within {self._acquire_timeout}s") from None
        except BaseException:
            self._abandon(waiter)
            raise

    def _abandon(self, waiter: asyncio.Future[_Slot]) -> None:
        if waiter.done() and not waiter.cancelled():
            # A slot was handed over just as we gave up on it
            self._release(waiter.result())
        else:
            waiter.cancel()
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    def _release(self, slot: _Slot) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(slot)
                return
        self._free.append(slot)

    def _on_engine_done(self, slot: _Slot, image_name: str, future: asyncio.Future[NDArray[np.float32]]) -> None:
        self._active_count -= 1
        self._calls.pop(image_name, None)
        self._release(slot)
        if not future.cancelled() and future.exception() is not None:
            logger.debug("Engine %d finished with an error", slot.index)
