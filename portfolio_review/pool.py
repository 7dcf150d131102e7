import asyncio
import logging
from typing import Any, Awaitable, Optional

logger = logging.getLogger(__name__)


class PoolSaturated(RuntimeError):
    """No worker slot became free within the admission wait."""


class AnalysisPool:
    """
    Bounded admission for browser-backed pipelines.

    A slot is held until the submitted task has really finished, including any
    cleanup that runs after it is cancelled, so the number of live browser
    sessions never exceeds `capacity`.
    """

    def __init__(self, capacity: int, admission_wait_s: float = 0.0):
        self.capacity = max(1, int(capacity))
        self.admission_wait_s = max(0.0, float(admission_wait_s))
        self._slots = asyncio.Semaphore(self.capacity)
        self._active = 0

    @property
    def active(self) -> int:
        return self._active

    async def _acquire(self, wait_s: float) -> None:
        if wait_s <= 0:
            if self._slots.locked():
                raise PoolSaturated(f"all {self.capacity} analysis slots are busy")
            await self._slots.acquire()
            return
        acquire = asyncio.ensure_future(self._slots.acquire())
        try:
            done, _ = await asyncio.wait({acquire}, timeout=wait_s)
        except BaseException:
            self._abandon(acquire)
            raise
        if acquire not in done:
            self._abandon(acquire)
            raise PoolSaturated(f"no analysis slot free after {wait_s:.1f}s")

    def _abandon(self, acquire: "asyncio.Future[Any]") -> None:
        """Give back a permit that a timed-out acquire won, now or later."""
        if acquire.done():
            if not acquire.cancelled():
                self._slots.release()
            return
        acquire.cancel()
        acquire.add_done_callback(self._release_won_permit)

    def _release_won_permit(self, acquire: "asyncio.Future[Any]") -> None:
        if not acquire.cancelled():
            self._slots.release()

    def _release(self, task: "asyncio.Task[Any]") -> None:
        self._active -= 1
        self._slots.release()
        # Retrieve the outcome so abandoned tasks never log "exception was never retrieved"
        if not task.cancelled() and task.exception() is not None:
            logger.debug("pool.task_failed err=%s", str(task.exception())[:200])
        logger.debug("pool.released active=%d capacity=%d", self._active, self.capacity)

    async def submit(self, coro: Awaitable[Any], wait_s: Optional[float] = None) -> "asyncio.Task[Any]":
        """Wait for a slot, then start `coro` as a task that owns it."""
        try:
            await self._acquire(self.admission_wait_s if wait_s is None else wait_s)
        except BaseException:
            # The coroutine will never run; close it to avoid a "never awaited" warning
            if asyncio.iscoroutine(coro):
                coro.close()
            raise
        self._active += 1
        logger.debug("pool.acquired active=%d capacity=%d", self._active, self.capacity)
        task = asyncio.ensure_future(coro)
        task.add_done_callback(self._release)
        return task
