"""Worker pool for the blocking steps of the pipeline.

Architecture:
    pipeline (async) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> decode / segment / detect / render

Callers beyond the semaphore limit wait up to ``queue_timeout`` seconds, then
get ``PoolBusyError`` (mapped to 503 by the API).
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from passportstudio.errors import PoolBusyError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from passportstudio.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PoolStats:
    active: int
    waiting: int


class InferencePool:
    """Bounds how many CPU-heavy pipeline steps run at once."""

    def __init__(self, settings: Settings) -> None:
        self._queue_timeout = settings.queue_timeout
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="pipeline-worker",
        )
        self._stats_lock = threading.Lock()
        self._active = 0
        self._waiting = 0

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run a synchronous function on the worker pool.

        Raises:
            PoolBusyError: If no worker slot frees up within the queue timeout.
        """
        async with self._slot():
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)

    @asynccontextmanager
    async def _slot(self) -> AsyncIterator[None]:
        self._adjust(waiting=1)
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self._queue_timeout)
        except TimeoutError:
            logger.warning("No worker slot available after %.1fs", self._queue_timeout)
            raise PoolBusyError(f"No worker slot available after {self._queue_timeout:.1f}s") from None
        finally:
            self._adjust(waiting=-1)

        self._adjust(active=1)
        try:
            yield
        finally:
            self._semaphore.release()
            self._adjust(active=-1)

    def _adjust(self, active: int = 0, waiting: int = 0) -> None:
        with self._stats_lock:
            self._active += active
            self._waiting += waiting

    def stats(self) -> PoolStats:
        with self._stats_lock:
            return PoolStats(active=self._active, waiting=self._waiting)

    @property
    def active_count(self) -> int:
        """Number of steps currently running."""
        return self.stats().active

    @property
    def queue_depth(self) -> int:
        """Number of steps waiting for a worker slot."""
        return self.stats().waiting

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
