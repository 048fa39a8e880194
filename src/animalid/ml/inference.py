"""Blocking-work offload for the event loop.

Architecture:
    orchestrator (async) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> Pillow / ONNX / HF Hub

Image decoding, model downloads, and ONNX inference all block, so they run
here. Callers beyond the semaphore limit wait up to 5s, then get TimeoutError.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from animalid.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEMAPHORE_TIMEOUT_SECONDS: float = 5.0


class InferencePool:
    """Semaphore-bounded thread pool for blocking ML work."""

    def __init__(self, settings: Settings) -> None:
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="animalid-worker",
        )
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run a synchronous function in the pool and await its result.

        Raises:
            TimeoutError: If no worker slot frees up within the timeout.
        """
        with self._counting("_queue_depth"):
            await asyncio.wait_for(self._semaphore.acquire(), timeout=SEMAPHORE_TIMEOUT_SECONDS)

        try:
            with self._counting("_active_count"):
                loop = asyncio.get_running_loop()
                return await loop.run_in_executor(self._executor, func, *args)
        finally:
            self._semaphore.release()

    @property
    def active_count(self) -> int:
        """Number of tasks currently running in a worker."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of callers waiting for a worker slot."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Shut down the thread pool executor."""
        self._executor.shutdown(wait=True)

    @contextmanager
    def _counting(self, attr: str) -> Iterator[None]:
        with self._counter_lock:
            setattr(self, attr, getattr(self, attr) + 1)
        try:
            yield
        finally:
            with self._counter_lock:
                setattr(self, attr, getattr(self, attr) - 1)
