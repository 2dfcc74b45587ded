"""Classifier runner: model load and inference off the event loop.

Architecture:
    route (async) -> ClassifierRunner -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> TrashClassifier

The model load is shared: concurrent callers of ``ensure_loaded`` await the
same pending load instead of queueing a second one. Calls that cannot get a
worker slot within the queue timeout raise ClassifierBusyError.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

from sortkiosk.errors import ClassifierBusyError

if TYPE_CHECKING:
    from collections.abc import Callable

    import numpy as np
    from numpy.typing import NDArray

    from sortkiosk.config import Settings
    from sortkiosk.ml.classifier import Prediction, TrashClassifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

QUEUE_TIMEOUT_SECONDS: float = 5.0


class ClassifierRunner:
    """Owns the worker threads the trash classifier runs on."""

    def __init__(self, classifier: TrashClassifier, settings: Settings) -> None:
        self._classifier = classifier
        self._slots = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="classifier",
        )
        self._pending_load: asyncio.Future[None] | None = None
        self._running = 0
        self._waiting = 0
        self._counter_lock = threading.Lock()

    @property
    def classifier(self) -> TrashClassifier:
        return self._classifier

    @property
    def is_loading(self) -> bool:
        return self._pending_load is not None

    @property
    def active_count(self) -> int:
        """Classifier calls currently running on a worker."""
        with self._counter_lock:
            return self._running

    @property
    def queue_depth(self) -> int:
        """Classifier calls waiting for a worker slot."""
        with self._counter_lock:
            return self._waiting

    async def ensure_loaded(self) -> None:
        """Load the model unless it already is, joining any load in flight.

        Raises:
            ModelLoadError: If the load fails. The next call starts a new one.
        """
        if self._classifier.is_loaded:
            return
        if self._pending_load is None:
            logger.info("Scheduling model load")
            self._pending_load = asyncio.ensure_future(self._submit(self._classifier.load))
            self._pending_load.add_done_callback(self._forget_load)
        # shield: a cancelled request must not cancel the shared load
        await asyncio.shield(self._pending_load)

    async def classify_frame(self, frame: NDArray[np.uint8]) -> list[Prediction]:
        return await self._submit(self._classifier.classify, frame)

    async def classify_file(self, data: bytes) -> list[Prediction]:
        return await self._submit(self._classifier.classify_encoded, data)

    def shutdown(self) -> None:
        """Wait for running classifier calls, then stop the worker threads."""
        self._executor.shutdown(wait=True)

    # -- Internal -----------------------------------------------------------

    def _forget_load(self, future: asyncio.Future[None]) -> None:
        if self._pending_load is future:
            self._pending_load = None

    async def _submit(self, func: Callable[..., T], *args: object) -> T:
        with self._counter_lock:
            self._waiting += 1
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=QUEUE_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.warning("No classifier worker free after %ss", QUEUE_TIMEOUT_SECONDS)
            raise ClassifierBusyError() from None
        finally:
            with self._counter_lock:
                self._waiting -= 1

        with self._counter_lock:
            self._running += 1
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)
        finally:
            self._slots.release()
            with self._counter_lock:
                self._running -= 1
