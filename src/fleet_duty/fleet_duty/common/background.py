from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from ..core.constants import DEFAULT_NOTIFICATION_QUEUE_LIMIT, DEFAULT_NOTIFICATION_WORKERS

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Bounded fire-and-forget executor.

    Tasks run at most once. When ``max_pending`` tasks are already queued or
    running, new submissions are dropped and logged. Failures are logged and
    counted, never raised to the submitter.
    """

    def __init__(
        self,
        *,
        max_workers: int = DEFAULT_NOTIFICATION_WORKERS,
        max_pending: int = DEFAULT_NOTIFICATION_QUEUE_LIMIT,
        name: str = "background",
    ):
        self._name = name
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._slots = threading.BoundedSemaphore(max_pending)
        self._stats_lock = threading.Lock()
        self.failed = 0
        self.dropped = 0

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
        if not self._slots.acquire(blocking=False):
            with self._stats_lock:
                self.dropped += 1
            logger.warning("%s runner saturated; dropping task %s", self._name, getattr(fn, "__name__", fn))
            return None
        try:
            return self._executor.submit(self._run, fn, args, kwargs)
        except RuntimeError:
            self._slots.release()
            with self._stats_lock:
                self.dropped += 1
            logger.error("%s runner is shut down; dropping task %s", self._name, getattr(fn, "__name__", fn))
            return None

    def _run(self, fn: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
        try:
            return fn(*args, **kwargs)
        except Exception:
            with self._stats_lock:
                self.failed += 1
            logger.exception("%s task %s failed", self._name, getattr(fn, "__name__", fn))
            return None
        finally:
            self._slots.release()

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
