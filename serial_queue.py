"""Single-thread FIFO executor used for the state owner and the commit queue."""

from __future__ import annotations

import functools
import logging
import threading
from queue import Queue
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class SerialQueue:
    """Runs submitted callables one at a time, in submission order, on a worker thread."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._queue: Queue[Optional[Callable[[], Any]]] = Queue()
        self._closed = False
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._worker, name=name, daemon=True)
        self._thread.start()

    def submit(self, fn: Callable[..., Any], *args: Any) -> bool:
        with self._lock:
            if self._closed:
                logger.debug("%s is closed, dropping %r", self.name, fn)
                return False
            self._queue.put(functools.partial(fn, *args))
            return True

    def in_worker(self) -> bool:
        return threading.current_thread() is self._thread

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until every job submitted before this call has finished."""
        if self.in_worker():
            raise RuntimeError(f"{self.name}: flush() called from its own worker")
        done = threading.Event()
        if not self.submit(done.set):
            return not self._thread.is_alive()
        return done.wait(timeout)

    def close(self, timeout: Optional[float] = 1.0) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(None)
        if not self.in_worker():
            self._thread.join(timeout=timeout)

    def _worker(self) -> None:
        while True:
            job = self._queue.get()
            if job is None:
                return
            try:
                job()
            except Exception:
                logger.exception("%s: job %r failed", self.name, job)
