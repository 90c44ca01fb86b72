"""Background job queue with a single consumer thread."""

import asyncio
import inspect
import logging
import queue
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# Sentinel that tells the consumer thread to exit
_STOP = object()


class BackgroundWorker:
    """Runs submitted jobs one at a time off the caller's thread.

    Lifecycle:
        start() -> consuming jobs
        stop()  -> drains already queued jobs, then exits

    Jobs may be plain callables or coroutine functions; coroutines are run
    to completion on a private event loop.
    """

    def __init__(self, name: str = "background-worker"):
        self.name = name
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        with self._lock:
            if self.is_running:
                return
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()
            logger.info(f"{self.name} started")

    def stop(self, timeout: Optional[float] = 10.0):
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._queue.put(_STOP)
        thread.join(timeout)
        with self._lock:
            self._thread = None
        logger.info(f"{self.name} stopped")

    def submit(self, job: Callable[..., Any], *args, **kwargs):
        """Queue a job and return immediately. Starts the worker if needed."""
        self._queue.put((job, args, kwargs))
        if not self.is_running:
            self.start()

    def join(self):
        """Block until every queued job has been processed."""
        self._queue.join()

    def _run(self):
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                job, args, kwargs = item
                self._execute(job, args, kwargs)
            finally:
                self._queue.task_done()

    @staticmethod
    def _execute(job: Callable[..., Any], args: tuple, kwargs: dict):
        name = getattr(job, "__qualname__", repr(job))
        try:
            if inspect.iscoroutinefunction(job):
                asyncio.run(job(*args, **kwargs))
            else:
                result = job(*args, **kwargs)
                if inspect.iscoroutine(result):
                    asyncio.run(result)
        except Exception as e:
            logger.exception(f"Background job {name} failed: {e}")


# Global instance
background_worker = BackgroundWorker()
