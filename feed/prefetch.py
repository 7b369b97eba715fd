"""
Background generation of upcoming recommendation batches.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Optional

from feed.config import PREFETCH_WORKERS

logger = logging.getLogger(__name__)


def log_prefetch_failure(key: str, error: BaseException):
    logger.error(f"Prefetch task {key} failed: {error}")


class PrefetchScheduler:
    """
    Fire-and-forget task submission with its own failure channel

    Tasks are keyed (e.g. "user:batch"); a key already in flight is not
    submitted twice. Failures never reach the request that triggered the
    task; they are handed to on_failure instead.
    """

    def __init__(self, on_failure: Callable[[str, BaseException], None] = None,
                 max_workers: int = PREFETCH_WORKERS):
        self.on_failure = on_failure or log_prefetch_failure
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='prefetch')
        self._in_flight: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def submit(self, key: str, task: Callable[[], object]) -> Optional[Future]:
        """
        Schedule a task unless one with the same key is running

        Args:
            key: Deduplication key
            task: Zero-argument callable

        Returns:
            The scheduled future, or None when the key was already in flight
        """
        with self._lock:
            if key in self._in_flight:
                logger.debug(f"Prefetch task {key} already in flight")
                return None
            future = self.executor.submit(self._run, key, task)
            self._in_flight[key] = future

        logger.info(f"Scheduled prefetch task {key}")
        return future

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    def pending(self, key: str) -> Optional[Future]:
        """The in-flight future for key, or None."""
        with self._lock:
            return self._in_flight.get(key)

    def drain(self, timeout: float = None):
        """Wait for every in-flight task to finish."""
        with self._lock:
            futures = list(self._in_flight.values())
        if futures:
            wait(futures, timeout=timeout)

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)

    def _run(self, key: str, task: Callable[[], object]):
        try:
            return task()
        except Exception as e:
            try:
                self.on_failure(key, e)
            except Exception as handler_error:
                logger.error(f"Prefetch failure handler raised for {key}: {handler_error}")
            raise
        finally:
            with self._lock:
                self._in_flight.pop(key, None)
