"""Bounded worker pool for deferred posts.

Deferred posts are fire-and-forget: callers submit work and return
immediately. The pool caps how many of them run at the same time.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import Any, Callable, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class DeferredPostDispatcher:
    """Runs deferred-post tasks on a bounded thread pool.

    Example:
        dispatcher = DeferredPostDispatcher(max_workers=4)
        dispatcher.submit(run_post, post, message, channel)
        dispatcher.shutdown(wait=True)
    """

    def __init__(self, max_workers: int = 8, name: str = "deferred-post"):
        """Initialize dispatcher.

        Args:
            max_workers: Max concurrently running tasks
            name: Thread name prefix
        """
        self.max_workers = max(1, max_workers)
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix=name
        )
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, fn: Callable[..., Any], *args: Any) -> Optional[Future]:
        """Schedule a task.

        Args:
            fn: Callable to run
            *args: Arguments passed to fn

        Returns:
            Future of the task, or None if the dispatcher is shut down
        """
        with self._lock:
            if self._closed:
                logger.warning(f"Dispatcher is shut down, dropping task {fn!r}")
                return None
            future = self._executor.submit(self._run, fn, args)
            self._pending.add(future)
        future.add_done_callback(self._done)
        return future

    def _run(self, fn: Callable[..., Any], args: Tuple[Any, ...]) -> None:
        try:
            fn(*args)
        except Exception as e:
            logger.error(f"Deferred task failed: {e}", exc_info=True)

    def _done(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    @property
    def pending(self) -> int:
        """Number of submitted tasks that have not finished yet."""
        with self._lock:
            return sum(1 for f in self._pending if not f.done())

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every task submitted so far has finished.

        Args:
            timeout: Max seconds to wait, None waits forever

        Returns:
            True if all tasks finished within the timeout
        """
        with self._lock:
            futures = set(self._pending)
        _, not_done = wait_futures(futures, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks and release the pool.

        Args:
            wait: Whether to block until running tasks finish
        """
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
        logger.debug("Deferred post dispatcher shut down")
