"""
Single-flight request coalescing.

Concurrent calls for the same key share one Future; the underlying function
runs once. Callers may stop waiting on the Future at any time and the work
still runs to completion.
"""

import logging
import threading
from concurrent.futures import Executor, Future
from typing import Any, Callable, Dict, Hashable

logger = logging.getLogger(__name__)


class SingleFlight:
    def __init__(self, executor: Executor):
        self.executor = executor
        self._inflight: Dict[Hashable, Future] = {}
        self._lock = threading.Lock()

    def do(self, key: Hashable, fn: Callable[..., Any], *args, **kwargs) -> Future:
        """Return the in-flight Future for `key`, starting `fn` if there is none."""
        with self._lock:
            future = self._inflight.get(key)
            # a finished future may linger until its done-callback runs
            if future is not None and not future.done():
                logger.debug(f"Joining in-flight request for {key}")
                return future
            future = self.executor.submit(fn, *args, **kwargs)
            self._inflight[key] = future

        future.add_done_callback(lambda f, k=key: self._forget(k, f))
        return future

    def _forget(self, key: Hashable, future: Future) -> None:
        with self._lock:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    def in_flight(self) -> int:
        with self._lock:
            return len(self._inflight)
