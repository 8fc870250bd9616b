"""Fire-and-forget runner for post-resolution side effects.

Chain mirroring and narrative generation run here, after a round is durably
RESOLVED. Nothing on the submission path waits for them; failures are
retried a bounded number of times, then logged and dropped.
"""

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """Thread-pool backed task runner with per-task retry and log-and-drop."""

    def __init__(self, max_workers: int = 4, retries: int = 1, backoff_s: float = 0.5) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="rumorsim-bg")
        self._retries = max(0, retries)
        self._backoff_s = backoff_s
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, label: str, fn: Callable[..., Any], *args: Any) -> Future | None:
        """Schedule ``fn(*args)``; coroutine results are run to completion on the worker."""

        with self._lock:
            if self._closed:
                logger.warning("dispatcher closed, dropping task=%s", label)
                return None
            future = self._executor.submit(self._run, label, fn, args)
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _run(self, label: str, fn: Callable[..., Any], args: tuple[Any, ...]) -> Any:
        attempts = self._retries + 1
        for attempt in range(attempts):
            try:
                result = fn(*args)
                if asyncio.iscoroutine(result):
                    result = asyncio.run(result)
                return result
            except Exception as exc:
                logger.warning(
                    "background task failed task=%s attempt=%s/%s reason=%s: %s",
                    label,
                    attempt + 1,
                    attempts,
                    type(exc).__name__,
                    str(exc)[:160],
                )
                if attempt < attempts - 1:
                    time.sleep(min(4.0, self._backoff_s * (2**attempt)))
        return None

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def drain(self, timeout: float | None = None) -> None:
        """Block until every task scheduled so far has finished (tests, shutdown)."""

        while True:
            with self._lock:
                pending = list(self._pending)
            if not pending:
                return
            _, not_done = wait(pending, timeout=timeout)
            if not_done:
                return

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=True)
