"""Background queue that hands messages to the 4G link one at a time, paced."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Callable

from .link4g import DataType

MAX_PENDING = 100
DEFAULT_DELAY = 0.2
RESULT_DELAY = 0.4


class UploadQueue:
    """Keeps up to max_pending messages and passes them to sink on a worker thread.

    When more messages arrive than fit, the oldest are dropped. Empty
    messages are skipped. After each message the worker pauses: longer
    after a result upload, shorter after anything else.
    """

    def __init__(
        self,
        sink: Callable[[dict[str, Any]], Any],
        *,
        max_pending: int = MAX_PENDING,
        delay: float = DEFAULT_DELAY,
        result_delay: float = RESULT_DELAY,
    ) -> None:
        if max_pending < 1:
            raise ValueError(f"max_pending must be at least 1, got {max_pending}")
        self.sink = sink
        self.max_pending = max_pending
        self._delay = delay
        self._result_delay = result_delay
        self._queue: deque[dict[str, Any]] = deque()
        self._cond = threading.Condition()
        self._stop = threading.Event()
        self._running = True
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    @property
    def running(self) -> bool:
        """Whether the worker thread is still active."""
        return self._thread.is_alive()

    @property
    def pending(self) -> int:
        """Number of messages waiting to be sent."""
        with self._cond:
            return len(self._queue)

    def submit(self, message: dict[str, Any]) -> bool:
        """Queue a message, dropping the oldest beyond the limit."""
        with self._cond:
            self._queue.append(dict(message))
            while len(self._queue) > self.max_pending:
                self._queue.popleft()
            self._cond.notify()
        return True

    def close(self) -> None:
        """Stop the worker and wait for it; unsent messages are discarded."""
        with self._cond:
            self._running = False
            self._stop.set()
            self._cond.notify_all()
        if self._thread is not threading.current_thread():
            self._thread.join()

    def __enter__(self) -> UploadQueue:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _loop(self) -> None:
        while True:
            with self._cond:
                while not self._queue and self._running:
                    self._cond.wait()
                if not self._running:
                    return
                message = self._queue.popleft()
            if not message:
                continue
            self.sink(message)
            pause = self._result_delay if message.get("dtype") == DataType.RESULT else self._delay
            if pause > 0:
                self._stop.wait(pause)