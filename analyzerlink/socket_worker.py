"""TCP worker: sends queued socket sessions to a peer on a background thread."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Iterable

from .sessions import Session
from .socket_tool import SocketTool


class SocketWorker:
    """Queues sessions and writes their payloads through a SocketTool."""

    def __init__(self, tool: Any = None) -> None:
        self.tool = tool if tool is not None else SocketTool()
        self._queue: deque[Session] = deque()
        self._cond = threading.Condition()
        self._running = False
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        """Whether the sending thread is active."""
        return self._running

    def open(self, host: str, port: int) -> bool:
        """Connect to host:port and start the sending thread.

        The thread starts even if the connection fails; the result tells
        whether the connection is up.
        """
        self._running = True
        ok = self.tool.connect(host, port)
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._loop, daemon=True)
            self._thread.start()
        return ok

    def close(self) -> bool:
        """Disconnect; the thread stops only if the disconnect succeeded."""
        ok = self.tool.disconnect()
        if ok:
            with self._cond:
                self._running = False
                self._cond.notify_all()
            thread = self._thread
            if thread is not None and thread is not threading.current_thread():
                thread.join()
            self._thread = None
        return ok

    def submit(self, session: Session) -> bool:
        """Queue one session."""
        with self._cond:
            self._queue.append(session)
            self._cond.notify()
        return True

    def submit_all(self, sessions: Iterable[Session]) -> bool:
        """Queue several sessions, keeping their order."""
        with self._cond:
            self._queue.extend(sessions)
            self._cond.notify()
        return True

    def _loop(self) -> None:
        while True:
            with self._cond:
                while not self._queue and self._running:
                    self._cond.wait()
                if not self._running:
                    return
                session = self._queue.popleft()
            self.tool.write(session.data)