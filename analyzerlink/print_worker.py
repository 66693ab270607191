"""Serial printer worker: sends queued print sessions one after another."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Callable, Iterable

import serial

from .modbus_tool import port_name
from .sessions import Session

PRINT_DELAY = 8.0
HIS_DELAY = 0.5


def open_serial_port(port: int, rate: int) -> serial.Serial:
    """Open COM port number port at the given baud rate."""
    return serial.Serial(port=port_name(port), baudrate=rate, timeout=1)


class PrintWorker:
    """Writes session payloads to a serial port on a background thread.

    After each payload the worker pauses: longer for a printer, which needs
    time to print, shorter when the line feeds a hospital information system.
    """

    def __init__(
        self,
        callback: Callable[[bool], Any] | None = None,
        *,
        port_factory: Callable[[int, int], Any] = open_serial_port,
        print_delay: float = PRINT_DELAY,
        his_delay: float = HIS_DELAY,
    ) -> None:
        self.callback = callback
        self.print_or_his = False
        self.port: int | None = None
        self.rate: int | None = None
        self._port_factory = port_factory
        self._print_delay = print_delay
        self._his_delay = his_delay
        self._serial: Any = None
        self._queue: deque[Session] = deque()
        self._cond = threading.Condition()
        self._stop = threading.Event()
        self._running = False
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        """Whether the sending thread is active."""
        return self._running

    def set_callback(self, callback: Callable[[bool], Any] | None) -> None:
        """Set the function told whether the port opened."""
        self.callback = callback

    def set_print_or_his(self, print_or_his: bool) -> None:
        """True selects the printer pause, False the information-system pause."""
        self.print_or_his = bool(print_or_his)

    def open(self, port: int, rate: int) -> bool:
        """Open the port and start sending; False if the port could not be opened."""
        self.port = port
        self.rate = rate
        if self._serial is None:
            try:
                self._serial = self._port_factory(port, rate)
            except (OSError, ValueError):
                self._serial = None
        ok = self._serial is not None
        if self.callback is not None:
            self.callback(ok)
        if not ok:
            return False
        if self._thread is None or not self._thread.is_alive():
            self._running = True
            self._stop.clear()
            self._thread = threading.Thread(target=self._loop, daemon=True)
            self._thread.start()
        return True

    def close(self) -> bool:
        """Stop sending and close the port."""
        with self._cond:
            self._running = False
            self._stop.set()
            self._cond.notify_all()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None
        if self._serial is not None:
            self._serial.close()
            self._serial = None
        return True

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
            self._write(session.data)
            delay = self._print_delay if self.print_or_his else self._his_delay
            if delay > 0:
                self._stop.wait(delay)

    def _write(self, data: bytes) -> bool:
        port = self._serial
        if port is None:
            return False
        try:
            return bool(port.write(data))
        except (OSError, serial.SerialException):
            return False