"""Background worker that runs Modbus sessions in order and reports each result."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Callable

from .modbus_tool import ModbusError, ModbusTool
from .sessions import (
    Command,
    OpenSession,
    ReadDataSession,
    ReadSession,
    Session,
    WriteBitSession,
    WriteDataSession,
)

RETRIES = 10
BLOCK_SIZE = 100
DEFAULT_DELAY = 0.02


class SerialWorker:
    """Queues sessions and executes them against a Modbus link on a worker thread."""

    def __init__(
        self,
        callback: Callable[[Session], Any] | None = None,
        tool: Any = None,
        *,
        delay: float = DEFAULT_DELAY,
    ) -> None:
        self.callback = callback
        self.tool = tool if tool is not None else ModbusTool()
        self._delay = delay
        self._queue: deque[Session] = deque()
        self._cond = threading.Condition()
        self._running = False
        self._thread: threading.Thread | None = None
        self._modbus_state = False
        self._handlers = {
            Command.READ: self._read,
            Command.WRITE_DATA: self._write_data,
            Command.WRITE_BIT: self._write_bit,
            Command.OPEN: self._open,
            Command.READ_DATA: self._read_data,
            Command.DISCONNECT: self._disconnect,
            Command.RECONNECT: self._reconnect,
        }

    @property
    def connected(self) -> bool:
        """Whether the worker believes the link is up."""
        return self._modbus_state

    @property
    def pending(self) -> int:
        with self._cond:
            return len(self._queue)

    def start(self) -> None:
        """Start the worker thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._running = True
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the worker thread and wait for it."""
        with self._cond:
            self._running = False
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def send(self, session: Session) -> bool:
        """Queue a session for execution."""
        with self._cond:
            self._queue.append(session)
            self._cond.notify()
        return True

    def open(self, port: int, rate: int) -> bool:
        """Open the link directly, without going through the queue."""
        return self.tool.connect(port, rate)

    def run_once(self) -> bool:
        """Process the next queued session; False if the queue was empty."""
        with self._cond:
            if not self._queue:
                return False
            session = self._queue.popleft()
        self.process(session)
        return True

    def process(self, session: Session) -> None:
        """Execute one session and report it through the callback.

        While the link is down only open and reconnect requests run; any other
        session goes back to the end of the queue.
        """
        if not self._modbus_state:
            if session.cmd not in (Command.OPEN, Command.RECONNECT):
                self.send(session)
            if session.cmd == Command.OPEN:
                self._open(session)
            elif session.cmd == Command.RECONNECT:
                self._reconnect(session)
        else:
            handler = self._handlers.get(session.cmd)
            if handler is not None:
                handler(session)
        self._pause()

    def _loop(self) -> None:
        while True:
            with self._cond:
                while not self._queue and self._running:
                    self._cond.wait()
                if not self._running:
                    return
                session = self._queue.popleft()
            self.process(session)

    def _pause(self) -> None:
        if self._delay > 0:
            time.sleep(self._delay)

    def _emit(self, session: Session) -> None:
        if self.callback is not None:
            self.callback(session)

    def _read(self, session: ReadSession) -> None:
        values: list[str] = []
        if self._modbus_state:
            for _ in range(RETRIES + 1):
                try:
                    registers = self.tool.read_registers(session.start_address, session.count)
                except ModbusError:
                    registers = None
                self._pause()
                if registers is not None:
                    values = [str(v) for v in registers]
                    break
            else:
                self._modbus_state = False
        session.modbus_state = self._modbus_state
        session.values = values
        self._emit(session)

    def _write(self, session: Any, write: Callable[[int, int], Any]) -> None:
        if self._modbus_state:
            for _ in range(RETRIES + 1):
                try:
                    write(session.start_address, session.value)
                except ModbusError:
                    self._pause()
                    continue
                self._pause()
                break
            else:
                self._modbus_state = False
        session.modbus_state = self._modbus_state
        self._emit(session)

    def _write_data(self, session: WriteDataSession) -> None:
        self._write(session, self.tool.write_register)

    def _write_bit(self, session: WriteBitSession) -> None:
        self._write(session, self.tool.write_bit)

    def _open(self, session: OpenSession) -> None:
        ok = self.tool.connect(session.port, session.rate)
        self._modbus_state = ok
        session.opened = ok
        session.modbus_state = ok
        self._emit(session)

    def _read_data(self, session: ReadDataSession) -> None:
        values: list[str] = []
        if self._modbus_state:
            for offset in range(0, session.count, BLOCK_SIZE):
                try:
                    registers = self.tool.read_registers(
                        session.start_address + offset, BLOCK_SIZE
                    )
                except ModbusError:
                    break
                values.extend(str(v) for v in registers)
                self._pause()
        session.modbus_state = self._modbus_state
        session.values = values
        self._emit(session)

    def _disconnect(self, session: OpenSession) -> None:
        self.tool.disconnect()
        self._modbus_state = False
        session.modbus_state = False
        self._emit(session)
        self._pause()

    def _reconnect(self, session: OpenSession) -> None:
        self._modbus_state = self.tool.reconnect()
        session.modbus_state = self._modbus_state
        self._emit(session)
        self._pause()