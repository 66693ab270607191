"""Plain TCP client used to push data to a network peer."""

from __future__ import annotations

import select
import socket

CONNECT_TIMEOUT = 0.3
READ_CHUNK = 4096


class SocketTool:
    """A TCP connection that can be opened, written to and polled for replies."""

    def __init__(self, connect_timeout: float = CONNECT_TIMEOUT) -> None:
        self.connect_timeout = connect_timeout
        self.connected = False
        self.error = ""
        self.last_response = b""
        self._sock: socket.socket | None = None

    def connect(self, host: str, port: int) -> bool:
        """Drop any current connection and connect to host:port."""
        self._close_socket()
        try:
            sock = socket.create_connection((host, int(port)), timeout=self.connect_timeout)
        except OSError as exc:
            self.error = str(exc) or exc.__class__.__name__
            self.connected = False
            return False
        sock.settimeout(None)
        self._sock = sock
        self.connected = True
        self.error = ""
        return True

    def disconnect(self) -> bool:
        """Close the connection."""
        self._close_socket()
        self.connected = False
        return True

    def write(self, data: bytes) -> bool:
        """Send all of data; False if not connected or the send failed."""
        if not self.connected or self._sock is None:
            return False
        try:
            self._sock.sendall(bytes(data))
        except OSError as exc:
            self.error = str(exc) or exc.__class__.__name__
            return False
        return True

    def read_available(self) -> bytes:
        """Return whatever the peer has sent so far, without blocking.

        A closed peer disconnects this tool.
        """
        sock = self._sock
        if sock is None:
            return b""
        chunks: list[bytes] = []
        while True:
            readable, _, _ = select.select([sock], [], [], 0)
            if not readable:
                break
            try:
                chunk = sock.recv(READ_CHUNK)
            except OSError:
                self.disconnect()
                break
            if not chunk:
                self.disconnect()
                break
            chunks.append(chunk)
        data = b"".join(chunks)
        if data:
            self.last_response = data
        return data

    def _close_socket(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            finally:
                self._sock = None