"""Modbus RTU access to the controller board over a serial port."""

from __future__ import annotations

import struct
from typing import Any, Callable

import serial
from serial.tools import list_ports

FUNC_READ_COILS = 0x01
FUNC_READ_HOLDING_REGISTERS = 0x03
FUNC_WRITE_SINGLE_COIL = 0x05
FUNC_WRITE_SINGLE_REGISTER = 0x06

MAX_READ_REGISTERS = 125
MAX_READ_BITS = 2000
RESPONSE_TIMEOUT = 3.0
SLAVE_ADDRESS = 1


class ModbusError(Exception):
    """Raised when a Modbus request cannot be completed."""


def _crc16(data: bytes) -> int:
    """Return the Modbus CRC-16 of the data."""
    crc = 0xFFFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ 0xA001
            else:
                crc >>= 1
    return crc


def port_name(com: int) -> str:
    """Return the device name for a COM port number."""
    prefix = "\\\\.\\" if com > 9 else ""
    return f"{prefix}COM{com}"


def available_ports() -> list[str]:
    """Return the names of the serial ports present on this machine."""
    return [info.name for info in list_ports.comports()]


class ModbusBackend:
    """A Modbus RTU master on one serial line, 8 data bits, no parity, 1 stop bit."""

    def __init__(
        self,
        port: str,
        baudrate: int,
        *,
        parity: str = "N",
        bytesize: int = 8,
        stopbits: int = 1,
        slave: int = SLAVE_ADDRESS,
        timeout: float = RESPONSE_TIMEOUT,
        serial_factory: Callable[..., Any] | None = None,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.parity = parity
        self.bytesize = bytesize
        self.stopbits = stopbits
        self.slave = slave
        self.timeout = timeout
        self._serial_factory = serial_factory or serial.Serial
        self._serial: Any = None

    @property
    def is_open(self) -> bool:
        return self._serial is not None

    def connect(self) -> None:
        """Open the serial line."""
        try:
            self._serial = self._serial_factory(
                port=self.port,
                baudrate=self.baudrate,
                parity=self.parity,
                bytesize=self.bytesize,
                stopbits=self.stopbits,
                timeout=self.timeout,
            )
        except (OSError, ValueError) as exc:
            self._serial = None
            raise ModbusError(f"cannot open {self.port}: {exc}") from exc

    def close(self) -> None:
        """Close the serial line if open."""
        if self._serial is not None:
            self._serial.close()
            self._serial = None

    def read_registers(self, address: int, count: int) -> list[int]:
        """Read holding registers starting at address."""
        if not 1 <= count <= MAX_READ_REGISTERS:
            raise ModbusError(f"register count out of range: {count}")
        payload = self._transact(FUNC_READ_HOLDING_REGISTERS, address, count)
        if len(payload) != 2 * count:
            raise ModbusError("unexpected register byte count")
        return list(struct.unpack(f">{count}H", payload))

    def read_bits(self, address: int, count: int) -> list[bool]:
        """Read coils starting at address."""
        if not 1 <= count <= MAX_READ_BITS:
            raise ModbusError(f"bit count out of range: {count}")
        payload = self._transact(FUNC_READ_COILS, address, count)
        if len(payload) != (count + 7) // 8:
            raise ModbusError("unexpected coil byte count")
        return [bool((payload[i // 8] >> (i % 8)) & 1) for i in range(count)]

    def write_register(self, address: int, value: int) -> None:
        """Write one holding register."""
        self._transact(FUNC_WRITE_SINGLE_REGISTER, address, value & 0xFFFF)

    def write_bit(self, address: int, value: int) -> None:
        """Write one coil; any non-zero value switches it on."""
        self._transact(FUNC_WRITE_SINGLE_COIL, address, 0xFF00 if value else 0x0000)

    def _transact(self, function: int, address: int, value: int) -> bytes:
        if self._serial is None:
            raise ModbusError("not connected")
        if not 0 <= address <= 0xFFFF:
            raise ModbusError(f"address out of range: {address}")
        body = struct.pack(">BBHH", self.slave, function, address, value)
        request = body + struct.pack("<H", _crc16(body))
        try:
            self._serial.reset_input_buffer()
            self._serial.write(request)
            header = self._read_exact(2)
            if header[1] & 0x80:
                rest = self._read_exact(3)
                self._check_crc(header + rest)
                raise ModbusError(f"device exception code {rest[0]}")
            if header[0] != self.slave or header[1] != function:
                raise ModbusError("response does not match request")
            if function in (FUNC_READ_COILS, FUNC_READ_HOLDING_REGISTERS):
                size = self._read_exact(1)
                rest = self._read_exact(size[0] + 2)
                self._check_crc(header + size + rest)
                return rest[:-2]
            rest = self._read_exact(6)
            frame = header + rest
            self._check_crc(frame)
            if frame[:6] != body:
                raise ModbusError("write echo does not match request")
            return b""
        except (OSError, serial.SerialException) as exc:
            raise ModbusError(str(exc)) from exc

    def _read_exact(self, size: int) -> bytes:
        data = bytes(self._serial.read(size))
        if len(data) != size:
            raise ModbusError("response timed out")
        return data

    @staticmethod
    def _check_crc(frame: bytes) -> None:
        if struct.unpack("<H", frame[-2:])[0] != _crc16(frame[:-2]):
            raise ModbusError("bad CRC in response")


class ModbusTool:
    """Connection manager for the controller's Modbus link."""

    def __init__(self, backend_factory: Callable[[str, int], Any] = ModbusBackend) -> None:
        self._backend_factory = backend_factory
        self._backend: Any = None
        self.com: int | None = None
        self.baud: int | None = None

    @property
    def connected(self) -> bool:
        return self._backend is not None

    def connect(self, com: int, baud: int) -> bool:
        """Open the link on COM port com; True if open afterwards."""
        if self._backend is not None:
            return True
        backend = self._backend_factory(port_name(com), baud)
        try:
            backend.connect()
        except ModbusError:
            return False
        self._backend = backend
        self.com = com
        self.baud = baud
        return True

    def disconnect(self) -> None:
        """Close the link if open."""
        if self._backend is not None:
            self._backend.close()
            self._backend = None

    def reconnect(self) -> bool:
        """Close and reopen the link with the last successful settings."""
        self.disconnect()
        if self.com is None or self.baud is None:
            return False
        return self.connect(self.com, self.baud)

    def write_register(self, address: int, value: int) -> None:
        self._require().write_register(address, value)

    def write_bit(self, address: int, value: int) -> None:
        self._require().write_bit(address, value)

    def read_registers(self, address: int, count: int) -> list[int]:
        return self._require().read_registers(address, count)

    def read_bits(self, address: int, count: int) -> list[bool]:
        return self._require().read_bits(address, count)

    def _require(self) -> Any:
        if self._backend is None:
            raise ModbusError("not connected")
        return self._backend