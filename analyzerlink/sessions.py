"""Request sessions exchanged with the analyzer's controller, printer and network peers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

FRAME_HEAD = bytes([0xA0] * 4)
FRAME_TAIL = bytes([0x0A] * 4)


class Command(IntEnum):
    """Operation a session asks the Modbus worker to perform."""

    READ = 0x00
    WRITE_DATA = 0x01
    WRITE_BIT = 0x02
    OPEN = 0x03
    READ_DATA = 0x04
    DISCONNECT = 0x05
    RECONNECT = 0x06


class BitAddress(IntEnum):
    """Coil addresses on the controller board."""

    DEVICE_RESET = 200
    SELF_TEST = 202
    INIT = 203
    PUSH_AIR = 204
    SCAN = 205
    CLEAN_TIP = 206
    CLEAN_LENS = 207
    PRE_ACTION = 230
    STEP_TEST = 231
    SINGLE_TEST = 232


class DataAddress(IntEnum):
    """Holding-register addresses on the controller board."""

    CONTROL_STATE = 200
    ACTION_STATE = 201
    STATE = 202
    ERROR_A = 203
    ERROR_B = 204
    ERROR_C = 205
    ERROR_D = 206
    ERROR_E = 207
    ERROR_F = 208
    COVER_TEMPERATURE = 210
    PLATE_TEMPERATURE = 211
    COVER_STATE = 212
    DOOR_STATE = 213
    DEVELOPER_LIQUOR = 214
    BUFFER = 215
    RF_CARD = 216


@dataclass
class ModbusState:
    """Snapshot of the controller's reported state."""

    temperature: str = ""
    pressure_kpa: str = ""
    main_state: str = ""
    operation: str = ""
    state_list: list[str] = field(default_factory=list)


def _check_byte(name: str, value: int) -> int:
    value = int(value)
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{name} must fit in one byte, got {value}")
    return value


def _check_address(value: int) -> int:
    value = int(value)
    if value < 0:
        raise ValueError(f"start address must not be negative, got {value}")
    return value


@dataclass(kw_only=True)
class Session:
    """A framed request: type and command bytes followed by a payload."""

    session_type: int = 0
    cmd: int = 0
    data: bytes = b""

    def __post_init__(self) -> None:
        self.session_type = _check_byte("session type", self.session_type)
        self.cmd = _check_byte("command", self.cmd)
        self.data = bytes(self.data)

    def to_bytes(self) -> bytes:
        """Return the frame: four 0xA0, type, command, payload, four 0x0A."""
        return (
            FRAME_HEAD
            + bytes([self.session_type, self.cmd])
            + self.data
            + FRAME_TAIL
        )


@dataclass(kw_only=True)
class OpenSession(Session):
    """Opens, closes or reconnects the serial Modbus link."""

    cmd: int = Command.OPEN
    port: int = 0
    rate: int = 0
    opened: bool = False
    modbus_state: bool = True


@dataclass(kw_only=True)
class ReadSession(Session):
    """Reads a run of holding registers; results arrive as decimal strings."""

    cmd: int = Command.READ
    start_address: int = 0
    count: int = 0
    values: list[str] = field(default_factory=list)
    modbus_state: bool = True

    def __post_init__(self) -> None:
        super().__post_init__()
        self.start_address = _check_address(self.start_address)


@dataclass(kw_only=True)
class ReadDataSession(Session):
    """Reads a large data packet in blocks of registers."""

    cmd: int = Command.READ_DATA
    start_address: int = 0
    count: int = 0
    values: list[str] = field(default_factory=list)
    test_type: int = 0
    data_type: int = 0
    modbus_state: bool = True

    def __post_init__(self) -> None:
        super().__post_init__()
        self.start_address = _check_address(self.start_address)


@dataclass(kw_only=True)
class WriteBitSession(Session):
    """Writes one coil."""

    cmd: int = Command.WRITE_BIT
    start_address: int = 0
    value: int = 0
    modbus_state: bool = True

    def __post_init__(self) -> None:
        super().__post_init__()
        self.start_address = _check_address(self.start_address)


@dataclass(kw_only=True)
class WriteDataSession(Session):
    """Writes one holding register."""

    cmd: int = Command.WRITE_DATA
    start_address: int = 0
    value: int = 0
    modbus_state: bool = True

    def __post_init__(self) -> None:
        super().__post_init__()
        self.start_address = _check_address(self.start_address)


@dataclass(kw_only=True)
class _PayloadSession(Session):
    """A session whose wire form is its raw payload."""

    text: str = ""

    def to_bytes(self) -> bytes:
        """Return the payload unframed."""
        return self.data


@dataclass(kw_only=True)
class PrintSession(_PayloadSession):
    """A chunk of data for the serial printer."""


@dataclass(kw_only=True)
class SocketSession(_PayloadSession):
    """A chunk of data for a TCP peer."""