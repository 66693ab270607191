import struct
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import serial

from analyzerlink.modbus_tool import (
    ModbusBackend,
    ModbusError,
    ModbusTool,
    _crc16,
    available_ports,
    port_name,
)


class FakeDevice:
    def __init__(self, registers=None, coils=None, exception=False):
        self.registers = dict(registers or {})
        self.coils = dict(coils or {})
        self.exception = exception
        self.written = []
        self.kwargs = None
        self.is_open = True
        self._out = bytearray()

    def write(self, data):
        data = bytes(data)
        self.written.append(data)
        self._out += self._respond(data)
        return len(data)

    def read(self, size):
        chunk = bytes(self._out[:size])
        del self._out[:size]
        return chunk

    def reset_input_buffer(self):
        self._out.clear()

    def close(self):
        self.is_open = False

    def _respond(self, frame):
        slave, function = frame[0], frame[1]
        address, value = struct.unpack(">HH", frame[2:6])
        if self.exception:
            body = bytes([slave, function | 0x80, 2])
        elif function == 3:
            regs = b"".join(
                struct.pack(">H", self.registers.get(address + i, 0)) for i in range(value)
            )
            body = bytes([slave, 3, len(regs)]) + regs
        elif function == 1:
            packed = bytearray((value + 7) // 8)
            for i in range(value):
                if self.coils.get(address + i):
                    packed[i // 8] |= 1 << (i % 8)
            body = bytes([slave, 1, len(packed)]) + bytes(packed)
        elif function == 6:
            self.registers[address] = value
            body = frame[:6]
        else:
            self.coils[address] = value == 0xFF00
            body = frame[:6]
        return body + struct.pack("<H", _crc16(body))


def make_backend(device):
    def factory(**kwargs):
        device.kwargs = kwargs
        return device

    return ModbusBackend("COM1", 9600, serial_factory=factory)


def test_crc16_check_value():
    assert _crc16(b"123456789") == 0x4B37


def test_port_name_short_and_long():
    assert port_name(3) == "COM3"
    assert port_name(12) == "\\\\.\\COM12"


def test_available_ports_lists_names():
    ports = [SimpleNamespace(name="COM1"), SimpleNamespace(name="ttyUSB0")]
    with patch("serial.tools.list_ports.comports", return_value=ports):
        assert available_ports() == ["COM1", "ttyUSB0"]


def test_read_request_frame_is_standard_rtu():
    device = FakeDevice(registers={0: 7})
    backend = make_backend(device)
    backend.connect()
    assert backend.read_registers(0, 1) == [7]
    assert device.written[0] == bytes.fromhex("010300000001840A")


def test_connect_uses_8n1_and_timeout():
    device = FakeDevice()
    backend = make_backend(device)
    backend.connect()
    assert device.kwargs["parity"] == "N"
    assert device.kwargs["bytesize"] == 8
    assert device.kwargs["stopbits"] == 1
    assert device.kwargs["baudrate"] == 9600
    assert device.kwargs["port"] == "COM1"


def test_write_register_round_trip():
    device = FakeDevice()
    backend = make_backend(device)
    backend.connect()
    backend.write_register(210, 0x1234)
    assert backend.read_registers(210, 1) == [0x1234]


def test_write_register_truncates_to_16_bits():
    device = FakeDevice()
    backend = make_backend(device)
    backend.connect()
    backend.write_register(5, 0x12345)
    assert device.registers[5] == 0x2345


def test_write_bit_round_trip():
    device = FakeDevice()
    backend = make_backend(device)
    backend.connect()
    backend.write_bit(202, 1)
    backend.write_bit(203, 0)
    assert backend.read_bits(202, 2) == [True, False]


def test_read_bits_spanning_bytes():
    coils = {100 + i: i % 3 == 0 for i in range(10)}
    device = FakeDevice(coils=coils)
    backend = make_backend(device)
    backend.connect()
    assert backend.read_bits(100, 10) == [coils[100 + i] for i in range(10)]


def test_device_exception_raises():
    device = FakeDevice(exception=True)
    backend = make_backend(device)
    backend.connect()
    with pytest.raises(ModbusError):
        backend.read_registers(0, 1)


def test_register_count_limit():
    backend = make_backend(FakeDevice())
    backend.connect()
    with pytest.raises(ModbusError):
        backend.read_registers(0, 126)
    with pytest.raises(ModbusError):
        backend.read_registers(0, 0)


def test_backend_not_connected_raises():
    backend = ModbusBackend("COM1", 9600)
    with pytest.raises(ModbusError):
        backend.read_registers(0, 1)


def test_tool_connect_and_read():
    device = FakeDevice(registers={200: 3})
    names = []

    def factory(name, baud):
        names.append((name, baud))
        return make_backend(device)

    tool = ModbusTool(factory)
    assert tool.connect(4, 115200) is True
    assert tool.connected is True
    assert names == [("COM4", 115200)]
    assert tool.read_registers(200, 1) == [3]


def test_tool_connect_twice_keeps_existing_link():
    calls = []

    def factory(name, baud):
        calls.append(name)
        return make_backend(FakeDevice())

    tool = ModbusTool(factory)
    assert tool.connect(1, 9600)
    assert tool.connect(2, 9600)
    assert calls == ["COM1"]


def test_tool_connect_failure():
    def failing(**kwargs):
        raise serial.SerialException("no such port")

    tool = ModbusTool(lambda name, baud: ModbusBackend(name, baud, serial_factory=failing))
    assert tool.connect(1, 9600) is False
    assert tool.connected is False
    with pytest.raises(ModbusError):
        tool.read_registers(0, 1)


def test_tool_disconnect_and_reconnect():
    devices = []

    def factory(name, baud):
        device = FakeDevice()
        devices.append(device)
        return make_backend(device)

    tool = ModbusTool(factory)
    tool.connect(1, 9600)
    assert tool.reconnect() is True
    assert len(devices) == 2
    assert devices[0].is_open is False
    tool.disconnect()
    assert tool.connected is False


def test_tool_reconnect_without_prior_connect():
    tool = ModbusTool(lambda name, baud: make_backend(FakeDevice()))
    assert tool.reconnect() is False


def test_tool_write_bit_without_connection():
    tool = ModbusTool()
    with pytest.raises(ModbusError):
        tool.write_bit(202, 1)