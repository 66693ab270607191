import pytest

from analyzerlink.sessions import (
    BitAddress,
    Command,
    DataAddress,
    ModbusState,
    OpenSession,
    PrintSession,
    ReadDataSession,
    ReadSession,
    Session,
    SocketSession,
    WriteBitSession,
    WriteDataSession,
)


def test_frame_layout():
    session = Session(session_type=1, cmd=2, data=b"\x10")
    assert session.to_bytes() == b"\xa0\xa0\xa0\xa0\x01\x02\x10\x0a\x0a\x0a\x0a"


def test_empty_frame_has_head_and_tail():
    frame = Session().to_bytes()
    assert frame[:4] == b"\xa0" * 4
    assert frame[-4:] == b"\x0a" * 4
    assert len(frame) == 10


def test_frame_contains_payload_between_command_and_tail():
    payload = b"hello"
    frame = Session(session_type=7, cmd=9, data=payload).to_bytes()
    assert frame[6:-4] == payload
    assert frame[4] == 7 and frame[5] == 9


def test_data_is_normalised_to_bytes():
    session = Session(data=bytearray(b"ab"))
    assert session.data == b"ab"
    assert isinstance(session.data, bytes)


@pytest.mark.parametrize("value", [-1, 256])
def test_out_of_range_command_rejected(value):
    with pytest.raises(ValueError):
        Session(cmd=value)


def test_out_of_range_type_rejected():
    with pytest.raises(ValueError):
        Session(session_type=300)


def test_text_payload_rejected():
    with pytest.raises(TypeError):
        Session(data="text")


def test_open_session_defaults():
    session = OpenSession(port=3, rate=115200)
    assert session.cmd == Command.OPEN
    assert session.port == 3
    assert session.rate == 115200
    assert session.opened is False
    assert session.modbus_state is True


def test_open_session_can_carry_reconnect():
    session = OpenSession(cmd=Command.RECONNECT)
    assert session.cmd == 0x06
    assert session.to_bytes()[5] == 0x06


def test_read_session_holds_results():
    session = ReadSession(start_address=DataAddress.CONTROL_STATE, count=2)
    session.values = ["1", "0"]
    assert session.cmd == Command.READ
    assert session.start_address == 200
    assert session.values == ["1", "0"]


def test_read_session_lists_are_independent():
    first = ReadSession()
    second = ReadSession()
    first.values.append("5")
    assert second.values == []


def test_read_data_session_fields():
    session = ReadDataSession(start_address=1000, count=300, test_type=1, data_type=2)
    assert session.cmd == Command.READ_DATA
    assert (session.start_address, session.count) == (1000, 300)
    assert (session.test_type, session.data_type) == (1, 2)


def test_write_bit_session():
    session = WriteBitSession(start_address=BitAddress.SELF_TEST, value=1)
    assert session.cmd == Command.WRITE_BIT
    assert session.start_address == 202
    assert session.value == 1


def test_write_data_session():
    session = WriteDataSession(start_address=DataAddress.BUFFER, value=42)
    assert session.cmd == Command.WRITE_DATA
    assert session.start_address == 215
    assert session.modbus_state is True


@pytest.mark.parametrize("cls", [ReadSession, ReadDataSession, WriteBitSession, WriteDataSession])
def test_negative_address_rejected(cls):
    with pytest.raises(ValueError):
        cls(start_address=-1)


@pytest.mark.parametrize("cls", [PrintSession, SocketSession])
def test_payload_sessions_send_raw_data(cls):
    session = cls(data=b"\x1b@report", text="report")
    assert session.to_bytes() == b"\x1b@report"
    assert session.text == "report"


def test_modbus_state_lists_independent():
    first = ModbusState()
    second = ModbusState()
    first.state_list.append("idle")
    assert second.state_list == []
    assert first.state_list == ["idle"]