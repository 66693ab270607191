# analyzerlink

Communication layer for a laboratory analyzer. It talks to the instrument's
control board over Modbus RTU, sends jobs to a serial printer, forwards data
to a host over TCP, and exchanges JSON messages with a local 4G uplink
service.

## Installation

```
pip install analyzerlink
```

For running the tests:

```
pip install "analyzerlink[test]"
pytest
```

## Modules

- `analyzerlink.sessions`: the request objects handed to the workers
  (`OpenSession`, `ReadSession`, `ReadDataSession`, `WriteBitSession`,
  `WriteDataSession`, `PrintSession`, `SocketSession`), the `Command` codes,
  the controller's register maps `BitAddress` and `DataAddress`, and the
  `ModbusState` snapshot. `Session.to_bytes()` frames a session as four
  `0xA0` bytes, the type byte, the command byte, the payload and four `0x0A`
  bytes; print and socket sessions return their payload unframed.
- `analyzerlink.modbus_tool`: `ModbusBackend` is a Modbus RTU master on one
  serial line (8N1, slave 1, 3 s response timeout) that reads and writes
  holding registers and coils. `ModbusTool` opens a COM port by number
  (`port_name(com)` gives the device name, with the `\\.\` prefix above
  COM9), reconnects with the last good settings, and raises `ModbusError`
  when used while closed. `available_ports()` lists serial ports.
- `analyzerlink.modbus_worker`: `SerialWorker` runs sessions from a queue on
  a background thread (`start()`, `stop()`, `send()`), or one at a time with
  `run_once()`. Failed reads and writes are retried ten times before the link
  is marked down; while it is down only open and reconnect sessions run and
  everything else goes back to the end of the queue. Every finished session
  is passed to the callback with its `modbus_state` and, for reads, its
  `values` as decimal strings. `ReadDataSession` reads in blocks of 100
  registers.
- `analyzerlink.print_worker`: `PrintWorker` writes queued session payloads
  to a serial port, pausing 8 s after each job in printer mode
  (`set_print_or_his(True)`) and 0.5 s otherwise. The callback is told whether
  the port opened. `open_serial_port(port, rate)` opens a COM port by number.
- `analyzerlink.socket_tool`: `SocketTool` connects to a TCP host with a
  0.3 s timeout, writes data and polls for replies without blocking.
- `analyzerlink.socket_worker`: `SocketWorker` writes queued session
  payloads through a `SocketTool` on a background thread.
- `analyzerlink.link4g`: `FourGClient` speaks JSON lines to the 4G service on
  `127.0.0.1:8181`. It registers and logs in the device, sets the clock from
  the service's time through an optional `clock_setter`, reports upload
  replies to `on_upload_finished`, saves base64 `.btc` files sent for remote
  updates, and keeps its registration and update state in `configServer.ini`.
  Incoming data is read with `poll()` or passed in with `handle_data()`.
  `parse_timestamp()` and `import_package()` are helpers for time strings and
  moving downloaded packages. `DataType`, `CommandType`, `ItemData` and
  `TestData` describe the messages.
- `analyzerlink.link4g_queue`: `UploadQueue` holds at most 100 pending
  messages (the oldest are dropped) and hands them to a sink one by one,
  pausing 0.4 s after result uploads and 0.2 s after anything else.
- `analyzerlink.runguard`: `RunGuard` uses lock files in the temporary
  directory so that only one process runs under a key. As a context manager
  it raises `AlreadyRunningError` when another instance holds the key.

## Example

```python
from analyzerlink.modbus_worker import SerialWorker
from analyzerlink.runguard import RunGuard
from analyzerlink.sessions import BitAddress, OpenSession, ReadSession, WriteBitSession


def report(session):
    print(type(session).__name__, session.modbus_state)


with RunGuard("analyzer"):
    worker = SerialWorker(callback=report)
    worker.start()
    worker.send(OpenSession(port=3, rate=115200))
    worker.send(WriteBitSession(start_address=BitAddress.SELF_TEST, value=1))
    worker.send(ReadSession(start_address=200, count=1))
    ...
    worker.stop()
```

Sending 4G messages through the paced queue:

```python
from analyzerlink.link4g import CommandType, DataType, FourGClient
from analyzerlink.link4g_queue import UploadQueue

client = FourGClient(sn="SN-EXAMPLE-0001", backup_dir="btc_backup")
client.init()
with UploadQueue(client.send) as queue:
    queue.submit({"dtype": int(DataType.GET_INFO), "cmd": int(CommandType.TIME)})
    client.poll()
```

## What this package does not do

- It has no command-line program and no user interface; it is a library to
  be driven by an application.
- It does not store test results or records anywhere; the only file it keeps
  is the 4G client's settings file, plus the `.btc` files it is sent.
- `FourGClient` does not read from the service on its own; the application
  must call `poll()` (or `handle_data()`) to process replies.
- `FourGClient.save_btc_data` counts a save as failed unless a `backup_dir`
  is given.