"""Client for the local 4G link daemon: registration, login, uploads and remote updates."""

from __future__ import annotations

import base64
import configparser
import json
import logging
import re
import select
import shutil
import socket
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)

HOST_4G = "127.0.0.1"
PORT_4G = 8181
CONNECT_TIMEOUT = 0.3
REPLY_DELAY = 0.2
SETTINGS_FILE = "configServer.ini"
SETTINGS_GROUP = "BtServer"
DEVICE_NAME = "FLI-1200"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
UPDATE_DIR = "upadteApk"
READ_CHUNK = 4096


class DataType(IntEnum):
    """Kind of message exchanged with the 4G daemon."""

    GET_INFO = 0
    REGIST = 1
    LOGIN = 2
    LOGOUT = -2
    STATUS = 3
    RESULT = 4
    QC = 5
    ERROR = 6
    SD = 101
    SOFT = 102


class CommandType(IntEnum):
    """Information requests carried by GET_INFO messages."""

    LOCATION = 1
    IMEI = 2
    SIGNAL_QUALITY = 3
    TIME = 4
    SOFT_PATH = 5


@dataclass
class ItemData:
    """One measured item of a test result."""

    item_name: str = ""
    detect_range: str = ""
    refer_range: str = ""
    result: str = ""
    result_unit: str = ""


@dataclass
class TestData:
    """A test result as uploaded to the platform.

    sex: 1 male, 2 female, 3 other. card_type: 1 single, 2 double, 3 triple.
    sample_type: 1001 whole blood, 1002 serum, 1003 plasma, 1004 urine,
    1005 jaundice, 1006 haemolysis, 1007 lipaemia, 1008 control, 1009 other.
    """

    project_name: str = ""
    sample_id: str = ""
    resource_id: str = ""
    name: str = ""
    sex: int = 0
    age: str = ""
    detect_time: str = ""
    card_type: int = 0
    batch: str = ""
    sample_type: int = 0
    item_data: list[ItemData] = field(default_factory=list)


def parse_timestamp(text: str) -> int:
    """Return the local-time epoch seconds of a 'yyyy-MM-dd HH:mm:ss' string."""
    return int(datetime.strptime(text, TIME_FORMAT).timestamp())


def import_package(new_file: str | Path, old_file: str | Path) -> bool:
    """Move old_file to new_file, replacing new_file if present."""
    new_path = Path(new_file)
    old_path = Path(old_file)
    if not old_path.exists():
        logger.debug("package %s does not exist", old_path)
        return False
    try:
        if new_path.exists():
            new_path.unlink()
        shutil.copyfile(old_path, new_path)
        old_path.unlink()
    except OSError as exc:
        logger.debug("package import failed: %s", exc)
        return False
    return True


def _default_connector(host: str, port: int, timeout: float) -> socket.socket:
    sock = socket.create_connection((host, port), timeout=timeout)
    sock.settimeout(None)
    return sock


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return 0


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _str_to_int(text: str) -> int:
    try:
        return int(text.strip())
    except ValueError:
        return 0


def _decode_base64(text: str) -> bytes:
    cleaned = re.sub(r"[^A-Za-z0-9+/]", "", text)
    remainder = len(cleaned) % 4
    if remainder == 1:
        cleaned = cleaned[:-1]
    elif remainder:
        cleaned += "=" * (4 - remainder)
    return base64.b64decode(cleaned)


def _replace_file(path: Path, payload: bytes) -> bool:
    try:
        if path.exists():
            path.unlink()
        path.write_bytes(payload)
    except OSError as exc:
        logger.debug("cannot write %s: %s", path, exc)
        return False
    return True


class FourGClient:
    """Talks JSON lines to the 4G daemon and keeps registration state in an INI file."""

    def __init__(
        self,
        sn: str = "",
        *,
        settings_path: str | Path = SETTINGS_FILE,
        btc_dir: str | Path = "btc",
        backup_dir: str | Path | None = None,
        soft_version: str = "",
        old_version: str = "",
        app_name: str | None = None,
        app_dir: str | Path | None = None,
        host: str = HOST_4G,
        port: int = PORT_4G,
        connector: Callable[[str, int, float], Any] | None = None,
        clock_setter: Callable[[datetime], Any] | None = None,
        on_upload_finished: Callable[[int], Any] | None = None,
        on_state: Callable[[bool], Any] | None = None,
        reply_delay: float = REPLY_DELAY,
    ) -> None:
        self.sn = sn
        self.settings_path = Path(settings_path)
        self.btc_dir = Path(btc_dir)
        self.backup_dir = Path(backup_dir) if backup_dir is not None else None
        self.soft_version = soft_version
        self.old_version = old_version
        executable = Path(sys.argv[0]) if sys.argv and sys.argv[0] else Path("app")
        self.app_dir = Path(app_dir) if app_dir is not None else executable.resolve().parent
        self.host = host
        self.port = port
        self._connector = connector or _default_connector
        self.clock_setter = clock_setter
        self.on_upload_finished = on_upload_finished
        self.on_state = on_state
        self.reply_delay = reply_delay

        self.connected = False
        self.registered = False
        self.update_pending = False
        self.soft_retain = ""
        self.logged_in = False
        self.time: datetime | None = None
        self.last_resource_id = ""
        self.shard_nums: list[int] = []
        self._sock: Any = None

        name = app_name if app_name is not None else executable.stem
        self._store_setting("appName", name)

    def init(self) -> bool:
        """Connect to the daemon and load the saved registration state."""
        self.connected = self._connect()
        self.registered = self.registered or self._setting("registered_state") == "1"
        self.update_pending = self.update_pending or self._setting("update_state") == "1"
        self.soft_retain = self._setting("softRetain")
        logger.debug("4g connected: %s", self.connected)
        return self.connected

    def retry_connect(self) -> None:
        """Try once more to connect to the daemon."""
        self._close_socket()
        self.connected = self._connect()
        logger.debug("4g reconnect, connected: %s", self.connected)

    def send(self, message: dict[str, Any]) -> bool:
        """Send one message as a compact JSON line; reconnect once if needed."""
        if not self.connected:
            self.retry_connect()
        if not self.connected:
            return False
        text = json.dumps(message, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        payload = (text + "\r\n").encode("utf-8")
        logger.debug("4g write: %s", text)
        if self._write(payload):
            return True
        self.retry_connect()
        return self.connected and self._write(payload)

    def poll(self) -> None:
        """Read whatever the daemon has sent and handle it, without blocking."""
        sock = self._sock
        if sock is None:
            return
        chunks: list[bytes] = []
        while True:
            readable, _, _ = select.select([sock], [], [], 0)
            if not readable:
                break
            try:
                chunk = sock.recv(READ_CHUNK)
            except OSError:
                self.on_disconnect()
                break
            if not chunk:
                self.on_disconnect()
                break
            chunks.append(chunk)
        if chunks:
            self.handle_data(b"".join(chunks))

    def handle_data(self, data: bytes | str) -> None:
        """Act on one JSON message received from the daemon."""
        try:
            obj = json.loads(data)
        except (ValueError, UnicodeDecodeError):
            logger.debug("unparsable 4g data: %r", data)
            return
        if not isinstance(obj, dict):
            logger.debug("4g data is not an object: %r", data)
            return
        dtype = _as_int(obj.get("dtype"))
        status = _as_int(obj.get("status"))
        if dtype == DataType.GET_INFO:
            self._handle_info(obj)
        elif dtype == DataType.REGIST:
            self._handle_regist(status)
        elif dtype == DataType.LOGIN:
            self._handle_login(status)
        elif dtype == DataType.RESULT:
            self._handle_result(obj, status)
        elif dtype == DataType.SD:
            self._handle_sd(obj)
        elif dtype == DataType.SOFT:
            self._store_setting("softRetain", _as_str(obj.get("retain")))

    def save_btc_data(self, name: str, data: str) -> bool:
        """Write base64 data as <name>.btc into the btc directory and the backup directory.

        Returns True only when both copies were written; without a backup
        directory the save counts as failed.
        """
        if not name or not data:
            return False
        try:
            payload = _decode_base64(data)
        except ValueError:
            return False
        if not _replace_file(self.btc_dir / f"{name}.btc", payload):
            return False
        if self.backup_dir is None:
            return False
        return _replace_file(self.backup_dir / f"{name}.btc", payload)

    def on_disconnect(self) -> None:
        """Drop the connection after the daemon went away."""
        self._close_socket()
        self.connected = False

    def _handle_info(self, obj: dict[str, Any]) -> None:
        cmd = _as_int(obj.get("cmd"))
        if cmd == CommandType.TIME:
            stime = _as_str(obj.get("stime"))
            try:
                moment = datetime.fromtimestamp(parse_timestamp(stime))
            except (ValueError, OverflowError, OSError):
                logger.debug("bad 4g time: %r", stime)
            else:
                if self.clock_setter is not None:
                    self.clock_setter(moment)
                self.time = moment
            message: dict[str, Any] = {"sn": self.sn}
            if self.reply_delay > 0:
                time.sleep(self.reply_delay)
            if not self.registered:
                message.update(
                    dtype=int(DataType.REGIST),
                    bindTime=stime,
                    softVersion=self.soft_version,
                    devName=DEVICE_NAME,
                )
                self.send(message)
            elif not self.logged_in:
                message.update(dtype=int(DataType.LOGIN), connTime=stime, login=1)
                self.send(message)
        elif cmd == CommandType.SOFT_PATH:
            if self.update_pending:
                self.send(
                    {
                        "sn": self.sn,
                        "dtype": int(DataType.SOFT),
                        "oldVersion": self.old_version,
                        "newVersion": self.soft_version,
                        "retain": self.soft_retain,
                        "process": 100,
                    }
                )
                self._store_setting("update_state", "0")
        elif cmd == CommandType.IMEI:
            logger.debug("imei: %s", _as_str(obj.get("simei")))

    def _handle_regist(self, status: int) -> None:
        if status in (0, 1):
            self.registered = True
            self.logged_in = True
            self._store_setting("registered_state", "1")
            self.send({"dtype": int(DataType.GET_INFO), "cmd": int(CommandType.TIME)})
        else:
            self.registered = False

    def _handle_login(self, status: int) -> None:
        if status == 1:
            self.logged_in = True
            path = f"{self.app_dir.as_posix()}/{UPDATE_DIR}/"
            self.send(
                {
                    "dtype": int(DataType.GET_INFO),
                    "cmd": int(CommandType.SOFT_PATH),
                    "path": path,
                }
            )
            if self.on_state is not None:
                self.on_state(True)
        else:
            self.logged_in = False
            self._store_setting("registered_state", "0")
            if self.on_state is not None:
                self.on_state(False)

    def _handle_result(self, obj: dict[str, Any], status: int) -> None:
        resource_id = _str_to_int(_as_str(obj.get("resourceId")))
        shard = _as_int(obj.get("shardNum"))
        logger.debug("upload reply: serial %s shard %s status %s", resource_id, shard, status)
        if status == 1 and self.on_upload_finished is not None:
            self.on_upload_finished(resource_id)

    def _handle_sd(self, obj: dict[str, Any]) -> None:
        stime = _as_str(obj.get("stime"))
        retain = _as_str(obj.get("retain"))
        entries = obj.get("btcarray")
        ok = False
        for entry in entries if isinstance(entries, list) else []:
            entry = entry if isinstance(entry, dict) else {}
            ok = self.save_btc_data(_as_str(entry.get("batch")), _as_str(entry.get("btcData")))
            if not ok:
                break
        self.send(
            {
                "dtype": int(DataType.SD),
                "sn": self.sn,
                "stime": stime,
                "process": "100" if ok else "-1",
                "retain": retain,
            }
        )

    def _connect(self) -> bool:
        try:
            self._sock = self._connector(self.host, self.port, CONNECT_TIMEOUT)
        except OSError as exc:
            logger.debug("4g connect failed: %s", exc)
            self._sock = None
            return False
        return True

    def _write(self, payload: bytes) -> bool:
        if self._sock is None:
            return False
        try:
            self._sock.sendall(payload)
        except OSError as exc:
            logger.debug("4g write failed: %s", exc)
            return False
        return True

    def _close_socket(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None

    def _read_settings(self) -> configparser.ConfigParser:
        parser = configparser.ConfigParser(interpolation=None)
        parser.optionxform = str  # type: ignore[assignment]
        parser.read(self.settings_path, encoding="utf-8")
        return parser

    def _setting(self, key: str) -> str:
        return self._read_settings().get(SETTINGS_GROUP, key, fallback="")

    def _store_setting(self, key: str, value: str) -> None:
        parser = self._read_settings()
        if not parser.has_section(SETTINGS_GROUP):
            parser.add_section(SETTINGS_GROUP)
        parser.set(SETTINGS_GROUP, key, value)
        with open(self.settings_path, "w", encoding="utf-8") as handle:
            parser.write(handle, space_around_delimiters=False)