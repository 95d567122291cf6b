"""Reading of the main configuration file."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Optional, Union

MISC_LENGTH = 128
MAX_PATH = 1024
MAX_USERNAME_LENGTH = 128
NUMBER_OF_SERVERS = 64
DEFAULT_BUFFER_SIZE = 65535
MAX_BUFFER_SIZE = 1048576

MAIN_SECTION = "pgmoneta"

_LONG_MIN = -(2**63)
_LONG_MAX = 2**63 - 1
_INT_PATTERN = re.compile(r"[ \t\n\v\f\r]*[+-]?[0-9]+")
_BLANKS = frozenset(" \t\r\n")

_log = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when a configuration file cannot be read."""


class CompressionType(IntEnum):
    NONE = 0
    GZIP = 1
    ZSTD = 2
    LZ4 = 3


class LogType(IntEnum):
    CONSOLE = 0
    FILE = 1
    SYSLOG = 2


class LogLevel(IntEnum):
    DEBUG5 = 1
    DEBUG4 = 2
    DEBUG3 = 3
    DEBUG2 = 4
    DEBUG1 = 5
    INFO = 6
    WARN = 7
    ERROR = 8
    FATAL = 9


class LogMode(IntEnum):
    APPEND = 0
    CREATE = 1


class HugePage(IntEnum):
    OFF = 0
    TRY = 1
    ON = 2


@dataclass
class Server:
    """A PostgreSQL server section of the configuration."""

    name: str = ""
    host: str = ""
    port: int = 0
    username: str = ""
    backup_slot: str = ""
    wal_slot: str = ""
    follow: str = ""
    retention: int = 0
    synchronous: bool = False
    backup: bool = False
    delete: bool = False
    wal_streaming: bool = False
    valid: bool = False


@dataclass
class Configuration:
    """The complete configuration, holding the defaults until a file is read."""

    host: str = ""
    metrics: int = 0
    management: int = 0
    base_dir: str = ""
    pgsql_dir: str = ""
    compression_type: CompressionType = CompressionType.ZSTD
    compression_level: int = 3
    retention: int = 7
    link: bool = True
    log_type: LogType = LogType.CONSOLE
    log_level: LogLevel = LogLevel.INFO
    log_path: str = ""
    log_mode: LogMode = LogMode.APPEND
    tls: bool = False
    tls_cert_file: str = ""
    tls_key_file: str = ""
    tls_ca_file: str = ""
    blocking_timeout: int = 30
    authentication_timeout: int = 5
    pidfile: str = ""
    libev: str = ""
    buffer_size: int = DEFAULT_BUFFER_SIZE
    keep_alive: bool = True
    nodelay: bool = True
    non_blocking: bool = True
    backlog: int = 16
    hugepage: HugePage = HugePage.TRY
    unix_socket_dir: str = ""
    configuration_path: str = ""
    servers: list[Server] = field(default_factory=list)
    unknown: list[tuple[str, str, str]] = field(default_factory=list)

    @property
    def number_of_servers(self) -> int:
        return len(self.servers)


def extract_key_value(line: str) -> tuple[Optional[str], Optional[str]]:
    """Split a ``key = value`` line; both are None when no separator is found."""
    length = len(line)
    c = 0
    while c < length and line[c] not in " =":
        c += 1
    if c >= length:
        return None, None
    key = line[:c]
    while c < length and line[c] in " \t=":
        c += 1
    offset = c
    while c < length and line[c] not in " \r\n":
        c += 1
    return key, line[offset:c]


def as_int(text: str) -> int:
    """Parse a base 10 integer, raising ValueError on anything else."""
    if not _INT_PATTERN.fullmatch(text):
        raise ValueError(f"not an integer: {text!r}")
    value = int(text.strip(" \t\n\v\f\r"))
    if not _LONG_MIN <= value <= _LONG_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def as_bool(text: str) -> bool:
    """Parse true/on/1 or false/off/0, case-insensitively."""
    lowered = text.lower()
    if lowered in ("true", "on", "1"):
        return True
    if lowered in ("false", "off", "0"):
        return False
    raise ValueError(f"not a boolean: {text!r}")


def as_logging_type(text: str) -> LogType:
    return {"console": LogType.CONSOLE, "file": LogType.FILE, "syslog": LogType.SYSLOG}.get(
        text.lower(), LogType.CONSOLE
    )


def as_logging_level(text: str) -> LogLevel:
    names = {level.name.lower(): level for level in LogLevel}
    return names.get(text.lower(), LogLevel.INFO)


def as_logging_mode(text: str) -> LogMode:
    lowered = text.lower()
    if lowered in ("a", "append"):
        return LogMode.APPEND
    if lowered in ("c", "create"):
        return LogMode.CREATE
    return LogMode.APPEND


def as_hugepage(text: str) -> HugePage:
    return {"off": HugePage.OFF, "try": HugePage.TRY, "on": HugePage.ON}.get(
        text.lower(), HugePage.OFF
    )


def as_compression(text: str) -> CompressionType:
    names = {kind.name.lower(): kind for kind in CompressionType}
    return names.get(text.lower(), CompressionType.ZSTD)


def is_empty_string(text: Optional[str]) -> bool:
    """True for None or a string made only of blanks and line endings."""
    if text is None:
        return True
    return all(ch in _BLANKS for ch in text)


def _clip(value: str, limit: int) -> str:
    return value[: limit - 1]


_MAIN_STRINGS = {
    "tls_ca_file": MISC_LENGTH,
    "tls_cert_file": MISC_LENGTH,
    "tls_key_file": MISC_LENGTH,
    "pidfile": MISC_LENGTH,
    "log_path": MISC_LENGTH,
    "unix_socket_dir": MISC_LENGTH,
    "libev": MISC_LENGTH,
    "base_dir": MAX_PATH,
    "pgsql_dir": MAX_PATH,
}
_MAIN_INTS = ("metrics", "management", "blocking_timeout", "backlog", "compression_level")
_MAIN_BOOLS = ("tls", "keep_alive", "nodelay", "non_blocking", "link")
_MAIN_ENUMS = {
    "log_type": ("log_type", as_logging_type),
    "log_level": ("log_level", as_logging_level),
    "log_mode": ("log_mode", as_logging_mode),
    "hugepage": ("hugepage", as_hugepage),
    "compression": ("compression_type", as_compression),
}
_SERVER_STRINGS = {
    "user": ("username", MAX_USERNAME_LENGTH),
    "backup_slot": ("backup_slot", MISC_LENGTH),
    "wal_slot": ("wal_slot", MISC_LENGTH),
    "follow": ("follow", MISC_LENGTH),
}


def _set_int(target: object, attr: str, value: str) -> bool:
    try:
        setattr(target, attr, as_int(value))
    except ValueError:
        return False
    return True


def _set_bool(target: object, attr: str, value: str) -> bool:
    try:
        setattr(target, attr, as_bool(value))
    except ValueError:
        return False
    return True


def _apply(config: Configuration, server: Server, section: str, key: str, value: str) -> bool:
    """Apply one setting; return False when it is not understood."""
    main = section == MAIN_SECTION

    if key == "host":
        if main:
            config.host = _clip(value, MISC_LENGTH)
            return True
        if section:
            server.name = _clip(section, MISC_LENGTH)
            server.host = _clip(value, MISC_LENGTH)
            return True
        return False

    if key == "retention":
        if main:
            return _set_int(config, "retention", value)
        if section:
            return _set_int(server, "retention", value)
        return False

    if key == "port":
        return bool(section) and _set_int(server, "port", value)

    if key == "synchronous":
        return bool(section) and _set_bool(server, "synchronous", value)

    if key in _SERVER_STRINGS:
        if not section:
            return False
        attr, limit = _SERVER_STRINGS[key]
        server.name = _clip(section, MISC_LENGTH)
        setattr(server, attr, _clip(value, limit))
        return True

    if key == "buffer_size":
        if not main:
            return False
        known = _set_int(config, "buffer_size", value)
        config.buffer_size = min(config.buffer_size, MAX_BUFFER_SIZE)
        return known

    if key in _MAIN_STRINGS:
        if not main:
            return False
        setattr(config, key, _clip(value, _MAIN_STRINGS[key]))
        return True

    if key in _MAIN_INTS:
        return main and _set_int(config, key, value)

    if key in _MAIN_BOOLS:
        return main and _set_bool(config, key, value)

    if key in _MAIN_ENUMS:
        if not main:
            return False
        attr, convert = _MAIN_ENUMS[key]
        setattr(config, attr, convert(value))
        return True

    return False


def read_configuration(path: Union[str, Path]) -> Configuration:
    """Read a configuration file on top of the default settings."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as handle:
            lines = handle.readlines()
    except OSError as exc:
        raise ConfigurationError(f"cannot read configuration {path}: {exc}") from exc

    config = Configuration(configuration_path=str(path))
    section = ""
    current = Server()
    opened = 0

    for line in lines:
        if is_empty_string(line):
            continue
        if line.startswith("["):
            end = line.find("]")
            if end == -1:
                continue
            section = _clip(line[1:end], MISC_LENGTH)
            if section != MAIN_SECTION:
                if 0 < opened <= NUMBER_OF_SERVERS:
                    config.servers.append(current)
                elif opened > NUMBER_OF_SERVERS:
                    _log.warning("Maximum number of servers exceeded")
                current = Server(name=section)
                opened += 1
            continue
        if line[0] in "#;":
            continue

        key, value = extract_key_value(line)
        if key is None or value is None:
            continue
        if not _apply(config, current, section, key, value):
            config.unknown.append((section, key, value))
            _log.warning(
                "Unknown: Section=%s, Key=%s, Value=%s", section or "<unknown>", key, value
            )

    if current.name and 0 < opened <= NUMBER_OF_SERVERS:
        config.servers.append(current)

    return config