"""Output options, flags and the entry records handled by the log reader."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import IO, Any

ULOG_CRIT = 2
ULOG_ERR = 3
ULOG_WARN = 4
ULOG_NOTICE = 5
ULOG_INFO = 6
ULOG_DEBUG = 7

# Per-priority ANSI sequences used when colored output is requested.
DEFAULT_COLORS = "||4;1;31|1;31|1;33|35||1;30"

# This ulog buffer wraps kernel messages and is not a regular ulog buffer.
KMSGD_ULOG_NAME = "kmsgd"

# Size of the regular per-frame read buffer; larger entries get a bigger one.
FRAME_BUFSIZE = 200


class UlogcatError(Exception):
    """Raised when log reading or rendering cannot proceed."""


class LogFormat(enum.IntEnum):
    """Text rendering formats."""

    SHORT = 0
    ALIGNED = 1
    PROCESS = 2
    LONG = 3
    CSV = 4


class Flag(enum.IntFlag):
    """Processing options."""

    DUMP = 1 << 2
    COLOR = 1 << 3
    SHOW_LABEL = 1 << 4
    ULOG = 1 << 5
    KLOG = 1 << 7


_FORMAT_NAMES = {fmt.name.lower(): fmt for fmt in LogFormat}


def parse_log_format(name: str | None) -> LogFormat:
    """Return the format called ``name`` (short, aligned, process, long, csv)."""
    try:
        return _FORMAT_NAMES[name]  # type: ignore[index]
    except (KeyError, TypeError):
        raise UlogcatError(f"invalid log format: {name!r}") from None


@dataclass
class Options:
    """How logs are read and rendered.

    ``output`` is the preferred text stream; ``output_fd`` is used only when
    ``output`` is None. When neither is given, standard output is used.
    A ``tail`` of 0 means every line is shown.
    """

    log_format: LogFormat = LogFormat.ALIGNED
    flags: Flag = Flag(0)
    tail: int = 0
    output: IO[str] | None = None
    output_fd: int = -1

    def __post_init__(self) -> None:
        try:
            self.log_format = LogFormat(self.log_format)
        except ValueError:
            raise UlogcatError(f"invalid log format: {self.log_format!r}") from None
        self.flags = Flag(self.flags)
        if self.tail < 0:
            raise UlogcatError(f"tail must not be negative: {self.tail}")


@dataclass
class LogEntry:
    """A parsed log entry; ``message`` is bytes for binary entries."""

    tv_sec: int = 0
    tv_nsec: int = 0
    priority: int = ULOG_INFO
    pid: int = 0
    pname: str = ""
    tid: int = 0
    tname: str = ""
    tag: str = ""
    message: str | bytes = ""
    is_binary: bool = False
    color: int = 0


@dataclass
class Frame:
    """A log entry read from a device, with its raw data and timestamp (µs)."""

    entry: LogEntry = field(default_factory=LogEntry)
    data: bytes = b""
    stamp: int = 0
    device: Any = None