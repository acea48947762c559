"""Shell command writing messages to a ulog buffer, like syslog's logger."""

from __future__ import annotations

import getopt
import logging
import os
import re
import struct
import sys
import time
from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from .options import (
    ULOG_CRIT,
    ULOG_DEBUG,
    ULOG_ERR,
    ULOG_INFO,
    ULOG_NOTICE,
    ULOG_WARN,
)

DEFAULT_DEVICE = "main"

_USAGE = """Usage: ulogger [ -h/--help ] [ -i/--pid PID ] [ -m/--time ]
               [ -n/--name NAME ] [ -p/--prio PRIO ] [ -s/--stderr ]
               [ -t/--tag TAG ] [ TIME ] [ MESSAGE ]
   -h, --help       Show this help text
   -i, --pid  PID   Override log entry process pid
   -m, --time       Override log entry timestamp with TIME (number of
                    seconds optionally followed by a space and the
                    number of nanoseconds)
   -n, --name NAME  Override log entry process name
   -p, --prio PRIO  Specify one-letter prio (C,E,W,N,I,D) or number
   -s, --stderr     Output message to stderr as well
   -t, --tag  TAG   Specify message tag"""

_LONG_OPTIONS = ["help", "pid=", "time", "name=", "prio=", "stderr", "tag="]
_LEVELS = {
    "C": ULOG_CRIT,
    "E": ULOG_ERR,
    "W": ULOG_WARN,
    "N": ULOG_NOTICE,
    "I": ULOG_INFO,
    "D": ULOG_DEBUG,
}
_PRIO_CHARS = "01CEWNID"
_LOGGING_LEVELS = [
    logging.CRITICAL,
    logging.CRITICAL,
    logging.CRITICAL,
    logging.ERROR,
    logging.WARNING,
    logging.INFO,
    logging.INFO,
    logging.DEBUG,
]
_STRTOL = re.compile(r"[ \t\n\v\f\r]*([+-]?\d+)")
_LINE_MAX = 255
_PATH_MAX = 127

# Layout of one entry in a ulogger buffer.
_HEADER = struct.Struct("=HHiiiii")
_PRIORITY = struct.Struct("=I")
_MAX_PAYLOAD = 0xFFFF


def _int32(value: int) -> int:
    return ((value + (1 << 31)) & 0xFFFFFFFF) - (1 << 31)


def _strtol(text: str, pos: int = 0) -> tuple[int, int]:
    """Parse a decimal integer at ``pos``; (0, pos) when there is none."""
    match = _STRTOL.match(text, pos)
    if match is None:
        return 0, pos
    return int(match.group(1)), match.end()


def parse_level(c: str) -> int:
    """Return the level described by a letter (C,E,W,N,I,D) or a digit."""
    ch = c[:1]
    if ch and ch in "0123456789":
        return min(int(ch), ULOG_DEBUG)
    return _LEVELS.get(ch, ULOG_INFO)


def parse_int32(text: str) -> int:
    """Parse a whole string as a 32-bit decimal integer; raise ValueError."""
    if not text:
        raise ValueError("empty integer")
    value, end = _strtol(text)
    if end != len(text):
        raise ValueError(f"invalid integer: {text!r}")
    return _int32(value)


def parse_time(text: str) -> tuple[tuple[int, int] | None, str]:
    """Parse a leading "SECONDS[ NANOSECONDS]" time.

    Returns ((seconds, nanoseconds), rest) when a time is found, otherwise
    (None, rest). The nanoseconds default to 0.
    """
    if not text or text[0] == " ":
        return None, text
    seconds, end = _strtol(text)
    if text[end : end + 1] != " ":
        return None, text[end:]
    start = end + 1
    nanoseconds, end = _strtol(text, start)
    if end == start:
        nanoseconds = 0
    return (_int32(seconds), _int32(nanoseconds)), text[end:]


def skip_spaces(text: str) -> str:
    """Return ``text`` without its leading spaces."""
    return text.lstrip(" ")


@dataclass
class _RawEntry:
    pid: int
    tid: int
    pname: str
    tag: str = "ulogger"
    prio: int = ULOG_INFO
    sec: int = 0
    nsec: int = 0
    message: str = ""

    def encode(self) -> bytes:
        head = (
            self.pname.encode("utf-8", "surrogateescape") + b"\0"
            + b"\0"
            + _PRIORITY.pack(self.prio)
            + self.tag.encode("utf-8", "surrogateescape") + b"\0"
        )
        message = self.message.encode("utf-8", "surrogateescape")
        message = message[: max(_MAX_PAYLOAD - len(head) - 1, 0)] + b"\0"
        body = head + message
        header = _HEADER.pack(
            len(body) & 0xFFFF,
            _HEADER.size,
            _int32(self.pid),
            _int32(self.tid),
            _int32(self.sec),
            _int32(self.nsec),
            _int32(os.geteuid()),
        )
        return header + body


def _usage() -> None:
    print(_USAGE, file=sys.stderr)


def _set_monotonic(entry: _RawEntry) -> None:
    entry.sec, entry.nsec = divmod(time.monotonic_ns(), 1_000_000_000)


def _log(fd: int, entry: _RawEntry, copy_stderr: bool) -> None:
    if fd >= 0:
        try:
            os.write(fd, entry.encode())
        except OSError as exc:
            print(f"ulog_raw_log error: {exc.strerror}", file=sys.stderr)
            raise SystemExit(exc.errno or 1) from exc
    else:
        logging.getLogger("ulogger").log(
            _LOGGING_LEVELS[entry.prio], "%s", entry.message
        )
    if copy_stderr:
        text = f"{_PRIO_CHARS[entry.prio]} {entry.tag}: {entry.message}"
        if not entry.message.endswith("\n"):
            text += "\n"
        sys.stderr.write(text)


def _chunks(lines: Iterable[str]) -> Iterator[str]:
    for line in lines:
        while len(line) > _LINE_MAX:
            yield line[:_LINE_MAX]
            line = line[_LINE_MAX:]
        if line:
            yield line


def _try_int32(text: str) -> int | None:
    try:
        return parse_int32(text)
    except ValueError:
        return None


def main(argv: list[str] | None = None) -> int:
    """Log the given messages, or each line of standard input."""
    args = sys.argv[1:] if argv is None else list(argv)
    pname = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "ulogger"
    entry = _RawEntry(pid=os.getpid(), tid=os.getpid(), pname=pname)
    copy_stderr = False
    has_time = False

    device = os.environ.get("ULOG_DEVICE", DEFAULT_DEVICE)
    path = f"/dev/ulog_{device}"[:_PATH_MAX]
    try:
        fd = os.open(path, os.O_WRONLY)
    except OSError as exc:
        print(f"cannot open {path}: {exc.strerror}", file=sys.stderr)
        fd = -1

    try:
        try:
            opts, positional = getopt.gnu_getopt(args, "hi:mn:p:st:", _LONG_OPTIONS)
        except getopt.GetoptError as exc:
            print(f"ulogger: {exc}", file=sys.stderr)
            _usage()
            raise SystemExit(1) from None

        for opt, value in opts:
            if opt in ("-h", "--help"):
                _usage()
                raise SystemExit(0)
            if opt in ("-i", "--pid"):
                pid = _try_int32(value)
                if pid is not None:
                    entry.pid = entry.tid = pid
            elif opt in ("-m", "--time"):
                has_time = True
            elif opt in ("-n", "--name"):
                entry.pname = value
            elif opt in ("-p", "--prio"):
                entry.prio = parse_level(value)
            elif opt in ("-s", "--stderr"):
                copy_stderr = True
            elif opt in ("-t", "--tag"):
                entry.tag = value

        if positional:
            pending = deque(positional)
            while pending:
                if not has_time:
                    _set_monotonic(entry)
                elif len(pending) > 1:
                    sec = _try_int32(pending[0])
                    if sec is not None:
                        entry.sec = sec
                        pending.popleft()
                        if len(pending) > 1:
                            nsec = _try_int32(pending[0])
                            if nsec is not None:
                                entry.nsec = nsec
                                pending.popleft()
                entry.message = pending.popleft()
                _log(fd, entry, copy_stderr)
        else:
            for chunk in _chunks(sys.stdin):
                if not has_time:
                    _set_monotonic(entry)
                    entry.message = chunk
                else:
                    stamp, rest = parse_time(chunk)
                    if stamp is not None:
                        entry.sec, entry.nsec = stamp
                    entry.message = skip_spaces(rest)
                _log(fd, entry, copy_stderr)
    finally:
        if fd >= 0:
            os.close(fd)
    return 0