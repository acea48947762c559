"""Kernel log devices: records read from /dev/kmsg and kmsgd-wrapped entries."""

from __future__ import annotations

import errno
import os
import re

from .options import ULOG_INFO, Frame, LogEntry, UlogcatError

KMSG_PATH = "/dev/kmsg"

# Upper bound on the size of one record returned by /dev/kmsg.
_READ_SIZE = 8192

# Kernel ring buffer size assumed for the dump mark (default log_buf_shift).
KERNEL_BUFFER_SIZE = 1 << 17

_LEADING_INT = re.compile(r"\s*([+-]?)(\d+)")
_ESCAPE = re.compile(rb"\\x([0-9A-Fa-f]{2})")
_DIGITS = "0123456789"


def _leading_int(text: str, pos: int = 0) -> tuple[int, int]:
    """Parse an integer at ``pos``; return (value, end) or (0, pos) if none."""
    match = _LEADING_INT.match(text, pos)
    if match is None:
        return 0, pos
    value = int(match.group(2))
    if match.group(1) == "-":
        value = -value
    return value, match.end()


def _as_text(message: str | bytes) -> str:
    if isinstance(message, bytes):
        message = message.decode("utf-8", errors="replace")
    return message.split("\0", 1)[0]


def _strip_prefix(entry: LogEntry) -> None:
    msg = entry.message
    if not msg.startswith("<") or len(msg) < 3:
        return
    if msg[2] == ">":
        entry.priority = int(msg[1]) & 0x7 if msg[1] in _DIGITS else ULOG_INFO
        entry.message = msg[3:]
        return
    value, end = _leading_int(msg, 1)
    entry.priority = value & 0x7
    if msg[end : end + 1] != ">":
        return
    entry.message = msg[end + 1 :]


def _strip_timestamp(entry: LogEntry) -> None:
    msg = entry.message
    if msg.startswith("["):
        sec, end = _leading_int(msg, 1)
        if msg[end : end + 1] == ".":
            usec, end = _leading_int(msg, end + 1)
            if msg[end : end + 2] == "] ":
                entry.tv_sec = sec
                entry.tv_nsec = usec * 1000
                entry.message = msg[end + 2 :]
                return
    entry.tv_sec = 0
    entry.tv_nsec = 0


def _mark_kernel(entry: LogEntry) -> None:
    entry.pid = 0
    entry.tid = 0
    entry.pname = ""
    entry.tname = ""
    entry.tag = "KERNEL"
    entry.is_binary = False
    entry.color = 0


def fix_kmsgd_entry(entry: LogEntry) -> None:
    """Turn a kernel line copied into a ulog buffer into a kernel entry.

    A leading ``<prio>`` and ``[sec.usec] `` are parsed out of the message.
    """
    entry.message = _as_text(entry.message)
    _strip_prefix(entry)
    _strip_timestamp(entry)
    _mark_kernel(entry)


def parse_kmsg_header(data: bytes | str) -> tuple[int, int, str]:
    """Split a /dev/kmsg record into (priority, timestamp in µs, body).

    The body is everything after the ';' separator.
    """
    text = data.decode("utf-8", "surrogateescape") if isinstance(data, bytes) else data
    pos = 0
    tokens: list[str | None] = []
    for _ in range(3):
        while pos < len(text) and text[pos] == ",":
            pos += 1
        if pos >= len(text):
            tokens.append(None)
            continue
        end = text.find(",", pos)
        if end < 0:
            end = len(text)
        tokens.append(text[pos:end])
        pos = end + 1
    prio, _seqnum, stamp = tokens
    if prio is None or stamp is None:
        raise UlogcatError("malformed kmsg record header")
    semicolon = text.find(";", pos) if pos <= len(text) else -1
    if semicolon < 0:
        raise UlogcatError("kmsg record without message separator")
    usec = _leading_int(stamp)[0]
    priority = _leading_int(prio)[0] & 0x7
    return priority, usec, text[semicolon + 1 :]


def unescape_kmsg(text: str) -> str:
    """Replace C-style ``\\xNN`` escapes with the bytes they stand for."""
    raw = text.encode("utf-8", "surrogateescape")
    raw = _ESCAPE.sub(lambda m: bytes([int(m.group(1), 16)]), raw)
    return raw.decode("utf-8", errors="replace")


def _seek_data(fd: int) -> None:
    seek_data = getattr(os, "SEEK_DATA", None)
    if seek_data is None:
        return
    try:
        os.lseek(fd, 0, seek_data)
    except OSError:
        pass


class KernelLogDevice:
    """Reader of kernel records from /dev/kmsg."""

    def __init__(self, path: str, fd: int, mark_readable: int) -> None:
        self.path = path
        self.fd = fd
        self.mark_readable = mark_readable
        self.label = "K"
        self.printed = False
        self.pending = False
        self.idx = 0

    @classmethod
    def open(cls, path: str = KMSG_PATH) -> KernelLogDevice:
        """Open ``path`` and check that records can actually be read from it."""
        try:
            fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
        except OSError as exc:
            raise UlogcatError(f"open {path}: {exc.strerror}") from exc
        try:
            _seek_data(fd)
            try:
                os.read(fd, _READ_SIZE)
            except OSError as exc:
                # EPIPE only means some records were overwritten.
                if exc.errno not in (errno.EAGAIN, errno.EPIPE):
                    raise UlogcatError(f"read({path}): {exc.strerror}") from exc
            _seek_data(fd)
        except BaseException:
            os.close(fd)
            raise
        return cls(path, fd, 2 * KERNEL_BUFFER_SIZE)

    def receive_entry(self, frame: Frame) -> bool:
        """Read one record into ``frame``; False when nothing could be read."""
        try:
            data = os.read(self.fd, _READ_SIZE)
        except OSError as exc:
            if exc.errno in (errno.EINTR, errno.EAGAIN, errno.EPIPE):
                return False
            raise UlogcatError(f"read({self.path}): {exc.strerror}") from exc
        if not data:
            return False
        priority, usec, body = parse_kmsg_header(data)
        entry = frame.entry
        entry.priority = priority
        entry.tv_sec = usec // 1_000_000
        entry.tv_nsec = (usec - entry.tv_sec * 1_000_000) * 1000
        entry.message = body
        frame.data = data
        frame.stamp = usec
        frame.device = self
        self.mark_readable -= len(data)
        return True

    def parse_entry(self, frame: Frame) -> None:
        """Finish parsing a received record: keep its first line, unescaped."""
        entry = frame.entry
        line, sep, _ = _as_text(entry.message).partition("\n")
        if not sep:
            raise UlogcatError("kmsg record without end of line")
        entry.message = unescape_kmsg(line)
        _mark_kernel(entry)

    def clear(self) -> None:
        """Skip every record currently held in the kernel buffer."""
        try:
            os.lseek(self.fd, 0, os.SEEK_END)
        except OSError as exc:
            raise UlogcatError(f"clear {self.path}: {exc.strerror}") from exc

    def close(self) -> None:
        """Close the device descriptor."""
        if self.fd >= 0:
            os.close(self.fd)
            self.fd = -1