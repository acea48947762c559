"""Log entries kept in a shared memory section, and their forwarding to ulog."""

from __future__ import annotations

import logging
import struct
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from .syslog_redirect import ULOG_BUF_SIZE

ULOG_SHD_NB_SAMPLES = 2048
ULOG_WRITE_RATE_USEC = 10000
PRIO_LEVEL_MASK = 0x7
PRIO_COLOR_SHIFT = 8

DEFAULT_SECTION_NAME = "ulog"
DEFAULT_PROCESS_NAME = "rtos"
DEFAULT_PID = 0
DEFAULT_PERIOD_MS = 50

# Colors selected by the digit of a leading '\033[0;3#m' sequence.
SHD_COLORS = (
    0x000000,  # black
    0xFF0000,  # red
    0x00FF00,  # green
    0xFFFF00,  # yellow
    0x0000FF,  # blue
    0xFF00FF,  # magenta
    0xFFFF00,  # cyan
    0x808080,  # gray
)

# index, prio, tid, thread name size, tag size, log size; packed fields.
_HEADER = struct.Struct("=HBIiii")
_ESCAPE_LEN = 7

_log = logging.getLogger("shdlogd")


def _aligned(size: int) -> int:
    return (size + 3) & ~3


def _int16(value: int) -> int:
    return ((value + 0x8000) & 0xFFFF) - 0x8000


@dataclass
class ShdBlob:
    """One log entry as stored in shared memory.

    ``buf`` holds the thread name, the tag and the message one after the
    other; their sizes are ``thnsize``, ``tagsize`` and ``logsize``.
    """

    index: int = 0
    prio: int = 0
    tid: int = 0
    thnsize: int = 0
    tagsize: int = 0
    logsize: int = 0
    buf: bytes = b""
    buf_size: int = ULOG_BUF_SIZE

    def __post_init__(self) -> None:
        if self.buf_size <= 0:
            raise ValueError(f"invalid buffer size: {self.buf_size}")
        if len(self.buf) > self.buf_size:
            raise ValueError("blob buffer larger than its size")
        self.buf = bytes(self.buf).ljust(self.buf_size, b"\0")

    @property
    def size(self) -> int:
        """Size of the packed blob."""
        return _aligned(_HEADER.size + self.buf_size)

    @property
    def thread_name(self) -> bytes:
        return self.buf[: max(self.thnsize, 0)]

    @property
    def tag(self) -> bytes:
        start = max(self.thnsize, 0)
        return self.buf[start : start + max(self.tagsize, 0)]

    @property
    def message(self) -> bytes:
        start = max(self.thnsize, 0) + max(self.tagsize, 0)
        return self.buf[start : start + max(self.logsize, 0)]

    def pack(self) -> bytes:
        """Return the blob as laid out in shared memory."""
        header = _HEADER.pack(
            self.index & 0xFFFF,
            self.prio & 0xFF,
            self.tid & 0xFFFFFFFF,
            self.thnsize,
            self.tagsize,
            self.logsize,
        )
        return (header + self.buf).ljust(self.size, b"\0")

    @classmethod
    def unpack(cls, data: bytes, buf_size: int = ULOG_BUF_SIZE) -> ShdBlob:
        """Read a blob from ``data``; raise ValueError when it is too short."""
        if len(data) < _HEADER.size + buf_size:
            raise ValueError(
                f"blob too short: {len(data)} bytes, "
                f"{_HEADER.size + buf_size} needed"
            )
        index, prio, tid, thnsize, tagsize, logsize = _HEADER.unpack_from(data)
        buf = bytes(data[_HEADER.size : _HEADER.size + buf_size])
        return cls(index, prio, tid, thnsize, tagsize, logsize, buf, buf_size)


def _as_field(value: str | bytes) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8", "surrogateescape") + b"\0"


def build_blob(
    index: int,
    prio: int,
    thread_name: str | None,
    tid: int,
    tag: str | bytes,
    message: str | bytes,
    buf_size: int = ULOG_BUF_SIZE,
) -> ShdBlob:
    """Pack a log entry into a blob, truncating what does not fit.

    Strings are stored with their terminating NUL; bytes are stored as given.
    A ``thread_name`` of None means no thread name is known.
    """
    buf = bytearray()
    if thread_name is not None:
        name = thread_name.encode("utf-8", "surrogateescape")
        if len(name) >= buf_size:
            thnsize = buf_size
            buf += name[: buf_size - 1] + b"\0"
        else:
            thnsize = len(name) + 1
            buf += name + b"\0"
    else:
        thnsize = 0

    offset = thnsize
    tagsize = 0
    if offset < buf_size:
        tag_data = _as_field(tag)[: buf_size - offset]
        tagsize = len(tag_data)
        buf += tag_data

    offset += tagsize
    logsize = 0
    if offset < buf_size:
        log_data = _as_field(message)[: buf_size - offset]
        logsize = len(log_data)
        buf += log_data

    offset += logsize
    if offset == buf_size:
        buf[buf_size - 1] = 0

    return ShdBlob(
        index=index & 0xFFFF,
        prio=prio & PRIO_LEVEL_MASK,
        tid=tid & 0xFFFFFFFF,
        thnsize=thnsize,
        tagsize=tagsize,
        logsize=logsize,
        buf=bytes(buf),
        buf_size=buf_size,
    )


@dataclass
class RawEntry:
    """A log entry ready to be written to a ulog device."""

    pid: int = DEFAULT_PID
    tid: int = DEFAULT_PID
    sec: int = 0
    nsec: int = 0
    prio: int = 0
    pname: str = DEFAULT_PROCESS_NAME
    tname: bytes = b""
    tag: bytes = b""
    message: bytes = b""


def blob_to_raw(
    blob: ShdBlob,
    sec: int,
    nsec: int,
    pid: int = DEFAULT_PID,
    pname: str = DEFAULT_PROCESS_NAME,
) -> RawEntry:
    """Turn a blob and its timestamp into a raw entry.

    A leading '\\033[0;3#m' color sequence is removed from the message and
    its color is folded into the priority.
    """
    prio = blob.prio
    message = blob.message
    if message[:1] == b"\x1b" and len(message) >= _ESCAPE_LEN:
        prio |= SHD_COLORS[(message[5] - 0x30) & 0x7] << PRIO_COLOR_SHIFT
        message = message[_ESCAPE_LEN:]
    return RawEntry(
        pid=pid,
        tid=blob.tid if blob.thnsize else DEFAULT_PID,
        sec=sec,
        nsec=nsec,
        prio=prio,
        pname=pname,
        tname=blob.thread_name,
        tag=blob.tag,
        message=message,
    )


class SampleForwarder:
    """Passes blobs read from shared memory to ``write(raw_entry)``.

    Gaps in blob indexes are counted: ``lost`` holds the number of messages
    known to be lost, ``overruns`` the number of times too many were lost to
    be counted.
    """

    def __init__(
        self,
        write: Callable[[RawEntry], object],
        pid: int = DEFAULT_PID,
        pname: str = DEFAULT_PROCESS_NAME,
    ) -> None:
        self._write = write
        self.pid = pid
        self.pname = pname
        self.index = 0
        self.lost = 0
        self.overruns = 0

    def forward(
        self, samples: Iterable[tuple[int, int, ShdBlob]]
    ) -> tuple[int, int] | None:
        """Write each (sec, nsec, blob) sample in order.

        Returns the date just after the last sample, from which the next
        samples are to be searched, or None when there was no sample.
        """
        last: tuple[int, int] | None = None
        for sec, nsec, blob in samples:
            self._write(blob_to_raw(blob, sec, nsec, self.pid, self.pname))
            gap = _int16(blob.index - self.index - 1)
            if gap > 0:
                self.lost += gap
                _log.error("%d shared memory log messages lost", gap)
            elif gap < 0:
                self.overruns += 1
                _log.error("many shared memory log messages lost")
            self.index = blob.index & 0xFFFF
            last = (sec, nsec)
        if last is None:
            return None
        sec, nsec = last
        extra, nsec = divmod(nsec + 1, 1_000_000_000)
        return sec + extra, nsec