"""ulogger character devices (/dev/ulog_*)."""

from __future__ import annotations

import errno
import fcntl
import os
from collections.abc import Callable

from .klog import fix_kmsgd_entry
from .options import KMSGD_ULOG_NAME, Frame, LogEntry, LogFormat, UlogcatError

DEVICE_PREFIX = "/dev/ulog_"
LOGS_ATTRIBUTE = "/sys/devices/virtual/misc/ulog_main/logs"
MAIN_DEVICE = "main"
KMSGD_PATH = "/proc/kmsg"

_PATH_MAX = 63
_LINE_MAX = 31
_READ_SIZE = 65536


def _io(group: int, number: int) -> int:
    return (group << 8) | number


# ioctl requests of the ulogger driver.
ULOGGER_GET_LOG_LEN = _io(0xAE, 2)
ULOGGER_FLUSH_LOG = _io(0xAE, 4)


def device_path(name: str) -> str:
    """Return the device node path of the ulog buffer ``name``."""
    return f"{DEVICE_PREFIX}{name}"[:_PATH_MAX]


def list_ulog_devices(path: str = LOGS_ATTRIBUTE) -> list[str]:
    """Return the names of the ulog buffers listed by the driver.

    The kmsgd buffer is left out. When the list is not available, only the
    main buffer is returned.
    """
    try:
        with open(path, encoding="utf-8", errors="replace") as fp:
            lines = fp.read().splitlines(keepends=True)
    except OSError:
        return [MAIN_DEVICE]
    names = []
    for line in lines:
        chunk = line[:_LINE_MAX]
        space = chunk.find(" ")
        if space < 5 or len(chunk) <= 5:
            continue
        name = chunk[5:space]
        if name != KMSGD_ULOG_NAME:
            names.append(name)
    return names


class UlogDevice:
    """Reader of entries from one ulog buffer.

    ``decoder`` turns the raw bytes of one entry into a LogEntry and raises
    ValueError when they are malformed. Binary entries are dropped unless
    ``keep_binary`` is set (CSV output).
    """

    def __init__(
        self,
        name: str,
        fd: int,
        mark_readable: int,
        decoder: Callable[[bytes], LogEntry],
    ) -> None:
        self.name = name
        self.path = device_path(name)
        self.fd = fd
        self.mark_readable = mark_readable
        self.decoder = decoder
        self.label = "U"
        self.keep_binary = False
        self.printed = False
        self.pending = False
        self.idx = 0
        # The kmsgd buffer wraps kernel messages and needs more processing.
        self.wraps_kernel = name == KMSGD_ULOG_NAME
        if self.wraps_kernel:
            self.label = "K"
            self.path = KMSGD_PATH

    def keep_binary_for(self, log_format: LogFormat) -> None:
        """Keep binary entries only when they can be rendered."""
        self.keep_binary = LogFormat(log_format) == LogFormat.CSV

    def receive_entry(self, frame: Frame) -> bool:
        """Read one entry into ``frame``; False when it is to be skipped."""
        try:
            data = os.read(self.fd, _READ_SIZE)
        except OSError as exc:
            if exc.errno in (errno.EINTR, errno.EAGAIN):
                return False
            raise UlogcatError(f"read({self.path}): {exc.strerror}") from exc
        if not data:
            raise UlogcatError(f"read({self.path}): unexpected EOF")
        try:
            entry = self.decoder(data)
        except ValueError as exc:
            raise UlogcatError(f"read({self.path}): invalid entry: {exc}") from exc
        frame.entry = entry
        frame.data = data
        frame.stamp = entry.tv_sec * 1_000_000 + entry.tv_nsec // 1000
        frame.device = self
        # "dropped entries" notices do not count as buffered data
        if entry.pid != -1 or entry.tid != -1:
            self.mark_readable -= len(data)
        return not (entry.is_binary and not self.keep_binary)

    def parse_entry(self, frame: Frame) -> None:
        """Finish parsing; only kmsgd entries need it."""
        if self.wraps_kernel:
            fix_kmsgd_entry(frame.entry)

    def clear(self) -> None:
        """Flush the buffer of this device."""
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_NONBLOCK)
        except OSError as exc:
            raise UlogcatError(f"cannot open {self.path}: {exc.strerror}") from exc
        try:
            fcntl.ioctl(fd, ULOGGER_FLUSH_LOG)
        except OSError as exc:
            raise UlogcatError(
                f"ioctl({self.path}, ULOGGER_FLUSH_LOG): {exc.strerror}"
            ) from exc
        finally:
            os.close(fd)

    def close(self) -> None:
        """Close the device descriptor."""
        if self.fd >= 0:
            os.close(self.fd)
            self.fd = -1