"""Syslog-style interface whose messages go to a ulog writer."""

from __future__ import annotations

import os
import threading
from collections.abc import Callable

from .options import ULOG_CRIT, ULOG_DEBUG, ULOG_INFO

ULOG_BUF_SIZE = 256
LOG_NDELAY = 0x08
_PRIO_LEVEL_MASK = 0x7


class SyslogRedirect:
    """Sends syslog calls to ``write(priority, tag, message)``.

    Facilities are ignored. Messages are truncated to the ulog buffer size
    unless the ULOGWRAPPER_LONG_LOGS environment variable is set when the
    log is opened. Messages above the current level are dropped.
    """

    def __init__(self, write: Callable[[int, str, str], object]) -> None:
        self._write = write
        self._lock = threading.Lock()
        self._init_done = False
        self.allow_long_logs = False
        self.name = ""
        self.level = -1
        self.buf_size = ULOG_BUF_SIZE

    def openlog(self, ident: str | None = None, option: int = 0) -> None:
        """Set the tag on first use; log a notice when LOG_NDELAY is given."""
        if not self._init_done:
            with self._lock:
                if not self._init_done:
                    if ident is not None:
                        self.name = ident
                    if os.environ.get("ULOGWRAPPER_LONG_LOGS") is not None:
                        self.allow_long_logs = True
                    self._init_done = True
        if option & LOG_NDELAY:
            self._emit(ULOG_INFO, "redirecting syslog to ulog")

    def _emit(self, priority: int, message: str) -> None:
        if self.level < 0:
            self.level = ULOG_INFO
        if priority > self.level:
            return
        self._write(priority, self.name, message)

    def syslog(self, priority: int, message: str) -> None:
        """Log an already formatted message."""
        if not self._init_done:
            self.openlog()
        raw = message.encode("utf-8", "surrogateescape")
        if len(raw) >= self.buf_size and not self.allow_long_logs:
            message = raw[: self.buf_size - 1].decode("utf-8", "ignore")
        self._emit(priority & _PRIO_LEVEL_MASK, message)

    def setlogmask(self, mask: int) -> int:
        """Set the level from the highest bit of ``mask``; return the old mask."""
        if not self._init_done:
            self.openlog()
        level = (mask & 0xFFFFFFFF).bit_length() - 1
        old_mask = (1 << (self.level + 1)) - 1
        self.level = min(max(level, ULOG_CRIT), ULOG_DEBUG)
        return old_mask

    def closelog(self) -> None:
        """Nothing is held open; kept for interface compatibility."""