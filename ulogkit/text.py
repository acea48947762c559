"""Text rendering of log entries."""

from __future__ import annotations

import os
import time

from .options import DEFAULT_COLORS, Flag, LogEntry, LogFormat

ANSI_NONE = "\x1b[0m"
PRIORITY_CHARS = "  CEWNID"
_COLOR_SLOT = 32
_BANNER_PREFIX = "---------------------------------------"


def setup_colors(spec: str | None = None) -> list[str]:
    """Build the 8 per-priority ANSI sequences from a '|'-separated spec."""
    if spec is None:
        spec = DEFAULT_COLORS
    parts = spec.split("|")
    colors = []
    for i in range(8):
        seq = parts[i] if i < len(parts) else ""
        colors.append(f"\x1b[{seq}m"[: _COLOR_SLOT - 1] if seq else "")
    return colors


def _as_text(message: str | bytes) -> str:
    if isinstance(message, bytes):
        message = message.decode("utf-8", errors="replace")
    return message.split("\0", 1)[0]


def _as_bytes(message: str | bytes) -> bytes:
    return message if isinstance(message, bytes) else message.encode("utf-8")


def format_csv(entry: LogEntry) -> str:
    """Render an entry as one CSV line; binary payloads are hex-dumped."""
    if entry.is_binary:
        payload = _as_bytes(entry.message).hex()
    else:
        payload = _as_text(entry.message)
    prefix = "0x%08x,0x%08x,%d,0x%06x,%d,%s,%s,%d,%s,%d,%d," % (
        entry.tv_sec & 0xFFFFFFFF,
        entry.tv_nsec & 0xFFFFFFFF,
        entry.priority,
        entry.color & 0xFFFFFFFF,
        int(bool(entry.is_binary)),
        entry.tag,
        entry.pname,
        entry.pid,
        entry.tname,
        entry.tid,
        len(payload),
    )
    return f"{prefix}{payload}\n"


def _split_lines(message: str) -> list[str]:
    lines = []
    rest = message
    while True:
        head, sep, tail = rest.partition("\n")
        lines.append(head)
        if not sep or not tail:
            return lines
        rest = tail


class TextRenderer:
    """Renders entries as text lines in one of the supported formats."""

    def __init__(
        self,
        log_format: LogFormat = LogFormat.ALIGNED,
        flags: Flag = Flag(0),
        colors: list[str] | None = None,
    ) -> None:
        self.log_format = LogFormat(log_format)
        self.flags = Flag(flags)
        if colors is None and self.flags & Flag.COLOR:
            colors = setup_colors(os.environ.get("ULOGCAT_COLORS"))
        self.colors = list(colors) if colors is not None else [""] * 8

    def render(self, entry: LogEntry, label: str = "U", is_banner: bool = False) -> str:
        """Return the rendered text; empty when the entry is not displayable."""
        if is_banner:
            return f"{_BANNER_PREFIX}{_as_text(entry.message)}\n"
        if self.log_format == LogFormat.CSV:
            return format_csv(entry)
        if entry.is_binary:
            return ""
        return "".join(
            self._line(entry, line, label)
            for line in _split_lines(_as_text(entry.message))
        )

    def _line(self, entry: LogEntry, message: str, label: str) -> str:
        prio = entry.priority & 0x7
        colored = bool(self.flags & Flag.COLOR)
        cstart = self.colors[prio] if colored else ""
        cend = ANSI_NONE if colored else ""
        is_kernel = label == "K"
        clabel = ("K " if is_kernel else "U ") if self.flags & Flag.SHOW_LABEL else ""
        head = f"{cstart}{clabel}"
        cprio = PRIORITY_CHARS[prio]
        fmt = self.log_format

        if fmt == LogFormat.SHORT:
            return f"{head}{cprio} {entry.tag:<12}: {message}{cend}\n"

        if fmt == LogFormat.LONG:
            stamp = time.strftime("%m-%d %H:%M:%S", time.localtime(entry.tv_sec))
            millis = int(entry.tv_nsec / 1_000_000)
            if is_kernel:
                who = entry.tag
            elif entry.pid != entry.tid:
                who = (
                    f"{entry.tag:<12}({entry.pname}-{entry.pid}/"
                    f"{entry.tname}-{entry.tid})"
                )[:127]
            else:
                who = f"{entry.tag:<12}({entry.pname}-{entry.pid})"[:127]
            return f"{head}{stamp}.{millis:03d} {cprio} {who:<45}: {message}{cend}\n"

        if is_kernel:
            if fmt == LogFormat.PROCESS:
                return f"{head}{cprio} {entry.tag:<12}: {message}{cend}\n"
            return f"{head}{cprio} {entry.tag:<45}: {message}{cend}\n"

        thread = f"/{entry.tname}" if entry.pid != entry.tid else ""
        if fmt == LogFormat.PROCESS:
            return (
                f"{head}{cprio} {entry.tag:<12}({entry.pname}{thread}): "
                f"{message}{cend}\n"
            )
        who = f"{entry.tag:<12}({entry.pname}{thread})"[:127]
        return f"{head}{cprio} {who:<45}: {message}{cend}\n"