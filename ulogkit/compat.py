"""Legacy reader interface, kept on top of UlogcatContext."""

from __future__ import annotations

from dataclasses import dataclass

from .core import UlogcatContext, open_context
from .options import Flag, LogFormat, Options, UlogcatError


@dataclass
class LegacyOptions:
    """Options of the legacy interface; binary, getsize and rotation are gone."""

    log_format: LogFormat = LogFormat.ALIGNED
    binary: bool = False
    clear: bool = False
    tail: int = 0
    getsize: bool = False
    rotate_size: int = 0
    rotate_logs: int = 0
    rotate_filename: str | None = None
    dump: bool = False
    color: bool = False
    output_fd: int = -1


class LegacyContext:
    """Collects device names and opens the reader lazily on first use."""

    def __init__(self, opts: LegacyOptions) -> None:
        if opts.binary or opts.getsize or opts.rotate_filename:
            raise UlogcatError("option not supported anymore")
        flags = Flag.ULOG
        if opts.color:
            flags |= Flag.COLOR
        if opts.dump:
            flags |= Flag.DUMP
        self.options = Options(
            log_format=opts.log_format,
            flags=flags,
            tail=opts.tail,
            output_fd=opts.output_fd,
        )
        self.clear_buffers = bool(opts.clear)
        self.devices: list[str] = []
        self.context: UlogcatContext | None = None

    def add_device(self, name: str) -> None:
        """Add a ulog buffer to read."""
        self.devices.append(name)

    def process_logs(self) -> int:
        """Clear the buffers, or output logs until a dump is complete."""
        if self.context is None:
            self.context = open_context(self.options, self.devices)
        if self.clear_buffers:
            self.context.clear()
            return 0
        while True:
            ret = self.context.process_logs(0)
            if ret <= 0:
                return ret

    def close(self) -> None:
        """Release the reader."""
        if self.context is not None:
            self.context.close()
            self.context = None