"""Merging, buffering and output of log entries read from several devices."""

from __future__ import annotations

import fcntl
import os
import select
import struct
import sys
from collections import deque
from collections.abc import Iterable
from typing import Any

from .klog import KernelLogDevice
from .options import (
    KMSGD_ULOG_NAME,
    ULOG_INFO,
    Flag,
    Frame,
    LogEntry,
    LogFormat,
    Options,
    UlogcatError,
)
from .text import TextRenderer
from .ulogdev import (
    ULOGGER_GET_LOG_LEN,
    UlogDevice,
    device_path,
    list_ulog_devices,
)

_BANNER_MAX = 127

# Layout of a raw entry returned by a ulogger device.
_ULOGGER_HEADER = struct.Struct("=HHiiiii")
_PRIORITY = struct.Struct("=I")
_PRIO_LEVEL_MASK = 0x7
_PRIO_BINARY_SHIFT = 7
_PRIO_COLOR_SHIFT = 8


def _cstring(data: bytes, pos: int) -> tuple[str, int]:
    end = data.find(b"\0", pos)
    if end < 0:
        raise ValueError("unterminated string field")
    return data[pos:end].decode("utf-8", errors="replace"), end + 1


def _decode_ulogger_entry(data: bytes) -> LogEntry:
    """Decode one raw ulogger entry; raise ValueError when it is malformed."""
    size = _ULOGGER_HEADER.size
    if len(data) < size:
        raise ValueError("truncated entry header")
    length, hdr_size, pid, tid, sec, nsec, _euid = _ULOGGER_HEADER.unpack_from(data)
    if length != len(data) - size:
        raise ValueError(f"unexpected length {len(data) - size}")
    pos = hdr_size if hdr_size >= size else size
    pname, pos = _cstring(data, pos)
    tname, pos = _cstring(data, pos)
    if len(data) < pos + _PRIORITY.size:
        raise ValueError("missing priority field")
    (prio,) = _PRIORITY.unpack_from(data, pos)
    pos += _PRIORITY.size
    tag, pos = _cstring(data, pos)
    payload = data[pos:]
    is_binary = bool((prio >> _PRIO_BINARY_SHIFT) & 1)
    if is_binary:
        message: str | bytes = payload
    else:
        message = payload.split(b"\0", 1)[0].decode("utf-8", errors="replace")
    return LogEntry(
        tv_sec=sec,
        tv_nsec=nsec,
        priority=prio & _PRIO_LEVEL_MASK,
        pid=pid,
        pname=pname,
        tid=tid,
        tname=tname,
        tag=tag,
        message=message,
        is_binary=is_binary,
        color=prio >> _PRIO_COLOR_SHIFT,
    )


class UlogcatContext:
    """Reads entries from a set of devices, merges them by time and outputs them.

    Devices must provide ``fd``, ``path``, ``label``, ``mark_readable`` and the
    methods ``receive_entry``, ``parse_entry``, ``clear`` and ``close``.
    """

    def __init__(self, options: Options, devices: Iterable[Any]) -> None:
        self.options = options
        self.log_format = options.log_format
        self.flags = options.flags
        self.tail = options.tail
        self.output = options.output
        self.output_fd = options.output_fd
        if self.output_fd < 0 and self.output is None:
            self.output = sys.stdout
        self.output_error = False
        self.mark_reached = False
        self.devices = list(devices)
        if not self.devices:
            raise UlogcatError("could not open any device")
        for idx, dev in enumerate(self.devices):
            dev.idx = idx
            dev.printed = False
            dev.pending = False
        self.renderer = TextRenderer(self.log_format, self.flags)
        self._pending: list[Frame] = []
        self._render: deque[Frame] = deque()

    def __enter__(self) -> UlogcatContext:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _output(self, text: str) -> None:
        if self.output_error or not text:
            return
        try:
            if self.output is not None:
                self.output.write(text)
                self.output.flush()
            elif self.output_fd >= 0:
                view = memoryview(text.encode("utf-8", errors="replace"))
                while view:
                    view = view[os.write(self.output_fd, view):]
        except (OSError, ValueError):
            self.output_error = True

    def _flush_banner(self, ref: Frame) -> None:
        dev = ref.device
        sec = ref.stamp // 1_000_000
        entry = LogEntry(
            tv_sec=sec,
            tv_nsec=(ref.stamp - sec * 1_000_000) * 1000,
            priority=ULOG_INFO,
            pid=os.getpid(),
            tid=os.getpid(),
            tag="ulogcat",
            message=f"------------- beginning of {dev.path}"[:_BANNER_MAX],
            color=0xFFFFFF,
        )
        self._output(self.renderer.render(entry, dev.label, True))

    def _flush_frame(self, frame: Frame) -> None:
        dev = frame.device
        # show where each device starts in the merged stream
        if not dev.printed and len(self.devices) > 1:
            self._flush_banner(frame)
            dev.printed = True
        try:
            dev.parse_entry(frame)
        except UlogcatError:
            return
        self._output(self.renderer.render(frame.entry, dev.label))

    def _oldest_pending(self) -> Frame | None:
        return min(self._pending, key=lambda frame: frame.stamp, default=None)

    def _take_pending(self, frame: Frame) -> None:
        self._pending.remove(frame)
        frame.device.pending = False

    def _flush_pending(self, drop: bool) -> None:
        frame = self._oldest_pending()
        if frame is None:
            return
        if not drop:
            self._flush_frame(frame)
        self._take_pending(frame)

    def _enqueue_render(self, frame: Frame) -> None:
        self._render.append(frame)
        # keep only as many frames as tailing lines wanted
        if len(self._render) > self.tail:
            self._render.popleft()

    def _update_mark_reached(self) -> None:
        if not self.mark_reached and all(
            dev.mark_readable <= 0 for dev in self.devices
        ):
            self.mark_reached = True

    def _process_tail_flush(self) -> None:
        if not self.tail or not self.mark_reached:
            return
        while len(self._render) + len(self._pending) > self.tail:
            if self._render:
                self._render.popleft()
            else:
                self._flush_pending(drop=True)
        while self._render:
            self._flush_frame(self._render.popleft())
        self.tail = 0

    def _process_devices(self, timeout_ms: int) -> int:
        if self._pending or (not self.mark_reached and self.tail > 0):
            timeout_ms = 0
        poller = select.poll()
        for dev in self.devices:
            if not dev.pending and dev.fd >= 0:
                poller.register(dev.fd, select.POLLIN)
        try:
            events = dict(poller.poll(None if timeout_ms < 0 else timeout_ms))
        except InterruptedError:
            return 0
        except OSError as exc:
            raise UlogcatError(f"poll: {exc.strerror}") from exc

        frames = 0
        for dev in self.devices:
            if dev.pending:
                continue
            if not events.get(dev.fd, 0) & select.POLLIN:
                if dev.fd >= 0 and dev.mark_readable > 0:
                    # nothing left of what was readable at start
                    dev.mark_readable = 0
                continue
            frame = Frame()
            if not dev.receive_entry(frame):
                return 0
            self._pending.append(frame)
            dev.pending = True
            frames += 1

        frame = self._oldest_pending()
        if frame is not None:
            self._take_pending(frame)
            if self.tail > 0:
                self._enqueue_render(frame)
            else:
                self._flush_frame(frame)

        self._update_mark_reached()
        self._process_tail_flush()
        return frames

    def process_logs(self, max_entries: int = 0) -> int:
        """Read, render and output entries.

        At most ``max_entries`` frames are read when it is not 0. Returns 0
        when a dump is complete, otherwise the number of frames read by the
        last pass. Blocks unless the DUMP flag is set.
        """
        timeout_ms = 0 if self.flags & Flag.DUMP else -1
        frames = 0
        while True:
            ret = self._process_devices(timeout_ms)
            frames += ret
            if self.flags & Flag.DUMP and self.mark_reached:
                while self._pending:
                    self._flush_pending(drop=False)
                return 0
            if self.output_error:
                raise UlogcatError("cannot output rendered entries")
            if max_entries and frames >= max_entries:
                return ret

    def clear(self) -> None:
        """Clear the buffers of every device."""
        for dev in self.devices:
            dev.clear()

    def close(self) -> None:
        """Close every device and the output."""
        for dev in self.devices:
            dev.close()
        self.devices = []
        self._pending.clear()
        self._render.clear()
        if self.output_fd >= 0:
            os.close(self.output_fd)
            self.output_fd = -1
        if self.output is not None:
            if self.output not in (sys.stdout, sys.stderr):
                self.output.close()
            self.output = None


def _open_ulog_device(name: str, log_format: LogFormat) -> UlogDevice:
    path = device_path(name)
    try:
        fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
    except OSError as exc:
        raise UlogcatError(f"cannot open {path}: {exc.strerror}") from exc
    try:
        mark = fcntl.ioctl(fd, ULOGGER_GET_LOG_LEN)
    except OSError as exc:
        os.close(fd)
        raise UlogcatError(
            f"ioctl({path}, ULOGGER_GET_LOG_LEN): {exc.strerror}"
        ) from exc
    device = UlogDevice(name, fd, mark, _decode_ulogger_entry)
    device.keep_binary_for(log_format)
    return device


def open_context(
    options: Options, names: Iterable[str] | None = None
) -> UlogcatContext:
    """Open the requested devices and return a context reading them.

    Without explicit ulog buffer names, every ulog buffer is opened when the
    ULOG flag is set. With the KLOG flag, /dev/kmsg is read, or the kmsgd
    ulog buffer on kernels that cannot provide it.
    """
    devices: list[Any] = []
    try:
        wanted = [name for name in (names or ()) if name != KMSGD_ULOG_NAME]
        for name in wanted:
            devices.append(_open_ulog_device(name, options.log_format))
        if not wanted and options.flags & Flag.ULOG:
            for name in list_ulog_devices():
                devices.append(_open_ulog_device(name, options.log_format))
        if options.flags & Flag.KLOG:
            try:
                devices.append(KernelLogDevice.open())
            except UlogcatError:
                devices.append(_open_ulog_device(KMSGD_ULOG_NAME, options.log_format))
        return UlogcatContext(options, devices)
    except BaseException:
        for dev in devices:
            dev.close()
        raise