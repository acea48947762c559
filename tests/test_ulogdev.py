import os

import pytest

from ulogkit.options import LogEntry, LogFormat, Frame, UlogcatError
from ulogkit.ulogdev import UlogDevice, device_path, list_ulog_devices


def decode(data):
    text = data.decode()
    if text.startswith("bad"):
        raise ValueError("bad entry")
    sec, _, rest = text.partition(" ")
    return LogEntry(
        tv_sec=int(sec),
        tv_nsec=5000,
        pid=10,
        tid=10,
        tag="t",
        message=rest,
        is_binary=rest.startswith("bin"),
    )


def decode_dropped(data):
    return LogEntry(pid=-1, tid=-1, message=data.decode())


@pytest.fixture
def pipe():
    r, w = os.pipe()
    yield r, w
    for fd in (r, w):
        try:
            os.close(fd)
        except OSError:
            pass


def test_device_path():
    assert device_path("main") == "/dev/ulog_main"


def test_device_path_truncated():
    path = device_path("x" * 100)
    assert len(path) == 63
    assert path.startswith("/dev/ulog_x")


def test_list_devices(tmp_path):
    logs = tmp_path / "logs"
    logs.write_text("ulog_main 123\nulog_kmsgd 4\nulog_radio 5\n")
    assert list_ulog_devices(str(logs)) == ["main", "radio"]


def test_list_devices_skips_lines_without_space(tmp_path):
    logs = tmp_path / "logs"
    logs.write_text("ulog_main\nulog_radio 5\n")
    assert list_ulog_devices(str(logs)) == ["radio"]


def test_list_devices_falls_back_to_main(tmp_path):
    assert list_ulog_devices(str(tmp_path / "missing")) == ["main"]


def test_receive_entry(pipe):
    r, w = pipe
    payload = b"2 hello"
    os.write(w, payload)
    device = UlogDevice("main", r, 100, decode)
    frame = Frame()
    assert device.receive_entry(frame) is True
    assert frame.entry.message == "hello"
    assert frame.stamp == 2000005
    assert frame.device is device
    assert frame.data == payload
    assert device.mark_readable == 100 - len(payload)
    assert device.path == "/dev/ulog_main"
    assert device.label == "U"


def test_stamps_follow_entry_time(pipe):
    r, w = pipe
    device = UlogDevice("main", r, 0, decode)
    first, second = Frame(), Frame()
    os.write(w, b"1 a")
    device.receive_entry(first)
    os.write(w, b"3 b")
    device.receive_entry(second)
    assert first.stamp < second.stamp


def test_dropped_entries_notice_keeps_mark(pipe):
    r, w = pipe
    os.write(w, b"lost 5")
    device = UlogDevice("main", r, 50, decode_dropped)
    assert device.receive_entry(Frame())
    assert device.mark_readable == 50


def test_binary_entry_skipped_unless_csv(pipe):
    r, w = pipe
    device = UlogDevice("main", r, 0, decode)
    os.write(w, b"1 binary")
    assert device.receive_entry(Frame()) is False
    device.keep_binary_for(LogFormat.CSV)
    os.write(w, b"1 binary")
    frame = Frame()
    assert device.receive_entry(frame) is True
    assert frame.entry.is_binary is True


def test_invalid_entry_raises(pipe):
    r, w = pipe
    os.write(w, b"bad data")
    device = UlogDevice("main", r, 0, decode)
    with pytest.raises(UlogcatError):
        device.receive_entry(Frame())


def test_eof_raises(pipe):
    r, w = pipe
    os.close(w)
    device = UlogDevice("main", r, 0, decode)
    with pytest.raises(UlogcatError):
        device.receive_entry(Frame())


def test_nothing_to_read(pipe):
    r, _ = pipe
    os.set_blocking(r, False)
    device = UlogDevice("main", r, 0, decode)
    assert device.receive_entry(Frame()) is False


def test_kmsgd_device_parses_kernel_lines(pipe):
    r, w = pipe
    os.write(w, b"0 <4>[7.000001] disk ready")
    device = UlogDevice("kmsgd", r, 0, decode)
    assert device.label == "K"
    assert device.path == "/proc/kmsg"
    frame = Frame()
    assert device.receive_entry(frame)
    device.parse_entry(frame)
    assert frame.entry.message == "disk ready"
    assert frame.entry.priority == 4
    assert frame.entry.tv_sec == 7
    assert frame.entry.tag == "KERNEL"


def test_regular_parse_entry_is_unchanged(pipe):
    r, w = pipe
    os.write(w, b"1 <4>[7.000001] text")
    device = UlogDevice("main", r, 0, decode)
    frame = Frame()
    device.receive_entry(frame)
    device.parse_entry(frame)
    assert frame.entry.message == "<4>[7.000001] text"
    assert frame.entry.tag == "t"


def test_clear_missing_device():
    device = UlogDevice("ulogkit-test-no-such-buffer", -1, 0, decode)
    with pytest.raises(UlogcatError):
        device.clear()


def test_close(pipe):
    r, _ = pipe
    device = UlogDevice("main", r, 0, decode)
    device.close()
    assert device.fd == -1
    with pytest.raises(OSError):
        os.fstat(r)