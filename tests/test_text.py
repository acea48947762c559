import pytest

from ulogkit.options import DEFAULT_COLORS, Flag, LogEntry, LogFormat
from ulogkit.text import ANSI_NONE, TextRenderer, format_csv, setup_colors


def make_entry(**kwargs):
    values = dict(
        tv_sec=1,
        tv_nsec=123_456_789,
        priority=6,
        pid=10,
        pname="proc",
        tid=11,
        tname="thr",
        tag="tag",
        message="hello",
    )
    values.update(kwargs)
    return LogEntry(**values)


def test_setup_colors_default():
    assert setup_colors(None) == [
        "",
        "",
        "\x1b[4;1;31m",
        "\x1b[1;31m",
        "\x1b[1;33m",
        "\x1b[35m",
        "",
        "\x1b[1;30m",
    ]
    assert setup_colors(DEFAULT_COLORS) == setup_colors(None)


def test_setup_colors_empty_and_partial():
    assert setup_colors("") == [""] * 8
    colors = setup_colors("31")
    assert colors[0] == "\x1b[31m"
    assert colors[1:] == [""] * 7


def test_csv_text_entry():
    line = format_csv(make_entry(tv_nsec=2, color=0))
    assert line == "0x00000001,0x00000002,6,0x000000,0,tag,proc,10,thr,11,5,hello\n"


def test_csv_binary_entry_hex_dump():
    payload = b"\x00\xffAB"
    line = format_csv(make_entry(message=payload, is_binary=True))
    fields = line.rstrip("\n").split(",")
    assert fields[4] == "1"
    assert fields[-1] == payload.hex()
    assert int(fields[-2]) == 2 * len(payload)


def test_csv_stops_at_nul():
    line = format_csv(make_entry(message="abc\0def"))
    assert line.endswith(",3,abc\n")


def test_short_line():
    out = TextRenderer(LogFormat.SHORT).render(make_entry())
    assert out == "I tag         : hello\n"


def test_short_tag_padding():
    out = TextRenderer(LogFormat.SHORT).render(make_entry(tag="x"))
    head, message = out.split(": ", 1)
    assert len(head) == len("I ") + 12
    assert message == "hello\n"


def test_multiline_message_split():
    renderer = TextRenderer(LogFormat.SHORT)
    out = renderer.render(make_entry(message="one\ntwo\n"))
    lines = out.splitlines()
    assert len(lines) == 2
    assert lines[0].endswith(": one") and lines[1].endswith(": two")


def test_blank_line_in_middle_kept():
    out = TextRenderer(LogFormat.SHORT).render(make_entry(message="a\n\nb"))
    assert [line.split(": ", 1)[1] for line in out.splitlines()] == ["a", "", "b"]


def test_binary_entry_dropped_in_text_mode():
    renderer = TextRenderer(LogFormat.ALIGNED)
    assert renderer.render(make_entry(message=b"\x01", is_binary=True)) == ""


def test_csv_renderer_keeps_binary():
    renderer = TextRenderer(LogFormat.CSV)
    entry = make_entry(message=b"\x01\x02", is_binary=True)
    assert renderer.render(entry) == format_csv(entry)


def test_aligned_ulog_thread_shown_when_pid_differs():
    renderer = TextRenderer(LogFormat.ALIGNED)
    out = renderer.render(make_entry())
    head = out.split(": ", 1)[0]
    assert "(proc/thr)" in head
    assert len(head) == len("I ") + 45
    same = renderer.render(make_entry(tid=10))
    assert "(proc)" in same and "/thr" not in same


def test_process_format():
    out = TextRenderer(LogFormat.PROCESS).render(make_entry())
    assert out.startswith("I tag")
    assert "(proc/thr): hello\n" in out


def test_long_format_contains_millis_and_ids():
    out = TextRenderer(LogFormat.LONG).render(make_entry())
    assert ".123 I " in out
    assert "(proc-10/thr-11)" in out
    same = TextRenderer(LogFormat.LONG).render(make_entry(tid=10))
    assert "(proc-10)" in same


@pytest.mark.parametrize("fmt", [LogFormat.SHORT, LogFormat.ALIGNED, LogFormat.PROCESS])
def test_kernel_lines_have_no_process_info(fmt):
    out = TextRenderer(fmt).render(make_entry(tag="KERNEL"), label="K")
    assert "proc" not in out
    assert out.endswith(": hello\n")


def test_kernel_aligned_padding():
    out = TextRenderer(LogFormat.ALIGNED).render(make_entry(tag="KERNEL"), label="K")
    assert len(out.split(": ", 1)[0]) == len("I ") + 45


@pytest.mark.parametrize("label", ["U", "K"])
def test_show_label(label):
    renderer = TextRenderer(LogFormat.SHORT, Flag.SHOW_LABEL)
    out = renderer.render(make_entry(message="a\nb"), label=label)
    assert all(line.startswith(label + " ") for line in out.splitlines())


def test_color_wraps_line():
    colors = setup_colors("1|2|3|4|5|6|7|8")
    renderer = TextRenderer(LogFormat.SHORT, Flag.COLOR, colors)
    out = renderer.render(make_entry(priority=3))
    assert out.startswith(colors[3])
    assert out.endswith(ANSI_NONE + "\n")


def test_color_from_environment(monkeypatch):
    monkeypatch.setenv("ULOGCAT_COLORS", "|||||||9")
    renderer = TextRenderer(LogFormat.SHORT, Flag.COLOR)
    assert renderer.render(make_entry(priority=7)).startswith("\x1b[9m")
    assert renderer.render(make_entry(priority=6)).startswith("D" if False else "I")


def test_banner():
    out = TextRenderer(LogFormat.LONG).render(make_entry(message="X"), is_banner=True)
    assert out.endswith("X\n")
    assert set(out[:-2]) == {"-"}
    assert len(out) > 3