import io

import pytest

from ulogkit.options import (
    ULOG_CRIT,
    ULOG_DEBUG,
    ULOG_ERR,
    ULOG_INFO,
    ULOG_NOTICE,
    ULOG_WARN,
)
from ulogkit.ulogger_cli import main, parse_int32, parse_level, parse_time, skip_spaces


@pytest.mark.parametrize(
    "c, level",
    [
        ("C", ULOG_CRIT),
        ("E", ULOG_ERR),
        ("W", ULOG_WARN),
        ("N", ULOG_NOTICE),
        ("I", ULOG_INFO),
        ("D", ULOG_DEBUG),
        ("x", ULOG_INFO),
        ("", ULOG_INFO),
        ("3", ULOG_ERR),
        ("9", ULOG_DEBUG),
    ],
)
def test_parse_level(c, level):
    assert parse_level(c) == level


def test_parse_int32_values():
    assert parse_int32("42") == 42
    assert parse_int32("-3") == -3


@pytest.mark.parametrize("text", ["", "12a", "abc", "1 2"])
def test_parse_int32_rejects(text):
    with pytest.raises(ValueError):
        parse_int32(text)


def test_parse_time_full():
    assert parse_time("10 20 msg") == ((10, 20), " msg")


def test_parse_time_without_nanoseconds():
    assert parse_time("10 msg") == ((10, 0), "msg")


def test_parse_time_missing():
    assert parse_time("abc") == (None, "abc")
    assert parse_time(" 10") == (None, " 10")
    assert parse_time("12x") == (None, "x")


def test_skip_spaces():
    assert skip_spaces("   hi there") == "hi there"
    assert skip_spaces("") == ""


@pytest.fixture
def no_device(monkeypatch):
    monkeypatch.setenv("ULOG_DEVICE", "nonexistent-ulogkit-test")


def _echoed(err, prefix):
    return [line for line in err.splitlines() if line.startswith(prefix)]


def test_copy_to_stderr(no_device, capsys):
    assert main(["-s", "-t", "mytag", "-p", "W", "hello"]) == 0
    err = capsys.readouterr().err
    assert "cannot open /dev/ulog_nonexistent-ulogkit-test" in err
    assert "W mytag: hello\n" in err


def test_long_prio_option(no_device, capsys):
    main(["--stderr", "--prio=E", "oops"])
    assert _echoed(capsys.readouterr().err, "E ulogger:") == ["E ulogger: oops"]


def test_each_argument_is_a_message(no_device, capsys):
    main(["-s", "a", "b"])
    assert _echoed(capsys.readouterr().err, "I ulogger:") == [
        "I ulogger: a",
        "I ulogger: b",
    ]


def test_time_arguments_are_consumed(no_device, capsys):
    main(["-s", "-m", "1", "2", "msg"])
    assert _echoed(capsys.readouterr().err, "I ulogger:") == ["I ulogger: msg"]


def test_last_argument_is_always_message(no_device, capsys):
    main(["-s", "-m", "1", "msg"])
    assert _echoed(capsys.readouterr().err, "I ulogger:") == ["I ulogger: msg"]


def test_non_numeric_time_is_message(no_device, capsys):
    main(["-s", "-m", "x", "y"])
    assert _echoed(capsys.readouterr().err, "I ulogger:") == [
        "I ulogger: x",
        "I ulogger: y",
    ]


def test_stdin_lines_with_time(no_device, capsys, monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("5 7 hello\nplain\n"))
    main(["-s", "-m"])
    assert _echoed(capsys.readouterr().err, "I ulogger:") == [
        "I ulogger: hello",
        "I ulogger: plain",
    ]


def test_empty_message_gets_newline(no_device, capsys):
    main(["-s", ""])
    assert "I ulogger: \n" in capsys.readouterr().err


def test_help(no_device, capsys):
    with pytest.raises(SystemExit) as info:
        main(["-h"])
    assert info.value.code == 0
    assert "Usage: ulogger" in capsys.readouterr().err


def test_bad_option(no_device, capsys):
    with pytest.raises(SystemExit) as info:
        main(["-z"])
    assert info.value.code == 1