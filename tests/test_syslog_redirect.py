import pytest

from ulogkit.options import ULOG_CRIT, ULOG_DEBUG, ULOG_ERR, ULOG_INFO
from ulogkit.syslog_redirect import LOG_NDELAY, ULOG_BUF_SIZE, SyslogRedirect


@pytest.fixture
def records(monkeypatch):
    monkeypatch.delenv("ULOGWRAPPER_LONG_LOGS", raising=False)
    return []


def _writer(records):
    return lambda prio, tag, msg: records.append((prio, tag, msg))


def test_openlog_ndelay_logs_notice(records):
    redirect = SyslogRedirect(_writer(records))
    redirect.openlog("myapp", LOG_NDELAY)
    assert records == [(ULOG_INFO, "myapp", "redirecting syslog to ulog")]


def test_openlog_tag_used(records):
    redirect = SyslogRedirect(_writer(records))
    redirect.openlog("myapp", 0)
    assert records == []
    redirect.syslog(ULOG_INFO, "hello")
    assert records == [(ULOG_INFO, "myapp", "hello")]


def test_ident_only_set_once(records):
    redirect = SyslogRedirect(_writer(records))
    redirect.openlog("first")
    redirect.openlog("second")
    redirect.syslog(ULOG_INFO, "x")
    assert records == [(ULOG_INFO, "first", "x")]


def test_untagged_without_openlog(records):
    redirect = SyslogRedirect(_writer(records))
    redirect.syslog(ULOG_INFO, "x")
    assert records == [(ULOG_INFO, "", "x")]


def test_facility_is_masked(records):
    redirect = SyslogRedirect(_writer(records))
    redirect.syslog((1 << 3) | ULOG_ERR, "fail")
    assert records == [(ULOG_ERR, "", "fail")]


def test_long_message_truncated(records):
    redirect = SyslogRedirect(_writer(records))
    redirect.syslog(ULOG_INFO, "a" * 1000)
    assert records[0][2] == "a" * (ULOG_BUF_SIZE - 1)


def test_long_logs_allowed(records, monkeypatch):
    monkeypatch.setenv("ULOGWRAPPER_LONG_LOGS", "1")
    redirect = SyslogRedirect(lambda p, t, m: records.append(m))
    redirect.syslog(ULOG_INFO, "a" * 1000)
    assert records == ["a" * 1000]


def test_first_setlogmask_returns_empty_mask(records):
    redirect = SyslogRedirect(_writer(records))
    assert redirect.setlogmask(0xFF) == 0


@pytest.mark.parametrize("mask", [0x07, 0x0F, 0x3F, 0xFF])
def test_setlogmask_round_trip(records, mask):
    redirect = SyslogRedirect(_writer(records))
    redirect.setlogmask(mask)
    assert redirect.setlogmask(mask) == mask


def test_setlogmask_filters(records):
    redirect = SyslogRedirect(_writer(records))
    redirect.setlogmask(0x0F)
    redirect.syslog(ULOG_DEBUG, "debug")
    redirect.syslog(ULOG_CRIT, "crit")
    assert records == [(ULOG_CRIT, "", "crit")]


def test_setlogmask_clamps_low(records):
    redirect = SyslogRedirect(_writer(records))
    redirect.setlogmask(1)
    assert redirect.level == ULOG_CRIT
    assert redirect.setlogmask(0xFF) == 0x07


def test_closelog_keeps_logging(records):
    redirect = SyslogRedirect(_writer(records))
    redirect.closelog()
    redirect.syslog(ULOG_INFO, "still")
    assert records == [(ULOG_INFO, "", "still")]