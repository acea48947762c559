"""Per-tag log levels kept in a registry of named cookies."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from .options import (
    ULOG_CRIT,
    ULOG_DEBUG,
    ULOG_ERR,
    ULOG_INFO,
    ULOG_NOTICE,
    ULOG_WARN,
)

DEFAULT_COOKIE_NAME = "threadx"
PRIO_LEVEL_MASK = 0x7

_LETTER_LEVELS = {
    "C": ULOG_CRIT,
    "D": ULOG_DEBUG,
    "E": ULOG_ERR,
    "I": ULOG_INFO,
    "N": ULOG_NOTICE,
    "W": ULOG_WARN,
}
_PRIORITY_CHARS = "  CEWNID"


def parse_level(c: str) -> int:
    """Return the level described by a digit or an upper-case letter.

    Unknown characters give level 0; levels above debug are clamped.
    """
    ch = c[:1]
    if ch and ch in "0123456789":
        level = int(ch)
    elif ch and "A" <= ch <= "Z":
        level = _LETTER_LEVELS.get(ch, 0)
    else:
        level = 0
    return min(level, ULOG_DEBUG)


def prio_to_char(prio: int) -> str:
    """Return the one-letter marker of a priority, a space when out of range."""
    if prio < 0 or prio > ULOG_DEBUG:
        return " "
    return _PRIORITY_CHARS[prio]


def console_priority(prio: int, message: str | bytes) -> int:
    """Return the level of a console message.

    Without an explicit priority, a message starting with a red color
    sequence ('\\033[1...') counts as an error, anything else as info.
    """
    if prio != 0:
        return prio & PRIO_LEVEL_MASK
    if isinstance(message, bytes):
        message = message.decode("latin-1")
    if len(message) >= 6 and message[0] == "\x1b" and message[5] == "1":
        return ULOG_ERR
    return ULOG_INFO


@dataclass(eq=False)
class Cookie:
    """A named log tag; a negative level means not registered yet."""

    name: str
    level: int = -1


class CookieRegistry:
    """Registry of cookies, newest first, with a default cookie at the end."""

    def __init__(self, default_level: int = ULOG_INFO) -> None:
        self._lock = threading.Lock()
        self.default = Cookie(DEFAULT_COOKIE_NAME, default_level)
        self._cookies: list[Cookie] = [self.default]

    def register(self, cookie: Cookie) -> None:
        """Give an unregistered cookie the default level and add it."""
        if cookie.level >= 0:
            return
        level = self.default.level if self.default.level >= 0 else ULOG_INFO
        with self._lock:
            if cookie.level < 0:
                self._cookies.insert(0, cookie)
                cookie.level = level

    def set_level(self, cookie: Cookie, level: int) -> None:
        """Set the level of a cookie, clamped to the valid range."""
        level = min(max(level, 0), ULOG_DEBUG)
        self.register(cookie)
        cookie.level = level

    def get_level(self, cookie: Cookie) -> int:
        """Return the level of a cookie, registering it first if needed."""
        self.register(cookie)
        return cookie.level

    def _find(self, name: str) -> Cookie:
        with self._lock:
            for cookie in self._cookies:
                if cookie.name == name:
                    return cookie
        raise KeyError(name)

    def set_tag_level(self, name: str, level: int) -> None:
        """Set the level of the cookie called ``name``; KeyError if unknown."""
        self.set_level(self._find(name), level)

    def get_tag_level(self, name: str) -> int:
        """Return the level of the cookie called ``name``; KeyError if unknown."""
        return self._find(name).level

    def tag_names(self, limit: int | None = None) -> list[str]:
        """Return the names of registered cookies, newest first."""
        with self._lock:
            names = [cookie.name for cookie in self._cookies]
        if limit is None:
            return names
        return names[: max(limit, 0)]