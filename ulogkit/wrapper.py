"""Start a program with its syslog calls redirected to ulog."""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping

WRAPPER = "/usr/lib/libulog_syslogwrap.so"
MAIN_DEVICE_PATH = "/dev/ulog_main"

_DEVICE_PATH_MAX = 31
_PRELOAD_MAX = 4095


def build_environment(env: Mapping[str, str], device_available: bool) -> dict[str, str]:
    """Return the environment the wrapped program runs with.

    When the ulog device is available, the redirection library is preloaded
    and the syslog fallback of ulog is disabled. An environment already
    preloading the library is left as it is.
    """
    result = dict(env)
    if not device_available:
        return result
    libs = result.get("LD_PRELOAD")
    if libs is not None:
        if WRAPPER in libs:
            return result
        value = f"{WRAPPER} {libs}"[:_PRELOAD_MAX]
    else:
        value = WRAPPER
    result["LD_PRELOAD"] = value
    result["ULOG_NOSYSLOG"] = "yes"
    return result


def _device_writable(path: str) -> bool:
    try:
        fd = os.open(path, os.O_WRONLY)
    except OSError:
        return False
    os.close(fd)
    return True


def main(argv: list[str] | None = None) -> int:
    """Execute ``argv[0]`` with ``argv`` as arguments; return only on failure."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: ulogwrapper <filename> <args>", file=sys.stderr)
        return 1

    device = os.environ.get("ULOG_DEVICE")
    if device is not None:
        path = f"/dev/ulog_{device}"[:_DEVICE_PATH_MAX]
    else:
        path = MAIN_DEVICE_PATH

    env = build_environment(os.environ, _device_writable(path))
    try:
        os.execve(args[0], args, env)
    except OSError as exc:
        print(f"execve('{args[0]}'): {exc.strerror}", file=sys.stderr)
    return -1