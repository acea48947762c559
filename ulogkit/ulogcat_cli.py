"""Command line reader of ulog and kernel log buffers."""

from __future__ import annotations

import getopt
import re
import sys
from typing import NamedTuple

from .core import open_context
from .options import Flag, LogFormat, Options, UlogcatError, parse_log_format

_USAGE = """options include:
  -v <format>     Sets the log print format, where <format> is one of:

                  short aligned process long csv

  -c              Clear (flush) the entire log and exit.
  -d              Dump the log and then exit (don't block)
  -k              Include kernel ring buffer messages in output.
  -u              Include ulog messages in output (this is the default if
                  none of options -k and -u are specified).
  -l              Prefix each message with letter 'U' or 'K' to indicate
                  its origin (Ulog, Kernel). This is useful to split
                  an interleaved output.
  -b <buffer>     Request alternate ulog buffer, 'main', 'balboa', etc.
                  Multiple -b parameters are allowed and the results are
                  interleaved. The default is to show all buffers.
  -C              Use ANSI color sequences to show priority levels; you can customize colors
                  used for each level with environment variable ULOGCAT_COLORS, which contains
                  (possibly empty) sequences for each of the 8 levels, separated by character
                  '|'. Default value: ULOGCAT_COLORS='||4;1;31|1;31|1;33|35||1;30'.
  -t <n>          Skip entries and show only <n> tail lines
  -h              Show this help
"""

_LEADING_INT = re.compile(r"[ \t\n\v\f\r]*([+-]?\d+)")

_FLAG_OPTIONS = {
    "-d": Flag.DUMP,
    "-C": Flag.COLOR,
    "-k": Flag.KLOG,
    "-u": Flag.ULOG,
    "-l": Flag.SHOW_LABEL,
}


class _ParsedArgs(NamedTuple):
    options: Options
    clear: bool
    devices: list[str]


def _show_usage(cmd: str = "ulogcat") -> None:
    print(f"Usage: {cmd} [options]", file=sys.stderr)
    print(_USAGE, file=sys.stderr)


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _usage_error(message: str) -> SystemExit:
    print(message, file=sys.stderr)
    _show_usage()
    return SystemExit(-1)


def parse_args(argv: list[str]) -> _ParsedArgs:
    """Parse command line options (without the program name).

    Prints the usage and raises SystemExit on -h or on invalid options.
    """
    try:
        opts, _ = getopt.gnu_getopt(list(argv), "b:Ccdhklt:uv:")
    except getopt.GetoptError as exc:
        print(f"ulogcat: {exc}", file=sys.stderr)
        raise _usage_error("Unrecognized option") from None

    log_format = LogFormat.ALIGNED
    flags = Flag(0)
    tail = 0
    clear = False
    devices: list[str] = []

    for opt, value in opts:
        if opt == "-c":
            clear = True
        elif opt in _FLAG_OPTIONS:
            flags |= _FLAG_OPTIONS[opt]
        elif opt == "-b":
            devices.append(value)
            flags |= Flag.ULOG
        elif opt == "-t":
            tail = _atoi(value)
            if tail < 0:
                raise _usage_error("Invalid parameter to -t")
        elif opt == "-h":
            _show_usage()
            raise SystemExit(0)
        elif opt == "-v":
            try:
                log_format = parse_log_format(value)
            except UlogcatError:
                raise _usage_error("Invalid parameter to -v") from None

    if not flags & (Flag.ULOG | Flag.KLOG):
        # default output is ulog buffers
        flags |= Flag.ULOG

    options = Options(log_format=log_format, flags=flags, tail=tail)
    return _ParsedArgs(options, clear, devices)


def main(argv: list[str] | None = None) -> int:
    """Run the reader; return 0 on success and -1 on error."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    args.options.output = sys.stdout

    try:
        context = open_context(args.options, args.devices)
    except UlogcatError as exc:
        print(f"libulogcat: {exc}", file=sys.stderr)
        print("ulogcat: cannot open ulogcat context", file=sys.stderr)
        return -1

    with context:
        try:
            if args.clear:
                context.clear()
                return 0
            while True:
                ret = context.process_logs(0)
                if ret <= 0:
                    return ret
        except UlogcatError as exc:
            print(f"libulogcat: {exc}", file=sys.stderr)
            return -1