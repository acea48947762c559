# ulogkit

Tools for reading and writing ulog log buffers (`/dev/ulog_*`) and for reading
the kernel message buffer (`/dev/kmsg`). Linux only.

## Commands

### ulogcat

Reads entries from ulog devices and, with `-k`, from the kernel buffer, merges
them by timestamp and prints them.

```
ulogcat -d              # dump current logs and exit
ulogcat -v long -C      # long format with colors, follow new entries
ulogcat -b main -t 20   # last 20 lines of the main buffer
ulogcat -c              # flush the ulog buffers
```

Options:

- `-v FORMAT` – `short`, `aligned` (default), `process`, `long` or `csv`
- `-c` – clear the buffers and exit
- `-d` – dump what is present and exit instead of waiting for new entries
- `-k` – include kernel messages; when `/dev/kmsg` cannot be read, the
  `kmsgd` ulog buffer is used instead
- `-u` – include ulog buffers (the default when neither `-k` nor `-u` is given)
- `-l` – prefix each line with `U` or `K` to show where it came from
- `-b NAME` – read the ulog buffer `NAME`; may be repeated. Without it, every
  buffer listed by the driver is read
- `-C` – color lines by priority; `ULOGCAT_COLORS` holds eight `|`-separated
  ANSI sequences, one per level (default `||4;1;31|1;31|1;33|35||1;30`)
- `-t N` – show only the last `N` lines
- `-h` – show the help

When several devices are read, a `beginning of ...` banner marks the first
line from each one. Binary entries are shown only in `csv` format, hex-dumped.

### ulogger

Writes messages to a ulog device, like `logger` does for syslog. Messages are
taken from the arguments, or from standard input one line at a time.

```
ulogger -t mytag -p W "something happened"
echo "from stdin" | ulogger -s
```

Options: `-t/--tag TAG`, `-p/--prio PRIO` (one of `C,E,W,N,I,D` or a digit),
`-n/--name NAME` (process name), `-i/--pid PID`, `-s/--stderr` (copy to
standard error), `-m/--time` (take the timestamp from the input, as seconds
optionally followed by a space and nanoseconds), `-h/--help`.

`ULOG_DEVICE` picks the device (default `main`). When the device cannot be
opened, messages go to the Python `logging` logger named `ulogger`.

### ulogwrapper

```
ulogwrapper /usr/bin/program ARGS...
```

Executes the program with `LD_PRELOAD` set to
`/usr/lib/libulog_syslogwrap.so` and `ULOG_NOSYSLOG=yes`, provided the ulog
device (`ULOG_DEVICE`, default `main`) can be opened for writing. The
environment it builds is available as `ulogkit.wrapper.build_environment`.

## Library

- `ulogkit.options` – `Options`, `LogFormat`, `Flag`, `LogEntry`, `Frame`,
  `UlogcatError` and `parse_log_format`.
- `ulogkit.core` – `open_context(options, names)` opens the devices and
  returns a `UlogcatContext`, a context manager with `process_logs`, `clear`
  and `close`.
- `ulogkit.text` – `TextRenderer`, `format_csv` and `setup_colors`.
- `ulogkit.klog` – `KernelLogDevice`, `parse_kmsg_header`, `unescape_kmsg`,
  `fix_kmsgd_entry`.
- `ulogkit.ulogdev` – `UlogDevice`, `device_path`, `list_ulog_devices`.
- `ulogkit.compat` – `LegacyOptions` and `LegacyContext`, an older interface
  on top of `UlogcatContext`.
- `ulogkit.syslog_redirect` – `SyslogRedirect`, a syslog-style interface
  (`openlog`, `syslog`, `setlogmask`, `closelog`) that hands messages to a
  writer function.
- `ulogkit.shd` – `ShdBlob` (`pack`/`unpack`), `build_blob`, `blob_to_raw`
  and `SampleForwarder` for log entries stored as shared-memory blobs.
- `ulogkit.cookies` – `Cookie` and `CookieRegistry` for per-tag log levels,
  with `parse_level`, `prio_to_char` and `console_priority`.

```python
from ulogkit.options import Options, LogFormat, Flag
from ulogkit.core import open_context

opts = Options(log_format=LogFormat.SHORT, flags=Flag.ULOG | Flag.DUMP)
with open_context(opts, ["main"]) as ctx:
    ctx.process_logs(0)
```

## What it does not do

- It does not contain the preloaded library that `ulogwrapper` names; that
  library must already be installed for the redirection to take effect.
- It does not attach to a shared memory section. `ulogkit.shd` packs and
  unpacks blobs and forwards samples you pass it, but there is no daemon that
  polls a section and writes to a ulog device.
- `ulogcat -c` flushes ulog buffers only; the kernel buffer is not cleared.

## Tests

```
pip install .[test]
pytest
```