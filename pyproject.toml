[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ulogkit"
version = "0.1.0"
description = "Readers, writers and tools for ulog and kernel log buffers"
requires-python = ">=3.10"
dependencies = []
keywords = ["logging", "ulog", "kmsg", "logcat", "syslog"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ulogcat = "ulogkit.ulogcat_cli:main"
ulogger = "ulogkit.ulogger_cli:main"
ulogwrapper = "ulogkit.wrapper:main"

[tool.hatch.build.targets.wheel]
packages = ["ulogkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"
