"""Readers, writers and tools for ulog and kernel log buffers."""

__version__ = "0.1.0"