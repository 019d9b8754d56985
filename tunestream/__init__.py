"""Resolve songs to playable audio streams and relay them through a same-origin proxy."""

__version__ = "0.1.0"
