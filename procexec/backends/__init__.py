"""Platform process backends; the one matching ``os.name`` is the default."""

import os

from .base import Channel, ChildProcess, ProcessBackend

if os.name == "nt":
    from .windows import WindowsBackend as PlatformBackend
else:
    from .posix import PosixBackend as PlatformBackend


def default_backend() -> ProcessBackend:
    """Return the backend for the running platform."""
    return PlatformBackend()


__all__ = [
    "Channel",
    "ChildProcess",
    "PlatformBackend",
    "ProcessBackend",
    "default_backend",
]
