"""Capability interface shared by the platform process backends."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence, runtime_checkable
import os

from ..errors import ChannelAllocationFailed, StreamReadFailed
from ..result import SpawnFailed, Termination


@dataclass(slots=True)
class Channel:
    """A one-way pipe carrying one of the child's output streams.

    The parent keeps ``read_fd``; ``write_fd`` is handed to the child and
    released by the parent right after spawning.
    """

    name: str
    read_fd: int | None
    write_fd: int | None

    def close_read(self) -> None:
        fd, self.read_fd = self.read_fd, None
        if fd is not None:
            os.close(fd)

    def close_write(self) -> None:
        fd, self.write_fd = self.write_fd, None
        if fd is not None:
            os.close(fd)

    def close(self) -> None:
        try:
            self.close_write()
        finally:
            self.close_read()


@dataclass(slots=True)
class ChildProcess:
    """Handle on a spawned child, owned by the backend that created it."""

    argv: Sequence[str]
    pid: int | None = None
    handle: Any = None
    bootstrap_failure: SpawnFailed | None = None


@runtime_checkable
class ProcessBackend(Protocol):
    """Platform primitives the execution engine is written against."""

    name: str
    supports_multiplexing: bool

    def create_channel_pair(self, stream: str) -> Channel:
        ...

    def spawn_with_redirected_streams(
        self,
        argv: Sequence[str],
        stdout: Channel,
        stderr: Channel,
    ) -> ChildProcess:
        ...

    def read_chunk(self, channel: Channel, size: int) -> bytes | None:
        ...

    def wait_for_exit(self, child: ChildProcess) -> Termination:
        ...


def open_pipe(stream: str) -> Channel:
    """Create a non-inheritable pipe for ``stream``."""

    try:
        read_fd, write_fd = os.pipe()
    except OSError as exc:
        raise ChannelAllocationFailed.from_os_error(f"pipe() for {stream}", exc) from exc
    return Channel(name=stream, read_fd=read_fd, write_fd=write_fd)


def read_pipe(channel: Channel, size: int) -> bytes | None:
    """Read up to ``size`` bytes; ``b""`` at end of stream, ``None`` if it would block."""

    if channel.read_fd is None:
        raise StreamReadFailed(f"read() from {channel.name} pipe", "channel already closed")
    try:
        return os.read(channel.read_fd, size)
    except BlockingIOError:
        return None
    except OSError as exc:
        raise StreamReadFailed.from_os_error(f"read() from {channel.name} pipe", exc) from exc
