"""Exceptions raised by the execution engine."""
from __future__ import annotations

import os


class ProcessError(RuntimeError):
    """Raised when a phase of process execution cannot complete."""

    def __init__(self, stage: str, os_error_message: str, errno: int | None = None):
        super().__init__(f"{stage} failed: {os_error_message}")
        self.stage = stage
        self.os_error_message = os_error_message
        self.errno = errno

    @classmethod
    def from_os_error(cls, stage: str, error: OSError) -> "ProcessError":
        message = error.strerror or (os.strerror(error.errno) if error.errno else str(error))
        return cls(stage, message, error.errno)


class ChannelAllocationFailed(ProcessError):
    """A stdout/stderr pipe could not be created; nothing was spawned."""


class ProcessCreationFailed(ProcessError):
    """The spawn primitive failed; no child exists."""


class StreamReadFailed(ProcessError):
    """Reading a captured stream failed; partial output was discarded."""
