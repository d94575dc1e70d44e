"""Synchronous child-process execution with captured stdout and stderr."""

from .config import (
    ConfigError,
    DrainMode,
    ExecutorSettings,
    READ_CHUNK_SIZE,
    load_settings,
    settings_from_mapping,
)
from .console import Console, ExecutionConsole
from .engine import ProcessExecutor, execute
from .errors import (
    ChannelAllocationFailed,
    ProcessCreationFailed,
    ProcessError,
    StreamReadFailed,
)
from .result import (
    ABNORMAL_EXIT_CODE,
    CHILD_BOOTSTRAP_FAILURE,
    ExecutionResult,
    Exited,
    Signaled,
    SpawnFailed,
    Termination,
)

__all__ = [
    "ABNORMAL_EXIT_CODE",
    "CHILD_BOOTSTRAP_FAILURE",
    "READ_CHUNK_SIZE",
    "ChannelAllocationFailed",
    "ConfigError",
    "Console",
    "DrainMode",
    "ExecutionConsole",
    "ExecutionResult",
    "ExecutorSettings",
    "Exited",
    "ProcessCreationFailed",
    "ProcessError",
    "ProcessExecutor",
    "Signaled",
    "SpawnFailed",
    "StreamReadFailed",
    "Termination",
    "execute",
    "load_settings",
    "settings_from_mapping",
]
