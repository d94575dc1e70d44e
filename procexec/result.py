"""Result values produced by a single process execution."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

ABNORMAL_EXIT_CODE = -1
"""``exit_code`` reported when the child did not exit normally."""

CHILD_BOOTSTRAP_FAILURE = 127
"""Status the child exits with when redirection or exec fails."""


@dataclass(frozen=True, slots=True)
class Exited:
    """The child returned normally with ``code``."""

    code: int


@dataclass(frozen=True, slots=True)
class Signaled:
    """The child was terminated by ``signal``."""

    signal: int


@dataclass(frozen=True, slots=True)
class SpawnFailed:
    """The child could not start the requested program."""

    stage: str
    errno: int
    reason: str


Termination = Union[Exited, Signaled, SpawnFailed]


def exit_code_for(termination: Termination) -> int:
    """Collapse ``termination`` into the integer exit code callers see."""

    if isinstance(termination, Exited):
        return termination.code
    if isinstance(termination, SpawnFailed):
        return CHILD_BOOTSTRAP_FAILURE
    return ABNORMAL_EXIT_CODE


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Outcome of an executed command.

    ``exit_code`` merges every abnormal termination into
    :data:`ABNORMAL_EXIT_CODE`; inspect ``termination`` to tell a signal
    apart from a program that could not be started.
    """

    command: Tuple[str, ...]
    exit_code: int
    stdout_output: str | bytes
    stderr_output: str | bytes
    termination: Termination

    @property
    def succeeded(self) -> bool:
        return isinstance(self.termination, Exited) and self.termination.code == 0

    @property
    def spawn_failed(self) -> bool:
        return isinstance(self.termination, SpawnFailed)

    def describe(self) -> str:
        """Return a short human readable description of the termination."""

        termination = self.termination
        if isinstance(termination, Exited):
            return f"exited with code {termination.code}"
        if isinstance(termination, Signaled):
            return f"killed by signal {termination.signal}"
        return f"could not start ({termination.stage} failed: {termination.reason})"
