"""fork/exec/pipe backend for POSIX platforms."""
from __future__ import annotations

from typing import List, NoReturn, Sequence
import os
import signal

from ..errors import ProcessCreationFailed, ProcessError
from ..result import CHILD_BOOTSTRAP_FAILURE, Exited, Signaled, SpawnFailed, Termination
from .base import Channel, ChildProcess, open_pipe, read_pipe

_STDOUT_FILENO = 1
_STDERR_FILENO = 2
_REPORT_SEPARATOR = b"\0"


def _report_failure(status_fd: int, stage: str, errno: int, reason: str) -> None:
    report = _REPORT_SEPARATOR.join(
        (stage.encode(), str(errno).encode(), reason.encode(errors="replace"))
    )
    os.write(status_fd, report)
    os.write(_STDERR_FILENO, f"{stage} failed: {reason}\n".encode(errors="replace"))


def _redirect(fd: int, target: int) -> None:
    # A parent started with fd 1 or 2 closed can hand out a write end that
    # already sits on the target descriptor; it stays open and only loses
    # close-on-exec.
    if fd == target:
        os.set_inheritable(fd, True)
        return
    os.dup2(fd, target)
    os.close(fd)


def _exec_child(
    argv: List[str],
    stdout: Channel,
    stderr: Channel,
    status_read: int,
    status_write: int,
) -> NoReturn:
    """Redirect the output streams and replace the process image.

    Runs in the forked child and never returns: a failed redirection or exec
    ends the child with :data:`CHILD_BOOTSTRAP_FAILURE`.
    """

    stage = "setup"
    try:
        os.close(status_read)
        os.close(stdout.read_fd)
        os.close(stderr.read_fd)

        stage = "dup2 stdout"
        _redirect(stdout.write_fd, _STDOUT_FILENO)

        stage = "dup2 stderr"
        _redirect(stderr.write_fd, _STDERR_FILENO)

        stage = "execvp"
        os.execvp(argv[0], argv)
    except OSError as exc:
        _report_failure(status_write, stage, exc.errno or 0, exc.strerror or str(exc))
    except BaseException as exc:
        _report_failure(status_write, stage, 0, str(exc) or type(exc).__name__)
    finally:
        os._exit(CHILD_BOOTSTRAP_FAILURE)


def _parse_report(report: bytes) -> SpawnFailed | None:
    if not report:
        return None
    stage, errno, reason = report.split(_REPORT_SEPARATOR, 2)
    return SpawnFailed(stage=stage.decode(), errno=int(errno), reason=reason.decode(errors="replace"))


class PosixBackend:
    """Spawn children with :func:`os.fork` and :func:`os.execvp`.

    A close-on-exec status pipe tells the parent whether the exec succeeded,
    so bootstrap failures are reported as :class:`SpawnFailed` instead of a
    bare exit code 127.
    """

    name = "posix"
    supports_multiplexing = True

    def create_channel_pair(self, stream: str) -> Channel:
        return open_pipe(stream)

    def read_chunk(self, channel: Channel, size: int) -> bytes | None:
        return read_pipe(channel, size)

    def spawn_with_redirected_streams(
        self,
        argv: Sequence[str],
        stdout: Channel,
        stderr: Channel,
    ) -> ChildProcess:
        try:
            status_read, status_write = os.pipe()
        except OSError as exc:
            raise ProcessCreationFailed.from_os_error("pipe() for exec status", exc) from exc

        exec_argv = list(argv)

        try:
            pid = os.fork()
        except OSError as exc:
            os.close(status_read)
            os.close(status_write)
            raise ProcessCreationFailed.from_os_error("fork()", exc) from exc

        if pid == 0:
            _exec_child(exec_argv, stdout, stderr, status_read, status_write)

        os.close(status_write)
        stdout.close_write()
        stderr.close_write()

        report = bytearray()
        try:
            while chunk := os.read(status_read, 4096):
                report += chunk
        except OSError as exc:
            os.kill(pid, signal.SIGKILL)
            os.waitpid(pid, 0)
            raise ProcessCreationFailed.from_os_error("read() from exec status pipe", exc) from exc
        finally:
            os.close(status_read)

        return ChildProcess(argv=argv, pid=pid, bootstrap_failure=_parse_report(bytes(report)))

    def wait_for_exit(self, child: ChildProcess) -> Termination:
        try:
            _, status = os.waitpid(child.pid, 0)
        except OSError as exc:
            raise ProcessError.from_os_error("waitpid()", exc) from exc

        if child.bootstrap_failure is not None:
            return child.bootstrap_failure
        if os.WIFEXITED(status):
            return Exited(os.WEXITSTATUS(status))
        if os.WIFSIGNALED(status):
            return Signaled(os.WTERMSIG(status))
        return Signaled(0)
