"""CreateProcess backend for Windows, built on :class:`subprocess.Popen`."""
from __future__ import annotations

from typing import Sequence
import os
import subprocess

from ..errors import ProcessCreationFailed
from ..result import Exited, SpawnFailed, Termination
from .base import Channel, ChildProcess, open_pipe, read_pipe

# Errors meaning the program itself could not be started; reported through
# the result like a failed exec on POSIX.
_BOOTSTRAP_ERRORS = (FileNotFoundError, PermissionError, NotADirectoryError)


class WindowsBackend:
    """Spawn children with ``CreateProcess`` and inherited pipe handles.

    Anonymous pipes cannot be waited on with :mod:`selectors` here, so only
    sequential draining is available.
    """

    name = "windows"
    supports_multiplexing = False

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
            process = subprocess.Popen(
                list(argv),
                stdout=stdout.write_fd,
                stderr=stderr.write_fd,
                close_fds=True,
            )
        except _BOOTSTRAP_ERRORS as exc:
            failure = SpawnFailed(
                stage="CreateProcess",
                errno=exc.errno or 0,
                reason=exc.strerror or str(exc),
            )
            os.write(stderr.write_fd, f"CreateProcess failed: {failure.reason}\n".encode(errors="replace"))
            return ChildProcess(argv=argv, bootstrap_failure=failure)
        except OSError as exc:
            raise ProcessCreationFailed.from_os_error("CreateProcess", exc) from exc
        finally:
            stdout.close_write()
            stderr.close_write()

        return ChildProcess(argv=argv, pid=process.pid, handle=process)

    def wait_for_exit(self, child: ChildProcess) -> Termination:
        if child.handle is None:
            return child.bootstrap_failure
        return Exited(child.handle.wait())
