from __future__ import annotations

from typing import List
import errno
import os
import selectors
import sys
import unittest
from unittest.mock import patch

from procexec import (
    ChannelAllocationFailed,
    DrainMode,
    ExecutorSettings,
    ProcessCreationFailed,
    ProcessError,
    ProcessExecutor,
    SpawnFailed,
    StreamReadFailed,
)
from procexec.backends import ChildProcess, ProcessBackend, default_backend

if os.name == "posix":
    from procexec.backends.posix import PosixBackend, _parse_report, _redirect


def is_open(fd: int) -> bool:
    try:
        os.fstat(fd)
    except OSError:
        return False
    return True


class PipeRecorder:
    """Wrap :func:`os.pipe` to remember every descriptor handed out."""

    def __init__(self, fail_on_call: int | None = None) -> None:
        self._real_pipe = os.pipe
        self.fail_on_call = fail_on_call
        self.calls = 0
        self.fds: List[int] = []

    def __call__(self):
        self.calls += 1
        if self.fail_on_call == self.calls:
            raise OSError(errno.EMFILE, os.strerror(errno.EMFILE))
        fds = self._real_pipe()
        self.fds.extend(fds)
        return fds


class RecordingBackend:
    """Posix backend that keeps the spawned child and can fail every read."""

    name = "recording"
    supports_multiplexing = True

    def __init__(self, fail_reads: bool = True) -> None:
        self.fail_reads = fail_reads
        self._inner = PosixBackend()
        self.child: ChildProcess | None = None

    def create_channel_pair(self, stream):
        return self._inner.create_channel_pair(stream)

    def spawn_with_redirected_streams(self, argv, stdout, stderr):
        self.child = self._inner.spawn_with_redirected_streams(argv, stdout, stderr)
        return self.child

    def read_chunk(self, channel, size):
        if not self.fail_reads:
            return self._inner.read_chunk(channel, size)
        raise StreamReadFailed(f"read() from {channel.name} pipe", os.strerror(errno.EIO), errno.EIO)

    def wait_for_exit(self, child):
        return self._inner.wait_for_exit(child)


@unittest.skipUnless(os.name == "posix", "POSIX backend")
class PosixBackendFailureTests(unittest.TestCase):
    def test_default_backend_matches_platform(self) -> None:
        backend = default_backend()
        self.assertIsInstance(backend, PosixBackend)
        self.assertIsInstance(backend, ProcessBackend)

    def test_second_pipe_failure_releases_first_pipe(self) -> None:
        recorder = PipeRecorder(fail_on_call=2)
        with patch("os.pipe", new=recorder), patch("os.fork") as fork:
            with self.assertRaises(ChannelAllocationFailed) as ctx:
                ProcessExecutor().execute("true")

        fork.assert_not_called()
        self.assertEqual(ctx.exception.stage, "pipe() for stderr")
        self.assertEqual(ctx.exception.errno, errno.EMFILE)
        self.assertEqual(len(recorder.fds), 2)
        self.assertFalse(any(is_open(fd) for fd in recorder.fds))

    def test_first_pipe_failure(self) -> None:
        recorder = PipeRecorder(fail_on_call=1)
        with patch("os.pipe", new=recorder):
            with self.assertRaises(ChannelAllocationFailed) as ctx:
                ProcessExecutor().execute("true")

        self.assertEqual(ctx.exception.stage, "pipe() for stdout")
        self.assertIsInstance(ctx.exception, ProcessError)
        self.assertIsInstance(ctx.exception.__cause__, OSError)

    def test_fork_failure_releases_every_pipe(self) -> None:
        recorder = PipeRecorder()
        error = OSError(errno.EAGAIN, os.strerror(errno.EAGAIN))
        with patch("os.pipe", new=recorder), patch("os.fork", side_effect=error):
            with self.assertRaises(ProcessCreationFailed) as ctx:
                ProcessExecutor().execute("true")

        self.assertEqual(ctx.exception.stage, "fork()")
        self.assertEqual(ctx.exception.os_error_message, os.strerror(errno.EAGAIN))
        self.assertIn("fork() failed", str(ctx.exception))
        # stdout, stderr and exec status pipes
        self.assertEqual(len(recorder.fds), 6)
        self.assertFalse(any(is_open(fd) for fd in recorder.fds))

    def test_read_failure_closes_pipes_and_reaps_child(self) -> None:
        backend = RecordingBackend()
        recorder = PipeRecorder()
        with patch("os.pipe", new=recorder):
            with self.assertRaises(StreamReadFailed) as ctx:
                ProcessExecutor(backend=backend).execute(
                    sys.executable, ["-c", "print('partial')"]
                )

        self.assertEqual(ctx.exception.stage, "read() from stdout pipe")
        self.assertFalse(any(is_open(fd) for fd in recorder.fds))
        with self.assertRaises(ChildProcessError):
            os.waitpid(backend.child.pid, os.WNOHANG)

    def test_exec_status_read_failure_kills_and_reaps_child(self) -> None:
        recorder = PipeRecorder()
        real_fork = os.fork
        pids: List[int] = []

        def recording_fork() -> int:
            pid = real_fork()
            if pid:
                pids.append(pid)
            return pid

        error = OSError(errno.EIO, os.strerror(errno.EIO))
        with patch("os.pipe", new=recorder), patch("os.fork", new=recording_fork):
            with patch("os.read", side_effect=error):
                with self.assertRaises(ProcessCreationFailed) as ctx:
                    ProcessExecutor().execute(
                        sys.executable, ["-c", "import time; time.sleep(60)"]
                    )

        self.assertEqual(ctx.exception.stage, "read() from exec status pipe")
        self.assertEqual(ctx.exception.errno, errno.EIO)
        self.assertEqual(len(pids), 1)
        with self.assertRaises(ChildProcessError):
            os.waitpid(pids[0], os.WNOHANG)
        self.assertEqual(len(recorder.fds), 6)
        self.assertFalse(any(is_open(fd) for fd in recorder.fds))

    def test_select_failure_is_a_stream_read_failure(self) -> None:
        recorder = PipeRecorder()
        backend = RecordingBackend(fail_reads=False)
        error = OSError(errno.EBADF, os.strerror(errno.EBADF))
        executor = ProcessExecutor(ExecutorSettings(drain=DrainMode.CONCURRENT), backend=backend)

        with patch("os.pipe", new=recorder), patch.object(
            selectors.DefaultSelector, "select", side_effect=error
        ):
            with self.assertRaises(StreamReadFailed) as ctx:
                executor.execute(sys.executable, ["-c", "print('x')"])

        self.assertEqual(ctx.exception.stage, "select() on output pipes")
        self.assertEqual(ctx.exception.errno, errno.EBADF)
        self.assertFalse(any(is_open(fd) for fd in recorder.fds))
        with self.assertRaises(ChildProcessError):
            os.waitpid(backend.child.pid, os.WNOHANG)

    def test_read_after_close_is_an_error(self) -> None:
        backend = PosixBackend()
        channel = backend.create_channel_pair("stdout")
        channel.close()
        channel.close()

        with self.assertRaises(StreamReadFailed):
            backend.read_chunk(channel, 16)

    def test_read_chunk_reports_end_of_stream(self) -> None:
        backend = PosixBackend()
        channel = backend.create_channel_pair("stdout")
        try:
            os.write(channel.write_fd, b"abc")
            channel.close_write()
            self.assertEqual(backend.read_chunk(channel, 2), b"ab")
            self.assertEqual(backend.read_chunk(channel, 2), b"c")
            self.assertEqual(backend.read_chunk(channel, 2), b"")
        finally:
            channel.close()

    def test_pipes_are_not_inheritable(self) -> None:
        channel = PosixBackend().create_channel_pair("stdout")
        try:
            self.assertFalse(os.get_inheritable(channel.read_fd))
            self.assertFalse(os.get_inheritable(channel.write_fd))
        finally:
            channel.close()


@unittest.skipUnless(os.name == "posix", "POSIX backend")
class RedirectTests(unittest.TestCase):
    def test_moves_write_end_onto_target(self) -> None:
        read_fd, write_fd = os.pipe()
        other_read, target = os.pipe()
        os.close(other_read)
        self.addCleanup(os.close, read_fd)
        self.addCleanup(os.close, target)

        _redirect(write_fd, target)

        self.assertFalse(is_open(write_fd))
        os.write(target, b"moved")
        self.assertEqual(os.read(read_fd, 16), b"moved")

    def test_write_end_already_on_target_stays_open(self) -> None:
        read_fd, write_fd = os.pipe()
        self.addCleanup(os.close, read_fd)
        self.addCleanup(os.close, write_fd)
        self.assertFalse(os.get_inheritable(write_fd))

        _redirect(write_fd, write_fd)

        self.assertTrue(is_open(write_fd))
        self.assertTrue(os.get_inheritable(write_fd))
        os.write(write_fd, b"kept")
        self.assertEqual(os.read(read_fd, 16), b"kept")


@unittest.skipUnless(os.name == "posix", "POSIX backend")
class StatusReportTests(unittest.TestCase):
    def test_empty_report_means_exec_succeeded(self) -> None:
        self.assertIsNone(_parse_report(b""))

    def test_report_is_decoded(self) -> None:
        failure = _parse_report(b"execvp\x002\x00No such file or directory")
        self.assertEqual(failure, SpawnFailed("execvp", errno.ENOENT, "No such file or directory"))

    def test_reason_may_contain_separator(self) -> None:
        failure = _parse_report(b"dup2 stdout\x009\x00bad\x00fd")
        self.assertEqual(failure.stage, "dup2 stdout")
        self.assertEqual(failure.reason, "bad\x00fd")


class ProcessErrorTests(unittest.TestCase):
    def test_from_os_error_keeps_errno_and_message(self) -> None:
        error = ProcessCreationFailed.from_os_error("fork()", OSError(errno.ENOMEM, "Cannot allocate memory"))

        self.assertEqual(error.stage, "fork()")
        self.assertEqual(error.errno, errno.ENOMEM)
        self.assertEqual(error.os_error_message, "Cannot allocate memory")
        self.assertEqual(str(error), "fork() failed: Cannot allocate memory")

    def test_from_os_error_without_strerror(self) -> None:
        error = StreamReadFailed.from_os_error("read() from stderr pipe", OSError(errno.EIO, None))

        self.assertEqual(error.os_error_message, os.strerror(errno.EIO))


if __name__ == "__main__":
    unittest.main()
