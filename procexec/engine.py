"""Run a child process and capture its output streams and exit status."""
from __future__ import annotations

from contextlib import ExitStack
from typing import Dict, Sequence
import selectors
import shlex

from .backends import Channel, ProcessBackend, default_backend
from .config import DrainMode, ExecutorSettings
from .console import ExecutionConsole
from .errors import StreamReadFailed
from .result import ExecutionResult, exit_code_for


class ProcessExecutor:
    """Execute commands with both output streams captured.

    Each call creates its own pipes and child, so one executor can be shared
    between threads.
    """

    def __init__(
        self,
        settings: ExecutorSettings | None = None,
        *,
        console: ExecutionConsole | None = None,
        backend: ProcessBackend | None = None,
    ) -> None:
        self.settings = settings or ExecutorSettings()
        self._console = console
        self._backend = backend or default_backend()

    def _debug(self, message: str) -> None:
        if self._console is not None:
            self._console.debug(message)

    def _info(self, message: str) -> None:
        if self._console is not None:
            self._console.info(message)

    def execute(self, command: str, args: Sequence[str] = ()) -> ExecutionResult:
        """Run ``command`` with ``args`` and block until it has terminated.

        ``command`` is resolved through ``PATH`` and passed as argument 0.
        A program that cannot be started is not an error here: the result
        carries exit code 127, a :class:`SpawnFailed` termination and the
        child's diagnostic on stderr.

        Raises:
            ChannelAllocationFailed: a pipe could not be created.
            ProcessCreationFailed: the child could not be spawned.
            StreamReadFailed: reading captured output failed.
        """

        settings = self.settings
        backend = self._backend
        if settings.drain is DrainMode.CONCURRENT and not backend.supports_multiplexing:
            raise ValueError(f"The {backend.name} backend does not support concurrent draining")

        argv = (command, *args)
        self._info(f"Running: {shlex.join(argv)}")

        with ExitStack() as stack:
            stdout = backend.create_channel_pair("stdout")
            stack.callback(stdout.close)
            stderr = backend.create_channel_pair("stderr")
            stack.callback(stderr.close)
            self._debug(f"Allocated pipes stdout={stdout.read_fd} stderr={stderr.read_fd}")

            child = backend.spawn_with_redirected_streams(argv, stdout, stderr)
            self._debug(f"Spawned pid {child.pid}")

            try:
                captured = self._drain(stdout, stderr)
            except BaseException:
                stdout.close()
                stderr.close()
                backend.wait_for_exit(child)
                raise

            stdout.close()
            stderr.close()
            termination = backend.wait_for_exit(child)

        result = ExecutionResult(
            command=argv,
            exit_code=exit_code_for(termination),
            stdout_output=self._decode(captured["stdout"]),
            stderr_output=self._decode(captured["stderr"]),
            termination=termination,
        )
        self._info(f"{argv[0]} {result.describe()}")
        return result

    def _drain(self, stdout: Channel, stderr: Channel) -> Dict[str, bytes]:
        if self.settings.drain is DrainMode.CONCURRENT:
            return self._drain_concurrent((stdout, stderr))
        # stdout is read to end of stream before stderr is touched; see
        # DrainMode.SEQUENTIAL for the deadlock this allows.
        return {channel.name: self._drain_channel(channel) for channel in (stdout, stderr)}

    def _drain_channel(self, channel: Channel) -> bytes:
        buffer = bytearray()
        size = self.settings.chunk_size
        while chunk := self._backend.read_chunk(channel, size):
            buffer += chunk
        self._debug(f"Drained {len(buffer)} bytes from {channel.name}")
        return bytes(buffer)

    def _drain_concurrent(self, channels: Sequence[Channel]) -> Dict[str, bytes]:
        buffers = {channel.name: bytearray() for channel in channels}
        size = self.settings.chunk_size
        with selectors.DefaultSelector() as selector:
            for channel in channels:
                selector.register(channel.read_fd, selectors.EVENT_READ, channel)

            while selector.get_map():
                try:
                    ready = selector.select()
                except OSError as exc:
                    raise StreamReadFailed.from_os_error("select() on output pipes", exc) from exc
                for key, _ in ready:
                    channel = key.data
                    chunk = self._backend.read_chunk(channel, size)
                    if chunk is None:
                        continue
                    if not chunk:
                        selector.unregister(key.fileobj)
                        self._debug(f"Drained {len(buffers[channel.name])} bytes from {channel.name}")
                        continue
                    buffers[channel.name] += chunk

        return {name: bytes(buffer) for name, buffer in buffers.items()}

    def _decode(self, data: bytes) -> str | bytes:
        if not self.settings.text:
            return data
        return data.decode(self.settings.encoding, errors="replace")


def execute(
    command: str,
    args: Sequence[str] = (),
    *,
    settings: ExecutorSettings | None = None,
    console: ExecutionConsole | None = None,
    **overrides,
) -> ExecutionResult:
    """Run ``command`` once with a throwaway :class:`ProcessExecutor`.

    Keyword ``overrides`` (``drain``, ``chunk_size``, ``text``, ``encoding``)
    replace the matching fields of ``settings``.
    """

    resolved = (settings or ExecutorSettings()).with_overrides(**overrides)
    return ProcessExecutor(resolved, console=console).execute(command, args)
