"""Command line front-end: run one command and report what it produced."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, TextIO

from .config import ConfigError, DrainMode, ExecutorSettings, load_settings
from .console import Console
from .engine import ProcessExecutor
from .errors import ProcessError
from .result import ExecutionResult, Exited, Signaled, SpawnFailed


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="procexec",
        description="Run a command and capture its stdout, stderr and exit status",
    )
    parser.add_argument("--config", type=Path, help="Settings file (.toml, .json, .yaml)")
    parser.add_argument(
        "--drain",
        choices=[mode.value for mode in DrainMode],
        help="How stdout and stderr are read (default: sequential)",
    )
    parser.add_argument("--chunk-size", type=int, help="Bytes requested per pipe read")
    parser.add_argument("--encoding", help="Encoding used to decode captured output")
    parser.add_argument(
        "--log-level",
        choices=list(Console.LEVELS),
        help="Diagnostic output written to stderr (default: none)",
    )
    parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="How the result is printed (default: text)",
    )
    parser.add_argument("command", help="Program to run, resolved through PATH")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments passed to the program")
    return parser


def _termination_payload(result: ExecutionResult) -> dict:
    termination = result.termination
    if isinstance(termination, Exited):
        return {"kind": "exited", "code": termination.code}
    if isinstance(termination, Signaled):
        return {"kind": "signaled", "signal": termination.signal}
    return {
        "kind": "spawn_failed",
        "stage": termination.stage,
        "errno": termination.errno,
        "reason": termination.reason,
    }


def print_result(result: ExecutionResult, *, fmt: str = "text", stream: TextIO | None = None) -> None:
    """Write ``result`` to ``stream`` in the requested format."""

    out = stream or sys.stdout
    if fmt == "json":
        payload = {
            "command": list(result.command),
            "exit_code": result.exit_code,
            "stdout": result.stdout_output,
            "stderr": result.stderr_output,
            "termination": _termination_payload(result),
        }
        json.dump(payload, out, indent=2)
        out.write("\n")
        return

    out.write(f"Return Code: {result.exit_code}\n")
    out.write(f"Stdout:\n{result.stdout_output}\n")
    out.write(f"Stderr:\n{result.stderr_output}\n")


def _exit_status(result: ExecutionResult) -> int:
    termination = result.termination
    if isinstance(termination, Exited) and 0 <= termination.code <= 255:
        return termination.code
    if isinstance(termination, SpawnFailed):
        return result.exit_code
    return 1


def main(args: List[str] | None = None) -> int:
    parser = _build_parser()
    parsed_args = parser.parse_args(args)

    try:
        settings = load_settings(parsed_args.config) if parsed_args.config else ExecutorSettings()
        settings = settings.with_overrides(
            drain=parsed_args.drain,
            chunk_size=parsed_args.chunk_size,
            encoding=parsed_args.encoding,
            log_level=parsed_args.log_level,
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    # Output is printed as text; raw bytes mode only applies to library callers.
    settings = settings.with_overrides(text=True)
    console = Console(settings.log_level)
    executor = ProcessExecutor(settings, console=console)

    try:
        result = executor.execute(parsed_args.command, parsed_args.args)
    except ProcessError as e:
        console.error(f"{e.stage} failed (errno={e.errno})")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print_result(result, fmt=parsed_args.format)
    if not result.succeeded:
        console.error(f"Command execution failed: {result.describe()}")
    return _exit_status(result)


if __name__ == "__main__":
    sys.exit(main())
