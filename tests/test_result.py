from __future__ import annotations

import dataclasses
import unittest

from procexec.result import (
    ABNORMAL_EXIT_CODE,
    CHILD_BOOTSTRAP_FAILURE,
    ExecutionResult,
    Exited,
    Signaled,
    SpawnFailed,
    exit_code_for,
)


def make_result(termination) -> ExecutionResult:
    return ExecutionResult(
        command=("prog",),
        exit_code=exit_code_for(termination),
        stdout_output="",
        stderr_output="",
        termination=termination,
    )


class ExecutionResultTests(unittest.TestCase):
    def test_exit_code_collapses_termination(self) -> None:
        self.assertEqual(exit_code_for(Exited(0)), 0)
        self.assertEqual(exit_code_for(Exited(255)), 255)
        self.assertEqual(exit_code_for(Signaled(9)), ABNORMAL_EXIT_CODE)
        self.assertEqual(exit_code_for(Signaled(11)), ABNORMAL_EXIT_CODE)
        self.assertEqual(exit_code_for(SpawnFailed("execvp", 2, "missing")), CHILD_BOOTSTRAP_FAILURE)

    def test_sentinels_are_distinct_from_success(self) -> None:
        self.assertLess(ABNORMAL_EXIT_CODE, 0)
        self.assertNotEqual(CHILD_BOOTSTRAP_FAILURE, 0)

    def test_succeeded_only_for_clean_exit(self) -> None:
        self.assertTrue(make_result(Exited(0)).succeeded)
        self.assertFalse(make_result(Exited(1)).succeeded)
        self.assertFalse(make_result(Signaled(15)).succeeded)
        self.assertFalse(make_result(SpawnFailed("execvp", 2, "missing")).succeeded)

    def test_describe(self) -> None:
        self.assertEqual(make_result(Exited(3)).describe(), "exited with code 3")
        self.assertEqual(make_result(Signaled(9)).describe(), "killed by signal 9")
        self.assertEqual(
            make_result(SpawnFailed("execvp", 2, "No such file or directory")).describe(),
            "could not start (execvp failed: No such file or directory)",
        )

    def test_result_is_immutable(self) -> None:
        result = make_result(Exited(0))
        with self.assertRaises(dataclasses.FrozenInstanceError):
            result.exit_code = 1  # type: ignore[misc]


if __name__ == "__main__":
    unittest.main()
