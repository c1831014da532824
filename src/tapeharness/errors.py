from __future__ import annotations

from pathlib import Path
from typing import Sequence


class HarnessError(Exception):
    """Base class for failures that are not a test outcome."""


class RegistryError(HarnessError):
    pass


class BuildFailure(HarnessError):
    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message if not stderr else f"{message}: {stderr}")
        self.stderr = stderr


class SpawnFailure(HarnessError):
    def __init__(self, command: Sequence[str], cause: OSError) -> None:
        program = command[0] if command else "<empty>"
        super().__init__(
            f"Are you sure `{program}` is in your $PATH?\n"
            f"Failed to start test process: {cause}"
        )
        self.command = list(command)
        self.cause = cause


class TestNotFoundError(HarnessError):
    __test__ = False

    def __init__(self, test_name: str, candidates: Sequence[Path]) -> None:
        if candidates:
            message = (
                f"Test {test_name} not found in any test binary\n"
                f" looked in: {[str(path) for path in candidates]}"
            )
        else:
            message = "No test binaries found for guest"
        super().__init__(message)
        self.test_name = test_name
        self.candidates = list(candidates)


class TapeCodecError(HarnessError):
    pass


class TapeExhausted(TapeCodecError, EOFError):
    pass
