"""Test outcomes and the decision table shared by the host and guest paths."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Union

from .registry import ShouldPanic

OutcomeStatus = Literal["passed", "failed", "should_panic_but_passed", "unsupported"]


@dataclass(frozen=True)
class Passed:
    duration: float
    status: OutcomeStatus = "passed"


@dataclass(frozen=True)
class Failed:
    message: str
    status: OutcomeStatus = "failed"


@dataclass(frozen=True)
class ShouldPanicButPassed:
    status: OutcomeStatus = "should_panic_but_passed"

    @property
    def message(self) -> str:
        return "test did not panic as expected"


@dataclass(frozen=True)
class Unsupported:
    status: OutcomeStatus = "unsupported"


Outcome = Union[Passed, Failed, ShouldPanicButPassed, Unsupported]


@dataclass(frozen=True)
class Completed:
    pass


@dataclass(frozen=True)
class Aborted:
    """Abnormal termination.

    ``message`` is the panic message when it is known. On the guest path it
    is always ``None``: only the sentinel (or a timeout) crosses the process
    boundary, so expected-message checks cannot be enforced there.
    """

    message: Optional[str] = None
    reason: str = "panic"
    detail: str = ""


@dataclass(frozen=True)
class ExplicitFailure:
    detail: str = ""
    exit_code: Optional[int] = None

    def summary(self) -> str:
        if self.exit_code is not None:
            return f"Test failed with exit code: {self.exit_code}"
        return f"Test returned error: {self.detail}"


Termination = Union[Completed, Aborted, ExplicitFailure]


def _with_output(message: str, captured: str) -> str:
    if not captured:
        return message
    return f"{message}\n\n{captured}"


def _abort_summary(termination: Aborted) -> str:
    if termination.reason == "timeout":
        return f"Test timed out after {termination.detail}"
    return "Test panicked unexpectedly"


def classify(
    termination: Termination,
    should_panic: ShouldPanic,
    *,
    duration: float = 0.0,
    captured: str = "",
) -> Outcome:
    if isinstance(termination, ExplicitFailure):
        return Failed(_with_output(termination.summary(), captured))
    if isinstance(termination, Completed):
        if should_panic.expected:
            return ShouldPanicButPassed()
        return Passed(duration)
    if not should_panic.expected:
        return Failed(_with_output(_abort_summary(termination), captured))
    expected = should_panic.message
    if expected is None or termination.message is None:
        return Passed(duration)
    if expected in termination.message:
        return Passed(duration)
    return Failed(
        _with_output(
            f"Expected panic message containing '{expected}', got '{termination.message}'",
            captured,
        )
    )
