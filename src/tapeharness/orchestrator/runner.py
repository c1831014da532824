from __future__ import annotations

import logging
import sys
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from ..config import Settings
from ..errors import SpawnFailure, TestNotFoundError
from ..guest.dispatcher import run_guest
from ..host.build import build_candidates
from ..host.executor import run_on_host
from ..host.supervisor import ProcessSupervisor
from ..outcome import Failed, Outcome, Passed, ShouldPanicButPassed, Unsupported
from ..registry import TestDescriptor, TestRegistry

log = logging.getLogger(__name__)

NATIVE = "native"


@dataclass(frozen=True)
class RunRecord:
    passed: int = 0
    guest_passed: int = 0
    ignored: int = 0
    failed: int = 0
    guest_failed: int = 0
    unsupported: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.guest_failed == 0

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


@dataclass(frozen=True)
class TestResult:
    __test__ = False

    name: str
    source_file: str
    environment: str
    status: str
    duration_s: float = 0.0
    message: Optional[str] = None


class Orchestrator:
    def __init__(
        self,
        registry: TestRegistry,
        settings: Optional[Settings] = None,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
        supervisor: Optional[ProcessSupervisor] = None,
    ) -> None:
        self.registry = registry
        self.settings = settings if settings is not None else Settings()
        self.console = console if console is not None else Console(highlight=False)
        self.err_console = (
            err_console if err_console is not None else Console(stderr=True, highlight=False)
        )
        self.supervisor = supervisor if supervisor is not None else ProcessSupervisor(self.settings)
        self.candidates: List[Path] = []
        self.results: List[TestResult] = []
        self._counts: Counter[str] = Counter()

    def _say(self, text: str, end: str = "\n") -> None:
        self.console.print(text, end=end, markup=False, soft_wrap=True)

    def _complain(self, text: str) -> None:
        self.err_console.print(text, markup=False, soft_wrap=True)

    def _record(
        self,
        descriptor: TestDescriptor,
        environment: str,
        status: str,
        outcome: Optional[Outcome] = None,
    ) -> None:
        duration = outcome.duration if isinstance(outcome, Passed) else 0.0
        message = getattr(outcome, "message", None)
        self.results.append(
            TestResult(
                name=descriptor.name,
                source_file=descriptor.source_file,
                environment=environment,
                status=status,
                duration_s=duration,
                message=message,
            )
        )

    def run(self, filter_text: Optional[str] = None) -> RunRecord:
        self.registry.freeze()
        selected = self.registry.filter(filter_text)
        guest_enabled = self.settings.guest_test
        if guest_enabled:
            self._say(f"Building tests for {self.settings.env_name}")
            self.candidates = build_candidates(self.settings, filter_text)

        if filter_text is not None:
            self._say(f"Running tests matching '{filter_text}'")
        self._say(f"running {len(selected)} tests")

        for descriptor in selected:
            self._run_one(descriptor, guest_enabled)

        record = RunRecord(**self._counts)
        if not selected and filter_text is not None:
            self._say(f"\nno tests matched filter '{filter_text}'")
        else:
            self._summarize(record)
        return record

    def _run_one(self, descriptor: TestDescriptor, guest_enabled: bool) -> None:
        self._say(f"test {descriptor.name} on {NATIVE} ... ", end="")
        if descriptor.ignore:
            self._say("ignored")
            self._counts["ignored"] += 1
            self._record(descriptor, NATIVE, "ignored")
            return

        outcome = run_on_host(descriptor)
        if isinstance(outcome, Passed):
            self._say("ok")
            self._counts["passed"] += 1
            self._record(descriptor, NATIVE, outcome.status, outcome)
            if guest_enabled:
                self._run_in_guest(descriptor, outcome.duration)
        elif isinstance(outcome, Failed):
            self._say("FAILED")
            self._complain(f"\ntest {descriptor.name} on {NATIVE} failure message: {outcome.message}")
            self._counts["failed"] += 1
            self._record(descriptor, NATIVE, outcome.status, outcome)
        elif isinstance(outcome, ShouldPanicButPassed):
            self._say("FAILED")
            self._complain(f"\nfailure message: {outcome.message}")
            self._counts["failed"] += 1
            self._record(descriptor, NATIVE, outcome.status, outcome)
        elif isinstance(outcome, Unsupported):
            self._say("unsupported")
            self._counts["unsupported"] += 1
            self._record(descriptor, NATIVE, outcome.status, outcome)

    def _run_in_guest(self, descriptor: TestDescriptor, host_duration: float) -> None:
        environment = self.settings.env_name
        self._say(f"test {descriptor.name} on {environment} ... ", end="")
        try:
            outcome = self.supervisor.run(descriptor, self.candidates, host_duration)
        except TestNotFoundError as exc:
            outcome = Failed(str(exc))
        except SpawnFailure:
            self._say("error")
            raise
        if isinstance(outcome, Passed):
            self._say("ok")
            self._counts["guest_passed"] += 1
            self._record(descriptor, environment, outcome.status, outcome)
            return
        self._say("FAILED")
        message = getattr(outcome, "message", outcome.status)
        self._complain(f"\n\ntest {descriptor.name} failure message: {message}\n\n")
        self._counts["guest_failed"] += 1
        self._record(descriptor, environment, outcome.status, outcome)

    def _summarize(self, record: RunRecord) -> None:
        table = Table(title="Test Summary")
        table.add_column("Environment")
        table.add_column("Passed", justify="right")
        table.add_column("Failed", justify="right")
        table.add_row(NATIVE, str(record.passed), str(record.failed))
        table.add_row(self.settings.env_name, str(record.guest_passed), str(record.guest_failed))
        self.console.print()
        self.console.print(table)
        self._say(f"{record.ignored} ignored; {record.unsupported} unsupported")
        self._say(f"test result: {'ok' if record.ok else 'FAILED'}")


def parse_filter(argv: Sequence[str]) -> Optional[str]:
    return next((arg for arg in argv if not arg.startswith("-")), None)


def test_runner(
    registry: TestRegistry,
    argv: Optional[Sequence[str]] = None,
    settings: Optional[Settings] = None,
) -> None:
    """Entry point for suite scripts; behaves as host runner or guest dispatcher."""
    settings = settings if settings is not None else Settings()
    if settings.target == "guest":
        raise SystemExit(run_guest(registry, env_name=settings.env_name))
    args = sys.argv[1:] if argv is None else list(argv)
    record = Orchestrator(registry, settings).run(parse_filter(args))
    raise SystemExit(record.exit_code)


test_runner.__test__ = False  # type: ignore[attr-defined]
