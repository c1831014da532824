from __future__ import annotations

import io
import subprocess
import time
from pathlib import Path
from typing import Any, List, Optional

import pytest

from tapeharness.config import Settings
from tapeharness.errors import SpawnFailure, TestNotFoundError
from tapeharness.host.supervisor import ProcessSupervisor
from tapeharness.host.watcher import StreamWatcher
from tapeharness.outcome import Failed, Outcome, Passed, ShouldPanicButPassed
from tapeharness.protocol import SENTINEL
from tapeharness.registry import TestDescriptor, load_registry


class RecordingSupervisor(ProcessSupervisor):
    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.tried: List[Path] = []
        self.processes: List[subprocess.Popen] = []

    def run_candidate(
        self, descriptor: TestDescriptor, artifact: Path, host_duration: float
    ) -> Optional[Outcome]:
        self.tried.append(artifact)
        return super().run_candidate(descriptor, artifact, host_duration)

    def _spawn(self, command: List[str]) -> subprocess.Popen:
        proc = super()._spawn(command)
        self.processes.append(proc)
        return proc


def _descriptor(path: Path, name: str) -> TestDescriptor:
    registry = load_registry(f"{path}:registry")
    return next(descriptor for descriptor in registry if descriptor.name == name)


def _assert_reaped(supervisor: RecordingSupervisor) -> None:
    assert supervisor.processes
    assert all(proc.returncode is not None for proc in supervisor.processes)


def test_candidates_are_tried_in_order(fixture_path: Any, guest_settings: Any) -> None:
    alpha, beta = fixture_path("guest_alpha.py"), fixture_path("guest_beta.py")
    supervisor = RecordingSupervisor(guest_settings(alpha, beta))
    outcome = supervisor.run(_descriptor(beta, "only_in_beta"), [alpha, beta], 0.0)
    assert isinstance(outcome, Passed)
    assert supervisor.tried == [alpha, beta]
    assert len(supervisor.processes) == 2
    _assert_reaped(supervisor)


def test_first_matching_candidate_wins(fixture_path: Any, guest_settings: Any) -> None:
    alpha, beta = fixture_path("guest_alpha.py"), fixture_path("guest_beta.py")
    supervisor = RecordingSupervisor(guest_settings(alpha, beta))
    outcome = supervisor.run(_descriptor(alpha, "only_in_alpha"), [alpha, beta], 0.0)
    assert isinstance(outcome, Passed)
    assert supervisor.tried == [alpha]


def test_missing_test_names_every_candidate(fixture_path: Any, guest_settings: Any) -> None:
    alpha, beta = fixture_path("guest_alpha.py"), fixture_path("guest_beta.py")
    supervisor = RecordingSupervisor(guest_settings(alpha))
    with pytest.raises(TestNotFoundError) as info:
        supervisor.run(_descriptor(beta, "only_in_beta"), [alpha], 0.0)
    assert info.value.candidates == [alpha]
    assert "Test only_in_beta not found in any test binary" in str(info.value)
    assert str(alpha) in str(info.value)
    _assert_reaped(supervisor)


def test_no_candidates(fixture_path: Any, guest_settings: Any) -> None:
    beta = fixture_path("guest_beta.py")
    supervisor = RecordingSupervisor(guest_settings())
    with pytest.raises(TestNotFoundError, match="No test binaries found"):
        supervisor.run(_descriptor(beta, "only_in_beta"), [], 0.0)
    assert supervisor.tried == []


def test_missing_runner_is_a_spawn_failure(fixture_path: Any, guest_settings: Any) -> None:
    beta = fixture_path("guest_beta.py")
    settings = guest_settings(beta, guest_runner=["/nonexistent/tapeharness-runner", "{artifact}"])
    with pytest.raises(SpawnFailure, match="tapeharness-runner"):
        ProcessSupervisor(settings).run(_descriptor(beta, "only_in_beta"), [beta], 0.0)


def test_guest_panic_is_detected_by_sentinel(fixture_path: Any, guest_settings: Any) -> None:
    suite = fixture_path("guest_behaviors.py")
    supervisor = RecordingSupervisor(guest_settings(suite))
    outcome = supervisor.run(_descriptor(suite, "panics_unexpectedly"), [suite], 0.0)
    assert isinstance(outcome, Failed)
    assert outcome.message.startswith("Test panicked unexpectedly")
    assert "about to fail" in outcome.message
    assert "left != right" in outcome.message
    assert SENTINEL.strip().decode() not in outcome.message.split("stderr:")[0]
    _assert_reaped(supervisor)


def test_guest_cannot_check_panic_message(fixture_path: Any, guest_settings: Any) -> None:
    suite = fixture_path("guest_behaviors.py")
    outcome = ProcessSupervisor(guest_settings(suite)).run(
        _descriptor(suite, "panics_with_other_message"), [suite], 0.0
    )
    assert isinstance(outcome, Passed)


def test_returned_failure_is_a_nonzero_exit(fixture_path: Any, guest_settings: Any) -> None:
    suite = fixture_path("guest_behaviors.py")
    outcome = ProcessSupervisor(guest_settings(suite)).run(
        _descriptor(suite, "returns_failure"), [suite], 0.0
    )
    assert isinstance(outcome, Failed)
    assert outcome.message.startswith("Test failed with exit code: 1")
    assert "Test returned error: bad checksum" in outcome.message


def test_guest_completion_with_expected_panic(fixture_path: Any, guest_settings: Any) -> None:
    suite = fixture_path("guest_behaviors.py")
    outcome = ProcessSupervisor(guest_settings(suite)).run(
        _descriptor(suite, "passes_but_should_panic"), [suite], 0.0
    )
    assert outcome == ShouldPanicButPassed()


def test_printing_guest_test_passes(fixture_path: Any, guest_settings: Any) -> None:
    suite = fixture_path("guest_behaviors.py")
    outcome = ProcessSupervisor(guest_settings(suite)).run(
        _descriptor(suite, "prints_and_passes"), [suite], 0.0
    )
    assert isinstance(outcome, Passed)


def test_hanging_guest_times_out(fixture_path: Any, guest_settings: Any) -> None:
    suite = fixture_path("guest_behaviors.py")
    supervisor = RecordingSupervisor(guest_settings(suite, timeout_floor_s=0.5))
    outcome = supervisor.run(_descriptor(suite, "hangs"), [suite], 0.0)
    assert isinstance(outcome, Failed)
    assert outcome.message.startswith("Test timed out after 0.5s")
    _assert_reaped(supervisor)


def test_timeout_counts_as_expected_panic(fixture_path: Any, guest_settings: Any) -> None:
    suite = fixture_path("guest_behaviors.py")
    supervisor = RecordingSupervisor(guest_settings(suite, timeout_floor_s=0.5))
    outcome = supervisor.run(_descriptor(suite, "hangs_expecting_panic"), [suite], 0.0)
    assert isinstance(outcome, Passed)
    _assert_reaped(supervisor)


def test_timeout_scales_with_host_duration() -> None:
    settings = Settings()
    assert settings.guest_timeout(1.0) == 20.0
    assert settings.guest_timeout(0.01) == 10.0
    assert Settings(timeout_multiplier=3.0, timeout_floor_s=0.0).guest_timeout(2.0) == 6.0


@pytest.mark.slow
def test_default_timeout_scales_host_duration(fixture_path: Any, guest_settings: Any) -> None:
    suite = fixture_path("guest_behaviors.py")
    supervisor = RecordingSupervisor(guest_settings(suite))
    start = time.monotonic()
    outcome = supervisor.run(_descriptor(suite, "hangs_expecting_panic"), [suite], 1.0)
    assert isinstance(outcome, Passed)
    assert time.monotonic() - start >= 20.0
    _assert_reaped(supervisor)


def test_handshake_accepts_names_with_other_line_breaks() -> None:
    descriptor = TestDescriptor("odd\x1cname\u2028", "src/odd.py")
    output = (
        "Available tests: (odd\x1cname\u2028, src/odd.py)\r\n"
        "Running test: odd\x1cname\u2028 in valida vm\r\n"
    ).encode("utf-8")
    supervisor = ProcessSupervisor(Settings(handshake_timeout_s=5.0))
    assert supervisor._handshake(StreamWatcher(io.BytesIO(output)), descriptor)

    other = TestDescriptor("odd", "src/odd.py")
    assert not supervisor._handshake(StreamWatcher(io.BytesIO(output)), other)
