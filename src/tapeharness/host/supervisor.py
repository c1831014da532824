from __future__ import annotations

import logging
import os
import signal
import subprocess
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Sequence

from ..config import Settings
from ..errors import SpawnFailure, TestNotFoundError
from ..outcome import Aborted, Completed, ExplicitFailure, Failed, Outcome, classify
from ..protocol import SENTINEL, handshake_line, split_lines
from ..registry import TestDescriptor
from .watcher import StreamWatcher

log = logging.getLogger(__name__)

# How long to wait for the output pipe to close once the guest has exited.
EXIT_DRAIN_TIMEOUT_S = 1.0


def _guest_env(settings: Settings) -> dict[str, str]:
    env = dict(os.environ)
    env["TAPEHARNESS_TARGET"] = "guest"
    env["TAPEHARNESS_ENV_NAME"] = settings.env_name
    env["PYTHONUNBUFFERED"] = "1"
    return env


def _kill(proc: subprocess.Popen) -> None:
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass
    if proc.poll() is None:
        proc.kill()


def _strip_sentinel(output: bytes) -> bytes:
    trimmed = output.rstrip()
    marker = SENTINEL.rstrip()
    if trimmed.endswith(marker):
        return trimmed[: -len(marker)]
    return output


class ProcessSupervisor:
    """Run one test inside the guest by trying each candidate artifact in turn."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def command_for(self, artifact: Path, log_path: Path) -> List[str]:
        return [
            part.replace("{artifact}", str(artifact)).replace("{log}", str(log_path))
            for part in self.settings.guest_runner
        ]

    def run(
        self,
        descriptor: TestDescriptor,
        candidates: Sequence[Path],
        host_duration: float,
    ) -> Outcome:
        if not candidates:
            raise TestNotFoundError(descriptor.name, [])
        for artifact in candidates:
            outcome = self.run_candidate(descriptor, artifact, host_duration)
            if outcome is not None:
                return outcome
            log.info("%s not found in %s", descriptor.name, artifact)
        raise TestNotFoundError(descriptor.name, candidates)

    def run_candidate(
        self,
        descriptor: TestDescriptor,
        artifact: Path,
        host_duration: float,
    ) -> Optional[Outcome]:
        """Return the outcome, or ``None`` when the artifact lacks the test."""
        with tempfile.TemporaryDirectory(prefix="tapeharness-") as workdir:
            command = self.command_for(artifact, Path(workdir) / "guest.log")
            proc = self._spawn(command)
            try:
                self._send_request(proc, descriptor)
                stdout = StreamWatcher(proc.stdout, "stdout")
                stderr = StreamWatcher(proc.stderr, "stderr")
                if not self._handshake(stdout, descriptor):
                    return None
                return self._supervise(proc, stdout, stderr, descriptor, host_duration)
            finally:
                _kill(proc)
                proc.wait()

    def _spawn(self, command: List[str]) -> subprocess.Popen:
        log.debug("spawning guest runner: %s", command)
        try:
            return subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=_guest_env(self.settings),
                start_new_session=os.name == "posix",
            )
        except OSError as exc:
            raise SpawnFailure(command, exc) from exc

    def _send_request(self, proc: subprocess.Popen, descriptor: TestDescriptor) -> None:
        request = f"{descriptor.name}\n{descriptor.source_file}\n".encode("utf-8")
        # The guest may exit before reading if it does not contain the test.
        try:
            proc.stdin.write(request)
            proc.stdin.flush()
        except OSError as exc:
            log.debug("guest stdin closed early: %s", exc)
        try:
            proc.stdin.close()
        except OSError as exc:
            log.debug("guest stdin closed early: %s", exc)

    def _handshake(self, stdout: StreamWatcher, descriptor: TestDescriptor) -> bool:
        stdout.wait_for_lines(2, self.settings.handshake_timeout_s)
        lines = split_lines(bytes(stdout.buffer))
        expected = handshake_line(descriptor.name, self.settings.env_name)
        if len(lines) >= 2 and lines[1] == expected:
            return True
        log.debug("handshake mismatch for %s: %r", descriptor.name, lines[:2])
        return False

    def _supervise(
        self,
        proc: subprocess.Popen,
        stdout: StreamWatcher,
        stderr: StreamWatcher,
        descriptor: TestDescriptor,
        host_duration: float,
    ) -> Outcome:
        timeout = self.settings.guest_timeout(host_duration)
        should_panic = descriptor.should_panic
        start = time.monotonic()

        def captured(strip: bool = False) -> str:
            stdout.drain()
            stderr.drain()
            raw = _strip_sentinel(bytes(stdout.buffer)) if strip else bytes(stdout.buffer)
            text = raw.decode("utf-8", errors="replace")
            if stderr.buffer:
                text += "\n\nstderr:\n" + stderr.text()
            return text

        def sentinel_outcome() -> Outcome:
            return classify(
                Aborted(reason="sentinel"),
                should_panic,
                duration=time.monotonic() - start,
                captured=captured(strip=True),
            )

        while True:
            stdout.drain()
            stderr.drain()
            if stdout.find_marker(SENTINEL):
                return sentinel_outcome()

            try:
                returncode = proc.poll()
            except OSError as exc:
                return Failed(f"Failed to wait for guest process: {exc}\n\n{captured()}")

            if returncode is not None:
                stdout.wait_closed(EXIT_DRAIN_TIMEOUT_S)
                if stdout.find_marker(SENTINEL):
                    return sentinel_outcome()
                termination = (
                    Completed() if returncode == 0 else ExplicitFailure(exit_code=returncode)
                )
                return classify(
                    termination,
                    should_panic,
                    duration=time.monotonic() - start,
                    captured=captured(),
                )

            elapsed = time.monotonic() - start
            if elapsed >= timeout:
                log.info("%s timed out in guest after %.1fs", descriptor.name, elapsed)
                return classify(
                    Aborted(reason="timeout", detail=f"{timeout:.1f}s"),
                    should_panic,
                    duration=elapsed,
                    captured=captured(),
                )

            time.sleep(self.settings.poll_interval_s)
