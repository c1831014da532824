"""Guest side of the harness.

A guest artifact runs exactly one test per process. It announces what it
contains, reads the selection from the input tape, confirms with the
handshake line and then calls the test directly. Nothing can catch a panic
inside the guest, so the only failure report is the sentinel written by the
panic handler installed at startup.
"""

from __future__ import annotations

import sys
import traceback
from types import TracebackType
from typing import Any, Callable, Optional, Type

from ..config import Settings
from ..errors import TapeExhausted
from ..protocol import SENTINEL, availability_line, handshake_line
from ..registry import Failure, TestDescriptor, TestRegistry
from ..tape.codec import read_line, write_bytes, write_line
from ..tape.io import StdioTape, Tape
from .entropy import EntropySource, SeededEntropy

# Trimmed from request lines; other control characters belong to the key.
REQUEST_PADDING = " \t\r"


def _location(tb: Optional[TracebackType]) -> str:
    frames = traceback.extract_tb(tb)
    if not frames:
        return "<unknown>"
    frame = frames[-1]
    return f"{frame.filename}:{frame.lineno}"


class GuestDispatcher:
    def __init__(
        self,
        registry: TestRegistry,
        tape: Optional[Tape] = None,
        env_name: str = "valida",
    ) -> None:
        self.tests = registry.freeze()
        self.tape = tape if tape is not None else StdioTape()
        self.env_name = env_name
        self.current: Optional[TestDescriptor] = None
        self._handler_installed = False

    def install_panic_handler(self) -> None:
        if self._handler_installed:
            return

        def handler(
            exc_type: Type[BaseException],
            exc: BaseException,
            tb: Optional[TracebackType],
        ) -> None:
            traceback.print_exception(exc_type, exc, tb, file=sys.stderr)
            self.report_panic(exc, tb)

        sys.excepthook = handler
        self._handler_installed = True

    def report_panic(self, exc: BaseException, tb: Optional[TracebackType]) -> None:
        message = str(exc) or exc.__class__.__name__
        if self.current is not None:
            who = f"test '{self.current.name}' in {self.current.source_file}"
        else:
            who = "guest"
        text = f"\n\n{who} panicked at {_location(tb)} with message:\n{message}\n\n\n"
        write_bytes(self.tape, text.encode("utf-8", errors="replace"))
        write_bytes(self.tape, SENTINEL + b"\n")
        self.tape.flush()

    def select(self, name: str, source_file: str) -> Optional[TestDescriptor]:
        for descriptor in self.tests:
            if descriptor.name == name and descriptor.source_file == source_file:
                return descriptor
        return None

    def run(self) -> int:
        """Dispatch one test and return the guest's exit status."""
        self.install_panic_handler()
        write_line(self.tape, availability_line(test.key for test in self.tests))

        # Callers always send both lines; if they don't there is nothing to do.
        try:
            name = read_line(self.tape).strip(REQUEST_PADDING)
            source_file = read_line(self.tape).strip(REQUEST_PADDING)
        except TapeExhausted:
            return 0

        descriptor = self.select(name, source_file)
        if descriptor is None:
            return 0
        self.current = descriptor
        write_line(self.tape, handshake_line(descriptor.name, self.env_name))
        if descriptor.kind != "static" or descriptor.invocation is None:
            return 0

        result = descriptor.invocation()
        if isinstance(result, Failure):
            write_bytes(self.tape, f"Test returned error: {result.detail}\n".encode("utf-8"))
            self.tape.flush()
            return 1
        return 0


def run_guest(
    registry: TestRegistry,
    tape: Optional[Tape] = None,
    env_name: Optional[str] = None,
) -> int:
    if env_name is None:
        env_name = Settings().env_name
    return GuestDispatcher(registry, tape=tape, env_name=env_name).run()


def entrypoint(
    main: Callable[[EntropySource], Any],
    entropy: Optional[EntropySource] = None,
) -> Any:
    """Run a guest program's ``main`` with its random-byte capability."""
    return main(entropy if entropy is not None else SeededEntropy())
