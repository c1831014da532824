from __future__ import annotations

import contextlib
import io
import logging
import os
import sys
import tempfile
import time
import traceback
from typing import BinaryIO, Iterator

from ..outcome import (
    Aborted,
    Completed,
    ExplicitFailure,
    Outcome,
    Termination,
    Unsupported,
    classify,
)
from ..registry import Failure, Invocation, TestDescriptor

log = logging.getLogger(__name__)

# Interrupts still stop the whole run.
PROPAGATED = (KeyboardInterrupt, GeneratorExit)


def panic_message(exc: BaseException) -> str:
    if isinstance(exc, SystemExit):
        return f"test called exit({exc.code})"
    text = str(exc)
    return text if text else exc.__class__.__name__


def _invoke(invocation: Invocation) -> Termination:
    try:
        result = invocation()
    except PROPAGATED:
        raise
    except BaseException as exc:  # noqa: BLE001
        traceback.print_exc(file=sys.stderr)
        return Aborted(message=panic_message(exc))
    if isinstance(result, Failure):
        return ExplicitFailure(detail=result.detail)
    return Completed()


def _flush_std_streams() -> None:
    for stream in (sys.stdout, sys.stderr, sys.__stdout__, sys.__stderr__):
        if stream is not None:
            with contextlib.suppress(OSError, ValueError):
                stream.flush()


@contextlib.contextmanager
def redirect_fds(sink: BinaryIO) -> Iterator[None]:
    """Point file descriptors 1 and 2 at ``sink`` until the block exits."""
    _flush_std_streams()
    saved = [os.dup(fd) for fd in (1, 2)]
    try:
        for fd in (1, 2):
            os.dup2(sink.fileno(), fd)
        yield
    finally:
        _flush_std_streams()
        for fd, original in zip((1, 2), saved):
            os.dup2(original, fd)
            os.close(original)


def run_on_host(descriptor: TestDescriptor) -> Outcome:
    """Run one test in-process with its output captured.

    Everything the test prints, at the Python level or straight to file
    descriptors 1 and 2 (child processes, extension modules), goes to a
    private buffer which is only surfaced when the outcome is a failure.
    """
    if descriptor.kind != "static" or descriptor.invocation is None:
        return Unsupported()
    buffer = io.StringIO()
    with tempfile.TemporaryFile() as sink:
        start = time.monotonic()
        with redirect_fds(sink):
            with contextlib.redirect_stdout(buffer), contextlib.redirect_stderr(buffer):
                termination = _invoke(descriptor.invocation)
        duration = time.monotonic() - start
        sink.seek(0)
        raw = sink.read().decode("utf-8", errors="replace")
    log.debug("host run of %s finished in %.3fs: %s", descriptor.name, duration, termination)
    return classify(
        termination,
        descriptor.should_panic,
        duration=duration,
        captured=buffer.getvalue() + raw,
    )
