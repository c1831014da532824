"""Byte-at-a-time tape primitives.

A guest sees exactly two tapes: an input tape it can read one byte at a time
and an output tape it can write one byte at a time. ``read_byte`` returns
``None`` once the input tape is exhausted instead of blocking forever; the
codec turns that into :class:`~tapeharness.errors.TapeExhausted`.
"""

from __future__ import annotations

import sys
from typing import BinaryIO, Optional, Protocol, TextIO


class Tape(Protocol):
    def read_byte(self) -> Optional[int]:
        ...

    def write_byte(self, value: int) -> None:
        ...

    def flush(self) -> None:
        ...


class StdioTape:
    """Tapes backed by the process stdin/stdout, as seen by a guest runner."""

    def __init__(
        self,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[TextIO] = None,
    ) -> None:
        self._stdin = stdin if stdin is not None else sys.stdin.buffer
        self._text = stdout if stdout is not None else sys.stdout

    def read_byte(self) -> Optional[int]:
        data = self._stdin.read(1)
        if not data:
            return None
        return data[0]

    def write_byte(self, value: int) -> None:
        # print() output from the running test sits in the text layer.
        self._text.flush()
        self._text.buffer.write(bytes((value,)))

    def flush(self) -> None:
        self._text.flush()
        self._text.buffer.flush()


class MemoryTape:
    def __init__(self, input_data: bytes = b"") -> None:
        self._input = bytes(input_data)
        self._position = 0
        self.output = bytearray()

    def read_byte(self) -> Optional[int]:
        if self._position >= len(self._input):
            return None
        value = self._input[self._position]
        self._position += 1
        return value

    def write_byte(self, value: int) -> None:
        self.output.append(value)

    def flush(self) -> None:
        pass

    @property
    def remaining(self) -> bytes:
        return self._input[self._position :]
