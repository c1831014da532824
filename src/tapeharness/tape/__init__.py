from .codec import (
    decode,
    encode,
    read_exact,
    read_line,
    read_until,
    read_value,
    write_bytes,
    write_line,
    write_value,
)
from .io import MemoryTape, StdioTape, Tape

__all__ = [
    "decode",
    "encode",
    "read_exact",
    "read_line",
    "read_until",
    "read_value",
    "write_bytes",
    "write_line",
    "write_value",
    "MemoryTape",
    "StdioTape",
    "Tape",
]
