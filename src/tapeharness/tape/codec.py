"""Wire encodings used on the tapes.

Two independent formats share the tapes and are never mixed:

* value framing: ``<decimal length>\\n<payload>`` where the payload is a
  type-directed binary encoding. Integers are fixed-width little-endian
  (``i64``), floats are ``f64``, and every length or element count is a
  ``u64`` little-endian prefix.
* line protocol: UTF-8 text terminated by ``\\n``, used only for the test
  selection handshake.
"""

from __future__ import annotations

import struct
import types
from typing import Any, Dict, List, Optional, Tuple, Type, Union, get_args, get_origin

from pydantic import BaseModel

from ..errors import TapeCodecError, TapeExhausted
from .io import Tape

NEWLINE = 0x0A

_U8 = struct.Struct("<B")
_U64 = struct.Struct("<Q")
_I64 = struct.Struct("<q")
_F64 = struct.Struct("<d")

_I64_MIN = -(1 << 63)
_I64_MAX = (1 << 63) - 1


def read_until(tape: Tape, delimiter: int) -> bytes:
    result = bytearray()
    while True:
        value = tape.read_byte()
        if value is None:
            raise TapeExhausted(
                f"input tape ended after {len(result)} bytes while waiting for {delimiter:#04x}"
            )
        if value == delimiter:
            return bytes(result)
        result.append(value)


def read_exact(tape: Tape, count: int) -> bytes:
    result = bytearray()
    for _ in range(count):
        value = tape.read_byte()
        if value is None:
            raise TapeExhausted(f"input tape ended after {len(result)} of {count} bytes")
        result.append(value)
    return bytes(result)


def write_bytes(tape: Tape, data: bytes) -> None:
    for value in data:
        tape.write_byte(value)


def write_line(tape: Tape, text: str) -> None:
    if "\n" in text:
        raise TapeCodecError("control lines cannot contain a newline")
    write_bytes(tape, text.encode("utf-8") + b"\n")
    tape.flush()


def read_line(tape: Tape) -> str:
    raw = read_until(tape, NEWLINE)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise TapeCodecError(f"control line is not valid UTF-8: {exc}") from exc


def write_value(tape: Tape, value: Any, type_: Any) -> None:
    payload = encode(value, type_)
    write_bytes(tape, str(len(payload)).encode("ascii") + b"\n")
    write_bytes(tape, payload)
    tape.flush()


def read_value(tape: Tape, type_: Any) -> Any:
    header = read_until(tape, NEWLINE)
    if not header.isdigit():
        raise TapeCodecError(f"invalid length prefix: {header!r}")
    payload = read_exact(tape, int(header))
    return decode(payload, type_)


def encode(value: Any, type_: Any) -> bytes:
    out = bytearray()
    _encode_into(out, value, type_)
    return bytes(out)


def decode(data: bytes, type_: Any) -> Any:
    reader = _Reader(data)
    value = _decode_from(reader, type_)
    if reader.remaining:
        raise TapeCodecError(f"{reader.remaining} trailing bytes after payload")
    return value


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def take(self, count: int) -> bytes:
        if count > self.remaining:
            raise TapeCodecError(
                f"truncated payload: wanted {count} bytes, {self.remaining} left"
            )
        chunk = self._data[self._offset : self._offset + count]
        self._offset += count
        return chunk

    def unpack(self, fmt: struct.Struct) -> Any:
        return fmt.unpack(self.take(fmt.size))[0]


def _optional_inner(type_: Any) -> Optional[Any]:
    origin = get_origin(type_)
    if origin is Union or origin is types.UnionType:
        members = [arg for arg in get_args(type_) if arg is not type(None)]
        if len(members) != 1 or len(get_args(type_)) != 2:
            raise TapeCodecError(f"unsupported union type: {type_!r}")
        return members[0]
    return None


def _is_model(type_: Any) -> bool:
    return isinstance(type_, type) and issubclass(type_, BaseModel)


def _encode_count(out: bytearray, count: int) -> None:
    out += _U64.pack(count)


def _encode_into(out: bytearray, value: Any, type_: Any) -> None:
    inner = _optional_inner(type_)
    if inner is not None:
        if value is None:
            out += _U8.pack(0)
        else:
            out += _U8.pack(1)
            _encode_into(out, value, inner)
        return
    origin = get_origin(type_) or type_
    args = get_args(type_)
    if type_ is bool:
        if not isinstance(value, bool):
            raise TapeCodecError(f"expected bool, got {type(value).__name__}")
        out += _U8.pack(1 if value else 0)
    elif type_ is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TapeCodecError(f"expected int, got {type(value).__name__}")
        if not _I64_MIN <= value <= _I64_MAX:
            raise TapeCodecError(f"integer {value} does not fit in i64")
        out += _I64.pack(value)
    elif type_ is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TapeCodecError(f"expected float, got {type(value).__name__}")
        out += _F64.pack(float(value))
    elif type_ is str:
        if not isinstance(value, str):
            raise TapeCodecError(f"expected str, got {type(value).__name__}")
        raw = value.encode("utf-8")
        _encode_count(out, len(raw))
        out += raw
    elif type_ is bytes:
        if not isinstance(value, (bytes, bytearray)):
            raise TapeCodecError(f"expected bytes, got {type(value).__name__}")
        _encode_count(out, len(value))
        out += value
    elif _is_model(type_):
        if not isinstance(value, type_):
            raise TapeCodecError(f"expected {type_.__name__}, got {type(value).__name__}")
        for name, field in type_.model_fields.items():
            _encode_into(out, getattr(value, name), field.annotation)
    elif origin in (list, List) and args:
        _encode_count(out, len(value))
        for item in value:
            _encode_into(out, item, args[0])
    elif origin in (tuple, Tuple) and args:
        if len(args) == 2 and args[1] is Ellipsis:
            _encode_count(out, len(value))
            for item in value:
                _encode_into(out, item, args[0])
        else:
            if len(value) != len(args):
                raise TapeCodecError(f"expected {len(args)}-tuple, got {len(value)} items")
            for item, item_type in zip(value, args):
                _encode_into(out, item, item_type)
    elif origin in (dict, Dict) and len(args) == 2:
        _encode_count(out, len(value))
        for key, item in value.items():
            _encode_into(out, key, args[0])
            _encode_into(out, item, args[1])
    else:
        raise TapeCodecError(f"unsupported type: {type_!r}")


def _decode_from(reader: _Reader, type_: Any) -> Any:
    inner = _optional_inner(type_)
    if inner is not None:
        tag = reader.unpack(_U8)
        if tag == 0:
            return None
        if tag != 1:
            raise TapeCodecError(f"invalid option tag {tag}")
        return _decode_from(reader, inner)
    origin = get_origin(type_) or type_
    args = get_args(type_)
    if type_ is bool:
        raw = reader.unpack(_U8)
        if raw not in (0, 1):
            raise TapeCodecError(f"invalid bool byte {raw}")
        return raw == 1
    if type_ is int:
        return reader.unpack(_I64)
    if type_ is float:
        return reader.unpack(_F64)
    if type_ is str:
        raw = reader.take(reader.unpack(_U64))
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise TapeCodecError(f"string payload is not valid UTF-8: {exc}") from exc
    if type_ is bytes:
        return reader.take(reader.unpack(_U64))
    if _is_model(type_):
        model: Type[BaseModel] = type_
        values = {
            name: _decode_from(reader, field.annotation)
            for name, field in model.model_fields.items()
        }
        return model(**values)
    if origin in (list, List) and args:
        count = reader.unpack(_U64)
        return [_decode_from(reader, args[0]) for _ in range(count)]
    if origin in (tuple, Tuple) and args:
        if len(args) == 2 and args[1] is Ellipsis:
            count = reader.unpack(_U64)
            return tuple(_decode_from(reader, args[0]) for _ in range(count))
        return tuple(_decode_from(reader, item_type) for item_type in args)
    if origin in (dict, Dict) and len(args) == 2:
        count = reader.unpack(_U64)
        result = {}
        for _ in range(count):
            key = _decode_from(reader, args[0])
            result[key] = _decode_from(reader, args[1])
        return result
    raise TapeCodecError(f"unsupported type: {type_!r}")
