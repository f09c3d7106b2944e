"""
BSON encoding.

Turns a mapping (and the values nested in it) into a BSON buffer. Keys are
written in the mapping's iteration order; no key or type normalization is
done beyond the natural Python to BSON mapping.
"""

from __future__ import annotations

import datetime
import re
import struct
from typing import Any, Iterable, Mapping

from .decoder import DOUBLE, INT32, INT64, MAX_DEPTH, UINT32, BsonType
from .objectid import ObjectId
from .types import UnencodableValue
from .values import (
    BinData,
    Code,
    DBPointer,
    Int64,
    MaxKey,
    MinKey,
    Regex,
    Timestamp,
    UTCDateTime,
)

__all__ = ["encode", "encode_stream"]

INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1


def _cstring(value: str, what: str) -> bytes:
    raw = value.encode("utf-8")
    if b"\x00" in raw:
        raise UnencodableValue(f"{what} {value!r} contains a NUL byte")
    return raw + b"\x00"


def _string(value: str) -> bytes:
    raw = value.encode("utf-8") + b"\x00"
    return INT32.pack(len(raw)) + raw


def _key(key: Any) -> bytes:
    if not isinstance(key, str):
        raise UnencodableValue(f"document keys must be strings, not {type(key).__name__}")
    if not key:
        raise UnencodableValue("document keys must not be empty")
    return _cstring(key, "key")


def _document(items: Iterable[tuple[bytes, Any]], path: str, depth: int) -> bytes:
    if depth >= MAX_DEPTH:
        raise UnencodableValue(
            f"{path or 'document'}: nested deeper than {MAX_DEPTH} levels"
            " (self-referencing container?)"
        )
    body = bytearray()
    for name, value in items:
        body += _element(name, value, path, depth + 1)
    body += b"\x00"
    return INT32.pack(len(body) + 4) + bytes(body)


def _mapping(value: Mapping[Any, Any], path: str, depth: int = 0) -> bytes:
    return _document(((_key(k), v) for k, v in value.items()), path, depth)


def _array(value: Iterable[Any], path: str, depth: int) -> bytes:
    return _document(
        ((str(i).encode("ascii") + b"\x00", v) for i, v in enumerate(value)), path, depth
    )


def _element(name: bytes, value: Any, path: str, depth: int) -> bytes:
    key = name[:-1].decode("utf-8")
    tag, payload = _value(value, f"{path}.{key}" if path else key, depth)
    return bytes((tag,)) + name + payload


def _value(value: Any, path: str, depth: int) -> tuple[int, bytes]:
    if value is None:
        return BsonType.NULL, b""
    if isinstance(value, bool):
        return BsonType.BOOLEAN, b"\x01" if value else b"\x00"
    if isinstance(value, Int64):
        return BsonType.INT64, INT64.pack(value)
    if isinstance(value, int):
        if INT32_MIN <= value <= INT32_MAX:
            return BsonType.INT32, INT32.pack(value)
        if INT64_MIN <= value <= INT64_MAX:
            return BsonType.INT64, INT64.pack(value)
        raise UnencodableValue(f"{path}: integer {value} does not fit in 64 bits")
    if isinstance(value, float):
        return BsonType.DOUBLE, DOUBLE.pack(value)
    if isinstance(value, str):
        return BsonType.STRING, _string(value)
    if isinstance(value, Mapping):
        return BsonType.DOCUMENT, _mapping(value, path, depth)
    if isinstance(value, (list, tuple)):
        return BsonType.ARRAY, _array(value, path, depth)
    if isinstance(value, ObjectId):
        return BsonType.OBJECT_ID, value.binary
    if isinstance(value, (bytes, bytearray, memoryview)):
        value = BinData(bytes(value))
    if isinstance(value, BinData):
        data = value.data
        if value.subtype == BinData.BYTE_ARRAY:
            data = INT32.pack(len(data)) + data
        return BsonType.BINARY, INT32.pack(len(data)) + bytes((value.subtype,)) + data
    if isinstance(value, datetime.datetime):
        value = UTCDateTime.from_datetime(value)
    if isinstance(value, UTCDateTime):
        ms = value.milliseconds
        if not INT64_MIN <= ms <= INT64_MAX:
            raise UnencodableValue(f"{path}: datetime out of range")
        return BsonType.DATETIME, INT64.pack(ms)
    if isinstance(value, re.Pattern):
        value = Regex.from_pattern(value)
    if isinstance(value, Regex):
        return BsonType.REGEX, _cstring(value.pattern, "regex") + _cstring(value.flags, "regex flags")
    if isinstance(value, Code):
        if value.scope is None:
            return BsonType.CODE, _string(value.code)
        body = _string(value.code) + _mapping(value.scope, path, depth)
        return BsonType.CODE_WITH_SCOPE, INT32.pack(len(body) + 4) + body
    if isinstance(value, Timestamp):
        return BsonType.TIMESTAMP, UINT32.pack(value.inc) + UINT32.pack(value.sec)
    if isinstance(value, MinKey):
        return BsonType.MIN_KEY, b""
    if isinstance(value, MaxKey):
        return BsonType.MAX_KEY, b""
    if isinstance(value, DBPointer):
        raise UnencodableValue(f"{path}: DBPointer is a legacy type and is decode only")
    raise UnencodableValue(f"{path}: cannot encode object of type {type(value).__name__}")


def encode(document: Mapping[str, Any]) -> bytes:
    """
    Encode a document to BSON.

    Args:
        document: Mapping of string keys to encodable values.

    Returns:
        The encoded bytes.

    Raises:
        UnencodableValue: If the document, a key or a nested value has no
            BSON representation.
    """
    if not isinstance(document, Mapping):
        raise UnencodableValue(
            f"top level value must be a mapping, not {type(document).__name__}"
        )
    try:
        return _mapping(document, "")
    except struct.error as e:
        raise UnencodableValue(str(e)) from e


def encode_stream(documents: Iterable[Mapping[str, Any]]) -> bytes:
    """Encode documents back to back, the inverse of ``decode_stream``."""
    return b"".join(encode(document) for document in documents)
