"""
BSON decoding.

Turns length-prefixed BSON buffers into ordered ``dict`` trees. Documents
are visited depth-first: a nested document or array is fully decoded
before the enclosing document continues, and any structural fault aborts
the whole decode with :class:`MalformedDocument`, as does nesting deeper
than ``MAX_DEPTH`` levels or an empty key. Array element keys are not
checked: values are taken in byte order whatever their keys say.

Example:
    doc = decode(payload)
    docs = decode_stream(payload_a + payload_b)
"""

from __future__ import annotations

import enum
import struct
from typing import Any, Callable

from .objectid import ObjectId
from .types import MalformedDocument, UnexpectedEndOfStream
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

__all__ = ["BsonType", "decode", "decode_stream"]

INT32 = struct.Struct("<i")
UINT32 = struct.Struct("<I")
INT64 = struct.Struct("<q")
DOUBLE = struct.Struct("<d")

MIN_DOCUMENT_SIZE = 5

# Nesting limit for documents, arrays and code scopes, the server's own limit.
MAX_DEPTH = 100


class BsonType(enum.IntEnum):
    """Element type tags understood by the codec."""

    DOUBLE = 0x01
    STRING = 0x02
    DOCUMENT = 0x03
    ARRAY = 0x04
    BINARY = 0x05
    OBJECT_ID = 0x07
    BOOLEAN = 0x08
    DATETIME = 0x09
    NULL = 0x0A
    REGEX = 0x0B
    DB_POINTER = 0x0C
    CODE = 0x0D
    CODE_WITH_SCOPE = 0x0F
    INT32 = 0x10
    TIMESTAMP = 0x11
    INT64 = 0x12
    MAX_KEY = 0x7F
    MIN_KEY = 0xFF


class _Reader:
    """Bounds-checked cursor over one buffer."""

    __slots__ = ("data", "pos", "depth")

    def __init__(self, data: bytes, pos: int = 0) -> None:
        self.data = data
        self.pos = pos
        self.depth = 0

    def take(self, size: int, end: int) -> bytes:
        if size < 0 or self.pos + size > end:
            raise MalformedDocument(
                f"value at offset {self.pos} runs past the end of its container"
            )
        chunk = self.data[self.pos:self.pos + size]
        self.pos += size
        return chunk

    def unpack(self, fmt: struct.Struct, end: int) -> Any:
        return fmt.unpack(self.take(fmt.size, end))[0]

    def cstring(self, end: int) -> str:
        nul = self.data.find(b"\x00", self.pos, end)
        if nul < 0:
            raise MalformedDocument(f"unterminated cstring at offset {self.pos}")
        raw = self.data[self.pos:nul]
        self.pos = nul + 1
        return _utf8(raw)

    def string(self, end: int) -> str:
        size = self.unpack(INT32, end)
        if size < 1:
            raise MalformedDocument(f"invalid string length {size}")
        raw = self.take(size, end)
        if raw[-1:] != b"\x00":
            raise MalformedDocument("string is not NUL terminated")
        return _utf8(raw[:-1])


def _utf8(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedDocument(f"invalid UTF-8: {e}") from e


def _read_double(reader: _Reader, end: int) -> float:
    return reader.unpack(DOUBLE, end)


def _read_string(reader: _Reader, end: int) -> str:
    return reader.string(end)


def _read_document(reader: _Reader, end: int) -> dict[str, Any]:
    return _decode_document(reader, end)


def _read_array(reader: _Reader, end: int) -> list[Any]:
    return list(_decode_document(reader, end, array=True).values())


def _read_binary(reader: _Reader, end: int) -> BinData:
    size = reader.unpack(INT32, end)
    subtype = reader.take(1, end)[0]
    data = reader.take(size, end)
    if subtype == 0x02:
        # Old binary subtype: payload carries its own length prefix.
        if len(data) < 4 or INT32.unpack(data[:4])[0] != len(data) - 4:
            raise MalformedDocument("invalid old-style binary length")
        data = data[4:]
    return BinData(data, subtype)


def _read_object_id(reader: _Reader, end: int) -> ObjectId:
    return ObjectId(reader.take(12, end))


def _read_boolean(reader: _Reader, end: int) -> bool:
    value = reader.take(1, end)[0]
    if value not in (0, 1):
        raise MalformedDocument(f"invalid boolean byte {value:#x}")
    return value == 1


def _read_datetime(reader: _Reader, end: int) -> UTCDateTime:
    return UTCDateTime.from_milliseconds(reader.unpack(INT64, end))


def _read_null(reader: _Reader, end: int) -> None:
    return None


def _read_regex(reader: _Reader, end: int) -> Regex:
    pattern = reader.cstring(end)
    flags = reader.cstring(end)
    return Regex(pattern, flags)


def _read_db_pointer(reader: _Reader, end: int) -> DBPointer:
    collection = reader.string(end)
    return DBPointer(collection, ObjectId(reader.take(12, end)))


def _read_code(reader: _Reader, end: int) -> Code:
    return Code(reader.string(end))


def _read_code_with_scope(reader: _Reader, end: int) -> Code:
    start = reader.pos
    total = reader.unpack(INT32, end)
    if total < 14 or start + total > end:
        raise MalformedDocument(f"invalid code with scope length {total}")
    limit = start + total
    code = reader.string(limit)
    scope = _decode_document(reader, limit)
    if reader.pos != limit:
        raise MalformedDocument("code with scope length mismatch")
    return Code(code, scope)


def _read_int32(reader: _Reader, end: int) -> int:
    return reader.unpack(INT32, end)


def _read_timestamp(reader: _Reader, end: int) -> Timestamp:
    inc = reader.unpack(UINT32, end)
    sec = reader.unpack(UINT32, end)
    return Timestamp(inc, sec)


def _read_int64(reader: _Reader, end: int) -> Int64:
    return Int64(reader.unpack(INT64, end))


def _read_max_key(reader: _Reader, end: int) -> MaxKey:
    return MaxKey()


def _read_min_key(reader: _Reader, end: int) -> MinKey:
    return MinKey()


_READERS: dict[BsonType, Callable[[_Reader, int], Any]] = {
    BsonType.DOUBLE: _read_double,
    BsonType.STRING: _read_string,
    BsonType.DOCUMENT: _read_document,
    BsonType.ARRAY: _read_array,
    BsonType.BINARY: _read_binary,
    BsonType.OBJECT_ID: _read_object_id,
    BsonType.BOOLEAN: _read_boolean,
    BsonType.DATETIME: _read_datetime,
    BsonType.NULL: _read_null,
    BsonType.REGEX: _read_regex,
    BsonType.DB_POINTER: _read_db_pointer,
    BsonType.CODE: _read_code,
    BsonType.CODE_WITH_SCOPE: _read_code_with_scope,
    BsonType.INT32: _read_int32,
    BsonType.TIMESTAMP: _read_timestamp,
    BsonType.INT64: _read_int64,
    BsonType.MAX_KEY: _read_max_key,
    BsonType.MIN_KEY: _read_min_key,
}

_missing = set(BsonType) - set(_READERS)
if _missing:
    raise RuntimeError(f"no BSON reader for {sorted(t.name for t in _missing)}")


def _decode_document(reader: _Reader, end: int, array: bool = False) -> dict[str, Any]:
    start = reader.pos
    if reader.depth >= MAX_DEPTH:
        raise MalformedDocument(
            f"document at offset {start} nests deeper than {MAX_DEPTH} levels"
        )
    size = reader.unpack(INT32, end)
    if size < MIN_DOCUMENT_SIZE or start + size > end:
        raise MalformedDocument(f"invalid document length {size} at offset {start}")
    limit = start + size - 1
    if reader.data[limit] != 0:
        raise MalformedDocument(f"document at offset {start} is not NUL terminated")

    document: dict[str, Any] = {}
    reader.depth += 1
    while reader.pos < limit:
        tag = reader.data[reader.pos]
        reader.pos += 1
        key = reader.cstring(limit)
        if not key and not array:
            raise MalformedDocument(f"empty key in document at offset {start}")
        try:
            read = _READERS[BsonType(tag)]
        except ValueError:
            raise MalformedDocument(
                f"unrecognized type tag {tag:#04x} for key {key!r}"
            ) from None
        if key in document:
            raise MalformedDocument(f"duplicate key {key!r}")
        document[key] = read(reader, limit)

    if reader.pos != limit:
        raise MalformedDocument(f"document at offset {start} overruns its length")
    reader.depth -= 1
    reader.pos = limit + 1
    return document


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode exactly one BSON document.

    Args:
        data: The encoded document.

    Returns:
        The decoded document, keys in byte order.

    Raises:
        MalformedDocument: If the buffer is truncated, its length prefix
            disagrees with its size, or any element is corrupt.
    """
    data = bytes(data)
    if len(data) < MIN_DOCUMENT_SIZE:
        raise MalformedDocument(f"buffer of {len(data)} bytes is too short for a document")
    declared = INT32.unpack(data[:4])[0]
    if declared != len(data):
        raise MalformedDocument(
            f"length prefix {declared} does not match buffer size {len(data)}"
        )
    return _decode_document(_Reader(data), len(data))


def decode_stream(data: bytes) -> list[dict[str, Any]]:
    """
    Decode consecutive BSON documents until the end of the buffer.

    Raises:
        UnexpectedEndOfStream: If the last document is cut short.
        MalformedDocument: If any document is corrupt.
    """
    data = bytes(data)
    reader = _Reader(data)
    documents = []
    while reader.pos < len(data):
        remaining = len(data) - reader.pos
        if remaining < 4:
            raise UnexpectedEndOfStream(
                f"{remaining} trailing bytes cannot hold a length prefix"
            )
        declared = INT32.unpack(data[reader.pos:reader.pos + 4])[0]
        if declared > remaining:
            raise UnexpectedEndOfStream(
                f"document declares {declared} bytes but only {remaining} remain"
            )
        documents.append(_decode_document(reader, len(data)))
    return documents
