"""
Extended BSON values.

Doubles, strings, documents, arrays, booleans, null and 32-bit integers map
onto Python natives. The classes here cover the remaining cases of the
value model: binary blobs, datetimes, regular expressions, legacy DB
pointers, code, timestamps, 64-bit integers and the min/max key sentinels.
Object ids live in :mod:`mongo_bridge.objectid`.
"""

from __future__ import annotations

import datetime
import re
from typing import Any, Mapping

from .objectid import ObjectId

__all__ = [
    "BinData",
    "Code",
    "DBPointer",
    "Int64",
    "MaxKey",
    "MinKey",
    "Regex",
    "Timestamp",
    "UTCDateTime",
]

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


class BinData:
    """Binary payload with its BSON subtype byte."""

    GENERIC = 0x00
    FUNCTION = 0x01
    BYTE_ARRAY = 0x02
    UUID = 0x04
    MD5 = 0x05
    CUSTOM = 0x80

    __slots__ = ("data", "subtype")

    def __init__(self, data: bytes, subtype: int = GENERIC) -> None:
        if not 0 <= subtype <= 0xFF:
            raise ValueError(f"binary subtype out of range: {subtype}")
        self.data = bytes(data)
        self.subtype = subtype

    def __eq__(self, other: object) -> bool:
        if isinstance(other, BinData):
            return self.data == other.data and self.subtype == other.subtype
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.data, self.subtype))

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"BinData({self.data!r}, {self.subtype})"


def _trunc_divmod(value: int, divisor: int) -> tuple[int, int]:
    # Truncating division, so -1500 ms splits into (-1, -500).
    quotient = abs(value) // divisor
    if value < 0:
        quotient = -quotient
    return quotient, value - quotient * divisor


class UTCDateTime:
    """
    A UTC instant split into seconds and microseconds since the epoch.

    Decoding splits the stored milliseconds as ``ms / 1000`` and
    ``(ms % 1000) * 1000`` with truncating division, so both parts carry
    the sign of a pre-epoch instant.
    """

    __slots__ = ("sec", "usec")

    def __init__(self, sec: int = 0, usec: int = 0) -> None:
        self.sec = int(sec)
        self.usec = int(usec)

    @classmethod
    def from_milliseconds(cls, ms: int) -> UTCDateTime:
        sec, rem = _trunc_divmod(ms, 1000)
        return cls(sec, rem * 1000)

    @classmethod
    def from_datetime(cls, value: datetime.datetime) -> UTCDateTime:
        """Convert a datetime; naive values are taken to be UTC."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        delta = value - EPOCH
        ms = (delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000
        return cls.from_milliseconds(ms)

    @property
    def milliseconds(self) -> int:
        return self.sec * 1000 + _trunc_divmod(self.usec, 1000)[0]

    def to_datetime(self) -> datetime.datetime:
        return EPOCH + datetime.timedelta(milliseconds=self.milliseconds)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, UTCDateTime):
            return self.milliseconds == other.milliseconds
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.milliseconds)

    def __repr__(self) -> str:
        return f"UTCDateTime({self.sec}, {self.usec})"


_REGEX_FLAGS = (
    ("i", re.IGNORECASE),
    ("m", re.MULTILINE),
    ("s", re.DOTALL),
    ("x", re.VERBOSE),
)


class Regex:
    """
    A regular expression in its delimited form, ``/pattern/flags``.

    Accepts either the delimited string or a bare pattern with separate
    flags.
    """

    __slots__ = ("pattern", "flags")

    def __init__(self, regex: str, flags: str | None = None) -> None:
        if flags is None:
            if not regex.startswith("/") or regex.rfind("/") == 0:
                raise ValueError(f"regex must be of the form /pattern/flags: {regex!r}")
            end = regex.rfind("/")
            regex, flags = regex[1:end], regex[end + 1:]
        self.pattern = regex
        self.flags = "".join(sorted(flags))

    @classmethod
    def from_pattern(cls, compiled: re.Pattern[str]) -> Regex:
        flags = "".join(char for char, bit in _REGEX_FLAGS if compiled.flags & bit)
        return cls(compiled.pattern, flags)

    def compile(self) -> re.Pattern[str]:
        bits = 0
        for char, bit in _REGEX_FLAGS:
            if char in self.flags:
                bits |= bit
        return re.compile(self.pattern, bits)

    def __str__(self) -> str:
        return f"/{self.pattern}/{self.flags}"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Regex):
            return self.pattern == other.pattern and self.flags == other.flags
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.pattern, self.flags))

    def __repr__(self) -> str:
        return f"Regex({str(self)!r})"


class DBPointer:
    """Legacy reference to a document by collection name and object id."""

    __slots__ = ("collection", "id")

    def __init__(self, collection: str, id: ObjectId) -> None:
        self.collection = collection
        self.id = id

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DBPointer):
            return self.collection == other.collection and self.id == other.id
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.collection, self.id))

    def __repr__(self) -> str:
        return f"DBPointer({self.collection!r}, {self.id!r})"


class Code:
    """JavaScript source, optionally with a scope document."""

    __slots__ = ("code", "scope")

    def __init__(self, code: str, scope: Mapping[str, Any] | None = None) -> None:
        self.code = str(code)
        self.scope = dict(scope) if scope is not None else None

    def __str__(self) -> str:
        return self.code

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Code):
            return self.code == other.code and self.scope == other.scope
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.code)

    def __repr__(self) -> str:
        if self.scope is None:
            return f"Code({self.code!r})"
        return f"Code({self.code!r}, {self.scope!r})"


class Timestamp:
    """
    Internal replication timestamp.

    Fields are ordered ``(increment, seconds)``, which is also their order
    on the wire (the low word of the little-endian 64-bit value comes
    first).
    """

    __slots__ = ("inc", "sec")

    def __init__(self, inc: int = 0, sec: int = 0) -> None:
        for name, value in (("inc", inc), ("sec", sec)):
            if not 0 <= value <= 0xFFFFFFFF:
                raise ValueError(f"timestamp {name} must fit in 32 unsigned bits: {value}")
        self.inc = inc
        self.sec = sec

    def as_tuple(self) -> tuple[int, int]:
        return (self.inc, self.sec)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Timestamp):
            return self.as_tuple() == other.as_tuple()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.as_tuple())

    def __repr__(self) -> str:
        return f"Timestamp({self.inc}, {self.sec})"


class Int64(int):
    """An int that always encodes as a 64-bit BSON integer."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"Int64({int(self)})"


class _Sentinel:
    __slots__ = ()

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self)

    def __hash__(self) -> int:
        return hash(type(self).__name__)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class MinKey(_Sentinel):
    """Compares lower than every other BSON value on the server."""

    __slots__ = ()


class MaxKey(_Sentinel):
    """Compares higher than every other BSON value on the server."""

    __slots__ = ()
