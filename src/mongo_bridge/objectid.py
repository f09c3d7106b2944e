"""
ObjectId - 12 byte document identifiers.

Layout: 4-byte big-endian seconds since the epoch, the first 3 bytes of the
MD5 digest of the host name, the low 2 bytes of the process id
(little-endian) and a 3-byte big-endian counter.

The counter is a process-wide :class:`Counter` owned by an
:class:`ObjectIdGenerator`; both are built once and handed to the
collections that need fresh ids.
"""

from __future__ import annotations

import binascii
import hashlib
import logging
import os
import random
import socket
import struct
import threading
import time
from typing import Any, Callable

from .types import InvalidObjectId

__all__ = ["Counter", "ObjectId", "ObjectIdGenerator", "default_generator"]

logger = logging.getLogger(__name__)

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_COUNTER_MASK = 0xFFFFFF


class Counter:
    """
    Thread-safe 24-bit wrapping counter.

    Example:
        counter = Counter(start=0)
        counter.next()  # 0
        counter.next()  # 1
    """

    __slots__ = ("_value", "_lock")

    def __init__(self, start: int | None = None) -> None:
        if start is None:
            start = random.randint(0, _COUNTER_MASK)
        self._value = start & _COUNTER_MASK
        self._lock = threading.Lock()

    def next(self) -> int:
        """Return the current value and advance, wrapping at 2**24."""
        with self._lock:
            value = self._value
            self._value = (value + 1) & _COUNTER_MASK
        return value


class ObjectId:
    """
    A 12 byte object identifier.

    Example:
        oid = ObjectId.from_hex("5f1d7a3b9c2e4a0012345678")
        str(oid)         # "5f1d7a3b9c2e4a0012345678"
        oid.timestamp    # 1595767355

        ObjectId()       # fresh id from the default generator
    """

    __slots__ = ("_oid",)

    def __init__(self, oid: bytes | str | ObjectId | None = None) -> None:
        """
        Initialize an ObjectId.

        Args:
            oid: 12 raw bytes, a 24 character hex string, another ObjectId,
                 or None to generate a fresh id.

        Raises:
            InvalidObjectId: If ``oid`` is neither 12 bytes nor 24 hex characters.
        """
        if oid is None:
            oid = default_generator().new_id().binary
        elif isinstance(oid, ObjectId):
            oid = oid.binary
        elif isinstance(oid, str):
            oid = self._unhex(oid)
        elif isinstance(oid, (bytes, bytearray)):
            if len(oid) != 12:
                raise InvalidObjectId(f"ObjectId needs 12 bytes, got {len(oid)}")
            oid = bytes(oid)
        else:
            raise InvalidObjectId(f"Cannot build an ObjectId from {type(oid).__name__}")
        self._oid = oid

    @staticmethod
    def _unhex(text: str) -> bytes:
        if not ObjectId.is_valid(text):
            raise InvalidObjectId(f"Invalid object ID: {text!r}")
        return binascii.unhexlify(text)

    @classmethod
    def from_hex(cls, text: str) -> ObjectId:
        """Parse a 24 character hex string."""
        return cls(cls._unhex(text))

    @staticmethod
    def is_valid(value: Any) -> bool:
        """Return True for ObjectIds and strings of exactly 24 hex characters."""
        if isinstance(value, ObjectId):
            return True
        return isinstance(value, str) and len(value) == 24 and _HEX_DIGITS.issuperset(value)

    @property
    def binary(self) -> bytes:
        return self._oid

    @property
    def timestamp(self) -> int:
        """Seconds since the epoch at which the id was generated."""
        return struct.unpack(">I", self._oid[0:4])[0]

    @property
    def machine(self) -> bytes:
        return self._oid[4:7]

    @property
    def pid(self) -> int:
        return struct.unpack("<H", self._oid[7:9])[0]

    @property
    def counter(self) -> int:
        return int.from_bytes(self._oid[9:12], "big")

    def __str__(self) -> str:
        return binascii.hexlify(self._oid).decode("ascii")

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ObjectId):
            return self._oid == other._oid
        return NotImplemented

    def __lt__(self, other: ObjectId) -> bool:
        if isinstance(other, ObjectId):
            return self._oid < other._oid
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._oid)

    def __repr__(self) -> str:
        return f"ObjectId({str(self)!r})"


class ObjectIdGenerator:
    """
    Produces fresh ObjectIds for one process.

    The machine hash and process id bytes are computed once; the counter
    is shared by every id this generator produces.
    """

    __slots__ = ("_counter", "_prefix", "_clock")

    def __init__(
        self,
        counter: Counter | None = None,
        hostname: str | None = None,
        pid: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if hostname is None:
            hostname = socket.gethostname()
        if pid is None:
            pid = os.getpid()
        self._counter = counter if counter is not None else Counter()
        self._prefix = (
            hashlib.md5(hostname.encode("utf-8")).digest()[:3]
            + struct.pack("<H", pid & 0xFFFF)
        )
        self._clock = clock

    @property
    def counter(self) -> Counter:
        return self._counter

    def new_id(self) -> ObjectId:
        """Generate a new ObjectId."""
        seconds = int(self._clock()) & 0xFFFFFFFF
        inc = self._counter.next()
        oid = ObjectId(struct.pack(">I", seconds) + self._prefix + inc.to_bytes(3, "big"))
        logger.debug("Generated ObjectId %s", oid)
        return oid


_default_generator: ObjectIdGenerator | None = None
_default_lock = threading.Lock()


def default_generator() -> ObjectIdGenerator:
    """Return the process-wide generator, creating it on first use."""
    global _default_generator
    if _default_generator is None:
        with _default_lock:
            if _default_generator is None:
                _default_generator = ObjectIdGenerator()
    return _default_generator
