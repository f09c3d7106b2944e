"""
Index naming and index-creation dialects.
"""

from __future__ import annotations

import enum
from typing import Any, Mapping, Sequence

__all__ = ["Dialect", "build_index_name", "normalize_index_keys", "parse_version"]


def normalize_index_keys(keys: str | Mapping[str, Any] | Sequence[Any]) -> list[tuple[str, Any]]:
    """
    Turn any accepted key specification into ordered ``(field, direction)`` pairs.

    Booleans become ascending (1) and integral floats become ints. A bare
    field name, alone or inside a sequence, is ascending.
    """
    if isinstance(keys, str):
        pairs: list[Any] = [(keys, 1)]
    elif isinstance(keys, Mapping):
        pairs = list(keys.items())
    else:
        pairs = [(item, 1) if isinstance(item, str) else tuple(item) for item in keys]

    normalized = []
    for field, direction in pairs:
        if isinstance(direction, bool):
            direction = 1
        elif isinstance(direction, float) and direction.is_integer():
            direction = int(direction)
        normalized.append((str(field), direction))
    return normalized


def build_index_name(keys: str | Mapping[str, Any] | Sequence[Any]) -> str:
    """
    Build the default name of an index.

    Example:
        build_index_name("a")                    # "a_1"
        build_index_name([("a", 1), ("b", -1)])  # "a_1_b_-1"
        build_index_name({"a": True})            # "a_1"
    """
    return "_".join(f"{field}_{direction}" for field, direction in normalize_index_keys(keys))


class Dialect(enum.Enum):
    """How a server expects index creation to be requested."""

    CREATE_INDEXES = "createIndexes"
    SYSTEM_INDEXES = "system.indexes"

    @classmethod
    def for_version(cls, version: Sequence[int] | str) -> Dialect:
        """
        Select the dialect for a server version.

        Args:
            version: ``(major, minor, patch)`` or a dotted version string.
        """
        major, minor, _ = parse_version(version)
        if (major, minor) >= (2, 6):
            return cls.CREATE_INDEXES
        return cls.SYSTEM_INDEXES


def parse_version(version: Any) -> tuple[int, int, int]:
    """Parse ``"3.6.8"`` or ``[3, 6, 8]`` into a three-int tuple."""
    if isinstance(version, str):
        parts: list[Any] = version.split("-")[0].split(".")
    else:
        parts = list(version)
    numbers = []
    for part in parts[:3]:
        try:
            numbers.append(int(part))
        except (TypeError, ValueError):
            break
    numbers.extend([0] * (3 - len(numbers)))
    return numbers[0], numbers[1], numbers[2]
