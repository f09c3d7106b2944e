"""
Database references.

A reference is a plain two-field document, ``{"$ref": collection, "$id": id}``.
Creating or reading one never talks to the server.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

__all__ = ["DBRef", "create_dbref", "resolve_dbref"]


@dataclass(frozen=True)
class DBRef:
    """
    A reference to a document in another collection.

    Attributes:
        collection: Name of the referenced collection.
        id: The referenced document's ``_id``.
    """

    collection: str
    id: Any

    def as_document(self) -> dict[str, Any]:
        return {"$ref": self.collection, "$id": self.id}


def create_dbref(collection: str, document_or_id: Any) -> dict[str, Any]:
    """
    Create a reference document.

    Args:
        collection: Name of the collection the target lives in.
        document_or_id: The target document (its ``_id`` is used) or the id itself.

    Raises:
        ValueError: If a document without an ``_id`` is given.
    """
    if isinstance(document_or_id, Mapping):
        if "_id" not in document_or_id:
            raise ValueError("cannot reference a document without an _id")
        document_or_id = document_or_id["_id"]
    return DBRef(collection, document_or_id).as_document()


def resolve_dbref(ref: Mapping[str, Any] | DBRef) -> DBRef:
    """
    Read a reference document back into a :class:`DBRef`.

    Raises:
        ValueError: If ``ref`` lacks ``$ref`` or ``$id``.
    """
    if isinstance(ref, DBRef):
        return ref
    try:
        return DBRef(str(ref["$ref"]), ref["$id"])
    except KeyError as e:
        raise ValueError(f"not a database reference, missing {e.args[0]}") from None
