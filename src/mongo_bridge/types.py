"""
Type definitions for mongo-bridge.

Provides the canonical write result returned by update operations and the
exception hierarchy shared by the codec and the collection translator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence


RAW_KEY = "mongoRaw"


@dataclass
class WriteResult:
    """
    Canonical result of an update (or save) operation.

    The server may reply with a command-style document (``n``) or a
    write-result style one (``nMatched``); both are folded into the same
    shape here.

    Attributes:
        ok: 1 when the server accepted the command, 0 otherwise.
        n: Number of documents matched.
        n_modified: Number of documents actually modified.
        updated_existing: Whether an existing document was matched.
        err: Write error detail, empty when there was none.
        errmsg: Same detail as ``err``, kept for callers reading either key.
        upserted: Upserted entries reported by the server, if any.
        raw: The decoded server response, for diagnostics. Also readable as
            ``result["mongoRaw"]``.
    """

    ok: int = 1
    n: int = 0
    n_modified: int = 0
    updated_existing: bool = False
    err: Any = field(default_factory=list)
    errmsg: Any = field(default_factory=list)
    upserted: Any = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, response: Mapping[str, Any]) -> WriteResult:
        """Build the canonical result from a decoded server acknowledgment."""
        ok = 1 if response.get("ok", 1) else 0
        upserted = response.get("upserted")
        if "nMatched" in response:
            matched = int(response["nMatched"] or 0)
        else:
            # The command reply's n also counts upserted documents
            n_upserted = len(upserted) if isinstance(upserted, list) else int(upserted is not None)
            matched = max(int(response.get("n", 0) or 0) - n_upserted, 0)
        errors: Any = response.get("writeErrors", [])
        if not errors and not ok and "errmsg" in response:
            errors = response["errmsg"]

        return cls(
            ok=ok,
            n=matched,
            n_modified=int(response.get("nModified", 0) or 0),
            updated_existing=matched > 0,
            err=errors,
            errmsg=errors,
            upserted=upserted,
            raw=dict(response),
        )

    @property
    def document(self) -> dict[str, Any]:
        """Return the canonical result mapping."""
        result = {
            "ok": self.ok,
            "n": self.n,
            "nModified": self.n_modified,
            "updatedExisting": self.updated_existing,
            "err": self.err,
            "errmsg": self.errmsg,
        }
        if self.upserted is not None:
            result["upserted"] = self.upserted
        return result

    def __getitem__(self, key: str) -> Any:
        # The raw reply is reachable by key but stays out of the canonical mapping
        if key == RAW_KEY:
            return self.raw
        return self.document[key]


# Type aliases for clarity
Filter = Mapping[str, Any]
Update = Mapping[str, Any]
IndexKeys = str | Mapping[str, Any] | Sequence[tuple[str, Any]]


class MongoError(Exception):
    """Base exception for mongo-bridge."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class BsonError(MongoError):
    """Base exception for codec failures."""

    pass


class MalformedDocument(BsonError):
    """Error raised when a BSON buffer is structurally corrupt."""

    pass


class UnexpectedEndOfStream(MalformedDocument):
    """Error raised when a document stream ends inside a document."""

    pass


class UnencodableValue(BsonError):
    """Error raised when a value has no BSON representation."""

    pass


class InvalidObjectId(MongoError, ValueError):
    """Error raised when a string is not a 24 character hex object id."""

    def __init__(self, message: str = "Invalid object ID") -> None:
        super().__init__(message, code=19)


class EmptyDocumentError(MongoError):
    """Error raised when inserting an empty document or batch."""

    pass


class OperationFailure(MongoError):
    """Error raised when an operation fails on the server."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code)
        self.details = dict(details or {})


class CommandFailed(OperationFailure):
    """Error raised when the server reports a command as not ok."""

    @classmethod
    def from_response(cls, verb: str, response: Mapping[str, Any]) -> CommandFailed:
        """Build the error from a not-ok server reply."""
        errmsg = response.get("errmsg")
        if not errmsg and response.get("writeErrors"):
            errmsg = response["writeErrors"][0].get("errmsg")
        return cls(
            f"{verb} command failed: {errmsg or 'unknown error'}",
            code=response.get("code"),
            details=response,
        )


class GroupCommandFailed(CommandFailed):
    """Error raised when the group command reports not ok."""

    pass


class TransportError(MongoError):
    """Error raised by the transport; never interpreted by the translator."""

    pass


class ConnectionError(TransportError):
    """Error raised when connection to the server fails."""

    pass
