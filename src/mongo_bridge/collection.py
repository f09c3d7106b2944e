"""
Collection - translation of collection verbs into server commands.

Each operation builds one command document, sends it through the parent
database and normalizes the reply. Nothing is kept on the collection
between calls.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Generic, Mapping, MutableMapping, Sequence, TypeVar

from .dbref import DBRef, create_dbref, resolve_dbref
from .index import Dialect, build_index_name, normalize_index_keys
from .types import (
    CommandFailed,
    EmptyDocumentError,
    GroupCommandFailed,
    WriteResult,
)
from .values import Code

if TYPE_CHECKING:
    from .database import Database
    from .types import Filter, IndexKeys, Update

T = TypeVar("T", bound=dict[str, Any])

__all__ = ["Collection"]

logger = logging.getLogger(__name__)

WRITE_CONCERN_OPTIONS = ("w", "wtimeout", "j", "fsync")

INDEX_OPTIONS = (
    "background",
    "unique",
    "dropDups",
    "sparse",
    "expireAfterSeconds",
    "v",
    "weights",
    "default_language",
    "language_override",
)

FIND_AND_MODIFY_OPTIONS = ("new", "upsert", "sort", "remove")

NO_MATCH_ERRMSG = "No matching object found"


def _write_concern(options: Mapping[str, Any]) -> dict[str, Any] | None:
    concern = {key: options[key] for key in WRITE_CONCERN_OPTIONS if key in options}
    return concern or None


def _is_ok(response: Mapping[str, Any]) -> bool:
    return bool(response.get("ok", 0))


class Collection(Generic[T]):
    """
    A collection whose verbs are translated into server commands.

    Example:
        users = db["users"]

        # Insert
        await users.insert({"name": "Alice"})

        # Update
        result = await users.update({"name": "Alice"}, {"$set": {"status": "vip"}})
        print(result.document)

        # Count and remove
        await users.count({"status": "vip"})
        await users.remove({"name": "Alice"}, justOne=True)
    """

    ASCENDING = 1
    DESCENDING = -1

    __slots__ = ("_database", "_name", "_full_name")

    def __init__(
        self,
        database: Database,
        name: str,
    ) -> None:
        """
        Initialize a collection.

        Args:
            database: Parent database instance.
            name: Collection name.
        """
        self._database = database
        self._name = name
        self._full_name = f"{database.name}.{name}"

    @property
    def name(self) -> str:
        """Get the collection name."""
        return self._name

    @property
    def full_name(self) -> str:
        """Get the full collection name (database.collection)."""
        return self._full_name

    @property
    def database(self) -> Database:
        """Get the parent database."""
        return self._database

    def __getattr__(self, name: str) -> Collection[Any]:
        """
        Get a sub-collection, e.g. ``db.fs.files``.
        """
        if name.startswith("_"):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

        return self._database[f"{self._name}.{name}"]

    def _ensure_id(self, document: T) -> T:
        """Give ``document`` a fresh ``_id`` in place when it has none."""
        if "_id" not in document:
            if not isinstance(document, MutableMapping):
                raise TypeError("document must be a mutable mapping to receive an _id")
            document["_id"] = self._database.id_generator.new_id()
        return document

    def _acknowledge(
        self,
        verb: str,
        response: dict[str, Any],
        write_concern: dict[str, Any] | None,
    ) -> dict[str, Any] | bool:
        if write_concern is not None:
            return response
        if not _is_ok(response) or response.get("writeErrors"):
            logger.warning("%s on %s failed: %s", verb, self._full_name, response)
            raise CommandFailed.from_response(verb, response)
        return True

    async def insert(self, document: T, **options: Any) -> dict[str, Any] | bool:
        """
        Insert a document.

        An ``_id`` is generated and stored into ``document`` when it has none.

        Args:
            document: The document to insert.
            **options: ``w``, ``wtimeout``, ``j``, ``fsync`` set a write
                concern; ``ordered`` is passed through.

        Returns:
            The server acknowledgment when a write concern was given,
            otherwise True.

        Raises:
            EmptyDocumentError: If ``document`` is empty.
            CommandFailed: If no write concern was given and the insert failed.
        """
        if not document:
            raise EmptyDocumentError("no elements in doc")
        return await self._insert([document], options)

    async def batch_insert(
        self,
        documents: Sequence[T],
        **options: Any,
    ) -> dict[str, Any] | bool:
        """
        Insert several documents with one command.

        Args:
            documents: Documents to insert; each gets an ``_id`` when missing.
            **options: As for :meth:`insert`.

        Raises:
            EmptyDocumentError: If ``documents`` or any of them is empty.
        """
        documents = list(documents)
        if not documents:
            raise EmptyDocumentError("no documents given")
        if not all(documents):
            raise EmptyDocumentError("no elements in doc")
        return await self._insert(documents, options)

    async def _insert(
        self,
        documents: list[T],
        options: Mapping[str, Any],
    ) -> dict[str, Any] | bool:
        for document in documents:
            self._ensure_id(document)

        cmd: dict[str, Any] = {
            "insert": self._name,
            "documents": documents,
            "ordered": bool(options.get("ordered", True)),
        }
        write_concern = _write_concern(options)
        if write_concern:
            cmd["writeConcern"] = write_concern

        response = await self._database.command(cmd)
        return self._acknowledge("insert", response, write_concern)

    async def save(self, document: T, **options: Any) -> dict[str, Any] | bool | WriteResult:
        """
        Insert ``document``, or replace it when it already has an ``_id``.

        Returns:
            The :meth:`insert` result for new documents, otherwise the
            :meth:`update` result.
        """
        if document.get("_id") is None:
            document.pop("_id", None)
            return await self.insert(document, **options)
        return await self.update(
            {"_id": document["_id"]},
            document,
            **{**options, "upsert": True},
        )

    async def remove(
        self,
        criteria: Filter | None = None,
        **options: Any,
    ) -> dict[str, Any] | bool:
        """
        Remove documents.

        Args:
            criteria: Query selecting the documents to remove.
            **options: ``justOne=True`` (or ``multiple=False``) removes at
                most one document; write concern options as for :meth:`insert`.

        Returns:
            The server acknowledgment when a write concern was given,
            otherwise True.
        """
        just_one = bool(options.get("justOne")) or options.get("multiple") is False
        cmd: dict[str, Any] = {
            "delete": self._name,
            "deletes": [{"q": dict(criteria or {}), "limit": 1 if just_one else 0}],
        }
        write_concern = _write_concern(options)
        if write_concern:
            cmd["writeConcern"] = write_concern

        response = await self._database.command(cmd)
        return self._acknowledge("delete", response, write_concern)

    async def update(
        self,
        criteria: Filter,
        new_object: Update,
        **options: Any,
    ) -> WriteResult:
        """
        Update documents.

        Args:
            criteria: Query selecting the documents to update.
            new_object: Replacement document or update operators.
            **options: ``multiple`` (or ``multi``) updates every match,
                ``upsert`` inserts when nothing matches; write concern
                options as for :meth:`insert`.

        Returns:
            The canonical WriteResult. Server-side errors are reported in
            its ``err``/``errmsg`` fields rather than raised.
        """
        multi = bool(options.get("multiple", options.get("multi", False)))
        cmd: dict[str, Any] = {
            "update": self._name,
            "updates": [
                {
                    "q": dict(criteria),
                    "u": dict(new_object),
                    "multi": multi,
                    "upsert": bool(options.get("upsert", False)),
                }
            ],
        }
        write_concern = _write_concern(options)
        if write_concern:
            cmd["writeConcern"] = write_concern

        response = await self._database.command(cmd)
        result = WriteResult.from_response(response)
        if result.err:
            logger.warning("update on %s reported errors: %s", self._full_name, result.err)
        return result

    async def count(
        self,
        query: Filter | None = None,
        limit: int = 0,
        skip: int = 0,
    ) -> int:
        """
        Count documents matching ``query``.

        Raises:
            CommandFailed: If the server reports the count as not ok.
        """
        response = await self._database.command(
            {
                "count": self._name,
                "query": dict(query or {}),
                "limit": limit,
                "skip": skip,
            }
        )
        if not _is_ok(response):
            logger.warning("count on %s failed: %s", self._full_name, response)
            raise CommandFailed.from_response("count", response)
        return int(response.get("n", 0))

    async def distinct(self, key: str, query: Filter | None = None) -> dict[str, Any]:
        """
        Run the distinct command; the values are in the reply's ``values``.
        """
        return await self._database.command(
            {"distinct": self._name, "key": key, "query": dict(query or {})}
        )

    async def aggregate(
        self,
        pipeline: Sequence[Mapping[str, Any]],
        **options: Any,
    ) -> dict[str, Any]:
        """
        Run an aggregation pipeline.

        Args:
            pipeline: Aggregation stages.
            **options: Extra command fields (``cursor``, ``allowDiskUse``, ...).

        Returns:
            The server reply; ``ok`` is 1 on success, 0 on failure.
        """
        cmd: dict[str, Any] = {"aggregate": self._name, "pipeline": list(pipeline)}
        cmd.update(options)
        return await self._database.command(cmd)

    async def validate(self, scan_data: bool = False) -> dict[str, Any]:
        """Validate the collection; ``scan_data`` requests a full scan."""
        cmd: dict[str, Any] = {"validate": self._name}
        if scan_data:
            cmd["full"] = True
        return await self._database.command(cmd)

    async def drop(self) -> dict[str, Any]:
        """Drop the collection."""
        return await self._database.command({"drop": self._name})

    async def ensure_index(self, keys: IndexKeys, **options: Any) -> str:
        """
        Create an index unless it already exists.

        Servers from 2.6 on receive a ``createIndexes`` command; older ones
        get the index description inserted into ``system.indexes``.

        Args:
            keys: Field name, ``(field, direction)`` pairs or an ordered mapping.
            **options: Index options (``unique``, ``sparse``, ...), ``name``
                to override the generated name, and write concern options
                for the legacy path.

        Returns:
            The index name.

        Raises:
            CommandFailed: If the server rejects the index.
        """
        name = options.get("name") or build_index_name(keys)
        spec: dict[str, Any] = {"key": dict(normalize_index_keys(keys)), "name": name}
        for option in INDEX_OPTIONS:
            if options.get(option) is not None:
                spec[option] = options[option]

        dialect = Dialect.for_version(await self._database.server_version())
        logger.debug("Creating index %s on %s via %s", name, self._full_name, dialect.value)

        if dialect is Dialect.CREATE_INDEXES:
            response = await self._database.command(
                {"createIndexes": self._name, "indexes": [spec]}
            )
            if not _is_ok(response):
                raise CommandFailed.from_response("createIndexes", response)
        else:
            spec["ns"] = self._full_name
            ack = await self._database.raw_write(
                "system.indexes",
                "insert",
                [spec],
                _write_concern(options),
            )
            if not ack.get("ok", 1) or ack.get("err"):
                raise CommandFailed(
                    f"index insert failed: {ack.get('err') or ack.get('errmsg')}",
                    code=ack.get("code"),
                    details=ack,
                )
        return name

    create_index = ensure_index

    async def drop_index(self, index_name: str) -> dict[str, Any]:
        """
        Drop an index by name (``"*"`` drops every index but ``_id``).
        """
        return await self._database.command(
            {"deleteIndexes": self._name, "index": index_name}
        )

    async def delete_index(self, keys: IndexKeys) -> dict[str, Any]:
        """Drop the index built on ``keys``."""
        return await self.drop_index(build_index_name(keys))

    async def delete_indexes(self) -> dict[str, Any]:
        """Drop every index on the collection except ``_id``."""
        return await self.drop_index("*")

    async def find_and_modify(
        self,
        query: Filter | None = None,
        update: Update | None = None,
        fields: Mapping[str, Any] | None = None,
        **options: Any,
    ) -> dict[str, Any]:
        """
        Atomically modify one document and return it.

        Args:
            query: Selects the document.
            update: Update to apply; omit with ``remove=True``.
            fields: Projection of the returned document.
            **options: ``new``, ``upsert``, ``sort`` and ``remove``.

        Returns:
            The document before modification, or after it when ``new`` is
            set. An empty dict when nothing matched.

        Raises:
            CommandFailed: If the server reports the command as not ok.
        """
        cmd: dict[str, Any] = {"findAndModify": self._name, "query": dict(query or {})}
        if update is not None:
            cmd["update"] = dict(update)
        if fields:
            cmd["fields"] = dict(fields)
        for option in FIND_AND_MODIFY_OPTIONS:
            if options.get(option) is not None:
                cmd[option] = options[option]

        response = await self._database.command(cmd)
        if not _is_ok(response):
            if response.get("errmsg") == NO_MATCH_ERRMSG:
                return {}
            raise CommandFailed.from_response("findAndModify", response)
        return response.get("value") or {}

    async def group(
        self,
        keys: Code | str | Mapping[str, Any] | Sequence[str],
        initial: Mapping[str, Any],
        reduce: Code | str,
        **options: Any,
    ) -> dict[str, Any]:
        """
        Group documents, like SQL's GROUP BY.

        Args:
            keys: Field or fields to group by, or a Code key function.
            initial: Initial value of the aggregation counter.
            reduce: Reduce function taking (current document, aggregate).
            **options: ``condition`` restricts the grouped documents,
                ``finalize`` post-processes each group.

        Raises:
            GroupCommandFailed: If the server reports the command as not ok.
        """
        group: dict[str, Any] = {
            "ns": self._name,
            "$reduce": reduce if isinstance(reduce, Code) else Code(reduce),
            "initial": dict(initial),
        }
        if isinstance(keys, Code):
            group["$keyf"] = keys
        elif isinstance(keys, Mapping):
            group["key"] = dict(keys)
        elif isinstance(keys, str):
            group["key"] = {keys: 1}
        else:
            group["key"] = {field: 1 for field in keys}
        group["cond"] = dict(options.get("condition") or {})
        finalize = options.get("finalize")
        if finalize is not None:
            group["finalize"] = finalize if isinstance(finalize, Code) else Code(finalize)

        response = await self._database.command({"group": group})
        if not _is_ok(response):
            logger.warning("group on %s failed: %s", self._full_name, response)
            raise GroupCommandFailed.from_response("group", response)
        return response

    def create_dbref(self, collection: str, document_or_id: Any) -> dict[str, Any]:
        """
        Create a reference to a document in ``collection``.

        Args:
            collection: Collection the target lives in.
            document_or_id: The target document or its ``_id``.
        """
        return create_dbref(collection, document_or_id)

    def resolve_dbref(self, ref: Mapping[str, Any] | DBRef) -> DBRef:
        """Read a reference document created by :meth:`create_dbref`."""
        return resolve_dbref(ref)

    def __str__(self) -> str:
        return self._full_name

    def __repr__(self) -> str:
        return f"Collection({self._full_name!r})"
