"""
Database - command dispatch for one database.

Encodes command documents with the BSON codec, ships them through the
transport and decodes the replies.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping, TypeVar

from .collection import Collection
from .decoder import decode
from .encoder import encode

if TYPE_CHECKING:
    from .client import MongoClient
    from .objectid import ObjectIdGenerator
    from .transport import Transport

T = TypeVar("T", bound=dict[str, Any])

__all__ = ["Database"]

logger = logging.getLogger(__name__)


class Database:
    """
    A database reachable through a transport.

    Collections can be accessed using either attribute access or subscript
    notation.

    Example:
        db = client["myapp"]

        # Access collections
        users = db.users
        orders = db["orders"]

        # Run a raw command
        reply = await db.command({"ping": 1})
    """

    __slots__ = ("_transport", "_client", "_name", "_collections")

    def __init__(
        self,
        transport: Transport,
        client: MongoClient,
        name: str,
    ) -> None:
        """
        Initialize a database.

        Args:
            transport: The transport commands are sent through.
            client: Parent MongoClient instance.
            name: Database name.
        """
        self._transport = transport
        self._client = client
        self._name = name
        self._collections: dict[str, Collection[Any]] = {}

    @property
    def name(self) -> str:
        """Get the database name."""
        return self._name

    @property
    def client(self) -> MongoClient:
        """Get the parent client."""
        return self._client

    @property
    def id_generator(self) -> ObjectIdGenerator:
        """Get the generator used for missing ``_id`` fields."""
        return self._client.id_generator

    def __getitem__(self, name: str) -> Collection[Any]:
        """
        Get a collection by name using subscript notation.

        Example:
            users = db["users"]
        """
        if name not in self._collections:
            self._collections[name] = Collection(self, name)
        return self._collections[name]

    def __getattr__(self, name: str) -> Collection[Any]:
        """
        Get a collection by name using attribute access.

        Example:
            users = db.users
        """
        if name.startswith("_"):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

        return self[name]

    def get_collection(
        self,
        name: str,
        document_class: type[T] | None = None,
    ) -> Collection[T]:
        """
        Get a typed collection.

        Args:
            name: Collection name.
            document_class: Optional document type for type hints.
        """
        return self[name]  # type: ignore

    def select_collection(self, name: str) -> Collection[Any]:
        """Get a collection by name, including reserved ``system.*`` names."""
        return self[name]

    async def command(
        self,
        command: str | Mapping[str, Any],
        value: Any = 1,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Run a database command.

        Args:
            command: Command name or command document. The first key of a
                     command document names the verb.
            value: Command value when ``command`` is a name (default 1).
            **kwargs: Additional command fields when ``command`` is a name.

        Returns:
            The decoded server reply.
        """
        if isinstance(command, str):
            cmd: Mapping[str, Any] = {command: value, **kwargs}
        else:
            cmd = command

        verb = next(iter(cmd), "?")
        logger.debug("Running %s on %s", verb, self._name)
        reply = await self._transport.run_command(self._name, encode(cmd))
        return decode(reply)

    async def raw_write(
        self,
        collection: str,
        kind: str,
        documents: list[Mapping[str, Any]],
        write_concern: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Write documents to a collection without issuing a command.

        Args:
            collection: Collection name within this database.
            kind: Write kind understood by the transport (e.g. "insert").
            documents: Documents to write.
            write_concern: Optional write concern.

        Returns:
            The decoded acknowledgment.
        """
        namespace = f"{self._name}.{collection}"
        logger.debug("Raw %s of %d document(s) into %s", kind, len(documents), namespace)
        reply = await self._transport.raw_write(
            namespace,
            kind,
            [encode(document) for document in documents],
            dict(write_concern) if write_concern else None,
        )
        return decode(reply)

    async def server_version(self) -> tuple[int, int, int]:
        """Return the connected server's version."""
        return await self._transport.server_version()

    async def drop_collection(self, name: str) -> dict[str, Any]:
        """
        Drop a collection.

        Args:
            name: Name of the collection to drop.
        """
        result = await self[name].drop()
        self._collections.pop(name, None)
        return result

    def __str__(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"Database({self._name!r})"
