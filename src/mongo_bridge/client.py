"""
MongoClient - entry point of mongo-bridge.

Owns the transport and the process's ObjectId generator, and hands both to
the databases it creates.
"""

from __future__ import annotations

import logging
import os
from types import TracebackType
from typing import Any

from .database import Database
from .objectid import ObjectIdGenerator, default_generator
from .transport import RpcTransport, Transport
from .types import ConnectionError, MongoError

__all__ = ["MongoClient"]

logger = logging.getLogger(__name__)

DEFAULT_URI = "https://mongo.do"
DEFAULT_TIMEOUT = 30.0


class MongoClient:
    """
    Client for a document database reached through a transport.

    Databases can be accessed using either attribute access or subscript
    notation.

    Example:
        # Connect over rpc-do
        client = MongoClient("https://mongo.do")
        await client.connect()

        # Or bring your own transport
        client = MongoClient(transport=my_transport)

        # Access databases
        db = client["myapp"]
        db = client.myapp

        # Or use as async context manager
        async with MongoClient("https://mongo.do") as client:
            db = client["myapp"]
            ...
    """

    __slots__ = ("_uri", "_transport", "_connected", "_databases", "_options", "_id_generator")

    def __init__(
        self,
        uri: str | None = None,
        *,
        transport: Transport | None = None,
        id_generator: ObjectIdGenerator | None = None,
        **options: Any,
    ) -> None:
        """
        Initialize the client.

        Args:
            uri: Connection URI (e.g., "https://mongo.do" or "wss://mongo.do/rpc").
                 If not provided, uses MONGO_URL environment variable.
            transport: Ready transport to use instead of connecting with rpc-do.
                       The client counts as connected right away.
            id_generator: Generator for missing ``_id`` fields. Defaults to
                          the process-wide generator.
            **options: Additional connection options.
                - timeout: Default timeout for operations (default: 30.0).
        """
        self._uri = uri or os.environ.get("MONGO_URL", DEFAULT_URI)
        self._transport = transport
        self._connected = transport is not None
        self._databases: dict[str, Database] = {}
        self._options = options
        self._id_generator = id_generator or default_generator()

    @property
    def uri(self) -> str:
        """Get the connection URI."""
        return self._uri

    @property
    def is_connected(self) -> bool:
        """Check if the client is connected."""
        return self._connected

    @property
    def id_generator(self) -> ObjectIdGenerator:
        """Get the ObjectId generator shared by this client's collections."""
        return self._id_generator

    async def connect(self) -> MongoClient:
        """
        Connect to the server over rpc-do.

        Returns:
            Self for chaining.

        Raises:
            ConnectionError: If connection fails.
        """
        if self._connected:
            return self

        try:
            from rpc_do import connect

            timeout = self._options.get("timeout", DEFAULT_TIMEOUT)
            rpc = await connect(self._uri, timeout=timeout)
        except ImportError as e:
            raise ConnectionError(
                "rpc-do package is required. Install with: pip install rpc-do"
            ) from e
        except Exception as e:
            raise ConnectionError(f"Failed to connect to {self._uri}: {e}") from e

        self._transport = RpcTransport(rpc)
        self._connected = True
        logger.debug("Connected to %s", self._uri)
        return self

    async def close(self) -> None:
        """Close the connection."""
        if self._transport is not None:
            await self._transport.close()
            self._transport = None
        self._connected = False
        self._databases.clear()

    def _ensure_connected(self) -> Transport:
        """Ensure the client is connected and return its transport."""
        if not self._connected or self._transport is None:
            raise MongoError("Client is not connected. Call connect() first.")
        return self._transport

    def __getitem__(self, name: str) -> Database:
        """
        Get a database by name using subscript notation.

        Example:
            db = client["myapp"]
        """
        transport = self._ensure_connected()

        if name not in self._databases:
            self._databases[name] = Database(transport, self, name)
        return self._databases[name]

    def __getattr__(self, name: str) -> Database:
        """
        Get a database by name using attribute access.

        Example:
            db = client.myapp
        """
        if name.startswith("_"):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

        return self[name]

    def get_database(self, name: str) -> Database:
        """Get a database by name."""
        return self[name]

    async def server_version(self) -> tuple[int, int, int]:
        """Return the server's ``(major, minor, patch)`` version."""
        return await self._ensure_connected().server_version()

    async def __aenter__(self) -> MongoClient:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        status = "connected" if self._connected else "disconnected"
        return f"MongoClient({self._uri!r}, {status})"
