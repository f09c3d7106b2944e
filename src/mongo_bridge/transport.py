"""
Transport - the boundary to the server.

The translator only needs to hand encoded documents to something that
already speaks the wire protocol. :class:`Transport` describes that
collaborator; :class:`RpcTransport` adapts an ``rpc_do`` client to it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .index import parse_version
from .types import TransportError

if TYPE_CHECKING:
    from rpc_do import RpcClient

__all__ = ["RpcTransport", "Transport"]

logger = logging.getLogger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Async primitives the translator relies on."""

    async def run_command(self, database: str, command: bytes) -> bytes:
        """Run an encoded command document and return the encoded reply."""
        ...

    async def raw_write(
        self,
        namespace: str,
        kind: str,
        documents: list[bytes],
        write_concern: dict[str, Any] | None,
    ) -> bytes:
        """Write encoded documents to ``namespace`` without a server command."""
        ...

    async def server_version(self) -> tuple[int, int, int]:
        """Return the connected server's ``(major, minor, patch)``."""
        ...

    async def close(self) -> None:
        ...


class RpcTransport:
    """
    Transport backed by an ``rpc_do`` client.

    Example:
        from rpc_do import connect

        rpc = await connect("https://mongo.do")
        transport = RpcTransport(rpc)
        reply = await transport.run_command("admin", encode({"ping": 1}))
    """

    __slots__ = ("_rpc",)

    def __init__(self, rpc: RpcClient) -> None:
        self._rpc = rpc

    async def run_command(self, database: str, command: bytes) -> bytes:
        try:
            result = await self._rpc.mongo.command(database, command)
        except Exception as e:
            raise TransportError(f"command on {database} failed: {e}") from e
        return bytes(result)

    async def raw_write(
        self,
        namespace: str,
        kind: str,
        documents: list[bytes],
        write_concern: dict[str, Any] | None,
    ) -> bytes:
        try:
            result = await self._rpc.mongo.rawWrite(
                namespace,
                kind,
                documents,
                write_concern or {},
            )
        except Exception as e:
            raise TransportError(f"{kind} on {namespace} failed: {e}") from e
        return bytes(result)

    async def server_version(self) -> tuple[int, int, int]:
        try:
            info = await self._rpc.mongo.serverInfo()
        except Exception as e:
            raise TransportError(f"serverInfo failed: {e}") from e
        if not isinstance(info, dict):
            info = {}
        version = info.get("versionArray") or info.get("version", "0.0.0")
        parsed = parse_version(version)
        logger.debug("Server reports version %s", ".".join(map(str, parsed)))
        return parsed

    async def close(self) -> None:
        await self._rpc.close()
