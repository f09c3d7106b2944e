"""
Pytest fixtures for mongo-bridge tests.

Provides a mocked rpc-do client whose ``mongo`` namespace behaves like a
small in-memory server: it decodes each command with the package codec,
applies it and replies with an encoded document.
"""

from __future__ import annotations

import sys
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from mongo_bridge import Counter, ObjectIdGenerator, decode, encode


class MockRpcMongo:
    """Mock for the RPC mongo namespace."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, list[dict[str, Any]]]] = {}
        self.indexes: dict[str, list[dict[str, Any]]] = {}
        self.commands: list[tuple[str, dict[str, Any]]] = []
        self.raw_writes: list[tuple[str, str, list[dict[str, Any]], dict[str, Any]]] = []
        self.version = "3.0.0"
        self.fail_commands: set[str] = set()
        self.replies: dict[str, dict[str, Any]] = {}
        self._upsert_counter = 0

    def _get_collection_data(self, database: str, collection: str) -> list[dict[str, Any]]:
        """Get or create collection data."""
        if database not in self._data:
            self._data[database] = {}
        if collection not in self._data[database]:
            self._data[database][collection] = []
        return self._data[database][collection]

    async def command(self, database: str, data: bytes) -> bytes:
        """Mock command: decode, dispatch on the first key, encode the reply."""
        cmd = decode(data)
        verb = next(iter(cmd))
        self.commands.append((database, cmd))

        if verb in self.replies:
            return encode(self.replies[verb])
        if verb in self.fail_commands:
            return encode({"ok": 0, "errmsg": f"{verb} failed", "code": 2})

        handler = getattr(self, f"_cmd_{verb}", None)
        if handler is None:
            return encode({"ok": 0, "errmsg": f"no such command: '{verb}'", "code": 59})
        return encode(handler(database, cmd))

    async def rawWrite(
        self,
        namespace: str,
        kind: str,
        documents: list[bytes],
        write_concern: dict[str, Any],
    ) -> bytes:
        """Mock rawWrite."""
        docs = [decode(document) for document in documents]
        self.raw_writes.append((namespace, kind, docs, write_concern))
        if namespace.endswith(".system.indexes"):
            for spec in docs:
                self.indexes.setdefault(spec["ns"], []).append(spec)
        return encode({"ok": 1, "n": 0, "err": None})

    async def serverInfo(self) -> dict[str, Any]:
        """Mock serverInfo."""
        return {"version": self.version, "ok": 1}

    def _cmd_insert(self, database: str, cmd: dict[str, Any]) -> dict[str, Any]:
        data = self._get_collection_data(database, cmd["insert"])
        errors = []
        inserted = 0
        for index, document in enumerate(cmd["documents"]):
            if any(doc.get("_id") == document.get("_id") for doc in data):
                errors.append(
                    {"index": index, "code": 11000, "errmsg": "E11000 duplicate key error"}
                )
                if cmd.get("ordered", True):
                    break
                continue
            data.append(dict(document))
            inserted += 1
        reply: dict[str, Any] = {"ok": 1, "n": inserted}
        if errors:
            reply["writeErrors"] = errors
        return reply

    def _cmd_update(self, database: str, cmd: dict[str, Any]) -> dict[str, Any]:
        data = self._get_collection_data(database, cmd["update"])
        matched = 0
        modified = 0
        upserted = []

        for index, spec in enumerate(cmd["updates"]):
            hits = [doc for doc in data if self._matches(doc, spec["q"])]
            if not spec.get("multi"):
                hits = hits[:1]
            for doc in hits:
                matched += 1
                if self._apply_update(doc, spec["u"]):
                    modified += 1
            if not hits and spec.get("upsert"):
                new_doc = {k: v for k, v in spec["q"].items() if not k.startswith("$")}
                self._apply_update(new_doc, spec["u"])
                if "_id" not in new_doc:
                    self._upsert_counter += 1
                    new_doc["_id"] = f"upserted-{self._upsert_counter}"
                data.append(new_doc)
                upserted.append({"index": index, "_id": new_doc["_id"]})

        reply: dict[str, Any] = {"ok": 1, "n": matched + len(upserted), "nModified": modified}
        if upserted:
            reply["upserted"] = upserted
        return reply

    def _cmd_delete(self, database: str, cmd: dict[str, Any]) -> dict[str, Any]:
        data = self._get_collection_data(database, cmd["delete"])
        deleted = 0
        for spec in cmd["deletes"]:
            hits = [doc for doc in data if self._matches(doc, spec["q"])]
            if spec["limit"] == 1:
                hits = hits[:1]
            for doc in hits:
                data.remove(doc)
                deleted += 1
        return {"ok": 1, "n": deleted}

    def _cmd_count(self, database: str, cmd: dict[str, Any]) -> dict[str, Any]:
        data = self._get_collection_data(database, cmd["count"])
        hits = [doc for doc in data if self._matches(doc, cmd.get("query", {}))]
        hits = hits[cmd.get("skip", 0):]
        if cmd.get("limit"):
            hits = hits[: cmd["limit"]]
        # Old servers reply with a double
        return {"ok": 1.0, "n": float(len(hits))}

    def _cmd_distinct(self, database: str, cmd: dict[str, Any]) -> dict[str, Any]:
        data = self._get_collection_data(database, cmd["distinct"])
        values: list[Any] = []
        for doc in data:
            if self._matches(doc, cmd.get("query", {})) and cmd["key"] in doc:
                if doc[cmd["key"]] not in values:
                    values.append(doc[cmd["key"]])
        return {"ok": 1, "values": values}

    def _cmd_aggregate(self, database: str, cmd: dict[str, Any]) -> dict[str, Any]:
        """Mock aggregate (only $match is understood)."""
        docs = list(self._get_collection_data(database, cmd["aggregate"]))
        for stage in cmd["pipeline"]:
            if "$match" in stage:
                docs = [doc for doc in docs if self._matches(doc, stage["$match"])]
        return {"ok": 1, "result": docs}

    def _cmd_validate(self, database: str, cmd: dict[str, Any]) -> dict[str, Any]:
        return {
            "ok": 1,
            "ns": f"{database}.{cmd['validate']}",
            "valid": True,
            "full": cmd.get("full", False),
        }

    def _cmd_drop(self, database: str, cmd: dict[str, Any]) -> dict[str, Any]:
        if cmd["drop"] not in self._data.get(database, {}):
            return {"ok": 0, "errmsg": "ns not found", "code": 26}
        del self._data[database][cmd["drop"]]
        return {"ok": 1, "ns": f"{database}.{cmd['drop']}"}

    def _cmd_createIndexes(self, database: str, cmd: dict[str, Any]) -> dict[str, Any]:
        namespace = f"{database}.{cmd['createIndexes']}"
        existing = self.indexes.setdefault(namespace, [])
        before = len(existing)
        for spec in cmd["indexes"]:
            if all(index["name"] != spec["name"] for index in existing):
                existing.append(dict(spec, ns=namespace))
        return {"ok": 1, "numIndexesBefore": before, "numIndexesAfter": len(existing)}

    def _cmd_deleteIndexes(self, database: str, cmd: dict[str, Any]) -> dict[str, Any]:
        namespace = f"{database}.{cmd['deleteIndexes']}"
        existing = self.indexes.get(namespace, [])
        if cmd["index"] == "*":
            self.indexes[namespace] = []
            return {"ok": 1, "nIndexesWas": len(existing)}
        remaining = [index for index in existing if index["name"] != cmd["index"]]
        if len(remaining) == len(existing):
            return {"ok": 0, "errmsg": f"index not found with name [{cmd['index']}]", "code": 27}
        self.indexes[namespace] = remaining
        return {"ok": 1, "nIndexesWas": len(existing)}

    def _cmd_findAndModify(self, database: str, cmd: dict[str, Any]) -> dict[str, Any]:
        data = self._get_collection_data(database, cmd["findAndModify"])
        hits = [doc for doc in data if self._matches(doc, cmd.get("query", {}))]
        if not hits:
            if cmd.get("upsert") and "update" in cmd:
                new_doc = {k: v for k, v in cmd["query"].items() if not k.startswith("$")}
                self._apply_update(new_doc, cmd["update"])
                new_doc.setdefault("_id", "upserted-fam")
                data.append(new_doc)
                return {"ok": 1, "value": dict(new_doc) if cmd.get("new") else None}
            return {"ok": 1, "value": None}

        doc = hits[0]
        before = dict(doc)
        if cmd.get("remove"):
            data.remove(doc)
            return {"ok": 1, "value": before}
        self._apply_update(doc, cmd["update"])
        value = dict(doc) if cmd.get("new") else before
        if cmd.get("fields"):
            value = {k: v for k, v in value.items() if k == "_id" or cmd["fields"].get(k)}
        return {"ok": 1, "value": value}

    def _cmd_group(self, database: str, cmd: dict[str, Any]) -> dict[str, Any]:
        """Mock group: counts documents per key, the reduce code is not run."""
        group = cmd["group"]
        data = self._get_collection_data(database, group["ns"])
        docs = [doc for doc in data if self._matches(doc, group.get("cond", {}))]
        if "$keyf" in group:
            return {"ok": 1, "retval": [], "count": float(len(docs)), "keys": 0}
        retval: list[dict[str, Any]] = []
        for doc in docs:
            key = {field: doc.get(field) for field in group["key"]}
            for entry in retval:
                if all(entry[k] == v for k, v in key.items()):
                    entry["count"] += 1
                    break
            else:
                retval.append(dict(key, count=1))
        return {"ok": 1, "retval": retval, "count": float(len(docs)), "keys": len(retval)}

    def _matches(self, doc: dict[str, Any], filter: dict[str, Any]) -> bool:
        """Check if document matches filter."""
        if not filter:
            return True

        for key, value in filter.items():
            doc_value = doc.get(key)

            if isinstance(value, dict):
                for op, op_value in value.items():
                    if op == "$gt":
                        if doc_value is None or doc_value <= op_value:
                            return False
                    elif op == "$lt":
                        if doc_value is None or doc_value >= op_value:
                            return False
                    elif op == "$in":
                        if doc_value not in op_value:
                            return False
            elif doc_value != value:
                return False

        return True

    def _apply_update(self, doc: dict[str, Any], update: dict[str, Any]) -> bool:
        """Apply update operators (or a replacement) to document."""
        if not any(key.startswith("$") for key in update):
            replacement = dict(update)
            replacement.setdefault("_id", doc.get("_id"))
            if replacement == doc:
                return False
            doc.clear()
            doc.update(replacement)
            return True

        modified = False
        for op, fields in update.items():
            if op == "$set":
                for key, value in fields.items():
                    if doc.get(key) != value:
                        doc[key] = value
                        modified = True
            elif op == "$unset":
                for key in fields:
                    if key in doc:
                        del doc[key]
                        modified = True
            elif op == "$inc":
                for key, value in fields.items():
                    doc[key] = doc.get(key, 0) + value
                    modified = True
        return modified


class MockRpcClient:
    """Mock RPC client for testing."""

    def __init__(self) -> None:
        self.mongo = MockRpcMongo()
        self._closed = False

    async def close(self) -> None:
        """Close the mock client."""
        self._closed = True


@pytest.fixture
def mock_rpc() -> MockRpcClient:
    """Create a mock RPC client."""
    return MockRpcClient()


@pytest.fixture
def mock_server(mock_rpc: MockRpcClient) -> MockRpcMongo:
    """The in-memory server behind the mock RPC client."""
    return mock_rpc.mongo


@pytest.fixture
def mock_connect(mock_rpc: MockRpcClient, monkeypatch: pytest.MonkeyPatch):
    """Mock the rpc_do.connect function."""
    # Create a mock module
    mock_rpc_do = MagicMock()
    mock_rpc_do.connect = AsyncMock(return_value=mock_rpc)

    # Add to sys.modules
    monkeypatch.setitem(sys.modules, "rpc_do", mock_rpc_do)

    return mock_rpc_do


@pytest.fixture
def id_generator() -> ObjectIdGenerator:
    """A generator with a fixed host, pid, clock and counter start."""
    return ObjectIdGenerator(
        counter=Counter(start=0x10),
        hostname="testhost",
        pid=4321,
        clock=lambda: 1_600_000_000.0,
    )


@pytest.fixture
async def client(mock_connect, mock_rpc: MockRpcClient, id_generator: ObjectIdGenerator):
    """Create a connected MongoClient."""
    from mongo_bridge import MongoClient

    client = MongoClient("https://test.mongo.do", id_generator=id_generator)
    await client.connect()
    return client


@pytest.fixture
async def database(client):
    """Create a database."""
    return client["testdb"]


@pytest.fixture
async def collection(database):
    """Create a collection."""
    return database["testcollection"]
