"""
mongo-bridge - BSON codec and collection command translation.

This package lets an application drive collections of a document database
through any transport that can carry encoded documents:
- A BSON encoder/decoder covering every value type, including object ids,
  binary, regular expressions, timestamps, code and min/max keys
- ObjectId generation with a thread-safe, process-wide counter
- Collection verbs (insert, update, remove, count, distinct, aggregate,
  findAndModify, group, index management) translated into server commands
- Canonical write results regardless of the server's reply dialect

Example usage:
    from mongo_bridge import MongoClient

    async def main():
        # Connect over rpc-do
        client = MongoClient("https://mongo.do")
        await client.connect()

        # Access database and collection
        db = client["myapp"]
        users = db["users"]

        # Insert documents; a missing _id is generated in place
        doc = {"name": "Alice", "email": "alice@example.com"}
        await users.insert(doc)
        print(doc["_id"])

        # Update documents
        result = await users.update(
            {"email": "alice@example.com"},
            {"$set": {"status": "vip"}},
        )
        print(result.document)

        # Indexes
        await users.ensure_index([("email", 1)], unique=True)

        # Remove documents
        await users.remove({"email": "alice@example.com"}, justOne=True)

        await client.close()

    import asyncio
    asyncio.run(main())

The codec can be used on its own:
    from mongo_bridge import decode, encode

    payload = encode({"hello": "world"})
    assert decode(payload) == {"hello": "world"}
"""

from __future__ import annotations

__version__ = "0.1.0"

from .client import MongoClient
from .collection import Collection
from .database import Database
from .dbref import DBRef, create_dbref, resolve_dbref
from .decoder import BsonType, decode, decode_stream
from .encoder import encode, encode_stream
from .index import Dialect, build_index_name
from .objectid import Counter, ObjectId, ObjectIdGenerator, default_generator
from .transport import RpcTransport, Transport
from .types import (
    BsonError,
    CommandFailed,
    ConnectionError,
    EmptyDocumentError,
    GroupCommandFailed,
    InvalidObjectId,
    MalformedDocument,
    MongoError,
    OperationFailure,
    TransportError,
    UnencodableValue,
    UnexpectedEndOfStream,
    WriteResult,
)
from .values import (
    BinData,
    Code,
    DBPointer,
    Int64,
    MaxKey,
    MinKey,
    Regex,
    Timestamp,
    UTCDateTime,
)

__all__ = [
    # Main classes
    "MongoClient",
    "Database",
    "Collection",
    "Transport",
    "RpcTransport",
    # Codec
    "encode",
    "encode_stream",
    "decode",
    "decode_stream",
    "BsonType",
    # Values
    "ObjectId",
    "BinData",
    "Code",
    "DBPointer",
    "Int64",
    "MaxKey",
    "MinKey",
    "Regex",
    "Timestamp",
    "UTCDateTime",
    # Identifiers
    "Counter",
    "ObjectIdGenerator",
    "default_generator",
    # Indexes and references
    "Dialect",
    "build_index_name",
    "DBRef",
    "create_dbref",
    "resolve_dbref",
    # Result types
    "WriteResult",
    # Exceptions
    "MongoError",
    "BsonError",
    "MalformedDocument",
    "UnexpectedEndOfStream",
    "UnencodableValue",
    "InvalidObjectId",
    "EmptyDocumentError",
    "OperationFailure",
    "CommandFailed",
    "GroupCommandFailed",
    "TransportError",
    "ConnectionError",
    # Version
    "__version__",
]
