"""
gridrepo Store Session Management.

A StoreContext owns the MongoDB client for one connection string and opens
GridFS bucket handles on the database named in that connection string.
Blocking callers get pymongo objects; coroutine callers get motor objects.
Each client is created on first use, so a repository used only from one
side never opens the other connection.
"""

from __future__ import annotations

import logging
from typing import Optional

from gridfs import GridFSBucket
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorGridFSBucket
from pymongo import MongoClient, ReadPreference, WriteConcern
from pymongo.errors import ConfigurationError
from pymongo.uri_parser import parse_uri

from gridrepo.engine.config import resolve_connection_string
from gridrepo.engine.errors import GridRepoConfigError

logger = logging.getLogger("gridrepo.db.session")

# Writes are acknowledged by a majority so subsequent majority reads see them;
# reads may be served by secondaries.
BUCKET_WRITE_CONCERN = WriteConcern(w="majority")
BUCKET_READ_PREFERENCE = ReadPreference.SECONDARY_PREFERRED


class StoreContext:
    """
    Connection handle for one MongoDB database.

    Usage:
        ctx = StoreContext("mongodb://localhost:27017/files")
        bucket = ctx.open_bucket("invoices", chunk_size_bytes=2 * 1024 * 1024)
        ...
        ctx.close()
    """

    def __init__(self, connection_string: str):
        try:
            parsed = parse_uri(connection_string)
        except ConfigurationError as e:
            raise GridRepoConfigError(f"Invalid MongoDB connection string: {e}") from e

        if not parsed.get("database"):
            raise GridRepoConfigError(
                "MongoDB connection string must name a database "
                "(mongodb://host:port/<database>)"
            )

        self._connection_string = connection_string
        self.database_name: str = parsed["database"]
        self._client: Optional[MongoClient] = None
        self._async_client: Optional[AsyncIOMotorClient] = None
        self._closed = False

    @classmethod
    def from_ref(cls, connection_ref: Optional[str]) -> "StoreContext":
        """Build a context from a bucket's connection reference (see config)."""
        return cls(resolve_connection_string(connection_ref))

    @property
    def client(self) -> MongoClient:
        if self._closed:
            raise GridRepoConfigError("StoreContext is closed")
        if self._client is None:
            self._client = MongoClient(self._connection_string)
            logger.info(f"Opened MongoDB client for database '{self.database_name}'")
        return self._client

    @property
    def async_client(self) -> AsyncIOMotorClient:
        if self._closed:
            raise GridRepoConfigError("StoreContext is closed")
        if self._async_client is None:
            self._async_client = AsyncIOMotorClient(self._connection_string)
            logger.info(f"Opened async MongoDB client for database '{self.database_name}'")
        return self._async_client

    def open_bucket(self, bucket_name: str, chunk_size_bytes: int) -> GridFSBucket:
        """Blocking GridFS bucket handle."""
        return GridFSBucket(
            self.client[self.database_name],
            bucket_name=bucket_name,
            chunk_size_bytes=chunk_size_bytes,
            write_concern=BUCKET_WRITE_CONCERN,
            read_preference=BUCKET_READ_PREFERENCE,
        )

    def open_async_bucket(self, bucket_name: str, chunk_size_bytes: int) -> AsyncIOMotorGridFSBucket:
        """Coroutine GridFS bucket handle."""
        return AsyncIOMotorGridFSBucket(
            self.async_client[self.database_name],
            bucket_name=bucket_name,
            chunk_size_bytes=chunk_size_bytes,
            write_concern=BUCKET_WRITE_CONCERN,
            read_preference=BUCKET_READ_PREFERENCE,
        )

    def close(self) -> None:
        """Close any open clients. Idempotent, never raises."""
        if self._closed:
            return
        self._closed = True

        for client in (self._client, self._async_client):
            if client is None:
                continue
            try:
                client.close()
            except Exception as e:
                logger.warning(f"Error closing MongoDB client: {e}")
        self._client = None
        self._async_client = None

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        return f"<StoreContext database='{self.database_name}' closed={self._closed}>"
