"""
gridrepo Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v

No MongoDB server is needed: InMemoryBucket / AsyncInMemoryBucket implement
the parts of the pymongo / motor GridFSBucket API the repository uses.
Metadata goes through a real BSON encode/decode so type behaviour matches
the server (Decimal128, Int64, millisecond datetimes).
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

import bson
import pytest
from bson import ObjectId
from gridfs.errors import FileExists, NoFile

from gridrepo.documents.models import BaseRecord


# ---------------------------------------------------------------------------
# Record types used across tests
# ---------------------------------------------------------------------------

class Document(BaseRecord):
    is_private: bool = False

    class Meta:
        pluralize_bucket_name = False
        max_file_size_mb = 1
        bucket_chunk_size_mb = 1


class Image(BaseRecord):
    is_display: bool = False
    caption: Optional[str] = None
    width: int = 0
    price: Decimal = Decimal("0")
    taken_at: Optional[datetime] = None
    owner_id: Optional[str] = None


# ---------------------------------------------------------------------------
# In-memory GridFS bucket fakes
# ---------------------------------------------------------------------------

class FakeGridOut:
    """Stands in for gridfs.GridOut: file info attributes plus read()."""

    def __init__(self, doc: Dict[str, Any]):
        self._id = doc["_id"]
        self.filename = doc["filename"]
        self.upload_date = doc["uploadDate"]
        self.length = doc["length"]
        self.metadata = doc["metadata"]
        self._data = doc["data"]
        self.closed = False

    def read(self) -> bytes:
        return self._data

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeGridOut":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _lookup(doc: Dict[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _matches(doc: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    for path, expected in filter.items():
        actual = _lookup(doc, path)
        if isinstance(expected, dict):
            for op, operand in expected.items():
                if op == "$in" and actual not in operand:
                    return False
                if op == "$lt" and not (actual is not None and actual < operand):
                    return False
                if op == "$gt" and not (actual is not None and actual > operand):
                    return False
                if op == "$regex" and not (isinstance(actual, str) and re.search(operand, actual)):
                    return False
        elif actual != expected:
            return False
    return True


class InMemoryBucket:
    """Blocking GridFSBucket fake. ``calls`` records every store operation."""

    def __init__(self):
        self.files: Dict[ObjectId, Dict[str, Any]] = {}
        self.calls: List[str] = []
        self.streams: List[FakeGridOut] = []
        self._clock = datetime(2024, 1, 1, 12, 0, 0)

    def _next_upload_date(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def _store(self, file_id: ObjectId, filename: str, source: Any, metadata: Optional[dict]) -> None:
        data = source.read() if hasattr(source, "read") else bytes(source)
        # Round-trip through BSON like the server would
        stored_meta = bson.decode(bson.encode({"m": metadata}))["m"] if metadata is not None else None
        self.files[file_id] = {
            "_id": file_id,
            "filename": filename,
            "uploadDate": self._next_upload_date(),
            "length": len(data),
            "metadata": stored_meta,
            "data": data,
        }

    def find(self, filter: Optional[dict] = None, sort=None, limit: int = 0, **kwargs: Any) -> List[FakeGridOut]:
        self.calls.append("find")
        docs = [d for d in self.files.values() if _matches(d, filter or {})]
        for key, direction in reversed(list(sort or [])):
            docs.sort(key=lambda d: _lookup(d, key), reverse=direction < 0)
        if limit:
            docs = docs[:limit]
        return [FakeGridOut(d) for d in docs]

    def open_download_stream(self, file_id: ObjectId) -> FakeGridOut:
        self.calls.append("download")
        if file_id not in self.files:
            raise NoFile(f"no file in gridfs collection with _id {file_id!r}")
        stream = FakeGridOut(self.files[file_id])
        self.streams.append(stream)
        return stream

    def upload_from_stream(self, filename: str, source: Any, chunk_size_bytes=None, metadata=None) -> ObjectId:
        self.calls.append("upload")
        file_id = ObjectId()
        self._store(file_id, filename, source, metadata)
        return file_id

    def upload_from_stream_with_id(self, file_id, filename, source, chunk_size_bytes=None, metadata=None) -> None:
        self.calls.append("upload_with_id")
        if file_id in self.files:
            raise FileExists(f"file with _id {file_id!r} already exists")
        self._store(file_id, filename, source, metadata)

    def rename(self, file_id: ObjectId, new_filename: str) -> None:
        self.calls.append("rename")
        if file_id not in self.files:
            raise NoFile(f"no files could be renamed {file_id!r} because none matched file_id")
        self.files[file_id]["filename"] = new_filename

    def delete(self, file_id: ObjectId) -> None:
        self.calls.append("delete")
        if file_id not in self.files:
            raise NoFile(f"File id {file_id!r} not found")
        del self.files[file_id]

    def drop(self) -> None:
        self.calls.append("drop")
        self.files.clear()

    @property
    def writes(self) -> List[str]:
        return [c for c in self.calls if c not in ("find", "download")]


class FakeAsyncGridOut:
    def __init__(self, grid_out: FakeGridOut):
        self._grid_out = grid_out

    async def read(self) -> bytes:
        return self._grid_out.read()


class FakeAsyncCursor:
    def __init__(self, items: List[FakeGridOut]):
        self._items = items

    async def to_list(self, length: Optional[int] = None) -> List[FakeGridOut]:
        return self._items if length is None else self._items[:length]


class AsyncInMemoryBucket:
    """motor AsyncIOMotorGridFSBucket fake sharing storage with an InMemoryBucket."""

    def __init__(self, sync_bucket: InMemoryBucket):
        self.sync = sync_bucket

    def find(self, filter: Optional[dict] = None, **kwargs: Any) -> FakeAsyncCursor:
        return FakeAsyncCursor(self.sync.find(filter, **kwargs))

    async def open_download_stream(self, file_id: ObjectId) -> FakeAsyncGridOut:
        return FakeAsyncGridOut(self.sync.open_download_stream(file_id))

    async def upload_from_stream(self, filename, source, chunk_size_bytes=None, metadata=None) -> ObjectId:
        return self.sync.upload_from_stream(filename, source, metadata=metadata)

    async def upload_from_stream_with_id(self, file_id, filename, source, chunk_size_bytes=None, metadata=None) -> None:
        self.sync.upload_from_stream_with_id(file_id, filename, source, metadata=metadata)

    async def rename(self, file_id, new_filename) -> None:
        self.sync.rename(file_id, new_filename)

    async def delete(self, file_id) -> None:
        self.sync.delete(file_id)

    async def drop(self) -> None:
        self.sync.drop()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals(monkeypatch, tmp_path):
    """Reset settings and the structured log queue between tests."""
    import gridrepo.engine.config as cfg_mod
    import gridrepo.engine.logging as log_mod

    monkeypatch.chdir(tmp_path)
    cfg_mod._settings = None
    log_mod.shutdown_logging()
    yield
    log_mod.shutdown_logging()
    cfg_mod._settings = None


@pytest.fixture
def bucket():
    return InMemoryBucket()


@pytest.fixture
def async_bucket(bucket):
    return AsyncInMemoryBucket(bucket)


@pytest.fixture
def image_repo(bucket, async_bucket):
    from gridrepo.documents.repository import FileRepository

    return FileRepository(Image, bucket=bucket, async_bucket=async_bucket)


@pytest.fixture
def document_repo(bucket, async_bucket):
    from gridrepo.documents.repository import FileRepository

    return FileRepository(Document, bucket=bucket, async_bucket=async_bucket)


@pytest.fixture
def pdf_bytes():
    return b"%PDF-1.4\n" + b"\x00" * 991
