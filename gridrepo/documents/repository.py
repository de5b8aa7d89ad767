"""
gridrepo File Repository — typed CRUD over a GridFS bucket.

Handles:
- Per-record-type bucket configuration (naming, chunk size, validation)
- Insert with filename/size validation, content-type detection, metadata
- Lookup by id, filename, arbitrary filter, or set membership
- Rename / delete with store "not found" translated to NotFoundError
- Blocking (pymongo) and coroutine (motor) forms of every operation

Every operation ``op`` has a coroutine twin ``op_async``. Both run the same
validation and mapping helpers; they differ only in how store round-trips
(find, download, upload, rename, delete) are issued.

Usage:
    repo = FileRepository(Invoice)
    file_id = repo.insert(Invoice(filename="march.pdf", content=data, customer="Acme"))
    invoice = repo.get(file_id)
    invoice.content_type      # "application/pdf"

    async with FileRepository(Invoice) as repo:
        invoices = await repo.get_by_filename_async("march.pdf")
"""

from __future__ import annotations

import io
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Generic, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union

import bson
from bson import ObjectId
from gridfs.errors import NoFile
from pymongo import DESCENDING

from gridrepo.db.session import StoreContext
from gridrepo.documents.bucket import BucketOverride, bucket_name_for, resolve_bucket_config
from gridrepo.documents.conversion import convert
from gridrepo.documents.mapper import CONTENT_LENGTH_KEY, CONTENT_TYPE_KEY, MetadataMapper, default_mapper
from gridrepo.documents.models import BaseRecord
from gridrepo.engine.errors import (
    FileTooLargeError,
    InvalidFilenameError,
    MissingFieldError,
    NotFoundError,
)
from gridrepo.engine.logging import (
    log,
    log_bucket_event,
    log_file_operation,
    log_file_performance,
    recent_file_operations,
)
from gridrepo.utilities.utils import detect_mime_type

logger = logging.getLogger("gridrepo.documents.repository")

T = TypeVar("T", bound=BaseRecord)

FileId = Union[ObjectId, str]
SortSpec = Sequence[Tuple[str, int]]

NEWEST_FIRST: SortSpec = [("uploadDate", DESCENDING)]


def _to_object_id(file_id: FileId) -> ObjectId:
    if isinstance(file_id, ObjectId):
        return file_id
    return ObjectId(file_id)


class FileRepository(Generic[T]):
    """
    Generic file repository for one record type.

    Configuration, bucket name and the record type's extra fields are resolved
    once here and reused by every call. Unless both bucket handles are
    injected, a StoreContext for ``config.connection_ref`` is built here too
    (GridRepoConfigError when none is configured); the handles themselves
    are opened from it on first use.

    Args:
        record_type: BaseRecord subclass stored in this bucket.
        config:      BucketConfig or dict overriding the type's ``Meta``.
        factory:     Callable returning an empty record for reads
                     (defaults to ``record_type.model_construct``).
        context:     StoreContext to open buckets from (not closed by us).
        bucket:      Pre-opened blocking GridFS bucket.
        async_bucket: Pre-opened motor GridFS bucket.
        mapper:      MetadataMapper (defaults to the shared instance).
    """

    def __init__(
        self,
        record_type: Type[T],
        config: Optional[BucketOverride] = None,
        factory: Optional[Callable[[], T]] = None,
        context: Optional[StoreContext] = None,
        bucket: Any = None,
        async_bucket: Any = None,
        mapper: Optional[MetadataMapper] = None,
    ):
        self.record_type = record_type
        self.config = resolve_bucket_config(record_type, config)
        self.bucket_name = bucket_name_for(record_type, self.config)

        self._mapper = mapper or default_mapper
        self.fields = self._mapper.fields_of(record_type)
        self._factory: Callable[[], T] = factory or record_type.model_construct

        # The context is built here, outside any event loop: parsing a
        # mongodb+srv URI does blocking DNS lookups.
        self._owns_context = False
        if context is None and (bucket is None or async_bucket is None):
            context = StoreContext.from_ref(self.config.connection_ref)
            self._owns_context = True
        self._context = context
        self._bucket = bucket
        self._async_bucket = async_bucket
        self._closed = False

        logger.debug(
            f"FileRepository[{record_type.__name__}] bucket='{self.bucket_name}' "
            f"extra_fields={[f.name for f in self.fields]}"
        )

    # -------------------------------------------------------------------
    # Store handles
    # -------------------------------------------------------------------

    @property
    def context(self) -> Optional[StoreContext]:
        """StoreContext bucket handles are opened from; None when both are injected."""
        return self._context

    @property
    def bucket(self):
        """Blocking GridFS bucket (pymongo)."""
        if self._bucket is None:
            self._bucket = self._context.open_bucket(
                self.bucket_name, self.config.chunk_size_bytes
            )
        return self._bucket

    @property
    def async_bucket(self):
        """Coroutine GridFS bucket (motor)."""
        if self._async_bucket is None:
            self._async_bucket = self._context.open_async_bucket(
                self.bucket_name, self.config.chunk_size_bytes
            )
        return self._async_bucket

    # -------------------------------------------------------------------
    # Shared validation / mapping
    # -------------------------------------------------------------------

    def _error_context(self, operation: str) -> Dict[str, Any]:
        return {
            "record_type": self.record_type.__name__,
            "bucket": self.bucket_name,
            "operation": operation,
        }

    def _validate_filename(self, filename: str, operation: str) -> None:
        if self.config.validate_file_name and not self.config.filename_matches(filename):
            raise InvalidFilenameError(filename, **self._error_context(operation))

    def _prepare_insert(self, record: T) -> Dict[str, Any]:
        """
        Validate ``record`` for insert and build its metadata document.

        Order: filename present, content present, size limit, filename mask,
        then a BSON encode of the metadata so values the store cannot hold
        (ints beyond 8 bytes, unencodable types) fail here. Nothing touches
        the store before all checks pass.
        """
        ctx = self._error_context("insert")

        if not record.filename or not record.filename.strip():
            raise MissingFieldError("File name cannot be empty.", field_name="filename", **ctx)
        if not record.content:
            raise MissingFieldError("File content cannot be empty.", field_name="content", **ctx)

        size = len(record.content)
        if self.config.validate_file_size and size > self.config.max_file_size_bytes:
            raise FileTooLargeError(self.config.max_file_size_mb, size_bytes=size, **ctx)

        self._validate_filename(record.filename, "insert")

        metadata: Dict[str, Any] = {
            CONTENT_TYPE_KEY: detect_mime_type(record.filename),
            CONTENT_LENGTH_KEY: size,
        }
        metadata.update(self._mapper.encode(record))
        bson.encode(metadata)
        return metadata

    def _build_record(self, file_info: Any, content: bytes) -> T:
        """New record from a GridFS file entry and its downloaded content."""
        record = self._factory()
        record.id = file_info._id
        record.filename = file_info.filename
        record.content = content
        record._upload_date_time = file_info.upload_date

        meta = file_info.metadata or {}
        if CONTENT_LENGTH_KEY in meta:
            length = convert(meta[CONTENT_LENGTH_KEY])
            if length is not None:
                record._content_length = length
        record._content_type = convert(meta[CONTENT_TYPE_KEY])

        self._mapper.decode(meta, record)
        return record

    def _not_found(self, file_id: ObjectId, operation: str) -> NotFoundError:
        logger.info(f"{operation}: file {file_id} not found in bucket '{self.bucket_name}'")
        return NotFoundError(file_id, **self._error_context(operation))

    def _log_op(self, operation: str, started: float, **fields: Any) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        log(log_file_operation(
            operation,
            bucket=self.bucket_name,
            record_type=self.record_type.__name__,
            duration_ms=duration_ms,
            **fields,
        ))
        if operation in ("insert", "get"):
            log(log_file_performance(operation, self.bucket_name, duration_ms, fields.get("size_bytes")))

    # -------------------------------------------------------------------
    # Blocking operations
    # -------------------------------------------------------------------

    def _find_one(self, file_id: ObjectId) -> Any:
        for file_info in self.bucket.find({"_id": file_id}, limit=1):
            return file_info
        return None

    def _download(self, file_id: ObjectId) -> bytes:
        with self.bucket.open_download_stream(file_id) as grid_out:
            return grid_out.read()

    def _query(self, filter: Mapping[str, Any], sort: Optional[SortSpec], operation: str) -> List[T]:
        started = time.perf_counter()
        kwargs = {"sort": list(sort)} if sort else {}
        records = [
            self._build_record(file_info, self._download(file_info._id))
            for file_info in self.bucket.find(dict(filter), **kwargs)
        ]
        self._log_op(operation, started, count=len(records))
        return records

    def exists(self, file_id: FileId) -> bool:
        """True when a file with ``file_id`` is stored in the bucket."""
        return self._find_one(_to_object_id(file_id)) is not None

    def get(self, file_id: FileId) -> T:
        """
        Load one record by id.

        Raises NotFoundError when no file has that id.
        """
        started = time.perf_counter()
        oid = _to_object_id(file_id)
        file_info = self._find_one(oid)
        if file_info is None:
            raise self._not_found(oid, "get")

        record = self._build_record(file_info, self._download(oid))
        self._log_op("get", started, file_id=oid, size_bytes=len(record.content))
        return record

    def get_by_filename(self, filename: str) -> List[T]:
        """All records with exactly this filename, newest first. May be empty."""
        return self._query({"filename": filename}, NEWEST_FIRST, "get_by_filename")

    def get_by_predicate(self, condition: Mapping[str, Any]) -> List[T]:
        """
        Records matching a filter on the bucket's files collection, newest first.

        Example:
            repo.get_by_predicate({"filename": {"$regex": "^Omega"},
                                   "uploadDate": {"$lt": yesterday}})
        """
        return self._query(condition, NEWEST_FIRST, "get_by_predicate")

    def get_by_filter_and_sort(
        self,
        filter: Mapping[str, Any],
        sort: Optional[SortSpec] = None,
    ) -> List[T]:
        """Records matching ``filter`` in ``sort`` order (store order when None)."""
        return self._query(filter, sort, "get_by_filter_and_sort")

    def get_by_in_set(self, field: str, values: Iterable[Any]) -> List[T]:
        """
        Records whose files-collection ``field`` is one of ``values``, newest first.

        ``field`` is a files-collection path: "_id", "filename", "metadata.customer" ...
        """
        return self._query({field: {"$in": list(values)}}, NEWEST_FIRST, "get_by_in_set")

    def insert(self, record: T) -> str:
        """
        Validate and store ``record``; returns the file id as a hex string.

        Records without an id get a store-generated one. Records with an id
        are written at that id, replacing any file already stored there.
        """
        started = time.perf_counter()
        metadata = self._prepare_insert(record)
        source = io.BytesIO(record.content)

        if record.id is None:
            file_id = self.bucket.upload_from_stream(record.filename, source, metadata=metadata)
        else:
            file_id = _to_object_id(record.id)
            if self._find_one(file_id) is not None:
                logger.info(f"Replacing file {file_id} in bucket '{self.bucket_name}'")
                self.bucket.delete(file_id)
            self.bucket.upload_from_stream_with_id(file_id, record.filename, source, metadata=metadata)

        self._log_op(
            "insert", started,
            file_id=file_id, filename=record.filename, size_bytes=len(record.content),
        )
        return str(file_id)

    def rename(self, file_id: FileId, new_filename: str) -> None:
        """Rename a stored file. Raises InvalidFilenameError / NotFoundError."""
        self._validate_filename(new_filename, "rename")
        started = time.perf_counter()
        oid = _to_object_id(file_id)
        try:
            self.bucket.rename(oid, new_filename)
        except NoFile as e:
            raise self._not_found(oid, "rename") from e
        self._log_op("rename", started, file_id=oid, filename=new_filename)

    def delete(self, file_id: FileId) -> None:
        """Delete a stored file. Raises NotFoundError without deleting anything when absent."""
        started = time.perf_counter()
        oid = _to_object_id(file_id)
        if self._find_one(oid) is None:
            raise self._not_found(oid, "delete")
        try:
            self.bucket.delete(oid)
        except NoFile as e:
            raise self._not_found(oid, "delete") from e
        self._log_op("delete", started, file_id=oid)

    def drop_bucket(self) -> None:
        """Delete every file in the bucket, with its chunks. Irreversible."""
        logger.warning(f"Dropping bucket '{self.bucket_name}'")
        self.bucket.drop()
        log(log_bucket_event("bucket_dropped", self.bucket_name, record_type=self.record_type.__name__))

    # -------------------------------------------------------------------
    # Coroutine operations
    # -------------------------------------------------------------------

    async def _find_one_async(self, file_id: ObjectId) -> Any:
        files = await self.async_bucket.find({"_id": file_id}, limit=1).to_list(length=1)
        return files[0] if files else None

    async def _download_async(self, file_id: ObjectId) -> bytes:
        grid_out = await self.async_bucket.open_download_stream(file_id)
        return await grid_out.read()

    async def _query_async(self, filter: Mapping[str, Any], sort: Optional[SortSpec], operation: str) -> List[T]:
        started = time.perf_counter()
        kwargs = {"sort": list(sort)} if sort else {}
        files = await self.async_bucket.find(dict(filter), **kwargs).to_list(length=None)
        records = []
        for file_info in files:
            content = await self._download_async(file_info._id)
            records.append(self._build_record(file_info, content))
        self._log_op(operation, started, count=len(records))
        return records

    async def exists_async(self, file_id: FileId) -> bool:
        return await self._find_one_async(_to_object_id(file_id)) is not None

    async def get_async(self, file_id: FileId) -> T:
        started = time.perf_counter()
        oid = _to_object_id(file_id)
        file_info = await self._find_one_async(oid)
        if file_info is None:
            raise self._not_found(oid, "get")

        record = self._build_record(file_info, await self._download_async(oid))
        self._log_op("get", started, file_id=oid, size_bytes=len(record.content))
        return record

    async def get_by_filename_async(self, filename: str) -> List[T]:
        return await self._query_async({"filename": filename}, NEWEST_FIRST, "get_by_filename")

    async def get_by_predicate_async(self, condition: Mapping[str, Any]) -> List[T]:
        return await self._query_async(condition, NEWEST_FIRST, "get_by_predicate")

    async def get_by_filter_and_sort_async(
        self,
        filter: Mapping[str, Any],
        sort: Optional[SortSpec] = None,
    ) -> List[T]:
        return await self._query_async(filter, sort, "get_by_filter_and_sort")

    async def get_by_in_set_async(self, field: str, values: Iterable[Any]) -> List[T]:
        return await self._query_async({field: {"$in": list(values)}}, NEWEST_FIRST, "get_by_in_set")

    async def insert_async(self, record: T) -> str:
        started = time.perf_counter()
        metadata = self._prepare_insert(record)
        source = io.BytesIO(record.content)

        if record.id is None:
            file_id = await self.async_bucket.upload_from_stream(
                record.filename, source, metadata=metadata
            )
        else:
            file_id = _to_object_id(record.id)
            if await self._find_one_async(file_id) is not None:
                logger.info(f"Replacing file {file_id} in bucket '{self.bucket_name}'")
                await self.async_bucket.delete(file_id)
            await self.async_bucket.upload_from_stream_with_id(
                file_id, record.filename, source, metadata=metadata
            )

        self._log_op(
            "insert", started,
            file_id=file_id, filename=record.filename, size_bytes=len(record.content),
        )
        return str(file_id)

    async def rename_async(self, file_id: FileId, new_filename: str) -> None:
        self._validate_filename(new_filename, "rename")
        started = time.perf_counter()
        oid = _to_object_id(file_id)
        try:
            await self.async_bucket.rename(oid, new_filename)
        except NoFile as e:
            raise self._not_found(oid, "rename") from e
        self._log_op("rename", started, file_id=oid, filename=new_filename)

    async def delete_async(self, file_id: FileId) -> None:
        started = time.perf_counter()
        oid = _to_object_id(file_id)
        if await self._find_one_async(oid) is None:
            raise self._not_found(oid, "delete")
        try:
            await self.async_bucket.delete(oid)
        except NoFile as e:
            raise self._not_found(oid, "delete") from e
        self._log_op("delete", started, file_id=oid)

    async def drop_bucket_async(self) -> None:
        logger.warning(f"Dropping bucket '{self.bucket_name}'")
        await self.async_bucket.drop()
        log(log_bucket_event("bucket_dropped", self.bucket_name, record_type=self.record_type.__name__))

    # -------------------------------------------------------------------
    # Operation trail
    # -------------------------------------------------------------------

    def recent_operations(
        self,
        operation: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """
        Logged operations on this repository's bucket, newest first.

        Empty unless structured logging was started with ``init_logging``.
        """
        return recent_file_operations(self.bucket_name, operation=operation, since=since, limit=limit)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    def close(self) -> None:
        """Release the store connection this repository opened. Idempotent, never raises."""
        if self._closed:
            return
        self._closed = True
        if self._owns_context and self._context is not None:
            self._context.close()

    def __enter__(self) -> "FileRepository[T]":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    async def __aenter__(self) -> "FileRepository[T]":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<FileRepository[{self.record_type.__name__}] bucket='{self.bucket_name}'>"
