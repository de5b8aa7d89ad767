"""
gridrepo Metadata Mapper — record extra fields ↔ GridFS metadata document.

The extra fields of a record type are the model fields it declares beyond
BaseRecord. They are discovered once per type and cached; every encode/decode
afterwards walks the cached descriptors.
"""

from __future__ import annotations

import logging
import threading
import types
import typing
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Type

from gridrepo.documents.conversion import ScalarKind, convert, kind_of_type, to_store_value
from gridrepo.documents.models import BASE_FIELD_NAMES, BaseRecord

logger = logging.getLogger("gridrepo.documents.mapper")

# Metadata keys written by the repository itself.
CONTENT_TYPE_KEY = "ContentType"
CONTENT_LENGTH_KEY = "ContentLength"
RESERVED_KEYS = frozenset({CONTENT_TYPE_KEY, CONTENT_LENGTH_KEY})


def _unwrap_optional(annotation: Any) -> Any:
    """Optional[X] / X | None → X; anything else unchanged."""
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


@dataclass(frozen=True)
class FieldDescriptor:
    """One extra field of a record type."""
    name: str
    annotation: Any
    kind: ScalarKind

    def read(self, record: BaseRecord) -> Any:
        return getattr(record, self.name, None)

    def write(self, record: BaseRecord, value: Any) -> None:
        setattr(record, self.name, value)

    def __repr__(self) -> str:
        return f"<FieldDescriptor({self.name}: {self.kind.value})>"


class MetadataMapper:
    """
    Discovers and caches the extra fields of record types, and converts
    between record instances and metadata documents.

    Usage:
        mapper = MetadataMapper()
        doc = mapper.encode(invoice)          # {"customer": "Acme", ...}
        mapper.decode(doc, Invoice.model_construct())
    """

    def __init__(self):
        self._cache: Dict[type, Tuple[FieldDescriptor, ...]] = {}
        self._lock = threading.Lock()

    def fields_of(self, record_type: Type[BaseRecord]) -> Tuple[FieldDescriptor, ...]:
        """Extra-field descriptors of ``record_type``, in declaration order."""
        cached = self._cache.get(record_type)
        if cached is not None:
            return cached

        with self._lock:
            cached = self._cache.get(record_type)
            if cached is None:
                cached = self._discover(record_type)
                self._cache[record_type] = cached
        return cached

    @staticmethod
    def _discover(record_type: Type[BaseRecord]) -> Tuple[FieldDescriptor, ...]:
        descriptors = []
        for name, info in record_type.model_fields.items():
            if name in BASE_FIELD_NAMES:
                continue
            annotation = _unwrap_optional(info.annotation)
            descriptors.append(FieldDescriptor(name, annotation, kind_of_type(annotation)))

        unsupported = [d.name for d in descriptors if d.kind is ScalarKind.UNSUPPORTED]
        if unsupported:
            logger.warning(
                f"{record_type.__name__}: fields {unsupported} are not scalar; "
                f"they are stored as-is but read back as None"
            )
        logger.debug(f"Extra fields for {record_type.__name__}: {descriptors}")
        return tuple(descriptors)

    def encode(self, record: BaseRecord) -> Dict[str, Any]:
        """Extra-field values of ``record`` as metadata entries."""
        document: Dict[str, Any] = {}
        for field in self.fields_of(type(record)):
            if field.name in RESERVED_KEYS:
                continue
            document[field.name] = to_store_value(field.read(record))
        return document

    def decode(self, document: Optional[Mapping[str, Any]], record: BaseRecord) -> BaseRecord:
        """
        Write the metadata entries matching ``record``'s extra fields onto it.

        Missing entries leave the field at its default. A present entry that
        converts to None (stored null, unsupported kind) sets the field to None.
        """
        if not document:
            return record
        for field in self.fields_of(type(record)):
            if field.name not in document:
                continue
            field.write(record, convert(document[field.name]))
        return record


# Shared instance; repositories for the same record type reuse its cache.
default_mapper = MetadataMapper()
