"""
gridrepo Bucket Configuration — per-record-type storage options.

Each record type maps to one GridFS bucket. Its options come from, in order:

1. an explicit override passed to the repository (BucketConfig or dict)
2. the ``Meta`` inner class declared on the record type itself
3. fixed defaults

``Meta`` is read only from the concrete class: a subclass of a configured
record type starts again from the defaults unless it declares its own Meta.

Recognised options (snake_case attributes of Meta):
    pluralize_bucket_name   bool   (True)   "invoice" → "invoices"
    validate_file_name      bool   (True)
    validate_file_size      bool   (True)
    file_name_mask          regex  (^[\\w\\-. ]+$, case-insensitive)
    max_file_size_mb        int    (5)
    bucket_chunk_size_mb    int    (2)
    connection_ref          str    (process-wide connection string)
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Mapping, Optional, Pattern, Type, Union

from pydantic import BaseModel, ConfigDict, field_validator

from gridrepo.engine.config import get_settings
from gridrepo.utilities.utils import pluralize

logger = logging.getLogger("gridrepo.documents.bucket")

DEFAULT_FILE_NAME_MASK = r"^[\w\-. ]+$"
MB = 1024 * 1024


class BucketConfig(BaseModel):
    """Effective storage configuration for one record type. Immutable."""

    model_config = ConfigDict(frozen=True)

    pluralize_bucket_name: bool = True
    validate_file_name: bool = True
    validate_file_size: bool = True
    file_name_mask: Pattern[str] = re.compile(DEFAULT_FILE_NAME_MASK, re.IGNORECASE)
    max_file_size_mb: int = 5
    bucket_chunk_size_mb: int = 2
    connection_ref: Optional[str] = None

    @field_validator("file_name_mask", mode="before")
    @classmethod
    def compile_mask(cls, v: Any) -> Any:
        if isinstance(v, str):
            return re.compile(v, re.IGNORECASE)
        return v

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * MB

    @property
    def chunk_size_bytes(self) -> int:
        return self.bucket_chunk_size_mb * MB

    def filename_matches(self, filename: str) -> bool:
        return self.file_name_mask.search(filename) is not None


BucketOverride = Union[BucketConfig, Mapping[str, Any]]


def declared_options(record_type: Type[Any]) -> Optional[Dict[str, Any]]:
    """
    Read the options declared on ``record_type``'s own ``Meta`` class.

    Returns None when the type declares no Meta. Unknown attributes are ignored.
    """
    meta = record_type.__dict__.get("Meta")
    if meta is None:
        return None
    return {
        name: getattr(meta, name)
        for name in BucketConfig.model_fields
        if hasattr(meta, name)
    }


def resolve_bucket_config(
    record_type: Type[Any],
    override: Optional[BucketOverride] = None,
) -> BucketConfig:
    """
    Resolve the effective BucketConfig for a record type.

    Absent configuration yields the defaults; a missing connection_ref is
    filled from the process-wide connection string at this point.
    """
    if override is None:
        override = declared_options(record_type)

    if isinstance(override, BucketConfig):
        config = override
    else:
        config = BucketConfig(**dict(override or {}))

    if config.connection_ref is None:
        config = config.model_copy(update={"connection_ref": get_settings().connection_string})

    logger.debug(f"Resolved bucket config for {record_type.__name__}: {config!r}")
    return config


def bucket_name_for(record_type: Type[Any], config: BucketConfig) -> str:
    """Bucket name: the lower-cased type name, pluralized when enabled."""
    name = record_type.__name__.lower()
    if config.pluralize_bucket_name:
        name = pluralize(name)
    return name
