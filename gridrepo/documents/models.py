"""
gridrepo Record Models — the common shape every stored file shares.

A record is a pydantic model. BaseRecord carries the fields the store itself
knows about (id, filename, content, upload time) plus the two values the
repository derives at insert (content type and length). Subclasses declare
any number of extra scalar fields; those are kept in the file's metadata
document.

Example:
    class Invoice(BaseRecord):
        customer: str = ""
        total_cents: int = 0
        paid: bool = False

        class Meta:
            max_file_size_mb = 10
            pluralize_bucket_name = False
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

logger = logging.getLogger("gridrepo.documents.models")


class BaseRecord(BaseModel):
    """
    Base shape for a stored file.

    ``content_type``, ``content_length`` and ``upload_date_time`` are computed
    by the store/repository and exposed read-only; they are not model fields,
    so they never count as extra fields.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: Optional[ObjectId] = Field(default=None, description="Store id; generated on insert when unset")
    filename: str = Field(default="", description="File name, validated against the bucket mask")
    content: bytes = Field(default=b"", description="Full file payload")

    _content_type: Optional[str] = PrivateAttr(default=None)
    _content_length: int = PrivateAttr(default=0)
    _upload_date_time: Optional[datetime] = PrivateAttr(default=None)

    @property
    def content_type(self) -> Optional[str]:
        """MIME type inferred from the filename when the file was inserted."""
        return self._content_type

    @property
    def content_length(self) -> int:
        """Payload size in bytes recorded when the file was inserted."""
        return self._content_length

    @property
    def upload_date_time(self) -> Optional[datetime]:
        """Upload timestamp reported by the store."""
        return self._upload_date_time

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} id={self.id} filename='{self.filename}' "
            f"length={self._content_length}>"
        )


BASE_FIELD_NAMES = frozenset(BaseRecord.model_fields)
