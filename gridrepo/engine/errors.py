"""
gridrepo Error Hierarchy — Structured exceptions for the file repository.

Every error carries its message plus free-form context (record type, file id,
filename ...) that serializes to JSON for structured logs.

Hierarchy:
    GridRepoError
    ├── GridRepoValidationError     — Record failed insert/rename validation
    │   ├── MissingFieldError       — Required field absent or empty
    │   ├── InvalidFilenameError    — Filename does not match the bucket mask
    │   └── FileTooLargeError       — Content exceeds the bucket size limit
    ├── NotFoundError               — No stored file with the given id
    └── GridRepoConfigError         — Connection/configuration error

Store failures other than "file not found" are never wrapped: connectivity,
write-concern and driver errors reach the caller as the driver raised them.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class GridRepoError(Exception):
    """
    Base error for all gridrepo failures.
    Structured for logging — all context serializable to JSON.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.record_type: Optional[str] = context.get("record_type")
        self.bucket: Optional[str] = context.get("bucket")
        self.operation: Optional[str] = context.get("operation")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "record_type": self.record_type,
            "bucket": self.bucket,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("record_type", "bucket", "operation")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.record_type:
            parts.append(f"record_type={self.record_type}")
        if self.bucket:
            parts.append(f"bucket={self.bucket}")
        return " | ".join(parts)


class GridRepoValidationError(GridRepoError):
    """
    Record validation failed before any store call.
    The caller can fix the record and retry.
    """
    pass


class MissingFieldError(GridRepoValidationError):
    """A required field (filename, content) is absent or empty at insert."""

    def __init__(self, message: str, **context: Any):
        self.field_name: Optional[str] = context.get("field_name")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["field_name"] = self.field_name
        return d


class InvalidFilenameError(GridRepoValidationError):
    """Filename does not match the bucket's filename mask (insert or rename)."""

    def __init__(self, filename: str, **context: Any):
        self.filename = filename
        super().__init__(
            f"File name '{filename}' is not of the desired format.",
            filename=filename,
            **context,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["filename"] = self.filename
        return d


class FileTooLargeError(GridRepoValidationError):
    """Content size exceeds the bucket's maximum file size."""

    def __init__(self, max_size_mb: int, **context: Any):
        self.max_size_mb = max_size_mb
        self.size_bytes: Optional[int] = context.get("size_bytes")
        super().__init__(
            f"File size is too large, maximum allowed is {max_size_mb} MB.",
            max_size_mb=max_size_mb,
            **context,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["max_size_mb"] = self.max_size_mb
        d["size_bytes"] = self.size_bytes
        return d


class NotFoundError(GridRepoError):
    """No file with the given id exists in the bucket (get, rename, delete)."""

    def __init__(self, file_id: Any, message: Optional[str] = None, **context: Any):
        self.file_id = str(file_id)
        super().__init__(
            message or f"File Id '{file_id}' was not found in the store",
            file_id=self.file_id,
            **context,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["file_id"] = self.file_id
        return d


class GridRepoConfigError(GridRepoError):
    """Configuration error — missing or unusable connection settings."""
    pass
