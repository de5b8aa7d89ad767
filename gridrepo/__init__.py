"""
gridrepo — Typed file repositories over MongoDB GridFS.

Define a record type by subclassing BaseRecord; its extra fields travel in
the GridFS metadata document:

    from gridrepo import BaseRecord, FileRepository

    class Invoice(BaseRecord):
        customer: str = ""
        paid: bool = False

    repo = FileRepository(Invoice)
    file_id = repo.insert(Invoice(filename="march.pdf", content=data, customer="Acme"))
"""

__version__ = "1.0.0"

from gridrepo.documents import BaseRecord, BucketConfig, FileRepository  # noqa: E402
from gridrepo.engine.errors import (  # noqa: E402
    FileTooLargeError,
    GridRepoConfigError,
    GridRepoError,
    GridRepoValidationError,
    InvalidFilenameError,
    MissingFieldError,
    NotFoundError,
)

__all__ = [
    "BaseRecord",
    "BucketConfig",
    "FileRepository",
    "GridRepoError",
    "GridRepoValidationError",
    "GridRepoConfigError",
    "MissingFieldError",
    "InvalidFilenameError",
    "FileTooLargeError",
    "NotFoundError",
]
