"""
gridrepo Documents — record models, bucket configuration, metadata mapping
and the file repository.
"""

from gridrepo.documents.bucket import BucketConfig, bucket_name_for, resolve_bucket_config
from gridrepo.documents.mapper import FieldDescriptor, MetadataMapper
from gridrepo.documents.models import BaseRecord
from gridrepo.documents.repository import FileRepository

__all__ = [
    "BaseRecord",
    "BucketConfig",
    "FieldDescriptor",
    "FileRepository",
    "MetadataMapper",
    "bucket_name_for",
    "resolve_bucket_config",
]
