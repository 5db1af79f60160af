"""
Project metadata storage.

The enrollment core only ever sees a MetadataStore. Which bucket or
directory sits behind it is decided by the project config.

Backends: S3-compatible bucket, local directory, in-memory (tests).
"""

from .base import MetadataStore, ObjectStore, StoredObject
from .local import LocalObjectStore
from .memory import MemoryObjectStore
from .metadata import ObjectMetadataStore
from .s3 import S3ObjectStore

__all__ = [
    "LocalObjectStore",
    "MemoryObjectStore",
    "MetadataStore",
    "ObjectMetadataStore",
    "ObjectStore",
    "S3ObjectStore",
    "StoredObject",
]
