"""
Storage abstractions.

Production Integration Points:
- MetadataStorage → PostgreSQL (translation records, jobs, budget periods)
- CacheStorage → Redis (segmentation cache)
"""

from folio.storage.base import (
    MetadataStorage,
    CacheStorage,
    StorageProvider,
    Collections,
)
from folio.storage.local import create_local_storage

__all__ = [
    "MetadataStorage",
    "CacheStorage",
    "StorageProvider",
    "Collections",
    "create_local_storage",
]
