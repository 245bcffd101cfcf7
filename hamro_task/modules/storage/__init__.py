"""
Storage module for user-uploaded images.

Avatars are served from a public bucket, payment screenshots from a private
bucket through signed URLs.
"""

from .drivers.base import BaseStorageDriver
from .drivers.minio_driver import MinIOStorageDriver
from .service import StorageService

__all__ = [
    "BaseStorageDriver",
    "MinIOStorageDriver",
    "StorageService",
]
