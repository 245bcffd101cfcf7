"""
Storage drivers package.
"""

from .base import BaseStorageDriver
from .minio_driver import MinIOStorageDriver

__all__ = [
    "BaseStorageDriver",
    "MinIOStorageDriver",
]
