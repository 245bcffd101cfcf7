"""
Base storage driver interface.

Defines the contract that all storage drivers must implement.
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, Optional

from ..schemas import SignedUrlResult, UploadResult


class BaseStorageDriver(ABC):
    """Abstract base class for object storage drivers."""

    @abstractmethod
    async def upload(
        self,
        bucket: str,
        file_key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> UploadResult:
        """
        Write an object.

        Args:
            bucket: Target bucket, created on first use
            file_key: Object key
            data: Object bytes
            content_type: MIME type of the object
            metadata: Optional object metadata

        Returns:
            UploadResult describing the stored object
        """

    @abstractmethod
    async def delete(self, bucket: str, file_key: str) -> bool:
        """Remove an object; returns False when the backend refused."""

    @abstractmethod
    def public_url(self, bucket: str, file_key: str) -> str:
        """URL of an object in a publicly readable bucket."""

    @abstractmethod
    async def signed_url(
        self,
        bucket: str,
        file_key: str,
        expiration: timedelta = timedelta(hours=1)
    ) -> SignedUrlResult:
        """Time-limited GET URL for an object in a private bucket."""
