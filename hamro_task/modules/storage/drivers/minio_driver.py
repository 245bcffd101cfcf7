"""
MinIO storage driver implementation.
"""

import asyncio
import io
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Set

from minio import Minio
from minio.error import S3Error

from hamro_task.core.logger import get_logger

from ..schemas import SignedUrlResult, UploadResult
from .base import BaseStorageDriver

logger = get_logger(__name__)


class MinIOStorageDriver(BaseStorageDriver):
    """MinIO storage driver; the client is synchronous so calls run in a thread pool."""

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        secure: bool = True,
        region: Optional[str] = None
    ):
        """
        Initialize MinIO storage driver.

        Args:
            endpoint: MinIO server endpoint
            access_key: MinIO access key
            secret_key: MinIO secret key
            secure: Whether to use HTTPS
            region: MinIO region (optional)
        """
        self.endpoint = endpoint
        self.secure = secure
        self.client = Minio(
            endpoint=endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
            region=region
        )
        self._known_buckets: Set[str] = set()

    async def _ensure_bucket_exists(self, bucket: str) -> None:
        if bucket in self._known_buckets:
            return
        loop = asyncio.get_running_loop()
        try:
            exists = await loop.run_in_executor(None, self.client.bucket_exists, bucket)
            if not exists:
                await loop.run_in_executor(None, self.client.make_bucket, bucket)
                logger.info("Created MinIO bucket", bucket=bucket)
        except S3Error as e:
            logger.error("Failed to ensure bucket exists", error=str(e), bucket=bucket)
            raise
        self._known_buckets.add(bucket)

    async def upload(
        self,
        bucket: str,
        file_key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> UploadResult:
        """Upload an object to MinIO."""
        await self._ensure_bucket_exists(bucket)

        object_metadata = {"upload-timestamp": datetime.now(timezone.utc).isoformat()}
        if metadata:
            object_metadata.update(metadata)

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None,
                lambda: self.client.put_object(
                    bucket,
                    file_key,
                    io.BytesIO(data),
                    len(data),
                    content_type=content_type,
                    metadata=object_metadata,
                ),
            )
        except S3Error as e:
            logger.error("Failed to upload file to MinIO", error=str(e), bucket=bucket, file_key=file_key)
            raise

        logger.info("File uploaded to MinIO", bucket=bucket, file_key=file_key, size=len(data))
        return UploadResult(
            bucket=bucket,
            file_key=file_key,
            content_type=content_type,
            size=len(data),
        )

    async def delete(self, bucket: str, file_key: str) -> bool:
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.client.remove_object, bucket, file_key)
            logger.info("File deleted from MinIO", bucket=bucket, file_key=file_key)
            return True
        except S3Error as e:
            logger.error("Failed to delete file from MinIO", error=str(e), file_key=file_key)
            return False

    def public_url(self, bucket: str, file_key: str) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.endpoint}/{bucket}/{file_key}"

    async def signed_url(
        self,
        bucket: str,
        file_key: str,
        expiration: timedelta = timedelta(hours=1)
    ) -> SignedUrlResult:
        """Generate a presigned GET URL."""
        try:
            loop = asyncio.get_running_loop()
            url = await loop.run_in_executor(
                None,
                lambda: self.client.presigned_get_object(bucket, file_key, expires=expiration),
            )
        except S3Error as e:
            logger.error("Failed to generate signed URL", error=str(e), file_key=file_key)
            raise

        return SignedUrlResult(url=url, expires_at=datetime.now(timezone.utc) + expiration)
