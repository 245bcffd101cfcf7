"""
Storage service layer.

Validates uploads before they reach object storage and knows which bucket
each kind of image belongs to.
"""

from datetime import timedelta
from typing import Optional
from uuid import UUID, uuid4

from hamro_task.core.config import get_settings
from hamro_task.core.exceptions import ValidationException
from hamro_task.core.logger import get_logger
from hamro_task.core.metrics import record_storage_upload

from .drivers import BaseStorageDriver, MinIOStorageDriver
from .schemas import SignedUrlResult, UploadResult

logger = get_logger(__name__)
settings = get_settings()

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def validate_image(content_type: Optional[str], size: int, max_size: int) -> str:
    """
    Check an uploaded image before it is stored.

    Args:
        content_type: Declared MIME type
        size: Size in bytes
        max_size: Largest accepted size in bytes

    Returns:
        The file extension to store the object under

    Raises:
        ValidationException: For an unsupported type, an empty file or an
            oversized file
    """
    if content_type not in settings.allowed_image_types:
        raise ValidationException(
            "Unsupported file type",
            details={"content_type": content_type, "allowed": settings.allowed_image_types},
        )
    if size <= 0:
        raise ValidationException("File is empty")
    if size > max_size:
        raise ValidationException(
            f"File is larger than {max_size // (1024 * 1024)}MB",
            details={"size": size, "max_size": max_size},
        )
    return EXTENSIONS.get(content_type, "bin")


class StorageService:
    """Uploads for avatars and payment screenshots."""

    def __init__(self, driver: BaseStorageDriver):
        self.driver = driver

    async def upload_avatar(self, user_id: UUID, data: bytes, content_type: str) -> UploadResult:
        """
        Store a new avatar and return it with its public URL.

        Raises:
            ValidationException: If the image is not acceptable
        """
        extension = validate_image(content_type, len(data), settings.avatar_max_size)
        file_key = f"{user_id}/{uuid4()}.{extension}"
        result = await self._upload(settings.avatar_bucket, file_key, data, content_type)
        result.url = self.driver.public_url(settings.avatar_bucket, file_key)
        return result

    async def upload_payment_screenshot(
        self, workspace_id: UUID, data: bytes, content_type: str
    ) -> UploadResult:
        """
        Store a payment proof in the private bucket.

        Raises:
            ValidationException: If the image is not acceptable
        """
        extension = validate_image(content_type, len(data), settings.payment_screenshot_max_size)
        file_key = f"{workspace_id}/{uuid4()}.{extension}"
        return await self._upload(settings.payment_bucket, file_key, data, content_type)

    async def payment_screenshot_url(self, file_key: str) -> SignedUrlResult:
        return await self.driver.signed_url(
            settings.payment_bucket,
            file_key,
            expiration=timedelta(minutes=settings.signed_url_expire_minutes),
        )

    async def _upload(self, bucket: str, file_key: str, data: bytes, content_type: str) -> UploadResult:
        try:
            result = await self.driver.upload(bucket, file_key, data, content_type)
        except Exception:
            record_storage_upload(bucket, success=False)
            raise
        record_storage_upload(bucket)
        return result


def get_storage_driver() -> BaseStorageDriver:
    return MinIOStorageDriver(
        endpoint=settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        secure=settings.minio_secure,
        region=settings.minio_region,
    )


def get_storage_service() -> StorageService:
    """FastAPI dependency; overridden in tests."""
    return StorageService(get_storage_driver())
