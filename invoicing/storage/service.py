"""S3-compatible logo storage using MinIO.

Business logos are uploaded once per user and referenced from invoice
and email templates through a public URL stored in business settings.

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import io
import json
import logging
import mimetypes
import uuid

from minio import Minio
from minio.error import S3Error
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from invoicing.shared.config import Settings

logger = logging.getLogger(__name__)

LOGO_PREFIX = "logos/"

ALLOWED_LOGO_TYPES = frozenset(
    {"image/png", "image/jpeg", "image/gif", "image/webp", "image/svg+xml"}
)


def logo_read_policy(bucket: str) -> dict:
    """Bucket policy granting anonymous read access to ``logos/*`` only."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"AWS": ["*"]},
                "Action": ["s3:GetObject"],
                "Resource": [f"arn:aws:s3:::{bucket}/{LOGO_PREFIX}*"],
            }
        ],
    }


class StorageResult(BaseModel):
    """Result of storage operation.

    Attributes:
        success: Whether operation succeeded
        object_name: Full object path in storage
        bucket: Bucket name
        url: Public URL of the stored object
        error: Error message if operation failed
        size: Object size in bytes if available
    """

    success: bool
    object_name: str | None = None
    bucket: str | None = None
    url: str | None = None
    error: str | None = None
    size: int | None = None


class StorageService:
    """Logo storage on an S3-compatible MinIO bucket."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._client: Minio | None = None
        self._bucket_exists_cache: set[str] = set()

    def _get_client(self) -> Minio:
        """Get or create MinIO client (lazy initialization).

        Raises:
            ValueError: If storage credentials are not configured
        """
        if self._client is None:
            if not self.settings.storage_access_key:
                raise ValueError(
                    "Storage access key not configured. "
                    "Set APP_STORAGE_ACCESS_KEY environment variable."
                )
            if not self.settings.storage_secret_key:
                raise ValueError(
                    "Storage secret key not configured. "
                    "Set APP_STORAGE_SECRET_KEY environment variable."
                )

            self._client = Minio(
                endpoint=self.settings.storage_endpoint,
                access_key=self.settings.storage_access_key,
                secret_key=self.settings.storage_secret_key,
                secure=self.settings.storage_secure,
            )
            logger.info(f"MinIO client initialized for endpoint: {self.settings.storage_endpoint}")

        return self._client

    def is_available(self) -> bool:
        """True if storage is enabled and credentials are set."""
        if not self.settings.storage_enabled:
            return False
        return bool(self.settings.storage_access_key and self.settings.storage_secret_key)

    def health_check(self) -> bool:
        """Check if storage backend is reachable."""
        if not self.is_available():
            return False

        try:
            self._get_client().list_buckets()
            return True
        except (S3Error, ValueError, OSError) as e:
            logger.warning(f"Storage health check failed: {e}")
            return False

    def _ensure_bucket(self, bucket: str) -> None:
        if bucket in self._bucket_exists_cache:
            return

        client = self._get_client()
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
            logger.info(f"Created bucket: {bucket}")

        # public_url links need anonymous read on the logo prefix.
        client.set_bucket_policy(bucket, json.dumps(logo_read_policy(bucket)))
        self._bucket_exists_cache.add(bucket)

    def public_url(self, object_name: str, bucket: str | None = None) -> str:
        bucket = bucket or self.settings.storage_bucket
        scheme = "https" if self.settings.storage_secure else "http"
        return f"{scheme}://{self.settings.storage_endpoint}/{bucket}/{object_name}"

    @staticmethod
    def logo_object_name(user_id: str, content_type: str) -> str:
        """Object path for a user's logo, e.g. ``logos/<user>/<uuid>.png``."""
        extension = mimetypes.guess_extension(content_type) or ""
        if extension == ".jpe":
            extension = ".jpg"
        return f"{LOGO_PREFIX}{user_id}/{uuid.uuid4().hex}{extension}"

    def validate_logo(self, data: bytes, content_type: str | None) -> str | None:
        """Return an error message when the upload is not an acceptable logo."""
        if not data:
            return "No file uploaded"
        if content_type not in ALLOWED_LOGO_TYPES:
            return "File must be an image (PNG, JPEG, GIF, WebP or SVG)"
        if len(data) > self.settings.logo_max_bytes:
            limit_mb = self.settings.logo_max_bytes / (1024 * 1024)
            return f"File size must be less than {limit_mb:g}MB"
        return None

    @retry(
        retry=retry_if_exception_type(S3Error),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def _put(self, bucket: str, object_name: str, data: bytes, content_type: str) -> None:
        client = self._get_client()
        self._ensure_bucket(bucket)
        client.put_object(
            bucket_name=bucket,
            object_name=object_name,
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )

    def upload_logo(self, user_id: str, data: bytes, content_type: str | None) -> StorageResult:
        """Validate and upload a business logo.

        Args:
            user_id: Owner of the logo
            data: Image bytes
            content_type: MIME type reported by the client

        Returns:
            StorageResult with the public URL or a validation/storage error
        """
        error = self.validate_logo(data, content_type)
        if error:
            return StorageResult(success=False, error=error)

        bucket = self.settings.storage_bucket
        object_name = self.logo_object_name(user_id, content_type or "")

        try:
            self._put(bucket, object_name, data, content_type or "application/octet-stream")
        except S3Error as e:
            logger.error(f"S3 error uploading {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except (ValueError, OSError) as e:
            logger.error(f"Error uploading {object_name}: {e}")
            return StorageResult(
                success=False, object_name=object_name, bucket=bucket, error=str(e)
            )

        logger.info(f"Uploaded logo {object_name} to {bucket} ({len(data)} bytes)")
        return StorageResult(
            success=True,
            object_name=object_name,
            bucket=bucket,
            url=self.public_url(object_name, bucket),
            size=len(data),
        )

    def delete_object(self, object_name: str, bucket: str | None = None) -> StorageResult:
        bucket = bucket or self.settings.storage_bucket

        try:
            self._get_client().remove_object(bucket_name=bucket, object_name=object_name)
        except S3Error as e:
            logger.error(f"S3 error deleting {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except ValueError as e:
            return StorageResult(
                success=False, object_name=object_name, bucket=bucket, error=str(e)
            )

        logger.info(f"Deleted {object_name} from {bucket}")
        return StorageResult(success=True, object_name=object_name, bucket=bucket)

    def object_name_from_url(self, url: str) -> str | None:
        """Recover the object name from a URL produced by ``public_url``."""
        prefix = self.public_url("", self.settings.storage_bucket)
        if url.startswith(prefix):
            return url[len(prefix) :]
        return None
