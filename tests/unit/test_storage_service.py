"""Unit tests for StorageService (MinIO/S3-compatible logo storage).

Tests storage operations with mocked MinIO client.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from minio.error import S3Error

from invoicing.shared.config import Settings
from invoicing.storage.service import StorageService

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def storage_settings() -> Settings:
    """Create test settings with storage enabled."""
    return Settings(
        _env_file=None,
        storage_enabled=True,
        storage_endpoint="localhost:9000",
        storage_access_key="test-access-key",
        storage_secret_key="test-secret-key",
        storage_bucket="logos",
        storage_secure=False,
    )


@pytest.fixture
def mock_minio_client() -> MagicMock:
    """Create mock MinIO client."""
    mock = MagicMock()
    mock.bucket_exists.return_value = True
    mock.list_buckets.return_value = []
    return mock


def s3_error(code: str = "NoSuchKey") -> S3Error:
    return S3Error(
        code=code,
        message="Object not found",
        resource="/logos/x",
        request_id="12345",
        host_id="host",
        response=MagicMock(status=404, data=b""),
    )


class TestStorageServiceAvailability:
    def test_is_available_when_enabled_and_configured(self, storage_settings: Settings) -> None:
        assert StorageService(storage_settings).is_available() is True

    def test_is_not_available_when_disabled(self) -> None:
        assert StorageService(Settings(_env_file=None)).is_available() is False

    def test_is_not_available_without_secret_key(self) -> None:
        settings = Settings(
            _env_file=None,
            storage_enabled=True,
            storage_access_key="access",
            storage_secret_key="",
        )
        assert StorageService(settings).is_available() is False

    def test_client_requires_credentials(self) -> None:
        service = StorageService(Settings(_env_file=None, storage_enabled=True))

        with pytest.raises(ValueError, match="APP_STORAGE_ACCESS_KEY"):
            service._get_client()


class TestStorageServiceHealthCheck:
    def test_health_check_success(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            assert service.health_check() is True

        mock_minio_client.list_buckets.assert_called_once()

    def test_health_check_failure(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        mock_minio_client.list_buckets.side_effect = OSError("Connection refused")
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            assert service.health_check() is False

    def test_health_check_when_disabled(self) -> None:
        assert StorageService(Settings(_env_file=None)).health_check() is False


class TestValidateLogo:
    def test_accepts_png(self, storage_settings: Settings) -> None:
        assert StorageService(storage_settings).validate_logo(PNG, "image/png") is None

    def test_rejects_empty(self, storage_settings: Settings) -> None:
        error = StorageService(storage_settings).validate_logo(b"", "image/png")
        assert error == "No file uploaded"

    def test_rejects_non_image(self, storage_settings: Settings) -> None:
        error = StorageService(storage_settings).validate_logo(b"%PDF", "application/pdf")
        assert error is not None and error.startswith("File must be an image")

    def test_rejects_large_file(self, storage_settings: Settings) -> None:
        data = b"\x00" * (storage_settings.logo_max_bytes + 1)

        error = StorageService(storage_settings).validate_logo(data, "image/png")

        assert error == "File size must be less than 2MB"


class TestUploadLogo:
    def test_upload_success(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            result = service.upload_logo("user-1", PNG, "image/png")

        assert result.success is True
        assert result.bucket == "logos"
        assert result.object_name is not None
        assert result.object_name.startswith("logos/user-1/")
        assert result.object_name.endswith(".png")
        assert result.url == f"http://localhost:9000/logos/{result.object_name}"
        assert result.size == len(PNG)
        kwargs = mock_minio_client.put_object.call_args.kwargs
        assert kwargs["content_type"] == "image/png"
        assert kwargs["length"] == len(PNG)

    def test_upload_creates_bucket_if_missing(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        mock_minio_client.bucket_exists.return_value = False
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            result = service.upload_logo("user-1", PNG, "image/png")

        assert result.success is True
        mock_minio_client.make_bucket.assert_called_once_with("logos")

    def test_bucket_allows_anonymous_logo_reads(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            service.upload_logo("user-1", PNG, "image/png")
            service.upload_logo("user-1", PNG, "image/png")

        mock_minio_client.set_bucket_policy.assert_called_once()
        bucket, policy = mock_minio_client.set_bucket_policy.call_args.args
        assert bucket == "logos"
        statement = json.loads(policy)["Statement"][0]
        assert statement["Action"] == ["s3:GetObject"]
        assert statement["Principal"] == {"AWS": ["*"]}
        assert statement["Resource"] == ["arn:aws:s3:::logos/logos/*"]

    def test_invalid_logo_not_uploaded(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            result = service.upload_logo("user-1", b"text", "text/plain")

        assert result.success is False
        mock_minio_client.put_object.assert_not_called()

    @patch("tenacity.nap.time.sleep")
    def test_upload_s3_error_after_retries(
        self, _sleep: MagicMock, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        mock_minio_client.put_object.side_effect = s3_error("NoSuchBucket")
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            result = service.upload_logo("user-1", PNG, "image/png")

        assert result.success is False
        assert "S3 error" in str(result.error)
        assert mock_minio_client.put_object.call_count == 3


class TestDeleteObject:
    def test_delete_object_success(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            result = service.delete_object("logos/user-1/old.png")

        assert result.success is True
        mock_minio_client.remove_object.assert_called_once_with(
            bucket_name="logos", object_name="logos/user-1/old.png"
        )

    def test_delete_object_s3_error(
        self, storage_settings: Settings, mock_minio_client: MagicMock
    ) -> None:
        mock_minio_client.remove_object.side_effect = s3_error()
        service = StorageService(storage_settings)

        with patch.object(service, "_get_client", return_value=mock_minio_client):
            result = service.delete_object("logos/user-1/old.png")

        assert result.success is False


class TestObjectNames:
    def test_object_name_from_own_url(self, storage_settings: Settings) -> None:
        service = StorageService(storage_settings)
        url = service.public_url("logos/user-1/a.png")

        assert service.object_name_from_url(url) == "logos/user-1/a.png"

    def test_foreign_url_ignored(self, storage_settings: Settings) -> None:
        service = StorageService(storage_settings)
        assert service.object_name_from_url("https://cdn.example.com/logo.png") is None

    def test_jpeg_extension(self) -> None:
        assert StorageService.logo_object_name("u1", "image/jpeg").endswith(".jpg")
