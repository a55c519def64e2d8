from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import StorageError
from .logging import get_logger


@dataclass(slots=True)
class PresignedURL:
    url: str
    method: str = "GET"
    expires_s: int = 3600


class Storage(ABC):
    """Durable object storage addressed by slash-separated keys."""

    @abstractmethod
    def exists(self, key: str) -> bool: ...

    @abstractmethod
    def read_bytes(self, key: str) -> bytes:
        """Return the object at ``key``; a missing object raises ``StorageError`` on every backend."""

    @abstractmethod
    def put_file(self, key: str, source: Path, *, content_type: str | None) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def presign_get(self, key: str, *, expires_s: int = 3600) -> PresignedURL: ...


class LocalStorage(Storage):
    """Filesystem-backed storage suitable for development and tests."""

    def __init__(self, base_path: Path):
        self.base_path = base_path.resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if not path.is_relative_to(self.base_path):
            raise StorageError(f"Key escapes the storage root: {key}")
        return path

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def read_bytes(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read object {key}: {exc}") from exc

    def put_file(self, key: str, source: Path, *, content_type: str | None) -> None:
        target = self._resolve(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with source.open("rb") as src, target.open("wb") as dst:
                while chunk := src.read(1024 * 1024):
                    dst.write(chunk)
        except OSError as exc:
            target.unlink(missing_ok=True)
            raise StorageError(f"Failed to store object {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._resolve(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete object {key}: {exc}") from exc

    def presign_get(self, key: str, *, expires_s: int = 3600) -> PresignedURL:
        # Local objects are served straight from disk; the URI carries no signature.
        return PresignedURL(url=self._resolve(key).as_uri(), method="GET", expires_s=expires_s)


class S3Storage(Storage):
    """S3 (or S3-compatible) storage backed by a boto3 client."""

    def __init__(self, bucket: str, client: Any):
        self.bucket = bucket
        self.client = client
        self.logger = get_logger(component="s3_storage", bucket=bucket)

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3Storage":
        if not settings.s3_bucket:
            raise ValueError("REELHOUSE_S3_BUCKET is required for the s3 storage backend")

        client_config: dict[str, Any] = {}
        if settings.s3_region:
            client_config["region_name"] = settings.s3_region
        if settings.s3_endpoint_url:
            client_config["endpoint_url"] = settings.s3_endpoint_url
        # Without explicit keys boto3 falls back to its default credential chain.
        if settings.s3_access_key_id and settings.s3_secret_access_key:
            client_config["aws_access_key_id"] = settings.s3_access_key_id
            client_config["aws_secret_access_key"] = settings.s3_secret_access_key

        return cls(settings.s3_bucket, boto3.client("s3", **client_config))

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise StorageError(f"Failed to stat object {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to stat object {key}: {exc}") from exc
        return True

    def read_bytes(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to read object {key}: {exc}") from exc

    def put_file(self, key: str, source: Path, *, content_type: str | None) -> None:
        extra: dict[str, Any] = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            with source.open("rb") as handle:
                self.client.put_object(Bucket=self.bucket, Key=key, Body=handle, **extra)
        except (BotoCoreError, ClientError) as exc:
            self.logger.error("s3_put_failed", key=key, error=str(exc))
            raise StorageError(f"Failed to upload object {key}: {exc}") from exc
        self.logger.info("s3_put_succeeded", key=key)

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to delete object {key}: {exc}") from exc

    def presign_get(self, key: str, *, expires_s: int = 3600) -> PresignedURL:
        try:
            url = self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_s,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to sign object {key}: {exc}") from exc
        return PresignedURL(url=url, method="GET", expires_s=expires_s)


def get_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "local":
        return LocalStorage(base_path=settings.object_storage_path)
    if settings.storage_backend == "s3":
        return S3Storage.from_settings(settings)
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "LocalStorage",
    "S3Storage",
    "PresignedURL",
    "get_storage",
]
