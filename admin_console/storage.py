"""
Blob storage abstraction for S3-compatible buckets and in-memory testing,
plus the product image upload rules.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

MAX_IMAGES = 5
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
VALID_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")


class StorageError(Exception):
    pass


class InvalidUpload(ValueError):
    pass


class StorageClient(Protocol):
    """Defines the operations the console needs from object storage."""

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        ...

    def delete(self, path: str) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        self.stored_objects[path] = (bytes(data), content_type)
        return f"{self.base_url}/{path}"

    def delete(self, path: str) -> None:
        if path not in self.stored_objects:
            raise FileNotFoundError(path)
        del self.stored_objects[path]


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client. Objects are served from `public_base_url`
    when given, otherwise from the bucket's virtual-hosted endpoint.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def _public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{path}"
        if self.endpoint:
            parsed = urlparse(self.endpoint)
            return f"{parsed.scheme}://{self.bucket}.{parsed.netloc}/{path}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{path}"

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        try:
            self._client.put_object(
                Bucket=self.bucket, Key=path, Body=data, ContentType=content_type
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Upload of {path} failed: {e}") from e
        return self._public_url(path)

    def delete(self, path: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise FileNotFoundError(path) from e
            raise StorageError(f"Delete of {path} failed: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Delete of {path} failed: {e}") from e


def validate_image(data: bytes, content_type: str) -> None:
    if len(data) > MAX_FILE_SIZE:
        raise InvalidUpload("Images must be 10MB or smaller")
    if content_type not in VALID_IMAGE_TYPES:
        raise InvalidUpload("Supported formats: JPEG, PNG, GIF, WebP")


def upload_product_image(
    storage: StorageClient,
    product_id: str,
    filename: str,
    data: bytes,
    content_type: str,
) -> str:
    """Validate and store one product image; returns its URL."""
    validate_image(data, content_type)
    extension = filename.rsplit(".", 1)[-1] if "." in filename else "jpg"
    name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.{extension}"
    path = f"products/{product_id}/{name}"
    return storage.upload(path, data, content_type)


def upload_product_images(
    storage: StorageClient,
    product_id: str,
    files: list[tuple[str, bytes, str]],
    existing_images: Optional[list[str]] = None,
) -> list[str]:
    """Upload (filename, data, content_type) files after the existing image URLs."""
    existing_images = list(existing_images or [])
    if len(existing_images) + len(files) > MAX_IMAGES:
        raise InvalidUpload(f"At most {MAX_IMAGES} images are allowed")
    for _, data, content_type in files:
        validate_image(data, content_type)
    urls = [
        upload_product_image(storage, product_id, filename, data, content_type)
        for filename, data, content_type in files
    ]
    return existing_images + urls


def path_from_url(url_or_path: str) -> str:
    if "://" not in url_or_path:
        return url_or_path
    path = urlparse(url_or_path).path.lstrip("/")
    marker = path.find("products/")
    return path[marker:] if marker >= 0 else path


def delete_product_image(storage: StorageClient, url_or_path: str) -> None:
    """Delete an image by URL or path; an already-missing object is ignored."""
    try:
        storage.delete(path_from_url(url_or_path))
    except FileNotFoundError:
        logger.info("Image already deleted: %s", url_or_path)
