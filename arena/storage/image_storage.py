"""Image storage collaborator: object storage or local disk.

Contract:
    `put(data, key, content_type) -> public URL`. Writing the same key twice
    overwrites the same object, so callers may retry safely. The returned URL
    is stable for the lifetime of the object.

Backends:
    - `SpacesImageStorage`: DigitalOcean Spaces through the S3 API (`boto3`),
      uploaded with a public-read ACL.
    - `LocalImageStorage`: files under a directory, served by the API under a
      base URL. Intended for development.
"""

import logging
import os
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from arena import config
from arena.core.errors import StoreError


logger = logging.getLogger(__name__)


class ImageStorage(Protocol):
    def put(self, data: bytes, key: str, content_type: str = "image/png") -> str:
        ...


class SpacesImageStorage:
    """Upload images to a Spaces bucket and return their public URL."""

    def __init__(
        self,
        bucket: str,
        endpoint: str,
        access_key: str,
        secret_key: str,
        client=None,
    ):
        if not (bucket and endpoint and access_key and secret_key):
            raise ValueError(
                "missing DO Spaces configuration (DO_SPACES_BUCKET, DO_SPACES_ENDPOINT, "
                "DO_SPACES_ACCESS_KEY, DO_SPACES_SECRET_KEY)"
            )
        self.bucket = bucket
        self.endpoint = endpoint
        self.client = client or self._build_client(access_key, secret_key)

    def _build_client(self, access_key: str, secret_key: str):
        # Spaces endpoints are "<region>.digitaloceanspaces.com".
        region = self.endpoint.split(".", 1)[0]
        session = boto3.session.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )
        return session.client("s3", endpoint_url=f"https://{self.endpoint}")

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.{self.endpoint}/{key}"

    def put(self, data: bytes, key: str, content_type: str = "image/png") -> str:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ACL="public-read",
            )
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"failed to upload to DO Spaces: {exc}") from exc

        logger.debug("Uploaded %s (%d bytes)", key, len(data))
        return self.public_url(key)


class LocalImageStorage:
    """Write images below `directory`; URLs are `base_url` + relative path."""

    def __init__(self, directory: str, base_url: str = "/images"):
        self.directory = directory
        self.base_url = base_url.rstrip("/")

    def _relative(self, key: str) -> str:
        return key[len("images/"):] if key.startswith("images/") else key

    def put(self, data: bytes, key: str, content_type: str = "image/png") -> str:
        relative = self._relative(key)
        path = os.path.join(self.directory, *relative.split("/"))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        return f"{self.base_url}/{relative}"


def build_image_storage() -> ImageStorage:
    """Build the configured storage backend (`USE_DO_SPACES` selects Spaces)."""
    if config.USE_DO_SPACES:
        return SpacesImageStorage(
            bucket=config.SPACES_BUCKET,
            endpoint=config.SPACES_ENDPOINT,
            access_key=config.SPACES_ACCESS_KEY,
            secret_key=config.SPACES_SECRET_KEY,
        )
    logger.info("Using local image storage at %s", config.IMAGES_DIR)
    return LocalImageStorage(config.IMAGES_DIR, config.IMAGES_BASE_URL)
