"""
Blob storage for file bytes.

Objects are addressed by a locator the store assigns at upload time; the
locator has no relation to the content fingerprint.
"""

import re
import uuid
from abc import ABC, abstractmethod
from typing import BinaryIO
from urllib.parse import quote

from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from sqlmodel import SQLModel

from core.errors import StoreUnavailable
from core.logger import logger

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.\-_]")


def safe_filename(name: str) -> str:
    """ Replace every character unsafe in a download filename with '_' """
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name or "")
    return cleaned or "file"


class BlobHints(SQLModel):
    """Upload hints passed to the store"""

    filename: str
    content_type: str = "application/octet-stream"


class StoredBlob(SQLModel):
    """Result of a successful upload"""

    locator: str
    access_url: str


class BlobStore(ABC):
    """Durable, locator-addressed byte storage"""

    @abstractmethod
    def put(self, stream: BinaryIO, hints: BlobHints) -> StoredBlob:
        """
        Upload a stream as one object.

        Raises:
            StoreUnavailable: The object could not be written
        """

    @abstractmethod
    def build_access_url(self, locator: str, suggested_filename: str) -> str:
        """ Retrieval URL that delivers the object as suggested_filename """


class S3BlobStore(BlobStore):
    """BlobStore over an S3 (or S3-compatible) bucket"""

    def __init__(
        self,
        client,
        bucket: str,
        prefix: str = "uploads",
        public_base_url: str | None = None,
        url_expires_in: int = 3600,
    ):
        self.client = client
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.public_base_url = (
            public_base_url or f"https://{bucket}.s3.amazonaws.com"
        ).rstrip("/")
        self.url_expires_in = url_expires_in

    def _new_key(self, hints: BlobHints) -> str:
        name = f"{uuid.uuid4().hex}_{safe_filename(hints.filename)}"
        return f"{self.prefix}/{name}" if self.prefix else name

    def _object_url(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(key)}"

    def put(self, stream: BinaryIO, hints: BlobHints) -> StoredBlob:
        key = self._new_key(hints)
        try:
            logger.info("Uploading object to s3://%s/%s", self.bucket, key)
            self.client.upload_fileobj(
                stream,
                self.bucket,
                key,
                ExtraArgs={"ContentType": hints.content_type},
            )
        except NoCredentialsError as exc:
            raise StoreUnavailable(detail="AWS credentials not found") from exc
        except ClientError as exc:
            error = exc.response.get("Error", {})
            raise StoreUnavailable(
                detail=f"S3 error {error.get('Code')}: {error.get('Message')}"
            ) from exc
        except BotoCoreError as exc:
            raise StoreUnavailable(detail=f"S3 upload failed: {exc}") from exc

        logger.info("Uploaded object s3://%s/%s", self.bucket, key)
        return StoredBlob(locator=key, access_url=self._object_url(key))

    def build_access_url(self, locator: str, suggested_filename: str) -> str:
        disposition = f'attachment; filename="{safe_filename(suggested_filename)}"'
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={
                    "Bucket": self.bucket,
                    "Key": locator,
                    "ResponseContentDisposition": disposition,
                },
                ExpiresIn=self.url_expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StoreUnavailable(detail=f"Could not sign URL for {locator}: {exc}") from exc
