"""
Define functions/aliases for dependency injection
"""
from collections.abc import AsyncGenerator, Generator
from typing import Annotated, TypeAlias
from sqlmodel import Session
from fastapi import Depends, Request

from api.files.blobstore import BlobStore, S3BlobStore
from api.files.index import MetadataIndex
from api.files.receiver import InboundUpload, receive_upload
from api.files.staging import StagingArea
from core.config import get_settings
from core.db import get_engine


# Define db dependency
def get_db() -> Generator[Session, None, None]:
    with Session(get_engine()) as session:
        yield session


def get_s3_client():
    from core.s3 import get_s3_client as _get_client  # pylint: disable=import-outside-toplevel
    return _get_client()


SessionDep: TypeAlias = Annotated[Session, Depends(get_db)]


def get_metadata_index(session: SessionDep) -> MetadataIndex:
    return MetadataIndex(session)


def get_blob_store(s3_client=Depends(get_s3_client)) -> BlobStore:
    settings = get_settings()
    return S3BlobStore(
        s3_client,
        bucket=settings.S3_BUCKET,
        prefix=settings.S3_PREFIX,
        public_base_url=settings.S3_PUBLIC_BASE_URL,
        url_expires_in=settings.DOWNLOAD_URL_EXPIRES_SECONDS,
    )


def get_staging_area() -> StagingArea:
    settings = get_settings()
    return StagingArea(
        size_limit=settings.MAX_UPLOAD_BYTES,
        spool_bytes=settings.STAGING_SPOOL_BYTES,
        directory=settings.STAGING_DIR,
    )


MetadataIndexDep: TypeAlias = Annotated[MetadataIndex, Depends(get_metadata_index)]
BlobStoreDep: TypeAlias = Annotated[BlobStore, Depends(get_blob_store)]
StagingAreaDep: TypeAlias = Annotated[StagingArea, Depends(get_staging_area)]


async def get_inbound_upload(
    request: Request, staging: StagingAreaDep
) -> AsyncGenerator[InboundUpload, None]:
    """ Stage the request's file part; the staged copy never outlives the request """
    upload = await receive_upload(request, staging)
    try:
        yield upload
    finally:
        upload.staged.release()


InboundUploadDep: TypeAlias = Annotated[InboundUpload, Depends(get_inbound_upload)]
