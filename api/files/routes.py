"""
Routes/endpoints for the Files API

HTTP   URI                          Action
----   ---                          ------
POST   /files/upload                Upload a file (deduplicated by content)
GET    /files                       List files, newest first
GET    /files/[id]/metadata         Retrieve metadata of a file
GET    /files/[id]/download         Redirect to a download URL for a file
"""

from fastapi import APIRouter, Response, status
from fastapi.responses import RedirectResponse

from api.files.models import (
    ErrorResponse,
    FileMetadataResponse,
    FilePublic,
    FilesPublic,
    FileUploadResponse,
)
from api.files import services
from core.deps import BlobStoreDep, InboundUploadDep, MetadataIndexDep

router = APIRouter(prefix="/files", tags=["File Endpoints"])


@router.post(
    "/upload",
    response_model=FileUploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"model": FileUploadResponse, "description": "Content already stored"},
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {
                "multipart/form-data": {
                    "schema": {
                        "type": "object",
                        "properties": {"file": {"type": "string", "format": "binary"}},
                        "required": ["file"],
                    }
                }
            },
        }
    },
)
def upload_file(
    response: Response,
    upload: InboundUploadDep,
    index: MetadataIndexDep,
    blob_store: BlobStoreDep,
) -> FileUploadResponse:
    """
    Upload a file in the multipart field `file`.

    The body is staged while it streams in and rejected as soon as it
    passes the size limit. Content that is already stored is not uploaded
    again; the existing record is returned with duplicate=true and status 200.
    """
    result = services.ingest_upload(
        upload.staged,
        upload.filename,
        upload.content_type,
        index=index,
        blob_store=blob_store,
    )

    status_code = status.HTTP_200_OK if result.duplicate else status.HTTP_201_CREATED
    response.status_code = status_code
    return FileUploadResponse(
        status=status_code,
        duplicate=result.duplicate,
        file=FilePublic.from_record(result.record),
    )


@router.get("", response_model=FilesPublic)
def list_files(index: MetadataIndexDep) -> FilesPublic:
    """
    Retrieve all files, most recently uploaded first.
    """
    records = services.list_files(index)
    return FilesPublic(
        status=status.HTTP_200_OK,
        files=[FilePublic.from_record(record) for record in records],
    )


@router.get(
    "/{file_id}/metadata",
    response_model=FileMetadataResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_file_metadata(file_id: str, index: MetadataIndexDep) -> FileMetadataResponse:
    """
    Retrieve metadata for a specific file.
    """
    record = services.get_file(index, file_id)
    return FileMetadataResponse(
        status=status.HTTP_200_OK,
        file=FilePublic.from_record(record),
    )


@router.get(
    "/{file_id}/download",
    status_code=status.HTTP_302_FOUND,
    response_class=RedirectResponse,
    responses={404: {"model": ErrorResponse}},
)
def download_file(
    file_id: str,
    index: MetadataIndexDep,
    blob_store: BlobStoreDep,
) -> RedirectResponse:
    """
    Redirect to a store URL that downloads the file under its original name.
    """
    url = services.get_download_url(index, blob_store, file_id)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)
