"""
Services for the Files API

ingest_upload() is the ingestion pipeline:

    STAGING -> FINGERPRINTING -> CHECKING -> DUPLICATE_FOUND
                                          -> UPLOADING -> INSERTING -> DONE

STAGING is carried out by the request receiver, which hands over a
StagedUpload; FAILED is reachable from every state. Bytes are uploaded
only after the index has reported the fingerprint as unknown, and a row
is inserted only after the upload succeeded, so a record never points at
missing bytes. Concurrent ingestions of the same content are settled by
the index's uniqueness constraint; the loser adopts the winner's record.
"""

import mimetypes
from dataclasses import dataclass
from enum import Enum

from api.files.blobstore import BlobHints, BlobStore
from api.files.index import MetadataIndex
from api.files.models import FileRecord
from api.files.staging import StagedUpload
from core.errors import DuplicateFingerprint, IndexUnavailable, NotFound, ServiceError
from core.logger import logger

DEFAULT_MIME_TYPE = "application/octet-stream"


class IngestionState(str, Enum):
    """Stages of one ingestion attempt"""

    STAGING = "staging"
    FINGERPRINTING = "fingerprinting"
    CHECKING = "checking"
    DUPLICATE_FOUND = "duplicate_found"
    UPLOADING = "uploading"
    INSERTING = "inserting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class IngestResult:
    record: FileRecord
    duplicate: bool


def resolve_mime_type(filename: str, declared: str | None) -> str:
    """ Declared type if given, else guessed from the filename """
    if declared:
        return declared
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or DEFAULT_MIME_TYPE


def ingest_upload(
    staged: StagedUpload,
    filename: str,
    content_type: str | None,
    *,
    index: MetadataIndex,
    blob_store: BlobStore,
) -> IngestResult:
    """
    Store a staged upload unless identical content is already indexed.

    The staged copy is released before returning, on every path.

    Args:
        staged: Upload already accepted by the staging area
        filename: Client supplied name, recorded on first upload only
        content_type: Client declared MIME type, if any
        index: Metadata index
        blob_store: Blob store for new content

    Returns:
        IngestResult with the new or existing record

    Raises:
        StoreUnavailable: Upload failed; index unchanged
        IndexUnavailable: Index lookup or insert failed
    """
    state = IngestionState.STAGING
    with staged:
        try:
            state = _advance(state, IngestionState.FINGERPRINTING)
            fingerprint = staged.fingerprint

            state = _advance(state, IngestionState.CHECKING)
            existing = index.find_by_fingerprint(fingerprint)
            if existing is not None:
                state = _advance(state, IngestionState.DUPLICATE_FOUND)
                logger.info("Duplicate upload of %s matched file %s", filename, existing.id)
                return IngestResult(record=existing, duplicate=True)

            state = _advance(state, IngestionState.UPLOADING)
            mime_type = resolve_mime_type(filename, content_type)
            blob = blob_store.put(
                staged.open(),
                BlobHints(filename=filename, content_type=mime_type),
            )

            state = _advance(state, IngestionState.INSERTING)
            record = FileRecord(
                original_name=filename,
                storage_locator=blob.locator,
                access_url=blob.access_url,
                mime_type=mime_type,
                byte_size=staged.size,
                sha256=fingerprint,
            )
            try:
                record = index.insert(record)
            except DuplicateFingerprint:
                winner = index.find_by_fingerprint(fingerprint)
                if winner is None:
                    raise IndexUnavailable(
                        detail=f"Insert of {fingerprint} conflicted but no row is visible"
                    )
                # The object just written has no row; left for operators to reconcile
                logger.warning(
                    "Lost insert race for %s to file %s; orphaned object %s",
                    fingerprint, winner.id, blob.locator,
                )
                state = _advance(state, IngestionState.DUPLICATE_FOUND)
                return IngestResult(record=winner, duplicate=True)

            state = _advance(state, IngestionState.DONE)
            return IngestResult(record=record, duplicate=False)
        except ServiceError as exc:
            logger.warning("Ingestion of %r failed in %s: %s", filename, state.value, exc.kind.value)
            _advance(state, IngestionState.FAILED)
            raise


def _advance(current: IngestionState, target: IngestionState) -> IngestionState:
    logger.debug("Ingestion %s -> %s", current.value, target.value)
    return target


def list_files(index: MetadataIndex) -> list[FileRecord]:
    """ Get all files, newest first """
    return index.list_all()


def get_file(index: MetadataIndex, file_id: str) -> FileRecord:
    """ Get a file record or raise NotFound """
    record = index.find_by_id(file_id)
    if record is None:
        raise NotFound(detail=f"No file with id {file_id}")
    return record


def get_download_url(index: MetadataIndex, blob_store: BlobStore, file_id: str) -> str:
    """ Signed URL that downloads the file under its original name """
    record = get_file(index, file_id)
    return blob_store.build_access_url(record.storage_locator, record.original_name)
