"""
Metadata index of stored files, backed by the relational database
"""

import uuid
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from api.files.models import FileRecord
from core.errors import DuplicateFingerprint, IndexUnavailable
from core.logger import logger


class MetadataIndex:
    """
    Write-once store of FileRecord rows keyed by content fingerprint.

    Uniqueness of the fingerprint is enforced by the database constraint,
    so insert() is the single point that decides which of several racing
    ingestions of the same content wins.
    """

    def __init__(self, session: Session):
        self.session = session

    def find_by_fingerprint(self, fingerprint: str) -> FileRecord | None:
        try:
            return self.session.exec(
                select(FileRecord).where(FileRecord.sha256 == fingerprint)
            ).first()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise IndexUnavailable(detail=f"Fingerprint lookup failed: {exc}") from exc

    def find_by_id(self, file_id: str | uuid.UUID) -> FileRecord | None:
        """ Look up a record by id; ids that are not UUIDs match nothing """
        if not isinstance(file_id, uuid.UUID):
            try:
                file_id = uuid.UUID(str(file_id))
            except ValueError:
                return None
        try:
            return self.session.get(FileRecord, file_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise IndexUnavailable(detail=f"Id lookup failed: {exc}") from exc

    def list_all(self) -> list[FileRecord]:
        """ All records, most recently created first """
        try:
            return list(self.session.exec(
                select(FileRecord).order_by(FileRecord.created_at.desc())
            ).all())
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise IndexUnavailable(detail=f"Listing failed: {exc}") from exc

    def insert(self, record: FileRecord) -> FileRecord:
        """
        Insert a new record in its own transaction.

        Args:
            record: Fully populated record

        Returns:
            The persisted record

        Raises:
            DuplicateFingerprint: A row with the same sha256 already exists
            IndexUnavailable: Any other database failure
        """
        try:
            self.session.add(record)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise DuplicateFingerprint(
                detail=f"Fingerprint {record.sha256} already indexed"
            ) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise IndexUnavailable(detail=f"Insert failed: {exc}") from exc
        try:
            self.session.refresh(record)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise IndexUnavailable(detail=f"Reading back {record.sha256} failed: {exc}") from exc
        logger.info("Indexed file %s (sha256=%s)", record.id, record.sha256)
        return record
