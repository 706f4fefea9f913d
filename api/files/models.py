"""
Models for the Files API
"""

import uuid
from datetime import datetime, timezone
from typing import List
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import BigInteger, Column, Index
from sqlmodel import SQLModel, Field, UniqueConstraint


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Database Tables
# ============================================================================


class FileRecord(SQLModel, table=True):
    """
    One row per unique file content.

    The sha256 column is the identity of the content; the unique
    constraint on it is what arbitrates concurrent uploads of the
    same bytes. Rows are write-once.
    """
    __tablename__ = "files"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    original_name: str = Field(nullable=False)
    storage_locator: str = Field(max_length=1024, nullable=False)  # Blob store key
    access_url: str = Field(max_length=2048, nullable=False)
    mime_type: str = Field(max_length=255, nullable=False)
    byte_size: int = Field(sa_column=Column(BigInteger, nullable=False))
    sha256: str = Field(max_length=64, nullable=False)
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("sha256", name="uq_files_sha256"),
        Index("ix_files_created_at", "created_at"),
    )


# ============================================================================
# Request/Response Models
# ============================================================================


class CamelModel(BaseModel):
    """Serializes snake_case fields under camelCase names"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FilePublic(CamelModel):
    """Public file representation"""

    id: uuid.UUID
    original_name: str
    mime_type: str
    byte_size: int
    sha256: str
    created_at: datetime
    public_id: str
    url: str

    @classmethod
    def from_record(cls, record: FileRecord) -> "FilePublic":
        return cls(
            id=record.id,
            original_name=record.original_name,
            mime_type=record.mime_type,
            byte_size=record.byte_size,
            sha256=record.sha256,
            created_at=record.created_at,
            public_id=record.storage_locator,
            url=record.access_url,
        )


class FileUploadResponse(CamelModel):
    """Response model for file upload"""

    status: int
    duplicate: bool
    file: FilePublic


class FileMetadataResponse(CamelModel):
    status: int
    file: FilePublic


class FilesPublic(CamelModel):
    """File listing, newest first"""

    status: int
    files: List[FilePublic]


class ErrorResponse(BaseModel):
    status: int
    error: str
