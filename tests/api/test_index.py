"""
Test the metadata index
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from api.files.index import MetadataIndex
from api.files.models import FileRecord
from core.errors import DuplicateFingerprint, IndexUnavailable


def make_record(content: bytes, name: str = "a.txt", **overrides) -> FileRecord:
    fields = {
        "original_name": name,
        "storage_locator": f"uploads/{uuid.uuid4().hex}_{name}",
        "access_url": f"https://test-bucket.s3.amazonaws.com/uploads/{name}",
        "mime_type": "text/plain",
        "byte_size": len(content),
        "sha256": hashlib.sha256(content).hexdigest(),
    }
    fields.update(overrides)
    return FileRecord(**fields)


class TestMetadataIndex:
    """Lookup, insert and uniqueness of file records"""

    def test_insert_and_find(self, index: MetadataIndex):
        record = index.insert(make_record(b"one"))

        assert index.find_by_fingerprint(record.sha256).id == record.id
        assert index.find_by_id(record.id).sha256 == record.sha256
        assert index.find_by_id(str(record.id)).id == record.id
        assert record.created_at is not None

    def test_find_missing(self, index: MetadataIndex):
        assert index.find_by_fingerprint(hashlib.sha256(b"nothing").hexdigest()) is None
        assert index.find_by_id(uuid.uuid4()) is None

    def test_find_by_malformed_id(self, index: MetadataIndex):
        assert index.find_by_id("does-not-exist") is None

    def test_duplicate_fingerprint_is_rejected(self, index: MetadataIndex):
        first = index.insert(make_record(b"same", name="first.txt"))

        with pytest.raises(DuplicateFingerprint):
            index.insert(make_record(b"same", name="second.txt"))

        # The failed insert left nothing behind and the session is usable
        records = index.list_all()
        assert len(records) == 1
        assert records[0].id == first.id
        assert records[0].original_name == "first.txt"

    def test_list_newest_first(self, index: MetadataIndex):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for offset, content in enumerate([b"old", b"middle", b"new"]):
            index.insert(make_record(content, created_at=base + timedelta(minutes=offset)))

        names = [hashlib.sha256(c).hexdigest() for c in (b"new", b"middle", b"old")]
        assert [r.sha256 for r in index.list_all()] == names

    def test_list_empty(self, index: MetadataIndex):
        assert index.list_all() == []

    def test_database_failure_is_index_unavailable(self, index: MetadataIndex, monkeypatch):
        def broken_exec(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(index.session, "exec", broken_exec)
        with pytest.raises(IndexUnavailable):
            index.find_by_fingerprint("abc")
        with pytest.raises(IndexUnavailable):
            index.list_all()

    def test_read_back_failure_is_index_unavailable(self, index: MetadataIndex, monkeypatch):
        def broken_refresh(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection reset"))

        monkeypatch.setattr(index.session, "refresh", broken_refresh)
        with pytest.raises(IndexUnavailable):
            index.insert(make_record(b"committed"))
