"""
Transient staging of inbound uploads.

A staged upload holds one request's bytes in a spooled temporary file
(memory first, local scratch disk past the spool threshold) until the
ingestion attempt decides to discard or store them. Bytes are pushed in
chunk by chunk as the request body is parsed, and the digest is
accumulated on the way in.
"""

from tempfile import SpooledTemporaryFile
from typing import BinaryIO

from api.files.fingerprint import Fingerprinter
from core.errors import PayloadTooLarge
from core.logger import logger

DEFAULT_SPOOL_BYTES = 1024 * 1024


class StagedUpload:
    """Handle to one staged payload, owned by a single ingestion attempt"""

    def __init__(self, spool: SpooledTemporaryFile, size: int, fingerprint: str):
        self._spool = spool
        self.size = size
        self.fingerprint = fingerprint
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def open(self) -> BinaryIO:
        """
        Return the staged bytes rewound to the start.
        May be called repeatedly until release().
        """
        if self._released:
            raise RuntimeError("Staged upload has already been released")
        self._spool.seek(0)
        return self._spool

    def release(self) -> None:
        """ Delete the transient copy; safe to call more than once """
        if self._released:
            return
        self._released = True
        self._spool.close()
        logger.debug("Released staged upload (%d bytes)", self.size)

    def __enter__(self) -> "StagedUpload":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class StagingWriter:
    """
    Receives one upload chunk by chunk.

    write() refuses a chunk that would take the payload past the size
    limit and discards everything written so far, so no more than
    size_limit bytes are ever held for one attempt.
    """

    def __init__(self, spool: SpooledTemporaryFile, size_limit: int):
        self._spool = spool
        self._size_limit = size_limit
        self._fingerprinter = Fingerprinter()
        self._finished = False

    @property
    def bytes_written(self) -> int:
        return self._fingerprinter.bytes_seen

    @property
    def closed(self) -> bool:
        """ True once the bytes are gone, by abort() or by releasing the staged upload """
        return self._spool.closed

    def write(self, chunk: bytes) -> None:
        """
        Append a chunk to the staged copy.

        Raises:
            PayloadTooLarge: The chunk would exceed the size limit
        """
        if self._finished or self.closed:
            raise RuntimeError("Staging writer is no longer accepting data")
        if self.bytes_written + len(chunk) > self._size_limit:
            self.abort()
            raise PayloadTooLarge(detail=f"Upload exceeded {self._size_limit} bytes")
        self._fingerprinter.update(chunk)
        self._spool.write(chunk)

    def finish(self) -> StagedUpload:
        """ Hand the staged bytes over to a StagedUpload """
        if self._finished or self.closed:
            raise RuntimeError("Staging writer is no longer accepting data")
        self._finished = True
        logger.debug("Staged %d bytes", self.bytes_written)
        return StagedUpload(self._spool, self.bytes_written, self._fingerprinter.hexdigest())

    def abort(self) -> None:
        """ Discard the partial copy; safe to call more than once """
        if not self.closed:
            logger.debug("Discarded partial upload (%d bytes)", self.bytes_written)
        self._spool.close()


class StagingArea:
    """Hands out bounded transient storage, one writer per upload"""

    def __init__(
        self,
        size_limit: int,
        spool_bytes: int = DEFAULT_SPOOL_BYTES,
        directory: str | None = None,
    ):
        if size_limit <= 0:
            raise ValueError("size_limit must be positive")
        self.size_limit = size_limit
        self.spool_bytes = spool_bytes
        self.directory = directory

    def stage(self) -> StagingWriter:
        """
        Start staging one upload.

        Returns:
            StagingWriter bounded by size_limit; finish() yields the
            StagedUpload with size and fingerprint populated
        """
        spool = SpooledTemporaryFile(max_size=self.spool_bytes, dir=self.directory)
        return StagingWriter(spool, self.size_limit)
