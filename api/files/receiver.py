"""
Streaming intake of multipart upload requests.

The request body is parsed as it arrives and the bytes of the `file` part
go straight into a staging writer. The framework never spools the body on
its own, so an oversize upload is rejected once the staging limit is
crossed instead of after the whole body has been received.
"""

from dataclasses import dataclass

from fastapi import Request
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.concurrency import run_in_threadpool
from starlette.requests import ClientDisconnect

from api.files.staging import StagedUpload, StagingArea, StagingWriter
from core.errors import MissingUpload, PayloadTooLarge, UploadCancelled
from core.logger import logger

FILE_FIELD = "file"
# Room for boundaries, part headers and small form fields around the file
ENVELOPE_ALLOWANCE = 64 * 1024


@dataclass
class InboundUpload:
    staged: StagedUpload
    filename: str
    content_type: str | None


def _decode(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return value.decode("latin-1")


class FilePartCollector:
    """
    Multipart parser callbacks that keep only the first `file` part.

    Data of other parts is dropped as it is parsed. File data is queued
    by the callbacks and written by flush(), outside the parser.
    """

    def __init__(self, staging: StagingArea):
        self.staging = staging
        self.writer: StagingWriter | None = None
        self.filename = ""
        self.content_type: str | None = None
        self.complete = False
        self._pending: list[bytes] = []
        self._in_file_part = False
        self._headers: dict[bytes, bytes] = {}
        self._header_name = b""
        self._header_value = b""

    def callbacks(self) -> dict:
        return {
            "on_part_begin": self.on_part_begin,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_end": self.on_end,
        }

    def on_part_begin(self) -> None:
        self._headers = {}
        self._in_file_part = False

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._headers[self._header_name.lower()] = self._header_value
        self._header_name = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        _, options = parse_options_header(self._headers.get(b"content-disposition"))
        if _decode(options.get(b"name", b"")) != FILE_FIELD or self.writer is not None:
            return
        self.writer = self.staging.stage()
        self.filename = _decode(options.get(b"filename", b""))
        content_type = self._headers.get(b"content-type")
        self.content_type = _decode(content_type).strip() if content_type else None
        self._in_file_part = True

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._in_file_part:
            self._pending.append(data[start:end])

    def on_part_end(self) -> None:
        self._in_file_part = False

    def on_end(self) -> None:
        self.complete = True

    async def flush(self) -> None:
        """ Write queued file data to the staging writer """
        pending, self._pending = self._pending, []
        for chunk in pending:
            # The spool may have rolled over to disk
            await run_in_threadpool(self.writer.write, chunk)

    def abort(self) -> None:
        self._pending = []
        if self.writer is not None:
            self.writer.abort()


async def receive_upload(request: Request, staging: StagingArea) -> InboundUpload:
    """
    Stage the `file` part of a multipart request.

    Args:
        request: Incoming request whose body has not been read yet
        staging: Staging area bounding the upload size

    Returns:
        InboundUpload holding the staged bytes and the part's name and type

    Raises:
        MissingUpload: Not a multipart body, malformed, or no `file` part
        PayloadTooLarge: The file, or the body around it, is over the limit
        UploadCancelled: The client went away before the body was complete
    """
    content_type, params = parse_options_header(request.headers.get("content-type"))
    if content_type.lower() != b"multipart/form-data" or b"boundary" not in params:
        raise MissingUpload(detail=f"Expected a multipart body, got {content_type!r}")

    body_limit = staging.size_limit + ENVELOPE_ALLOWANCE
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > body_limit:
        raise PayloadTooLarge(detail=f"Declared body of {declared} bytes exceeds {body_limit}")

    collector = FilePartCollector(staging)
    parser = MultipartParser(params[b"boundary"], collector.callbacks())
    received = 0
    try:
        async for chunk in request.stream():
            received += len(chunk)
            if received > body_limit:
                raise PayloadTooLarge(detail=f"Request body exceeded {body_limit} bytes")
            parser.write(chunk)
            await collector.flush()
        parser.finalize()
        if not collector.complete:
            raise MissingUpload(detail="Multipart body ended before its closing boundary")
    except ClientDisconnect as exc:
        collector.abort()
        raise UploadCancelled(detail=f"Client disconnected after {received} bytes") from exc
    except MultipartParseError as exc:
        collector.abort()
        raise MissingUpload(detail=f"Malformed multipart body: {exc}") from exc
    except BaseException:
        collector.abort()
        raise

    if collector.writer is None:
        raise MissingUpload(detail=f"No {FILE_FIELD!r} part in request body")

    staged = collector.writer.finish()
    logger.debug("Received %r (%d bytes)", collector.filename, staged.size)
    return InboundUpload(staged, collector.filename, collector.content_type)
