"""Streaming ``multipart/form-data`` reader.

Feeds an async byte stream through the ``python_multipart`` callback parser
and hands back each uploaded file as soon as its closing boundary has been
seen. File bodies are buffered in memory, so every file part is held to a
size ceiling that is checked on each chunk, before the chunk is kept.
"""

import mimetypes
import re
from collections import deque
from collections.abc import AsyncIterator
from dataclasses import dataclass

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import ClientDisconnect

from app.errors import FileTooLarge, MalformedUpload, UploadFailed
from app.logger import logger

DEFAULT_CONTENT_TYPE = "application/octet-stream"
MAX_HEADER_BYTES = 16 * 1024


@dataclass
class FilePart:
    field_name: str
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class _PartState:
    def __init__(self) -> None:
        self.headers: dict[bytes, bytes] = {}
        self.field_name = ""
        self.filename = ""
        self.content_type = ""
        self.chunks: list[bytes] = []
        self.size = 0
        self.header_bytes = 0


def _decode(value: bytes, charset: str) -> str:
    try:
        return value.decode(charset)
    except (UnicodeDecodeError, LookupError):
        return value.decode("latin-1")


def _basename(filename: str) -> str:
    return re.split(r"[\\/]", filename)[-1].strip()


class MultipartFileStream:
    def __init__(self, content_type: str, *, max_file_size: int):
        media_type, params = parse_options_header(content_type or "")
        if media_type.lower() != b"multipart/form-data" or not params.get(b"boundary"):
            raise MalformedUpload()

        self.boundary = params[b"boundary"]
        self.charset = params.get(b"charset", b"utf-8").decode("latin-1")
        self.max_file_size = max_file_size

        self._part: _PartState | None = None
        self._header_field = b""
        self._header_value = b""
        self._ready: deque[FilePart] = deque()
        self._finished = False

    def on_part_begin(self) -> None:
        self._part = _PartState()

    def _count_header_bytes(self, size: int) -> None:
        self._part.header_bytes += size
        if self._part.header_bytes > MAX_HEADER_BYTES:
            logger.error(f"[multipart] part headers exceed {MAX_HEADER_BYTES} bytes")
            raise MalformedUpload()

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._count_header_bytes(end - start)
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._count_header_bytes(end - start)
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._part.headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        part = self._part
        _, options = parse_options_header(part.headers.get(b"content-disposition", b""))
        part.field_name = _decode(options.get(b"name", b""), self.charset)
        if b"filename" in options:
            part.filename = _basename(_decode(options[b"filename"], self.charset))
        content_type = part.headers.get(b"content-type")
        if content_type:
            part.content_type = _decode(content_type, "latin-1").strip()
        elif part.filename:
            part.content_type = mimetypes.guess_type(part.filename)[0] or DEFAULT_CONTENT_TYPE

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        part = self._part
        if not part.filename:
            return
        chunk = data[start:end]
        part.size += len(chunk)
        if part.size > self.max_file_size:
            logger.warning(f"[multipart] {part.filename!r} crossed {self.max_file_size} bytes, aborting")
            raise FileTooLarge(part.filename, self.max_file_size)
        part.chunks.append(chunk)

    def on_part_end(self) -> None:
        part = self._part
        self._part = None
        if not part.filename:
            return
        self._ready.append(
            FilePart(
                field_name=part.field_name,
                filename=part.filename,
                content_type=part.content_type or DEFAULT_CONTENT_TYPE,
                data=b"".join(part.chunks),
            )
        )

    def on_end(self) -> None:
        self._finished = True

    async def files(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[FilePart]:
        """Yield every file part of the body in the order it was sent."""
        callbacks = {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_end": self.on_end,
        }
        parser = MultipartParser(self.boundary, callbacks)
        try:
            async for chunk in chunks:
                if chunk:
                    parser.write(chunk)
                while self._ready:
                    yield self._ready.popleft()
            parser.finalize()
        except MultipartParseError as exc:
            logger.error(f"[multipart] malformed body: {exc}")
            raise MalformedUpload() from exc
        except ClientDisconnect as exc:
            logger.error("[multipart] client disconnected mid-upload")
            raise UploadFailed("File stream error") from exc

        while self._ready:
            yield self._ready.popleft()
        if not self._finished:
            logger.error("[multipart] body ended before the closing boundary")
            raise MalformedUpload()
