"""
Travel Log Backend — Submission Ingestor
==========================================

What:  Turns a request body (JSON object or multipart/form-data) into a
       normalized `Submission`: a read-only field map, the credential split
       out of it, and at most one stored image.
How:   Multipart bodies are streamed chunk by chunk through python-multipart's
       `MultipartParser`. Parser callbacks only record events; the async
       loop drains them after every chunk, which is where file bytes are
       written with aiofiles. Nothing is buffered beyond one chunk for the
       file part, and text parts are capped at `max_field_size`.

Upload rules (file part in the upload field):
    1. Declared Content-Type must start with 'image/' (checked before any
       byte is written)
    2. Total size must stay <= max_upload_size (checked before each write)
    3. Stored under a generated name in the managed upload namespace
    4. At most one file; a file part in any other field is rejected
    5. A file part with an empty filename (browser "no file chosen") is ignored

Failure cleanup:
    Any failure (bad MIME type, size exceeded, broken framing, client
    disconnect, timeout, cancellation) deletes whatever was written before
    the error propagates.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import ClientDisconnect

from travel_log.exceptions import UploadError
from travel_log.schemas.submission import Submission, UploadedFile
from travel_log.services.file_service import FileService

logger = logging.getLogger(__name__)

IMAGE_MIME_PREFIX = "image/"


class _PartEvents:
    """Synchronous python-multipart callbacks that queue events for the async loop."""

    def __init__(self) -> None:
        self.events: List[Tuple[Any, ...]] = []
        self.finished = False
        self._headers: Dict[bytes, bytes] = {}
        self._header_field = bytearray()
        self._header_value = bytearray()

    def callbacks(self) -> Dict[str, Any]:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_end": self.on_end,
        }

    def on_part_begin(self) -> None:
        self._headers = {}

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field.extend(data[start:end])

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value.extend(data[start:end])

    def on_header_end(self) -> None:
        self._headers[bytes(self._header_field).lower()] = bytes(self._header_value)
        self._header_field.clear()
        self._header_value.clear()

    def on_headers_finished(self) -> None:
        _, options = parse_options_header(self._headers.get(b"content-disposition", b""))
        name = options.get(b"name")
        filename = options.get(b"filename")
        content_type = self._headers.get(b"content-type")
        self.events.append((
            "part",
            name.decode("utf-8", errors="replace") if name is not None else None,
            filename.decode("utf-8", errors="replace") if filename is not None else None,
            content_type.decode("latin-1").strip().lower() if content_type else None,
        ))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self.events.append(("data", data[start:end]))

    def on_part_end(self) -> None:
        self.events.append(("part_end",))

    def on_end(self) -> None:
        self.finished = True

    def drain(self) -> List[Tuple[Any, ...]]:
        events, self.events = self.events, []
        return events


@dataclass
class _MultipartState:
    """Mutable bookkeeping for one multipart body; private to one ingest call."""
    fields: Dict[str, str] = field(default_factory=dict)
    part_kind: Optional[str] = None  # "text" | "file" | "skip"
    part_name: Optional[str] = None
    text: bytearray = field(default_factory=bytearray)
    handle: Any = None
    file_path: Optional[Path] = None
    file_name: str = ""
    file_type: str = ""
    file_size: int = 0
    storage_name: str = ""
    upload: Optional[UploadedFile] = None


class MultipartIngestor:
    """Parses submission bodies and stores the optional image."""

    def __init__(
        self,
        file_service: FileService,
        upload_field: str = "image",
        credential_field: str = "apiKey",
        max_upload_size: int = 5 * 1024 * 1024,
        max_field_size: int = 64 * 1024,
        max_json_size: int = 1024 * 1024,
        ingest_timeout: float = 60.0,
    ):
        self.file_service = file_service
        self.upload_field = upload_field
        self.credential_field = credential_field
        self.max_upload_size = max_upload_size
        self.max_field_size = max_field_size
        self.max_json_size = max_json_size
        self.ingest_timeout = ingest_timeout

    async def ingest(self, content_type: str, body: AsyncIterator[bytes]) -> Submission:
        """
        Read the whole body and return the normalized submission.

        Raises:
            UploadError: unsupported content type, malformed body, bad or
                oversized image, disconnect, or timeout.
            PersistenceError: the image could not be written to disk.
        """
        media_type, options = parse_options_header(content_type or "")
        media_type = media_type.decode("latin-1").lower()

        if media_type == "multipart/form-data":
            reader = self._ingest_multipart(options.get(b"boundary"), body)
        elif media_type == "application/json" or media_type.endswith("+json"):
            reader = self._ingest_json(body)
        else:
            raise UploadError(
                reason="unsupported_media_type",
                message=(
                    f"Content type '{media_type or 'none'}' is not supported. "
                    "Send application/json or multipart/form-data."
                ),
            )

        try:
            return await asyncio.wait_for(reader, timeout=self.ingest_timeout)
        except asyncio.TimeoutError:
            logger.warning("Upload timed out after %.0fs", self.ingest_timeout)
            raise UploadError(
                reason="upload_timeout",
                message="The upload took too long and was aborted.",
            )

    async def discard(self, upload: UploadedFile) -> None:
        """Delete a stored image whose submission failed after ingestion."""
        await self.file_service.cleanup_file(upload.path)

    # ── JSON ──────────────────────────────────────────────────────────────

    async def _ingest_json(self, body: AsyncIterator[bytes]) -> Submission:
        raw = bytearray()
        try:
            async for chunk in body:
                raw.extend(chunk)
                if len(raw) > self.max_json_size:
                    raise UploadError(
                        reason="body_too_large",
                        message=f"JSON body exceeds {self.max_json_size} bytes.",
                    )
        except ClientDisconnect as e:
            raise UploadError(
                reason="incomplete_body",
                message="The connection closed before the request body was complete.",
            ) from e

        try:
            data = json.loads(bytes(raw))
        except ValueError as e:
            raise UploadError(
                reason="malformed_json",
                message="Request body is not valid JSON.",
            ) from e
        if not isinstance(data, dict):
            raise UploadError(
                reason="malformed_json",
                message="Request body must be a JSON object.",
            )
        return Submission.build(data, self.credential_field)

    # ── Multipart ─────────────────────────────────────────────────────────

    async def _ingest_multipart(
        self, boundary: Optional[bytes], body: AsyncIterator[bytes]
    ) -> Submission:
        if not boundary:
            raise UploadError(
                reason="malformed_multipart",
                message="Multipart body is missing its boundary parameter.",
            )

        events = _PartEvents()
        parser = MultipartParser(boundary, events.callbacks())
        state = _MultipartState()

        try:
            async for chunk in body:
                if not chunk:
                    continue
                parser.write(chunk)
                await self._apply(events.drain(), state)
            parser.finalize()
            await self._apply(events.drain(), state)
            if not events.finished:
                raise UploadError(
                    reason="incomplete_body",
                    message="Multipart body ended before its closing boundary.",
                )
        except BaseException as exc:
            await self._abort(state)
            if isinstance(exc, MultipartParseError):
                raise UploadError(
                    reason="malformed_multipart",
                    message="Multipart body could not be parsed.",
                ) from exc
            if isinstance(exc, ClientDisconnect):
                raise UploadError(
                    reason="incomplete_body",
                    message="The connection closed before the upload was complete.",
                ) from exc
            raise

        if state.upload:
            logger.info(
                "Stored upload %s (%d bytes, %s)",
                state.upload.storage_name,
                state.upload.size,
                state.upload.content_type,
            )
        return Submission.build(state.fields, self.credential_field, upload=state.upload)

    async def _apply(self, events: List[Tuple[Any, ...]], state: _MultipartState) -> None:
        for event in events:
            kind = event[0]
            if kind == "part":
                await self._begin_part(state, *event[1:])
            elif kind == "data":
                await self._part_data(state, event[1])
            elif kind == "part_end":
                await self._end_part(state)

    async def _begin_part(
        self,
        state: _MultipartState,
        name: Optional[str],
        filename: Optional[str],
        content_type: Optional[str],
    ) -> None:
        state.part_name = name
        state.text = bytearray()

        if name is None:
            state.part_kind = "skip"
            return

        if filename is None:
            state.part_kind = "text"
            return

        if name != self.upload_field:
            raise UploadError(
                reason="unexpected_file",
                message=f"Field '{name}' does not accept files. Upload images in '{self.upload_field}'.",
                context={"field": name},
            )
        if filename == "":
            state.part_kind = "skip"
            return
        if state.upload is not None:
            raise UploadError(
                reason="too_many_files",
                message="Only one image may be uploaded per entry.",
                context={"field": name},
            )
        declared = content_type or "application/octet-stream"
        if not declared.startswith(IMAGE_MIME_PREFIX):
            raise UploadError(
                reason="invalid_mime_type",
                message=f"File type '{declared}' is not allowed. Only image files can be uploaded.",
                context={"field": name, "content_type": declared},
            )

        state.part_kind = "file"
        state.file_name = filename
        state.file_type = declared
        state.file_size = 0
        state.storage_name = self.file_service.generate_storage_name(filename)
        state.file_path = self.file_service.path_for(state.storage_name)
        state.handle = await self.file_service.open_new(state.storage_name)

    async def _part_data(self, state: _MultipartState, data: bytes) -> None:
        if state.part_kind == "file":
            if state.file_size + len(data) > self.max_upload_size:
                max_mb = self.max_upload_size / (1024 * 1024)
                raise UploadError(
                    reason="file_too_large",
                    message=f"Image exceeds the maximum size of {max_mb:g}MB.",
                    context={"field": self.upload_field, "max_size": self.max_upload_size},
                )
            await state.handle.write(data)
            state.file_size += len(data)
        elif state.part_kind == "text":
            if len(state.text) + len(data) > self.max_field_size:
                raise UploadError(
                    reason="field_too_large",
                    message=f"Field '{state.part_name}' exceeds {self.max_field_size} bytes.",
                    context={"field": state.part_name},
                )
            state.text.extend(data)

    async def _end_part(self, state: _MultipartState) -> None:
        if state.part_kind == "file":
            await state.handle.close()
            state.handle = None
            if state.file_size == 0:
                raise UploadError(
                    reason="empty_file",
                    message="The uploaded image is empty.",
                    context={"field": self.upload_field},
                )
            state.upload = UploadedFile(
                original_filename=state.file_name,
                content_type=state.file_type,
                size=state.file_size,
                storage_name=state.storage_name,
                path=state.file_path,
                url_path=self.file_service.url_for(state.storage_name),
            )
            state.file_path = None
        elif state.part_kind == "text":
            try:
                state.fields[state.part_name] = state.text.decode("utf-8")
            except UnicodeDecodeError as e:
                raise UploadError(
                    reason="malformed_multipart",
                    message=f"Field '{state.part_name}' is not valid UTF-8 text.",
                    context={"field": state.part_name},
                ) from e
        state.part_kind = None
        state.part_name = None

    async def _abort(self, state: _MultipartState) -> None:
        """Close and delete every file this body produced."""
        if state.handle is not None:
            try:
                await state.handle.close()
            except OSError as e:
                logger.warning("Failed to close partial upload: %s", str(e))
            state.handle = None
        if state.file_path is not None:
            await self.file_service.cleanup_file(state.file_path)
            state.file_path = None
        if state.upload is not None:
            await self.file_service.cleanup_file(state.upload.path)
            state.upload = None
