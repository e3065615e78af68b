"""
Request - ASGI request wrapper consumed by the binder.

Provides:
- Path captures, query parameters, headers and cookies
- Streaming body access with idempotent caching and a size limit
- application/x-www-form-urlencoded and multipart/form-data parsing
  (python-multipart), with large file parts spilled to disk
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import uuid
from http.cookies import CookieError, SimpleCookie
from pathlib import Path
from typing import (
    Any, AsyncIterator, Awaitable, Callable, Dict, List,
    Mapping, Optional, Union
)
from urllib.parse import parse_qsl

from python_multipart import MultipartParser
from python_multipart.multipart import parse_options_header

from ._datastructures import Headers, MultiDict, ParsedContentType
from ._uploads import FormData, UploadFile
from .faults import Fault, FaultDomain, Severity, UnsupportedMediaTypeFault

logger = logging.getLogger("pactum.request")

PathLike = Union[str, Path]

FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART_FORM = "multipart/form-data"


# ============================================================================
# Request Faults
# ============================================================================

class RequestFault(Fault):
    """Base class for request I/O faults."""
    domain = FaultDomain.IO
    severity = Severity.WARN
    status = 400
    public = True

    def __init__(self, message: str = None, **metadata):
        super().__init__(
            code=self.code,
            message=message or self.message,
            metadata=metadata,
        )


class BadRequest(RequestFault):
    """Malformed request (400)."""
    code = "BAD_REQUEST"
    message = "Bad request"


class PayloadTooLarge(RequestFault):
    """Request payload exceeds limits (413)."""
    code = "PAYLOAD_TOO_LARGE"
    message = "Payload too large"
    status = 413


class ClientDisconnect(RequestFault):
    """Client disconnected during request (499)."""
    code = "CLIENT_DISCONNECT"
    message = "Client disconnected"
    status = 499


class MultipartParseError(RequestFault):
    """Multipart parsing failed (400)."""
    code = "MULTIPART_PARSE_ERROR"
    message = "Multipart parsing failed"


def sanitize_filename(filename: str) -> str:
    """Strip path components and unsafe characters from a client filename."""
    filename = os.path.basename(filename.replace("\\", "/"))
    filename = filename.replace("\x00", "")
    for char in ("<", ">", ":", '"', "|", "?", "*"):
        filename = filename.replace(char, "_")
    if len(filename) > 255:
        name, ext = os.path.splitext(filename)
        filename = name[:250] + ext
    return filename or "unnamed"


# ============================================================================
# Request
# ============================================================================

class Request:
    """
    Request object handed to the binder and, through ``RawRequest``, to
    handlers.

    Path captures are read from ``scope["path_params"]`` (set by the
    router) and may be overridden through ``state["path_params"]``.
    """

    def __init__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[..., Awaitable[dict]],
        send: Optional[Callable] = None,
        *,
        max_body_size: int = 10_485_760,  # 10 MiB
        max_field_count: int = 1000,
        max_file_size: int = 33_554_432,  # 32 MiB
        upload_tempdir: Optional[PathLike] = None,
        chunk_size: int = 64 * 1024,
        form_memory_threshold: int = 1024 * 1024,  # 1 MiB
    ):
        self.scope = scope
        self._receive = receive
        self._send = send

        self.max_body_size = max_body_size
        self.max_field_count = max_field_count
        self.max_file_size = max_file_size
        self.upload_tempdir = Path(upload_tempdir) if upload_tempdir else None
        self.chunk_size = chunk_size
        self.form_memory_threshold = form_memory_threshold

        self.state: Dict[str, Any] = {}

        self._body: Optional[bytes] = None
        self._body_consumed = False
        self._form_data: Optional[FormData] = None
        self._query_params: Optional[MultiDict] = None
        self._headers: Optional[Headers] = None
        self._cookies: Optional[Dict[str, str]] = None
        self._temp_files: List[Path] = []

    # ========================================================================
    # Basic Properties
    # ========================================================================

    @property
    def method(self) -> str:
        return self.scope.get("method", "GET")

    @property
    def path(self) -> str:
        return self.scope.get("path", "/")

    @property
    def query_string(self) -> str:
        return self.scope.get("query_string", b"").decode("utf-8")

    @property
    def path_params(self) -> Dict[str, str]:
        """Named path captures."""
        params = dict(self.scope.get("path_params") or {})
        params.update(self.state.get("path_params", {}))
        return params

    def path_param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.path_params.get(name, default)
        return None if value is None else str(value)

    # ========================================================================
    # Query, Headers, Cookies
    # ========================================================================

    @property
    def query_params(self) -> MultiDict:
        if self._query_params is None:
            query_string = self.query_string
            items = parse_qsl(query_string, keep_blank_values=True) if query_string else []
            self._query_params = MultiDict(items)
        return self._query_params

    def query_param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.query_params.get(name, default)

    @property
    def headers(self) -> Headers:
        if self._headers is None:
            self._headers = Headers(raw=list(self.scope.get("headers", [])))
        return self._headers

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get single header (case-insensitive)."""
        return self.headers.get(name, default)

    @property
    def cookies(self) -> Mapping[str, str]:
        if self._cookies is None:
            self._cookies = {}
            cookie_header = self.header("cookie", "")
            if cookie_header:
                cookie = SimpleCookie()
                try:
                    cookie.load(cookie_header)
                except CookieError as exc:
                    logger.debug("Ignoring malformed Cookie header: %s", exc)
                self._cookies = {key: morsel.value for key, morsel in cookie.items()}
        return self._cookies

    def cookie(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.cookies.get(name, default)

    def content_type(self) -> Optional[str]:
        return self.header("content-type")

    def content_length(self) -> Optional[int]:
        length = self.header("content-length")
        if length:
            try:
                return int(length)
            except ValueError:
                return None
        return None

    # ========================================================================
    # Body
    # ========================================================================

    async def _receive_message(self) -> dict:
        message = await self._receive()
        if message["type"] == "http.disconnect":
            raise ClientDisconnect()
        return message

    async def iter_bytes(self, chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
        """
        Stream request body in chunks.

        Raises:
            ClientDisconnect: If client disconnects during streaming
            PayloadTooLarge: If body exceeds max_body_size
        """
        chunk_size = chunk_size or self.chunk_size

        if self._body is not None:
            for i in range(0, len(self._body), chunk_size):
                yield self._body[i:i + chunk_size]
            return

        if self._body_consumed:
            return

        total_size = 0
        try:
            while True:
                message = await self._receive_message()
                if message["type"] != "http.request":
                    continue
                chunk = message.get("body", b"")
                if chunk:
                    total_size += len(chunk)
                    if total_size > self.max_body_size:
                        raise PayloadTooLarge(
                            "Request body exceeds maximum size",
                            max_allowed=self.max_body_size,
                            actual=total_size,
                        )
                    yield chunk
                if not message.get("more_body", False):
                    break
        except asyncio.CancelledError:
            logger.debug("Body read cancelled for %s %s", self.method, self.path)
            raise
        finally:
            self._body_consumed = True

    async def body(self) -> bytes:
        """Read full request body (idempotent)."""
        if self._body is not None:
            return self._body
        chunks = [chunk async for chunk in self.iter_bytes()]
        self._body = b"".join(chunks)
        return self._body

    # ========================================================================
    # Form & Multipart Parsing
    # ========================================================================

    async def form_data(self) -> FormData:
        """
        Parse the body as a form, dispatching on Content-Type.

        Raises:
            UnsupportedMediaTypeFault: If the body is not a form encoding
        """
        parsed = ParsedContentType.parse(self.content_type())
        if parsed and parsed.media_type == FORM_URLENCODED:
            return await self.form()
        if parsed and parsed.media_type.startswith("multipart/"):
            return await self.multipart()
        raise UnsupportedMediaTypeFault(
            self.content_type(),
            reason=f"Expected {MULTIPART_FORM} or {FORM_URLENCODED}, got {self.content_type()}",
        )

    async def form(self) -> FormData:
        """Parse application/x-www-form-urlencoded form data."""
        if self._form_data is not None:
            return self._form_data

        parsed = ParsedContentType.parse(self.content_type())
        if not parsed or parsed.media_type != FORM_URLENCODED:
            raise UnsupportedMediaTypeFault(self.content_type(), reason=f"Expected {FORM_URLENCODED}")

        body = await self.body()
        try:
            items = parse_qsl(body.decode(parsed.charset), keep_blank_values=True)
        except (UnicodeDecodeError, LookupError) as exc:
            raise BadRequest(f"Malformed form body: {exc}")

        if len(items) > self.max_field_count:
            raise BadRequest("Too many form fields", max_allowed=self.max_field_count, actual=len(items))

        self._form_data = FormData(fields=MultiDict(items), files={})
        return self._form_data

    async def multipart(self) -> FormData:
        """
        Parse multipart/form-data.

        Raises:
            UnsupportedMediaTypeFault: If Content-Type is not multipart
            MultipartParseError: If the payload is malformed
        """
        if self._form_data is not None:
            return self._form_data

        parsed = ParsedContentType.parse(self.content_type())
        if not parsed or not parsed.media_type.startswith("multipart/"):
            raise UnsupportedMediaTypeFault(self.content_type(), reason=f"Expected {MULTIPART_FORM}")
        if not parsed.boundary:
            raise MultipartParseError("No boundary in multipart Content-Type")

        collector = _MultipartCollector(self)
        parser = MultipartParser(parsed.boundary.encode("latin-1"), collector.callbacks())
        try:
            async for chunk in self.iter_bytes():
                parser.write(chunk)
            parser.finalize()
        except Fault:
            collector.abort()
            await self.cleanup()
            raise
        except Exception as exc:
            collector.abort()
            await self.cleanup()
            raise MultipartParseError(f"Multipart parsing failed: {exc}") from exc

        self._form_data = FormData(fields=collector.fields, files=collector.files)
        return self._form_data

    # ========================================================================
    # Cleanup
    # ========================================================================

    async def cleanup(self) -> None:
        """Remove temporary upload files."""
        if self._form_data:
            await self._form_data.cleanup()
        for temp_file in self._temp_files:
            if temp_file.exists():
                try:
                    temp_file.unlink()
                except OSError as exc:
                    logger.warning("Could not remove temp file %s: %s", temp_file, exc)
        self._temp_files.clear()


class _MultipartCollector:
    """
    python-multipart callback sink.

    File parts start in memory and spill to a temp file once they exceed
    the request's ``form_memory_threshold``.
    """

    def __init__(self, request: Request):
        self.request = request
        self.fields = MultiDict()
        self.files: Dict[str, List[UploadFile]] = {}
        self._temp_dir = request.upload_tempdir or Path(tempfile.gettempdir()) / "pactum_uploads"
        self._part_count = 0
        self._reset_part()

    def _reset_part(self) -> None:
        self._headers: Dict[str, str] = {}
        self._header_field = bytearray()
        self._header_value = bytearray()
        self._name: Optional[str] = None
        self._filename: Optional[str] = None
        self._content_type = "text/plain"
        self._data = bytearray()
        self._size = 0
        self._spill_path: Optional[Path] = None
        self._spill_handle = None

    def callbacks(self) -> Dict[str, Callable]:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
        }

    def on_part_begin(self) -> None:
        self._part_count += 1
        if self._part_count > self.request.max_field_count:
            raise BadRequest(
                "Too many multipart parts",
                max_allowed=self.request.max_field_count,
                actual=self._part_count,
            )
        self._reset_part()

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field.extend(data[start:end])

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value.extend(data[start:end])

    def on_header_end(self) -> None:
        if self._header_field:
            name = self._header_field.decode("utf-8", errors="replace").lower()
            self._headers[name] = self._header_value.decode("utf-8", errors="replace")
        self._header_field = bytearray()
        self._header_value = bytearray()

    def on_headers_finished(self) -> None:
        disposition = self._headers.get("content-disposition", "")
        if disposition:
            _, options = parse_options_header(disposition)
            name = options.get(b"name")
            if name is not None:
                self._name = name.decode("utf-8") if isinstance(name, bytes) else name
            filename = options.get(b"filename")
            if filename:
                filename = filename.decode("utf-8") if isinstance(filename, bytes) else filename
                self._filename = sanitize_filename(filename)
        content_type = self._headers.get("content-type")
        if content_type:
            self._content_type = content_type

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        chunk = data[start:end]
        self._size += len(chunk)

        if not self._filename:
            self._data.extend(chunk)
            return

        if self._size > self.request.max_file_size:
            raise PayloadTooLarge(
                "File upload exceeds maximum size",
                max_allowed=self.request.max_file_size,
                actual=self._size,
                filename=self._filename,
            )

        if self._spill_handle is None and self._size > self.request.form_memory_threshold:
            self._temp_dir.mkdir(parents=True, exist_ok=True)
            self._spill_path = self._temp_dir / f"{uuid.uuid4().hex}_{self._filename}"
            self._spill_handle = open(self._spill_path, "wb")
            self.request._temp_files.append(self._spill_path)
            self._spill_handle.write(self._data)
            self._data = bytearray()

        if self._spill_handle is not None:
            self._spill_handle.write(chunk)
        else:
            self._data.extend(chunk)

    def on_part_end(self) -> None:
        if self._spill_handle is not None:
            self._spill_handle.close()
            self._spill_handle = None

        if not self._name:
            return

        if self._filename:
            if self._spill_path is not None:
                upload = UploadFile.from_path(self._filename, self._spill_path, self._content_type)
            else:
                upload = UploadFile.from_bytes(self._filename, bytes(self._data), self._content_type)
            self.files.setdefault(self._name, []).append(upload)
        else:
            self.fields.add(self._name, self._data.decode("utf-8", errors="replace"))

    def abort(self) -> None:
        if self._spill_handle is not None:
            self._spill_handle.close()
            self._spill_handle = None
