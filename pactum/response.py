"""
Response - minimal ASGI response produced by endpoints.

Features:
- bytes, str or async-iterable bodies
- Case-insensitive, multi-value headers
- RFC 6265 Set-Cookie rendering
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from email.utils import formatdate
from typing import Any, AsyncIterable, Awaitable, Callable, Mapping, Optional, Union

from ._datastructures import MutableHeaders

Content = Union[bytes, str, AsyncIterable[bytes]]


@dataclass
class ResponseCookie:
    """A cookie to emit with ``Set-Cookie``."""

    name: str
    value: str
    max_age: Optional[int] = None
    expires: Optional[datetime] = None
    path: str = "/"
    domain: Optional[str] = None
    secure: bool = True
    httponly: bool = True
    samesite: Optional[str] = "Lax"

    def header_value(self) -> str:
        parts = [f"{self.name}={self.value}"]
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.expires:
            parts.append(f"Expires={formatdate(self.expires.timestamp(), usegmt=True)}")
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.secure:
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        if self.samesite:
            parts.append(f"SameSite={self.samesite}")
        return "; ".join(parts)


class Response:
    """
    HTTP response with ASGI 3 send support.
    """

    def __init__(
        self,
        content: Content = b"",
        status: int = 200,
        headers: Optional[Mapping[str, str]] = None,
        media_type: Optional[str] = None,
        *,
        encoding: str = "utf-8",
    ):
        self.status = status
        self.encoding = encoding
        self.headers = MutableHeaders(headers)
        if isinstance(content, str):
            content = content.encode(encoding)
        self._content = content
        if media_type:
            self.headers.set("content-type", media_type)

    @property
    def media_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    @property
    def body(self) -> bytes:
        """The buffered body; streaming responses have no buffered body."""
        if isinstance(self._content, bytes):
            return self._content
        raise TypeError("Streaming response has no buffered body")

    @property
    def is_streaming(self) -> bool:
        return not isinstance(self._content, bytes)

    # ========================================================================
    # Header & Cookie Helpers
    # ========================================================================

    def set_header(self, name: str, value: str) -> None:
        """Set header (replaces existing)."""
        self._validate_header(name, value)
        self.headers.set(name, value)

    def add_header(self, name: str, value: str) -> None:
        """Add header (supports multiple values)."""
        self._validate_header(name, value)
        self.headers.add(name, value)

    def set_cookie(self, cookie: Union[ResponseCookie, str], value: Optional[str] = None, **options: Any) -> None:
        """
        Set a cookie, either from a ``ResponseCookie`` or from name, value and options.
        """
        if not isinstance(cookie, ResponseCookie):
            cookie = ResponseCookie(name=cookie, value=value or "", **options)
        self.add_header("set-cookie", cookie.header_value())

    def delete_cookie(self, name: str, path: str = "/", domain: Optional[str] = None) -> None:
        self.set_cookie(
            ResponseCookie(name=name, value="", max_age=0, path=path, domain=domain,
                   secure=False, httponly=False, samesite=None)
        )

    def _validate_header(self, name: str, value: str) -> None:
        if "\r" in name or "\n" in name or "\r" in str(value) or "\n" in str(value):
            raise ValueError(f"Header injection attempt in {name!r}")

    # ========================================================================
    # ASGI
    # ========================================================================

    async def __call__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[..., Awaitable[dict]],
        send: Callable[[dict], Awaitable[None]],
    ) -> None:
        """Send the response over an ASGI channel."""
        content = self._content
        if isinstance(content, bytes) and self.status not in (204, 304):
            self.headers.setdefault("content-length", str(len(content)))

        await send({
            "type": "http.response.start",
            "status": self.status,
            "headers": self.headers.raw(),
        })

        if isinstance(content, bytes):
            await send({"type": "http.response.body", "body": content, "more_body": False})
            return

        async for chunk in content:
            if isinstance(chunk, str):
                chunk = chunk.encode(self.encoding)
            await send({"type": "http.response.body", "body": chunk, "more_body": True})
        await send({"type": "http.response.body", "body": b"", "more_body": False})

    def __repr__(self) -> str:
        return f"Response(status={self.status}, media_type={self.media_type!r})"
