"""
Field markers for request and response types.

Request and response shapes are plain dataclasses. Binding sources,
wire names, docs and constraints are attached with ``Annotated``::

    @dataclass
    class GetUser:
        id: Annotated[str, Path("id")]
        page: Annotated[int, Query("page", default="1")] = 1
        trace: Annotated[str, Header("X-Trace-Id")] = ""

    @dataclass
    class CreateUser:
        name: Annotated[str, Meta(min_length=3, doc="Display name")]
        email: Annotated[str, Meta(pattern=r"^[^@]+@[^@]+$", required=True)]
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, AsyncIterable, ClassVar, Optional, Tuple, Union

from .._uploads import UploadFile
from ..request import Request


class BindingSource(str, Enum):
    """Transport location a field is bound from."""
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    COOKIE = "cookie"
    FORM = "form"
    BODY = "body"
    RAW = "raw"
    NONE = "none"

    @property
    def is_param(self) -> bool:
        """Path, query, header and cookie fields form the parameter list."""
        return self in PARAM_SOURCES


PARAM_SOURCES = frozenset({
    BindingSource.PATH,
    BindingSource.QUERY,
    BindingSource.HEADER,
    BindingSource.COOKIE,
})


# ── Binding Markers ──────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class Param:
    """
    Base binding marker.

    ``name`` is the wire name (defaults to the attribute name) and
    ``default`` the raw string used when the value is absent or empty.
    """

    name: Optional[str] = None
    default: Optional[str] = None

    source: ClassVar[BindingSource] = BindingSource.NONE


@dataclass(frozen=True, slots=True)
class Path(Param):
    """Bind from a named path capture. Path captures never fall back to a default."""

    source: ClassVar[BindingSource] = BindingSource.PATH


@dataclass(frozen=True, slots=True)
class Query(Param):
    """Bind from a query-string parameter."""

    source: ClassVar[BindingSource] = BindingSource.QUERY


@dataclass(frozen=True, slots=True)
class Header(Param):
    """Bind from a request header (case-insensitive)."""

    source: ClassVar[BindingSource] = BindingSource.HEADER


@dataclass(frozen=True, slots=True)
class Cookie(Param):
    """Bind from a request cookie."""

    source: ClassVar[BindingSource] = BindingSource.COOKIE


@dataclass(frozen=True, slots=True)
class Form(Param):
    """Bind from a multipart or urlencoded form field (or file part)."""

    source: ClassVar[BindingSource] = BindingSource.FORM


@dataclass(frozen=True, slots=True)
class Raw:
    """Inject the live ``Request`` instead of a parsed value."""


RawRequest = Annotated[Request, Raw()]


# ── Field Metadata ───────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class Meta:
    """
    Payload metadata: JSON name, documentation and constraints.

    Several ``Meta`` markers on one field merge left to right.
    ``enum`` accepts a sequence or a comma separated string.
    """

    name: Optional[str] = None
    doc: Optional[str] = None
    required: bool = False
    skip: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    enum: Union[str, Tuple[str, ...], None] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    default: Any = None
    example: Any = None


# ── Well-known Types ─────────────────────────────────────────────────

class Void:
    """
    Marker for "no request" or "no response body".

    A handler declared to return ``Void`` answers 204 unless the route
    declares another status.
    """

    _instance: ClassVar[Optional["Void"]] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "Void()"


@dataclass
class Stream:
    """Binary or streaming response that bypasses codec negotiation."""

    body: Union[bytes, AsyncIterable[bytes]] = b""
    content_type: str = "application/octet-stream"
    status: int = 0


@dataclass
class Redirect:
    """Returned from a handler to issue an HTTP redirect."""

    url: str
    status: int = 302


def inline(cls):
    """
    Class decorator: always inline this type's schema instead of
    registering it under ``components.schemas``.
    """
    cls.__pactum_inline__ = True
    return cls


__all__ = [
    "BindingSource",
    "PARAM_SOURCES",
    "Param",
    "Path",
    "Query",
    "Header",
    "Cookie",
    "Form",
    "Raw",
    "RawRequest",
    "Meta",
    "Void",
    "Stream",
    "Redirect",
    "UploadFile",
    "inline",
]
