"""
Request binding.

Turns a live ``Request`` into a populated value of its declared type.
Binding is fail-fast: the first failing field raises ``BindFault``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, get_args, get_origin

from .._uploads import UploadFile
from ..faults import BindFault, UnsupportedMediaTypeFault
from ..request import BadRequest, MultipartParseError, Request
from .classify import RequestShape, classify
from .codecs import CodecRegistry, DecodeError
from .convert import convert_scalar, structure
from .markers import BindingSource, Void
from .metadata import (
    FieldDescriptor, extract, find_field, is_struct, new, unwrap_annotated, unwrap_optional, zero_value,
)

logger = logging.getLogger("pactum.binder")

_default_codecs: Optional[CodecRegistry] = None


def default_codecs() -> CodecRegistry:
    """Process-wide registry used when callers do not pass one (JSON, XML)."""
    global _default_codecs
    if _default_codecs is None:
        _default_codecs = CodecRegistry()
    return _default_codecs


async def bind(
    tp: Any,
    request: Request,
    *,
    codecs: Optional[CodecRegistry] = None,
    shape: Optional[RequestShape] = None,
) -> Any:
    """
    Bind ``request`` onto a new value of ``tp``.

    Every non-empty shape binds its path, query, header and cookie fields
    and injects ``RawRequest`` fields; the body (or form) is then decoded
    according to the shape. An absent or empty body leaves the payload at
    its zero state. This is a known leniency: a body shorter than its
    Content-Length is not detected.

    Non-dataclass types (``List[Item]``, ``Dict[str, Any]``) are decoded
    as a whole body.

    Raises:
        BindFault: On the first conversion or decode failure
        UnsupportedMediaTypeFault: If a non-empty body has no decoder
    """
    shape = shape or classify(tp)
    if shape is RequestShape.EMPTY:
        return Void() if tp is Void else None

    if shape is RequestShape.WHOLE_BODY and not is_struct(tp):
        decoded = await _decode_body(tp, request, codecs or default_codecs())
        return zero_value(tp) if decoded is None else decoded

    value = new(tp)
    _bind_params(value, tp, request)

    if shape is RequestShape.WHOLE_BODY:
        decoded = await _decode_body(tp, request, codecs or default_codecs())
        if decoded is not None:
            _copy_payload(decoded, value, tp)
    elif shape is RequestShape.PARAMS_PLUS_BODY:
        body_field = find_field(tp, BindingSource.BODY)
        body_type, _ = unwrap_optional(unwrap_annotated(body_field.type)[0])
        decoded = await _decode_body(body_type, request, codecs or default_codecs())
        if decoded is not None:
            setattr(value, body_field.name, decoded)
    elif shape is RequestShape.MULTIPART_FORM:
        await _bind_form(value, tp, request)

    return value


# ============================================================================
# Parameters
# ============================================================================

def _bind_params(value: Any, tp: Any, request: Request) -> None:
    for desc in extract(tp):
        if desc.source is BindingSource.RAW:
            setattr(value, desc.name, request)
            continue
        if not desc.is_param:
            continue

        if desc.source is BindingSource.PATH:
            raw = request.path_param(desc.wire_name) or ""
        elif desc.source is BindingSource.QUERY:
            raw = request.query_param(desc.wire_name) or desc.default or ""
        elif desc.source is BindingSource.HEADER:
            raw = request.header(desc.wire_name) or desc.default or ""
        else:
            raw = request.cookie(desc.wire_name) or desc.default or ""

        if raw:
            _set_scalar(value, desc, raw)


def _set_scalar(value: Any, desc: FieldDescriptor, raw: str) -> None:
    try:
        converted = convert_scalar(raw, desc.type)
    except (TypeError, ValueError) as exc:
        logger.debug("Binding %s %r failed: %s", desc.source.value, desc.wire_name, exc)
        raise BindFault(desc.source.value, desc.wire_name, exc) from exc
    setattr(value, desc.name, converted)


# ============================================================================
# Body
# ============================================================================

async def _decode_body(tp: Any, request: Request, codecs: CodecRegistry) -> Any:
    raw = await request.body()
    if not raw.strip():
        return None

    codec = codecs.decoder_for(request.content_type())
    try:
        data = codec.decode(raw)
        if data is None:
            return None
        return structure(data, tp, coerce_strings=codec.textual_scalars)
    except (DecodeError, TypeError, ValueError) as exc:
        logger.debug("Decoding %s body as %s failed: %s", codec.content_type, getattr(tp, "__name__", tp), exc)
        raise BindFault("body", None, exc) from exc


def _copy_payload(decoded: Any, value: Any, tp: Any) -> None:
    for desc in extract(tp):
        if desc.in_payload:
            setattr(value, desc.name, getattr(decoded, desc.name))


# ============================================================================
# Forms
# ============================================================================

def _is_upload(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, UploadFile)


def _is_upload_list(tp: Any) -> bool:
    return get_origin(tp) is list and len(get_args(tp)) == 1 and _is_upload(get_args(tp)[0])


async def _bind_form(value: Any, tp: Any, request: Request) -> None:
    try:
        form = await request.form_data()
    except (UnsupportedMediaTypeFault, MultipartParseError, BadRequest) as exc:
        raise BindFault("form", None, exc) from exc

    for desc in extract(tp):
        if desc.source is not BindingSource.FORM:
            continue

        field_type, _ = unwrap_optional(unwrap_annotated(desc.type)[0])

        if _is_upload(field_type):
            upload = form.get_file(desc.wire_name)
            if upload is not None:
                setattr(value, desc.name, upload)
            continue

        if _is_upload_list(field_type):
            uploads = form.get_all_files(desc.wire_name)
            if uploads:
                setattr(value, desc.name, uploads)
            continue

        raw = form.get_field(desc.wire_name) or desc.default or ""
        if raw:
            _set_scalar(value, desc, raw)
