"""
Request shape classification.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Any, Dict

from .markers import BindingSource
from .metadata import extract, is_void


class RequestShape(str, Enum):
    """How the fields of a request type collectively relate to the wire."""
    EMPTY = "empty"
    WHOLE_BODY = "whole_body"
    PARAMS_ONLY = "params_only"
    PARAMS_PLUS_BODY = "params_plus_body"
    MULTIPART_FORM = "multipart_form"


_shapes: Dict[Any, RequestShape] = {}
_shapes_lock = threading.Lock()


def classify(tp: Any) -> RequestShape:
    """
    Classify a request type. Total and memoized by type identity.

    Priority: EMPTY > MULTIPART_FORM > PARAMS_PLUS_BODY > PARAMS_ONLY > WHOLE_BODY.
    """
    shape = _shapes.get(tp)
    if shape is None:
        shape = _classify(tp)
        with _shapes_lock:
            _shapes.setdefault(tp, shape)
    return shape


def _classify(tp: Any) -> RequestShape:
    if is_void(tp):
        return RequestShape.EMPTY

    sources = {desc.source for desc in extract(tp)}

    if BindingSource.FORM in sources:
        return RequestShape.MULTIPART_FORM
    if BindingSource.BODY in sources:
        return RequestShape.PARAMS_PLUS_BODY
    if sources & {
        BindingSource.PATH,
        BindingSource.QUERY,
        BindingSource.HEADER,
        BindingSource.COOKIE,
        BindingSource.RAW,
    }:
        return RequestShape.PARAMS_ONLY
    return RequestShape.WHOLE_BODY
