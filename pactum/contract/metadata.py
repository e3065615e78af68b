"""
Metadata extraction.

Walks a dataclass once and derives one ``FieldDescriptor`` per exported
field: binding source, wire name, binding default, documentation and
constraints. Results are memoized per type identity.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import types
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import (
    Annotated, Any, Dict, List, Optional, Tuple, Union,
    get_args, get_origin, get_type_hints,
)

from .._uploads import UploadFile
from ..request import Request
from .markers import BindingSource, Meta, Param, Raw, Redirect, Stream, Void

logger = logging.getLogger("pactum.metadata")

BODY_FIELD = "body"

# Types that are never treated as structs even though some are dataclasses.
WELL_KNOWN_TYPES = (datetime, date, timedelta, Void, Stream, Redirect, UploadFile, Request)


# ============================================================================
# Descriptors
# ============================================================================

@dataclass(frozen=True)
class ConstraintSet:
    """Field-level constraints plus the ``default``/``example`` annotations."""

    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    enum: Optional[Tuple[str, ...]] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    default: Any = None
    example: Any = None

    @property
    def empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in dataclasses.fields(self))

    def to_schema(self) -> Dict[str, Any]:
        """JSON Schema keywords for the constraints that are set."""
        keywords = {
            "minLength": self.min_length,
            "maxLength": self.max_length,
            "pattern": self.pattern,
            "minimum": self.minimum,
            "maximum": self.maximum,
            "enum": list(self.enum) if self.enum is not None else None,
            "minItems": self.min_items,
            "maxItems": self.max_items,
            "default": self.default,
            "example": self.example,
        }
        return {key: value for key, value in keywords.items() if value is not None}


@dataclass(frozen=True)
class FieldDescriptor:
    """
    Binding descriptor for one exported field.

    Attributes:
        name: Python attribute name
        wire_name: Name on the wire (parameter name for bound fields,
            JSON property name otherwise)
        json_name: JSON property name, also used for validation paths
        source: Binding source; at most one per field
        type: Field type with ``Annotated`` stripped
        required: Declared required (path parameters are always required)
        default: Raw string fallback for query/header/cookie/form binding
        doc: Documentation copied into the schema description
        constraints: Constraint set
        skip: Excluded from the JSON payload and its schema
    """

    name: str
    wire_name: str
    json_name: str
    source: BindingSource
    type: Any
    required: bool = False
    default: Optional[str] = None
    doc: Optional[str] = None
    constraints: ConstraintSet = field(default_factory=ConstraintSet)
    skip: bool = False

    @property
    def is_param(self) -> bool:
        return self.source.is_param

    @property
    def is_body(self) -> bool:
        return self.source is BindingSource.BODY

    @property
    def in_payload(self) -> bool:
        """Whether the field belongs to the JSON payload of its type."""
        return not self.skip and self.source in (BindingSource.NONE, BindingSource.BODY)


# ============================================================================
# Type helpers
# ============================================================================

def unwrap_annotated(tp: Any) -> Tuple[Any, Tuple[Any, ...]]:
    """Split ``Annotated[T, *markers]`` into ``(T, markers)``."""
    if get_origin(tp) is Annotated:
        args = get_args(tp)
        inner, markers = unwrap_annotated(args[0])
        return inner, markers + tuple(args[1:])
    return tp, ()


def unwrap_optional(tp: Any) -> Tuple[Any, bool]:
    """Reduce ``Optional[X]`` to ``(X, True)``; other types pass through."""
    origin = get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1 and len(get_args(tp)) == 2:
            return args[0], True
    return tp, False


def is_struct(tp: Any) -> bool:
    """A dataclass type that is not one of the well-known leaf types."""
    return (
        isinstance(tp, type)
        and dataclasses.is_dataclass(tp)
        and not issubclass(tp, WELL_KNOWN_TYPES)
    )


def is_anonymous(tp: Any) -> bool:
    """Anonymous structs are inlined into their parent schema."""
    return bool(getattr(tp, "__dict__", {}).get("__pactum_inline__")) or not getattr(tp, "__name__", "")


def is_void(tp: Any) -> bool:
    return tp is None or tp is type(None) or tp is Void


def type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


# ============================================================================
# Extraction
# ============================================================================

_cache: Dict[Any, Tuple[FieldDescriptor, ...]] = {}
_cache_lock = threading.Lock()


def extract(tp: Any) -> Tuple[FieldDescriptor, ...]:
    """
    Enumerate the exported fields of a dataclass as descriptors.

    Pure and memoized by type identity; non-dataclass types yield no fields.
    """
    cached = _cache.get(tp)
    if cached is not None:
        return cached

    with _cache_lock:
        cached = _cache.get(tp)
        if cached is None:
            cached = _extract(tp)
            _cache[tp] = cached
            logger.debug("Extracted %d field descriptor(s) for %s", len(cached), type_name(tp))
    return cached


def clear_cache() -> None:
    """Forget memoized descriptors (for tests that redefine types)."""
    with _cache_lock:
        _cache.clear()


def _resolve_hints(tp: type) -> Dict[str, Any]:
    localns = {tp.__name__: tp}
    return get_type_hints(tp, localns=localns, include_extras=True)


def _extract(tp: Any) -> Tuple[FieldDescriptor, ...]:
    if not is_struct(tp):
        return ()

    hints = _resolve_hints(tp)
    descriptors: List[FieldDescriptor] = []

    for f in dataclasses.fields(tp):
        if f.name.startswith("_"):
            continue
        descriptors.append(_describe(f.name, hints.get(f.name, f.type)))

    return tuple(descriptors)


def _describe(attr: str, annotation: Any) -> FieldDescriptor:
    base, markers = unwrap_annotated(annotation)

    param: Optional[Param] = None
    raw = False
    meta = Meta()
    for marker in markers:
        if isinstance(marker, Param):
            if param is not None:
                raise TypeError(f"Field '{attr}' declares more than one binding source")
            param = marker
        elif isinstance(marker, Raw):
            raw = True
        elif isinstance(marker, Meta):
            meta = _merge_meta(meta, marker)

    inner, _ = unwrap_optional(base)
    if inner is Request:
        raw = True

    json_name = meta.name or attr
    if raw:
        source = BindingSource.RAW
        wire_name = json_name
    elif param is not None:
        source = param.source
        wire_name = param.name or attr
    elif attr == BODY_FIELD and is_struct(inner):
        source = BindingSource.BODY
        wire_name = json_name
    else:
        source = BindingSource.NONE
        wire_name = json_name

    bind_default = param.default if param is not None else None
    if source is BindingSource.PATH:
        bind_default = None

    constraints = ConstraintSet(
        min_length=meta.min_length,
        max_length=meta.max_length,
        pattern=meta.pattern,
        minimum=meta.minimum,
        maximum=meta.maximum,
        enum=_normalize_enum(meta.enum),
        min_items=meta.min_items,
        max_items=meta.max_items,
        default=meta.default if meta.default is not None else bind_default,
        example=meta.example,
    )

    return FieldDescriptor(
        name=attr,
        wire_name=wire_name,
        json_name=json_name,
        source=source,
        type=base,
        required=meta.required or source is BindingSource.PATH,
        default=bind_default,
        doc=meta.doc,
        constraints=constraints,
        skip=meta.skip,
    )


def _merge_meta(left: Meta, right: Meta) -> Meta:
    changes = {}
    for f in dataclasses.fields(right):
        value = getattr(right, f.name)
        if value != f.default:
            changes[f.name] = value
    return dataclasses.replace(left, **changes)


def _normalize_enum(enum: Any) -> Optional[Tuple[str, ...]]:
    if enum is None:
        return None
    if isinstance(enum, str):
        return tuple(enum.split(","))
    return tuple(str(item) for item in enum)


def find_field(tp: Any, source: BindingSource) -> Optional[FieldDescriptor]:
    """First field of ``tp`` bound from ``source``, if any."""
    for desc in extract(tp):
        if desc.source is source:
            return desc
    return None


# ============================================================================
# Zero values
# ============================================================================

_SCALAR_ZEROS = {
    str: "",
    int: 0,
    float: 0.0,
    bool: False,
    bytes: b"",
    Decimal: Decimal(0),
}


def zero_value(tp: Any) -> Any:
    """
    The zero state of a type: empty scalars and collections, ``None`` for
    optionals and opaque leaves, and a zero instance for structs.
    """
    tp, _ = unwrap_annotated(tp)
    tp, optional = unwrap_optional(tp)
    if optional:
        return None
    if tp in _SCALAR_ZEROS:
        return _SCALAR_ZEROS[tp]
    if tp is timedelta:
        return timedelta(0)
    if is_struct(tp):
        return new(tp)

    origin = get_origin(tp) or tp
    if origin in (list, List):
        return []
    if origin in (dict, Dict):
        return {}
    if origin is tuple:
        return ()
    if origin in (set, frozenset):
        return origin()
    return None


def new(tp: type) -> Any:
    """
    Instantiate a dataclass in its zero state.

    Fields with declared defaults keep them; the rest get ``zero_value``.
    """
    hints = _resolve_hints(tp)
    kwargs = {}
    for f in dataclasses.fields(tp):
        if not f.init:
            continue
        if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            kwargs[f.name] = zero_value(hints.get(f.name, f.type))
    return tp(**kwargs)
