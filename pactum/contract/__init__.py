"""
Pactum contract engine.

Request and response shapes are plain dataclasses annotated with binding
markers. From those types the engine derives:

- Request binding (``bind``) from path, query, header, cookie, body and form
- Constraint validation (``validate``) reporting every violation
- JSON Schema with ``$ref`` deduplication (``SchemaRegistry``)
- Content negotiation (``CodecRegistry``)
- OpenAPI 3.1 documents (``ContractBuilder``)
- A handler pipeline tying them together (``Endpoint``)
"""

from .markers import (
    BindingSource,
    Cookie,
    Form,
    Header,
    Meta,
    Param,
    Path,
    Query,
    Raw,
    RawRequest,
    Redirect,
    Stream,
    Void,
    inline,
)
from .metadata import ConstraintSet, FieldDescriptor, extract, find_field, new, zero_value
from .classify import RequestShape, classify
from .convert import format_duration, parse_duration, structure, unstructure
from .codecs import (
    BUILTIN_CODECS,
    CodecEntry,
    CodecRegistry,
    DecodeError,
    JSONCodec,
    MessagePackCodec,
    XMLCodec,
    YAMLCodec,
    parse_accept,
)
from .binder import bind
from .validator import validate
from .schema import REF_PREFIX, SchemaProvider, SchemaRegistry, SchemaTransformer
from .openapi import ContractBuilder, Route, generate_operation_id
from .endpoint import CookieSetter, Endpoint, HeaderSetter, SelfValidator, StatusCoder

__all__ = [
    # Markers
    "BindingSource", "Param", "Path", "Query", "Header", "Cookie", "Form",
    "Raw", "RawRequest", "Meta", "Void", "Stream", "Redirect", "inline",
    # Metadata
    "ConstraintSet", "FieldDescriptor", "extract", "find_field", "new", "zero_value",
    "RequestShape", "classify",
    # Conversion
    "structure", "unstructure", "parse_duration", "format_duration",
    # Codecs
    "CodecEntry", "CodecRegistry", "DecodeError", "JSONCodec", "XMLCodec",
    "YAMLCodec", "MessagePackCodec", "BUILTIN_CODECS", "parse_accept",
    # Binding & validation
    "bind", "validate",
    # Schema & documents
    "SchemaRegistry", "SchemaProvider", "SchemaTransformer", "REF_PREFIX",
    "ContractBuilder", "Route", "generate_operation_id",
    # Pipeline
    "Endpoint", "SelfValidator", "StatusCoder", "HeaderSetter", "CookieSetter",
]
