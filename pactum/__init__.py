"""
Pactum - type-driven HTTP contracts

Declare request and response shapes once as annotated dataclasses and get:
- Binding: path, query, header, cookie, body and multipart form
- Validation: declarative constraints, every violation reported
- Schemas: JSON Schema and OpenAPI 3.1 with shared ``$ref`` definitions
- Negotiation: JSON, XML, YAML and MessagePack codecs
- Faults: structured errors rendered as RFC 9457 problem details
"""

__version__ = "0.1.0"

# ============================================================================
# Configuration & Plumbing
# ============================================================================

from .config import ConfigLoader, EngineConfig, OpenAPISettings, load_config
from .request import Request
from .response import Response, ResponseCookie
from ._datastructures import Headers, MultiDict, MutableHeaders, ParsedContentType
from ._uploads import FormData, UploadFile

# ============================================================================
# Faults
# ============================================================================

from .faults import (
    BindFault,
    ConfigFault,
    Fault,
    FaultDomain,
    HTTPFault,
    NotAcceptableFault,
    Severity,
    UnsupportedMediaTypeFault,
    ValidationFault,
    Violation,
    problem_details,
)

# ============================================================================
# Contract Engine
# ============================================================================

from .contract import (
    BindingSource,
    CodecEntry,
    CodecRegistry,
    ContractBuilder,
    Cookie,
    Endpoint,
    Form,
    Header,
    Meta,
    Path,
    Query,
    Raw,
    RawRequest,
    Redirect,
    RequestShape,
    Route,
    SchemaRegistry,
    Stream,
    Void,
    bind,
    classify,
    extract,
    inline,
    validate,
)

__all__ = [
    "__version__",
    # Configuration & plumbing
    "EngineConfig", "OpenAPISettings", "ConfigLoader", "load_config",
    "Request", "Response", "ResponseCookie",
    "Headers", "MultiDict", "MutableHeaders", "ParsedContentType",
    "UploadFile", "FormData",
    # Faults
    "Fault", "FaultDomain", "Severity", "BindFault", "ConfigFault", "HTTPFault",
    "NotAcceptableFault", "UnsupportedMediaTypeFault", "ValidationFault",
    "Violation", "problem_details",
    # Contract engine
    "BindingSource", "Path", "Query", "Header", "Cookie", "Form", "Raw",
    "RawRequest", "Meta", "Void", "Stream", "Redirect", "inline",
    "extract", "classify", "RequestShape", "bind", "validate",
    "CodecEntry", "CodecRegistry", "SchemaRegistry", "ContractBuilder", "Route",
    "Endpoint",
]
