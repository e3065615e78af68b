"""
Pactum faults - typed fault signals.

Every error the engine surfaces is a ``Fault``: a structured exception
carrying a stable code, a domain, a severity and the HTTP status it maps to.

Core exports:
- Fault, FaultDomain, Severity
- BindFault, ValidationFault, Violation
- NotAcceptableFault, UnsupportedMediaTypeFault
- HTTPFault, ConfigFault
- problem_details: RFC 9457 rendering
"""

from .core import Fault, FaultDomain, Severity, DOMAIN_DEFAULTS
from .domains import (
    BIND_SOURCES,
    BindFault,
    ConfigFault,
    ConfigInvalidFault,
    HTTPFault,
    NegotiationFault,
    NotAcceptableFault,
    UnsupportedMediaTypeFault,
    ValidationFault,
    Violation,
)
from .problem import PROBLEM_CONTENT_TYPE, problem_details, problem_schema, status_title

__all__ = [
    "Fault",
    "FaultDomain",
    "Severity",
    "DOMAIN_DEFAULTS",
    "BIND_SOURCES",
    "BindFault",
    "ConfigFault",
    "ConfigInvalidFault",
    "HTTPFault",
    "NegotiationFault",
    "NotAcceptableFault",
    "UnsupportedMediaTypeFault",
    "ValidationFault",
    "Violation",
    "PROBLEM_CONTENT_TYPE",
    "problem_details",
    "problem_schema",
    "status_title",
]
