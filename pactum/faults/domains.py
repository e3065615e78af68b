"""
Pactum faults - domain-specific fault types.

Provides concrete fault classes for each domain:
- CONFIG faults
- BINDING faults
- VALIDATION faults
- NEGOTIATION faults
- FLOW faults (handler-raised HTTP errors)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            public=False,
            metadata=metadata,
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# BINDING Faults
# ============================================================================

BIND_SOURCES = ("path", "query", "header", "cookie", "body", "form")


class BindFault(Fault):
    """
    A request could not be bound onto its declared type (400).

    Binding is fail-fast: the first failing field aborts the whole bind.

    Attributes:
        source: Transport location that failed (path, query, header,
            cookie, body or form)
        field: Wire name of the failing field, or None when the failure
            concerns the whole payload (e.g. malformed JSON body)
        cause: Underlying conversion or decode error
    """

    domain = FaultDomain.BINDING
    status = 400
    public = True

    def __init__(self, source: str, field: Optional[str] = None, cause: Optional[BaseException] = None):
        if source not in BIND_SOURCES:
            raise ValueError(f"Unknown binding source: {source!r}")
        self.source = source
        self.field = field
        self.cause = cause

        message = f"bind {source}"
        if field:
            message += f": {field}"
        if cause is not None:
            message += f": {cause}"

        super().__init__(
            code=f"BIND_{source.upper()}",
            message=message,
            metadata={"source": source, "field": field},
        )
        if cause is not None:
            self.__cause__ = cause


# ============================================================================
# VALIDATION Faults
# ============================================================================

@dataclass
class Violation:
    """A single failed constraint, addressed by its dotted field path."""

    field: str
    message: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        data = {"field": self.field, "message": self.message}
        if self.value is not None:
            data["value"] = self.value
        return data


class ValidationFault(Fault):
    """
    Aggregate of every constraint violation found in one validation pass (400).

    Never constructed with an empty list; a valid value produces no fault at all.
    """

    code = "VALIDATION_FAILED"
    domain = FaultDomain.VALIDATION
    status = 400
    public = True
    title = "Validation Failed"

    def __init__(self, violations: List[Violation]):
        if not violations:
            raise ValueError("ValidationFault requires at least one violation")
        self.violations = list(violations)
        super().__init__(
            message=f"{len(self.violations)} constraint violation(s)",
            metadata={"violations": [v.to_dict() for v in self.violations]},
        )

    @property
    def fields(self) -> List[str]:
        """Field paths of every violation, in discovery order."""
        return [v.field for v in self.violations]


# ============================================================================
# NEGOTIATION Faults
# ============================================================================

class NegotiationFault(Fault):
    """Base class for content negotiation faults."""

    domain = FaultDomain.NEGOTIATION
    public = True


class NotAcceptableFault(NegotiationFault):
    """No registered encoder satisfies the Accept header (406)."""

    code = "NOT_ACCEPTABLE"
    status = 406

    def __init__(self, accept: str, available: Optional[List[str]] = None):
        self.accept = accept
        super().__init__(
            message=f"No acceptable representation for Accept: {accept}",
            metadata={"accept": accept, "available": list(available or [])},
        )


class UnsupportedMediaTypeFault(NegotiationFault):
    """No registered decoder understands the request Content-Type (415)."""

    code = "UNSUPPORTED_MEDIA_TYPE"
    status = 415

    def __init__(self, content_type: Optional[str], reason: Optional[str] = None):
        self.content_type = content_type
        super().__init__(
            message=reason or f"Unsupported media type: {content_type}",
            metadata={"content_type": content_type},
        )


# ============================================================================
# FLOW Faults
# ============================================================================

class HTTPFault(Fault):
    """
    Raised by handlers to answer with an explicit status and message.

    Example:
        ```python
        raise HTTPFault(404, "user not found")
        ```
    """

    code = "HTTP_ERROR"
    domain = FaultDomain.FLOW
    public = True

    def __init__(self, status: int, message: str, **metadata):
        super().__init__(
            code=f"HTTP_{status}",
            message=message,
            status=status,
            severity=Severity.ERROR if status >= 500 else Severity.INFO,
            metadata=metadata,
        )
