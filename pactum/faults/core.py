"""
Pactum faults - core types.

Defines:
- Severity levels
- FaultDomain (explicit fault domains)
- Fault base class (structured fault objects carrying an HTTP status)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Determines the logging level used when a fault crosses the endpoint
    boundary.
    """
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the functional area where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


# Standard Domains
FaultDomain.CONFIG = FaultDomain("config", "Configuration errors")
FaultDomain.BINDING = FaultDomain("binding", "Request binding errors")
FaultDomain.VALIDATION = FaultDomain("validation", "Constraint violations")
FaultDomain.NEGOTIATION = FaultDomain("negotiation", "Content negotiation errors")
FaultDomain.SCHEMA = FaultDomain("schema", "Contract generation errors")
FaultDomain.IO = FaultDomain("io", "Request I/O errors")
FaultDomain.FLOW = FaultDomain("flow", "Handler execution errors")
FaultDomain.SYSTEM = FaultDomain("system", "System level faults")


DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.BINDING: {"severity": Severity.INFO, "retryable": False},
    FaultDomain.VALIDATION: {"severity": Severity.INFO, "retryable": False},
    FaultDomain.NEGOTIATION: {"severity": Severity.INFO, "retryable": False},
    FaultDomain.SCHEMA: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.IO: {"severity": Severity.WARN, "retryable": True},
    FaultDomain.FLOW: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.SYSTEM: {"severity": Severity.FATAL, "retryable": False},
}


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Base fault class - structured, typed fault object.

    Attributes:
        code: Stable machine-readable identifier (e.g., "BIND_QUERY")
        message: Human-readable summary
        severity: Fault severity (INFO, WARN, ERROR, FATAL)
        domain: Fault domain (BINDING, VALIDATION, ...)
        status: HTTP status the fault maps to on the wire
        retryable: Whether this fault can be retried
        public: Whether the message is safe to expose to the client
        metadata: Additional context data

    Subclasses usually pin ``code``, ``message``, ``domain`` and ``status``
    as class attributes:

        ```python
        class ItemGone(Fault):
            code = "ITEM_GONE"
            message = "Item no longer exists"
            domain = FaultDomain.FLOW
            status = 410
            public = True
        ```
    """

    status: int = 500
    public: bool = False

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        public: Optional[bool] = None,
        status: Optional[int] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        # Fallback to class attributes if not provided
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        defaults = DOMAIN_DEFAULTS.get(self.domain, {"severity": Severity.ERROR, "retryable": False})
        self.severity = severity or getattr(type(self), "severity", None) or defaults["severity"]
        self.retryable = retryable if retryable is not None else defaults["retryable"]
        if public is not None:
            self.public = public
        if status is not None:
            self.status = status
        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, domain={self.domain.value}, "
            f"status={self.status}, severity={self.severity.value})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize fault to dictionary.

        Returns:
            Dictionary representation suitable for logging/serialization
        """
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "status": self.status,
            "retryable": self.retryable,
            "public": self.public,
            "metadata": self.metadata,
        }
