"""
RFC 9457 problem details rendering for faults.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Dict

from .core import Fault
from .domains import ValidationFault

PROBLEM_CONTENT_TYPE = "application/problem+json"


def status_title(status: int) -> str:
    """Reason phrase for a status code, or an empty string if unknown."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


def problem_details(fault: Fault, *, instance: str | None = None) -> Dict[str, Any]:
    """
    Build a problem document for a fault.

    Non-public faults never leak their message; the detail collapses to
    the status reason phrase.
    """
    if isinstance(fault, ValidationFault):
        problem: Dict[str, Any] = {
            "type": "about:blank",
            "title": fault.title,
            "status": fault.status,
            "detail": fault.message,
            "errors": [v.to_dict() for v in fault.violations],
        }
    else:
        title = status_title(fault.status)
        problem = {
            "type": "about:blank",
            "title": title,
            "status": fault.status,
            "detail": fault.message if fault.public else title,
        }
    if instance:
        problem["instance"] = instance
    return problem


def problem_schema() -> Dict[str, Any]:
    """JSON Schema of a problem document, registered as ``ProblemDetail``."""
    return {
        "type": "object",
        "properties": {
            "type": {"type": "string"},
            "title": {"type": "string"},
            "status": {"type": "integer"},
            "detail": {"type": "string"},
            "instance": {"type": "string"},
            "errors": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "field": {"type": "string"},
                        "message": {"type": "string"},
                        "value": {},
                    },
                    "required": ["field", "message"],
                },
            },
        },
        "required": ["status"],
    }
