"""
Constraint validation.

Walks a bound value and checks every field against its ``ConstraintSet``,
collecting all violations into a single ``ValidationFault``.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, List, Optional, Set

from ..faults import ValidationFault, Violation
from .markers import BindingSource
from .metadata import ConstraintSet, extract, is_struct


def validate(value: Any) -> Optional[ValidationFault]:
    """
    Check every constraint on ``value`` and its nested structs.

    Returns:
        ``None`` when the value is valid, otherwise one fault carrying
        every violation in field order
    """
    if value is None or not is_struct(type(value)):
        return None
    violations: List[Violation] = []
    _collect(value, "", violations, set())
    if violations:
        return ValidationFault(violations)
    return None


def _collect(obj: Any, prefix: str, violations: List[Violation], seen: Set[int]) -> None:
    if id(obj) in seen:
        return
    seen.add(id(obj))

    for desc in extract(type(obj)):
        if desc.skip or desc.source is BindingSource.RAW:
            continue

        field_value = getattr(obj, desc.name, None)

        if desc.is_body:
            if field_value is not None:
                _collect(field_value, "body", violations, seen)
            continue

        path = f"{prefix}.{desc.json_name}" if prefix else desc.json_name
        _check(desc.constraints, field_value, path, violations)

        if (
            field_value is not None
            and is_struct(type(field_value))
            and not desc.is_param
            and desc.source is not BindingSource.FORM
        ):
            _collect(field_value, path, violations, seen)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Optional[re.Pattern]:
    try:
        return re.compile(pattern)
    except re.error:
        return None


def _format_bound(bound: float) -> str:
    bound = float(bound)
    return str(int(bound)) if bound.is_integer() else repr(bound)


def _check(constraints: ConstraintSet, value: Any, path: str, violations: List[Violation]) -> None:
    if isinstance(value, str):
        if constraints.min_length is not None and len(value) < constraints.min_length:
            violations.append(Violation(path, f"must be at least {constraints.min_length} characters", value))
        if constraints.max_length is not None and len(value) > constraints.max_length:
            violations.append(Violation(path, f"must be at most {constraints.max_length} characters", value))
        if constraints.pattern is not None:
            compiled = _compile(constraints.pattern)
            if compiled is not None and not compiled.search(value):
                violations.append(Violation(path, f"must match pattern {constraints.pattern}", value))

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
        if constraints.minimum is not None and number < constraints.minimum:
            violations.append(Violation(path, f"must be at least {_format_bound(constraints.minimum)}", number))
        if constraints.maximum is not None and number > constraints.maximum:
            violations.append(Violation(path, f"must be at most {_format_bound(constraints.maximum)}", number))

    if isinstance(value, str) and constraints.enum is not None and value not in constraints.enum:
        allowed = ",".join(constraints.enum)
        violations.append(Violation(path, f"must be one of [{allowed}]", value))

    if isinstance(value, (list, tuple)):
        length = len(value)
        if constraints.min_items is not None and length < constraints.min_items:
            violations.append(Violation(path, f"must have at least {constraints.min_items} items", length))
        if constraints.max_items is not None and length > constraints.max_items:
            violations.append(Violation(path, f"must have at most {constraints.max_items} items", length))
