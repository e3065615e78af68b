"""
JSON Schema generation with ``$ref`` deduplication.

A ``SchemaRegistry`` compiles types into JSON Schema fragments. Named
dataclasses are registered once under ``components.schemas`` and referenced
with ``$ref``; cyclic type graphs terminate because a type's name is
recorded before its fields are walked.

Create one registry per contract build; registries are not shared.
"""

from __future__ import annotations

import copy
import inspect
import logging
import types
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import (
    Any, Dict, FrozenSet, List, Literal, Optional, Protocol, Set, Tuple, Union,
    get_args, get_origin, runtime_checkable,
)

from .._uploads import UploadFile
from ..faults.problem import problem_schema
from ..request import Request
from .markers import Redirect, Stream, Void
from .metadata import extract, is_anonymous, is_struct, type_name, unwrap_annotated, unwrap_optional

logger = logging.getLogger("pactum.schema")

REF_PREFIX = "#/components/schemas/"
PROBLEM_SCHEMA_NAME = "ProblemDetail"


# ─── Capability protocols ────────────────────────────────────────────────────

@runtime_checkable
class SchemaProvider(Protocol):
    """Type that supplies its own schema instead of the inferred one."""

    @classmethod
    def json_schema(cls) -> Dict[str, Any]: ...


@runtime_checkable
class SchemaTransformer(Protocol):
    """Type that post-processes its inferred (or provided) schema."""

    @classmethod
    def transform_schema(cls, schema: Dict[str, Any]) -> Dict[str, Any]: ...


# ─── Fixed fragments ─────────────────────────────────────────────────────────

_WELL_KNOWN: Dict[Any, Dict[str, Any]] = {
    datetime: {"type": "string", "format": "date-time"},
    date: {"type": "string", "format": "date"},
    timedelta: {"type": "string", "format": "duration"},
    Void: {},
    Stream: {},
    Redirect: {},
    Request: {},
    UploadFile: {"type": "string", "format": "binary"},
}

_PRIMITIVES: Dict[Any, Dict[str, Any]] = {
    str: {"type": "string"},
    bool: {"type": "boolean"},
    int: {"type": "integer"},
    float: {"type": "number"},
    Decimal: {"type": "number"},
    bytes: {"type": "string", "contentEncoding": "base64"},
    bytearray: {"type": "string", "contentEncoding": "base64"},
}

_SEQUENCES = (list, tuple, set, frozenset, List, Tuple, Set, FrozenSet)


def _json_type_of(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    return None


class SchemaRegistry:
    """
    Per-build schema compiler.

    Attributes:
        names: Type identity -> definition name
        definitions: Definition name -> schema (``components.schemas``)
    """

    def __init__(self) -> None:
        self.names: Dict[Any, str] = {}
        self.definitions: Dict[str, Dict[str, Any]] = {}
        self._inlining: Set[Any] = set()

    def ref(self, name: str) -> Dict[str, Any]:
        return {"$ref": REF_PREFIX + name}

    def register(self, name: str, schema: Dict[str, Any]) -> Dict[str, Any]:
        """Install a hand-written definition (e.g. the problem schema)."""
        self.definitions[name] = schema
        return self.ref(name)

    def type_to_schema(self, tp: Any) -> Dict[str, Any]:
        """
        Compile ``tp`` into a schema fragment.

        Idempotent per registry: repeated calls return equal fragments and
        never add a second definition for the same type.
        """
        tp, _ = unwrap_annotated(tp)
        tp, _ = unwrap_optional(tp)

        if tp is Any or tp is object or tp is None or tp is type(None):
            return {}

        if isinstance(tp, type):
            for known, fragment in _WELL_KNOWN.items():
                if tp is known or issubclass(tp, known):
                    return dict(fragment)
            if tp in _PRIMITIVES:
                return dict(_PRIMITIVES[tp])
            if issubclass(tp, Enum):
                return self._enum_schema([member.value for member in tp])
            if is_struct(tp):
                return self._struct_ref(tp)
            if issubclass(tp, bool):
                return {"type": "boolean"}
            if issubclass(tp, int):
                return {"type": "integer"}
            if issubclass(tp, float):
                return {"type": "number"}
            if issubclass(tp, str):
                return {"type": "string"}

        origin = get_origin(tp)
        args = get_args(tp)

        if origin is Literal:
            return self._enum_schema(list(args))

        if origin is Union or origin is types.UnionType:
            members = [a for a in args if a is not type(None)]
            return {"anyOf": [self.type_to_schema(a) for a in members]}

        if tp in _SEQUENCES or origin in _SEQUENCES:
            if origin is tuple and args and not (len(args) == 2 and args[1] is Ellipsis):
                return {
                    "type": "array",
                    "prefixItems": [self.type_to_schema(a) for a in args],
                    "minItems": len(args),
                    "maxItems": len(args),
                }
            return {"type": "array", "items": self.type_to_schema(args[0]) if args else {}}

        if tp is dict or origin is dict:
            if len(args) == 2:
                key_type, value_type = args
                if key_type is not str:
                    return {"type": "object"}
                return {"type": "object", "additionalProperties": self.type_to_schema(value_type)}
            return {"type": "object"}

        return {}

    # ─── Structs ──────────────────────────────────────────────────────────

    def _struct_ref(self, tp: type) -> Dict[str, Any]:
        if is_anonymous(tp) and tp not in self.names:
            if tp not in self._inlining:
                self._inlining.add(tp)
                try:
                    return self.struct_schema(tp)
                finally:
                    self._inlining.discard(tp)
            # An inline type that reaches itself is registered under its name.
            logger.debug("Inline schema %s is recursive; registering it", type_name(tp))

        name = self.names.get(tp)
        if name is None:
            name = type_name(tp)
            owner = next((t for t, n in self.names.items() if n == name), None)
            if owner is not None:
                logger.warning(
                    "Schema name %r is shared by %s.%s and %s.%s; the last one registered wins",
                    name, owner.__module__, owner.__qualname__, tp.__module__, tp.__qualname__,
                )
            # Record the name before walking fields so cycles resolve to a $ref.
            self.names[tp] = name
            if isinstance(tp, SchemaProvider):
                schema = copy.deepcopy(tp.json_schema())
            else:
                schema = self.struct_schema(tp)
            if isinstance(tp, SchemaTransformer):
                schema = tp.transform_schema(schema)
            self.definitions[name] = schema
            logger.debug("Registered schema %s", name)
        return self.ref(name)

    def struct_schema(self, tp: type) -> Dict[str, Any]:
        """
        Inline object schema of a dataclass.

        Parameter, form and raw fields belong to the operation rather than
        the payload and are left out.
        """
        properties: Dict[str, Any] = {}
        required: List[str] = []

        for desc in extract(tp):
            if not desc.in_payload:
                continue
            prop = self.type_to_schema(desc.type)
            if desc.doc:
                prop["description"] = desc.doc
            prop.update(desc.constraints.to_schema())
            properties[desc.json_name] = prop
            if desc.required:
                required.append(desc.json_name)

        schema: Dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required

        doc = tp.__doc__
        if doc and not doc.startswith(f"{tp.__name__}("):
            schema["description"] = inspect.cleandoc(doc)
        return schema

    def _enum_schema(self, values: List[Any]) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"enum": list(values)}
        kinds = {_json_type_of(v) for v in values}
        if len(kinds) == 1 and None not in kinds:
            schema["type"] = kinds.pop()
        return schema

    def parameter_schema(self, tp: Any) -> Dict[str, Any]:
        """Schema of a parameter field; structs collapse to strings."""
        schema = self.type_to_schema(tp)
        return schema if "$ref" not in schema else {"type": "string"}

    def register_problem(self) -> Dict[str, Any]:
        """Register the shared ``ProblemDetail`` definition and return its ``$ref``."""
        if PROBLEM_SCHEMA_NAME not in self.definitions:
            self.register(PROBLEM_SCHEMA_NAME, problem_schema())
        return self.ref(PROBLEM_SCHEMA_NAME)
