"""
Tests for JSON Schema generation and $ref deduplication.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Set, Tuple

import pytest

from pactum.contract.markers import Form, Meta, Path, Query, RawRequest, Void, inline
from pactum.contract.schema import REF_PREFIX, SchemaRegistry
from pactum._uploads import UploadFile


class Status(Enum):
    ACTIVE = "active"
    BANNED = "banned"


@dataclass
class Address:
    """Postal address."""
    street: str = ""
    city: Annotated[str, Meta(doc="City name", min_length=2)] = ""


@dataclass
class User:
    id: Annotated[str, Meta(required=True)] = ""
    name: Annotated[str, Meta(name="displayName", max_length=64, example="Ada")] = ""
    home: Address = field(default_factory=Address)
    work: Optional[Address] = None
    status: Status = Status.ACTIVE
    secret: Annotated[str, Meta(skip=True)] = ""


@dataclass
class TreeNode:
    value: int = 0
    children: List["TreeNode"] = field(default_factory=list)


@dataclass
class Ping:
    a: "Pong" = None


@dataclass
class Pong:
    b: Optional[Ping] = None


@inline
@dataclass
class Point:
    x: float = 0.0
    y: float = 0.0


@dataclass
class Shape:
    origin: Point = field(default_factory=Point)


@inline
@dataclass
class Outline:
    label: str = ""
    children: List["Outline"] = field(default_factory=list)


@inline
@dataclass
class Branch:
    leaf: Optional["Leaf"] = None


@inline
@dataclass
class Leaf:
    branch: Optional[Branch] = None


@dataclass
class Search:
    q: Annotated[str, Query("q")] = ""
    id: Annotated[str, Path("id")] = ""
    file: Annotated[str, Form("file")] = ""
    request: RawRequest = None
    limit: int = 10


@dataclass
class Money:
    amount: int = 0

    @classmethod
    def json_schema(cls):
        return {"type": "string", "pattern": r"^\d+\.\d{2}$"}


@dataclass
class Tagged:
    label: str = ""

    @classmethod
    def transform_schema(cls, schema):
        schema["x-tagged"] = True
        return schema


# ============================================================================
# Leaves
# ============================================================================


@pytest.mark.parametrize("tp, expected", [
    (str, {"type": "string"}),
    (int, {"type": "integer"}),
    (float, {"type": "number"}),
    (bool, {"type": "boolean"}),
    (bytes, {"type": "string", "contentEncoding": "base64"}),
    (Any, {}),
    (datetime, {"type": "string", "format": "date-time"}),
    (date, {"type": "string", "format": "date"}),
    (timedelta, {"type": "string", "format": "duration"}),
    (UploadFile, {"type": "string", "format": "binary"}),
    (Void, {}),
    (Optional[int], {"type": "integer"}),
])
def test_leaf_schemas(tp, expected):
    assert SchemaRegistry().type_to_schema(tp) == expected


def test_container_schemas():
    registry = SchemaRegistry()
    assert registry.type_to_schema(List[str]) == {"type": "array", "items": {"type": "string"}}
    assert registry.type_to_schema(Set[int]) == {"type": "array", "items": {"type": "integer"}}
    assert registry.type_to_schema(Dict[str, int]) == {
        "type": "object",
        "additionalProperties": {"type": "integer"},
    }
    assert registry.type_to_schema(Dict[int, str]) == {"type": "object"}
    assert registry.type_to_schema(Tuple[int, ...]) == {"type": "array", "items": {"type": "integer"}}


def test_enum_and_literal():
    registry = SchemaRegistry()
    assert registry.type_to_schema(Status) == {"type": "string", "enum": ["active", "banned"]}
    assert registry.type_to_schema(Literal[1, 2]) == {"type": "integer", "enum": [1, 2]}


def test_union_becomes_any_of():
    schema = SchemaRegistry().type_to_schema(int | str)
    assert schema == {"anyOf": [{"type": "integer"}, {"type": "string"}]}


# ============================================================================
# Named structs
# ============================================================================


def test_struct_is_registered_once_and_referenced():
    registry = SchemaRegistry()

    first = registry.type_to_schema(User)
    second = registry.type_to_schema(User)

    assert first == second == {"$ref": REF_PREFIX + "User"}
    assert set(registry.definitions) == {"User", "Address"}


def test_struct_properties():
    registry = SchemaRegistry()
    registry.type_to_schema(User)
    user = registry.definitions["User"]

    assert user["type"] == "object"
    assert user["required"] == ["id"]
    assert set(user["properties"]) == {"id", "displayName", "home", "work", "status"}
    assert user["properties"]["displayName"] == {"type": "string", "maxLength": 64, "example": "Ada"}
    assert user["properties"]["home"] == {"$ref": "#/components/schemas/Address"}
    assert user["properties"]["work"] == {"$ref": "#/components/schemas/Address"}

    address = registry.definitions["Address"]
    assert address["description"] == "Postal address."
    assert address["properties"]["city"] == {"type": "string", "description": "City name", "minLength": 2}


def test_shared_ref_nodes_are_independent():
    registry = SchemaRegistry()
    registry.type_to_schema(User)
    props = registry.definitions["User"]["properties"]
    props["home"]["description"] = "changed"
    assert "description" not in props["work"]


def test_self_reference_terminates():
    registry = SchemaRegistry()
    ref = registry.type_to_schema(TreeNode)

    assert ref == {"$ref": REF_PREFIX + "TreeNode"}
    node = registry.definitions["TreeNode"]
    assert node["properties"]["children"] == {"type": "array", "items": {"$ref": REF_PREFIX + "TreeNode"}}


def test_mutual_recursion_terminates():
    registry = SchemaRegistry()
    registry.type_to_schema(Ping)
    assert registry.definitions["Ping"]["properties"]["a"] == {"$ref": REF_PREFIX + "Pong"}
    assert registry.definitions["Pong"]["properties"]["b"] == {"$ref": REF_PREFIX + "Ping"}


def test_inline_struct_is_not_registered():
    registry = SchemaRegistry()
    registry.type_to_schema(Shape)
    assert "Point" not in registry.definitions
    assert registry.definitions["Shape"]["properties"]["origin"] == {
        "type": "object",
        "properties": {"x": {"type": "number"}, "y": {"type": "number"}},
    }


def test_recursive_inline_struct_is_registered():
    registry = SchemaRegistry()
    schema = registry.type_to_schema(Outline)

    children = {"type": "array", "items": {"$ref": REF_PREFIX + "Outline"}}
    assert schema == {
        "type": "object",
        "properties": {"label": {"type": "string"}, "children": children},
    }
    assert registry.definitions["Outline"]["properties"]["children"] == children


def test_mutually_recursive_inline_structs_terminate():
    registry = SchemaRegistry()
    schema = registry.type_to_schema(Branch)

    assert schema["properties"]["leaf"]["properties"]["branch"] == {"$ref": REF_PREFIX + "Branch"}
    assert set(registry.definitions) == {"Branch", "Leaf"}
    assert registry.definitions["Branch"]["properties"]["leaf"] == {"$ref": REF_PREFIX + "Leaf"}
    assert registry.definitions["Leaf"]["properties"]["branch"] == {"$ref": REF_PREFIX + "Branch"}


def test_binding_fields_are_excluded():
    registry = SchemaRegistry()
    registry.type_to_schema(Search)
    assert registry.definitions["Search"]["properties"] == {"limit": {"type": "integer"}}


def test_schema_provider_and_transformer():
    registry = SchemaRegistry()
    registry.type_to_schema(Money)
    registry.type_to_schema(Tagged)

    assert registry.definitions["Money"] == {"type": "string", "pattern": r"^\d+\.\d{2}$"}
    assert registry.definitions["Tagged"]["x-tagged"] is True
    assert registry.definitions["Tagged"]["properties"] == {"label": {"type": "string"}}


def test_name_collision_last_wins(caplog):
    def make(kind):
        @dataclass
        class Item:
            value: kind = None
        return Item

    first, second = make(int), make(str)
    registry = SchemaRegistry()

    with caplog.at_level(logging.WARNING, logger="pactum.schema"):
        registry.type_to_schema(first)
        registry.type_to_schema(second)

    assert registry.definitions["Item"]["properties"]["value"] == {"type": "string"}
    assert "Item" in caplog.text


def test_registries_are_independent():
    one, two = SchemaRegistry(), SchemaRegistry()
    one.type_to_schema(User)
    assert two.definitions == {}


def test_problem_schema_registration():
    registry = SchemaRegistry()
    ref = registry.register_problem()
    assert ref == {"$ref": REF_PREFIX + "ProblemDetail"}
    assert registry.definitions["ProblemDetail"]["properties"]["status"] == {"type": "integer"}
