"""
Tests for scalar conversion, duration literals and payload structuring.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Tuple

import pytest

from pactum.contract.convert import (
    UnsupportedTypeError,
    convert_scalar,
    format_duration,
    parse_bool,
    parse_duration,
    parse_int,
    parse_iso_duration,
    structure,
    unstructure,
)
from pactum.contract.markers import Meta, Path, Query


class Color(Enum):
    RED = "red"
    BLUE = "blue"


@dataclass
class Item:
    sku: str = ""
    qty: int = 0


@dataclass
class Order:
    id: Annotated[str, Path("id")] = ""
    note: Annotated[str, Meta(name="comment")] = ""
    items: List[Item] = field(default_factory=list)
    color: Optional[Color] = None
    placed: Optional[datetime] = None
    ttl: timedelta = timedelta(0)
    blob: bytes = b""
    hidden: Annotated[str, Meta(skip=True)] = ""


# ============================================================================
# Scalars
# ============================================================================


@pytest.mark.parametrize("raw, expected", [
    ("1", True), ("t", True), ("TRUE", True), ("True", True),
    ("0", False), ("f", False), ("false", False), ("FALSE", False),
])
def test_parse_bool(raw, expected):
    assert parse_bool(raw) is expected


@pytest.mark.parametrize("raw", ["yes", "on", "", "tRuE"])
def test_parse_bool_rejects(raw):
    with pytest.raises(ValueError):
        parse_bool(raw)


def test_parse_int():
    assert parse_int("42") == 42
    assert parse_int("-7") == -7
    assert parse_int("+3") == 3


@pytest.mark.parametrize("raw", ["abc", "1.5", " 1", "1_000", "9223372036854775808"])
def test_parse_int_rejects(raw):
    with pytest.raises(ValueError):
        parse_int(raw)


def test_convert_scalar_kinds():
    assert convert_scalar("hello", str) == "hello"
    assert convert_scalar("12", int) == 12
    assert convert_scalar("1.5", float) == 1.5
    assert convert_scalar("true", bool) is True
    assert convert_scalar("5s", timedelta) == timedelta(seconds=5)
    assert convert_scalar("3", Optional[int]) == 3


def test_convert_scalar_unsupported_kind():
    with pytest.raises(UnsupportedTypeError, match="unsupported type"):
        convert_scalar("x", list)


# ============================================================================
# Durations
# ============================================================================


@pytest.mark.parametrize("raw, expected", [
    ("0", timedelta(0)),
    ("300ms", timedelta(milliseconds=300)),
    ("1.5h", timedelta(hours=1, minutes=30)),
    ("2h45m", timedelta(hours=2, minutes=45)),
    ("-1m", timedelta(minutes=-1)),
    ("1us", timedelta(microseconds=1)),
])
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == expected


@pytest.mark.parametrize("raw", ["", "5", "1d", "h", "1h 2m", "abc"])
def test_parse_duration_rejects(raw):
    with pytest.raises(ValueError):
        parse_duration(raw)


def test_iso_duration_round_trip_shape():
    assert format_duration(timedelta(hours=1, minutes=30)) == "PT1H30M"
    assert format_duration(timedelta(0)) == "PT0S"
    assert format_duration(timedelta(days=2, seconds=5)) == "P2DT5S"
    assert parse_iso_duration("P1DT2H") == timedelta(days=1, hours=2)


def test_parse_iso_duration_rejects_empty():
    with pytest.raises(ValueError):
        parse_iso_duration("P")


# ============================================================================
# structure
# ============================================================================


def test_structure_struct_uses_json_names():
    order = structure(
        {
            "comment": "rush",
            "items": [{"sku": "A1", "qty": 2}],
            "color": "blue",
            "placed": "2024-05-01T10:00:00Z",
            "ttl": "PT1M",
            "blob": "aGk=",
            "unknown": 1,
        },
        Order,
    )
    assert order.note == "rush"
    assert order.items == [Item(sku="A1", qty=2)]
    assert order.color is Color.BLUE
    assert order.placed == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert order.ttl == timedelta(minutes=1)
    assert order.blob == b"hi"


def test_structure_ignores_parameter_fields():
    order = structure({"id": "from-body"}, Order)
    assert order.id == ""


def test_structure_reports_path_of_mismatch():
    with pytest.raises(TypeError, match=r"items\[0\]\.qty"):
        structure({"items": [{"qty": "two"}]}, Order)


def test_structure_rejects_bool_as_int():
    with pytest.raises(TypeError):
        structure(True, int)


def test_structure_coerces_strings_for_textual_formats():
    assert structure("7", int, coerce_strings=True) == 7
    assert structure("x", List[str], coerce_strings=True) == ["x"]
    assert structure("", Item, coerce_strings=True) == Item()


def test_structure_containers():
    assert structure({"1": "a"}, Dict[int, str]) == {1: "a"}
    assert structure([1, "b"], Tuple[int, str]) == (1, "b")
    assert structure("2024-01-31", date) == date(2024, 1, 31)
    assert structure("a", Literal["a", "b"]) == "a"
    with pytest.raises(ValueError):
        structure("c", Literal["a", "b"])


def test_structure_union_tries_members():
    assert structure(3, Optional[int]) == 3
    assert structure(None, Optional[int]) is None
    assert structure("x", int | str) == "x"


# ============================================================================
# unstructure
# ============================================================================


def test_unstructure_struct():
    order = Order(
        id="o1",
        note="n",
        items=[Item("A", 1)],
        color=Color.RED,
        ttl=timedelta(seconds=90),
        blob=b"hi",
        hidden="secret",
    )
    data = unstructure(order)

    assert data == {
        "id": "o1",
        "comment": "n",
        "items": [{"sku": "A", "qty": 1}],
        "color": "red",
        "placed": None,
        "ttl": "PT1M30S",
        "blob": "aGk=",
    }


def test_unstructure_keeps_bytes_for_binary_codecs():
    assert unstructure(b"\x00", binary_as_base64=False) == b"\x00"
