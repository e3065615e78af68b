"""
Value conversion.

- Scalar conversion of raw strings (path, query, header, cookie, form)
- Duration literals (``300ms``, ``1.5h``, ``2h45m``) and ISO 8601 durations
- ``structure``: decoded payload (dicts, lists, primitives) -> typed value
- ``unstructure``: typed value -> codec-ready primitives
"""

from __future__ import annotations

import base64
import binascii
import dataclasses
import re
import types
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Literal, Tuple, Union, get_args, get_origin

from .._uploads import UploadFile
from .markers import Stream, Void
from .metadata import extract, is_struct, new, unwrap_annotated, unwrap_optional

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class UnsupportedTypeError(TypeError):
    """A field kind the scalar converter does not handle."""


# ============================================================================
# Scalars
# ============================================================================

_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})
_INT_RE = re.compile(r"[+-]?[0-9]+")


def parse_bool(value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"invalid syntax for bool: {value!r}")


def parse_int(value: str) -> int:
    if not _INT_RE.fullmatch(value):
        raise ValueError(f"invalid syntax for int: {value!r}")
    number = int(value)
    if not INT64_MIN <= number <= INT64_MAX:
        raise ValueError(f"value out of range: {value!r}")
    return number


def parse_float(value: str) -> float:
    if not value or value != value.strip() or "_" in value:
        raise ValueError(f"invalid syntax for float: {value!r}")
    return float(value)


# ============================================================================
# Durations
# ============================================================================

_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,  # micro sign
    "μs": 1_000,  # greek mu
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART = re.compile(r"([0-9]*(?:\.[0-9]*)?)(ns|us|µs|μs|ms|s|m|h)")
_ISO_DURATION = re.compile(
    r"(?P<sign>[-+]?)P(?:(?P<days>\d+(?:\.\d+)?)D)?"
    r"(?:T(?:(?P<hours>\d+(?:\.\d+)?)H)?(?:(?P<minutes>\d+(?:\.\d+)?)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?"
)


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration literal: an optional sign followed by one or more
    ``<number><unit>`` pairs, e.g. ``300ms``, ``-1.5h``, ``2h45m``.
    ``0`` alone is accepted. Precision below one microsecond is rounded.
    """
    text = value
    negative = False
    if text[:1] in ("-", "+"):
        negative = text[0] == "-"
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    total_ns = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None or match.group(1) in ("", "."):
            raise ValueError(f"invalid duration {value!r}")
        total_ns += float(match.group(1)) * _UNIT_NANOS[match.group(2)]
        pos = match.end()

    delta = timedelta(microseconds=total_ns / 1000)
    return -delta if negative else delta


def parse_iso_duration(value: str) -> timedelta:
    """Parse the day/time subset of ISO 8601 durations (``P1DT2H30M``)."""
    match = _ISO_DURATION.fullmatch(value)
    if match is None or value.rstrip("T").endswith("P") or value.endswith("T"):
        raise ValueError(f"invalid ISO 8601 duration {value!r}")
    parts = {k: float(v) for k, v in match.groupdict().items() if v and k != "sign"}
    delta = timedelta(
        days=parts.get("days", 0),
        hours=parts.get("hours", 0),
        minutes=parts.get("minutes", 0),
        seconds=parts.get("seconds", 0),
    )
    return -delta if match.group("sign") == "-" else delta


def format_duration(delta: timedelta) -> str:
    """Render a timedelta as an ISO 8601 duration (``PT1H30M``)."""
    if delta < timedelta(0):
        return "-" + format_duration(-delta)
    days = delta.days
    seconds = delta.seconds
    micros = delta.microseconds
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    out = "P"
    if days:
        out += f"{days}D"
    time_part = ""
    if hours:
        time_part += f"{hours}H"
    if minutes:
        time_part += f"{minutes}M"
    if seconds or micros:
        if micros:
            time_part += f"{seconds}.{micros:06d}".rstrip("0") + "S"
        else:
            time_part += f"{seconds}S"
    if time_part:
        out += "T" + time_part
    if out == "P":
        out = "PT0S"
    return out


def convert_scalar(value: str, tp: Any) -> Any:
    """
    Convert one raw string onto a field type.

    Supported kinds: str, int, float, bool and timedelta (duration
    literal). ``Optional[X]`` converts as ``X``.

    Raises:
        UnsupportedTypeError: For any other field kind
        ValueError: When the string does not parse
    """
    tp, _ = unwrap_annotated(tp)
    tp, _ = unwrap_optional(tp)
    if tp is str:
        return value
    if tp is bool:
        return parse_bool(value)
    if tp is int:
        return parse_int(value)
    if tp is float:
        return parse_float(value)
    if tp is timedelta:
        return parse_duration(value)
    raise UnsupportedTypeError(f"unsupported type: {getattr(tp, '__name__', tp)!s}")


# ============================================================================
# structure: payload -> typed value
# ============================================================================

def _mismatch(path: str, expected: str, data: Any) -> TypeError:
    where = path or "value"
    return TypeError(f"{where}: expected {expected}, got {type(data).__name__}")


def _join(path: str, key: Any) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}.{key}" if path else str(key)


def structure(data: Any, tp: Any, *, coerce_strings: bool = False, path: str = "") -> Any:
    """
    Build a typed value from decoded payload data.

    Dataclasses start from their zero state; JSON properties that are
    absent leave the field untouched and unknown properties are ignored.

    ``coerce_strings`` lets text-only formats (XML) supply scalars as strings.

    Raises:
        TypeError / ValueError: On shape or value mismatch, naming the path
    """
    tp, _ = unwrap_annotated(tp)
    tp, optional = unwrap_optional(tp)

    if data is None:
        if optional or tp is Any:
            return None
        raise _mismatch(path, getattr(tp, "__name__", str(tp)), data)

    if tp is Any or tp is object:
        return data

    if is_struct(tp):
        return _structure_struct(data, tp, coerce_strings, path)

    if isinstance(tp, type) and issubclass(tp, (UploadFile, Stream, Void)):
        return None

    if coerce_strings and isinstance(data, str) and tp in (int, float, bool, timedelta):
        try:
            return convert_scalar(data, tp)
        except ValueError as exc:
            raise ValueError(f"{path or 'value'}: {exc}") from exc

    if tp is str:
        if not isinstance(data, str):
            raise _mismatch(path, "string", data)
        return data
    if tp is bool:
        if not isinstance(data, bool):
            raise _mismatch(path, "boolean", data)
        return data
    if tp is int:
        if isinstance(data, bool) or not isinstance(data, int):
            raise _mismatch(path, "integer", data)
        return data
    if tp is float:
        if isinstance(data, bool) or not isinstance(data, (int, float)):
            raise _mismatch(path, "number", data)
        return float(data)
    if tp is Decimal:
        if isinstance(data, bool):
            raise _mismatch(path, "number", data)
        try:
            return Decimal(str(data))
        except InvalidOperation as exc:
            raise ValueError(f"{path or 'value'}: invalid decimal {data!r}") from exc
    if tp is bytes:
        return _structure_bytes(data, path)
    if tp is datetime:
        return _structure_datetime(data, path)
    if tp is date:
        if isinstance(data, date) and not isinstance(data, datetime):
            return data
        if not isinstance(data, str):
            raise _mismatch(path, "date string", data)
        return date.fromisoformat(data)
    if tp is timedelta:
        return _structure_timedelta(data, path)
    if isinstance(tp, type) and issubclass(tp, Enum):
        try:
            return tp(data)
        except ValueError as exc:
            raise ValueError(f"{path or 'value'}: {exc}") from exc

    origin = get_origin(tp)
    args = get_args(tp)

    if origin is Literal:
        if data not in args:
            raise ValueError(f"{path or 'value'}: {data!r} is not one of {list(args)}")
        return data

    if origin is Union or origin is types.UnionType:
        errors = []
        for option in args:
            try:
                return structure(data, option, coerce_strings=coerce_strings, path=path)
            except (TypeError, ValueError) as exc:
                errors.append(str(exc))
        raise TypeError(f"{path or 'value'}: no union member matched ({'; '.join(errors)})")

    if origin in (list, set, frozenset, tuple) or tp in (list, set, frozenset, tuple):
        return _structure_sequence(data, origin or tp, args, coerce_strings, path)

    if origin is dict or tp is dict:
        return _structure_mapping(data, args, coerce_strings, path)

    return data


def _structure_struct(data: Any, tp: type, coerce_strings: bool, path: str) -> Any:
    if coerce_strings and data == "":
        return new(tp)
    if not isinstance(data, dict):
        raise _mismatch(path, "object", data)
    instance = new(tp)
    for desc in extract(tp):
        if not desc.in_payload or desc.json_name not in data:
            continue
        value = structure(
            data[desc.json_name],
            desc.type,
            coerce_strings=coerce_strings,
            path=_join(path, desc.json_name),
        )
        setattr(instance, desc.name, value)
    return instance


def _structure_sequence(data: Any, container: Any, args: Tuple[Any, ...], coerce_strings: bool, path: str) -> Any:
    if not isinstance(data, (list, tuple)):
        if coerce_strings:
            data = [data]
        else:
            raise _mismatch(path, "array", data)

    if container is tuple and args and not (len(args) == 2 and args[1] is Ellipsis):
        if len(args) != len(data):
            raise ValueError(f"{path or 'value'}: expected {len(args)} items, got {len(data)}")
        return tuple(
            structure(item, arg, coerce_strings=coerce_strings, path=_join(path, i))
            for i, (item, arg) in enumerate(zip(data, args))
        )

    item_type = args[0] if args else Any
    items: List[Any] = [
        structure(item, item_type, coerce_strings=coerce_strings, path=_join(path, i))
        for i, item in enumerate(data)
    ]
    if container in (set, frozenset, tuple):
        return container(items)
    return items


def _structure_mapping(data: Any, args: Tuple[Any, ...], coerce_strings: bool, path: str) -> Dict[Any, Any]:
    if not isinstance(data, dict):
        raise _mismatch(path, "object", data)
    key_type, value_type = args if len(args) == 2 else (Any, Any)
    result = {}
    for key, value in data.items():
        if key_type is int and isinstance(key, str):
            key = parse_int(key)
        result[key] = structure(value, value_type, coerce_strings=coerce_strings, path=_join(path, str(key)))
    return result


def _structure_bytes(data: Any, path: str) -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if not isinstance(data, str):
        raise _mismatch(path, "base64 string", data)
    try:
        return base64.b64decode(data, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"{path or 'value'}: invalid base64: {exc}") from exc


def _structure_datetime(data: Any, path: str) -> datetime:
    if isinstance(data, datetime):
        return data
    if not isinstance(data, str):
        raise _mismatch(path, "date-time string", data)
    text = data[:-1] + "+00:00" if data.endswith(("Z", "z")) else data
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"{path or 'value'}: invalid date-time {data!r}") from exc


def _structure_timedelta(data: Any, path: str) -> timedelta:
    if isinstance(data, timedelta):
        return data
    if isinstance(data, bool):
        raise _mismatch(path, "duration", data)
    if isinstance(data, (int, float)):
        return timedelta(seconds=data)
    if not isinstance(data, str):
        raise _mismatch(path, "duration", data)
    try:
        if data.lstrip("+-").startswith("P"):
            return parse_iso_duration(data)
        return parse_duration(data)
    except ValueError as exc:
        raise ValueError(f"{path or 'value'}: {exc}") from exc


# ============================================================================
# unstructure: typed value -> primitives
# ============================================================================

def unstructure(value: Any, *, binary_as_base64: bool = True) -> Any:
    """
    Reduce a typed value to dicts, lists and primitives for a codec.

    Dataclasses use their JSON property names; skipped, raw and
    upload fields are omitted.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Enum):
        return unstructure(value.value, binary_as_base64=binary_as_base64)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, timedelta):
        return format_duration(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (bytes, bytearray)):
        if binary_as_base64:
            return base64.b64encode(bytes(value)).decode("ascii")
        return bytes(value)
    if is_struct(type(value)):
        out = {}
        for desc in extract(type(value)):
            if not desc.in_payload and not desc.is_param:
                continue
            if desc.skip:
                continue
            out[desc.json_name] = unstructure(getattr(value, desc.name), binary_as_base64=binary_as_base64)
        return out
    if isinstance(value, dict):
        return {
            str(k): unstructure(v, binary_as_base64=binary_as_base64)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [unstructure(item, binary_as_base64=binary_as_base64) for item in value]
    if dataclasses.is_dataclass(value):
        return None
    return value
