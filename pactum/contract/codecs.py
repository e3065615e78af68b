"""
Codec registry and content negotiation.

Built-in codecs:

- **JSONCodec**: ``application/json`` (default, orjson)
- **XMLCodec**: ``application/xml``
- **YAMLCodec**: ``application/yaml`` (PyYAML)
- **MessagePackCodec**: ``application/msgpack`` (msgpack)

The registry is ordered; index 0 is the default codec, used when a
request carries no ``Accept`` or ``Content-Type`` header.
"""

from __future__ import annotations

import logging
import math
import re
import xml.etree.ElementTree as ET
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import msgpack
import orjson
import yaml

from .._datastructures import ParsedContentType
from ..faults import ConfigInvalidFault, NotAcceptableFault, UnsupportedMediaTypeFault
from .convert import unstructure
from .metadata import is_struct

logger = logging.getLogger("pactum.codecs")

__all__ = [
    "DecodeError",
    "CodecEntry",
    "JSONCodec",
    "XMLCodec",
    "YAMLCodec",
    "MessagePackCodec",
    "CodecRegistry",
    "BUILTIN_CODECS",
    "parse_accept",
]


class DecodeError(ValueError):
    """A payload could not be decoded by its codec."""


# ═══════════════════════════════════════════════════════════════════════════
#  Accept header parser
# ═══════════════════════════════════════════════════════════════════════════

def parse_accept(header: str) -> List[Tuple[str, float]]:
    """
    Parse an ``Accept`` header into ``(media_range, quality)`` pairs in
    header order. A missing, malformed or non-finite ``q`` counts as ``1.0``;
    other values are clamped to ``[0, 1]``.

    Examples::

        parse_accept("application/xml;q=0.9, application/json")
        # → [("application/xml", 0.9), ("application/json", 1.0)]
    """
    entries: List[Tuple[str, float]] = []
    for part in header.split(","):
        part = part.strip()
        if not part:
            continue
        segments = part.split(";")
        media = segments[0].strip().lower()
        quality = 1.0
        for seg in segments[1:]:
            key, _, value = seg.strip().partition("=")
            if key.strip().lower() == "q":
                try:
                    quality = float(value.strip())
                except ValueError:
                    quality = 1.0
                if not math.isfinite(quality):
                    quality = 1.0
                quality = min(max(quality, 0.0), 1.0)
        entries.append((media, quality))
    return entries


# ═══════════════════════════════════════════════════════════════════════════
#  Codecs
# ═══════════════════════════════════════════════════════════════════════════

class CodecEntry:
    """
    Base codec: one content type with an encoder and a decoder.

    Subclass and set ``content_type`` (plus optional ``aliases`` and
    ``format_suffix``), then implement ``encode`` and ``decode``.
    ``textual_scalars`` marks formats that carry every scalar as text.
    """

    content_type: str = "application/octet-stream"
    aliases: Tuple[str, ...] = ()
    format_suffix: str = ""
    textual_scalars: bool = False

    def encode(self, value: Any) -> bytes:
        raise NotImplementedError

    def decode(self, raw: bytes) -> Any:
        raise NotImplementedError

    def matches(self, media_type: str) -> bool:
        return media_type == self.content_type or media_type in self.aliases

    @classmethod
    def from_functions(
        cls,
        content_type: str,
        encode: Callable[[Any], bytes],
        decode: Callable[[bytes], Any],
        *,
        format_suffix: str = "",
    ) -> "CodecEntry":
        """Build a codec from a pair of plain functions."""
        return _FunctionCodec(content_type, encode, decode, format_suffix)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.content_type!r})"


class _FunctionCodec(CodecEntry):
    def __init__(self, content_type, encode, decode, format_suffix):
        self.content_type = content_type.lower()
        self.format_suffix = format_suffix
        self._encode = encode
        self._decode = decode

    def encode(self, value: Any) -> bytes:
        return self._encode(value)

    def decode(self, raw: bytes) -> Any:
        try:
            return self._decode(raw)
        except (ValueError, TypeError) as exc:
            raise DecodeError(str(exc)) from exc


class JSONCodec(CodecEntry):
    """JSON via orjson."""

    content_type = "application/json"
    format_suffix = "json"

    def encode(self, value: Any) -> bytes:
        return orjson.dumps(unstructure(value))

    def decode(self, raw: bytes) -> Any:
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise DecodeError(f"invalid JSON: {exc}") from exc


class XMLCodec(CodecEntry):
    """
    XML encoding of dicts, lists and scalars.

    Struct values use their type name as root element; list members under
    a property repeat that property's element. Top-level lists use
    ``root_tag`` and ``item_tag``.
    """

    content_type = "application/xml"
    aliases = ("text/xml",)
    format_suffix = "xml"
    textual_scalars = True

    def __init__(self, *, root_tag: str = "response", item_tag: str = "item"):
        self.root_tag = root_tag
        self.item_tag = item_tag

    def encode(self, value: Any) -> bytes:
        root_name = type(value).__name__ if is_struct(type(value)) else self.root_tag
        root = ET.Element(_sanitize_xml_tag(root_name))
        data = unstructure(value)
        if isinstance(data, list):
            for item in data:
                self._render(ET.SubElement(root, self.item_tag), item)
        else:
            self._render(root, data)
        return ET.tostring(root, encoding="utf-8", xml_declaration=True)

    def _render(self, element: ET.Element, value: Any) -> None:
        if isinstance(value, dict):
            for key, item in value.items():
                tag = _sanitize_xml_tag(str(key))
                if item is None:
                    continue
                if isinstance(item, list):
                    for member in item:
                        self._render(ET.SubElement(element, tag), member)
                else:
                    self._render(ET.SubElement(element, tag), item)
        elif isinstance(value, list):
            for member in value:
                self._render(ET.SubElement(element, self.item_tag), member)
        elif isinstance(value, bool):
            element.text = "true" if value else "false"
        elif value is not None:
            element.text = str(value)

    def decode(self, raw: bytes) -> Any:
        try:
            root = ET.fromstring(raw)
        except ET.ParseError as exc:
            raise DecodeError(f"invalid XML: {exc}") from exc
        return _element_value(root)


def _element_value(element: ET.Element) -> Any:
    children = list(element)
    if not children:
        return (element.text or "").strip()
    result: Dict[str, Any] = {}
    for child in children:
        value = _element_value(child)
        if child.tag in result:
            existing = result[child.tag]
            if isinstance(existing, list):
                existing.append(value)
            else:
                result[child.tag] = [existing, value]
        else:
            result[child.tag] = value
    return result


def _sanitize_xml_tag(tag: str) -> str:
    """Ensure a string is a valid XML tag name."""
    tag = re.sub(r"[^a-zA-Z0-9_.-]", "_", tag)
    if not tag or tag[0].isdigit() or tag[0] in ".-":
        tag = "_" + tag
    return tag


class YAMLCodec(CodecEntry):
    """YAML via PyYAML (safe loader and dumper only)."""

    content_type = "application/yaml"
    aliases = ("application/x-yaml", "text/yaml")
    format_suffix = "yaml"

    def encode(self, value: Any) -> bytes:
        return yaml.safe_dump(unstructure(value), sort_keys=False, allow_unicode=True).encode("utf-8")

    def decode(self, raw: bytes) -> Any:
        try:
            return yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise DecodeError(f"invalid YAML: {exc}") from exc


class MessagePackCodec(CodecEntry):
    """MessagePack binary via msgpack."""

    content_type = "application/msgpack"
    aliases = ("application/x-msgpack", "application/vnd.msgpack")
    format_suffix = "msgpack"

    def encode(self, value: Any) -> bytes:
        return msgpack.packb(unstructure(value, binary_as_base64=False), use_bin_type=True)

    def decode(self, raw: bytes) -> Any:
        try:
            return msgpack.unpackb(raw, raw=False)
        except (msgpack.ExtraData, msgpack.FormatError, msgpack.StackError, ValueError) as exc:
            raise DecodeError(f"invalid MessagePack: {exc}") from exc


BUILTIN_CODECS: Dict[str, Callable[[], CodecEntry]] = {
    "json": JSONCodec,
    "xml": XMLCodec,
    "yaml": YAMLCodec,
    "msgpack": MessagePackCodec,
}


# ═══════════════════════════════════════════════════════════════════════════
#  Registry
# ═══════════════════════════════════════════════════════════════════════════

class CodecRegistry:
    """
    Ordered codec set with Accept / Content-Type negotiation.

    Lookups are read-only; register every codec before serving requests.
    """

    def __init__(self, codecs: Optional[Sequence[CodecEntry]] = None):
        self._codecs: List[CodecEntry] = []
        for codec in codecs if codecs is not None else (JSONCodec(), XMLCodec()):
            self.register(codec)

    @classmethod
    def from_config(cls, config: Any) -> "CodecRegistry":
        """
        Build a registry from ``EngineConfig.codecs`` (names of built-in
        codecs, first is the default).
        """
        codecs = []
        for name in config.codecs:
            factory = BUILTIN_CODECS.get(name)
            if factory is None:
                raise ConfigInvalidFault("codecs", f"unknown codec {name!r}, expected one of {sorted(BUILTIN_CODECS)}")
            codecs.append(factory())
        return cls(codecs)

    def register(self, codec: CodecEntry, *, default: bool = False) -> None:
        """
        Add a codec. A codec for an already registered content type
        replaces it in place; ``default=True`` moves it to the front.
        """
        for index, existing in enumerate(self._codecs):
            if existing.content_type == codec.content_type:
                self._codecs[index] = codec
                break
        else:
            self._codecs.append(codec)
        if default:
            self._codecs.remove(codec)
            self._codecs.insert(0, codec)
        logger.debug("Registered codec %s (default=%s)", codec.content_type, self.default is codec)

    @property
    def default(self) -> CodecEntry:
        if not self._codecs:
            raise LookupError("CodecRegistry is empty")
        return self._codecs[0]

    @property
    def content_types(self) -> List[str]:
        return [codec.content_type for codec in self._codecs]

    def __iter__(self):
        return iter(self._codecs)

    def __len__(self) -> int:
        return len(self._codecs)

    def _match(self, media_range: str) -> Optional[CodecEntry]:
        if media_range == "*/*":
            return self.default
        if media_range.endswith("/*"):
            prefix = media_range[:-1]
            for codec in self._codecs:
                if codec.content_type.startswith(prefix):
                    return codec
            return None
        for codec in self._codecs:
            if codec.matches(media_range):
                return codec
        return None

    def negotiate_encoder(self, accept: Optional[str]) -> CodecEntry:
        """
        Pick the encoder for an ``Accept`` header.

        The highest-quality matching range wins; ties keep the earliest
        range in header order. Ranges with ``q=0`` are refused.

        Raises:
            NotAcceptableFault: If an explicit Accept matches no codec
        """
        if not accept or not accept.strip():
            return self.default

        best: Optional[CodecEntry] = None
        best_q = 0.0
        for media_range, quality in parse_accept(accept):
            if quality <= 0:
                continue
            candidate = self._match(media_range)
            if candidate is not None and quality > best_q:
                best, best_q = candidate, quality

        if best is None:
            logger.debug("No codec satisfies Accept: %s", accept)
            raise NotAcceptableFault(accept, self.content_types)
        return best

    def decoder_for(self, content_type: Optional[str]) -> CodecEntry:
        """
        Pick the decoder for a ``Content-Type`` header (parameters ignored).

        Raises:
            UnsupportedMediaTypeFault: If no codec handles the media type
        """
        parsed = ParsedContentType.parse(content_type.strip() if content_type else None)
        if parsed is None or not parsed.media_type:
            return self.default
        for codec in self._codecs:
            if codec.matches(parsed.media_type):
                return codec
        raise UnsupportedMediaTypeFault(content_type)

    def find(self, format_suffix: str) -> Optional[CodecEntry]:
        """Codec registered under a format suffix (``json``, ``xml``, ...)."""
        for codec in self._codecs:
            if codec.format_suffix == format_suffix:
                return codec
        return None
