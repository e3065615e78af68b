"""
Core data structures for request and response handling.

Provides:
- MultiDict: Multi-value dictionary for query params and form data
- Headers: Case-insensitive, read-only view over ASGI header pairs
- MutableHeaders: Case-insensitive response header builder
- ParsedContentType: Content-Type parsing helper
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Dict, Iterator, List, Mapping, MutableMapping,
    Optional, Tuple, Union
)


# ============================================================================
# MultiDict
# ============================================================================

class MultiDict(MutableMapping[str, List[str]]):
    """
    Dictionary that supports multiple values per key.

    Used for query parameters and form data where keys can repeat.
    """

    def __init__(self, items: Optional[Union[List[Tuple[str, str]], Mapping[str, Union[str, List[str]]]]] = None):
        self._data: Dict[str, List[str]] = {}

        if items:
            if isinstance(items, list):
                for key, value in items:
                    self.add(key, value)
            else:
                for key, value in items.items():
                    if isinstance(value, list):
                        self._data[key] = value.copy()
                    else:
                        self._data[key] = [value]

    def __getitem__(self, key: str) -> List[str]:
        return self._data[key]

    def __setitem__(self, key: str, value: Union[str, List[str]]) -> None:
        if isinstance(value, list):
            self._data[key] = value
        else:
            self._data[key] = [value]

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"MultiDict({dict(self._data)})"

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get first value for a key."""
        values = self._data.get(key)
        return values[0] if values else default

    def get_all(self, key: str) -> List[str]:
        """Get all values for a key."""
        return self._data.get(key, [])

    def add(self, key: str, value: str) -> None:
        """Add a value to a key (appends to list)."""
        self._data.setdefault(key, []).append(value)

    def items_list(self) -> List[Tuple[str, str]]:
        """Return all items as flat list of tuples."""
        return [(key, value) for key, values in self._data.items() for value in values]


# ============================================================================
# Headers
# ============================================================================

@dataclass
class Headers:
    """
    Case-insensitive header access over raw ASGI ``(bytes, bytes)`` pairs.
    """

    raw: List[Tuple[bytes, bytes]] = field(default_factory=list)
    _index: Dict[str, List[bytes]] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self):
        self._index = {}
        for name, value in self.raw:
            self._index.setdefault(name.decode("latin-1").lower(), []).append(value)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get first value for header (case-insensitive)."""
        values = self._index.get(name.lower())
        if values:
            return values[0].decode("latin-1")
        return default

    def get_all(self, name: str) -> List[str]:
        """Get all values for header (case-insensitive)."""
        return [value.decode("latin-1") for value in self._index.get(name.lower(), [])]

    def has(self, name: str) -> bool:
        return name.lower() in self._index

    def items(self) -> Iterator[Tuple[str, str]]:
        for name, value in self.raw:
            yield name.decode("latin-1"), value.decode("latin-1")

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __getitem__(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(f"Header '{name}' not found")
        return value


class MutableHeaders:
    """
    Response header builder.

    ``set`` replaces every existing value of a header, ``add`` appends
    another line (needed for ``Set-Cookie``). Names compare
    case-insensitively; the first-seen casing is kept for output.
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._items: List[Tuple[str, str]] = []
        for name, value in (initial or {}).items():
            self.set(name, value)

    def set(self, name: str, value: str) -> None:
        lowered = name.lower()
        self._items = [(n, v) for n, v in self._items if n.lower() != lowered]
        self._items.append((name, str(value)))

    def add(self, name: str, value: str) -> None:
        self._items.append((name, str(value)))

    def setdefault(self, name: str, value: str) -> str:
        existing = self.get(name)
        if existing is None:
            self.set(name, value)
            return value
        return existing

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        lowered = name.lower()
        for n, v in self._items:
            if n.lower() == lowered:
                return v
        return default

    def get_all(self, name: str) -> List[str]:
        lowered = name.lower()
        return [v for n, v in self._items if n.lower() == lowered]

    def remove(self, name: str) -> None:
        lowered = name.lower()
        self._items = [(n, v) for n, v in self._items if n.lower() != lowered]

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __getitem__(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(f"Header '{name}' not found")
        return value

    def __setitem__(self, name: str, value: str) -> None:
        self.set(name, value)

    def __len__(self) -> int:
        return len(self._items)

    def items(self) -> List[Tuple[str, str]]:
        return list(self._items)

    def raw(self) -> List[Tuple[bytes, bytes]]:
        """Encode as ASGI header pairs (lower-cased names)."""
        return [(n.lower().encode("latin-1"), v.encode("latin-1")) for n, v in self._items]

    def __repr__(self) -> str:
        return f"MutableHeaders({self._items})"


# ============================================================================
# Content-Type
# ============================================================================

@dataclass
class ParsedContentType:
    """
    Parsed Content-Type header.

    Extracts the media type (lower-cased) and parameters (e.g., charset).
    """

    media_type: str
    params: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, content_type: Optional[str]) -> Optional["ParsedContentType"]:
        if not content_type:
            return None

        parts = content_type.split(";")
        media_type = parts[0].strip().lower()

        params = {}
        for part in parts[1:]:
            if "=" in part:
                key, value = part.split("=", 1)
                params[key.strip().lower()] = value.strip().strip('"')

        return cls(media_type=media_type, params=params)

    @property
    def charset(self) -> str:
        return self.params.get("charset", "utf-8")

    @property
    def boundary(self) -> Optional[str]:
        return self.params.get("boundary")
