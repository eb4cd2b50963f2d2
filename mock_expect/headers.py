"""Case-insensitive, multi-valued HTTP header mapping."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Union

HeaderSource = Union["Headers", Mapping[str, str], Iterable[tuple[str, str]], None]


class Headers:
    """Ordered list of ``(name, value)`` pairs with case-insensitive lookups.

    Repeated headers keep every instance in arrival order. ``get`` returns the
    first value for a name, ``get_all`` returns every value.
    """

    __slots__ = ("_items",)

    def __init__(self, source: HeaderSource = None) -> None:
        self._items: list[tuple[str, str]] = []
        if source is None:
            return
        if isinstance(source, Headers):
            self._items = list(source._items)
        elif isinstance(source, Mapping):
            self._items = [(str(name), str(value)) for name, value in source.items()]
        else:
            self._items = [(str(name), str(value)) for name, value in source]

    def get(self, name: str, default: str | None = None) -> str | None:
        wanted = name.lower()
        for key, value in self._items:
            if key.lower() == wanted:
                return value
        return default

    def get_all(self, name: str) -> list[str]:
        wanted = name.lower()
        return [value for key, value in self._items if key.lower() == wanted]

    def items(self) -> list[tuple[str, str]]:
        return list(self._items)

    def lowered(self) -> list[tuple[str, str]]:
        """Pairs with names folded to lower case, as matchers see them."""

        return [(key.lower(), value) for key, value in self._items]

    def append(self, name: str, value: str) -> None:
        self._items.append((str(name), str(value)))

    def set(self, name: str, value: str) -> None:
        """Replace every instance of ``name`` with a single value."""

        self.remove(name)
        self._items.append((str(name), str(value)))

    def remove(self, name: str) -> None:
        wanted = name.lower()
        self._items = [(key, value) for key, value in self._items if key.lower() != wanted]

    def copy(self) -> Headers:
        return Headers(self)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        wanted = name.lower()
        return any(key.lower() == wanted for key, _ in self._items)

    def __getitem__(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    def __iter__(self) -> Iterator[str]:
        return (key for key, _ in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Headers):
            return self.lowered() == other.lowered()
        return NotImplemented

    def __repr__(self) -> str:
        return f"Headers({self._items!r})"
