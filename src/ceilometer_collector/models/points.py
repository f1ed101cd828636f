"""Output data model: source dicts and processed points.

A ProcessedPoint is what the engine hands to the publisher: the
content address of a time series, the metadata that describes it,
and one timestamped 64-bit value. Points carry no state between
messages.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import NamedTuple

from ceilometer_collector.errors import InvalidSourceDict

# Separators of the store's source dict wire format
RESERVED_CHARS = frozenset(",:")


class SourceDict(Mapping):
    """Immutable, validated string-to-string metadata record.

    Keys and values must be strings, keys must be non-empty, and
    neither may contain a reserved separator. Two source dicts are
    equal when their contents are equal, regardless of insertion
    order.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Mapping[str, str]):
        for key, value in items.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise InvalidSourceDict(
                    f"non-string entry {key!r}: {value!r}"
                )
            if not key:
                raise InvalidSourceDict("empty key")
            bad = RESERVED_CHARS.intersection(key + value)
            if bad:
                raise InvalidSourceDict(
                    f"entry {key!r}: {value!r} contains reserved "
                    f"character(s) {''.join(sorted(bad))!r}"
                )
        self._items = dict(items)

    def __getitem__(self, key: str) -> str:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __hash__(self) -> int:
        return hash(frozenset(self._items.items()))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SourceDict):
            return self._items == other._items
        if isinstance(other, Mapping):
            return self._items == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"SourceDict({self._items!r})"

    def to_dict(self) -> dict[str, str]:
        return dict(self._items)


class ProcessedPoint(NamedTuple):
    """One time-series point ready for publication."""
    address: int
    source_dict: SourceDict
    timestamp: int
    payload: int
