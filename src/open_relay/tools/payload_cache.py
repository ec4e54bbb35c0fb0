"""Bounded LRU store for full tool payloads kept out of the transcript."""

from __future__ import annotations

from collections import OrderedDict
from typing import Any


class PayloadCache:
    """Least-recently-used cache keyed by a tool's preview key."""

    def __init__(self, max_entries: int = 64) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._max_entries = max_entries
        self._items: OrderedDict[str, Any] = OrderedDict()

    def put(self, key: str, payload: Any) -> None:
        self._items[key] = payload
        self._items.move_to_end(key)
        while len(self._items) > self._max_entries:
            self._items.popitem(last=False)

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._items:
            return default
        self._items.move_to_end(key)
        return self._items[key]

    def clear(self) -> None:
        self._items.clear()

    def keys(self) -> list[str]:
        return list(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)
