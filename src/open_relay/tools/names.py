"""Bidirectional mapping between tool names and wire-safe function names."""

from __future__ import annotations

import logging
import re

_logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_name(name: str) -> str:
    """Replace characters providers reject in function names."""
    return _UNSAFE.sub("_", name) or "tool"


class ToolNameMap:
    """Original name <-> wire name.

    Two originals that sanitize to the same wire name get distinct wire
    names by numeric suffix (``a_b``, ``a_b_2``, ...).
    """

    def __init__(self, names: list[str] | None = None) -> None:
        self._to_wire: dict[str, str] = {}
        self._to_original: dict[str, str] = {}
        for name in names or []:
            self.add(name)

    def add(self, name: str) -> str:
        """Register *name* and return its wire name."""
        if name in self._to_wire:
            return self._to_wire[name]
        base = sanitize_name(name)
        wire = base
        n = 2
        while wire in self._to_original:
            wire = f"{base}_{n}"
            n += 1
        if wire != base:
            _logger.warning(
                "Tool name %r collides with %r on the wire; using %r",
                name, self._to_original[base], wire,
            )
        self._to_wire[name] = wire
        self._to_original[wire] = name
        return wire

    def wire(self, name: str) -> str | None:
        return self._to_wire.get(name)

    def original(self, wire_name: str) -> str | None:
        return self._to_original.get(wire_name)

    def __len__(self) -> int:
        return len(self._to_wire)
