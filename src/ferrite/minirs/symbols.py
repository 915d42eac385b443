"""
Symbol environment: names to frame offsets.

Every variable lives in an 8-byte slot below the frame pointer. Slots are
handed out in order of first appearance, 8, 16, 24, ..., and a name keeps
its slot for the rest of the compilation unit. One environment is shared
by all functions of a unit; there is no block or function scoping.
"""

from dataclasses import dataclass, field
from typing import Optional


SLOT_SIZE = 8


@dataclass
class SymbolEnvironment:
    """
    Growable list of ``(name, offset)`` bindings.

    Lookup is a linear scan returning the first match. ``top`` is the
    highest offset handed out so far, array extents included.
    """
    bindings: list[tuple[str, int]] = field(default_factory=list)
    top: int = 0

    def lookup(self, name: str) -> Optional[int]:
        """Return the offset bound to ``name``, or None."""
        for bound, offset in self.bindings:
            if bound == name:
                return offset
        return None

    def __contains__(self, name: str) -> bool:
        return self.lookup(name) is not None

    def declare(self, name: str) -> int:
        """Bind ``name`` to a fresh slot and return its offset."""
        offset = self.top + SLOT_SIZE
        self.bindings.append((name, offset))
        self.top = offset
        return offset

    def resolve(self, name: str) -> int:
        """Return the offset of ``name``, allocating a slot on first use."""
        offset = self.lookup(name)
        if offset is None:
            offset = self.declare(name)
        return offset

    def declare_array(self, name: str, length: int) -> int:
        """
        Bind ``name`` to ``length`` contiguous slots and return the anchor.

        Element ``i`` lives at ``anchor + i * 8``; the next allocation
        starts after the last element. An empty array still takes its
        anchor slot.
        """
        anchor = self.declare(name)
        self.top = max(anchor, anchor + (length - 1) * SLOT_SIZE)
        return anchor
