"""
User edit directives and an in-memory object store holding them.
"""

import threading
from dataclasses import dataclass
from typing import List, Dict, Union

@dataclass(frozen=True)
class PointOverride:
    """
    Replace the position of records whose time falls in [ltime, rtime].

    The overridden samples are fixed anchors: they are neither smoothed
    nor moved by track simplification.
    """

    ltime: int
    rtime: int
    latitude: float
    longitude: float

    def covers(self, time: int) -> bool:
        return self.ltime <= time <= self.rtime

@dataclass(frozen=True)
class BulkRemove:
    """Discard every record whose time falls in [ltime, rtime]."""

    ltime: int
    rtime: int

    def covers(self, time: int) -> bool:
        return self.ltime <= time <= self.rtime

Directive = Union[PointOverride, BulkRemove]

class MemoryEditStore:
    """Object store of edit directives with a modification counter."""

    def __init__(self):
        self._directives: Dict[int, Directive] = {}
        self._next_id = 0
        self._mod_count = 0
        self._lock = threading.Lock()

    def add(self, directive: Directive) -> int:
        """
        Store a directive.

        Returns:
            Identifier for remove()
        """
        if directive.rtime < directive.ltime:
            raise ValueError(f"empty time range [{directive.ltime}, {directive.rtime}]")

        with self._lock:
            directive_id = self._next_id
            self._next_id += 1
            self._directives[directive_id] = directive
            self._mod_count += 1
            return directive_id

    def remove(self, directive_id: int) -> bool:
        """Drop a directive. Returns False if the id is unknown."""
        with self._lock:
            if self._directives.pop(directive_id, None) is None:
                return False
            self._mod_count += 1
            return True

    def directives(self) -> List[Directive]:
        with self._lock:
            return list(self._directives.values())

    def mod_count(self) -> int:
        with self._lock:
            return self._mod_count
