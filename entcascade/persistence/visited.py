"""
Per-operation bookkeeping of entities already visited by a cascade pass.

Membership is by object identity, not by key: unsaved entities commonly share a
null key and must still be told apart. A ``VisitedSet`` belongs to exactly one
cascade phase of one operation and is passed explicitly; nothing is stored per
thread or globally.
"""
from contextlib import contextmanager
from typing import Any, Dict, Iterator


class VisitedSet:
    def __init__(self) -> None:
        # id() -> object; holding the object keeps its id from being reused
        self._members: Dict[int, Any] = {}

    def try_enter(self, entity: Any) -> bool:
        """Add ``entity``; False if it was already present."""
        marker = id(entity)
        if marker in self._members:
            return False
        self._members[marker] = entity
        return True

    def clear(self) -> None:
        self._members.clear()

    def __contains__(self, entity: Any) -> bool:
        return id(entity) in self._members

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._members.values()))


def new_scope() -> VisitedSet:
    return VisitedSet()


@contextmanager
def visited_scope() -> Iterator[VisitedSet]:
    """A fresh visited set, cleared on exit whether or not the block raised."""
    visited = new_scope()
    try:
        yield visited
    finally:
        visited.clear()
