"""
Common fixtures for the cascade tests.
"""
import logging
from typing import Any, List, Tuple

import pytest

from entcascade.persistence.engine import CascadeEngine
from entcascade.persistence.events import DELETED, PERSISTED, UPDATED, LifecycleEventEmitter
from entcascade.persistence.session import InMemorySession
from tests.models import LineItem

logging.basicConfig(level=logging.INFO)


class EventRecorder:
    """Collects lifecycle notifications in the order they were emitted."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Any]] = []

    def __call__(self, event_name: str, entity: Any) -> None:
        self.events.append((event_name, entity))

    def entities(self, event_name: str) -> List[Any]:
        return [entity for name, entity in self.events if name == event_name]

    def count(self, event_name: str, entity: Any) -> int:
        return sum(1 for name, e in self.events if name == event_name and e is entity)


class SnapshotSession(InMemorySession):
    """Records what was tracked and flagged at the moment of each flush."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.flagged_at_flush: List[Any] = []
        self.tracked_at_flush: List[Any] = []
        self.watch: List[Any] = []

    def flush(self) -> None:
        self.flagged_at_flush = [e for e in self.watch if e.will_be_saved]
        self.tracked_at_flush = [e for e in self.watch if self.is_tracked(e)]
        super().flush()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def emitter(recorder: EventRecorder) -> LifecycleEventEmitter:
    emitter = LifecycleEventEmitter()
    for event_name in (PERSISTED, UPDATED, DELETED):
        emitter.subscribe(event_name, recorder)
    return emitter


@pytest.fixture
def session() -> SnapshotSession:
    return SnapshotSession(unique_constraints={LineItem: ["sku"]})


@pytest.fixture
def engine(session: SnapshotSession, emitter: LifecycleEventEmitter) -> CascadeEngine:
    return CascadeEngine(session, emitter=emitter)
