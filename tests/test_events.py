"""
Tests for lifecycle notifications.
"""
import pytest

from entcascade.persistence.events import DELETED, PERSISTED, UPDATED, LifecycleEventEmitter
from tests.models import LineItem


def test_listeners_called_in_subscription_order():
    emitter = LifecycleEventEmitter()
    calls = []
    emitter.subscribe(UPDATED, lambda name, entity: calls.append(("first", name, entity)))
    emitter.subscribe(UPDATED, lambda name, entity: calls.append(("second", name, entity)))
    item = LineItem()

    emitter.emit(UPDATED, item)

    assert calls == [("first", UPDATED, item), ("second", UPDATED, item)]


def test_listeners_only_receive_their_event(recorder):
    emitter = LifecycleEventEmitter()
    emitter.subscribe(DELETED, recorder)
    emitter.emit(PERSISTED, LineItem())
    assert recorder.events == []


def test_emit_without_listeners():
    LifecycleEventEmitter().emit(PERSISTED, LineItem())


def test_unsubscribe(recorder):
    emitter = LifecycleEventEmitter()
    emitter.subscribe(PERSISTED, recorder)
    emitter.unsubscribe(PERSISTED, recorder)
    emitter.unsubscribe(PERSISTED, recorder)
    emitter.emit(PERSISTED, LineItem())
    assert recorder.events == []


def test_listener_error_propagates():
    emitter = LifecycleEventEmitter()

    def failing(name, entity):
        raise RuntimeError("listener failed")

    emitter.subscribe(UPDATED, failing)
    with pytest.raises(RuntimeError, match="listener failed"):
        emitter.emit(UPDATED, LineItem())
