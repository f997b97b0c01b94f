import logging
import threading
from typing import Any, Callable, Dict, List

PERSISTED = "persisted"
UPDATED = "updated"
DELETED = "deleted"

Listener = Callable[[str, Any], None]


class LifecycleEventEmitter:
    """
    Fire-and-forget notifications about entity lifecycle transitions.

    Listeners are called synchronously in subscription order with
    ``(event_name, entity)``. A listener that raises aborts the operation that
    emitted the event.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger("LifecycleEvents")
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_name: str, listener: Listener) -> None:
        with self._lock:
            self._listeners.setdefault(event_name, []).append(listener)

    def unsubscribe(self, event_name: str, listener: Listener) -> None:
        with self._lock:
            listeners = self._listeners.get(event_name, [])
            if listener in listeners:
                listeners.remove(listener)

    def emit(self, event_name: str, entity: Any) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event_name, ()))
        self._logger.debug(f"{event_name}: {entity!r} ({len(listeners)} listeners)")
        for listener in listeners:
            listener(event_name, entity)
