"""
Save and delete with cascading.

A save runs in two cascade phases around one flush:

1. Attach the entity to the session if it is not tracked yet and emit
   ``persisted``.
2. Marking phase (fresh visited set): every entity reached through cascading
   relationships gets ``will_be_saved = True`` and an ``updated``
   notification; reached entities the session does not track yet are attached.
3. Flush. Failures carrying a statement are translated to ``StorageFailure``.
4. Clearing phase (another fresh visited set): ``will_be_saved = False`` on
   every reached entity. This phase also runs when the flush fails, so no
   entity stays flagged after the call returns or raises.

Delete has the same shape, removing the root from the session between the
marking phase and the flush and emitting ``deleted`` at the end.

The clearing phase walks the graph again with its own visited set instead of
reusing the marking phase's one, so entities attached or loaded during the
flush are reached as well.
"""
import logging
from typing import Optional

from entcascade.errors import STORAGE_ERRORS, CascadeFailure, translate_storage_failure
from entcascade.persistence.dependency.graph import CascadeGraph
from entcascade.persistence.entity import Entity
from entcascade.persistence.events import DELETED, PERSISTED, LifecycleEventEmitter
from entcascade.persistence.metadata import EntityTypeRegistry, default_registry
from entcascade.persistence.proxy import ProxyUnwrapper
from entcascade.persistence.session import SessionAdapter
from entcascade.persistence.visited import visited_scope
from entcascade.persistence.walker import CascadeWalker


class CascadeEngine:
    """
    Facade for cascading saves and deletes against one session.

    Args:
        session: The session adapter entities are saved through
        emitter: Receives lifecycle notifications; a private one is created if omitted
        unwrapper: Overrides the session's own unwrapper
        registry: Entity metadata registry, the process-wide one by default
    """

    def __init__(
        self,
        session: SessionAdapter,
        emitter: Optional[LifecycleEventEmitter] = None,
        unwrapper: Optional[ProxyUnwrapper] = None,
        registry: Optional[EntityTypeRegistry] = None,
    ):
        self._logger = logging.getLogger("CascadeEngine")
        self.session = session
        self.emitter = emitter or LifecycleEventEmitter()
        self._registry = registry or default_registry
        self._unwrapper = unwrapper or getattr(session, "unwrapper", None) or ProxyUnwrapper()
        self._walker = CascadeWalker(self.emitter, self._unwrapper, self._registry)

    def save(self, entity: Entity) -> None:
        self._logger.info(f"Saving {entity!r}")
        if not self.session.is_tracked(entity):
            self.session.track(entity)
            self.emitter.emit(PERSISTED, entity)

        failed = True
        try:
            with visited_scope() as visited:
                self._walker.cascade(entity, True, visited, visit=self._attach)
            self._flush()
            failed = False
        finally:
            self._clear(entity, failed)
        self._logger.info(f"Saved {entity!r}")

    def delete(self, entity: Entity) -> None:
        self._logger.info(f"Deleting {entity!r}")
        failed = True
        try:
            with visited_scope() as visited:
                self._walker.cascade(entity, True, visited)
            self.session.remove(entity)
            self._flush()
            failed = False
        finally:
            self._clear(entity, failed)
        self.emitter.emit(DELETED, entity)
        self._logger.info(f"Deleted {entity!r}")

    def plan(self, entity: Entity) -> CascadeGraph:
        """Preview what a save or delete of ``entity`` would reach, without side effects."""
        return CascadeGraph.build(entity, self._unwrapper, self._registry)

    def _clear(self, entity: Entity, failed: bool) -> None:
        """
        Run the clearing phase.

        When the operation already failed, a clearing failure is logged and the
        operation's own error is the one that propagates.
        """
        try:
            with visited_scope() as visited:
                self._walker.cascade(entity, False, visited)
        except CascadeFailure as e:
            if not failed:
                raise
            self._logger.warning(f"Clearing phase from {entity!r} failed after an earlier error: {e.cause!r}")

    def _attach(self, entity: Entity) -> None:
        if not self.session.is_tracked(entity):
            self._logger.debug(f"Attaching cascaded {entity!r}")
            self.session.track(entity)

    def _flush(self) -> None:
        try:
            self.session.flush()
        except STORAGE_ERRORS as e:
            translated = translate_storage_failure(e)
            if translated is e:
                raise
            raise translated from e
