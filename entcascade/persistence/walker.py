"""
The cascade walker.

One call to ``CascadeWalker.cascade`` is one phase of a save or delete: every
entity reachable from the root through cascading relationships gets its
``will_be_saved`` flag set to the phase flag, and, in the marking phase, an
``updated`` notification. The visited set makes cyclic and diamond-shaped
graphs terminate with each entity processed once.

Traversal is depth-first, pre-order, relationships in declaration order. It
uses an explicit work stack instead of recursion so long chains are not limited
by the interpreter's recursion depth.
"""
import logging
from typing import Any, Callable, List, Optional

from entcascade.errors import CascadeFailure
from entcascade.persistence.entity import Entity
from entcascade.persistence.events import UPDATED, LifecycleEventEmitter
from entcascade.persistence.metadata import EntityTypeRegistry, default_registry
from entcascade.persistence.proxy import ProxyUnwrapper
from entcascade.persistence.visited import VisitedSet

VisitHook = Callable[[Entity], None]


class CascadeWalker:
    def __init__(
        self,
        emitter: LifecycleEventEmitter,
        unwrapper: Optional[ProxyUnwrapper] = None,
        registry: Optional[EntityTypeRegistry] = None,
    ):
        self._logger = logging.getLogger("CascadeWalker")
        self._emitter = emitter
        self._unwrapper = unwrapper or ProxyUnwrapper()
        self._registry = registry or default_registry

    def cascade(
        self,
        entity: Entity,
        phase_flag: bool,
        visited: VisitedSet,
        visit: Optional[VisitHook] = None,
    ) -> None:
        """
        Run one cascade phase from ``entity``.

        Args:
            entity: Root of the traversal
            phase_flag: Value written to ``will_be_saved`` on every reached entity
            visited: Visited set of this phase, shared by the whole traversal
            visit: Called once per newly entered entity in the marking phase

        Raises:
            CascadeFailure: Wrapping whatever went wrong while reading a
                relationship or handling a reached entity
        """
        self._logger.debug(f"Cascade phase={phase_flag} from {entity!r}")
        stack: List[Any] = [entity]
        try:
            while stack:
                current = stack.pop()
                current.will_be_saved = phase_flag
                if not visited.try_enter(current):
                    continue
                if phase_flag:
                    self._emitter.emit(UPDATED, current)
                    if visit is not None:
                        visit(current)
                children = []
                for relationship in self._registry.describe(type(current)).cascading:
                    target = self._unwrapper.target_of(current, relationship)
                    children.extend(target.entities)
                # Reversed so the first child is processed first
                stack.extend(reversed(children))
        except CascadeFailure:
            raise
        except Exception as e:
            raise CascadeFailure("During cascading save()", e) from e
        self._logger.debug(f"Cascade phase={phase_flag} from {entity!r} reached {len(visited)} entities")
