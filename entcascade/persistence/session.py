"""
Session adapters: the boundary between the cascade engine and the storage
layer that actually tracks, removes and flushes entities.
"""
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, Type, runtime_checkable

from entcascade.errors import ConfigurationError, StorageError
from entcascade.persistence.entity import Entity
from entcascade.persistence.metadata import CascadeType, EntityTypeRegistry, default_registry
from entcascade.persistence.proxy import ProxyUnwrapper


@runtime_checkable
class SessionAdapter(Protocol):
    """What the engine needs from a persistence session."""
    unwrapper: ProxyUnwrapper

    def is_tracked(self, entity: Entity) -> bool: ...
    def track(self, entity: Entity) -> None: ...
    def remove(self, entity: Entity) -> None: ...
    def flush(self) -> None: ...


class InMemorySession:
    """
    Dictionary-backed session.

    Tracks entities by identity until ``flush`` writes them to the store,
    generating missing keys and checking uniqueness constraints first, so a
    failed flush leaves the store and the entities untouched.

    Args:
        unique_constraints: Map of entity type to the attribute names whose
            values must be unique among stored entities of that type
        registry: Where entity metadata is looked up
    """

    def __init__(
        self,
        unique_constraints: Optional[Dict[type, Iterable[str]]] = None,
        registry: Optional[EntityTypeRegistry] = None,
    ) -> None:
        self._logger = logging.getLogger("InMemorySession")
        self.unwrapper = ProxyUnwrapper()
        self._registry = registry or default_registry
        self._unique: Dict[type, Tuple[str, ...]] = {
            t: tuple(fields) for t, fields in (unique_constraints or {}).items()
        }
        self._tracked: Dict[int, Entity] = {}
        self._removed: Dict[int, Entity] = {}
        self._store: Dict[type, Dict[Any, Entity]] = {}
        self._sequences: Dict[type, int] = {}
        self.flush_count = 0

    # Session protocol

    def is_tracked(self, entity: Entity) -> bool:
        return id(entity) in self._tracked

    def track(self, entity: Entity) -> None:
        self._logger.debug(f"Tracking {entity!r}")
        self._tracked[id(entity)] = entity
        self._removed.pop(id(entity), None)

    def remove(self, entity: Entity) -> None:
        """
        Schedule ``entity`` for removal, along with every loaded entity reached
        through relationships cascading ALL or REMOVE.
        """
        if not self.is_tracked(entity):
            raise StorageError(f"Removing a detached instance {entity!r}")
        to_remove = [entity]
        seen = set()
        while to_remove:
            current = to_remove.pop()
            if id(current) in seen:
                continue
            seen.add(id(current))
            self._logger.debug(f"Scheduling removal of {current!r}")
            self._tracked.pop(id(current), None)
            self._removed[id(current)] = current
            for relationship in self._registry.describe(type(current)).relationships:
                if not relationship.cascades(CascadeType.ALL, CascadeType.REMOVE):
                    continue
                to_remove.extend(self.unwrapper.target_of(current, relationship).entities)

    def flush(self) -> None:
        # Everything that can fail runs before the store or any entity is modified
        self._check_unique_constraints()

        removals = [(type(e), self._registry.require_key(e)) for e in self._removed.values()]
        sequences = dict(self._sequences)
        inserts: List[Tuple[Entity, Any, bool]] = []
        for entity in self._tracked.values():
            key = self._registry.require_key(entity)
            generated = key is None
            if generated:
                key = self._generate_key(type(entity), sequences)
            inserts.append((entity, key, generated))

        for entity_type, key in removals:
            if key is not None:
                self._store.get(entity_type, {}).pop(key, None)
        self._removed.clear()
        self._sequences = sequences
        for entity, key, generated in inserts:
            if generated:
                self._registry.set_key(entity, key)
            self._store.setdefault(type(entity), {})[key] = entity

        self.flush_count += 1
        self._logger.info(f"Flushed {len(inserts)} tracked and {len(removals)} removed entities")

    # Inspection

    def get(self, entity_type: Type[Entity], key: Any) -> Optional[Entity]:
        return self._store.get(entity_type, {}).get(key)

    def all(self, entity_type: Type[Entity]) -> List[Entity]:
        return list(self._store.get(entity_type, {}).values())

    def pending_removals(self) -> List[Entity]:
        return list(self._removed.values())

    # Internals

    def _generate_key(self, entity_type: type, sequences: Dict[type, int]) -> Any:
        key_type = self._registry.resolve_key_type(entity_type)
        if key_type is int:
            sequences[entity_type] = sequences.get(entity_type, 0) + 1
            return sequences[entity_type]
        if key_type is uuid.UUID:
            return uuid.uuid4()
        if key_type is str:
            return str(uuid.uuid4())
        raise ConfigurationError(f"Cannot generate a key of type {key_type!r} for {entity_type.__name__}")

    def _check_unique_constraints(self) -> None:
        for entity_type, fields in self._unique.items():
            rows = [e for e in self._tracked.values() if type(e) is entity_type]
            table = entity_type.__name__.lower()
            for field in fields:
                owners: Dict[Any, Entity] = {}
                for entity in rows:
                    value = getattr(entity, field)
                    if value is None:
                        continue
                    if value in owners and owners[value] is not entity:
                        raise StorageError(
                            f"UNIQUE constraint failed: {table}.{field}",
                            statement=f"INSERT INTO {table} ({field}) VALUES ({value!r})",
                        )
                    owners[value] = entity
