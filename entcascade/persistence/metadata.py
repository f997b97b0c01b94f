"""
Static per-type persistence metadata.

Each entity type is described exactly once, when it is registered, by an
``EntityDescriptor``: which attribute holds the identity key, its declared type,
and the ordered relationship fields with their cascade configuration.
Descriptors are immutable and shared by every instance of the type, so the
cascade walker never has to introspect classes at save time.

Types can be described in three ways:

1. Declaratively, with the markers defined here::

       class Order(Entity):
           id = Key(int)
           items = OneToMany(cascade=[CascadeType.ALL])
           customer = ManyToOne()

2. From a SQLAlchemy mapper (see ``entcascade.sql.mapping``), derived the first
   time the type is looked up.

3. Explicitly, with ``register_entity_type``.
"""
import logging
import threading
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from entcascade.errors import ConfigurationError


class RelationKind(Enum):
    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_ONE = "many-to-one"
    MANY_TO_MANY = "many-to-many"


class CascadeType(Enum):
    ALL = "all"
    PERSIST = "persist"
    MERGE = "merge"
    REMOVE = "remove"
    REFRESH = "refresh"
    DETACH = "detach"


CascadeSpec = Union[CascadeType, str, Iterable[Union[CascadeType, str]], None]


def normalize_cascade(cascade: CascadeSpec) -> FrozenSet[CascadeType]:
    """Turn a user supplied cascade declaration into a set of ``CascadeType``."""
    if cascade is None:
        return frozenset()
    if isinstance(cascade, (CascadeType, str)):
        cascade = [cascade]
    result = set()
    for item in cascade:
        if isinstance(item, CascadeType):
            result.add(item)
        else:
            try:
                result.add(CascadeType(item.strip().lower()))
            except ValueError as e:
                raise ConfigurationError(f"Unknown cascade type: {item!r}") from e
    return frozenset(result)


##############################
# 1) Descriptors
##############################

class RelationshipDescriptor(BaseModel):
    """One persistent relationship field of an entity type."""
    model_config = ConfigDict(frozen=True)

    name: str
    kind: RelationKind
    cascade_types: FrozenSet[CascadeType] = Field(default_factory=frozenset)

    @property
    def cascade(self) -> bool:
        """True when saves (and deletes) propagate through this field."""
        return self.cascades(CascadeType.ALL, CascadeType.PERSIST)

    def cascades(self, *types: CascadeType) -> bool:
        return any(t in self.cascade_types for t in types)


class EntityDescriptor(BaseModel):
    """Everything the engine needs to know about an entity type."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    entity_type: Type[Any]
    key_name: Optional[str] = None
    key_type: Optional[Any] = None
    relationships: Tuple[RelationshipDescriptor, ...] = ()

    @property
    def has_key(self) -> bool:
        return self.key_name is not None

    @property
    def cascading(self) -> Tuple[RelationshipDescriptor, ...]:
        return tuple(r for r in self.relationships if r.cascade)

    def relationship(self, name: str) -> Optional[RelationshipDescriptor]:
        for rel in self.relationships:
            if rel.name == name:
                return rel
        return None


##############################
# 2) Declarative markers
##############################

class _PersistentAttribute:
    """Data descriptor storing its value in the instance ``__dict__``."""

    def __init__(self) -> None:
        self.name: Optional[str] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type) -> Any:
        if instance is None:
            return self
        return instance.__dict__.get(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        instance.__dict__[self.name] = value


class Key(_PersistentAttribute):
    """Marks the identity key attribute of an entity type."""

    def __init__(self, key_type: Optional[type] = None):
        super().__init__()
        self.key_type = key_type


class Relation(_PersistentAttribute):
    """
    A relationship field.

    Args:
        kind: The relationship kind
        cascade: Cascade types, as ``CascadeType`` members or their string values
        transient: Transient fields are never considered for persistence
    """

    def __init__(self, kind: RelationKind, cascade: CascadeSpec = None, transient: bool = False):
        super().__init__()
        self.kind = kind
        self.cascade_types = normalize_cascade(cascade)
        self.transient = transient

    def to_descriptor(self) -> RelationshipDescriptor:
        return RelationshipDescriptor(name=self.name, kind=self.kind, cascade_types=self.cascade_types)


class OneToOne(Relation):
    def __init__(self, cascade: CascadeSpec = None, transient: bool = False):
        super().__init__(RelationKind.ONE_TO_ONE, cascade, transient)


class OneToMany(Relation):
    def __init__(self, cascade: CascadeSpec = None, transient: bool = False):
        super().__init__(RelationKind.ONE_TO_MANY, cascade, transient)


class ManyToOne(Relation):
    def __init__(self, cascade: CascadeSpec = None, transient: bool = False):
        super().__init__(RelationKind.MANY_TO_ONE, cascade, transient)


class ManyToMany(Relation):
    def __init__(self, cascade: CascadeSpec = None, transient: bool = False):
        super().__init__(RelationKind.MANY_TO_MANY, cascade, transient)


##############################
# 3) Registry
##############################

class EntityTypeRegistry:
    """
    Table of entity descriptors, one per type.

    Lookups are memoized; registration is serialized by a lock so concurrent
    first lookups of a type compute a single descriptor.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger("EntityTypeRegistry")
        self._descriptors: Dict[type, EntityDescriptor] = {}
        self._lock = threading.RLock()

    def register(
        self,
        entity_type: type,
        key: Optional[str] = None,
        key_type: Optional[Any] = None,
        relationships: Iterable[RelationshipDescriptor] = (),
    ) -> EntityDescriptor:
        """Register (or replace) the descriptor of ``entity_type``."""
        descriptor = EntityDescriptor(
            entity_type=entity_type,
            key_name=key,
            key_type=key_type,
            relationships=tuple(relationships),
        )
        with self._lock:
            self._descriptors[entity_type] = descriptor
        self._logger.debug(
            f"Registered {entity_type.__name__}: key={key}, "
            f"relationships={[r.name for r in descriptor.relationships]}"
        )
        return descriptor

    def register_declared(self, entity_type: type, stop_at: type) -> Optional[EntityDescriptor]:
        """
        Build a descriptor from the declarative markers of ``entity_type``.

        The class hierarchy is walked once, from the concrete type upward,
        stopping at ``stop_at``. The first ``Key`` found is the identity key;
        relationships are collected base-first so subclasses can override them.

        Returns:
            The registered descriptor, or None when the hierarchy declares no
            markers at all (e.g. a SQLAlchemy mapped class)
        """
        hierarchy = []
        for klass in entity_type.__mro__:
            if klass is stop_at or klass is object:
                break
            hierarchy.append(klass)

        key_marker: Optional[Key] = None
        for klass in hierarchy:
            for value in vars(klass).values():
                if isinstance(value, Key):
                    key_marker = value
                    break
            if key_marker is not None:
                break

        relations: Dict[str, Relation] = {}
        for klass in reversed(hierarchy):
            for name, value in vars(klass).items():
                if isinstance(value, Relation):
                    relations[name] = value
                elif name in relations:
                    del relations[name]

        if key_marker is None and not relations:
            return None

        return self.register(
            entity_type,
            key=key_marker.name if key_marker is not None else None,
            key_type=key_marker.key_type if key_marker is not None else None,
            relationships=[r.to_descriptor() for r in relations.values() if not r.transient],
        )

    def describe(self, entity_type: type) -> EntityDescriptor:
        """Return the descriptor of ``entity_type``, deriving it on first use."""
        descriptor = self._descriptors.get(entity_type)
        if descriptor is not None:
            return descriptor
        with self._lock:
            descriptor = self._descriptors.get(entity_type)
            if descriptor is not None:
                return descriptor
            # Import only at call time, the sql package depends on this module
            from entcascade.sql.mapping import descriptor_from_mapper
            descriptor = descriptor_from_mapper(entity_type)
            if descriptor is None:
                self._logger.debug(f"{entity_type.__name__} declares no persistence metadata")
                descriptor = EntityDescriptor(entity_type=entity_type)
            self._descriptors[entity_type] = descriptor
            return descriptor

    def describe_relationships(self, entity_type: type) -> Tuple[RelationshipDescriptor, ...]:
        return self.describe(entity_type).relationships

    def resolve_key(self, entity: Any) -> Tuple[Any, bool]:
        """
        Read the identity key of ``entity``.

        Returns:
            Tuple of (key value, whether the type declares a key at all)
        """
        descriptor = self.describe(type(entity))
        if not descriptor.has_key:
            return None, False
        try:
            return getattr(entity, descriptor.key_name), True
        except Exception as e:
            raise ConfigurationError(
                f"Error while determining the key of an object of type {type(entity).__name__}", e
            ) from e

    def resolve_key_type(self, entity_type: type) -> Optional[Any]:
        return self.describe(entity_type).key_type

    def require_key(self, entity: Any) -> Any:
        """Like ``resolve_key`` but a type without a declared key is an error."""
        value, found = self.resolve_key(entity)
        if not found:
            raise ConfigurationError(f"No identity key declared for {type(entity).__name__}")
        return value

    def set_key(self, entity: Any, value: Any) -> None:
        descriptor = self.describe(type(entity))
        if not descriptor.has_key:
            raise ConfigurationError(f"No identity key declared for {type(entity).__name__}")
        setattr(entity, descriptor.key_name, value)


default_registry = EntityTypeRegistry()


def register_entity_type(
    entity_type: type,
    key: Optional[str] = None,
    key_type: Optional[Any] = None,
    relationships: Iterable[RelationshipDescriptor] = (),
) -> EntityDescriptor:
    return default_registry.register(entity_type, key, key_type, relationships)


def describe_relationships(entity_type: type) -> Tuple[RelationshipDescriptor, ...]:
    return default_registry.describe_relationships(entity_type)


def resolve_key(entity: Any) -> Tuple[Any, bool]:
    return default_registry.resolve_key(entity)


def resolve_key_type(entity_type: type) -> Optional[Any]:
    return default_registry.resolve_key_type(entity_type)
