"""
Inspection of relationship values without triggering lazy loads.

The walker never looks at raw field values; it asks a ``ProxyUnwrapper`` for a
``CascadeTarget``, a tagged value saying whether the field is absent, not yet
loaded, or holds one entity / a sequence / a mapping of entities. Lazy
containers MUST be checked for initialization before being iterated, otherwise
saving an object would silently load every collection reachable from it.
"""
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from entcascade.persistence.entity import Entity
from entcascade.persistence.metadata import RelationshipDescriptor


class TargetKind(Enum):
    ABSENT = "absent"
    UNINITIALIZED = "uninitialized"
    ENTITY = "entity"
    SEQUENCE = "sequence"
    MAPPING = "mapping"


class CascadeTarget(BaseModel):
    """The resolved value(s) reached by following one relationship field."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: TargetKind
    values: Tuple[Any, ...] = ()

    @classmethod
    def absent(cls) -> "CascadeTarget":
        return cls(kind=TargetKind.ABSENT)

    @classmethod
    def uninitialized(cls) -> "CascadeTarget":
        return cls(kind=TargetKind.UNINITIALIZED)

    @classmethod
    def of_entity(cls, entity: Entity) -> "CascadeTarget":
        return cls(kind=TargetKind.ENTITY, values=(entity,))

    @classmethod
    def of_sequence(cls, items: Iterable[Any]) -> "CascadeTarget":
        return cls(kind=TargetKind.SEQUENCE, values=tuple(items))

    @classmethod
    def of_mapping(cls, mapping: Mapping[Any, Any]) -> "CascadeTarget":
        return cls(kind=TargetKind.MAPPING, values=tuple(mapping.values()))

    @property
    def entities(self) -> List[Entity]:
        """Entities reachable through this target; non-entity values are ignored."""
        return [v for v in self.values if isinstance(v, Entity)]


##############################
# Lazy containers
##############################

class LazyCollection:
    """
    A collection whose elements are fetched by ``loader`` on first access.

    Reading ``initialized`` never loads anything.
    """

    def __init__(self, loader: Optional[Callable[[], Iterable[Any]]] = None, items: Optional[Iterable[Any]] = None):
        if loader is None and items is None:
            raise ValueError("LazyCollection needs a loader or initial items")
        self._loader = loader
        self._items: Optional[List[Any]] = list(items) if items is not None else None
        self.load_count = 0

    @property
    def initialized(self) -> bool:
        return self._items is not None

    def _load(self) -> List[Any]:
        if self._items is None:
            self._items = list(self._loader())
            self.load_count += 1
        return self._items

    def elements(self) -> List[Any]:
        return list(self._load())

    def append(self, item: Any) -> None:
        self._load().append(item)

    def remove(self, item: Any) -> None:
        self._load().remove(item)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._load())

    def __len__(self) -> int:
        return len(self._load())

    def __getitem__(self, index: int) -> Any:
        return self._load()[index]

    def __contains__(self, item: Any) -> bool:
        return item in self._load()

    def __repr__(self) -> str:
        if not self.initialized:
            return f"{type(self).__name__}(<uninitialized>)"
        return f"{type(self).__name__}({self._items!r})"


class LazyMap:
    """A mapping whose entries are fetched by ``loader`` on first access."""

    def __init__(self, loader: Optional[Callable[[], Mapping[Any, Any]]] = None, items: Optional[Mapping[Any, Any]] = None):
        if loader is None and items is None:
            raise ValueError("LazyMap needs a loader or initial items")
        self._loader = loader
        self._items: Optional[Dict[Any, Any]] = dict(items) if items is not None else None
        self.load_count = 0

    @property
    def initialized(self) -> bool:
        return self._items is not None

    def _load(self) -> Dict[Any, Any]:
        if self._items is None:
            self._items = dict(self._loader())
            self.load_count += 1
        return self._items

    def elements(self) -> List[Any]:
        return list(self._load().values())

    def __getitem__(self, key: Any) -> Any:
        return self._load()[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        self._load()[key] = value

    def __iter__(self) -> Iterator[Any]:
        return iter(self._load())

    def __len__(self) -> int:
        return len(self._load())

    def values(self) -> List[Any]:
        return self.elements()

    def __repr__(self) -> str:
        if not self.initialized:
            return f"{type(self).__name__}(<uninitialized>)"
        return f"{type(self).__name__}({self._items!r})"


class LazyReference:
    """A placeholder for a single related entity that has not been fetched yet."""

    def __init__(self, loader: Callable[[], Optional[Entity]]):
        self._loader = loader
        self._target: Optional[Entity] = None
        self._loaded = False
        self.load_count = 0

    @property
    def initialized(self) -> bool:
        return self._loaded

    def get(self) -> Optional[Entity]:
        if not self._loaded:
            self._target = self._loader()
            self._loaded = True
            self.load_count += 1
        return self._target

    @property
    def implementation(self) -> Optional[Entity]:
        """The underlying entity; only meaningful once initialized."""
        return self._target

    def __repr__(self) -> str:
        if not self._loaded:
            return f"{type(self).__name__}(<uninitialized>)"
        return f"{type(self).__name__}({self._target!r})"


##############################
# Unwrapper
##############################

class ProxyUnwrapper:
    """
    Turns relationship values into ``CascadeTarget`` values.

    Session adapters whose lazy-loading works differently subclass this and
    override ``target_of``.
    """

    def is_initialized(self, container: Any) -> bool:
        if isinstance(container, (LazyCollection, LazyMap, LazyReference)):
            return container.initialized
        return True

    def elements_of(self, container: Any) -> List[Any]:
        if isinstance(container, (LazyCollection, LazyMap)):
            return container.elements()
        if isinstance(container, Mapping):
            return list(container.values())
        return list(container)

    def underlying_entity(self, proxy: LazyReference) -> Optional[Entity]:
        return proxy.implementation

    def unwrap(self, value: Any) -> CascadeTarget:
        if value is None:
            return CascadeTarget.absent()
        if isinstance(value, LazyMap):
            if not value.initialized:
                return CascadeTarget.uninitialized()
            return CascadeTarget(kind=TargetKind.MAPPING, values=tuple(self.elements_of(value)))
        if isinstance(value, LazyCollection):
            if not value.initialized:
                return CascadeTarget.uninitialized()
            return CascadeTarget.of_sequence(self.elements_of(value))
        if isinstance(value, LazyReference):
            if not value.initialized:
                return CascadeTarget.uninitialized()
            target = self.underlying_entity(value)
            if target is None:
                return CascadeTarget.absent()
            return CascadeTarget.of_entity(target)
        if isinstance(value, Entity):
            return CascadeTarget.of_entity(value)
        # Plain Python containers are never lazy
        if isinstance(value, Mapping):
            return CascadeTarget.of_mapping(value)
        if isinstance(value, (list, tuple, set, frozenset)):
            return CascadeTarget.of_sequence(value)
        return CascadeTarget.absent()

    def target_of(self, entity: Entity, relationship: RelationshipDescriptor) -> CascadeTarget:
        """Read ``relationship`` on ``entity`` and unwrap it."""
        return self.unwrap(getattr(entity, relationship.name))
