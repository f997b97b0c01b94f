"""
Base class for entities taking part in cascading persistence.

``Entity`` can be used on its own, with the declarative markers from
``entcascade.persistence.metadata``, or as a mixin on SQLAlchemy declarative
classes, in which case the mapper provides the metadata.

Identity:
    Two entities are equal when they are the same object, or when they have the
    same concrete type and both resolve to an equal, non-null key. An entity
    without a key is only equal to itself. The hash is the key's hash, or 0
    while no key has been assigned, so it changes once the key is assigned.
"""
from typing import Any, Optional

from entcascade.persistence.metadata import default_registry


class Entity:
    # Set by the cascade walker: True between the marking pass and the flush,
    # False once the operation has settled
    will_be_saved = False

    def __init__(self, **kwargs: Any) -> None:
        for name, value in kwargs.items():
            if not hasattr(type(self), name):
                raise TypeError(f"{name!r} is an invalid keyword argument for {type(self).__name__}")
            setattr(self, name, value)

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        default_registry.register_declared(cls, stop_at=Entity)

    @property
    def entity_id(self) -> Any:
        """The identity key, cached as soon as it is non-null."""
        key = self.__dict__.get("_entity_key")
        if key is None:
            key = self.get_key()
            if key is not None:
                self.__dict__["_entity_key"] = key
        return key

    def get_key(self) -> Any:
        value, _ = default_registry.resolve_key(self)
        return value

    @classmethod
    def get_key_type(cls) -> Optional[Any]:
        return default_registry.resolve_key_type(cls)

    def __eq__(self, other: object) -> bool:
        if other is None:
            return False
        if self is other:
            return True
        if type(self) is not type(other):
            return False
        key = self.entity_id
        if key is None:
            return False
        return key == other.entity_id

    def __hash__(self) -> int:
        key = self.entity_id
        if key is None:
            return 0
        return hash(key)

    def __repr__(self) -> str:
        return f"{type(self).__name__}[{self.entity_id}]"
