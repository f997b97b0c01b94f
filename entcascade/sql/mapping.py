"""
Entity descriptors derived from SQLAlchemy mappers.

SQLAlchemy cascade options are mapped onto ``CascadeType``:

    save-update    -> PERSIST
    merge          -> MERGE
    delete         -> REMOVE
    refresh-expire -> REFRESH
    expunge        -> DETACH

and a relationship carrying all five is additionally marked ``ALL``. SQLAlchemy's
default cascade is ``"save-update, merge"``, so relationships cascade unless
configured otherwise. View-only relationships never persist anything and are
left out.
"""
from typing import Any, Dict, FrozenSet, Optional

from sqlalchemy import inspect
from sqlalchemy.orm import Mapper, RelationshipDirection, RelationshipProperty

from entcascade.errors import ConfigurationError
from entcascade.persistence.metadata import (
    CascadeType,
    EntityDescriptor,
    RelationKind,
    RelationshipDescriptor,
)

_CASCADE_OPTIONS: Dict[str, CascadeType] = {
    "save-update": CascadeType.PERSIST,
    "merge": CascadeType.MERGE,
    "delete": CascadeType.REMOVE,
    "refresh-expire": CascadeType.REFRESH,
    "expunge": CascadeType.DETACH,
}


def cascade_types_of(relationship: RelationshipProperty) -> FrozenSet[CascadeType]:
    types = {cascade_type for option, cascade_type in _CASCADE_OPTIONS.items() if option in relationship.cascade}
    if len(types) == len(_CASCADE_OPTIONS):
        types.add(CascadeType.ALL)
    return frozenset(types)


def relation_kind_of(relationship: RelationshipProperty) -> RelationKind:
    if relationship.direction is RelationshipDirection.MANYTOMANY:
        return RelationKind.MANY_TO_MANY
    if relationship.direction is RelationshipDirection.ONETOMANY:
        return RelationKind.ONE_TO_MANY if relationship.uselist else RelationKind.ONE_TO_ONE
    # Many-to-one is always scalar; it maps a one-to-one when the other side is scalar too
    if relationship.back_populates:
        reverse = relationship.mapper.relationships.get(relationship.back_populates)
        if reverse is not None and not reverse.uselist:
            return RelationKind.ONE_TO_ONE
    return RelationKind.MANY_TO_ONE


def _python_type(column: Any) -> Optional[type]:
    try:
        return column.type.python_type
    except NotImplementedError:
        return None


def descriptor_from_mapper(entity_type: type) -> Optional[EntityDescriptor]:
    """
    Describe a mapped class from its mapper.

    Returns:
        The descriptor, or None when ``entity_type`` is not mapped

    Raises:
        ConfigurationError: If the mapper has a composite primary key
    """
    mapper = inspect(entity_type, raiseerr=False)
    if not isinstance(mapper, Mapper):
        return None

    if len(mapper.primary_key) != 1:
        raise ConfigurationError(
            f"{entity_type.__name__} must declare exactly one identity column, found {len(mapper.primary_key)}"
        )
    key_column = mapper.primary_key[0]
    key_property = mapper.get_property_by_column(key_column)

    relationships = [
        RelationshipDescriptor(
            name=relationship.key,
            kind=relation_kind_of(relationship),
            cascade_types=cascade_types_of(relationship),
        )
        for relationship in mapper.relationships
        if not relationship.viewonly
    ]
    return EntityDescriptor(
        entity_type=entity_type,
        key_name=key_property.key,
        key_type=_python_type(key_column),
        relationships=tuple(relationships),
    )
