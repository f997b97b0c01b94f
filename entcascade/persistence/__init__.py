"""
Cascading persistence for entity graphs.

Save and delete propagate through relationships declared as cascading, visit
every entity once per phase even on cyclic graphs, and never load relationship
data that has not been fetched yet.
"""
from .entity import Entity
from .metadata import (
    CascadeType,
    EntityDescriptor,
    EntityTypeRegistry,
    Key,
    ManyToMany,
    ManyToOne,
    OneToMany,
    OneToOne,
    RelationKind,
    RelationshipDescriptor,
    default_registry,
    describe_relationships,
    register_entity_type,
    resolve_key,
    resolve_key_type,
)
from .proxy import CascadeTarget, LazyCollection, LazyMap, LazyReference, ProxyUnwrapper, TargetKind
from .visited import VisitedSet, new_scope, visited_scope
from .events import DELETED, PERSISTED, UPDATED, LifecycleEventEmitter
from .walker import CascadeWalker
from .session import InMemorySession, SessionAdapter
from .engine import CascadeEngine

__all__ = [
    "Entity",
    "CascadeType", "EntityDescriptor", "EntityTypeRegistry", "Key", "ManyToMany", "ManyToOne",
    "OneToMany", "OneToOne", "RelationKind", "RelationshipDescriptor", "default_registry",
    "describe_relationships", "register_entity_type", "resolve_key", "resolve_key_type",
    "CascadeTarget", "LazyCollection", "LazyMap", "LazyReference", "ProxyUnwrapper", "TargetKind",
    "VisitedSet", "new_scope", "visited_scope",
    "DELETED", "PERSISTED", "UPDATED", "LifecycleEventEmitter",
    "CascadeWalker",
    "InMemorySession", "SessionAdapter",
    "CascadeEngine",
]
