"""
Session adapter over a SQLAlchemy ORM session.

Lazy loading is inspected through the instance state: an attribute listed in
``inspect(obj).unloaded`` has never been loaded (or has been expired) and is
reported as uninitialized without being touched. Loaded values are read from
the state dictionary directly, so no attribute access can trigger a load.
"""
import logging
from typing import List, Optional

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import Session, configure_mappers, sessionmaker

from entcascade.config import CascadeSettings
from entcascade.persistence.entity import Entity
from entcascade.persistence.metadata import (
    EntityDescriptor,
    EntityTypeRegistry,
    RelationshipDescriptor,
    default_registry,
)
from entcascade.persistence.proxy import CascadeTarget, ProxyUnwrapper
from entcascade.sql.mapping import descriptor_from_mapper


class SqlAlchemyUnwrapper(ProxyUnwrapper):
    def target_of(self, entity: Entity, relationship: RelationshipDescriptor) -> CascadeTarget:
        state = inspect(entity, raiseerr=False)
        if state is None:
            return super().target_of(entity, relationship)
        if relationship.name in state.unloaded:
            return CascadeTarget.uninitialized()
        return self.unwrap(state.dict.get(relationship.name))


class SqlAlchemySession:
    """
    Adapts a ``sqlalchemy.orm.Session`` to the engine's session protocol.

    Flush errors are left as SQLAlchemy raised them; the engine translates them.
    """

    def __init__(self, session: Session) -> None:
        self._logger = logging.getLogger("SqlAlchemySession")
        self.session = session
        self.unwrapper = SqlAlchemyUnwrapper()

    def is_tracked(self, entity: Entity) -> bool:
        return entity in self.session

    def track(self, entity: Entity) -> None:
        self._logger.debug(f"Adding {entity!r} to session")
        self.session.add(entity)

    def remove(self, entity: Entity) -> None:
        self._logger.debug(f"Deleting {entity!r} from session")
        self.session.delete(entity)

    def flush(self) -> None:
        self._logger.debug(f"Flushing {len(self.session.new)} new, {len(self.session.dirty)} dirty, "
                           f"{len(self.session.deleted)} deleted")
        self.session.flush()


def register_mapped_classes(base: type, registry: Optional[EntityTypeRegistry] = None) -> List[EntityDescriptor]:
    """
    Describe every class mapped by ``base``'s registry up front.

    Types are otherwise described lazily on first use; calling this at startup
    surfaces configuration problems (e.g. composite keys) immediately.
    """
    registry = registry or default_registry
    configure_mappers()
    descriptors = []
    for mapper in base.registry.mappers:
        descriptor = descriptor_from_mapper(mapper.class_)
        descriptors.append(registry.register(
            descriptor.entity_type,
            key=descriptor.key_name,
            key_type=descriptor.key_type,
            relationships=descriptor.relationships,
        ))
    return descriptors


def create_session_factory(settings: Optional[CascadeSettings] = None) -> sessionmaker:
    """Build a ``sessionmaker`` bound to the configured database."""
    settings = settings or CascadeSettings.from_env()
    engine = create_engine(settings.database_url, echo=settings.sql_echo)
    return sessionmaker(bind=engine)
