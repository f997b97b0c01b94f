"""
SQLAlchemy integration: entity descriptors derived from mappers and a session
adapter that inspects lazy relationships through the instance state.
"""
from .mapping import descriptor_from_mapper
from .session import SqlAlchemySession, SqlAlchemyUnwrapper, create_session_factory, register_mapped_classes

__all__ = [
    "descriptor_from_mapper",
    "SqlAlchemySession",
    "SqlAlchemyUnwrapper",
    "create_session_factory",
    "register_mapped_classes",
]
