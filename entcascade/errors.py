"""
Error taxonomy for the cascading persistence engine.

Every engine-level error carries a structured ``cause`` so callers can fold
over the chain (see ``find_best_cause``) instead of inspecting exception types
one wrapper at a time.
"""
import logging
import sqlite3
from typing import Iterator, Optional, Tuple, Type

from sqlalchemy.exc import DBAPIError, SQLAlchemyError, StatementError

logger = logging.getLogger("ErrorTranslator")

DEFAULT_MAX_CAUSE_DEPTH = 10


class StorageError(Exception):
    """
    Low-level failure raised by a session adapter during flush.

    Args:
        message: Human readable description of the failure
        statement: The statement (or statement fragment) that failed, if known
    """

    def __init__(self, message: str, statement: Optional[str] = None):
        super().__init__(message)
        self.statement = statement


class EngineError(Exception):
    """Base class for errors raised by the engine itself."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class ConfigurationError(EngineError):
    """An entity type is missing metadata or its metadata cannot be read."""


class CascadeFailure(EngineError):
    """Something went wrong while walking cascading relationships."""


class StorageFailure(EngineError):
    """A flush failed; the message is the most actionable statement available."""


class QueryError(EngineError):
    """Wraps a failure raised while running a query against a session."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, cause)

    @property
    def best_cause(self) -> BaseException:
        return find_best_cause(self)


# Errors that session adapters may raise out of flush()
STORAGE_ERRORS: Tuple[Type[BaseException], ...] = (StorageError, SQLAlchemyError)

# Causes worth surfacing over their wrappers: type conversion problems and
# storage-driver errors
_BEST_CAUSE_TYPES: Tuple[Type[BaseException], ...] = (
    TypeError, ValueError, StorageError, DBAPIError, sqlite3.Error
)


def _next_cause(error: BaseException) -> Optional[BaseException]:
    cause = getattr(error, "cause", None)
    if isinstance(cause, BaseException):
        return cause
    return error.__cause__


def iter_causes(error: BaseException, max_depth: int = DEFAULT_MAX_CAUSE_DEPTH) -> Iterator[BaseException]:
    """Yield the wrapped causes of ``error``, outermost first, at most ``max_depth`` of them."""
    seen = {id(error)}
    cause = _next_cause(error)
    depth = 0
    while cause is not None and depth < max_depth and id(cause) not in seen:
        yield cause
        seen.add(id(cause))
        depth += 1
        cause = _next_cause(cause)


def find_best_cause(error: BaseException, max_depth: int = DEFAULT_MAX_CAUSE_DEPTH) -> BaseException:
    """
    Find the most specific diagnosable cause of an error.

    Walks up to ``max_depth`` levels of wrapped causes and returns the first
    type-conversion or storage-specific error found.

    Args:
        error: The outermost error
        max_depth: Maximum number of causes to inspect

    Returns:
        The first matching cause, or ``error`` itself when none matches
    """
    for cause in iter_causes(error, max_depth):
        if isinstance(cause, _BEST_CAUSE_TYPES):
            return cause
    return error


def _statement_of(error: BaseException) -> Optional[str]:
    for candidate in (error, error.__cause__):
        if isinstance(candidate, StatementError) and candidate.statement:
            return candidate.statement
        if isinstance(candidate, StorageError) and candidate.statement:
            return candidate.statement
    return None


def translate_storage_failure(error: BaseException) -> BaseException:
    """
    Translate a flush failure into the error the caller should see.

    If the failure carries the statement that was being executed, a
    ``StorageFailure`` whose message is that statement is returned. Otherwise
    the original error is returned unchanged and should be re-raised as is.
    """
    statement = _statement_of(error)
    if statement is None:
        logger.debug(f"No statement attached to {type(error).__name__}, propagating unchanged")
        return error
    logger.info(f"Flush failed on statement: {statement}")
    return StorageFailure(statement, cause=error)
