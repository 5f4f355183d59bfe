"""Error taxonomy and result type for the tracker core.

Core operations raise the errors below internally. Public operations are
wrapped with ``core_operation`` so callers always receive a ``Result``:
either a value or exactly one ``TrackingError``.
"""

import functools
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from shared.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class TrackingError(Exception):
    """Base class for failures reported by the tracker core."""

    kind = "error"

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.message = message
        self.reason = reason

    def __str__(self) -> str:
        return self.message


class NotFoundError(TrackingError):
    """Equipment, room, reader or request does not exist."""

    kind = "not_found"


class ConflictError(TrackingError):
    """Duplicate pending request, already-reviewed request, or lost update."""

    kind = "conflict"


class ValidationError(TrackingError):
    """Missing or malformed input."""

    kind = "validation"


class PersistenceError(TrackingError):
    """The underlying store failed."""

    kind = "persistence"


@dataclass
class Result(Generic[T]):
    """Outcome of a core operation: a value or an error, never both."""

    value: T | None = None
    error: TrackingError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, raising the carried error if there is one."""
        if self.error is not None:
            raise self.error
        return self.value


def core_operation(func):
    """Run ``func(db, ...)`` as one unit of work and return a ``Result``.

    Any failure rolls the session back so no partial write survives.
    """

    @functools.wraps(func)
    def wrapper(db, *args, **kwargs):
        try:
            return Result(value=func(db, *args, **kwargs))
        except TrackingError as e:
            db.rollback()
            logger.warning(f"{func.__name__} rejected ({e.kind}): {e}")
            return Result(error=e)
        except StaleDataError as e:
            db.rollback()
            logger.warning(f"{func.__name__} lost a concurrent update: {e}")
            return Result(error=ConflictError(
                "Record was modified concurrently; reload and retry",
                reason="stale_record",
            ))
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"{func.__name__} violated a constraint: {e.orig}")
            return Result(error=ConflictError(
                "Operation conflicts with existing data",
                reason="integrity",
            ))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"{func.__name__} failed - {type(e).__name__}: {e}", exc_info=True)
            return Result(error=PersistenceError(f"Storage failure: {type(e).__name__}"))

    return wrapper
