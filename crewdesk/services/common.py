import uuid
from typing import Optional, Type, TypeVar

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import Conflict, NotFound, PersistenceError, ValidationFailed


logger = structlog.get_logger(__name__)

T = TypeVar("T")


def parse_uuid(value, what: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise ValidationFailed(f"Invalid {what}.")


def get_or_404(db: Session, model: Type[T], obj_id, message: str) -> T:
    obj = db.get(model, parse_uuid(obj_id))
    if obj is None:
        raise NotFound(message)
    return obj


def commit(db: Session, conflict_message: Optional[str] = None) -> None:
    """Commit the unit of work, mapping storage failures to action errors."""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("commit_integrity_error", error=str(e.orig))
        raise Conflict(conflict_message)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("commit_failed", error=str(e))
        raise PersistenceError()
