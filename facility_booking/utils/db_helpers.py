"""
Database Helper Utilities for Concurrency Control

Provides:
- Database dialect detection (PostgreSQL vs SQLite)
- Row locking for the facility being reserved
- Detection of exclusion-constraint violations raised by racing inserts
"""

import logging
from typing import Optional, TypeVar, Type
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Name of the PostgreSQL EXCLUDE constraint guarding active facility requests
NO_OVERLAP_CONSTRAINT = "no_active_facility_request_overlap"


def is_postgres(db: Session) -> bool:
    """Check if the database is PostgreSQL"""
    try:
        return db.bind.dialect.name == 'postgresql'
    except AttributeError:
        return False


def acquire_row_lock(
    db: Session,
    model: Type[T],
    filter_condition
) -> Optional[T]:
    """
    Acquire a row-level lock on a database record.

    Args:
        db: Database session
        model: SQLAlchemy model class
        filter_condition: Filter to find the row

    Returns:
        The locked model instance, or None if not found

    Example:
        facility = acquire_row_lock(db, Facility, Facility.id == facility_id)
    """
    query = db.query(model).filter(filter_condition)

    # Only apply locking on PostgreSQL
    if is_postgres(db):
        query = query.with_for_update()

    return query.first()


def is_overlap_violation(exc: IntegrityError) -> bool:
    """True when the store rejected a write because of the no-overlap constraint."""
    return NO_OVERLAP_CONSTRAINT in str(getattr(exc, "orig", exc))
