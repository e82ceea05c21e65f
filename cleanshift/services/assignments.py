"""
Assignment registry: which worker may be scheduled and clock in at which site.
"""
import uuid
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session
from sqlalchemy.dialects import postgresql, sqlite

from ..db import commit
from ..errors import NotFoundError
from ..models.models import Assignment, Profile, Site


logger = structlog.get_logger(__name__)


def _upsert_statement(db: Session, site_id: uuid.UUID, worker_id: uuid.UUID, note: Optional[str]):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        return None
    stmt = insert(Assignment).values(id=uuid.uuid4(), site_id=site_id, worker_id=worker_id, note=note)
    keys = [Assignment.site_id, Assignment.worker_id]
    if note is None:
        return stmt.on_conflict_do_nothing(index_elements=keys)
    return stmt.on_conflict_do_update(index_elements=keys, set_={"note": note})


def grant(
    db: Session,
    site_id: uuid.UUID,
    worker_id: uuid.UUID,
    note: Optional[str] = None,
    autocommit: bool = True,
) -> None:
    """
    Idempotent upsert keyed by (site_id, worker_id).
    Concurrent grants for the same pair converge on one row without error.
    An existing note is only replaced when a new one is given.
    """
    stmt = _upsert_statement(db, site_id, worker_id, note)
    if stmt is not None:
        db.execute(stmt)
    else:
        existing = db.query(Assignment).filter(
            Assignment.site_id == site_id,
            Assignment.worker_id == worker_id,
        ).first()
        if existing is None:
            db.add(Assignment(site_id=site_id, worker_id=worker_id, note=note))
        elif note is not None:
            existing.note = note
    if autocommit:
        commit(db)
    logger.info("assignment_granted", site_id=str(site_id), worker_id=str(worker_id))


def has(db: Session, site_id: uuid.UUID, worker_id: uuid.UUID) -> bool:
    return db.query(Assignment.id).filter(
        Assignment.site_id == site_id,
        Assignment.worker_id == worker_id,
    ).first() is not None


def revoke(db: Session, site_id: uuid.UUID, worker_id: uuid.UUID) -> bool:
    """Delete the grant. Jobs already scheduled for the pair are left alone."""
    deleted = db.query(Assignment).filter(
        Assignment.site_id == site_id,
        Assignment.worker_id == worker_id,
    ).delete(synchronize_session=False)
    commit(db)
    logger.info("assignment_revoked", site_id=str(site_id), worker_id=str(worker_id), deleted=deleted)
    return deleted > 0


def set_note(db: Session, site_id: uuid.UUID, worker_id: uuid.UUID, note: Optional[str]) -> dict:
    row = db.query(Assignment).filter(
        Assignment.site_id == site_id,
        Assignment.worker_id == worker_id,
    ).first()
    if row is None:
        raise NotFoundError("Assignment not found")
    row.note = (note or "").strip() or None
    commit(db)
    return serialize_assignment(row)


def list_assignments(
    db: Session,
    site_id: Optional[uuid.UUID] = None,
    worker_id: Optional[uuid.UUID] = None,
) -> List[dict]:
    query = (
        db.query(Assignment, Site.name, Profile.full_name)
        .join(Site, Site.id == Assignment.site_id)
        .join(Profile, Profile.id == Assignment.worker_id)
    )
    if site_id:
        query = query.filter(Assignment.site_id == site_id)
    if worker_id:
        query = query.filter(Assignment.worker_id == worker_id)
    rows = query.order_by(Site.name.asc(), Profile.full_name.asc()).all()
    return [
        serialize_assignment(a, site_name=site_name, worker_name=worker_name)
        for a, site_name, worker_name in rows
    ]


def serialize_assignment(a: Assignment, site_name: Optional[str] = None, worker_name: Optional[str] = None) -> dict:
    return {
        "id": str(a.id),
        "site_id": str(a.site_id),
        "worker_id": str(a.worker_id),
        "site_name": site_name,
        "worker_name": worker_name,
        "note": a.note,
    }
