"""
Worker directory management (admin side).

Role and active flag live on the profile row; credentials do not.
"""
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..db import commit
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.models import ROLES, Assignment, Job, Profile
from .time_rules import iso
from .validation import parse_bool, parse_uuid


logger = structlog.get_logger(__name__)


def get_worker(db: Session, worker_id) -> Profile:
    profile = db.query(Profile).filter(Profile.id == parse_uuid(worker_id, "worker_id")).first()
    if not profile:
        raise NotFoundError("Worker not found")
    return profile


def list_workers(db: Session, role: Optional[str] = None, include_inactive: bool = True) -> List[Profile]:
    query = db.query(Profile)
    if role:
        query = query.filter(Profile.role == role)
    if not include_inactive:
        query = query.filter(Profile.active.is_(True))
    return query.order_by(Profile.full_name.asc()).all()


def set_role(db: Session, actor: Profile, worker_id, role: Any) -> Profile:
    """
    Change a profile's role. An admin may not demote themself;
    promoting someone to admin also re-activates them.
    """
    role = str(role or "").strip()
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    profile = get_worker(db, worker_id)
    if profile.id == actor.id and role != "admin":
        raise ConflictError("You cannot demote yourself")
    profile.role = role
    if role == "admin":
        profile.active = True
    commit(db)
    db.refresh(profile)
    logger.info("worker_role_set", worker_id=str(profile.id), role=role, actor_id=str(actor.id))
    return profile


def set_active(db: Session, actor: Profile, worker_id, active: Any) -> Profile:
    active = parse_bool(active, True)
    profile = get_worker(db, worker_id)
    if not active:
        if profile.id == actor.id:
            raise ConflictError("You cannot deactivate yourself")
        if profile.role == "admin":
            raise ConflictError("Admins cannot be deactivated; change the role first")
    profile.active = active
    commit(db)
    db.refresh(profile)
    logger.info("worker_active_set", worker_id=str(profile.id), active=active, actor_id=str(actor.id))
    return profile


def delete_worker(db: Session, worker_id) -> None:
    profile = get_worker(db, worker_id)
    if profile.role == "admin":
        raise ConflictError("Admin profiles cannot be deleted")
    if db.query(Job.id).filter(Job.worker_id == profile.id).first() is not None:
        raise ConflictError("Worker has jobs; deactivate instead")
    db.query(Assignment).filter(Assignment.worker_id == profile.id).delete(synchronize_session=False)
    db.delete(profile)
    commit(db)
    logger.info("worker_deleted", worker_id=str(worker_id))


def serialize_worker(profile: Profile) -> Dict[str, Any]:
    return {
        "id": str(profile.id),
        "role": profile.role,
        "active": bool(profile.active),
        "full_name": profile.full_name,
        "email": profile.email,
        "phone": profile.phone,
        "created_at": iso(profile.created_at),
    }
