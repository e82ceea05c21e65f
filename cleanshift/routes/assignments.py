from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import get_db
from ..errors import NotFoundError
from ..models.models import Profile, Site
from ..services import assignments
from ..services.validation import parse_optional_uuid, parse_uuid

router = APIRouter(prefix="/admin/assignments", tags=["admin-assignments"])


@router.get("")
def list_assignments(
    site_id: Optional[str] = None,
    worker_id: Optional[str] = None,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    return assignments.list_assignments(
        db,
        site_id=parse_optional_uuid(site_id, "site_id"),
        worker_id=parse_optional_uuid(worker_id, "worker_id"),
    )


@router.post("")
def grant(payload: dict, db: Session = Depends(get_db), _=Depends(require_admin)):
    site_id = parse_uuid(payload.get("site_id"), "site_id")
    worker_id = parse_uuid(payload.get("worker_id"), "worker_id")
    if db.query(Site.id).filter(Site.id == site_id).first() is None:
        raise NotFoundError("Site not found")
    if db.query(Profile.id).filter(Profile.id == worker_id).first() is None:
        raise NotFoundError("Worker not found")
    note = (payload.get("note") or "").strip() or None
    assignments.grant(db, site_id, worker_id, note=note)
    return {"status": "ok", "site_id": str(site_id), "worker_id": str(worker_id)}


@router.delete("")
def revoke(site_id: str, worker_id: str, db: Session = Depends(get_db), _=Depends(require_admin)):
    deleted = assignments.revoke(db, parse_uuid(site_id, "site_id"), parse_uuid(worker_id, "worker_id"))
    if not deleted:
        raise NotFoundError("Assignment not found")
    return {"status": "ok"}
