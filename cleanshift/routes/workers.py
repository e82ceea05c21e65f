from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import get_db
from ..models.models import Profile
from ..services import workers

router = APIRouter(prefix="/admin/workers", tags=["admin-workers"])


@router.get("")
def list_workers(
    role: Optional[str] = None,
    include_inactive: bool = True,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    return [workers.serialize_worker(p) for p in workers.list_workers(db, role=role, include_inactive=include_inactive)]


@router.patch("/{worker_id}/role")
def set_role(worker_id: str, payload: dict, db: Session = Depends(get_db), admin: Profile = Depends(require_admin)):
    return workers.serialize_worker(workers.set_role(db, admin, worker_id, payload.get("role")))


@router.patch("/{worker_id}/active")
def set_active(worker_id: str, payload: dict, db: Session = Depends(get_db), admin: Profile = Depends(require_admin)):
    return workers.serialize_worker(workers.set_active(db, admin, worker_id, payload.get("active")))


@router.delete("/{worker_id}")
def delete_worker(worker_id: str, db: Session = Depends(get_db), _=Depends(require_admin)):
    workers.delete_worker(db, worker_id)
    return {"status": "ok"}
