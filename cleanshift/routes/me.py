"""
Worker-facing routes: own jobs, accept/start/stop, assignment notes.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import Profile
from ..services import assignments
from ..services.jobs import accept_job, serialize_job
from ..services.schedule import get_my_jobs
from ..services.time_logs import serialize_time_log, start_job, stop_job
from ..services.validation import parse_uuid

router = APIRouter(prefix="/me", tags=["me"])


@router.get("/jobs")
def my_jobs(
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    return get_my_jobs(db, user.id, date_from=date_from, date_to=date_to)


@router.post("/jobs/{job_id}/accept")
def accept(job_id: str, db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    job = accept_job(db, job_id, user.id)
    return serialize_job(job)


@router.post("/jobs/{job_id}/start")
def start(job_id: str, payload: dict, db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    """Clock in. Body: {lat, lng, accuracy}."""
    log = start_job(db, job_id, user.id, payload.get("lat"), payload.get("lng"), payload.get("accuracy"))
    return {"status": "in_progress", "time_log": serialize_time_log(log)}


@router.post("/jobs/{job_id}/stop")
def stop(job_id: str, payload: dict, db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    """Clock out. Body: {lat, lng, accuracy}."""
    log = stop_job(db, job_id, user.id, payload.get("lat"), payload.get("lng"), payload.get("accuracy"))
    return {"status": "done", "time_log": serialize_time_log(log)}


@router.patch("/assignments/{site_id}/note")
def update_assignment_note(
    site_id: str,
    payload: dict,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    return assignments.set_note(db, parse_uuid(site_id, "site_id"), user.id, payload.get("note"))
