"""
Admin job routes: create, move, cancel, delete, manual correction,
bulk day/worker moves and the schedule view.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import get_db
from ..errors import ValidationError
from ..services import jobs as jobs_service, schedule
from ..services.jobs import cancel_job, delete_job, serialize_job
from ..services.time_logs import correct_actual_minutes

router = APIRouter(prefix="/admin", tags=["admin-jobs"])


@router.post("/jobs")
def create_jobs(payload: dict, db: Session = Depends(get_db), _=Depends(require_admin)):
    """
    Create one job, or one job per entry of worker_ids.
    Each (site, worker) pair gets an assignment grant. Either every job is
    created or none is.
    """
    worker_ids = payload.get("worker_ids")
    if worker_ids is not None and not isinstance(worker_ids, list):
        raise ValidationError("worker_ids must be a list")
    jobs = jobs_service.create_jobs(
        db,
        site_id=payload.get("site_id"),
        job_date=payload.get("job_date"),
        worker_ids=worker_ids if worker_ids else [payload.get("worker_id")],
        scheduled_time=payload.get("scheduled_time"),
        scheduled_end_time=payload.get("scheduled_end_time"),
        planned_minutes=payload.get("planned_minutes"),
    )
    return {"jobs": [serialize_job(job) for job in jobs]}


# Bulk routes are declared before /jobs/{job_id} so the literal paths win
@router.post("/jobs/move-day")
def move_day(payload: dict, db: Session = Depends(get_db), _=Depends(require_admin)):
    return schedule.move_day(
        db,
        payload.get("from_date"),
        payload.get("to_date"),
        payload.get("only_planned", True),
    )


@router.post("/jobs/move-worker-day")
def move_worker_day(payload: dict, db: Session = Depends(get_db), _=Depends(require_admin)):
    return schedule.move_worker_day(
        db,
        payload.get("from_worker_id"),
        payload.get("to_worker_id"),
        payload.get("job_date"),
        payload.get("only_planned", True),
    )


@router.patch("/jobs/{job_id}")
def move_job(job_id: str, payload: dict, db: Session = Depends(get_db), _=Depends(require_admin)):
    job = schedule.move_job(db, job_id, payload)
    return serialize_job(job)


@router.delete("/jobs/{job_id}")
def remove_job(job_id: str, db: Session = Depends(get_db), _=Depends(require_admin)):
    delete_job(db, job_id)
    return {"status": "ok"}


@router.post("/jobs/{job_id}/cancel")
def cancel(job_id: str, db: Session = Depends(get_db), _=Depends(require_admin)):
    return serialize_job(cancel_job(db, job_id))


@router.post("/jobs/{job_id}/actual")
def correct_actual(job_id: str, payload: dict, db: Session = Depends(get_db), _=Depends(require_admin)):
    """Body: {hm: "3:15"} or {minutes: 195}."""
    return correct_actual_minutes(db, job_id, hm=payload.get("hm"), minutes=payload.get("minutes"))


@router.get("/schedule")
def get_schedule(
    date_from: str,
    date_to: str,
    site_id: Optional[str] = None,
    worker_id: Optional[str] = None,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    return {"jobs": schedule.get_schedule(db, date_from, date_to, site_id=site_id, worker_id=worker_id)}
