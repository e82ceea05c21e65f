"""
Job state machine.

planned -> in_progress -> done, and planned|in_progress -> cancelled.
Nothing leaves done or cancelled.
"""
import uuid
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import commit
from ..errors import AuthorizationError, ConflictError, NotFoundError, ServiceError, ValidationError
from ..models.models import JOB_STATUSES, Job, Profile, Site, TimeLog
from . import assignments
from .time_rules import add_minutes_to_time, hhmm, iso, parse_date, parse_time
from .validation import parse_int_range, parse_optional_uuid, parse_uuid


logger = structlog.get_logger(__name__)

TERMINAL_STATUSES = ("done", "cancelled")

TRANSITIONS = {
    "planned": {"in_progress", "cancelled"},
    "in_progress": {"done", "cancelled"},
    "done": set(),
    "cancelled": set(),
}

# Statuses only start and stop may set
WORKER_STATUSES = ("in_progress", "done")


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def parse_status(value: Any) -> str:
    s = str(value or "").strip()
    if s not in JOB_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(JOB_STATUSES)}")
    return s


def parse_planned_minutes(value: Any) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_int_range(value, "planned_minutes", 1, 1440)


def get_job(db: Session, job_id) -> Job:
    job_uuid = parse_uuid(job_id, "job_id")
    job = db.query(Job).filter(Job.id == job_uuid).first()
    if not job:
        raise NotFoundError("Job not found")
    return job


def has_time_logs(db: Session, job_id: uuid.UUID) -> bool:
    return db.query(TimeLog.id).filter(TimeLog.job_id == job_id).first() is not None


def _require_site(db: Session, site_id: uuid.UUID) -> Site:
    site = db.query(Site).filter(Site.id == site_id).first()
    if not site:
        raise NotFoundError("Site not found")
    return site


def _require_worker(db: Session, worker_id: uuid.UUID) -> Profile:
    worker = db.query(Profile).filter(Profile.id == worker_id).first()
    if not worker:
        raise NotFoundError("Worker not found")
    return worker


def create_job(
    db: Session,
    site_id,
    job_date,
    worker_id=None,
    scheduled_time=None,
    scheduled_end_time=None,
    planned_minutes=None,
    autocommit: bool = True,
) -> Job:
    """
    Create a planned job. When a worker is given, the (site, worker)
    assignment is upserted in the same unit of work.
    """
    site_uuid = parse_uuid(site_id, "site_id")
    worker_uuid = parse_optional_uuid(worker_id, "worker_id")
    job = Job(
        site_id=site_uuid,
        worker_id=worker_uuid,
        job_date=parse_date(job_date, "job_date"),
        scheduled_time=parse_time(scheduled_time, "scheduled_time"),
        scheduled_end_time=parse_time(scheduled_end_time, "scheduled_end_time"),
        planned_minutes=parse_planned_minutes(planned_minutes),
        status="planned",
    )
    _require_site(db, site_uuid)
    if worker_uuid is not None:
        _require_worker(db, worker_uuid)

    db.add(job)
    if worker_uuid is not None:
        assignments.grant(db, site_uuid, worker_uuid, autocommit=False)
    if autocommit:
        commit(db)
        db.refresh(job)
    else:
        db.flush()
    logger.info("job_created", job_id=str(job.id), site_id=str(site_uuid), worker_id=str(worker_uuid) if worker_uuid else None)
    return job


def create_jobs(db: Session, site_id, job_date, worker_ids: List[Any], **fields) -> List[Job]:
    """
    One job per worker id, committed together. If any of them fails
    validation nothing is written.
    """
    try:
        jobs = [
            create_job(db, site_id, job_date, worker_id=worker_id, autocommit=False, **fields)
            for worker_id in worker_ids
        ]
    except (ServiceError, SQLAlchemyError):
        db.rollback()
        raise
    commit(db)
    for job in jobs:
        db.refresh(job)
    return jobs


def accept_job(db: Session, job_id, worker_id: uuid.UUID) -> Job:
    """
    Worker self-claims an unassigned planned job.

    The claim is a conditional write on worker_id IS NULL, so of two workers
    racing for the same job exactly one wins and the other gets a conflict.
    """
    job = get_job(db, job_id)
    if job.status != "planned":
        raise ConflictError("Only planned jobs can be accepted")
    if job.worker_id is not None:
        if job.worker_id == worker_id:
            return job
        raise ConflictError("Job already assigned")
    if not assignments.has(db, job.site_id, worker_id):
        raise AuthorizationError("No access to this site")

    claimed = (
        db.query(Job)
        .filter(Job.id == job.id, Job.worker_id.is_(None), Job.status == "planned")
        .update({Job.worker_id: worker_id}, synchronize_session=False)
    )
    commit(db)
    db.refresh(job)
    if not claimed and job.worker_id != worker_id:
        raise ConflictError("Job already assigned")
    logger.info("job_accepted", job_id=str(job.id), worker_id=str(worker_id))
    return job


def cancel_job(db: Session, job_id) -> Job:
    job = get_job(db, job_id)
    if job.status == "cancelled":
        raise ConflictError("Job is already cancelled")
    if not can_transition(job.status, "cancelled"):
        raise ConflictError(f"Cannot cancel a job that is {job.status}")
    previous = job.status
    updated = (
        db.query(Job)
        .filter(Job.id == job.id, Job.status == previous)
        .update({Job.status: "cancelled"}, synchronize_session=False)
    )
    commit(db)
    db.refresh(job)
    if not updated:
        raise ConflictError(f"Job changed to {job.status} meanwhile")
    logger.info("job_cancelled", job_id=str(job.id), previous_status=previous)
    return job


def delete_job(db: Session, job_id) -> None:
    """
    Hard delete, allowed only while nothing was logged against the job.
    Jobs with history are cancelled instead.
    """
    job = get_job(db, job_id)
    if job.status in ("in_progress", "done"):
        raise ConflictError("Cannot delete a job that is in progress or done; cancel it instead")
    if has_time_logs(db, job.id):
        raise ConflictError("Cannot delete job: time logs exist; cancel it instead")
    db.delete(job)
    commit(db)
    logger.info("job_deleted", job_id=str(job_id))


def planned_end_time(job: Job):
    if job.scheduled_end_time is not None:
        return job.scheduled_end_time
    return add_minutes_to_time(job.scheduled_time, job.planned_minutes)


def serialize_job(job: Job, site_name: Optional[str] = None, worker_name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": str(job.id),
        "status": job.status,
        "job_date": iso(job.job_date),
        "scheduled_time": hhmm(job.scheduled_time),
        "scheduled_end_time": hhmm(job.scheduled_end_time),
        "planned_end_time": hhmm(planned_end_time(job)),
        "planned_minutes": job.planned_minutes,
        "site_id": str(job.site_id) if job.site_id else None,
        "site_name": site_name,
        "worker_id": str(job.worker_id) if job.worker_id else None,
        "worker_name": worker_name,
    }
