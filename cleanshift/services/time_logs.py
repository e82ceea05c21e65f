"""
Time log recorder: GPS-gated start/stop and admin manual correction.
"""
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import commit
from ..errors import AuthorizationError, ConflictError, ValidationError
from ..models.models import Job, Site, TimeLog
from .geofence import check_inside_geofence
from .jobs import get_job
from .time_rules import iso, minutes_between, parse_hm, utc_now
from .validation import parse_int_range, parse_number


logger = structlog.get_logger(__name__)


def _parse_position(lat: Any, lng: Any, accuracy: Any):
    if lat is None or lng is None or accuracy is None:
        raise ValidationError("Location is required (lat/lng/accuracy)")
    return (
        parse_number(lat, "lat"),
        parse_number(lng, "lng"),
        parse_number(accuracy, "accuracy"),
    )


def _owned_job(db: Session, job_id, worker_id: uuid.UUID) -> Job:
    job = get_job(db, job_id)
    if job.worker_id is None or job.worker_id != worker_id:
        raise AuthorizationError("Job is not assigned to this worker")
    return job


def _open_log(db: Session, job_id: uuid.UUID, worker_id: Optional[uuid.UUID] = None) -> Optional[TimeLog]:
    query = db.query(TimeLog).filter(TimeLog.job_id == job_id, TimeLog.stopped_at.is_(None))
    if worker_id is not None:
        query = query.filter(TimeLog.worker_id == worker_id)
    return query.order_by(TimeLog.started_at.desc()).first()


def start_job(db: Session, job_id, worker_id: uuid.UUID, lat: Any, lng: Any, accuracy: Any) -> TimeLog:
    """
    Clock in.

    Requires the caller to own the planned job and to stand inside the
    site's geofence with accuracy <= 80m. Opens a time log and moves the job
    to in_progress in one commit. The partial unique index on open logs makes
    a concurrent second start fail instead of opening a duplicate.
    """
    lat, lng, accuracy = _parse_position(lat, lng, accuracy)
    job = _owned_job(db, job_id, worker_id)

    if job.status == "in_progress":
        raise ConflictError("Job already started")
    if job.status != "planned":
        raise ConflictError(f"Cannot start a job that is {job.status}")

    site = db.query(Site).filter(Site.id == job.site_id).first()
    distance = check_inside_geofence(site, lat, lng, accuracy)

    if _open_log(db, job.id) is not None:
        raise ConflictError("Job already has an open time log")

    log = TimeLog(
        job_id=job.id,
        worker_id=worker_id,
        started_at=utc_now(),
        start_lat=lat,
        start_lng=lng,
        start_accuracy=accuracy,
    )
    db.add(log)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Job already has an open time log")

    moved = (
        db.query(Job)
        .filter(Job.id == job.id, Job.status == "planned")
        .update({Job.status: "in_progress"}, synchronize_session=False)
    )
    if not moved:
        db.rollback()
        raise ConflictError("Job status changed meanwhile")

    try:
        commit(db)
    except IntegrityError:
        raise ConflictError("Job already has an open time log")
    db.refresh(log)
    logger.info(
        "job_started",
        job_id=str(job.id),
        worker_id=str(worker_id),
        distance_m=round(distance),
        accuracy_m=accuracy,
    )
    return log


def stop_job(db: Session, job_id, worker_id: uuid.UUID, lat: Any, lng: Any, accuracy: Any) -> TimeLog:
    """
    Clock out.

    Same ownership and geofence gate as start. Closes the caller's most recent
    open log for the job and moves the job to done.
    """
    lat, lng, accuracy = _parse_position(lat, lng, accuracy)
    job = _owned_job(db, job_id, worker_id)

    if job.status != "in_progress":
        raise ConflictError(f"Cannot stop a job that is {job.status}")

    site = db.query(Site).filter(Site.id == job.site_id).first()
    distance = check_inside_geofence(site, lat, lng, accuracy)

    log = _open_log(db, job.id, worker_id)
    if log is None:
        raise ConflictError("Nothing to stop: no open time log for this job")

    closed = (
        db.query(TimeLog)
        .filter(TimeLog.id == log.id, TimeLog.stopped_at.is_(None))
        .update(
            {
                TimeLog.stopped_at: utc_now(),
                TimeLog.stop_lat: lat,
                TimeLog.stop_lng: lng,
                TimeLog.stop_accuracy: accuracy,
            },
            synchronize_session=False,
        )
    )
    if not closed:
        db.rollback()
        raise ConflictError("Time log was closed meanwhile")
    db.query(Job).filter(Job.id == job.id).update({Job.status: "done"}, synchronize_session=False)
    commit(db)
    db.refresh(log)
    logger.info(
        "job_stopped",
        job_id=str(job.id),
        worker_id=str(worker_id),
        distance_m=round(distance),
        minutes=minutes_between(log.started_at, log.stopped_at),
    )
    return log


def correct_actual_minutes(db: Session, job_id, hm: Optional[str] = None, minutes: Any = None) -> Dict[str, Any]:
    """
    Admin fix for a bad stop: stopped_at := started_at + duration on the
    job's earliest time log. The geofence gate is not applied and the job
    status is left untouched.
    """
    if minutes is not None and not (isinstance(minutes, str) and not minutes.strip()):
        total = parse_int_range(minutes, "minutes", 0, 24 * 60)
    elif hm is not None:
        total = parse_hm(hm)
    else:
        raise ValidationError('Give minutes (number) or hm (e.g. "3:30")')

    job = get_job(db, job_id)
    log = (
        db.query(TimeLog)
        .filter(TimeLog.job_id == job.id)
        .order_by(TimeLog.started_at.asc())
        .first()
    )
    if log is None:
        raise ValidationError("Job has no time logs to correct")
    if log.started_at is None:
        raise ValidationError("Time log has no start time")

    log.stopped_at = log.started_at + timedelta(minutes=total)
    commit(db)
    db.refresh(log)
    logger.info("time_log_corrected", job_id=str(job.id), time_log_id=str(log.id), minutes=total)
    return {
        "job_id": str(job.id),
        "time_log_id": str(log.id),
        "started_at": iso(log.started_at),
        "stopped_at": iso(log.stopped_at),
        "minutes": total,
    }


def serialize_time_log(log: TimeLog) -> Dict[str, Any]:
    return {
        "id": str(log.id),
        "job_id": str(log.job_id),
        "worker_id": str(log.worker_id),
        "started_at": iso(log.started_at),
        "stopped_at": iso(log.stopped_at),
        "start_lat": log.start_lat,
        "start_lng": log.start_lng,
        "start_accuracy": log.start_accuracy,
        "stop_lat": log.stop_lat,
        "stop_lng": log.stop_lng,
        "stop_accuracy": log.stop_accuracy,
    }
