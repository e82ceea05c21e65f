"""
Schedule mutator and schedule views.

Single-job moves honour the field lock: once any time log exists for a job
its worker, site, date and times are frozen. Bulk day/worker moves leave
locked jobs where they are and report them as skipped.
"""
import uuid
from typing import Any, Dict, Iterable, List

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..db import commit
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.models import Assignment, Job, Profile, Site, TimeLog
from . import assignments
from .jobs import (
    WORKER_STATUSES,
    can_transition,
    get_job,
    has_time_logs,
    parse_planned_minutes,
    parse_status,
    serialize_job,
)
from .time_rules import (
    display_window,
    iso,
    parse_date,
    parse_time,
    payroll_minutes,
    shift_days,
    today_local,
)
from .validation import parse_bool, parse_optional_uuid, parse_uuid


logger = structlog.get_logger(__name__)

# Fields frozen once time has been logged against a job
LOCKED_FIELDS = {
    "worker_id": "worker",
    "site_id": "site",
    "job_date": "date",
    "scheduled_time": "time",
    "scheduled_end_time": "end time",
}

MOVABLE_FIELDS = set(LOCKED_FIELDS) | {"status", "planned_minutes"}


def _parse_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    parsed: Dict[str, Any] = {}
    unknown = set(patch) - MOVABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unsupported fields: {', '.join(sorted(unknown))}")
    if "job_date" in patch:
        parsed["job_date"] = parse_date(patch["job_date"], "job_date")
    if "scheduled_time" in patch:
        parsed["scheduled_time"] = parse_time(patch["scheduled_time"], "scheduled_time")
    if "scheduled_end_time" in patch:
        parsed["scheduled_end_time"] = parse_time(patch["scheduled_end_time"], "scheduled_end_time")
    if "worker_id" in patch:
        parsed["worker_id"] = parse_optional_uuid(patch["worker_id"], "worker_id")
    if "site_id" in patch:
        parsed["site_id"] = parse_uuid(patch["site_id"], "site_id")
    if "status" in patch:
        parsed["status"] = parse_status(patch["status"])
    if "planned_minutes" in patch:
        parsed["planned_minutes"] = parse_planned_minutes(patch["planned_minutes"])
    return parsed


def move_job(db: Session, job_id, patch: Dict[str, Any]) -> Job:
    """
    Reschedule/reassign one job.

    Raises:
        ValidationError: empty or malformed patch
        ConflictError: a locked field would change while time logs exist,
            or the status change is not a legal transition (admins may
            only cancel; in_progress and done come from start/stop)
        NotFoundError: job, site or worker does not exist
    """
    if not patch:
        raise ValidationError("Nothing to update")
    changes = _parse_patch(patch)
    job = get_job(db, job_id)

    changed = {k: v for k, v in changes.items() if getattr(job, k) != v}
    locked = [k for k in LOCKED_FIELDS if k in changed]
    if locked and has_time_logs(db, job.id):
        raise ConflictError(
            f"cannot change {LOCKED_FIELDS[locked[0]]}: time logs exist",
            context={"locked_fields": locked},
        )

    if "status" in changed:
        if changed["status"] in WORKER_STATUSES:
            raise ConflictError(f"Status {changed['status']} is set by starting or stopping the job")
        if not can_transition(job.status, changed["status"]):
            raise ConflictError(f"Cannot change status from {job.status} to {changed['status']}")
    if "site_id" in changed and db.query(Site.id).filter(Site.id == changed["site_id"]).first() is None:
        raise NotFoundError("Site not found")
    if changed.get("worker_id") is not None and db.query(Profile.id).filter(Profile.id == changed["worker_id"]).first() is None:
        raise NotFoundError("Worker not found")

    for key, value in changed.items():
        setattr(job, key, value)
    if job.worker_id is not None and job.site_id is not None:
        assignments.grant(db, job.site_id, job.worker_id, autocommit=False)
    commit(db)
    db.refresh(job)
    logger.info("job_moved", job_id=str(job.id), fields=sorted(changed))
    return job


def _locked_job_ids(db: Session, job_ids: Iterable[uuid.UUID]) -> set:
    ids = list(job_ids)
    if not ids:
        return set()
    rows = db.query(TimeLog.job_id).filter(TimeLog.job_id.in_(ids)).distinct().all()
    return {r[0] for r in rows}


def move_day(db: Session, from_date, to_date, only_planned: Any = True) -> Dict[str, Any]:
    """
    Move every job dated from_date to to_date (planned ones only by default).
    Status is never touched.
    """
    src = parse_date(from_date, "from_date")
    dst = parse_date(to_date, "to_date")
    if src == dst:
        raise ValidationError("from_date equals to_date")
    only_planned = parse_bool(only_planned, True)

    query = db.query(Job.id).filter(Job.job_date == src)
    if only_planned:
        query = query.filter(Job.status == "planned")
    candidates = [r[0] for r in query.all()]
    locked = _locked_job_ids(db, candidates)
    movable = [job_id for job_id in candidates if job_id not in locked]

    moved = 0
    if movable:
        update = db.query(Job).filter(
            Job.id.in_(movable),
            Job.job_date == src,
        )
        if only_planned:
            update = update.filter(Job.status == "planned")
        moved = update.update({Job.job_date: dst}, synchronize_session=False)
    commit(db)
    logger.info("day_moved", from_date=src.isoformat(), to_date=dst.isoformat(), moved=moved, skipped_locked=len(locked))
    return {
        "from_date": src.isoformat(),
        "to_date": dst.isoformat(),
        "moved_count": moved,
        "skipped_locked": len(locked),
    }


def move_worker_day(
    db: Session,
    from_worker_id,
    to_worker_id,
    job_date,
    only_planned: Any = True,
) -> Dict[str, Any]:
    """
    Hand all of one worker's jobs on a date to another worker.
    The receiving worker gets an assignment for every site they inherit.
    """
    src = parse_uuid(from_worker_id, "from_worker_id")
    dst = parse_uuid(to_worker_id, "to_worker_id")
    day = parse_date(job_date, "job_date")
    if src == dst:
        raise ValidationError("from_worker_id equals to_worker_id")
    only_planned = parse_bool(only_planned, True)

    target = db.query(Profile).filter(Profile.id == dst).first()
    if target is None:
        raise NotFoundError("Worker not found")
    if not target.active:
        raise ConflictError("Destination worker is not active")

    query = db.query(Job).filter(Job.worker_id == src, Job.job_date == day)
    if only_planned:
        query = query.filter(Job.status == "planned")
    jobs = query.all()
    locked = _locked_job_ids(db, [j.id for j in jobs])

    sites = set()
    moved = 0
    for job in jobs:
        if job.id in locked:
            continue
        job.worker_id = dst
        sites.add(job.site_id)
        moved += 1
    for site_id in sites:
        assignments.grant(db, site_id, dst, autocommit=False)
    commit(db)
    logger.info(
        "worker_day_moved",
        from_worker_id=str(src),
        to_worker_id=str(dst),
        job_date=day.isoformat(),
        moved=moved,
        skipped_locked=len(locked),
    )
    return {
        "job_date": day.isoformat(),
        "moved_count": moved,
        "skipped_locked": len(locked),
        "granted_site_ids": sorted(str(s) for s in sites),
    }


def _annotate(db: Session, jobs: List[Job]) -> List[Dict[str, Any]]:
    """Attach names, the display window and payroll minutes to each job."""
    if not jobs:
        return []
    site_ids = {j.site_id for j in jobs if j.site_id}
    worker_ids = {j.worker_id for j in jobs if j.worker_id}
    site_names = dict(db.query(Site.id, Site.name).filter(Site.id.in_(list(site_ids))).all()) if site_ids else {}
    worker_names = dict(db.query(Profile.id, Profile.full_name).filter(Profile.id.in_(list(worker_ids))).all()) if worker_ids else {}

    logs_by_job: Dict[uuid.UUID, list] = {}
    for log in db.query(TimeLog).filter(TimeLog.job_id.in_([j.id for j in jobs])).all():
        logs_by_job.setdefault(log.job_id, []).append(log)

    items = []
    for job in jobs:
        logs = logs_by_job.get(job.id, [])
        started_at, stopped_at = display_window(logs)
        item = serialize_job(job, site_name=site_names.get(job.site_id), worker_name=worker_names.get(job.worker_id))
        item["actual_started_at"] = iso(started_at)
        item["actual_stopped_at"] = iso(stopped_at)
        item["logged_minutes"] = payroll_minutes(logs)
        items.append(item)
    items.sort(key=lambda i: (i["job_date"], i["scheduled_time"] or "99:99", i["site_name"] or ""))
    return items


def get_schedule(db: Session, date_from, date_to, site_id=None, worker_id=None) -> List[Dict[str, Any]]:
    start = parse_date(date_from, "date_from")
    end = parse_date(date_to, "date_to")
    if end < start:
        raise ValidationError("date_to is before date_from")
    query = db.query(Job).filter(Job.job_date >= start, Job.job_date <= end)
    site_uuid = parse_optional_uuid(site_id, "site_id")
    worker_uuid = parse_optional_uuid(worker_id, "worker_id")
    if site_uuid:
        query = query.filter(Job.site_id == site_uuid)
    if worker_uuid:
        query = query.filter(Job.worker_id == worker_uuid)
    return _annotate(db, query.all())


def get_my_jobs(db: Session, worker_id: uuid.UUID, date_from=None, date_to=None) -> Dict[str, Any]:
    """
    The caller's own jobs plus unassigned planned jobs at sites they are
    granted, which they may accept.
    """
    today = today_local(settings.tz_default)
    start = parse_date(date_from, "date_from") if date_from else shift_days(today, -settings.my_jobs_window_days)
    end = parse_date(date_to, "date_to") if date_to else shift_days(today, settings.my_jobs_window_days)
    if end < start:
        raise ValidationError("date_to is before date_from")

    own = db.query(Job).filter(
        Job.worker_id == worker_id,
        Job.job_date >= start,
        Job.job_date <= end,
    ).all()
    granted_sites = select(Assignment.site_id).where(Assignment.worker_id == worker_id)
    available = db.query(Job).filter(
        Job.worker_id.is_(None),
        Job.status == "planned",
        Job.site_id.in_(granted_sites),
        Job.job_date >= start,
        Job.job_date <= end,
    ).all()
    return {
        "date_from": start.isoformat(),
        "date_to": end.isoformat(),
        "jobs": _annotate(db, own),
        "available": _annotate(db, available),
    }
