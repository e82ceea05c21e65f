"""
Worked-time report over a date range.

Jobs are selected by job_date, logs by their own started_at. Per-job minutes
are the payroll reduction (sum of closed logs); the worker and site
partitions and the grand total are all sums of those same per-job figures.
"""
import uuid
from typing import Any, Dict, List

import structlog
from sqlalchemy.orm import Session

from ..errors import ValidationError
from ..models.models import Job, Profile, Site, TimeLog
from .time_rules import day_bounds_utc, iso, minutes_between, parse_date


logger = structlog.get_logger(__name__)


def _sort_partition(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(rows, key=lambda r: (-r["minutes"], (r["name"] or "").casefold()))


def _partition(jobs: List[Job], job_minutes: Dict[uuid.UUID, int], key: str, names: Dict[uuid.UUID, str]) -> List[Dict[str, Any]]:
    buckets: Dict[uuid.UUID, Dict[str, Any]] = {}
    for job in jobs:
        ident = getattr(job, key)
        bucket = buckets.setdefault(ident, {
            "id": str(ident),
            "name": names.get(ident),
            "minutes": 0,
            "jobs_count": 0,
            "logged_jobs": 0,
        })
        minutes = job_minutes.get(job.id, 0)
        bucket["minutes"] += minutes
        bucket["jobs_count"] += 1
        if minutes > 0:
            bucket["logged_jobs"] += 1
    return _sort_partition(list(buckets.values()))


def get_report(db: Session, date_from, date_to) -> Dict[str, Any]:
    start = parse_date(date_from, "date_from")
    end = parse_date(date_to, "date_to")
    if end < start:
        raise ValidationError("date_to is before date_from")

    jobs = (
        db.query(Job)
        .filter(
            Job.job_date >= start,
            Job.job_date <= end,
            Job.worker_id.isnot(None),
        )
        .all()
    )
    jobs_by_id = {j.id: j for j in jobs}

    lo, hi = day_bounds_utc(start, end)
    logs = []
    if jobs_by_id:
        logs = (
            db.query(TimeLog)
            .filter(
                TimeLog.job_id.in_(list(jobs_by_id)),
                TimeLog.started_at >= lo,
                TimeLog.started_at <= hi,
            )
            .order_by(TimeLog.started_at.asc())
            .all()
        )

    job_minutes: Dict[uuid.UUID, int] = {}
    for log in logs:
        job_minutes[log.job_id] = job_minutes.get(log.job_id, 0) + minutes_between(log.started_at, log.stopped_at)

    site_ids = {j.site_id for j in jobs}
    worker_ids = {j.worker_id for j in jobs}
    site_names = dict(db.query(Site.id, Site.name).filter(Site.id.in_(list(site_ids))).all()) if site_ids else {}
    worker_names = dict(db.query(Profile.id, Profile.full_name).filter(Profile.id.in_(list(worker_ids))).all()) if worker_ids else {}

    entries = []
    for log in logs:
        if log.stopped_at is None:
            continue
        job = jobs_by_id[log.job_id]
        entries.append({
            "time_log_id": str(log.id),
            "job_id": str(job.id),
            "job_date": iso(job.job_date),
            "site_id": str(job.site_id),
            "site_name": site_names.get(job.site_id),
            "worker_id": str(log.worker_id),
            "worker_name": worker_names.get(log.worker_id),
            "started_at": iso(log.started_at),
            "stopped_at": iso(log.stopped_at),
            "minutes": minutes_between(log.started_at, log.stopped_at),
        })

    total = sum(job_minutes.values())
    logger.info("report_built", date_from=start.isoformat(), date_to=end.isoformat(), jobs=len(jobs), total_minutes=total)
    return {
        "date_from": start.isoformat(),
        "date_to": end.isoformat(),
        "total_minutes": total,
        "jobs_count": len(jobs),
        "by_worker": _partition(jobs, job_minutes, "worker_id", worker_names),
        "by_site": _partition(jobs, job_minutes, "site_id", site_names),
        "entries": entries,
    }
