"""
Job state machine: create, accept, cancel, delete.
"""
import warnings
from datetime import date, time, timedelta

import pytest

from conftest import utc
from cleanshift.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from cleanshift.models.models import Assignment, Job
from cleanshift.services import assignments
from cleanshift.services import jobs as jobs_service
from cleanshift.services.jobs import (
    accept_job,
    can_transition,
    cancel_job,
    create_job,
    create_jobs,
    delete_job,
    planned_end_time,
)
from cleanshift.services.time_rules import as_utc, utc_now


def test_transition_table():
    assert can_transition("planned", "in_progress")
    assert can_transition("in_progress", "done")
    assert can_transition("planned", "cancelled")
    assert can_transition("in_progress", "cancelled")
    assert not can_transition("planned", "done")
    assert not can_transition("done", "cancelled")
    assert not can_transition("cancelled", "planned")
    assert not can_transition("in_progress", "planned")


def test_create_job_grants_assignment(db_session, make_site, make_worker):
    site = make_site()
    worker = make_worker()
    job = create_job(
        db_session,
        site_id=str(site.id),
        job_date="2025-01-10",
        worker_id=str(worker.id),
        scheduled_time="08:30",
        planned_minutes=120,
    )
    assert job.status == "planned"
    assert job.job_date == date(2025, 1, 10)
    assert job.scheduled_time == time(8, 30)
    assert assignments.has(db_session, site.id, worker.id)


def test_create_unassigned_job(db_session, make_site):
    site = make_site()
    job = create_job(db_session, site_id=site.id, job_date="2025-01-10")
    assert job.worker_id is None
    assert db_session.query(Assignment).count() == 0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"job_date": "2025-02-30"},
        {"job_date": ""},
        {"job_date": "2025-01-11garbage"},
        {"job_date": "2025-1-11"},
        {"scheduled_time": "25:00"},
        {"scheduled_time": "9am"},
        {"planned_minutes": 0},
        {"planned_minutes": 1441},
        {"planned_minutes": "lots"},
    ],
)
def test_create_job_validation(db_session, make_site, kwargs):
    site = make_site()
    params = {"site_id": site.id, "job_date": "2025-01-10"}
    params.update(kwargs)
    with pytest.raises(ValidationError):
        create_job(db_session, **params)
    assert db_session.query(Job).count() == 0


def test_create_jobs_one_per_worker(db_session, make_site, make_worker):
    site = make_site()
    a, b = make_worker("A"), make_worker("B")
    jobs = create_jobs(db_session, str(site.id), "2025-01-10", [str(a.id), str(b.id)], scheduled_time="07:00")
    assert {j.worker_id for j in jobs} == {a.id, b.id}
    assert db_session.query(Assignment).count() == 2


def test_create_jobs_writes_nothing_when_one_worker_is_unknown(db_session, make_site, make_worker):
    site = make_site()
    worker = make_worker()
    with pytest.raises(NotFoundError):
        create_jobs(db_session, str(site.id), "2025-01-10", [str(worker.id), "00000000-0000-0000-0000-000000000042"])
    assert db_session.query(Job).count() == 0
    assert db_session.query(Assignment).count() == 0


def test_created_at_is_stamped_in_utc(db_session, make_site):
    with warnings.catch_warnings():
        warnings.filterwarnings("error", message=".*utcnow.*", category=DeprecationWarning)
        job = create_job(db_session, site_id=make_site().id, job_date="2025-01-10")
    assert abs(as_utc(job.created_at) - utc_now()) < timedelta(minutes=1)


def test_create_job_unknown_site(db_session):
    with pytest.raises(NotFoundError):
        create_job(db_session, site_id="00000000-0000-0000-0000-000000000001", job_date="2025-01-10")


def test_accept_is_idempotent(db_session, make_site, make_worker, make_job):
    site = make_site()
    worker = make_worker()
    assignments.grant(db_session, site.id, worker.id)
    job = make_job(site)

    first = accept_job(db_session, job.id, worker.id)
    second = accept_job(db_session, job.id, worker.id)

    assert first.worker_id == worker.id
    assert second.worker_id == worker.id
    assert db_session.query(Assignment).filter(Assignment.site_id == site.id).count() == 1


def test_accept_already_claimed(db_session, make_site, make_worker, make_job):
    site = make_site()
    a, b = make_worker("A"), make_worker("B")
    for w in (a, b):
        assignments.grant(db_session, site.id, w.id)
    job = make_job(site)

    accept_job(db_session, job.id, a.id)
    with pytest.raises(ConflictError) as exc:
        accept_job(db_session, job.id, b.id)
    assert "already assigned" in str(exc.value)
    db_session.refresh(job)
    assert job.worker_id == a.id


def test_accept_loses_race_to_concurrent_claim(db_session, make_site, make_worker, make_job, monkeypatch):
    site = make_site()
    a, b = make_worker("A"), make_worker("B")
    for w in (a, b):
        assignments.grant(db_session, site.id, w.id)
    job = make_job(site)
    winner_id = a.id
    real_get_job = jobs_service.get_job

    def read_then_lose(db, job_id):
        # A claims the row after B has already read it as unassigned
        stale = real_get_job(db, job_id)
        db.query(Job).filter(Job.id == stale.id).update({Job.worker_id: winner_id}, synchronize_session=False)
        return stale

    monkeypatch.setattr(jobs_service, "get_job", read_then_lose)
    with pytest.raises(ConflictError) as exc:
        accept_job(db_session, job.id, b.id)
    assert "already assigned" in str(exc.value)
    db_session.refresh(job)
    assert job.worker_id == winner_id


def test_accept_needs_site_access(db_session, make_site, make_worker, make_job):
    site = make_site()
    worker = make_worker()
    job = make_job(site)
    with pytest.raises(AuthorizationError):
        accept_job(db_session, job.id, worker.id)


def test_accept_only_planned(db_session, make_site, make_worker, make_job):
    site = make_site()
    worker = make_worker()
    assignments.grant(db_session, site.id, worker.id)
    job = make_job(site, status="cancelled")
    with pytest.raises(ConflictError):
        accept_job(db_session, job.id, worker.id)


def test_grant_twice_keeps_one_row_and_note(db_session, make_site, make_worker):
    site = make_site()
    worker = make_worker()
    assignments.grant(db_session, site.id, worker.id, note="Side door")
    assignments.grant(db_session, site.id, worker.id)
    rows = db_session.query(Assignment).all()
    assert len(rows) == 1
    assert rows[0].note == "Side door"


def test_revoke_leaves_jobs(db_session, make_site, make_worker, make_job):
    site = make_site()
    worker = make_worker()
    assignments.grant(db_session, site.id, worker.id)
    job = make_job(site, worker)
    assert assignments.revoke(db_session, site.id, worker.id) is True
    assert not assignments.has(db_session, site.id, worker.id)
    assert db_session.get(Job, job.id).worker_id == worker.id
    assert assignments.revoke(db_session, site.id, worker.id) is False


@pytest.mark.parametrize("status", ["planned", "in_progress"])
def test_cancel_non_terminal(db_session, make_site, make_job, status):
    job = make_job(make_site(), status=status)
    assert cancel_job(db_session, job.id).status == "cancelled"


@pytest.mark.parametrize("status", ["done", "cancelled"])
def test_cancel_terminal_is_a_conflict(db_session, make_site, make_job, status):
    job = make_job(make_site(), status=status)
    with pytest.raises(ConflictError):
        cancel_job(db_session, job.id)


def test_delete_planned_job(db_session, make_site, make_job):
    job = make_job(make_site())
    delete_job(db_session, job.id)
    assert db_session.query(Job).count() == 0


def test_delete_with_time_logs_is_rejected(db_session, make_site, make_worker, make_job, make_log):
    job = make_job(make_site(), make_worker(), status="cancelled")
    make_log(job, utc(2025, 1, 10, 9, 0), utc(2025, 1, 10, 10, 0))
    with pytest.raises(ConflictError):
        delete_job(db_session, job.id)
    assert db_session.query(Job).count() == 1


def test_delete_done_job_is_rejected(db_session, make_site, make_job):
    job = make_job(make_site(), status="done")
    with pytest.raises(ConflictError):
        delete_job(db_session, job.id)


def test_unknown_job(db_session):
    with pytest.raises(NotFoundError):
        cancel_job(db_session, "00000000-0000-0000-0000-000000000009")


def test_planned_end_time_wraps_midnight(make_site, make_job):
    job = make_job(make_site(), scheduled_time=time(23, 0), planned_minutes=90)
    assert planned_end_time(job) == time(0, 30)


def test_explicit_end_time_wins(make_site, make_job):
    job = make_job(make_site(), scheduled_time=time(8, 0), planned_minutes=90)
    job.scheduled_end_time = time(12, 0)
    assert planned_end_time(job) == time(12, 0)
