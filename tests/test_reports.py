from datetime import date

import pytest

from conftest import utc
from cleanshift.errors import ValidationError
from cleanshift.services.reports import get_report


@pytest.fixture
def week(make_site, make_worker, make_job, make_log):
    office, clinic = make_site("Office"), make_site("clinic")
    zed, anna, boris = make_worker("Zed"), make_worker("anna"), make_worker("Boris")

    j = make_job(office, zed, status="done")
    make_log(j, utc(2025, 1, 10, 8, 0), utc(2025, 1, 10, 10, 0))         # 120
    j = make_job(clinic, anna, job_date=date(2025, 1, 11), status="done")
    make_log(j, utc(2025, 1, 11, 8, 0), utc(2025, 1, 11, 9, 0))          # 60
    j = make_job(office, boris, job_date=date(2025, 1, 11), status="done")
    make_log(j, utc(2025, 1, 11, 8, 0), utc(2025, 1, 11, 8, 59, 40))     # 59.67 -> 60
    j = make_job(clinic, boris, job_date=date(2025, 1, 12), status="in_progress")
    make_log(j, utc(2025, 1, 12, 8, 0))                                  # open, 0
    make_job(clinic, anna, job_date=date(2025, 1, 12))                   # planned, no logs
    return office, clinic, zed, anna, boris


def test_totals_agree(db_session, week):
    report = get_report(db_session, "2025-01-10", "2025-01-12")
    assert report["total_minutes"] == 240
    assert sum(r["minutes"] for r in report["by_worker"]) == 240
    assert sum(r["minutes"] for r in report["by_site"]) == 240
    assert report["jobs_count"] == 5


def test_partitions_sorted_by_minutes_then_name(db_session, week):
    report = get_report(db_session, "2025-01-10", "2025-01-12")
    assert [r["name"] for r in report["by_worker"]] == ["Zed", "anna", "Boris"]
    assert [(r["name"], r["minutes"]) for r in report["by_site"]] == [("Office", 180), ("clinic", 60)]


def test_partition_counts(db_session, week):
    report = get_report(db_session, "2025-01-10", "2025-01-12")
    boris = next(r for r in report["by_worker"] if r["name"] == "Boris")
    assert boris["jobs_count"] == 2
    assert boris["logged_jobs"] == 1
    anna = next(r for r in report["by_worker"] if r["name"] == "anna")
    assert anna["jobs_count"] == 2
    assert anna["logged_jobs"] == 1


def test_entries_only_closed_logs(db_session, week):
    report = get_report(db_session, "2025-01-10", "2025-01-12")
    assert len(report["entries"]) == 3
    assert all(e["stopped_at"] for e in report["entries"])
    assert {e["worker_name"] for e in report["entries"]} == {"Zed", "anna", "Boris"}


def test_single_day(db_session, week):
    report = get_report(db_session, "2025-01-11", "2025-01-11")
    assert report["total_minutes"] == 120
    assert [r["name"] for r in report["by_worker"]] == ["anna", "Boris"]


def test_empty_range(db_session, week):
    report = get_report(db_session, "2024-01-01", "2024-01-31")
    assert report["total_minutes"] == 0
    assert report["by_worker"] == []
    assert report["entries"] == []


def test_negative_duration_counts_as_zero(db_session, make_site, make_worker, make_job, make_log):
    job = make_job(make_site(), make_worker(), status="done")
    make_log(job, utc(2025, 1, 10, 10, 0), utc(2025, 1, 10, 9, 0))
    assert get_report(db_session, "2025-01-10", "2025-01-10")["total_minutes"] == 0


def test_reversed_range_is_invalid(db_session):
    with pytest.raises(ValidationError):
        get_report(db_session, "2025-01-12", "2025-01-10")
