"""
Pytest configuration and shared fixtures.

- db_session: fresh in-memory SQLite database per test (StaticPool, so every
  session in the test sees the same connection)
- client: FastAPI TestClient whose get_db yields db_session
- make_site / make_worker / make_job / make_log: row factories
- auth_headers: bearer headers for a profile
"""
import math
import os
from datetime import date, datetime, time

import pytest
import pytz

# Settings are read on import; point them at a throwaway database first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "10000/minute"

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from cleanshift.auth.security import create_access_token  # noqa: E402
from cleanshift.db import Base, get_db  # noqa: E402
from cleanshift.models.models import Job, Profile, Site, TimeLog  # noqa: E402
from cleanshift.services.geofence import EARTH_RADIUS_M  # noqa: E402


SITE_LAT = 50.4501
SITE_LNG = 30.5234


def north_of(lat: float, meters: float) -> float:
    """Latitude `meters` due north of `lat` on the haversine sphere."""
    return lat + math.degrees(meters / EARTH_RADIUS_M)


def utc(*args) -> datetime:
    return pytz.UTC.localize(datetime(*args))


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = Session()

    yield session

    session.rollback()
    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def client(db_session):
    from fastapi.testclient import TestClient
    from cleanshift.main import app

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_site(db_session):
    def _make(name="Podil Office", lat=SITE_LAT, lng=SITE_LNG, radius=150, **kwargs):
        site = Site(name=name, lat=lat, lng=lng, radius=radius, **kwargs)
        db_session.add(site)
        db_session.commit()
        return site
    return _make


@pytest.fixture
def make_worker(db_session):
    counter = {"n": 0}

    def _make(full_name=None, role="worker", active=True):
        counter["n"] += 1
        full_name = full_name or f"Worker {counter['n']}"
        profile = Profile(
            full_name=full_name,
            email=f"user{counter['n']}@example.com",
            role=role,
            active=active,
        )
        db_session.add(profile)
        db_session.commit()
        return profile
    return _make


@pytest.fixture
def make_job(db_session):
    def _make(site, worker=None, job_date=date(2025, 1, 10), status="planned", scheduled_time=time(9, 0), planned_minutes=None):
        job = Job(
            site_id=site.id,
            worker_id=worker.id if worker else None,
            job_date=job_date,
            scheduled_time=scheduled_time,
            planned_minutes=planned_minutes,
            status=status,
        )
        db_session.add(job)
        db_session.commit()
        return job
    return _make


@pytest.fixture
def make_log(db_session):
    def _make(job, started_at, stopped_at=None, worker_id=None):
        log = TimeLog(
            job_id=job.id,
            worker_id=worker_id or job.worker_id,
            started_at=started_at,
            stopped_at=stopped_at,
        )
        db_session.add(log)
        db_session.commit()
        return log
    return _make


@pytest.fixture
def auth_headers():
    def _headers(profile):
        return {"Authorization": f"Bearer {create_access_token(str(profile.id))}"}
    return _headers
