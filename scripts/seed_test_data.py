"""
Seed the local database with a sample admin, workers, sites and a week of jobs.

Usage:
  python scripts/seed_test_data.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (email for profiles, name for sites,
site/worker/date/time for jobs). Bearer tokens for every seeded profile are
printed at the end.
"""

from datetime import time

from cleanshift.auth.security import create_access_token
from cleanshift.config import settings
from cleanshift.db import SessionLocal, Base, engine
from cleanshift.models.models import Job, Profile, Site
from cleanshift.services import assignments
from cleanshift.services.time_rules import shift_days, today_local


def ensure_profile(session, email: str, full_name: str, role: str = "worker", phone: str | None = None) -> Profile:
    profile = session.query(Profile).filter(Profile.email == email).first()
    if profile:
        profile.full_name = full_name
        profile.role = role
        profile.active = True
        if phone:
            profile.phone = phone
        session.add(profile)
        session.flush()
        return profile
    profile = Profile(email=email, full_name=full_name, role=role, phone=phone, active=True)
    session.add(profile)
    session.flush()
    return profile


def ensure_site(session, name: str, **kwargs) -> Site:
    site = session.query(Site).filter(Site.name == name).first()
    if site:
        for k, v in kwargs.items():
            if hasattr(site, k):
                setattr(site, k, v)
        session.add(site)
        session.flush()
        return site
    kwargs.setdefault("radius", settings.geo_radius_m_default)
    site = Site(name=name, **{k: v for k, v in kwargs.items() if hasattr(Site, k)})
    session.add(site)
    session.flush()
    return site


def ensure_job(session, site: Site, worker: Profile | None, job_date, scheduled_time: time, planned_minutes: int) -> Job:
    query = session.query(Job).filter(
        Job.site_id == site.id,
        Job.job_date == job_date,
        Job.scheduled_time == scheduled_time,
    )
    query = query.filter(Job.worker_id == worker.id) if worker else query.filter(Job.worker_id.is_(None))
    job = query.first()
    if job:
        job.planned_minutes = planned_minutes
        session.add(job)
        session.flush()
        return job
    job = Job(
        site_id=site.id,
        worker_id=worker.id if worker else None,
        job_date=job_date,
        scheduled_time=scheduled_time,
        planned_minutes=planned_minutes,
        status="planned",
    )
    session.add(job)
    session.flush()
    if worker:
        assignments.grant(session, site.id, worker.id, autocommit=False)
    return job


def main() -> None:
    # Ensure tables exist (safe for SQLite dev)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        admin = ensure_profile(session, "admin@example.com", "Ada Admin", role="admin")
        olena = ensure_profile(session, "olena.k@example.com", "Olena Kovalenko", phone="+380 50 000 0001")
        taras = ensure_profile(session, "taras.m@example.com", "Taras Melnyk", phone="+380 50 000 0002")

        office = ensure_site(
            session,
            "Podil Office Block",
            address="Kontraktova Sq 4, Kyiv",
            lat=50.4656,
            lng=30.5152,
            radius=150,
            category=1,
            notes="Badge at reception. Floors 2-5.",
        )
        clinic = ensure_site(
            session,
            "Obolon Dental Clinic",
            address="Obolonskyi Ave 21, Kyiv",
            lat=50.5017,
            lng=30.4982,
            radius=100,
            category=3,
        )
        # No coordinates yet: clock-in is rejected until an admin fills them in
        warehouse = ensure_site(session, "Darnytsia Warehouse", address="Kharkivske Hwy 1, Kyiv", category=7)

        assignments.grant(session, office.id, olena.id, note="Key in lockbox 4417", autocommit=False)
        assignments.grant(session, clinic.id, taras.id, autocommit=False)
        assignments.grant(session, warehouse.id, taras.id, autocommit=False)

        today = today_local(settings.tz_default)
        for offset in range(7):
            day = shift_days(today, offset)
            ensure_job(session, office, olena, day, time(7, 0), 180)
            ensure_job(session, clinic, taras, day, time(19, 30), 120)
        # Open slot at the office that Olena can accept
        ensure_job(session, office, None, shift_days(today, 1), time(13, 0), 90)
        ensure_job(session, warehouse, taras, shift_days(today, 2), time(9, 0), 240)

        session.commit()

        print("Seed complete:")
        for p in (admin, olena, taras):
            print(f"  {p.role:<6} {p.full_name:<20} {p.email}")
            print(f"         token: {create_access_token(str(p.id), ttl_seconds=30 * 24 * 3600)}")
    finally:
        session.close()


if __name__ == "__main__":
    main()
