import uuid
from datetime import datetime, date, time
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Time,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    Text,
    Index,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base
from ..services.time_rules import utc_now


JOB_STATUSES = ("planned", "in_progress", "done", "cancelled")
ROLES = ("admin", "worker")


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


class Site(Base):
    """Cleaning site with its geofence circle"""
    __tablename__ = "sites"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(500))
    lat: Mapped[Optional[float]] = mapped_column(Float)
    lng: Mapped[Optional[float]] = mapped_column(Float)
    radius: Mapped[Optional[int]] = mapped_column(Integer, default=150)  # Geofence radius in meters
    category: Mapped[Optional[int]] = mapped_column(Integer)  # 1..15
    notes: Mapped[Optional[str]] = mapped_column(Text)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))  # Soft delete
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Profile(Base):
    """Worker/admin directory row; identity itself lives in the identity service"""
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = uuid_pk()
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="worker")  # admin|worker
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class Assignment(Base):
    """Access grant: worker may be scheduled and clock in at site"""
    __tablename__ = "assignments"

    id: Mapped[uuid.UUID] = uuid_pk()
    site_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    worker_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    note: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        UniqueConstraint("site_id", "worker_id", name="uq_assignment_site_worker"),
    )


class Job(Base):
    """Shift: one worker at one site on one date"""
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = uuid_pk()
    site_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("sites.id"), nullable=False, index=True)
    worker_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), ForeignKey("profiles.id"), index=True)  # Null until accepted
    job_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_time: Mapped[Optional[time]] = mapped_column(Time(timezone=False))
    scheduled_end_time: Mapped[Optional[time]] = mapped_column(Time(timezone=False))
    planned_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="planned")  # planned|in_progress|done|cancelled
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    site = relationship("Site")
    worker = relationship("Profile")
    time_logs = relationship("TimeLog", back_populates="job", order_by="TimeLog.started_at")

    __table_args__ = (
        Index("idx_jobs_date_status", "job_date", "status"),
        Index("idx_jobs_worker_date", "worker_id", "job_date"),
    )


class TimeLog(Base):
    """Clock-in/clock-out record for a job"""
    __tablename__ = "time_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("jobs.id"), nullable=False, index=True)
    worker_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=False, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    start_lat: Mapped[Optional[float]] = mapped_column(Float)
    start_lng: Mapped[Optional[float]] = mapped_column(Float)
    start_accuracy: Mapped[Optional[float]] = mapped_column(Float)
    stopped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    stop_lat: Mapped[Optional[float]] = mapped_column(Float)
    stop_lng: Mapped[Optional[float]] = mapped_column(Float)
    stop_accuracy: Mapped[Optional[float]] = mapped_column(Float)

    job = relationship("Job", back_populates="time_logs")

    __table_args__ = (
        # At most one open log per job
        Index(
            "uq_time_logs_open_job",
            "job_id",
            unique=True,
            sqlite_where=text("stopped_at IS NULL"),
            postgresql_where=text("stopped_at IS NULL"),
        ),
        Index("idx_time_logs_started_at", "started_at"),
    )
