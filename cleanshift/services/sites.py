"""
Site directory: CRUD plus soft archive.
"""
from typing import Any, Dict, List

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..db import commit
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.models import Assignment, Job, Site
from .time_rules import iso, utc_now
from .validation import parse_int_range, parse_number, parse_uuid


logger = structlog.get_logger(__name__)

EDITABLE_FIELDS = ("name", "address", "lat", "lng", "radius", "category", "notes")


def _clean_text(value: Any) -> Any:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _parse_coordinate(value: Any, field: str, limit: float):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    n = parse_number(value, field)
    if n < -limit or n > limit:
        raise ValidationError(f"{field} must be between {-limit:g} and {limit:g}")
    return n


def _parse_radius(value: Any) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return settings.geo_radius_m_default
    n = parse_number(value, "radius")
    if n <= 0 or n != int(n):
        raise ValidationError("radius must be a positive whole number of meters")
    return int(n)


def _parse_category(value: Any):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_int_range(value, "category", 1, 15)


def _parse_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    if "name" in payload:
        name = _clean_text(payload["name"])
        if not name:
            raise ValidationError("name is required")
        fields["name"] = name
    if "address" in payload:
        fields["address"] = _clean_text(payload["address"])
    if "notes" in payload:
        fields["notes"] = _clean_text(payload["notes"])
    if "lat" in payload:
        fields["lat"] = _parse_coordinate(payload["lat"], "lat", 90)
    if "lng" in payload:
        fields["lng"] = _parse_coordinate(payload["lng"], "lng", 180)
    if "radius" in payload:
        fields["radius"] = _parse_radius(payload["radius"])
    if "category" in payload:
        fields["category"] = _parse_category(payload["category"])
    return fields


def get_site(db: Session, site_id) -> Site:
    site = db.query(Site).filter(Site.id == parse_uuid(site_id, "site_id")).first()
    if not site:
        raise NotFoundError("Site not found")
    return site


def list_sites(db: Session, include_archived: bool = False) -> List[Site]:
    query = db.query(Site)
    if not include_archived:
        query = query.filter(Site.archived_at.is_(None))
    return query.order_by(Site.name.asc()).all()


def create_site(db: Session, payload: Dict[str, Any]) -> Site:
    if not _clean_text(payload.get("name")):
        raise ValidationError("name is required")
    fields = _parse_fields(payload)
    fields.setdefault("radius", settings.geo_radius_m_default)
    site = Site(**fields)
    db.add(site)
    commit(db)
    db.refresh(site)
    logger.info("site_created", site_id=str(site.id))
    return site


def update_site(db: Session, site_id, payload: Dict[str, Any]) -> Site:
    site = get_site(db, site_id)
    fields = _parse_fields({k: v for k, v in payload.items() if k in EDITABLE_FIELDS})
    if not fields:
        raise ValidationError("Nothing to update")
    for key, value in fields.items():
        setattr(site, key, value)
    site.updated_at = utc_now()
    commit(db)
    db.refresh(site)
    logger.info("site_updated", site_id=str(site.id), fields=sorted(fields))
    return site


def set_archived(db: Session, site_id, archived: bool) -> Site:
    site = get_site(db, site_id)
    site.archived_at = utc_now() if archived else None
    site.updated_at = utc_now()
    commit(db)
    db.refresh(site)
    logger.info("site_archived" if archived else "site_unarchived", site_id=str(site.id))
    return site


def delete_site(db: Session, site_id) -> None:
    """Hard delete; sites with jobs must be archived instead."""
    site = get_site(db, site_id)
    if db.query(Job.id).filter(Job.site_id == site.id).first() is not None:
        raise ConflictError("Site has jobs; archive it instead")
    db.query(Assignment).filter(Assignment.site_id == site.id).delete(synchronize_session=False)
    db.delete(site)
    commit(db)
    logger.info("site_deleted", site_id=str(site_id))


def serialize_site(site: Site) -> Dict[str, Any]:
    return {
        "id": str(site.id),
        "name": site.name,
        "address": site.address,
        "lat": site.lat,
        "lng": site.lng,
        "radius": site.radius,
        "category": site.category,
        "notes": site.notes,
        "archived_at": iso(site.archived_at),
        "created_at": iso(site.created_at),
        "updated_at": iso(site.updated_at),
    }
