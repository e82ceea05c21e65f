from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import get_db
from ..services import sites

router = APIRouter(prefix="/admin/sites", tags=["admin-sites"])


@router.get("")
def list_sites(include_archived: bool = False, db: Session = Depends(get_db), _=Depends(require_admin)):
    return [sites.serialize_site(s) for s in sites.list_sites(db, include_archived=include_archived)]


@router.post("")
def create_site(payload: dict, db: Session = Depends(get_db), _=Depends(require_admin)):
    return sites.serialize_site(sites.create_site(db, payload))


@router.get("/{site_id}")
def get_site(site_id: str, db: Session = Depends(get_db), _=Depends(require_admin)):
    return sites.serialize_site(sites.get_site(db, site_id))


@router.patch("/{site_id}")
def update_site(site_id: str, payload: dict, db: Session = Depends(get_db), _=Depends(require_admin)):
    return sites.serialize_site(sites.update_site(db, site_id, payload))


@router.post("/{site_id}/archive")
def archive_site(site_id: str, db: Session = Depends(get_db), _=Depends(require_admin)):
    return sites.serialize_site(sites.set_archived(db, site_id, True))


@router.post("/{site_id}/unarchive")
def unarchive_site(site_id: str, db: Session = Depends(get_db), _=Depends(require_admin)):
    return sites.serialize_site(sites.set_archived(db, site_id, False))


@router.delete("/{site_id}")
def delete_site(site_id: str, db: Session = Depends(get_db), _=Depends(require_admin)):
    sites.delete_site(db, site_id)
    return {"status": "ok"}
