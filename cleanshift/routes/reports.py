from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import get_db
from ..services.reports import get_report

router = APIRouter(prefix="/admin/reports", tags=["admin-reports"])


@router.get("")
def report(date_from: str, date_to: str, db: Session = Depends(get_db), _=Depends(require_admin)):
    return get_report(db, date_from, date_to)
