from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..auth.security import require_capability
from ..db import get_db
from ..models.models import User
from ..schemas.common import ok
from ..services.activity import format_activity, list_recent_activity
from ..services.dashboard import admin_dashboard_stats
from ..services.exports import export_activity_log
from .reports import pdf_response
from ..services.permissions import ACTIVITY_READ, DASHBOARD_READ


router = APIRouter(tags=["activity"])


@router.get("/activity")
def list_activity(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    db: Session = Depends(get_db),
    _=Depends(require_capability(ACTIVITY_READ)),
):
    return ok([format_activity(e) for e in list_recent_activity(db, limit=limit)])


@router.get("/activity/pdf")
def download_activity_pdf(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    db: Session = Depends(get_db),
    user: User = Depends(require_capability(ACTIVITY_READ)),
):
    return pdf_response(*export_activity_log(db, user, limit=limit))


@router.get("/dashboard")
def dashboard(request: Request, db: Session = Depends(get_db), _=Depends(require_capability(DASHBOARD_READ))):
    limit = request.app.state.settings.activity_recent_limit
    return ok(admin_dashboard_stats(db, recent_limit=limit))
