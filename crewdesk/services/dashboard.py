from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.models import User, UserRole, Crew, WorkReport
from .activity import format_activity, list_recent_activity


def admin_dashboard_stats(db: Session, recent_limit: int = 5) -> Dict[str, Any]:
    """Headline numbers for the admin dashboard."""
    total = db.query(func.count(User.id)).scalar() or 0
    active = db.query(func.count(User.id)).filter(User.status == "active").scalar() or 0

    roles = {r.value: 0 for r in UserRole}
    for role, count in db.query(User.role, func.count(User.id)).group_by(User.role).all():
        roles[role] = count

    return {
        "users": {"total": total, "active": active, "inactive": total - active},
        "roles": [{"role": role, "count": count} for role, count in roles.items()],
        "crews": db.query(func.count(Crew.id)).scalar() or 0,
        "work_reports": db.query(func.count(WorkReport.id)).scalar() or 0,
        "recent_activity": [format_activity(e) for e in list_recent_activity(db, limit=recent_limit)],
    }
