"""
Activity log service.
Append-only log of named actions ("kind:detail") shown on the dashboard and
the log page.
"""
from typing import Optional, List, Dict, Any

import structlog
from sqlalchemy.orm import Session

from ..models.models import ActivityLog, utcnow


logger = structlog.get_logger(__name__)

SYSTEM_ACTOR = "System"

# action kind -> (icon, message template); {detail} is the part after the first colon
ACTIVITY_FORMATS: Dict[str, tuple] = {
    "user-creation": ("user-check", "New user created: {detail}"),
    "user-update": ("user-pen", "User \"{detail}\" was updated."),
    "user-deletion": ("user-x", "User \"{detail}\" was deleted."),
    "user-login": ("log-in", "User \"{detail}\" signed in."),
    "worker-login": ("log-in", "Worker with national ID \"{detail}\" signed in."),
    "user-password-change": ("key", "User \"{detail}\" changed their password."),
    "crew-creation": ("plus-circle", "Crew created: {detail}"),
    "crew-update": ("users", "Crew \"{detail}\" was updated."),
    "crew-deletion": ("trash", "Crew \"{detail}\" was deleted."),
    "channel-creation": ("message-square", "Channel created: {detail}"),
    "channel-rename": ("pencil", "Channel renamed: {detail}"),
    "channel-deletion": ("trash", "Channel \"{detail}\" was deleted."),
    "channel-deletion-auto": ("trash", "Channel \"{detail}\" was removed automatically."),
    "channel-members-add": ("user-plus", "Members added to \"{detail}\"."),
    "channel-members-remove": ("user-minus", "Members removed from \"{detail}\"."),
    "message-deletion": ("message-square-x", "Message {detail} was deleted."),
    "work-report-creation": ("file-text", "Work report {detail} created."),
    "work-report-update": ("file-pen", "Work report {detail} updated."),
    "report-generation": ("file-text", "Report generated: {detail}"),
    "db-connection": ("activity", "Application connected to the database."),
}
DEFAULT_ICON = "activity"


def log_activity(db: Session, action: str, performed_by: Optional[str], details: Optional[str] = None) -> Optional[ActivityLog]:
    """
    Append an activity entry and commit it.

    Never raises: a failed write is rolled back, logged and dropped so the
    primary action is not affected. Call it after the primary action has been
    committed.
    """
    try:
        entry = ActivityLog(
            action=action,
            performed_by=performed_by or SYSTEM_ACTOR,
            details=details,
            created_at=utcnow(),
        )
        db.add(entry)
        db.commit()
        return entry
    except Exception as e:
        db.rollback()
        logger.warning("activity_log_write_failed", action=action, error=str(e))
        return None


def list_recent_activity(db: Session, limit: Optional[int] = None) -> List[ActivityLog]:
    query = db.query(ActivityLog).order_by(ActivityLog.created_at.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def split_action(action: str) -> tuple:
    kind, _, detail = (action or "").partition(":")
    return kind, detail


def format_activity(entry: ActivityLog) -> Dict[str, Any]:
    kind, detail = split_action(entry.action)
    icon, template = ACTIVITY_FORMATS.get(kind, (DEFAULT_ICON, None))
    message = template.format(detail=detail or "N/A") if template else entry.action
    return {
        "id": str(entry.id),
        "action": entry.action,
        "kind": kind,
        "detail": detail or None,
        "icon": icon,
        "message": message,
        "performed_by": entry.performed_by,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
        "details": entry.details,
    }
