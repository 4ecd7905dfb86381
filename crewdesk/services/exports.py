"""
PDF and QR exports. Every PDF generated here is recorded in the activity
log as ``report-generation:<name>``.
"""
from typing import Optional, List, Tuple

import structlog
from sqlalchemy.orm import Session

from ..errors import ValidationFailed
from ..models.models import User, UserRole
from ..reports.pdf_listings import (
    ROSTER_KINDS,
    build_activity_log_pdf,
    build_roster_pdf,
    build_work_report_history_pdf,
)
from ..reports.pdf_work_report import build_work_report_pdf, generate_qr_code_image, report_qr_text
from .activity import list_recent_activity, log_activity
from .crews import list_crews
from .permissions import ACTIVITY_READ, REPORT_READ, require
from .work_reports import list_work_reports, read_work_report


logger = structlog.get_logger(__name__)

ROSTER_ROLES = {"workers": UserRole.WORKER.value, "moderators": UserRole.MODERATOR.value}


def _record(db: Session, name: str, pdf: bytes, actor: User) -> Tuple[str, bytes]:
    logger.info("pdf_rendered", report=name, size=len(pdf))
    log_activity(db, f"report-generation:{name}", actor.username)
    return f"{name}.pdf", pdf


def users_with_role(db: Session, role: str) -> List[User]:
    return db.query(User).filter(User.role == role).order_by(User.last_name, User.first_name).all()


def export_work_report(db: Session, report_id, actor: User) -> Tuple[str, bytes]:
    report = read_work_report(db, report_id, actor)
    return _record(db, f"work-report-{report.id}", build_work_report_pdf(report), actor)


def work_report_qr_png(db: Session, report_id, actor: User) -> bytes:
    report = read_work_report(db, report_id, actor)
    return generate_qr_code_image(report_qr_text(report)).getvalue()


def export_work_report_history(db: Session, actor: User) -> Tuple[str, bytes]:
    require(actor, REPORT_READ)
    pdf = build_work_report_history_pdf(list_work_reports(db))
    return _record(db, "work-report-history", pdf, actor)


def export_activity_log(db: Session, actor: User, limit: Optional[int] = None) -> Tuple[str, bytes]:
    require(actor, ACTIVITY_READ)
    pdf = build_activity_log_pdf(list_recent_activity(db, limit=limit))
    return _record(db, "activity-log", pdf, actor)


def export_roster(db: Session, kind: str, actor: User) -> Tuple[str, bytes]:
    """Worker, moderator or crew roster as PDF."""
    require(actor, REPORT_READ)
    if kind not in ROSTER_KINDS:
        raise ValidationFailed(f"Unknown roster \"{kind}\". Expected one of: {', '.join(ROSTER_KINDS)}.")
    if kind == "crews":
        records = list_crews(db)
    else:
        records = users_with_role(db, ROSTER_ROLES[kind])
    return _record(db, f"{kind}-roster", build_roster_pdf(kind, records), actor)
