"""
Work reports filed by administrators and moderators after a crew outing,
with the tool inventory reconciliation (used / damaged / lost).
"""
from collections import OrderedDict
from typing import List, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from ..errors import ValidationFailed
from ..models.models import User, WorkReport, utcnow
from ..schemas.work_reports import WorkReportCreate, WorkReportUpdate
from .activity import log_activity
from .common import commit, get_or_404
from .crews import crew_to_dict, get_crew
from .permissions import REPORT_READ, REPORT_WRITE, require
from .users import sender_info


TOOL_LISTS = ("tools_used", "tools_damaged", "tools_lost")


def _entries(items: Optional[Iterable]) -> List[dict]:
    out = []
    for item in items or []:
        if hasattr(item, "model_dump"):
            item = item.model_dump()
        out.append({"name": str(item.get("name") or "").strip(), "quantity": int(item.get("quantity") or 0)})
    return out


def _totals(entries: List[dict]) -> Dict[str, int]:
    # tool names match case-insensitively; the first spelling is kept for messages
    totals: Dict[str, int] = OrderedDict()
    for e in entries:
        key = e["name"].casefold()
        totals[key] = totals.get(key, 0) + e["quantity"]
    return totals


def validate_tool_inventory(tools_used, tools_damaged, tools_lost) -> None:
    """
    Raise ValidationFailed unless the inventory is consistent.

    For every tool, damaged + lost may not exceed used (a tool missing from
    the used list counts as 0 used), and at least one used tool must have a
    positive quantity.
    """
    used, damaged, lost = _entries(tools_used), _entries(tools_damaged), _entries(tools_lost)
    for e in used + damaged + lost:
        if not e["name"]:
            raise ValidationFailed("Tool names cannot be empty.")
        if e["quantity"] < 0:
            raise ValidationFailed("Tool quantities cannot be negative.")

    used_totals = _totals(used)
    if not any(q > 0 for q in used_totals.values()):
        raise ValidationFailed("At least one used tool with a quantity greater than zero is required.")

    damaged_totals, lost_totals = _totals(damaged), _totals(lost)
    display = {}
    for e in used + damaged + lost:
        display.setdefault(e["name"].casefold(), e["name"])
    for key in OrderedDict.fromkeys(list(damaged_totals) + list(lost_totals)):
        missing = damaged_totals.get(key, 0) + lost_totals.get(key, 0)
        available = used_totals.get(key, 0)
        if missing > available:
            raise ValidationFailed(
                f"Damaged and lost quantities for \"{display[key]}\" ({missing}) exceed the quantity used ({available})."
            )


def report_to_dict(r: WorkReport) -> dict:
    return {
        "id": str(r.id),
        "crew_id": str(r.crew_id) if r.crew_id else None,
        "crew": crew_to_dict(r.crew) if r.crew is not None else None,
        "municipality": r.municipality,
        "distance": r.distance,
        "comments": r.comments,
        "tools_used": r.tools_used or [],
        "tools_damaged": r.tools_damaged or [],
        "tools_lost": r.tools_lost or [],
        "author": sender_info(r.author),
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


def list_work_reports(db: Session) -> List[WorkReport]:
    return db.query(WorkReport).order_by(WorkReport.created_at.desc()).all()


def get_work_report(db: Session, report_id) -> WorkReport:
    return get_or_404(db, WorkReport, report_id, "Work report not found.")


def create_work_report(db: Session, payload: WorkReportCreate, actor: User) -> WorkReport:
    require(actor, REPORT_WRITE, "You are not permitted to file work reports.")
    crew = get_crew(db, payload.crew_id)
    validate_tool_inventory(payload.tools_used, payload.tools_damaged, payload.tools_lost)

    report = WorkReport(
        crew_id=crew.id,
        municipality=payload.municipality.strip(),
        distance=payload.distance,
        comments=payload.comments.strip(),
        tools_used=_entries(payload.tools_used),
        tools_damaged=_entries(payload.tools_damaged),
        tools_lost=_entries(payload.tools_lost),
        author_id=actor.id,
        created_at=utcnow(),
    )
    db.add(report)
    commit(db)
    db.refresh(report)
    log_activity(db, f"work-report-creation:{report.id}", actor.username)
    return report


def update_work_report(db: Session, report_id, payload: WorkReportUpdate, actor: User) -> WorkReport:
    require(actor, REPORT_WRITE, "You are not permitted to modify work reports.")
    report = get_work_report(db, report_id)
    data = payload.model_dump(exclude_unset=True)

    merged = {name: data[name] if data.get(name) is not None else getattr(report, name) or []
              for name in TOOL_LISTS}
    # re-validate the result as a whole, not just the changed lists
    validate_tool_inventory(merged["tools_used"], merged["tools_damaged"], merged["tools_lost"])

    if data.get("crew_id") is not None:
        report.crew_id = get_crew(db, data["crew_id"]).id
    if data.get("municipality") is not None:
        report.municipality = data["municipality"].strip()
    if data.get("distance") is not None:
        report.distance = data["distance"]
    if data.get("comments") is not None:
        report.comments = data["comments"].strip()
    for name in TOOL_LISTS:
        if data.get(name) is not None:
            setattr(report, name, _entries(data[name]))

    commit(db)
    db.refresh(report)
    log_activity(db, f"work-report-update:{report.id}", actor.username)
    return report


def read_work_report(db: Session, report_id, actor: User) -> WorkReport:
    require(actor, REPORT_READ, "You are not permitted to view work reports.")
    return get_work_report(db, report_id)
