"""
Tabular PDF exports: the activity log, the worker / moderator / crew
rosters and the work report history. Each is a title over a single table.
"""
from io import BytesIO
from xml.sax.saxutils import escape
from typing import List, Sequence

from reportlab.lib.pagesizes import letter, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table

from ..models.models import ActivityLog, User, WorkReport, utcnow
from ..services.activity import format_activity
from .pdf_work_report import BRAND, MUTED, table_style


ROSTER_KINDS = ("workers", "moderators", "crews")


def _fmt_date(value, pattern="%d/%m/%Y") -> str:
    return value.strftime(pattern) if value else "N/A"


def build_table_pdf(title: str, header: Sequence[str], rows: List[Sequence], col_widths=None, wide=False) -> bytes:
    """Render a titled table; cells are wrapped so long text breaks across lines."""
    buffer = BytesIO()
    pagesize = landscape(letter) if wide else letter
    doc = SimpleDocTemplate(
        buffer,
        pagesize=pagesize,
        rightMargin=36,
        leftMargin=36,
        topMargin=42,
        bottomMargin=42,
        title=title,
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ListTitle",
        parent=styles["Heading1"],
        fontSize=18,
        textColor=BRAND,
        spaceAfter=4,
        fontName="Helvetica-Bold",
    )
    muted_style = ParagraphStyle("ListMuted", parent=styles["Normal"], fontSize=9, textColor=MUTED)
    cell_style = ParagraphStyle("ListCell", parent=styles["Normal"], fontSize=8, leading=10)

    story = [
        Paragraph(title, title_style),
        Paragraph(f"Generated {_fmt_date(utcnow(), '%d/%m/%Y %H:%M')} UTC &middot; {len(rows)} rows", muted_style),
        Spacer(1, 0.15 * inch),
    ]
    data = [list(header)]
    for row in rows:
        data.append([Paragraph(escape(str(c if c is not None else "")).replace("\n", "<br/>"), cell_style) for c in row])
    table = Table(data, colWidths=col_widths, repeatRows=1)
    table.setStyle(table_style())
    story.append(table)

    doc.build(story)
    return buffer.getvalue()


def build_activity_log_pdf(entries: List[ActivityLog]) -> bytes:
    rows = []
    for entry in entries:
        formatted = format_activity(entry)
        rows.append([formatted["message"], entry.performed_by, _fmt_date(entry.created_at, "%d/%m/%Y %H:%M:%S")])
    return build_table_pdf(
        "Activity Log",
        ["Action", "Performed by", "Date"],
        rows,
        col_widths=[3.9 * inch, 1.6 * inch, 1.5 * inch],
    )


def _user_rows(users: List[User]) -> List[list]:
    return [
        [u.full_name, u.national_id, u.email, u.phone or "", u.status, _fmt_date(u.created_at)]
        for u in users
    ]


def build_roster_pdf(kind: str, records) -> bytes:
    """
    Roster export. ``kind`` is one of ROSTER_KINDS: users for "workers" and
    "moderators", crews for "crews".
    """
    if kind == "crews":
        rows = []
        for crew in records:
            rows.append([
                crew.name,
                crew.description or "N/A",
                ", ".join(u.full_name for u in crew.moderators),
                "\n".join(u.full_name for u in crew.workers),
                crew.created_by,
                _fmt_date(crew.created_at),
            ])
        return build_table_pdf(
            "Crew Roster",
            ["Name", "Description", "Moderators", "Workers", "Created by", "Created on"],
            rows,
            col_widths=[1.4 * inch, 2.0 * inch, 1.9 * inch, 2.2 * inch, 1.2 * inch, 1.0 * inch],
            wide=True,
        )
    if kind not in ROSTER_KINDS:
        raise ValueError(f"unknown roster kind: {kind}")
    return build_table_pdf(
        "Worker Roster" if kind == "workers" else "Moderator Roster",
        ["Name", "National ID", "Email", "Phone", "Status", "Created on"],
        _user_rows(records),
        col_widths=[1.6 * inch, 1.0 * inch, 1.9 * inch, 1.0 * inch, 0.7 * inch, 0.8 * inch],
    )


def build_work_report_history_pdf(reports: List[WorkReport]) -> bytes:
    rows = [
        [
            r.crew.name if r.crew is not None else "N/A",
            r.municipality,
            f"{r.distance:,.0f}",
            _fmt_date(r.created_at, "%d/%m/%Y %H:%M"),
            r.comments,
        ]
        for r in reports
    ]
    return build_table_pdf(
        "Work Report History",
        ["Crew", "Municipality", "Distance (m)", "Date", "Comments"],
        rows,
        col_widths=[1.5 * inch, 1.4 * inch, 1.0 * inch, 1.2 * inch, 4.4 * inch],
        wide=True,
    )
