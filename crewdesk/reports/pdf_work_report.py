import qrcode
from io import BytesIO
from xml.sax.saxutils import escape
from typing import List, Dict

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Image, Table, TableStyle

from ..models.models import WorkReport


BRAND = colors.HexColor("#1f3a5f")
MUTED = colors.HexColor("#666666")

# byte-mode capacity of a version 40 code at level L is 2953
QR_MAX_BYTES = 2800


def generate_qr_code_image(data: str) -> BytesIO:
    """Generate QR code image as PNG in a BytesIO"""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    buffer.seek(0)
    return buffer


def _tools_block(title: str, entries) -> List[str]:
    lines = [f"{e.get('name')}: {e.get('quantity')}" for e in entries or [] if int(e.get("quantity") or 0) > 0]
    if not lines:
        return []
    return [f"--- {title.upper()} ---"] + lines + [""]


def report_qr_text(report: WorkReport) -> str:
    """
    Plain-text summary of a report, encoded in its QR code.

    Cut to QR_MAX_BYTES of UTF-8 so very long comments still fit in a code.
    """
    crew = report.crew
    date_text = report.created_at.strftime("%d/%m/%Y %H:%M") if report.created_at else "N/A"
    moderators = ", ".join(u.full_name for u in crew.moderators) if crew is not None else "N/A"
    workers = ", ".join(u.full_name for u in crew.workers) if crew is not None else "N/A"

    lines = [
        "=== WORK REPORT ===",
        f"Date: {date_text}",
        f"Crew: {crew.name if crew is not None else 'N/A'}",
        f"Activity: {(crew.description if crew is not None else None) or 'N/A'}",
        "",
        "=== DAY DETAILS ===",
        f"Municipality: {report.municipality}",
        f"Distance (m): {report.distance:g}",
        f"Comments: {report.comments}",
        "",
    ]
    lines += _tools_block("Tools used", report.tools_used)
    lines += _tools_block("Tools damaged", report.tools_damaged)
    lines += _tools_block("Tools lost", report.tools_lost)
    lines += [
        "=== ASSIGNED STAFF ===",
        "--- Moderators ---",
        moderators or "N/A",
        "",
        "--- Workers ---",
        workers or "N/A",
    ]
    text = "\n".join(lines).strip()
    encoded = text.encode("utf-8")
    if len(encoded) > QR_MAX_BYTES:
        text = encoded[:QR_MAX_BYTES].decode("utf-8", errors="ignore")
    return text


def table_style() -> TableStyle:
    return TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), BRAND),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f3f5f8")]),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ])


def tool_reconciliation(report: WorkReport) -> List[Dict]:
    """One row per tool: used, damaged, lost and what came back in working order."""
    rows: Dict[str, Dict] = {}

    def add(entries, column):
        for e in entries or []:
            name = (e.get("name") or "").strip()
            key = name.casefold()
            row = rows.setdefault(key, {"name": name, "used": 0, "damaged": 0, "lost": 0})
            row[column] += int(e.get("quantity") or 0)

    add(report.tools_used, "used")
    add(report.tools_damaged, "damaged")
    add(report.tools_lost, "lost")
    for row in rows.values():
        row["returned"] = max(row["used"] - row["damaged"] - row["lost"], 0)
    return list(rows.values())


def build_work_report_pdf(report: WorkReport) -> bytes:
    """Render a populated work report to PDF bytes."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        rightMargin=54,
        leftMargin=54,
        topMargin=54,
        bottomMargin=54,
        title=f"Work report {report.id}",
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ReportTitle",
        parent=styles["Heading1"],
        fontSize=20,
        textColor=BRAND,
        spaceAfter=6,
        fontName="Helvetica-Bold",
    )
    section_style = ParagraphStyle(
        "ReportSection",
        parent=styles["Heading2"],
        fontSize=13,
        textColor=BRAND,
        spaceBefore=14,
        spaceAfter=6,
    )
    body_style = ParagraphStyle("ReportBody", parent=styles["Normal"], fontSize=10, leading=14)
    muted_style = ParagraphStyle("ReportMuted", parent=body_style, textColor=MUTED)

    story = []
    crew = report.crew
    story.append(Paragraph("Work Report", title_style))
    date_text = report.created_at.strftime("%B %d, %Y %H:%M UTC") if report.created_at else "N/A"
    author = report.author.full_name if report.author is not None else "N/A"
    story.append(Paragraph(f"{date_text} &middot; filed by {escape(author)}", muted_style))
    story.append(Spacer(1, 0.2 * inch))

    # Activity details
    story.append(Paragraph("Activity details", section_style))
    details = [
        ["Crew", crew.name if crew is not None else "N/A"],
        ["Municipality", report.municipality],
        ["Distance (m)", f"{report.distance:,.0f}"],
    ]
    details_table = Table(details, colWidths=[1.6 * inch, 4.9 * inch])
    details_table.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    story.append(details_table)
    story.append(Spacer(1, 0.1 * inch))
    story.append(Paragraph(escape(report.comments or ""), body_style))

    # Crew roster
    story.append(Paragraph("Crew roster", section_style))
    if crew is not None and crew.members:
        roster = [["Name", "National ID", "Role"]]
        for m in crew.members:
            roster.append([m.user.full_name, m.user.national_id, m.membership.capitalize()])
        roster_table = Table(roster, colWidths=[3.0 * inch, 2.0 * inch, 1.5 * inch], repeatRows=1)
        roster_table.setStyle(table_style())
        story.append(roster_table)
    else:
        story.append(Paragraph("No crew on record.", muted_style))

    # Tools
    story.append(Paragraph("Tools", section_style))
    tools = [["Tool", "Used", "Damaged", "Lost", "Returned"]]
    for row in tool_reconciliation(report):
        tools.append([row["name"], row["used"], row["damaged"], row["lost"], row["returned"]])
    tools_table = Table(tools, colWidths=[2.7 * inch, 0.95 * inch, 0.95 * inch, 0.95 * inch, 0.95 * inch], repeatRows=1)
    style = table_style()
    style.add("ALIGN", (1, 0), (-1, -1), "CENTER")
    tools_table.setStyle(style)
    story.append(tools_table)

    # QR code with the report summary
    story.append(Spacer(1, 0.3 * inch))
    qr_img = Image(generate_qr_code_image(report_qr_text(report)), width=1.6 * inch, height=1.6 * inch)
    qr_table = Table(
        [[qr_img], [Paragraph("Scan for a summary of this report.", muted_style)]],
        colWidths=[6.5 * inch],
    )
    qr_table.setStyle(TableStyle([
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    story.append(qr_table)

    doc.build(story)
    return buffer.getvalue()
