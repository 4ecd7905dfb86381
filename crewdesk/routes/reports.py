from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth.security import require_capability
from ..db import get_db
from ..models.models import User
from ..schemas.common import ok
from ..schemas.work_reports import WorkReportCreate, WorkReportUpdate
from ..services import exports
from ..services import work_reports as report_service
from ..services.permissions import REPORT_READ, REPORT_WRITE


router = APIRouter(prefix="/reports", tags=["reports"])


def pdf_response(filename: str, pdf: bytes) -> Response:
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/work")
def list_work_reports(db: Session = Depends(get_db), _=Depends(require_capability(REPORT_READ))):
    return ok([report_service.report_to_dict(r) for r in report_service.list_work_reports(db)])


@router.post("/work")
def create_work_report(
    payload: WorkReportCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_capability(REPORT_WRITE)),
):
    report = report_service.create_work_report(db, payload, user)
    return ok(report_service.report_to_dict(report), "Work report created.")


# declared before /work/{report_id} so "pdf" is not taken for an id
@router.get("/work/pdf")
def download_work_report_history_pdf(db: Session = Depends(get_db), user: User = Depends(require_capability(REPORT_READ))):
    return pdf_response(*exports.export_work_report_history(db, user))


@router.get("/work/{report_id}")
def get_work_report(report_id: str, db: Session = Depends(get_db), user: User = Depends(require_capability(REPORT_READ))):
    return ok(report_service.report_to_dict(report_service.read_work_report(db, report_id, user)))


@router.patch("/work/{report_id}")
def update_work_report(
    report_id: str,
    payload: WorkReportUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_capability(REPORT_WRITE)),
):
    report = report_service.update_work_report(db, report_id, payload, user)
    return ok(report_service.report_to_dict(report), "Work report updated.")


@router.get("/work/{report_id}/pdf")
def download_work_report_pdf(report_id: str, db: Session = Depends(get_db), user: User = Depends(require_capability(REPORT_READ))):
    return pdf_response(*exports.export_work_report(db, report_id, user))


@router.get("/work/{report_id}/qr")
def work_report_qr(report_id: str, db: Session = Depends(get_db), user: User = Depends(require_capability(REPORT_READ))):
    """PNG QR code carrying a plain-text summary of the report."""
    return Response(content=exports.work_report_qr_png(db, report_id, user), media_type="image/png")


@router.get("/roster/{kind}/pdf")
def download_roster_pdf(kind: str, db: Session = Depends(get_db), user: User = Depends(require_capability(REPORT_READ))):
    """``kind`` is workers, moderators or crews."""
    return pdf_response(*exports.export_roster(db, kind, user))
