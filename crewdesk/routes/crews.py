from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, get_settings, require_capability
from ..config import Settings
from ..db import get_db
from ..models.models import User
from ..schemas.common import ok
from ..schemas.crews import CrewCreate, CrewUpdate
from ..services import crews as crew_service
from ..services.permissions import CREW_CREATE, CREW_DELETE, CREW_UPDATE


router = APIRouter(prefix="/crews", tags=["crews"])


@router.get("")
def list_crews(db: Session = Depends(get_db), _=Depends(get_current_user)):
    return ok([crew_service.crew_to_dict(c) for c in crew_service.list_crews(db)])


@router.get("/mine")
def my_crews(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return ok([crew_service.crew_to_dict(c) for c in crew_service.list_user_crews(db, user.id)])


@router.post("")
def create_crew(
    payload: CrewCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: User = Depends(require_capability(CREW_CREATE)),
):
    crew = crew_service.create_crew(
        db, payload, user,
        min_workers=settings.crew_min_workers,
        max_workers=settings.crew_max_workers,
    )
    return ok(crew_service.crew_to_dict(crew), "Crew created.")


@router.get("/{crew_id}")
def get_crew(crew_id: str, db: Session = Depends(get_db), _=Depends(get_current_user)):
    return ok(crew_service.crew_to_dict(crew_service.get_crew(db, crew_id)))


@router.patch("/{crew_id}")
def update_crew(
    crew_id: str,
    payload: CrewUpdate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: User = Depends(require_capability(CREW_UPDATE)),
):
    crew = crew_service.update_crew(
        db, crew_id, payload, user,
        min_workers=settings.crew_min_workers,
        max_workers=settings.crew_max_workers,
    )
    return ok(crew_service.crew_to_dict(crew), "Crew updated.")


@router.delete("/{crew_id}")
def delete_crew(
    crew_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_capability(CREW_DELETE)),
):
    crew_service.delete_crew(db, crew_id, user)
    return ok(message="Crew and its chat channel were deleted.")
