from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..config import Settings
from ..db import get_db
from ..logging import structlog
from ..models.models import User
from ..schemas.auth import LoginRequest, WorkerLoginRequest, PasswordChangeRequest
from ..schemas.common import ok
from ..services import users as user_service
from .security import (
    create_session_token,
    get_current_user,
    get_settings,
    set_session_cookie,
    clear_session_cookie,
)


router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


def _start_session(response: Response, user: User, settings: Settings) -> dict:
    token = create_session_token(str(user.id), settings)
    set_session_cookie(response, token, settings)
    logger.info("session_started", user_id=str(user.id), role=user.role)
    return ok({"user": user_service.user_to_dict(user), "access_token": token}, "Signed in.")


@router.post("/login")
def login(
    req: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = user_service.authenticate(db, req.username, req.password)
    return _start_session(response, user, settings)


@router.post("/login/worker")
def login_worker(
    req: WorkerLoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = user_service.authenticate_worker(db, req.national_id)
    return _start_session(response, user, settings)


@router.post("/logout")
def logout(response: Response, settings: Settings = Depends(get_settings)):
    clear_session_cookie(response, settings)
    return ok(message="Signed out.")


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return ok(user_service.user_to_dict(user))


@router.post("/password")
def change_password(
    req: PasswordChangeRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    user_service.change_password(db, user.id, req.current_password, req.new_password, user)
    return ok(message="Password updated.")
