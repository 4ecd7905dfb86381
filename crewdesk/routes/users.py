from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_capability
from ..db import get_db
from ..models.models import User
from ..schemas.common import ok
from ..schemas.users import UserCreate, UserUpdate
from ..services import users as user_service
from ..services.permissions import USER_CREATE, USER_DELETE, USER_UPDATE


router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
def list_users(
    role: Optional[List[str]] = Query(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    List users other than the caller.

    Moderators only see Workers unless ``role`` is given explicitly.
    """
    rows = user_service.list_users(db, user, roles=role)
    return ok([user_service.user_to_dict(u) for u in rows])


@router.post("")
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_capability(USER_CREATE)),
):
    created, generated_password = user_service.create_user(db, payload, user)
    data = user_service.user_to_dict(created)
    if generated_password:
        # shown once; never stored in clear
        data["generated_password"] = generated_password
    return ok(data, "User created.")


@router.get("/{user_id}")
def get_user(user_id: str, db: Session = Depends(get_db), _=Depends(get_current_user)):
    return ok(user_service.user_to_dict(user_service.get_user(db, user_id)))


@router.patch("/{user_id}")
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_capability(USER_UPDATE)),
):
    updated = user_service.update_user(db, user_id, payload, user)
    return ok(user_service.user_to_dict(updated), "User updated.")


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_capability(USER_DELETE)),
):
    user_service.delete_user(db, user_id, user)
    return ok(message="User deleted.")
