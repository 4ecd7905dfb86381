import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
import bcrypt
from sqlalchemy.orm import Session

from ..config import Settings
from ..db import get_db
from ..errors import NotAuthenticated
from ..models.models import User
from ..services.permissions import require


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_password_hash(password: str) -> str:
    # Use pbkdf2_sha256 to avoid native bcrypt backend issues
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    # Accounts imported from the previous store carry bcrypt ($2a$/$2b$/$2y$) hashes
    if hashed.startswith("$2a$") or hashed.startswith("$2b$") or hashed.startswith("$2y$"):
        pb = plain.encode("utf-8")
        if len(pb) > 72:
            pb = pb[:72]
        try:
            return bcrypt.checkpw(pb, hashed.encode("utf-8"))
        except ValueError:
            return False
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


def create_session_token(user_id: str, settings: Settings) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=settings.session_ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise NotAuthenticated("Session expired")
    except jwt.InvalidTokenError:
        raise NotAuthenticated("Invalid session")


def _session_token(request: Request, creds: Optional[HTTPAuthorizationCredentials], settings: Settings) -> Optional[str]:
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token
    if creds is not None:
        return creds.credentials
    return None


def get_current_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    token = _session_token(request, creds, settings)
    if not token:
        raise NotAuthenticated()
    payload = decode_token(token, settings)
    try:
        user_uuid = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise NotAuthenticated("Invalid session")
    user = db.query(User).filter(User.id == user_uuid).first()
    if user is None or not user.is_active:
        raise NotAuthenticated("User not active")
    return user


def require_capability(action: str):
    def _dep(user: User = Depends(get_current_user)):
        return require(user, action)

    return _dep


def set_session_cookie(response, token: str, settings: Settings) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="strict",
        max_age=settings.session_ttl_seconds,
        path="/",
    )


def clear_session_cookie(response, settings: Settings) -> None:
    response.delete_cookie(settings.session_cookie_name, path="/")
