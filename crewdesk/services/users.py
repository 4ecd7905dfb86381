"""
User accounts: listing, creation with derived credentials, updates,
deletion guarded by crew membership, password changes and sign-in.
"""
from typing import Optional, List, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import get_password_hash, verify_password
from ..errors import Conflict, NotAuthenticated, NotFound, PermissionDenied, ValidationFailed
from ..models.models import User, UserRole, CrewMember, Channel, ChannelMember, ChannelType, utcnow
from ..schemas.users import UserCreate, UserUpdate
from .activity import log_activity, SYSTEM_ACTOR
from .common import commit, get_or_404, parse_uuid
from .permissions import (
    MANAGEABLE_ROLES,
    USER_ASSIGN_ROLE,
    USER_CREATE,
    USER_DELETE,
    USER_LIST_SCOPED,
    USER_UPDATE,
    can,
    can_manage_role,
    require,
)


def user_to_dict(u: User) -> dict:
    return {
        "id": str(u.id),
        "first_name": u.first_name,
        "last_name": u.last_name,
        "name": u.full_name,
        "national_id": u.national_id,
        "email": u.email,
        "phone": u.phone,
        "username": u.username,
        "role": u.role,
        "status": u.status,
        "created_at": u.created_at.isoformat() if u.created_at else None,
        "created_by": u.created_by,
    }


def sender_info(u: Optional[User]) -> Optional[dict]:
    """Display fields attached to a message; None once the sender is gone."""
    if u is None:
        return None
    return {
        "id": str(u.id),
        "first_name": u.first_name,
        "last_name": u.last_name,
        "username": u.username,
        "role": u.role,
    }


def list_users(db: Session, actor: User, roles: Optional[List[str]] = None) -> List[User]:
    query = db.query(User).filter(User.id != actor.id)
    if roles:
        try:
            wanted = [UserRole(r).value for r in roles]
        except ValueError:
            raise ValidationFailed("Unknown role.")
        query = query.filter(User.role.in_(wanted))
    elif can(actor.role, USER_LIST_SCOPED):
        query = query.filter(User.role.in_(sorted(MANAGEABLE_ROLES[actor.role])))
    return query.order_by(User.created_at.desc()).all()


def get_user(db: Session, user_id) -> User:
    return get_or_404(db, User, user_id, "User not found.")


def _duplicate_fields(db: Session, email: Optional[str], national_id: Optional[str], exclude_id=None) -> List[str]:
    clauses = []
    if email:
        clauses.append(User.email == email)
    if national_id:
        clauses.append(User.national_id == national_id)
    if not clauses:
        return []
    query = db.query(User).filter(or_(*clauses))
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    dupes = []
    for other in query.all():
        if email and other.email == email and "Email" not in dupes:
            dupes.append("Email")
        if national_id and other.national_id == national_id and "National ID" not in dupes:
            dupes.append("National ID")
    return dupes


def _username_taken(db: Session, username: str, exclude_id=None) -> bool:
    query = db.query(User).filter(User.username == username)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def derive_credentials(payload: UserCreate) -> Tuple[str, str, Optional[str]]:
    """
    Username and initial password for a new account.

    Workers sign in with their national ID, which is both username and
    password. Moderators get the national ID as username and a generated
    password (name initials + national ID) that is shown once. Admin accounts
    need an explicit username and password.

    Returns (username, password, generated_password_or_None).
    """
    role = UserRole(payload.role)
    if role == UserRole.WORKER:
        return payload.national_id, payload.national_id, None
    if role == UserRole.MODERATOR:
        initials = (payload.first_name[:1] + payload.last_name[:1]).upper()
        password = f"{initials}{payload.national_id}"
        return payload.national_id, password, password
    if not payload.username:
        raise ValidationFailed("A username is required for Admin accounts.")
    if not payload.password:
        raise ValidationFailed("A password is required for Admin accounts.")
    return payload.username, payload.password, None


def create_user(db: Session, payload: UserCreate, actor: User) -> Tuple[User, Optional[str]]:
    require(actor, USER_CREATE)
    role = UserRole(payload.role).value
    if not can_manage_role(actor.role, role):
        raise PermissionDenied(f"You are not permitted to create {role} accounts.")

    email = str(payload.email).lower()
    dupes = _duplicate_fields(db, email, payload.national_id)
    if dupes:
        raise Conflict("A user with the same data already exists: " + ", ".join(dupes) + ".")

    username, password, generated = derive_credentials(payload)
    if _username_taken(db, username):
        raise Conflict("A user with the same username already exists.")

    user = User(
        first_name=payload.first_name,
        last_name=payload.last_name,
        national_id=payload.national_id,
        email=email,
        phone=payload.phone,
        username=username,
        password_hash=get_password_hash(password),
        role=role,
        status="active",
        created_at=utcnow(),
        created_by=actor.username,
    )
    db.add(user)
    commit(db, "A user with the same data already exists.")
    db.refresh(user)
    log_activity(db, f"user-creation:{user.username}", actor.username)
    return user, generated


def update_user(db: Session, user_id, payload: UserUpdate, actor: User) -> User:
    require(actor, USER_UPDATE)
    user = get_user(db, user_id)
    if not can_manage_role(actor.role, user.role):
        raise PermissionDenied(f"You are not permitted to modify {user.role} accounts.")

    data = payload.model_dump(exclude_unset=True)
    # role changes are reserved; other actors keep the current role
    role = data.pop("role", None)
    if role is not None and can(actor.role, USER_ASSIGN_ROLE):
        user.role = UserRole(role).value

    email = data.pop("email", None)
    if email is not None:
        email = str(email).lower()
    dupes = _duplicate_fields(db, email, data.get("national_id"), exclude_id=user.id)
    if dupes:
        raise Conflict("A user with the same data already exists: " + ", ".join(dupes) + ".")
    if email is not None:
        user.email = email

    username = data.pop("username", None)
    if username:
        if _username_taken(db, username, exclude_id=user.id):
            raise Conflict("A user with the same username already exists.")
        user.username = username

    password = data.pop("password", None)
    if password:
        user.password_hash = get_password_hash(password)

    for key in ("first_name", "last_name", "national_id", "phone", "status"):
        if data.get(key) is not None:
            setattr(user, key, data[key])

    commit(db, "A user with the same data already exists.")
    db.refresh(user)
    log_activity(db, f"user-update:{user.username}", actor.username)
    return user


def delete_user(db: Session, user_id, actor: User) -> None:
    require(actor, USER_DELETE)
    user = get_user(db, user_id)
    if not can_manage_role(actor.role, user.role):
        raise PermissionDenied(f"You are not permitted to delete {user.role} accounts.")
    in_crew = db.query(CrewMember).filter(CrewMember.user_id == user.id).first()
    if in_crew is not None:
        raise Conflict("Cannot delete a user who belongs to a crew. Remove them from the crew first.")
    username = user.username
    orphaned = _drop_conversations_of(db, user)
    db.delete(user)
    commit(db)
    log_activity(db, f"user-deletion:{username}", actor.username)
    for name in orphaned:
        log_activity(db, f"channel-deletion-auto:{name}", actor.username)


def _drop_conversations_of(db: Session, user: User) -> List[str]:
    """
    Delete the user's DIRECT channels and any GROUP left with no other
    member, messages included. Does not commit. Returns the channel names.
    """
    channels = (
        db.query(Channel)
        .join(ChannelMember, ChannelMember.channel_id == Channel.id)
        .filter(
            ChannelMember.user_id == user.id,
            Channel.type.in_([ChannelType.DIRECT.value, ChannelType.GROUP.value]),
        )
        .all()
    )
    names = []
    for channel in channels:
        others = [uid for uid in channel.member_ids if uid != user.id]
        if channel.type == ChannelType.DIRECT.value or not others:
            names.append(channel.name)
            db.delete(channel)
    return names


def change_password(db: Session, user_id, current_password: str, new_password: str, actor: User) -> None:
    user = get_user(db, user_id)
    if user.id != actor.id:
        raise PermissionDenied("You can only change your own password.")
    if not verify_password(current_password, user.password_hash):
        raise ValidationFailed("The current password is incorrect.")
    user.password_hash = get_password_hash(new_password)
    commit(db)
    log_activity(db, f"user-password-change:{user.username}", actor.username)


def authenticate(db: Session, username: str, password: str) -> User:
    user = db.query(User).filter(User.username == (username or "").strip()).first()
    if user is None:
        raise NotAuthenticated("User not found.")
    if not verify_password(password or "", user.password_hash):
        raise NotAuthenticated("Incorrect password.")
    if not user.is_active:
        raise PermissionDenied("This account is inactive.")
    log_activity(db, f"user-login:{user.username}", user.username)
    return user


def authenticate_worker(db: Session, national_id: str) -> User:
    national_id = (national_id or "").strip()
    user = (
        db.query(User)
        .filter(User.national_id == national_id, User.role == UserRole.WORKER.value)
        .first()
    )
    if user is None:
        raise NotAuthenticated("No worker found with that national ID.")
    if not user.is_active:
        raise PermissionDenied("This account is inactive.")
    log_activity(db, f"worker-login:{national_id}", SYSTEM_ACTOR)
    return user


def find_users(db: Session, user_ids) -> List[User]:
    ids = {parse_uuid(x, "user id") for x in user_ids}
    if not ids:
        return []
    rows = db.query(User).filter(User.id.in_(ids)).all()
    if len(rows) != len(ids):
        raise NotFound("One or more users do not exist.")
    return rows
