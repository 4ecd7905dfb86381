"""
Crew rosters. A crew has at least one moderator and a bounded number of
workers; every crew owns a CREW channel whose members mirror the roster.
"""
import re
from typing import Optional, List

import structlog
from sqlalchemy.orm import Session

from ..errors import ValidationFailed
from ..models.models import User, UserRole, Crew, CrewMember, utcnow
from ..schemas.crews import CrewCreate, CrewUpdate
from .activity import log_activity
from .channels import delete_crew_channel, sync_crew_channel
from .common import commit, get_or_404, parse_uuid
from .permissions import CREW_CREATE, CREW_DELETE, CREW_UPDATE, require
from .users import find_users, user_to_dict


logger = structlog.get_logger(__name__)

CREW_NAME_PREFIX = "Crew - No. "
_CREW_NUMBER = re.compile(r"^Crew - No\. (\d+)$")


def crew_to_dict(crew: Crew) -> dict:
    return {
        "id": str(crew.id),
        "name": crew.name,
        "description": crew.description,
        "moderators": [user_to_dict(u) for u in crew.moderators],
        "workers": [user_to_dict(u) for u in crew.workers],
        "created_at": crew.created_at.isoformat() if crew.created_at else None,
        "created_by": crew.created_by,
    }


def list_crews(db: Session) -> List[Crew]:
    return db.query(Crew).order_by(Crew.created_at.desc()).all()


def get_crew(db: Session, crew_id) -> Crew:
    return get_or_404(db, Crew, crew_id, "Crew not found.")


def list_user_crews(db: Session, user_id) -> List[Crew]:
    uid = parse_uuid(user_id, "user id")
    return (
        db.query(Crew)
        .join(CrewMember, CrewMember.crew_id == Crew.id)
        .filter(CrewMember.user_id == uid)
        .order_by(Crew.created_at.desc())
        .all()
    )


def next_crew_number(db: Session) -> int:
    highest = 0
    for (name,) in db.query(Crew.name).all():
        m = _CREW_NUMBER.match(name or "")
        if m:
            highest = max(highest, int(m.group(1)))
    return highest + 1


def _ordered_users(db: Session, ids) -> List[User]:
    # keep request order, drop repeats
    seen, ordered = set(), []
    for x in ids:
        uid = parse_uuid(x, "user id")
        if uid not in seen:
            seen.add(uid)
            ordered.append(uid)
    by_id = {u.id: u for u in find_users(db, ordered)}
    return [by_id[uid] for uid in ordered]


def _validate_roster(
    db: Session,
    moderator_ids,
    worker_ids,
    min_workers: int,
    max_workers: int,
    crew_id=None,
):
    moderators = _ordered_users(db, moderator_ids or [])
    workers = _ordered_users(db, worker_ids or [])
    if not moderators:
        raise ValidationFailed("A crew needs at least one moderator.")
    if any(u.role != UserRole.MODERATOR.value for u in moderators):
        raise ValidationFailed("Crew moderators must have the Moderator role.")
    if any(u.role != UserRole.WORKER.value for u in workers):
        raise ValidationFailed("Crew workers must have the Worker role.")
    if not (min_workers <= len(workers) <= max_workers):
        raise ValidationFailed(f"A crew needs between {min_workers} and {max_workers} workers.")

    query = (
        db.query(CrewMember)
        .filter(CrewMember.membership == "worker", CrewMember.user_id.in_([u.id for u in workers]))
    )
    if crew_id is not None:
        query = query.filter(CrewMember.crew_id != crew_id)
    taken = {m.user_id for m in query.all()}
    if taken:
        names = ", ".join(u.full_name for u in workers if u.id in taken)
        raise ValidationFailed(f"The following workers are already in another crew: {names}.")
    return moderators, workers


def _set_roster(crew: Crew, moderators: List[User], workers: List[User]) -> None:
    # reuse rows per user so the (crew, user) unique key never collides mid-flush
    existing = {m.user_id: m for m in crew.members}
    members = []
    position = 0
    for membership, users in (("moderator", moderators), ("worker", workers)):
        for u in users:
            row = existing.get(u.id) or CrewMember(user_id=u.id)
            row.membership = membership
            row.position = position
            row.user = u
            members.append(row)
            position += 1
    crew.members = members


def create_crew(
    db: Session,
    payload: CrewCreate,
    actor: User,
    min_workers: int = 4,
    max_workers: int = 40,
) -> Crew:
    require(actor, CREW_CREATE, "Only administrators can create crews.")
    moderators, workers = _validate_roster(db, payload.moderator_ids, payload.worker_ids, min_workers, max_workers)

    crew = Crew(
        name=f"{CREW_NAME_PREFIX}{next_crew_number(db)}",
        description=payload.description,
        created_at=utcnow(),
        created_by=actor.username,
    )
    _set_roster(crew, moderators, workers)
    db.add(crew)
    db.flush()
    sync_crew_channel(db, crew)
    commit(db, "A crew with the same name already exists.")
    db.refresh(crew)
    log_activity(db, f"crew-creation:{crew.name}", actor.username)
    return crew


def update_crew(
    db: Session,
    crew_id,
    payload: CrewUpdate,
    actor: User,
    min_workers: int = 4,
    max_workers: int = 40,
) -> Crew:
    require(actor, CREW_UPDATE, "You are not permitted to modify crews.")
    crew = get_crew(db, crew_id)

    moderator_ids = payload.moderator_ids if payload.moderator_ids is not None else [u.id for u in crew.moderators]
    worker_ids = payload.worker_ids if payload.worker_ids is not None else [u.id for u in crew.workers]
    moderators, workers = _validate_roster(
        db, moderator_ids, worker_ids, min_workers, max_workers, crew_id=crew.id
    )

    if payload.name is not None:
        name = payload.name.strip()
        if not name:
            raise ValidationFailed("A crew name cannot be empty.")
        crew.name = name
    if payload.description is not None:
        crew.description = payload.description
    _set_roster(crew, moderators, workers)
    db.flush()
    sync_crew_channel(db, crew)
    commit(db, "A crew with the same name already exists.")
    db.refresh(crew)
    log_activity(db, f"crew-update:{crew.name}", actor.username)
    return crew


def delete_crew(db: Session, crew_id, actor: User) -> None:
    """Delete a crew together with its CREW channel and the channel's messages."""
    require(actor, CREW_DELETE, "Only administrators can delete crews.")
    crew = get_crew(db, crew_id)
    crew_name = crew.name
    channel_name: Optional[str] = delete_crew_channel(db, crew)
    db.delete(crew)
    commit(db)
    logger.info("crew_deleted", crew=crew_name, channel=channel_name)
    if channel_name:
        log_activity(db, f"channel-deletion-auto:{channel_name}", actor.username)
    log_activity(db, f"crew-deletion:{crew_name}", actor.username)
