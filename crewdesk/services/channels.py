"""
Channel store: listing, direct/group creation, renames, deletion, group
membership and the crew channel kept alongside every crew.
"""
import uuid
from typing import Optional, List, Tuple

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import NotFound, PermissionDenied, ValidationFailed
from ..models.models import (
    User,
    UserRole,
    Crew,
    Channel,
    ChannelMember,
    ChannelType,
    utcnow,
)
from .activity import log_activity
from .common import commit, get_or_404, parse_uuid
from .permissions import (
    CHANNEL_CREATE_GROUP,
    CHANNEL_MANAGE,
    CHANNEL_START_DIRECT,
    can,
    can_manage_channel,
    can_manage_members,
    can_post,
    can_rename_channel,
    can_view_channel,
    require,
)
from .users import find_users


logger = structlog.get_logger(__name__)

ALL_ROLES = [r.value for r in UserRole]

# Provisioned channels and the roles that can see them
SYSTEM_CHANNELS = [
    {"key": "general", "name": "General Announcements", "type": ChannelType.GENERAL.value, "roles": ALL_ROLES},
    {"key": "moderators", "name": "Moderators", "type": ChannelType.ROLE.value,
     "roles": [UserRole.ADMIN.value, UserRole.MODERATOR.value]},
    {"key": "workers", "name": "Workers", "type": ChannelType.ROLE.value, "roles": ALL_ROLES},
]
SYSTEM_TYPES = (ChannelType.GENERAL.value, ChannelType.ROLE.value)


def _display_name(channel: Channel, viewer: Optional[User]) -> str:
    # direct conversations are titled after the other participant
    if channel.type == ChannelType.DIRECT.value and viewer is not None:
        for m in channel.members:
            if m.user_id != viewer.id and m.user is not None:
                return m.user.full_name or m.user.username
    return channel.name


def channel_to_dict(channel: Channel, viewer: Optional[User] = None) -> dict:
    out = {
        "id": str(channel.id),
        "name": _display_name(channel, viewer),
        "type": channel.type,
        "members": [str(uid) for uid in channel.member_ids],
        "crew_id": str(channel.crew_id) if channel.crew_id else None,
        "allowed_roles": channel.allowed_roles,
        "is_deletable": bool(channel.is_deletable),
        "created_at": channel.created_at.isoformat() if channel.created_at else None,
        "last_message_at": channel.last_message_at.isoformat() if channel.last_message_at else None,
    }
    if viewer is not None:
        out["can_post"] = can_post(viewer, channel)
        out["can_manage"] = can_manage_channel(viewer, channel)
    return out


def ensure_system_channels(db: Session) -> None:
    """Create the general and role channels if missing and keep their role mapping current."""
    changed = False
    for entry in SYSTEM_CHANNELS:
        channel = db.query(Channel).filter(Channel.system_key == entry["key"]).first()
        if channel is None:
            db.add(Channel(
                name=entry["name"],
                type=entry["type"],
                system_key=entry["key"],
                allowed_roles=list(entry["roles"]),
                is_deletable=False,
            ))
            changed = True
        elif channel.allowed_roles != entry["roles"] or channel.is_deletable:
            channel.allowed_roles = list(entry["roles"])
            channel.is_deletable = False
            changed = True
    if not changed:
        return
    try:
        db.commit()
    except IntegrityError:
        # another request provisioned them first
        db.rollback()
        logger.info("system_channels_already_provisioned")


def get_channel(db: Session, channel_id) -> Channel:
    return get_or_404(db, Channel, channel_id, "Channel not found.")


def get_visible_channel(db: Session, channel_id, viewer: User) -> Channel:
    channel = get_channel(db, channel_id)
    if not can_view_channel(viewer, channel):
        raise PermissionDenied("You are not a member of this channel.")
    return channel


def list_channels(db: Session, user: User) -> List[Channel]:
    """Channels the user may view, most recent activity first."""
    ensure_system_channels(db)
    member_of = select(ChannelMember.channel_id).where(ChannelMember.user_id == user.id)
    rows = (
        db.query(Channel)
        .filter(or_(Channel.type.in_(SYSTEM_TYPES), Channel.id.in_(member_of)))
        .order_by(Channel.last_message_at.desc(), Channel.created_at.desc())
        .all()
    )
    return [c for c in rows if can_view_channel(user, c)]


def find_direct_channel(db: Session, user_a_id: uuid.UUID, user_b_id: uuid.UUID) -> Optional[Channel]:
    return (
        db.query(Channel)
        .join(ChannelMember, ChannelMember.channel_id == Channel.id)
        .filter(Channel.type == ChannelType.DIRECT.value, ChannelMember.user_id.in_([user_a_id, user_b_id]))
        .group_by(Channel.id)
        .having(func.count(ChannelMember.user_id) == 2)
        .first()
    )


def create_direct_channel(db: Session, user_a_id, user_b_id, actor: Optional[User] = None) -> Tuple[Channel, bool]:
    """
    Return the DIRECT channel between two users, creating it on first use.

    The pair is unordered: (a, b) and (b, a) resolve to the same channel.
    Returns (channel, created).
    """
    a_id = parse_uuid(user_a_id, "user id")
    b_id = parse_uuid(user_b_id, "user id")
    if a_id == b_id:
        raise ValidationFailed("A direct conversation needs two different users.")
    if actor is not None:
        require(actor, CHANNEL_START_DIRECT, "You are not permitted to start direct conversations.")
        if actor.id not in (a_id, b_id) and not can(actor.role, CHANNEL_MANAGE):
            raise PermissionDenied("You can only start conversations you take part in.")

    user_a = db.get(User, a_id)
    user_b = db.get(User, b_id)
    if user_a is None or user_b is None:
        raise NotFound("One of the users does not exist.")

    existing = find_direct_channel(db, a_id, b_id)
    if existing is not None:
        return existing, False

    now = utcnow()
    channel = Channel(
        name=f"{user_a.full_name} / {user_b.full_name}",
        type=ChannelType.DIRECT.value,
        is_deletable=True,
        created_by=user_a.id,
        created_at=now,
        last_message_at=now,
    )
    channel.members = [ChannelMember(user_id=a_id), ChannelMember(user_id=b_id)]
    db.add(channel)
    commit(db)
    db.refresh(channel)
    performer = actor.username if actor is not None else user_a.username
    log_activity(db, f"channel-creation:direct:{user_b.username}", performer)
    return channel, True


def create_group_channel(db: Session, name: str, member_ids, creator_id) -> Channel:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("A group name is required.")
    creator = db.get(User, parse_uuid(creator_id, "user id"))
    if creator is None:
        raise NotFound("Creator not found.")
    require(creator, CHANNEL_CREATE_GROUP, "You are not permitted to create groups.")

    ids = {parse_uuid(x, "user id") for x in (member_ids or [])}
    ids.add(creator.id)
    if len(ids) < 2:
        raise ValidationFailed("A group needs at least two members, including its creator.")
    find_users(db, ids)

    now = utcnow()
    channel = Channel(
        name=name,
        type=ChannelType.GROUP.value,
        is_deletable=True,
        created_by=creator.id,
        created_at=now,
        last_message_at=now,
    )
    channel.members = [ChannelMember(user_id=uid) for uid in ids]
    db.add(channel)
    commit(db)
    db.refresh(channel)
    log_activity(db, f"channel-creation:group:{name}", creator.username)
    return channel


def rename_channel(db: Session, channel_id, new_name: str, actor: User) -> Channel:
    channel = get_channel(db, channel_id)
    if channel.type == ChannelType.DIRECT.value:
        raise ValidationFailed("Direct conversations cannot be renamed.")
    if not can_rename_channel(actor, channel):
        raise PermissionDenied("You are not permitted to rename this channel.")
    new_name = (new_name or "").strip()
    if not new_name:
        raise ValidationFailed("A channel name is required.")
    old_name = channel.name
    channel.name = new_name
    commit(db)
    db.refresh(channel)
    log_activity(db, f"channel-rename:{old_name} -> {new_name}", actor.username)
    return channel


def delete_channel(db: Session, channel_id, actor_id) -> None:
    """Delete a deletable channel and all of its messages. Admin only."""
    actor = db.get(User, parse_uuid(actor_id, "user id"))
    if actor is None:
        raise NotFound("User not found.")
    channel = get_channel(db, channel_id)
    if not channel.is_deletable:
        raise PermissionDenied("This channel cannot be deleted.")
    if not can_manage_channel(actor, channel):
        raise PermissionDenied("You are not permitted to delete this channel.")
    name = channel.name
    db.delete(channel)
    commit(db)
    log_activity(db, f"channel-deletion:{name}", actor.username)


def _require_group_management(db: Session, channel_id, actor: User) -> Channel:
    channel = get_channel(db, channel_id)
    if channel.type != ChannelType.GROUP.value:
        raise ValidationFailed("Only group channels support membership changes.")
    if not can_manage_members(actor, channel):
        raise PermissionDenied("You are not permitted to change the members of this channel.")
    return channel


def add_members(db: Session, channel_id, user_ids, actor: User) -> Channel:
    channel = _require_group_management(db, channel_id, actor)
    users = find_users(db, user_ids)
    existing = set(channel.member_ids)
    added = [u for u in users if u.id not in existing]
    if not added:
        return channel
    for u in added:
        channel.members.append(ChannelMember(user_id=u.id))
    commit(db)
    db.refresh(channel)
    log_activity(
        db,
        f"channel-members-add:{channel.name}",
        actor.username,
        details=", ".join(sorted(u.username for u in added)),
    )
    return channel


def remove_members(db: Session, channel_id, user_ids, actor: User) -> Optional[Channel]:
    """
    Remove members from a group. The acting admin is never removed.

    A group left without members is deleted together with its messages;
    the function then returns None.
    """
    channel = _require_group_management(db, channel_id, actor)
    ids = {parse_uuid(x, "user id") for x in (user_ids or [])}
    ids.discard(actor.id)
    removed = [m for m in channel.members if m.user_id in ids]
    if not removed:
        return channel
    removed_names = sorted(m.user.username for m in removed if m.user is not None)
    channel.members = [m for m in channel.members if m.user_id not in ids]
    name = channel.name
    emptied = not channel.members
    if emptied:
        db.delete(channel)
    commit(db)
    log_activity(db, f"channel-members-remove:{name}", actor.username, details=", ".join(removed_names))
    if emptied:
        log_activity(db, f"channel-deletion-auto:{name}", actor.username)
        return None
    db.refresh(channel)
    return channel


# ---- crew channels, used inside the crew service's transaction ----

def find_crew_channel(db: Session, crew: Crew) -> Optional[Channel]:
    return db.query(Channel).filter(Channel.crew_id == crew.id, Channel.type == ChannelType.CREW.value).first()


def sync_crew_channel(db: Session, crew: Crew) -> Channel:
    """Create or refresh the CREW channel so its name and members mirror the crew. Does not commit."""
    channel = find_crew_channel(db, crew)
    if channel is None:
        now = utcnow()
        channel = Channel(
            name=crew.name,
            type=ChannelType.CREW.value,
            crew_id=crew.id,
            is_deletable=False,
            created_at=now,
            last_message_at=now,
        )
        db.add(channel)
    channel.name = crew.name
    wanted = [m.user_id for m in crew.members]
    keep = [m for m in channel.members if m.user_id in wanted]
    have = {m.user_id for m in keep}
    channel.members = keep + [ChannelMember(user_id=uid) for uid in wanted if uid not in have]
    return channel


def delete_crew_channel(db: Session, crew: Crew) -> Optional[str]:
    """Delete the crew's channel and its messages. Does not commit. Returns the channel name."""
    channel = find_crew_channel(db, crew)
    if channel is None:
        return None
    name = channel.name
    db.delete(channel)
    return name
