"""
Capability lookup and channel access-control policy.

Every role check in the application goes through ``CAPABILITIES``; nothing
else compares role strings. The channel predicates are pure functions of the
actor, the channel and (for deletes) the message.
"""
from typing import Dict, FrozenSet, Optional

from ..errors import PermissionDenied
from ..models.models import User, UserRole, Channel, ChannelType, Message


USER_CREATE = "user:create"
USER_UPDATE = "user:update"
USER_DELETE = "user:delete"
USER_ASSIGN_ROLE = "user:assign_role"
USER_LIST_SCOPED = "user:list_scoped"  # default listing limited to manageable roles
CREW_CREATE = "crew:create"
CREW_UPDATE = "crew:update"
CREW_DELETE = "crew:delete"
REPORT_WRITE = "report:write"
REPORT_READ = "report:read"
ACTIVITY_READ = "activity:read"
DASHBOARD_READ = "dashboard:read"
CHANNEL_MANAGE = "channel:manage"
CHANNEL_START_DIRECT = "channel:start_direct"
CHANNEL_CREATE_GROUP = "channel:create_group"
MESSAGE_POST_VISIBLE = "message:post_visible"  # post in any channel the actor can view
MESSAGE_POST_MEMBER = "message:post_member"  # post only in own DIRECT/CREW channels
MESSAGE_DELETE_ANY = "message:delete_any"
MESSAGE_DELETE_SHARED = "message:delete_shared"  # any message outside DIRECT channels


CAPABILITIES: Dict[str, FrozenSet[str]] = {
    UserRole.ADMIN.value: frozenset({
        USER_CREATE, USER_UPDATE, USER_DELETE, USER_ASSIGN_ROLE,
        CREW_CREATE, CREW_UPDATE, CREW_DELETE,
        REPORT_WRITE, REPORT_READ,
        ACTIVITY_READ, DASHBOARD_READ,
        CHANNEL_MANAGE, CHANNEL_START_DIRECT, CHANNEL_CREATE_GROUP,
        MESSAGE_POST_VISIBLE, MESSAGE_DELETE_ANY, MESSAGE_DELETE_SHARED,
    }),
    UserRole.MODERATOR.value: frozenset({
        USER_CREATE, USER_UPDATE, USER_DELETE, USER_LIST_SCOPED,
        CREW_UPDATE,
        REPORT_WRITE, REPORT_READ,
        ACTIVITY_READ,
        CHANNEL_START_DIRECT, CHANNEL_CREATE_GROUP,
        MESSAGE_POST_VISIBLE, MESSAGE_DELETE_SHARED,
    }),
    UserRole.WORKER.value: frozenset({
        MESSAGE_POST_MEMBER,
    }),
}

# Roles whose accounts each role may create, edit or delete
MANAGEABLE_ROLES: Dict[str, FrozenSet[str]] = {
    UserRole.ADMIN.value: frozenset(r.value for r in UserRole),
    UserRole.MODERATOR.value: frozenset({UserRole.WORKER.value}),
    UserRole.WORKER.value: frozenset(),
}

WORKER_POSTABLE_TYPES = frozenset({ChannelType.DIRECT.value, ChannelType.CREW.value})


def _role(role) -> str:
    return role.value if isinstance(role, UserRole) else str(role or "")


def can(role, action: str) -> bool:
    return action in CAPABILITIES.get(_role(role), frozenset())


def require(user: Optional[User], action: str, message: Optional[str] = None) -> User:
    if user is None or not can(user.role, action):
        raise PermissionDenied(message)
    return user


def can_manage_role(actor_role, target_role) -> bool:
    return _role(target_role) in MANAGEABLE_ROLES.get(_role(actor_role), frozenset())


# ---- channels ----

def can_view_channel(user: User, channel: Channel) -> bool:
    if channel.type in (ChannelType.GENERAL.value, ChannelType.ROLE.value):
        return _role(user.role) in (channel.allowed_roles or [])
    return channel.has_member(user.id)


def can_post(user: User, channel: Channel) -> bool:
    if not can_view_channel(user, channel):
        return False
    if can(user.role, MESSAGE_POST_VISIBLE):
        return True
    if can(user.role, MESSAGE_POST_MEMBER):
        return channel.type in WORKER_POSTABLE_TYPES and channel.has_member(user.id)
    return False


def can_delete_message(user: User, channel: Channel, message: Message) -> bool:
    if message.sender_id is not None and message.sender_id == user.id:
        return True
    if can(user.role, MESSAGE_DELETE_ANY):
        return True
    return can(user.role, MESSAGE_DELETE_SHARED) and channel.type != ChannelType.DIRECT.value


def can_manage_channel(user: User, channel: Channel) -> bool:
    """Rename, delete and membership changes: Admin only, deletable channels only."""
    return bool(channel.is_deletable) and can(user.role, CHANNEL_MANAGE)


def can_rename_channel(user: User, channel: Channel) -> bool:
    return channel.type != ChannelType.DIRECT.value and can_manage_channel(user, channel)


def can_manage_members(user: User, channel: Channel) -> bool:
    return channel.type == ChannelType.GROUP.value and can_manage_channel(user, channel)


def post_denied_reason(user: User, channel: Channel) -> str:
    if not can_view_channel(user, channel):
        return "You are not a member of this channel."
    if channel.type in (ChannelType.GENERAL.value, ChannelType.ROLE.value):
        return "Only administrators and moderators can post in this channel."
    return "You are not permitted to post in this channel."
