"""
Message store. Messages are plain text, ordered by creation time inside a
channel; deleting one keeps the channel's last_message_at in step.
"""
from typing import List

from sqlalchemy.orm import Session

from ..errors import PermissionDenied, ValidationFailed
from ..models.models import User, Channel, Message, utcnow
from .activity import log_activity
from .channels import get_visible_channel
from .common import commit, get_or_404
from .permissions import can_delete_message, can_post, post_denied_reason
from .users import sender_info


MAX_CONTENT_LENGTH = 4000


def message_to_dict(m: Message) -> dict:
    return {
        "id": str(m.id),
        "channel_id": str(m.channel_id),
        "sender": sender_info(m.sender),
        "content": m.content,
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }


def list_messages(db: Session, channel_id, viewer: User) -> List[Message]:
    channel = get_visible_channel(db, channel_id, viewer)
    return (
        db.query(Message)
        .filter(Message.channel_id == channel.id)
        .order_by(Message.created_at.asc())
        .all()
    )


def send_message(db: Session, channel_id, sender: User, content: str) -> Message:
    channel = get_visible_channel(db, channel_id, sender)
    if not can_post(sender, channel):
        raise PermissionDenied(post_denied_reason(sender, channel))
    content = (content or "").strip()
    if not content:
        raise ValidationFailed("Message content cannot be empty.")
    if len(content) > MAX_CONTENT_LENGTH:
        raise ValidationFailed(f"Messages are limited to {MAX_CONTENT_LENGTH} characters.")

    now = utcnow()
    msg = Message(channel_id=channel.id, sender_id=sender.id, content=content, created_at=now)
    db.add(msg)
    channel.last_message_at = now
    commit(db)
    db.refresh(msg)
    return msg


def _newest_message_time(db: Session, channel: Channel):
    newest = (
        db.query(Message.created_at)
        .filter(Message.channel_id == channel.id)
        .order_by(Message.created_at.desc())
        .first()
    )
    return newest[0] if newest else channel.created_at


def delete_message(db: Session, message_id, actor: User) -> None:
    msg = get_or_404(db, Message, message_id, "Message not found.")
    channel = msg.channel
    if not can_delete_message(actor, channel, msg):
        raise PermissionDenied("You are not permitted to delete this message.")
    msg_id = str(msg.id)
    db.delete(msg)
    db.flush()
    channel.last_message_at = _newest_message_time(db, channel)
    commit(db)
    log_activity(db, f"message-deletion:{msg_id}", actor.username)
