from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..schemas.channels import (
    DirectChannelCreate,
    GroupChannelCreate,
    ChannelRename,
    ChannelMembers,
    MessageCreate,
)
from ..schemas.common import ok
from ..services import channels as channel_service
from ..services import messages as message_service


router = APIRouter(tags=["channels"])


@router.get("/channels")
def list_channels(db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    rows = channel_service.list_channels(db, me)
    return ok([channel_service.channel_to_dict(c, me) for c in rows])


@router.post("/channels/direct")
def create_direct_channel(payload: DirectChannelCreate, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    user_a = payload.user_a_id or me.id
    channel, created = channel_service.create_direct_channel(db, user_a, payload.user_b_id, actor=me)
    message = "Conversation created." if created else "Conversation already exists."
    return ok(channel_service.channel_to_dict(channel, me), message)


@router.post("/channels/group")
def create_group_channel(payload: GroupChannelCreate, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    channel = channel_service.create_group_channel(db, payload.name, payload.member_ids, me.id)
    return ok(channel_service.channel_to_dict(channel, me), "Group created.")


@router.patch("/channels/{channel_id}")
def rename_channel(
    channel_id: str,
    payload: ChannelRename,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    channel = channel_service.rename_channel(db, channel_id, payload.name, me)
    return ok(channel_service.channel_to_dict(channel, me), "Channel renamed.")


@router.delete("/channels/{channel_id}")
def delete_channel(channel_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    channel_service.delete_channel(db, channel_id, me.id)
    return ok(message="Channel deleted.")


@router.post("/channels/{channel_id}/members")
def add_members(
    channel_id: str,
    payload: ChannelMembers,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    channel = channel_service.add_members(db, channel_id, payload.user_ids, me)
    return ok(channel_service.channel_to_dict(channel, me), "Members added.")


@router.post("/channels/{channel_id}/members/remove")
def remove_members(
    channel_id: str,
    payload: ChannelMembers,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    channel = channel_service.remove_members(db, channel_id, payload.user_ids, me)
    if channel is None:
        return ok(None, "Group had no members left and was deleted.")
    return ok(channel_service.channel_to_dict(channel, me), "Members removed.")


@router.get("/channels/{channel_id}/messages")
def list_messages(channel_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    rows = message_service.list_messages(db, channel_id, me)
    return ok([message_service.message_to_dict(m) for m in rows])


@router.post("/channels/{channel_id}/messages")
def send_message(
    channel_id: str,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    msg = message_service.send_message(db, channel_id, me, payload.content)
    return ok(message_service.message_to_dict(msg))


@router.delete("/messages/{message_id}")
def delete_message(message_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    message_service.delete_message(db, message_id, me)
    return ok(message="Message deleted.")
