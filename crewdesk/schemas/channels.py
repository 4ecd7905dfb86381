import uuid
from typing import Optional, List

from pydantic import BaseModel, Field


class DirectChannelCreate(BaseModel):
    # defaults to the caller
    user_a_id: Optional[uuid.UUID] = None
    user_b_id: uuid.UUID


class GroupChannelCreate(BaseModel):
    name: str
    member_ids: List[uuid.UUID] = Field(default_factory=list)


class ChannelRename(BaseModel):
    name: str


class ChannelMembers(BaseModel):
    user_ids: List[uuid.UUID] = Field(min_length=1)


class MessageCreate(BaseModel):
    content: str = ""
