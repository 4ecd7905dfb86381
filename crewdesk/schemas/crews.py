import uuid
from typing import Optional, List

from pydantic import BaseModel, Field


class CrewCreate(BaseModel):
    description: Optional[str] = None
    moderator_ids: List[uuid.UUID] = Field(min_length=1)
    worker_ids: List[uuid.UUID] = Field(default_factory=list)


class CrewUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    moderator_ids: Optional[List[uuid.UUID]] = None
    worker_ids: Optional[List[uuid.UUID]] = None
