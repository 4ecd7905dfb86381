import uuid
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator


class ToolEntry(BaseModel):
    name: str = Field(min_length=1)
    quantity: int = Field(default=0, ge=0)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return str(v or "").strip()


class WorkReportCreate(BaseModel):
    crew_id: uuid.UUID
    municipality: str = Field(min_length=3)
    distance: float = Field(ge=0)
    comments: str = Field(min_length=10)
    tools_used: List[ToolEntry] = Field(default_factory=list)
    tools_damaged: List[ToolEntry] = Field(default_factory=list)
    tools_lost: List[ToolEntry] = Field(default_factory=list)


class WorkReportUpdate(BaseModel):
    crew_id: Optional[uuid.UUID] = None
    municipality: Optional[str] = Field(default=None, min_length=3)
    distance: Optional[float] = Field(default=None, ge=0)
    comments: Optional[str] = Field(default=None, min_length=10)
    tools_used: Optional[List[ToolEntry]] = None
    tools_damaged: Optional[List[ToolEntry]] = None
    tools_lost: Optional[List[ToolEntry]] = None
