from typing import Optional, Literal

from pydantic import BaseModel, EmailStr, Field, field_validator

from ..models.models import UserRole


class UserCreate(BaseModel):
    first_name: str = Field(min_length=2)
    last_name: str = Field(min_length=2)
    national_id: str = Field(min_length=7)
    email: EmailStr
    phone: str = Field(min_length=10)
    role: UserRole
    # only read for Admin accounts; Moderator and Worker credentials are derived
    username: Optional[str] = Field(default=None, min_length=4)
    password: Optional[str] = None

    @field_validator("first_name", "last_name", "national_id", "phone", "username", mode="before")
    @classmethod
    def strip(cls, v):
        if v is None:
            return None
        return str(v).strip()


class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=2)
    last_name: Optional[str] = Field(default=None, min_length=2)
    national_id: Optional[str] = Field(default=None, min_length=7)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, min_length=10)
    username: Optional[str] = Field(default=None, min_length=4)
    role: Optional[UserRole] = None
    status: Optional[Literal["active", "inactive"]] = None
    password: Optional[str] = None

    @field_validator("password", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v)
        return v or None
