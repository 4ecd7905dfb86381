import enum
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    UniqueConstraint,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


class UserRole(str, enum.Enum):
    ADMIN = "Admin"
    MODERATOR = "Moderator"
    WORKER = "Worker"


class ChannelType(str, enum.Enum):
    GENERAL = "GENERAL"
    ROLE = "ROLE"
    CREW = "CREW"
    DIRECT = "DIRECT"
    GROUP = "GROUP"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    national_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # Admin|Moderator|Worker
    status: Mapped[str] = mapped_column(String(20), default="active")  # active|inactive
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    created_by: Mapped[Optional[str]] = mapped_column(String(100))  # username of the creator

    @property
    def full_name(self) -> str:
        return " ".join(x for x in [self.first_name, self.last_name] if x)

    @property
    def is_active(self) -> bool:
        return self.status == "active"


# =====================
# Crews
# =====================


class Crew(Base):
    __tablename__ = "crews"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)

    members: Mapped[List["CrewMember"]] = relationship(
        "CrewMember",
        back_populates="crew",
        order_by="CrewMember.position",
        cascade="all, delete-orphan",
    )

    @property
    def moderators(self) -> List[User]:
        return [m.user for m in self.members if m.membership == "moderator"]

    @property
    def workers(self) -> List[User]:
        return [m.user for m in self.members if m.membership == "worker"]


class CrewMember(Base):
    __tablename__ = "crew_members"

    id: Mapped[uuid.UUID] = uuid_pk()
    crew_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crews.id", ondelete="CASCADE"), index=True, nullable=False
    )
    # no cascade from users: a user referenced by a crew cannot be deleted
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), index=True, nullable=False)
    membership: Mapped[str] = mapped_column(String(20), nullable=False)  # moderator|worker
    position: Mapped[int] = mapped_column(Integer, default=0)

    crew = relationship("Crew", back_populates="members")
    user = relationship("User", lazy="joined")

    __table_args__ = (UniqueConstraint("crew_id", "user_id", name="uq_crew_member"),)


# =====================
# Chat domain
# =====================


class Channel(Base):
    __tablename__ = "channels"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # GENERAL|ROLE|CREW|DIRECT|GROUP
    # stable key for provisioned channels (general|moderators|workers)
    system_key: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    # roles that can see a GENERAL/ROLE channel
    allowed_roles: Mapped[Optional[list]] = mapped_column(JSON)
    crew_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crews.id", ondelete="SET NULL"), index=True
    )
    is_deletable: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    last_message_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    members: Mapped[List["ChannelMember"]] = relationship(
        "ChannelMember", back_populates="channel", cascade="all, delete-orphan"
    )
    messages: Mapped[List["Message"]] = relationship(
        "Message", back_populates="channel", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def member_ids(self) -> List[uuid.UUID]:
        return [m.user_id for m in self.members]

    def has_member(self, user_id: uuid.UUID) -> bool:
        return any(m.user_id == user_id for m in self.members)


class ChannelMember(Base):
    __tablename__ = "channel_members"

    id: Mapped[uuid.UUID] = uuid_pk()
    channel_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("channels.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    channel = relationship("Channel", back_populates="members")
    user = relationship("User", lazy="joined")

    __table_args__ = (UniqueConstraint("channel_id", "user_id", name="uq_channel_member"),)


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = uuid_pk()
    channel_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("channels.id", ondelete="CASCADE"), index=True, nullable=False
    )
    # null once the sender has been deleted
    sender_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    content: Mapped[str] = mapped_column(String(4000), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    channel = relationship("Channel", back_populates="messages")
    sender = relationship("User", lazy="joined")

    __table_args__ = (Index("idx_message_channel_time", "channel_id", "created_at"),)


# =====================
# Activity log
# =====================


class ActivityLog(Base):
    """Append-only activity log; rows are never updated or deleted"""
    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    action: Mapped[str] = mapped_column(String(500), nullable=False)  # kind:detail, e.g. user-creation:jdoe
    performed_by: Mapped[str] = mapped_column(String(100), nullable=False)  # username or "System"
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    details: Mapped[Optional[str]] = mapped_column(Text)


# =====================
# Work reports
# =====================


class WorkReport(Base):
    __tablename__ = "work_reports"

    id: Mapped[uuid.UUID] = uuid_pk()
    crew_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("crews.id", ondelete="SET NULL"), index=True
    )
    municipality: Mapped[str] = mapped_column(String(255), nullable=False)
    distance: Mapped[float] = mapped_column(Float, nullable=False)  # metres
    comments: Mapped[str] = mapped_column(Text, nullable=False)
    # lists of {"name": str, "quantity": int}
    tools_used: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    tools_damaged: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    tools_lost: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    author_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    crew = relationship("Crew")
    author = relationship("User")
