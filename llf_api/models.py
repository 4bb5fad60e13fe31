import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps on every backend, SQLite included."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class UserProfile(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    department: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    section: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    area: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class Machine(Base):
    __tablename__ = "machines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    section: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    sub_category: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    image_ref: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    inspection_frequency: Mapped[str] = mapped_column(String(16), nullable=False)
    last_inspection: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    next_inspection_due: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class Inspection(Base):
    __tablename__ = "inspections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    machine_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    inspected_by: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    inspection_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    look_status: Mapped[str] = mapped_column(String(16), nullable=False)
    look_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    look_attachment: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    listen_status: Mapped[str] = mapped_column(String(16), nullable=False)
    listen_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    listen_attachment: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    feel_status: Mapped[str] = mapped_column(String(16), nullable=False)
    feel_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    feel_attachment: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    has_abnormality: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    abnormality_status: Mapped[str] = mapped_column(String(16), nullable=False)
    abnormality_closed_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    abnormality_closed_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    abnormality_resolution_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    abnormality_resolution_attachment: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_draft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_updated: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class Credential(Base):
    __tablename__ = "credentials"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class SessionRecord(Base):
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    issued_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class PasswordReset(Base):
    __tablename__ = "password_resets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


MODELS_BY_COLLECTION = {
    "users": UserProfile,
    "machines": Machine,
    "inspections": Inspection,
    "credentials": Credential,
    "sessions": SessionRecord,
    "password_resets": PasswordReset,
}
