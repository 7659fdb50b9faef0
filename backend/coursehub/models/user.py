import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from coursehub.db.base import Base, utcnow


class UserRole(str, enum.Enum):
    student = "student"
    teacher = "teacher"
    admin = "admin"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), unique=True, index=True)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), index=True, default=UserRole.student)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    password_hash: Mapped[str] = mapped_column(String(255))
