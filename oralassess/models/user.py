"""SQLAlchemy model for application users."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Column, DateTime
from sqlalchemy import Enum as SqlEnum
from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from oralassess.models.base import Base, enum_values, utcnow


class UserStatus(str, Enum):
    """Enumeration of valid user lifecycle states."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class AccountType(str, Enum):
    """Enumeration of supported user account types."""

    STUDENT = "student"
    TEACHER = "teacher"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    status = Column(
        SqlEnum(UserStatus, name="user_status", values_callable=enum_values),
        nullable=False,
        default=UserStatus.ACTIVE,
    )
    account_type = Column(
        SqlEnum(AccountType, name="account_type", values_callable=enum_values),
        nullable=False,
    )
    workspace_id = Column(
        Integer,
        ForeignKey("workspaces.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    class_id = Column(
        Integer,
        ForeignKey("classes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    workspace = relationship("Workspace", back_populates="users")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_student(self) -> bool:
        return self.account_type == AccountType.STUDENT

    @property
    def is_teacher(self) -> bool:
        return self.account_type == AccountType.TEACHER


__all__ = ["User", "UserStatus", "AccountType"]
