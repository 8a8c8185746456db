"""SQLAlchemy model for teacher workspaces."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from oralassess.models.base import Base, utcnow


class Workspace(Base):
    """A school workspace owning classes, teachers and students."""

    __tablename__ = "workspaces"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    users = relationship("User", back_populates="workspace")
    classes = relationship(
        "ClassGroup",
        back_populates="workspace",
        cascade="all, delete-orphan",
    )


__all__ = ["Workspace"]
