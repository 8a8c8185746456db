"""SQLAlchemy model for classes of students."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from oralassess.models.base import Base, utcnow


class ClassGroup(Base):
    """A class scoped to one workspace; assessments are assigned per class."""

    __tablename__ = "classes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    workspace_id = Column(
        Integer,
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "workspace_id",
            "name",
            name="uq_classes_workspace_name",
        ),
    )

    workspace = relationship("Workspace", back_populates="classes")


__all__ = ["ClassGroup"]
