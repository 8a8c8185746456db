"""SQLAlchemy models for assessments, their questions, rubrics and integrity settings."""

from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import relationship

from oralassess.models.base import Base, enum_values, utcnow

DEFAULT_PLEDGE_TEXT = "\n".join(
    [
        "I have studied the material and am ready to demonstrate my understanding.",
        "I will not use notes, websites, AI tools, or other people during this assessment.",
        "I understand this assessment measures what I know, not what I can look up.",
        "My responses will be in my own words based on my learning.",
    ]
)


class AssessmentStatus(str, Enum):
    DRAFT = "draft"
    LIVE = "live"
    CLOSED = "closed"
    ARCHIVED = "archived"


class QuestionType(str, Enum):
    """Question kinds; ``audio_followup`` requires one adaptive follow-up prompt."""

    AUDIO = "audio"
    AUDIO_FOLLOWUP = "audio_followup"


class RubricAxis(str, Enum):
    REASONING = "reasoning"
    EVIDENCE = "evidence"


class Assessment(Base):
    __tablename__ = "assessments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    class_id = Column(
        Integer,
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(200), nullable=False)
    instructions = Column(Text, nullable=True)
    status = Column(
        SqlEnum(AssessmentStatus, name="assessment_status", values_callable=enum_values),
        nullable=False,
        default=AssessmentStatus.DRAFT,
    )
    is_practice = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    class_group = relationship("ClassGroup")
    questions = relationship(
        "AssessmentQuestion",
        back_populates="assessment",
        order_by="AssessmentQuestion.order_index",
        cascade="all, delete-orphan",
    )


class AssessmentQuestion(Base):
    __tablename__ = "assessment_questions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    assessment_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_index = Column(Integer, nullable=False, default=0)
    question_text = Column(Text, nullable=False)
    question_type = Column(
        SqlEnum(QuestionType, name="question_type", values_callable=enum_values),
        nullable=False,
        default=QuestionType.AUDIO,
    )

    __table_args__ = (
        UniqueConstraint(
            "assessment_id",
            "order_index",
            name="uq_assessment_questions_order",
        ),
    )

    assessment = relationship("Assessment", back_populates="questions")

    @property
    def requires_followup(self) -> bool:
        return self.question_type == QuestionType.AUDIO_FOLLOWUP


class Rubric(Base):
    """Scoring instructions and numeric scale for one axis of an assessment."""

    __tablename__ = "rubrics"

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rubric_type = Column(
        SqlEnum(RubricAxis, name="rubric_axis", values_callable=enum_values),
        nullable=False,
    )
    instructions = Column(Text, nullable=False)
    scale_min = Column(Integer, nullable=False, default=1)
    scale_max = Column(Integer, nullable=False, default=5)

    __table_args__ = (
        UniqueConstraint(
            "assessment_id",
            "rubric_type",
            name="uq_rubrics_assessment_type",
        ),
    )


class AssessmentIntegrity(Base):
    """Per-assessment integrity settings. A missing row disables every feature."""

    __tablename__ = "assessment_integrity"

    assessment_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("assessments.id", ondelete="CASCADE"),
        primary_key=True,
    )
    pledge_enabled = Column(Boolean, nullable=False, default=False)
    pledge_version = Column(Integer, nullable=False, default=1)
    pledge_text = Column(Text, nullable=True, default=DEFAULT_PLEDGE_TEXT)
    allow_grace_restart = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


__all__ = [
    "DEFAULT_PLEDGE_TEXT",
    "Assessment",
    "AssessmentIntegrity",
    "AssessmentQuestion",
    "AssessmentStatus",
    "QuestionType",
    "Rubric",
    "RubricAxis",
]
