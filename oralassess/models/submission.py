"""SQLAlchemy models for submissions, recorded responses and per-axis scores."""

from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import relationship

from oralassess.models.assessment import RubricAxis
from oralassess.models.base import Base, enum_values, utcnow


class SubmissionStatus(str, Enum):
    STARTED = "started"
    SUBMITTED = "submitted"
    RESTARTED = "restarted"


class ScoringStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    ERROR = "error"


class ReviewStatus(str, Enum):
    UNPUBLISHED = "unpublished"
    PUBLISHED = "published"


class OverrideReasonCategory(str, Enum):
    ACCENT_DIALECT = "accent_dialect"
    AUDIO_QUALITY = "audio_quality"
    ACCOMMODATION = "accommodation"
    OFF_TASK = "off_task"
    OTHER = "other"


class ProcessingStatus(str, Enum):
    """Response pipeline states, listed in forward order."""

    QUEUED = "queued"
    TRANSCRIBING = "transcribing"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETE, ProcessingStatus.ERROR)


class RestartHint(str, Enum):
    OFF_TOPIC = "off_topic"


class Submission(Base):
    """One student attempt at one assessment."""

    __tablename__ = "submissions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    assessment_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status = Column(
        SqlEnum(SubmissionStatus, name="submission_status", values_callable=enum_values),
        nullable=False,
        default=SubmissionStatus.STARTED,
    )
    started_at = Column(DateTime, nullable=False, default=utcnow)
    submitted_at = Column(DateTime, nullable=True)

    scoring_status = Column(
        SqlEnum(ScoringStatus, name="scoring_status", values_callable=enum_values),
        nullable=False,
        default=ScoringStatus.PENDING,
    )
    scoring_started_at = Column(DateTime, nullable=True)
    scored_at = Column(DateTime, nullable=True)
    scoring_error = Column(Text, nullable=True)

    review_status = Column(
        SqlEnum(ReviewStatus, name="review_status", values_callable=enum_values),
        nullable=False,
        default=ReviewStatus.UNPUBLISHED,
    )
    published_at = Column(DateTime, nullable=True)
    published_by_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    teacher_comment = Column(Text, nullable=True)
    final_score_override = Column(Float, nullable=True)
    final_score = Column(Float, nullable=True)
    override_reason_category = Column(
        SqlEnum(
            OverrideReasonCategory,
            name="override_reason_category",
            values_callable=enum_values,
        ),
        nullable=True,
    )
    override_reason = Column(Text, nullable=True)

    integrity_pledge_accepted_at = Column(DateTime, nullable=True)
    integrity_pledge_version = Column(Integer, nullable=True)
    integrity_pledge_ip_address = Column(String(64), nullable=True)

    __table_args__ = (
        # Serialization point for concurrent begin/restart calls.
        Index(
            "uq_submissions_active_attempt",
            "assessment_id",
            "student_id",
            unique=True,
            postgresql_where=text("status = 'started'"),
            sqlite_where=text("status = 'started'"),
        ),
    )

    assessment = relationship("Assessment")
    responses = relationship(
        "SubmissionResponse",
        back_populates="submission",
        cascade="all, delete-orphan",
    )

    @property
    def pledge_accepted(self) -> bool:
        return self.integrity_pledge_accepted_at is not None


class SubmissionResponse(Base):
    """One recorded answer to one question within a submission."""

    __tablename__ = "submission_responses"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    submission_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("assessment_questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    storage_path = Column(String(512), nullable=False)
    mime_type = Column(String(100), nullable=False)
    duration_seconds = Column(Float, nullable=True)

    transcript = Column(Text, nullable=True)
    ai_followup_question = Column(Text, nullable=True)
    ai_followup_created_at = Column(DateTime, nullable=True)
    restart_hint = Column(
        SqlEnum(RestartHint, name="restart_hint", values_callable=enum_values),
        nullable=True,
    )
    restart_hint_confidence = Column(Float, nullable=True)

    processing_status = Column(
        SqlEnum(ProcessingStatus, name="processing_status", values_callable=enum_values),
        nullable=False,
        default=ProcessingStatus.QUEUED,
    )
    processing_error = Column(Text, nullable=True)
    # Bumped by every explicit retry; a processing run only writes rows carrying its own attempt.
    processing_attempt = Column(Integer, nullable=False, default=0, server_default=text("0"))

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "submission_id",
            "question_id",
            name="uq_submission_responses_question",
        ),
    )

    submission = relationship("Submission", back_populates="responses")
    question = relationship("AssessmentQuestion")


class QuestionScore(Base):
    """One rubric-axis score for one question of one submission."""

    __tablename__ = "question_scores"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    submission_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("assessment_questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    scorer_type = Column(
        SqlEnum(RubricAxis, name="rubric_axis", values_callable=enum_values),
        nullable=False,
    )
    score = Column(Integer, nullable=False)
    justification = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "submission_id",
            "question_id",
            "scorer_type",
            name="uq_question_scores_axis",
        ),
    )


__all__ = [
    "OverrideReasonCategory",
    "ProcessingStatus",
    "QuestionScore",
    "RestartHint",
    "ReviewStatus",
    "ScoringStatus",
    "Submission",
    "SubmissionResponse",
    "SubmissionStatus",
]
