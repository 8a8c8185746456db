"""SQLAlchemy models for restarts, integrity signals, audit events and review requests."""

from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import (
    JSON,
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

from oralassess.models.base import Base, enum_values, utcnow


class RestartReason(str, Enum):
    SLOW_START = "slow_start"
    OFF_TOPIC = "off_topic"


class ActorRole(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    SYSTEM = "system"


class AuditEventType(str, Enum):
    PLEDGE_ACCEPTED = "pledge_accepted"
    SUBMITTED = "submitted"
    RESTARTED = "restarted"
    PUBLISHED = "published"
    REGRADE_REQUESTED = "regrade_requested"
    REVIEW_REQUESTED = "review_requested"
    REVIEW_RESOLVED = "review_resolved"


class IntegrityEventType(str, Enum):
    TAB_SWITCH = "tab_switch"
    FAST_START = "fast_start"
    SLOW_START = "slow_start"
    SCREENSHOT_ATTEMPT = "screenshot_attempt"


class ReviewRequestStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    UPDATED = "updated"
    NO_CHANGE = "no_change"


class RestartEvent(Base):
    """The single grace restart a student may use on one assessment."""

    __tablename__ = "assessment_restart_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    assessment_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
    )
    student_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    old_submission_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
    )
    new_submission_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
    )
    reason = Column(
        SqlEnum(RestartReason, name="restart_reason", values_callable=enum_values),
        nullable=False,
    )
    question_id = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "assessment_id",
            "student_id",
            name="uq_restart_events_assessment_student",
        ),
    )


class IntegrityEvent(Base):
    """A client-reported integrity signal (tab switch, start timing, screenshot)."""

    __tablename__ = "integrity_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    submission_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = Column(Uuid(as_uuid=True), nullable=True)
    event_type = Column(
        SqlEnum(IntegrityEventType, name="integrity_event_type", values_callable=enum_values),
        nullable=False,
    )
    duration_ms = Column(Integer, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class AssessmentEvent(Base):
    """Append-only audit trail for submission-affecting actions."""

    __tablename__ = "assessment_events"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    assessment_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    student_id = Column(Integer, nullable=True, index=True)
    actor_id = Column(Integer, nullable=True)
    actor_role = Column(
        SqlEnum(ActorRole, name="actor_role", values_callable=enum_values),
        nullable=False,
    )
    event_type = Column(
        SqlEnum(AuditEventType, name="audit_event_type", values_callable=enum_values),
        nullable=False,
    )
    previous_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    reason = Column(String(1000), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class ReviewRequest(Base):
    """A student's request that a teacher take a second look at released feedback."""

    __tablename__ = "student_review_requests"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    submission_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    student_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_note = Column(Text, nullable=True)
    status = Column(
        SqlEnum(ReviewRequestStatus, name="review_request_status", values_callable=enum_values),
        nullable=False,
        default=ReviewRequestStatus.PENDING,
    )
    teacher_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    teacher_response = Column(Text, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


__all__ = [
    "ActorRole",
    "AssessmentEvent",
    "AuditEventType",
    "IntegrityEvent",
    "IntegrityEventType",
    "RestartEvent",
    "RestartReason",
    "ReviewRequest",
    "ReviewRequestStatus",
]
