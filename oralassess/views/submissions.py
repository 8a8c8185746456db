"""Pydantic schemas for the student submission workflow."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from oralassess.models.integrity import RestartReason, ReviewRequestStatus
from oralassess.models.submission import (
    ProcessingStatus,
    RestartHint,
    ReviewStatus,
    ScoringStatus,
    SubmissionStatus,
)


class SubmissionRead(BaseModel):
    """State of one attempt, used for begin/submit responses and polling."""

    id: UUID
    assessmentId: UUID = Field(
        ...,
        validation_alias=AliasChoices("assessmentId", "assessment_id"),
        serialization_alias="assessmentId",
    )
    studentId: int = Field(
        ...,
        validation_alias=AliasChoices("studentId", "student_id"),
        serialization_alias="studentId",
    )
    status: SubmissionStatus
    startedAt: datetime = Field(
        ...,
        validation_alias=AliasChoices("startedAt", "started_at"),
        serialization_alias="startedAt",
    )
    submittedAt: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("submittedAt", "submitted_at"),
        serialization_alias="submittedAt",
    )
    scoringStatus: ScoringStatus = Field(
        ...,
        validation_alias=AliasChoices("scoringStatus", "scoring_status"),
        serialization_alias="scoringStatus",
    )
    scoringError: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("scoringError", "scoring_error"),
        serialization_alias="scoringError",
    )
    reviewStatus: ReviewStatus = Field(
        ...,
        validation_alias=AliasChoices("reviewStatus", "review_status"),
        serialization_alias="reviewStatus",
    )
    publishedAt: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("publishedAt", "published_at"),
        serialization_alias="publishedAt",
    )
    pledgeAcceptedAt: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("pledgeAcceptedAt", "integrity_pledge_accepted_at"),
        serialization_alias="pledgeAcceptedAt",
    )
    pledgeVersion: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("pledgeVersion", "integrity_pledge_version"),
        serialization_alias="pledgeVersion",
    )

    class Config:
        populate_by_name = True
        from_attributes = True


class BeginSubmissionRequest(BaseModel):
    assessmentId: UUID = Field(
        ...,
        validation_alias=AliasChoices("assessmentId", "assessment_id"),
        serialization_alias="assessmentId",
    )

    class Config:
        populate_by_name = True


class BeginSubmissionResponse(BaseModel):
    """Begin/resume result plus the integrity settings the client must honour."""

    submission: SubmissionRead
    reused: bool
    pledgeEnabled: bool = Field(False, serialization_alias="pledgeEnabled")
    pledgeVersion: Optional[int] = Field(None, serialization_alias="pledgeVersion")
    pledgeText: Optional[str] = Field(None, serialization_alias="pledgeText")
    allowGraceRestart: bool = Field(False, serialization_alias="allowGraceRestart")

    class Config:
        populate_by_name = True


class PledgeResponse(BaseModel):
    submission: SubmissionRead
    newlyAccepted: bool = Field(..., serialization_alias="newlyAccepted")


class RestartRequest(BaseModel):
    """Payload for the single grace restart."""

    reason: RestartReason
    questionId: Optional[UUID] = Field(
        None,
        validation_alias=AliasChoices("questionId", "question_id"),
        serialization_alias="questionId",
    )

    class Config:
        populate_by_name = True


class RestartResponse(BaseModel):
    submission: SubmissionRead
    previousSubmissionId: UUID = Field(..., serialization_alias="previousSubmissionId")


class ResponseRead(BaseModel):
    """One recorded answer with its processing state, polled by the client."""

    id: UUID
    submissionId: UUID = Field(
        ...,
        validation_alias=AliasChoices("submissionId", "submission_id"),
        serialization_alias="submissionId",
    )
    questionId: UUID = Field(
        ...,
        validation_alias=AliasChoices("questionId", "question_id"),
        serialization_alias="questionId",
    )
    mimeType: str = Field(
        ...,
        validation_alias=AliasChoices("mimeType", "mime_type"),
        serialization_alias="mimeType",
    )
    durationSeconds: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("durationSeconds", "duration_seconds"),
        serialization_alias="durationSeconds",
    )
    processingStatus: ProcessingStatus = Field(
        ...,
        validation_alias=AliasChoices("processingStatus", "processing_status"),
        serialization_alias="processingStatus",
    )
    processingError: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("processingError", "processing_error"),
        serialization_alias="processingError",
    )
    transcript: Optional[str] = None
    followupQuestion: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("followupQuestion", "ai_followup_question"),
        serialization_alias="followupQuestion",
    )
    restartHint: Optional[RestartHint] = Field(
        None,
        validation_alias=AliasChoices("restartHint", "restart_hint"),
        serialization_alias="restartHint",
    )
    restartHintConfidence: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("restartHintConfidence", "restart_hint_confidence"),
        serialization_alias="restartHintConfidence",
    )
    audioUrl: Optional[str] = Field(None, serialization_alias="audioUrl")
    createdAt: datetime = Field(
        ...,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )
    updatedAt: datetime = Field(
        ...,
        validation_alias=AliasChoices("updatedAt", "updated_at"),
        serialization_alias="updatedAt",
    )

    class Config:
        populate_by_name = True
        from_attributes = True


class AxisFeedback(BaseModel):
    score: int
    justification: Optional[str] = None


class QuestionFeedbackRead(BaseModel):
    questionId: UUID = Field(..., serialization_alias="questionId")
    orderIndex: int = Field(..., serialization_alias="orderIndex")
    questionText: str = Field(..., serialization_alias="questionText")
    transcript: Optional[str] = None
    followupQuestion: Optional[str] = Field(None, serialization_alias="followupQuestion")
    score: Optional[float] = None
    axes: dict[str, AxisFeedback] = Field(default_factory=dict)


class FeedbackRead(BaseModel):
    """Released feedback as shown to the student."""

    submissionId: UUID = Field(..., serialization_alias="submissionId")
    finalScore: Optional[float] = Field(None, serialization_alias="finalScore")
    teacherComment: Optional[str] = Field(None, serialization_alias="teacherComment")
    publishedAt: Optional[datetime] = Field(None, serialization_alias="publishedAt")
    questions: list[QuestionFeedbackRead] = Field(default_factory=list)


class ReviewRequestCreate(BaseModel):
    note: Optional[str] = Field(None, max_length=2000)


class ReviewRequestRead(BaseModel):
    id: UUID
    submissionId: UUID = Field(
        ...,
        validation_alias=AliasChoices("submissionId", "submission_id"),
        serialization_alias="submissionId",
    )
    status: ReviewRequestStatus
    studentNote: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("studentNote", "student_note"),
        serialization_alias="studentNote",
    )
    teacherResponse: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("teacherResponse", "teacher_response"),
        serialization_alias="teacherResponse",
    )
    createdAt: datetime = Field(
        ...,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )
    resolvedAt: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("resolvedAt", "resolved_at"),
        serialization_alias="resolvedAt",
    )

    class Config:
        populate_by_name = True
        from_attributes = True
