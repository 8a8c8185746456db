"""Pydantic schemas for client integrity signals."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from oralassess.models.integrity import IntegrityEventType
from oralassess.models.submission import SubmissionStatus


class IntegrityEventCreate(BaseModel):
    """One signal reported by the recording client."""

    eventType: IntegrityEventType = Field(
        ...,
        validation_alias=AliasChoices("eventType", "event_type"),
        serialization_alias="eventType",
    )
    durationMs: Optional[int] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("durationMs", "duration_ms"),
        serialization_alias="durationMs",
    )
    questionId: Optional[UUID] = Field(
        None,
        validation_alias=AliasChoices("questionId", "question_id"),
        serialization_alias="questionId",
    )
    metadata: Optional[dict[str, Any]] = None

    class Config:
        populate_by_name = True


class IntegrityEventRead(BaseModel):
    id: UUID
    submissionId: UUID = Field(
        ...,
        validation_alias=AliasChoices("submissionId", "submission_id"),
        serialization_alias="submissionId",
    )
    eventType: IntegrityEventType = Field(
        ...,
        validation_alias=AliasChoices("eventType", "event_type"),
        serialization_alias="eventType",
    )
    durationMs: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("durationMs", "duration_ms"),
        serialization_alias="durationMs",
    )
    questionId: Optional[UUID] = Field(
        None,
        validation_alias=AliasChoices("questionId", "question_id"),
        serialization_alias="questionId",
    )
    createdAt: datetime = Field(
        ...,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )

    class Config:
        populate_by_name = True
        from_attributes = True


class IntegritySummaryRead(BaseModel):
    """Per-submission rollup shown on the teacher's submissions list."""

    submissionId: UUID = Field(..., serialization_alias="submissionId")
    studentId: int = Field(..., serialization_alias="studentId")
    status: SubmissionStatus
    fastStart: int = Field(0, serialization_alias="fastStart")
    slowStart: int = Field(0, serialization_alias="slowStart")
    screenshotAttempt: int = Field(0, serialization_alias="screenshotAttempt")
    tabSwitchCount: int = Field(0, serialization_alias="tabSwitchCount")
    tabSwitchTotalMs: int = Field(0, serialization_alias="tabSwitchTotalMs")
    flagCount: int = Field(0, serialization_alias="flagCount")
