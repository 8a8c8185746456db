"""Pydantic schemas for teacher release, regrade and review resolution."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from oralassess.models.integrity import ReviewRequestStatus
from oralassess.models.submission import OverrideReasonCategory

from .submissions import SubmissionRead


class ReleaseRequest(BaseModel):
    """Publish feedback, optionally overriding the computed score."""

    comment: Optional[str] = Field(None, max_length=5000)
    scoreOverride: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("scoreOverride", "score_override"),
        serialization_alias="scoreOverride",
    )
    overrideReasonCategory: Optional[OverrideReasonCategory] = Field(
        None,
        validation_alias=AliasChoices("overrideReasonCategory", "override_reason_category"),
        serialization_alias="overrideReasonCategory",
    )
    overrideReason: Optional[str] = Field(
        None,
        max_length=1000,
        validation_alias=AliasChoices("overrideReason", "override_reason"),
        serialization_alias="overrideReason",
    )

    class Config:
        populate_by_name = True


class ReleaseResponse(BaseModel):
    submission: SubmissionRead
    finalScore: Optional[float] = Field(None, serialization_alias="finalScore")


class ReviewResolveRequest(BaseModel):
    status: ReviewRequestStatus
    response: Optional[str] = Field(None, max_length=2000)
