"""Pydantic schemas for the support and cron endpoints."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from oralassess.models.submission import ScoringStatus


class ScorePendingItem(BaseModel):
    submissionId: UUID = Field(..., serialization_alias="submissionId")
    scoringStatus: Optional[ScoringStatus] = Field(None, serialization_alias="scoringStatus")


class ScorePendingResponse(BaseModel):
    processed: int
    results: list[ScorePendingItem] = Field(default_factory=list)
