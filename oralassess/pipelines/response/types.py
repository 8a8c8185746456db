"""Typed containers shared across the response processing pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class ResponseJob:
    """Everything one processing run needs, captured when the recording is stored."""

    response_id: UUID
    storage_path: str
    mime_type: str
    question_text: str
    requires_followup: bool
    detect_off_topic: bool
    attempt: int = 0
