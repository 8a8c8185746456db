"""Pydantic models for validating language-model JSON responses.

Follow-up generation, off-topic detection and rubric scoring all run through
these schemas so that downstream code receives normalized, type-safe objects.
"""

from __future__ import annotations

from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator

_ContractT = TypeVar("_ContractT", bound="_JsonContract")


class ResponseContractError(RuntimeError):
    """Raised when the model response contract cannot be validated."""


class _JsonContract(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}

    @classmethod
    def from_json(cls: Type[_ContractT], payload: str) -> _ContractT:
        return cls.model_validate_json(_clean_json_payload(payload) or "null")


class FollowupResponse(_JsonContract):
    question: str = Field(alias="followupQuestion", min_length=1)

    @field_validator("question")
    @classmethod
    def strip_question(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("follow-up question is blank")
        return value


class OffTopicResponse(_JsonContract):
    off_topic: bool = Field(alias="offTopic")
    confidence: float = Field(0.0, allow_inf_nan=False)
    reason: Optional[str] = None

    @model_validator(mode="after")
    def normalize_confidence(self) -> "OffTopicResponse":
        self.confidence = max(0.0, min(1.0, float(self.confidence)))
        return self


class AxisScoreResponse(_JsonContract):
    score: float = Field(allow_inf_nan=False)
    justification: str = ""

    @field_validator("justification", mode="before")
    @classmethod
    def coerce_justification(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()


def _clean_json_payload(payload: str) -> str:
    """Strip Markdown code fences and keep the outermost JSON object."""
    if not payload:
        return ""

    cleaned = payload.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]

    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    cleaned = cleaned.strip()

    start = cleaned.find("{")
    end = cleaned.rfind("}")

    if start != -1 and end != -1 and end > start:
        cleaned = cleaned[start : end + 1]

    return cleaned


__all__ = [
    "AxisScoreResponse",
    "FollowupResponse",
    "OffTopicResponse",
    "ResponseContractError",
]
