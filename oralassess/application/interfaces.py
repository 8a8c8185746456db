from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class OffTopicJudgment:
    """Model verdict on whether an answer ignores the question asked."""

    off_topic: bool
    confidence: float


@dataclass(frozen=True)
class AxisScore:
    """Raw rubric score for one axis before clamping to the rubric scale."""

    score: float
    justification: str


class MediaStoreInterface(ABC):
    """Blob storage contract for recorded answers"""

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        ...

    @abstractmethod
    async def download(self, path: str) -> bytes:
        ...

    @abstractmethod
    async def signed_url(self, path: str, ttl_seconds: int) -> str:
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        ...


class TranscriptionServiceInterface(ABC):
    """Speech-to-text contract.

    Returns ``None`` when the provider produced no transcript and raises when
    the call itself fails.
    """

    @abstractmethod
    async def transcribe(self, audio: bytes, mime_type: str) -> Optional[str]:
        ...


class LanguageModelInterface(ABC):
    """Contract for follow-up generation, off-topic detection and rubric scoring"""

    @abstractmethod
    async def generate_followup(self, question: str, transcript: str) -> str:
        ...

    @abstractmethod
    async def detect_off_topic(self, question: str, transcript: str) -> OffTopicJudgment:
        ...

    @abstractmethod
    async def score_axis(
        self,
        question: str,
        transcript: Optional[str],
        rubric_instructions: str,
        scale_min: int,
        scale_max: int,
    ) -> AxisScore:
        ...
