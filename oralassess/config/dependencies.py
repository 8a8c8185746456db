"""Lazily constructed collaborators shared by the HTTP layer.

FastAPI resolves these through ``Depends``; tests swap them with
``app.dependency_overrides``.
"""

from functools import lru_cache

from oralassess.application.interfaces import (
    LanguageModelInterface,
    MediaStoreInterface,
    TranscriptionServiceInterface,
)
from oralassess.database import session_scope
from oralassess.pipelines.response import ResponseProcessor
from oralassess.services.audit import AuditLog
from oralassess.services.dispatcher import TaskDispatcher
from oralassess.services.language_model import BedrockLanguageModel
from oralassess.services.scoring import ScoringDispatcher
from oralassess.services.storage import S3MediaStore
from oralassess.services.transcribe import TranscribeService

from .settings import settings


@lru_cache
def get_media_store() -> MediaStoreInterface:
    return S3MediaStore()


@lru_cache
def get_transcriber() -> TranscriptionServiceInterface:
    return TranscribeService(
        region=settings.transcribe.region,
        language_code=settings.transcribe.language_code,
        media_sample_rate_hz=settings.transcribe.sample_rate_hz,
        timeout_seconds=settings.transcribe.timeout_seconds,
        enabled=settings.transcribe.enabled,
    )


@lru_cache
def get_language_model() -> LanguageModelInterface:
    return BedrockLanguageModel()


@lru_cache
def get_dispatcher() -> TaskDispatcher:
    """Process-wide dispatcher; drained on shutdown."""
    return TaskDispatcher()


@lru_cache
def get_audit_log() -> AuditLog:
    return AuditLog(session_scope)


@lru_cache
def get_response_processor() -> ResponseProcessor:
    return ResponseProcessor(
        session_scope,
        get_media_store(),
        get_transcriber(),
        get_language_model(),
    )


@lru_cache
def get_scoring_dispatcher() -> ScoringDispatcher:
    return ScoringDispatcher(session_scope, get_language_model())


__all__ = [
    "get_audit_log",
    "get_dispatcher",
    "get_language_model",
    "get_media_store",
    "get_response_processor",
    "get_scoring_dispatcher",
    "get_transcriber",
]
