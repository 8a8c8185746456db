"""Per-response processing run: transcribe, follow up, check for off-topic answers.

``processing_status`` only moves forward (queued -> transcribing -> generating
-> complete, or to error from any non-terminal state). Every write is a
conditional UPDATE on the allowed source states and on the run's
``processing_attempt``; an explicit retry bumps the attempt, so a run that
lost its response to a retry stops instead of overwriting newer progress.
Fields written by earlier stages are kept when a later stage fails.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import update

from oralassess.application.interfaces import (
    LanguageModelInterface,
    MediaStoreInterface,
    TranscriptionServiceInterface,
)
from oralassess.config.settings import settings
from oralassess.models.base import utcnow
from oralassess.models.submission import ProcessingStatus, RestartHint, SubmissionResponse
from oralassess.services.audit import SessionFactory
from oralassess.telemetry import record_response_processed

from .followup import generate_followup
from .off_topic import detect_restart_signal
from .transcription import transcribe_response
from .types import ResponseJob

logger = logging.getLogger("oralassess.pipeline")

_FORWARD_ORDER = (
    ProcessingStatus.QUEUED,
    ProcessingStatus.TRANSCRIBING,
    ProcessingStatus.GENERATING,
    ProcessingStatus.COMPLETE,
)


def allowed_sources(target: ProcessingStatus) -> tuple[ProcessingStatus, ...]:
    """States a response may move to ``target`` from."""

    if target == ProcessingStatus.ERROR:
        return _FORWARD_ORDER[:-1]
    return _FORWARD_ORDER[: _FORWARD_ORDER.index(target)]


def _truncate(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[: limit - 3] + "..."


class ResponseProcessor:
    """Turn one stored recording into transcript, follow-up and restart hint."""

    def __init__(
        self,
        session_factory: SessionFactory,
        media_store: MediaStoreInterface,
        transcriber: TranscriptionServiceInterface,
        model: LanguageModelInterface,
        *,
        off_topic_threshold: Optional[float] = None,
        fallback_followup: Optional[str] = None,
    ) -> None:
        self._session_factory = session_factory
        self._media_store = media_store
        self._transcriber = transcriber
        self._model = model
        self._threshold = (
            settings.pipeline.off_topic_threshold
            if off_topic_threshold is None
            else off_topic_threshold
        )
        self._fallback = fallback_followup or settings.pipeline.fallback_followup

    async def process(self, job: ResponseJob) -> Optional[ProcessingStatus]:
        """Run every stage; returns the terminal status, or ``None`` if superseded."""

        if not await self._advance(job, ProcessingStatus.TRANSCRIBING):
            logger.info("Response %s is not queued; skipping processing run", job.response_id)
            return None

        try:
            audio = await self._media_store.download(job.storage_path)
            transcript = await transcribe_response(
                self._transcriber, job.response_id, audio, job.mime_type
            )
            if not await self._advance(job, ProcessingStatus.GENERATING, transcript=transcript):
                logger.info("Response %s was superseded during transcription", job.response_id)
                return None

            final_fields: dict[str, Any] = {"processing_error": None}
            if job.requires_followup:
                final_fields["ai_followup_question"] = await generate_followup(
                    self._model, job.question_text, transcript, self._fallback
                )
                final_fields["ai_followup_created_at"] = utcnow()

            if job.detect_off_topic and transcript:
                judgment = await detect_restart_signal(
                    self._model, job.question_text, transcript, self._threshold
                )
                if judgment is not None:
                    final_fields["restart_hint"] = RestartHint.OFF_TOPIC
                    final_fields["restart_hint_confidence"] = judgment.confidence

            if not await self._advance(job, ProcessingStatus.COMPLETE, **final_fields):
                logger.info("Response %s was superseded before completion", job.response_id)
                return None
        except Exception as exc:
            logger.exception("Processing failed for response=%s", job.response_id)
            message = _truncate(
                str(exc) or exc.__class__.__name__, settings.pipeline.max_error_length
            )
            await self._advance(job, ProcessingStatus.ERROR, processing_error=message)
            record_response_processed(ProcessingStatus.ERROR.value)
            return ProcessingStatus.ERROR

        record_response_processed(ProcessingStatus.COMPLETE.value)
        logger.info(
            "Processed response=%s followup=%s restart_hint=%s",
            job.response_id,
            job.requires_followup,
            "restart_hint" in final_fields,
        )
        return ProcessingStatus.COMPLETE

    async def _advance(self, job: ResponseJob, target: ProcessingStatus, **fields: Any) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(SubmissionResponse)
                .where(
                    SubmissionResponse.id == job.response_id,
                    SubmissionResponse.processing_attempt == job.attempt,
                    SubmissionResponse.processing_status.in_(allowed_sources(target)),
                )
                .values(processing_status=target, updated_at=utcnow(), **fields)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return result.rowcount == 1


__all__ = ["ResponseProcessor", "allowed_sources"]
