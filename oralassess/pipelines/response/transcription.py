"""Transcription stage (Stage 02) of the response pipeline."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from oralassess.application.interfaces import TranscriptionServiceInterface

logger = logging.getLogger("oralassess.pipeline")
transcript_logger = logging.getLogger("oralassess.logs.transcript")


async def transcribe_response(
    transcriber: TranscriptionServiceInterface,
    response_id: UUID,
    audio: bytes,
    mime_type: str,
) -> Optional[str]:
    """Return the transcript or ``None`` when the provider produced nothing.

    Exceptions from the transcription call propagate so the run ends in
    ``error``; an empty result only degrades the later stages.
    """

    transcript = await transcriber.transcribe(audio, mime_type)
    transcript = (transcript or "").strip() or None

    if transcript is None:
        logger.warning("No transcript produced for response=%s (%s)", response_id, mime_type)
    else:
        transcript_logger.info("response=%s | text=%s", response_id, transcript)
    return transcript


__all__ = ["transcribe_response"]
