"""Adaptive follow-up stage (Stage 03) of the response pipeline."""

from __future__ import annotations

import logging
from typing import Optional

from oralassess.application.interfaces import LanguageModelInterface

logger = logging.getLogger("oralassess.pipeline")


async def generate_followup(
    model: LanguageModelInterface,
    question: str,
    transcript: Optional[str],
    fallback: str,
) -> str:
    """Return one follow-up question; a required follow-up is never left empty.

    Without a transcript, or when the model fails, the fixed fallback prompt is
    used instead.
    """

    if not transcript:
        return fallback

    try:
        followup = await model.generate_followup(question, transcript)
    except Exception as exc:
        logger.warning("Follow-up generation failed; using fallback prompt: %s", exc)
        return fallback

    return (followup or "").strip() or fallback


__all__ = ["generate_followup"]
