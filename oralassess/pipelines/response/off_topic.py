"""Off-topic detection stage (Stage 04) of the response pipeline."""

from __future__ import annotations

import logging
import math
from typing import Optional

from oralassess.application.interfaces import LanguageModelInterface, OffTopicJudgment

logger = logging.getLogger("oralassess.pipeline")


async def detect_restart_signal(
    model: LanguageModelInterface,
    question: str,
    transcript: str,
    threshold: float,
) -> Optional[OffTopicJudgment]:
    """Return the judgment only when it is a confident off-topic verdict.

    Lower-confidence verdicts and model failures are discarded.
    """

    try:
        judgment = await model.detect_off_topic(question, transcript)
    except Exception as exc:
        logger.warning("Off-topic detection failed; ignoring: %s", exc)
        return None

    if not math.isfinite(judgment.confidence):
        logger.warning("Off-topic verdict with non-finite confidence discarded")
        return None

    if judgment.off_topic and judgment.confidence >= threshold:
        return judgment

    logger.debug(
        "Off-topic verdict discarded off_topic=%s confidence=%.2f threshold=%.2f",
        judgment.off_topic,
        judgment.confidence,
        threshold,
    )
    return None


__all__ = ["detect_restart_signal"]
