"""Client-reported integrity signals and their per-submission rollup for teachers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from oralassess.config.settings import settings
from oralassess.models.assessment import AssessmentQuestion
from oralassess.models.integrity import IntegrityEvent, IntegrityEventType
from oralassess.models.submission import Submission, SubmissionStatus
from oralassess.models.user import User
from oralassess.services.errors import NotFound
from oralassess.services.ownership import resolve_student_submission, resolve_teacher_assessment

logger = logging.getLogger(__name__)


@dataclass
class IntegritySummary:
    """Counts of integrity signals for one submission."""

    submission_id: UUID
    student_id: int
    status: SubmissionStatus
    fast_start: int = 0
    slow_start: int = 0
    screenshot_attempt: int = 0
    tab_switch_count: int = 0
    tab_switch_total_ms: int = 0

    @property
    def tab_switch_flagged(self) -> bool:
        return (
            self.tab_switch_count > settings.integrity.tab_switch_count_threshold
            or self.tab_switch_total_ms > settings.integrity.tab_switch_duration_threshold_ms
        )

    @property
    def flag_count(self) -> int:
        """Start-timing and screenshot signals count individually; tab switches at most once."""

        return (
            self.fast_start
            + self.slow_start
            + self.screenshot_attempt
            + (1 if self.tab_switch_flagged else 0)
        )

    def add(self, event_type: IntegrityEventType, duration_ms: Optional[int]) -> None:
        if event_type == IntegrityEventType.TAB_SWITCH:
            self.tab_switch_count += 1
            self.tab_switch_total_ms += duration_ms or 0
        elif event_type == IntegrityEventType.FAST_START:
            self.fast_start += 1
        elif event_type == IntegrityEventType.SLOW_START:
            self.slow_start += 1
        elif event_type == IntegrityEventType.SCREENSHOT_ATTEMPT:
            self.screenshot_attempt += 1


async def record_integrity_event(
    session: AsyncSession,
    *,
    submission_id: UUID,
    student: User,
    event_type: IntegrityEventType,
    duration_ms: Optional[int] = None,
    question_id: Optional[UUID] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> IntegrityEvent:
    """Append one signal reported by the student's client."""

    context = await resolve_student_submission(session, submission_id, student)

    if question_id is not None:
        question = await session.get(AssessmentQuestion, question_id)
        if question is None or question.assessment_id != context.assessment.id:
            raise NotFound("Question not found for this assessment.")

    event = IntegrityEvent(
        submission_id=submission_id,
        question_id=question_id,
        event_type=event_type,
        duration_ms=duration_ms,
        event_metadata=metadata,
    )
    session.add(event)
    await session.commit()
    await session.refresh(event)

    logger.info(
        "Integrity event %s recorded submission=%s question=%s duration_ms=%s",
        event_type.value,
        submission_id,
        question_id,
        duration_ms,
    )
    return event


async def summarize_integrity(
    session: AsyncSession,
    *,
    assessment_id: UUID,
    teacher: User,
) -> list[IntegritySummary]:
    """One summary per submission of the assessment, newest attempt first."""

    await resolve_teacher_assessment(session, assessment_id, teacher)

    submissions = await session.execute(
        select(Submission.id, Submission.student_id, Submission.status)
        .where(Submission.assessment_id == assessment_id)
        .order_by(Submission.started_at.desc())
    )
    summaries = {
        submission_id: IntegritySummary(
            submission_id=submission_id,
            student_id=student_id,
            status=submission_status,
        )
        for submission_id, student_id, submission_status in submissions.all()
    }
    if not summaries:
        return []

    events = await session.execute(
        select(IntegrityEvent.submission_id, IntegrityEvent.event_type, IntegrityEvent.duration_ms)
        .where(IntegrityEvent.submission_id.in_(list(summaries)))
    )
    for submission_id, event_type, duration_ms in events.all():
        summaries[submission_id].add(event_type, duration_ms)

    return list(summaries.values())


__all__ = ["IntegritySummary", "record_integrity_event", "summarize_integrity"]
