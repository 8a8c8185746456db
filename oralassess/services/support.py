"""Read-only support queues for teachers and operators.

Every query is limited to submissions whose assessment belongs to a class in
the caller's workspace.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, Sequence

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from oralassess.config.settings import settings
from oralassess.models.assessment import Assessment
from oralassess.models.base import utcnow
from oralassess.models.class_group import ClassGroup
from oralassess.models.submission import (
    ProcessingStatus,
    ScoringStatus,
    Submission,
    SubmissionResponse,
    SubmissionStatus,
)
from oralassess.models.user import User

_IN_FLIGHT_PROCESSING = (
    ProcessingStatus.QUEUED,
    ProcessingStatus.TRANSCRIBING,
    ProcessingStatus.GENERATING,
)


def _workspace_submissions(teacher: User) -> Select:
    return (
        select(Submission)
        .join(Assessment, Assessment.id == Submission.assessment_id)
        .join(ClassGroup, ClassGroup.id == Assessment.class_id)
        .where(ClassGroup.workspace_id == teacher.workspace_id)
    )


async def list_scoring_errors(
    session: AsyncSession,
    teacher: User,
    limit: int = 50,
) -> Sequence[Submission]:
    """Submitted work whose last scoring run ended in ``error``."""

    result = await session.execute(
        _workspace_submissions(teacher)
        .where(
            Submission.status == SubmissionStatus.SUBMITTED,
            Submission.scoring_status == ScoringStatus.ERROR,
        )
        .order_by(Submission.submitted_at)
        .limit(limit)
    )
    return result.scalars().all()


async def list_stuck_scoring(
    session: AsyncSession,
    teacher: User,
    stuck_after_minutes: Optional[int] = None,
    limit: int = 50,
) -> Sequence[Submission]:
    """Scoring runs still ``in_progress`` long after they were claimed."""

    minutes = stuck_after_minutes or settings.scoring.stuck_after_minutes
    cutoff = utcnow() - timedelta(minutes=minutes)
    result = await session.execute(
        _workspace_submissions(teacher)
        .where(
            Submission.scoring_status == ScoringStatus.IN_PROGRESS,
            Submission.scoring_started_at <= cutoff,
        )
        .order_by(Submission.scoring_started_at)
        .limit(limit)
    )
    return result.scalars().all()


async def list_stuck_responses(
    session: AsyncSession,
    teacher: User,
    stuck_after_minutes: Optional[int] = None,
    limit: int = 50,
) -> Sequence[SubmissionResponse]:
    """Responses in ``error`` or stalled in a non-terminal processing state."""

    minutes = stuck_after_minutes or settings.pipeline.stuck_after_minutes
    cutoff = utcnow() - timedelta(minutes=minutes)
    result = await session.execute(
        select(SubmissionResponse)
        .join(Submission, Submission.id == SubmissionResponse.submission_id)
        .join(Assessment, Assessment.id == Submission.assessment_id)
        .join(ClassGroup, ClassGroup.id == Assessment.class_id)
        .where(
            ClassGroup.workspace_id == teacher.workspace_id,
            (SubmissionResponse.processing_status == ProcessingStatus.ERROR)
            | (
                SubmissionResponse.processing_status.in_(_IN_FLIGHT_PROCESSING)
                & (SubmissionResponse.updated_at <= cutoff)
            ),
        )
        .order_by(SubmissionResponse.updated_at)
        .limit(limit)
    )
    return result.scalars().all()


__all__ = ["list_scoring_errors", "list_stuck_responses", "list_stuck_scoring"]
