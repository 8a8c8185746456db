"""Submission state machine: begin, pledge, submit and the single grace restart.

``Submission.status`` only ever moves ``started -> submitted`` or
``started -> restarted``. Every transition is a conditional UPDATE on
``status = 'started'`` so concurrent callers cannot both win.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from oralassess.models.assessment import Assessment, AssessmentStatus
from oralassess.models.base import utcnow
from oralassess.models.integrity import ActorRole, AuditEventType, RestartEvent, RestartReason
from oralassess.models.submission import ScoringStatus, Submission, SubmissionStatus
from oralassess.models.user import User, UserStatus
from oralassess.services.audit import AuditLog
from oralassess.services.dispatcher import TaskDispatcher
from oralassess.services.errors import (
    AlreadySubmitted,
    AssessmentNotLive,
    Forbidden,
    NotAssignedToStudent,
    NotFound,
    PledgeNotEnabled,
    PledgeRequired,
    RestartAlreadyUsed,
    RestartNotAllowed,
)
from oralassess.services.ownership import resolve_student_submission

if TYPE_CHECKING:
    from oralassess.services.scoring import ScoringDispatcher

logger = logging.getLogger(__name__)

RESTART_SENTINEL = "Restarted by student"


@dataclass(frozen=True)
class BeginResult:
    submission: Submission
    reused: bool


@dataclass(frozen=True)
class PledgeResult:
    submission: Submission
    newly_accepted: bool


@dataclass(frozen=True)
class RestartResult:
    submission: Submission
    previous_submission_id: UUID
    event: RestartEvent


async def find_active(
    session: AsyncSession,
    assessment_id: UUID,
    student_id: int,
) -> Optional[Submission]:
    """Return the in-progress submission for the pair; ``None`` means not started."""

    result = await session.execute(
        select(Submission)
        .where(
            Submission.assessment_id == assessment_id,
            Submission.student_id == student_id,
            Submission.status == SubmissionStatus.STARTED,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def restart_used(session: AsyncSession, assessment_id: UUID, student_id: int) -> bool:
    result = await session.execute(
        select(RestartEvent.id).where(
            RestartEvent.assessment_id == assessment_id,
            RestartEvent.student_id == student_id,
        )
    )
    return result.first() is not None


async def _latest_pledge(
    session: AsyncSession,
    assessment_id: UUID,
    student_id: int,
) -> Optional[Submission]:
    result = await session.execute(
        select(Submission)
        .where(
            Submission.assessment_id == assessment_id,
            Submission.student_id == student_id,
            Submission.integrity_pledge_accepted_at.is_not(None),
        )
        .order_by(Submission.integrity_pledge_accepted_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def _new_submission(
    assessment_id: UUID,
    student_id: int,
    pledge_source: Optional[Submission] = None,
) -> Submission:
    submission = Submission(
        assessment_id=assessment_id,
        student_id=student_id,
        status=SubmissionStatus.STARTED,
        started_at=utcnow(),
        scoring_status=ScoringStatus.PENDING,
    )
    if pledge_source is not None and pledge_source.integrity_pledge_accepted_at is not None:
        submission.integrity_pledge_accepted_at = pledge_source.integrity_pledge_accepted_at
        submission.integrity_pledge_version = pledge_source.integrity_pledge_version
        submission.integrity_pledge_ip_address = pledge_source.integrity_pledge_ip_address
    return submission


async def begin_submission(
    session: AsyncSession,
    *,
    assessment_id: UUID,
    student: User,
) -> BeginResult:
    """Resume the active submission or start a new one.

    Two simultaneous first calls race on the partial unique index; the loser
    rolls back and returns the winner's row.
    """

    student_id = student.id
    if student.status != UserStatus.ACTIVE:
        raise Forbidden("Your account is not active.")

    assessment = await session.get(Assessment, assessment_id)
    if assessment is None:
        raise NotFound("Assessment not found.")
    if student.class_id is None or student.class_id != assessment.class_id:
        raise NotAssignedToStudent()
    if assessment.status != AssessmentStatus.LIVE:
        raise AssessmentNotLive()

    existing = await find_active(session, assessment_id, student_id)
    if existing is not None:
        return BeginResult(submission=existing, reused=True)

    prior_pledge = await _latest_pledge(session, assessment_id, student_id)
    submission = _new_submission(assessment_id, student_id, prior_pledge)
    session.add(submission)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        winner = await find_active(session, assessment_id, student_id)
        if winner is None:
            raise
        logger.info(
            "Concurrent begin for assessment=%s student=%s; reusing submission=%s",
            assessment_id,
            student_id,
            winner.id,
        )
        return BeginResult(submission=winner, reused=True)

    logger.info(
        "Started submission=%s assessment=%s student=%s pledge_carried=%s",
        submission.id,
        assessment_id,
        student_id,
        submission.integrity_pledge_accepted_at is not None,
    )
    return BeginResult(submission=submission, reused=False)


async def accept_pledge(
    session: AsyncSession,
    *,
    submission_id: UUID,
    student: User,
    ip_address: Optional[str],
    audit: AuditLog,
) -> PledgeResult:
    """Record pledge acceptance; repeat calls succeed and keep the first timestamp."""

    student_id = student.id
    context = await resolve_student_submission(session, submission_id, student)
    submission = context.submission

    if submission.status != SubmissionStatus.STARTED:
        raise AlreadySubmitted("The pledge can only be accepted on an in-progress submission.")
    if not context.pledge_enabled:
        raise PledgeNotEnabled()
    if submission.integrity_pledge_accepted_at is not None:
        return PledgeResult(submission=submission, newly_accepted=False)

    version = context.pledge_version
    result = await session.execute(
        update(Submission)
        .where(
            Submission.id == submission_id,
            Submission.status == SubmissionStatus.STARTED,
            Submission.integrity_pledge_accepted_at.is_(None),
        )
        .values(
            integrity_pledge_accepted_at=utcnow(),
            integrity_pledge_version=version,
            integrity_pledge_ip_address=ip_address[:64] if ip_address else None,
        )
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    await session.refresh(submission)

    newly_accepted = result.rowcount == 1
    if newly_accepted:
        await audit.record(
            AuditEventType.PLEDGE_ACCEPTED,
            actor_id=student_id,
            actor_role=ActorRole.STUDENT,
            submission_id=submission_id,
            assessment_id=submission.assessment_id,
            student_id=student_id,
            new_value={"version": version, "ip_address": submission.integrity_pledge_ip_address},
        )
    return PledgeResult(submission=submission, newly_accepted=newly_accepted)


async def submit(
    session: AsyncSession,
    *,
    submission_id: UUID,
    student: User,
    dispatcher: TaskDispatcher,
    scorer: "ScoringDispatcher",
    audit: AuditLog,
) -> Submission:
    """Finalize the attempt and schedule scoring without waiting for it.

    A response whose processing failed does not block submission; scoring
    works from whatever transcript exists.
    """

    student_id = student.id
    context = await resolve_student_submission(session, submission_id, student)
    submission = context.submission

    if submission.status != SubmissionStatus.STARTED:
        raise AlreadySubmitted()
    if context.pledge_enabled and not submission.pledge_accepted:
        raise PledgeRequired()

    result = await session.execute(
        update(Submission)
        .where(
            Submission.id == submission_id,
            Submission.status == SubmissionStatus.STARTED,
        )
        .values(
            status=SubmissionStatus.SUBMITTED,
            submitted_at=utcnow(),
            scoring_status=ScoringStatus.PENDING,
            scoring_started_at=None,
            scored_at=None,
            scoring_error=None,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        raise AlreadySubmitted()
    await session.commit()
    await session.refresh(submission)

    await audit.record(
        AuditEventType.SUBMITTED,
        actor_id=student_id,
        actor_role=ActorRole.STUDENT,
        submission_id=submission_id,
        assessment_id=submission.assessment_id,
        student_id=student_id,
        previous_value={"status": SubmissionStatus.STARTED.value},
        new_value={"status": SubmissionStatus.SUBMITTED.value},
    )

    if context.assessment.is_practice:
        dispatcher.dispatch(
            f"score-and-publish:{submission_id}",
            lambda: scorer.score_and_publish(submission_id),
        )
    else:
        dispatcher.dispatch(
            f"score:{submission_id}",
            lambda: scorer.score_submission(submission_id),
        )
    logger.info("Submission %s submitted; scoring dispatched", submission_id)
    return submission


async def restart_grace(
    session: AsyncSession,
    *,
    submission_id: UUID,
    student: User,
    reason: RestartReason,
    question_id: Optional[UUID],
    audit: AuditLog,
) -> RestartResult:
    """Use the pair's single grace restart: supersede the attempt with a fresh one."""

    student_id = student.id
    context = await resolve_student_submission(session, submission_id, student)
    submission = context.submission
    assessment_id = submission.assessment_id

    if not context.allow_grace_restart:
        raise RestartNotAllowed()
    if await restart_used(session, assessment_id, student_id):
        raise RestartAlreadyUsed()
    if submission.status != SubmissionStatus.STARTED:
        raise AlreadySubmitted("Only an in-progress submission can be restarted.")

    now = utcnow()
    result = await session.execute(
        update(Submission)
        .where(
            Submission.id == submission_id,
            Submission.status == SubmissionStatus.STARTED,
        )
        .values(
            status=SubmissionStatus.RESTARTED,
            scoring_status=ScoringStatus.COMPLETE,
            scored_at=now,
            scoring_error=RESTART_SENTINEL,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        if await restart_used(session, assessment_id, student_id):
            raise RestartAlreadyUsed()
        raise AlreadySubmitted("Only an in-progress submission can be restarted.")

    replacement = _new_submission(assessment_id, student_id, submission)
    session.add(replacement)
    await session.flush()

    event = RestartEvent(
        assessment_id=assessment_id,
        student_id=student_id,
        old_submission_id=submission_id,
        new_submission_id=replacement.id,
        reason=reason,
        question_id=question_id,
        created_at=now,
    )
    session.add(event)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise RestartAlreadyUsed() from None
    await session.refresh(submission)

    logger.info(
        "Grace restart used assessment=%s student=%s old=%s new=%s reason=%s",
        assessment_id,
        student_id,
        submission_id,
        replacement.id,
        reason.value,
    )
    await audit.record(
        AuditEventType.RESTARTED,
        actor_id=student_id,
        actor_role=ActorRole.STUDENT,
        submission_id=submission_id,
        assessment_id=assessment_id,
        student_id=student_id,
        previous_value={"submission_id": str(submission_id)},
        new_value={
            "submission_id": str(replacement.id),
            "question_id": str(question_id) if question_id else None,
        },
        reason=reason.value,
    )
    return RestartResult(
        submission=replacement,
        previous_submission_id=submission_id,
        event=event,
    )


__all__ = [
    "BeginResult",
    "PledgeResult",
    "RESTART_SENTINEL",
    "RestartResult",
    "accept_pledge",
    "begin_submission",
    "find_active",
    "restart_grace",
    "restart_used",
    "submit",
]
