"""Teacher release of feedback, regrades and student review requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from oralassess.models.assessment import AssessmentQuestion, Rubric
from oralassess.models.base import utcnow
from oralassess.models.integrity import (
    ActorRole,
    AuditEventType,
    ReviewRequest,
    ReviewRequestStatus,
)
from oralassess.models.submission import (
    OverrideReasonCategory,
    ReviewStatus,
    ScoringStatus,
    Submission,
    SubmissionResponse,
    SubmissionStatus,
)
from oralassess.models.user import User
from oralassess.services.aggregation import (
    QuestionAggregate,
    compute_submission_score,
    load_question_scores,
)
from oralassess.services.audit import AuditLog
from oralassess.services.dispatcher import TaskDispatcher
from oralassess.services.errors import (
    FeedbackNotPublished,
    InvalidReviewResolution,
    InvalidScoreOverride,
    NotFound,
    ReleaseBlocked,
    ReviewRequestExists,
    ReviewRequestResolved,
    ScoringNotAllowed,
)
from oralassess.services.ownership import (
    resolve_student_submission,
    resolve_teacher_submission,
)

if TYPE_CHECKING:
    from oralassess.services.scoring import ScoringDispatcher

logger = logging.getLogger(__name__)

DEFAULT_SCALE = (1, 5)
RESOLVED_STATUSES = (
    ReviewRequestStatus.REVIEWED,
    ReviewRequestStatus.UPDATED,
    ReviewRequestStatus.NO_CHANGE,
)


@dataclass(frozen=True)
class ReleaseResult:
    submission: Submission
    final_score: Optional[float]


@dataclass(frozen=True)
class QuestionFeedback:
    question_id: UUID
    order_index: int
    question_text: str
    transcript: Optional[str]
    followup_question: Optional[str]
    scores: QuestionAggregate


@dataclass(frozen=True)
class FeedbackPayload:
    submission: Submission
    final_score: Optional[float]
    teacher_comment: Optional[str]
    questions: list[QuestionFeedback]


async def rubric_bounds(session: AsyncSession, assessment_id: UUID) -> tuple[int, int]:
    result = await session.execute(
        select(func.min(Rubric.scale_min), func.max(Rubric.scale_max)).where(
            Rubric.assessment_id == assessment_id
        )
    )
    low, high = result.one()
    if low is None or high is None:
        return DEFAULT_SCALE
    return int(low), int(high)


def _validate_override(
    score_override: float,
    bounds: tuple[int, int],
    category: Optional[OverrideReasonCategory],
    reason: Optional[str],
) -> None:
    low, high = bounds
    if not low <= score_override <= high:
        raise InvalidScoreOverride(f"Score override must be between {low} and {high}.")
    if category is None:
        raise InvalidScoreOverride("Choose a reason category for the score override.")
    if category == OverrideReasonCategory.OTHER and not (reason or "").strip():
        raise InvalidScoreOverride("Describe the reason for the score override.")


async def release_feedback(
    session: AsyncSession,
    *,
    submission_id: UUID,
    teacher: User,
    comment: Optional[str],
    score_override: Optional[float],
    override_reason_category: Optional[OverrideReasonCategory],
    override_reason: Optional[str],
    audit: AuditLog,
) -> ReleaseResult:
    """Publish the computed (or overridden) score and comment to the student.

    Releasing again replaces the published comment and score; nothing unpublishes.
    """

    teacher_id = teacher.id
    context = await resolve_teacher_submission(session, submission_id, teacher)
    submission = context.submission

    if submission.status != SubmissionStatus.SUBMITTED:
        raise ReleaseBlocked("Only submitted work can be released.")
    if submission.scoring_status != ScoringStatus.COMPLETE:
        raise ReleaseBlocked()

    if score_override is not None:
        bounds = await rubric_bounds(session, context.assessment.id)
        _validate_override(score_override, bounds, override_reason_category, override_reason)
        final_score: Optional[float] = float(score_override)
    else:
        final_score = await compute_submission_score(session, submission_id)
        override_reason_category = None
        override_reason = None

    previous = {
        "review_status": submission.review_status.value,
        "final_score": submission.final_score,
        "teacher_comment": submission.teacher_comment,
    }

    submission.review_status = ReviewStatus.PUBLISHED
    submission.published_at = utcnow()
    submission.published_by_id = teacher_id
    submission.teacher_comment = comment
    submission.final_score_override = score_override
    submission.final_score = final_score
    submission.override_reason_category = override_reason_category
    submission.override_reason = override_reason.strip() if override_reason else None
    await session.commit()

    await audit.record(
        AuditEventType.PUBLISHED,
        actor_id=teacher_id,
        actor_role=ActorRole.TEACHER,
        submission_id=submission_id,
        assessment_id=submission.assessment_id,
        student_id=submission.student_id,
        previous_value=previous,
        new_value={
            "review_status": ReviewStatus.PUBLISHED.value,
            "final_score": final_score,
            "teacher_comment": comment,
        },
        reason=override_reason_category.value if override_reason_category else None,
    )
    return ReleaseResult(submission=submission, final_score=final_score)


async def auto_publish(session: AsyncSession, submission_id: UUID) -> bool:
    """Publish a practice submission once scoring completed; no-op otherwise."""

    submission = await session.get(Submission, submission_id, populate_existing=True)
    if submission is None or submission.scoring_status != ScoringStatus.COMPLETE:
        logger.info("Skipping auto-publish for submission=%s; scoring not complete", submission_id)
        return False

    final_score = await compute_submission_score(session, submission_id)
    result = await session.execute(
        update(Submission)
        .where(
            Submission.id == submission_id,
            Submission.status == SubmissionStatus.SUBMITTED,
            Submission.review_status == ReviewStatus.UNPUBLISHED,
        )
        .values(
            review_status=ReviewStatus.PUBLISHED,
            published_at=utcnow(),
            final_score=final_score,
        )
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    published = result.rowcount == 1
    if published:
        logger.info("Auto-published practice submission=%s score=%s", submission_id, final_score)
    return published


async def request_regrade(
    session: AsyncSession,
    *,
    submission_id: UUID,
    teacher: User,
    dispatcher: TaskDispatcher,
    scorer: "ScoringDispatcher",
    audit: AuditLog,
) -> Submission:
    """Explicitly re-run scoring; the previous scores are overwritten in place."""

    teacher_id = teacher.id
    context = await resolve_teacher_submission(session, submission_id, teacher)
    submission = context.submission
    if submission.status != SubmissionStatus.SUBMITTED:
        raise ScoringNotAllowed()

    dispatcher.dispatch(
        f"regrade:{submission_id}",
        lambda: scorer.score_submission(submission_id, force=True),
    )
    await audit.record(
        AuditEventType.REGRADE_REQUESTED,
        actor_id=teacher_id,
        actor_role=ActorRole.TEACHER,
        submission_id=submission_id,
        assessment_id=submission.assessment_id,
        student_id=submission.student_id,
        previous_value={"scoring_status": submission.scoring_status.value},
    )
    return submission


async def feedback_payload(
    session: AsyncSession,
    *,
    submission_id: UUID,
    student: User,
) -> FeedbackPayload:
    context = await resolve_student_submission(session, submission_id, student)
    submission = context.submission
    if submission.review_status != ReviewStatus.PUBLISHED:
        raise FeedbackNotPublished()

    scores = await load_question_scores(session, submission_id)
    rows = await session.execute(
        select(AssessmentQuestion, SubmissionResponse)
        .outerjoin(
            SubmissionResponse,
            (SubmissionResponse.question_id == AssessmentQuestion.id)
            & (SubmissionResponse.submission_id == submission_id),
        )
        .where(AssessmentQuestion.assessment_id == submission.assessment_id)
        .order_by(AssessmentQuestion.order_index)
    )
    questions = [
        QuestionFeedback(
            question_id=question.id,
            order_index=question.order_index,
            question_text=question.question_text,
            transcript=response.transcript if response else None,
            followup_question=response.ai_followup_question if response else None,
            scores=scores.get(question.id) or QuestionAggregate(question_id=question.id),
        )
        for question, response in rows.all()
    ]
    return FeedbackPayload(
        submission=submission,
        final_score=submission.final_score,
        teacher_comment=submission.teacher_comment,
        questions=questions,
    )


async def request_review(
    session: AsyncSession,
    *,
    submission_id: UUID,
    student: User,
    note: Optional[str],
    audit: AuditLog,
) -> ReviewRequest:
    """File the single review request a student may make on released feedback."""

    student_id = student.id
    context = await resolve_student_submission(session, submission_id, student)
    submission = context.submission
    assessment_id = submission.assessment_id
    if submission.review_status != ReviewStatus.PUBLISHED:
        raise FeedbackNotPublished("Feedback must be released before requesting a review.")

    existing = await session.execute(
        select(ReviewRequest.id).where(ReviewRequest.submission_id == submission_id)
    )
    if existing.first() is not None:
        raise ReviewRequestExists()

    review_request = ReviewRequest(
        submission_id=submission_id,
        student_id=student_id,
        student_note=(note or "").strip() or None,
        status=ReviewRequestStatus.PENDING,
        created_at=utcnow(),
    )
    session.add(review_request)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ReviewRequestExists() from None

    await audit.record(
        AuditEventType.REVIEW_REQUESTED,
        actor_id=student_id,
        actor_role=ActorRole.STUDENT,
        submission_id=submission_id,
        assessment_id=assessment_id,
        student_id=student_id,
        new_value={"status": ReviewRequestStatus.PENDING.value},
        reason=review_request.student_note,
    )
    return review_request


async def resolve_review(
    session: AsyncSession,
    *,
    request_id: UUID,
    teacher: User,
    resolution: ReviewRequestStatus,
    response: Optional[str],
    audit: AuditLog,
) -> ReviewRequest:
    """Close a pending review request; the submission itself is not reopened."""

    teacher_id = teacher.id
    if resolution not in RESOLVED_STATUSES:
        raise InvalidReviewResolution()

    review_request = await session.get(ReviewRequest, request_id, populate_existing=True)
    if review_request is None:
        raise NotFound("Review request not found.")

    context = await resolve_teacher_submission(session, review_request.submission_id, teacher)
    if review_request.status != ReviewRequestStatus.PENDING:
        raise ReviewRequestResolved()

    result = await session.execute(
        update(ReviewRequest)
        .where(
            ReviewRequest.id == request_id,
            ReviewRequest.status == ReviewRequestStatus.PENDING,
        )
        .values(
            status=resolution,
            teacher_id=teacher_id,
            teacher_response=(response or "").strip() or None,
            resolved_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        raise ReviewRequestResolved()
    await session.commit()
    await session.refresh(review_request)

    await audit.record(
        AuditEventType.REVIEW_RESOLVED,
        actor_id=teacher_id,
        actor_role=ActorRole.TEACHER,
        submission_id=review_request.submission_id,
        assessment_id=context.assessment.id,
        student_id=review_request.student_id,
        previous_value={"status": ReviewRequestStatus.PENDING.value},
        new_value={"status": resolution.value},
        reason=review_request.teacher_response,
    )
    return review_request


__all__ = [
    "FeedbackPayload",
    "QuestionFeedback",
    "ReleaseResult",
    "auto_publish",
    "feedback_payload",
    "release_feedback",
    "request_regrade",
    "request_review",
    "resolve_review",
    "rubric_bounds",
]
