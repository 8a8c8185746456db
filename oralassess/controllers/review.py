"""Teacher endpoints: release, regrade, review requests and integrity signals."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, status

from oralassess.controllers.dependencies import (
    AuditLogDep,
    DispatcherDep,
    MediaStoreDep,
    ScorerDep,
    SessionDep,
    TeacherDep,
)
from oralassess.controllers.submissions import serialize_response
from oralassess.services import integrity, responses, review
from oralassess.views import (
    AcceptedResponse,
    IntegritySummaryRead,
    ReleaseRequest,
    ReleaseResponse,
    ResponseRead,
    ReviewRequestRead,
    ReviewResolveRequest,
    SubmissionRead,
)

router = APIRouter(tags=["review"])


@router.post("/submissions/{submission_id}/release")
async def release_feedback(
    submission_id: UUID,
    payload: ReleaseRequest,
    teacher: TeacherDep,
    db_session: SessionDep,
    audit: AuditLogDep,
) -> ReleaseResponse:
    """Publish feedback once scoring is complete; releasing again updates it."""

    result = await review.release_feedback(
        db_session,
        submission_id=submission_id,
        teacher=teacher,
        comment=payload.comment,
        score_override=payload.scoreOverride,
        override_reason_category=payload.overrideReasonCategory,
        override_reason=payload.overrideReason,
        audit=audit,
    )
    return ReleaseResponse(
        submission=SubmissionRead.model_validate(result.submission),
        finalScore=result.final_score,
    )


@router.post("/submissions/{submission_id}/regrade", status_code=status.HTTP_202_ACCEPTED)
async def regrade_submission(
    submission_id: UUID,
    teacher: TeacherDep,
    db_session: SessionDep,
    dispatcher: DispatcherDep,
    scorer: ScorerDep,
    audit: AuditLogDep,
) -> AcceptedResponse:
    await review.request_regrade(
        db_session,
        submission_id=submission_id,
        teacher=teacher,
        dispatcher=dispatcher,
        scorer=scorer,
        audit=audit,
    )
    return AcceptedResponse(message="Regrade scheduled", task=f"regrade:{submission_id}")


@router.get("/submissions/{submission_id}/responses")
async def list_submission_responses(
    submission_id: UUID,
    teacher: TeacherDep,
    db_session: SessionDep,
    media_store: MediaStoreDep,
) -> list[ResponseRead]:
    stored = await responses.list_teacher_responses(
        db_session,
        submission_id=submission_id,
        teacher=teacher,
        media_store=media_store,
    )
    return [serialize_response(item) for item in stored]


@router.post("/review-requests/{request_id}/resolve")
async def resolve_review_request(
    request_id: UUID,
    payload: ReviewResolveRequest,
    teacher: TeacherDep,
    db_session: SessionDep,
    audit: AuditLogDep,
) -> ReviewRequestRead:
    review_request = await review.resolve_review(
        db_session,
        request_id=request_id,
        teacher=teacher,
        resolution=payload.status,
        response=payload.response,
        audit=audit,
    )
    return ReviewRequestRead.model_validate(review_request)


@router.get("/assessments/{assessment_id}/integrity")
async def list_integrity_summaries(
    assessment_id: UUID,
    teacher: TeacherDep,
    db_session: SessionDep,
) -> list[IntegritySummaryRead]:
    summaries = await integrity.summarize_integrity(
        db_session,
        assessment_id=assessment_id,
        teacher=teacher,
    )
    return [
        IntegritySummaryRead(
            submissionId=item.submission_id,
            studentId=item.student_id,
            status=item.status,
            fastStart=item.fast_start,
            slowStart=item.slow_start,
            screenshotAttempt=item.screenshot_attempt,
            tabSwitchCount=item.tab_switch_count,
            tabSwitchTotalMs=item.tab_switch_total_ms,
            flagCount=item.flag_count,
        )
        for item in summaries
    ]
