"""Student endpoints for the submission lifecycle.

A student begins (or resumes) an attempt, accepts the integrity pledge,
uploads one recording per question, polls processing, and finally submits.
Processing and scoring run in the background; every endpoint here returns
without waiting for them.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, File, Form, UploadFile, status

from oralassess.controllers.dependencies import (
    AuditLogDep,
    ClientIpDep,
    DispatcherDep,
    MediaStoreDep,
    ProcessorDep,
    ScorerDep,
    SessionDep,
    StudentDep,
)
from oralassess.pipelines.response import read_audio_bytes
from oralassess.services import integrity, lifecycle, responses, review
from oralassess.services.ownership import load_integrity, resolve_student_submission
from oralassess.services.responses import StoredResponse
from oralassess.views import (
    AxisFeedback,
    BeginSubmissionRequest,
    BeginSubmissionResponse,
    FeedbackRead,
    IntegrityEventCreate,
    IntegrityEventRead,
    PledgeResponse,
    QuestionFeedbackRead,
    ResponseRead,
    RestartRequest,
    RestartResponse,
    ReviewRequestCreate,
    ReviewRequestRead,
    SubmissionRead,
)

router = APIRouter(prefix="/student/submissions", tags=["student-submissions"])

logger = logging.getLogger(__name__)

_QUESTION_ID_FORM = Form(..., alias="questionId")
_DURATION_FORM = Form(None, alias="durationSeconds")
_AUDIO_FILE_UPLOAD = File(...)


def serialize_response(stored: StoredResponse) -> ResponseRead:
    view = ResponseRead.model_validate(stored.response)
    view.audioUrl = stored.signed_url
    return view


@router.post("", status_code=status.HTTP_201_CREATED)
async def begin_submission(
    payload: BeginSubmissionRequest,
    student: StudentDep,
    db_session: SessionDep,
) -> BeginSubmissionResponse:
    """Start an attempt, or return the one already in progress."""

    result = await lifecycle.begin_submission(
        db_session,
        assessment_id=payload.assessmentId,
        student=student,
    )
    integrity = await load_integrity(db_session, payload.assessmentId)
    return BeginSubmissionResponse(
        submission=SubmissionRead.model_validate(result.submission),
        reused=result.reused,
        pledgeEnabled=bool(integrity and integrity.pledge_enabled),
        pledgeVersion=integrity.pledge_version if integrity else None,
        pledgeText=integrity.pledge_text if integrity and integrity.pledge_enabled else None,
        allowGraceRestart=bool(integrity and integrity.allow_grace_restart),
    )


@router.get("/{submission_id}")
async def get_submission(
    submission_id: UUID,
    student: StudentDep,
    db_session: SessionDep,
) -> SubmissionRead:
    context = await resolve_student_submission(db_session, submission_id, student)
    return SubmissionRead.model_validate(context.submission)


@router.post("/{submission_id}/pledge")
async def accept_pledge(
    submission_id: UUID,
    student: StudentDep,
    db_session: SessionDep,
    ip_address: ClientIpDep,
    audit: AuditLogDep,
) -> PledgeResponse:
    result = await lifecycle.accept_pledge(
        db_session,
        submission_id=submission_id,
        student=student,
        ip_address=ip_address,
        audit=audit,
    )
    return PledgeResponse(
        submission=SubmissionRead.model_validate(result.submission),
        newlyAccepted=result.newly_accepted,
    )


@router.post("/{submission_id}/responses", status_code=status.HTTP_202_ACCEPTED)
async def upload_response(
    submission_id: UUID,
    student: StudentDep,
    db_session: SessionDep,
    media_store: MediaStoreDep,
    dispatcher: DispatcherDep,
    processor: ProcessorDep,
    question_id: UUID = _QUESTION_ID_FORM,
    duration_seconds: Optional[float] = _DURATION_FORM,
    audio_file: UploadFile = _AUDIO_FILE_UPLOAD,
) -> ResponseRead:
    """Store the recording and queue transcription and follow-up generation."""

    content_type = audio_file.content_type
    audio_bytes = await read_audio_bytes(audio_file)
    stored = await responses.record_response(
        db_session,
        submission_id=submission_id,
        student=student,
        question_id=question_id,
        audio=audio_bytes,
        mime_type=content_type,
        duration_seconds=duration_seconds,
        media_store=media_store,
        dispatcher=dispatcher,
        processor=processor,
    )
    return serialize_response(stored)


@router.get("/{submission_id}/responses")
async def list_responses(
    submission_id: UUID,
    student: StudentDep,
    db_session: SessionDep,
    media_store: MediaStoreDep,
) -> list[ResponseRead]:
    """Poll processing status, follow-up questions and restart hints."""

    stored = await responses.list_student_responses(
        db_session,
        submission_id=submission_id,
        student=student,
        media_store=media_store,
    )
    return [serialize_response(item) for item in stored]


@router.post("/{submission_id}/submit", status_code=status.HTTP_202_ACCEPTED)
async def submit_submission(
    submission_id: UUID,
    student: StudentDep,
    db_session: SessionDep,
    dispatcher: DispatcherDep,
    scorer: ScorerDep,
    audit: AuditLogDep,
) -> SubmissionRead:
    submission = await lifecycle.submit(
        db_session,
        submission_id=submission_id,
        student=student,
        dispatcher=dispatcher,
        scorer=scorer,
        audit=audit,
    )
    return SubmissionRead.model_validate(submission)


@router.post("/{submission_id}/restart", status_code=status.HTTP_201_CREATED)
async def restart_submission(
    submission_id: UUID,
    payload: RestartRequest,
    student: StudentDep,
    db_session: SessionDep,
    audit: AuditLogDep,
) -> RestartResponse:
    """Use the single grace restart for this assessment."""

    result = await lifecycle.restart_grace(
        db_session,
        submission_id=submission_id,
        student=student,
        reason=payload.reason,
        question_id=payload.questionId,
        audit=audit,
    )
    return RestartResponse(
        submission=SubmissionRead.model_validate(result.submission),
        previousSubmissionId=result.previous_submission_id,
    )


@router.get("/{submission_id}/feedback")
async def get_feedback(
    submission_id: UUID,
    student: StudentDep,
    db_session: SessionDep,
) -> FeedbackRead:
    payload = await review.feedback_payload(
        db_session,
        submission_id=submission_id,
        student=student,
    )
    return FeedbackRead(
        submissionId=payload.submission.id,
        finalScore=payload.final_score,
        teacherComment=payload.teacher_comment,
        publishedAt=payload.submission.published_at,
        questions=[
            QuestionFeedbackRead(
                questionId=item.question_id,
                orderIndex=item.order_index,
                questionText=item.question_text,
                transcript=item.transcript,
                followupQuestion=item.followup_question,
                score=item.scores.score,
                axes={
                    axis: AxisFeedback(
                        score=score,
                        justification=item.scores.justifications.get(axis),
                    )
                    for axis, score in item.scores.axis_scores.items()
                },
            )
            for item in payload.questions
        ],
    )


@router.post("/{submission_id}/review-request", status_code=status.HTTP_201_CREATED)
async def create_review_request(
    submission_id: UUID,
    payload: ReviewRequestCreate,
    student: StudentDep,
    db_session: SessionDep,
    audit: AuditLogDep,
) -> ReviewRequestRead:
    review_request = await review.request_review(
        db_session,
        submission_id=submission_id,
        student=student,
        note=payload.note,
        audit=audit,
    )
    return ReviewRequestRead.model_validate(review_request)


@router.post("/{submission_id}/integrity", status_code=status.HTTP_201_CREATED)
async def report_integrity_event(
    submission_id: UUID,
    payload: IntegrityEventCreate,
    student: StudentDep,
    db_session: SessionDep,
) -> IntegrityEventRead:
    """Record a tab switch, start-timing or screenshot signal from the client."""

    event = await integrity.record_integrity_event(
        db_session,
        submission_id=submission_id,
        student=student,
        event_type=payload.eventType,
        duration_ms=payload.durationMs,
        question_id=payload.questionId,
        metadata=payload.metadata,
    )
    return IntegrityEventRead.model_validate(event)
