"""Recording intake, polling and explicit reprocessing of submission responses."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from oralassess.application.interfaces import MediaStoreInterface
from oralassess.config.settings import settings
from oralassess.models.assessment import AssessmentQuestion
from oralassess.models.base import utcnow
from oralassess.models.submission import (
    ProcessingStatus,
    Submission,
    SubmissionResponse,
    SubmissionStatus,
)
from oralassess.models.user import User
from oralassess.pipelines.response import (
    ResponseJob,
    ResponseProcessor,
    normalize_mime_type,
    storage_path_for,
)
from oralassess.services.dispatcher import TaskDispatcher
from oralassess.services.errors import (
    AlreadySubmitted,
    InvalidResponseUpload,
    NotFound,
    PledgeRequired,
    QuestionOutOfOrder,
    ResponseAlreadyRecorded,
    ResponseNotRetryable,
)
from oralassess.services.lifecycle import restart_used
from oralassess.services.ownership import (
    load_integrity,
    resolve_student_submission,
    resolve_teacher_submission,
)
from oralassess.services.storage import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredResponse:
    response: SubmissionResponse
    signed_url: Optional[str]


async def _signed_url(media_store: MediaStoreInterface, path: str) -> Optional[str]:
    try:
        return await media_store.signed_url(path, settings.s3.signed_url_ttl_seconds)
    except StorageError as exc:
        logger.warning("Could not sign recording url for %s: %s", path, exc)
        return None


async def _discard_upload(media_store: MediaStoreInterface, path: str) -> None:
    """Remove a blob whose row lost the insert race to a concurrent upload."""

    try:
        await media_store.delete(path)
    except StorageError as exc:
        logger.warning("Could not remove orphaned recording %s: %s", path, exc)


async def _with_urls(
    media_store: MediaStoreInterface,
    responses: Sequence[SubmissionResponse],
) -> list[StoredResponse]:
    return [
        StoredResponse(response=response, signed_url=await _signed_url(media_store, response.storage_path))
        for response in responses
    ]


async def _load_responses(session: AsyncSession, submission_id: UUID) -> Sequence[SubmissionResponse]:
    result = await session.execute(
        select(SubmissionResponse)
        .join(AssessmentQuestion, AssessmentQuestion.id == SubmissionResponse.question_id)
        .where(SubmissionResponse.submission_id == submission_id)
        .order_by(AssessmentQuestion.order_index)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


async def _check_question_order(
    session: AsyncSession,
    submission: Submission,
    question: AssessmentQuestion,
) -> None:
    earlier = await session.execute(
        select(AssessmentQuestion.id).where(
            AssessmentQuestion.assessment_id == submission.assessment_id,
            AssessmentQuestion.order_index < question.order_index,
        )
    )
    earlier_ids = set(earlier.scalars().all())
    if not earlier_ids:
        return

    answered = await session.execute(
        select(SubmissionResponse.question_id).where(
            SubmissionResponse.submission_id == submission.id,
            SubmissionResponse.question_id.in_(earlier_ids),
        )
    )
    if earlier_ids - set(answered.scalars().all()):
        raise QuestionOutOfOrder()


def _job_for(
    response: SubmissionResponse,
    question: AssessmentQuestion,
    detect_off_topic: bool,
) -> ResponseJob:
    return ResponseJob(
        response_id=response.id,
        storage_path=response.storage_path,
        mime_type=response.mime_type,
        question_text=question.question_text,
        requires_followup=question.requires_followup,
        detect_off_topic=detect_off_topic,
        attempt=response.processing_attempt,
    )


async def record_response(
    session: AsyncSession,
    *,
    submission_id: UUID,
    student: User,
    question_id: UUID,
    audio: bytes,
    mime_type: Optional[str],
    duration_seconds: Optional[float],
    media_store: MediaStoreInterface,
    dispatcher: TaskDispatcher,
    processor: ResponseProcessor,
) -> StoredResponse:
    """Store one recording and queue it for processing without waiting."""

    student_id = student.id
    context = await resolve_student_submission(session, submission_id, student)
    submission = context.submission

    if submission.status != SubmissionStatus.STARTED:
        raise AlreadySubmitted("Recordings can only be added to an in-progress submission.")
    if context.pledge_enabled and not submission.pledge_accepted:
        raise PledgeRequired("Accept the integrity pledge before recording.")
    if not audio:
        raise InvalidResponseUpload("The recording is empty.")

    question = await session.get(AssessmentQuestion, question_id)
    if question is None or question.assessment_id != submission.assessment_id:
        raise NotFound("Question not found for this assessment.")

    existing = await session.execute(
        select(SubmissionResponse.id).where(
            SubmissionResponse.submission_id == submission_id,
            SubmissionResponse.question_id == question_id,
        )
    )
    if existing.first() is not None:
        raise ResponseAlreadyRecorded()
    await _check_question_order(session, submission, question)

    content_type = normalize_mime_type(mime_type)
    storage_path = storage_path_for(submission_id, question_id, content_type)
    await media_store.upload(storage_path, audio, content_type)

    detect_off_topic = context.allow_grace_restart and not await restart_used(
        session, submission.assessment_id, student_id
    )

    response = SubmissionResponse(
        submission_id=submission_id,
        question_id=question_id,
        storage_path=storage_path,
        mime_type=content_type,
        duration_seconds=duration_seconds,
        processing_status=ProcessingStatus.QUEUED,
        processing_attempt=0,
    )
    session.add(response)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        await _discard_upload(media_store, storage_path)
        raise ResponseAlreadyRecorded() from None

    job = _job_for(response, question, detect_off_topic)
    dispatcher.dispatch(f"process-response:{response.id}", lambda: processor.process(job))
    logger.info(
        "Stored response=%s submission=%s question=%s followup=%s off_topic_check=%s",
        response.id,
        submission_id,
        question_id,
        job.requires_followup,
        detect_off_topic,
    )
    return StoredResponse(response=response, signed_url=await _signed_url(media_store, storage_path))


async def list_student_responses(
    session: AsyncSession,
    *,
    submission_id: UUID,
    student: User,
    media_store: MediaStoreInterface,
) -> list[StoredResponse]:
    await resolve_student_submission(session, submission_id, student)
    return await _with_urls(media_store, await _load_responses(session, submission_id))


async def list_teacher_responses(
    session: AsyncSession,
    *,
    submission_id: UUID,
    teacher: User,
    media_store: MediaStoreInterface,
) -> list[StoredResponse]:
    await resolve_teacher_submission(session, submission_id, teacher)
    return await _with_urls(media_store, await _load_responses(session, submission_id))


def is_stalled(response: SubmissionResponse, stuck_after_minutes: Optional[int] = None) -> bool:
    if response.processing_status.is_terminal:
        return False
    minutes = stuck_after_minutes or settings.pipeline.stuck_after_minutes
    return response.updated_at <= utcnow() - timedelta(minutes=minutes)


async def retry_response(
    session: AsyncSession,
    *,
    response_id: UUID,
    teacher: User,
    dispatcher: TaskDispatcher,
    processor: ResponseProcessor,
) -> SubmissionResponse:
    """Full reprocessing of a failed or stalled recording, starting from ``queued``."""

    response = await session.get(SubmissionResponse, response_id, populate_existing=True)
    if response is None:
        raise NotFound("Response not found.")
    context = await resolve_teacher_submission(session, response.submission_id, teacher)

    previous_status = response.processing_status
    if previous_status != ProcessingStatus.ERROR and not is_stalled(response):
        raise ResponseNotRetryable()

    question = await session.get(AssessmentQuestion, response.question_id)
    if question is None:
        raise NotFound("Question not found.")

    integrity = await load_integrity(session, context.assessment.id)
    detect_off_topic = bool(integrity and integrity.allow_grace_restart) and not await restart_used(
        session, context.assessment.id, context.submission.student_id
    )

    result = await session.execute(
        update(SubmissionResponse)
        .where(
            SubmissionResponse.id == response_id,
            SubmissionResponse.processing_status == previous_status,
            SubmissionResponse.updated_at == response.updated_at,
        )
        .values(
            processing_status=ProcessingStatus.QUEUED,
            processing_attempt=SubmissionResponse.processing_attempt + 1,
            processing_error=None,
            restart_hint=None,
            restart_hint_confidence=None,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        raise ResponseNotRetryable("The recording changed while requesting a retry.")
    await session.commit()
    await session.refresh(response)

    job = _job_for(response, question, detect_off_topic)
    dispatcher.dispatch(f"retry-response:{response_id}", lambda: processor.process(job))
    logger.info("Retry queued for response=%s (was %s)", response_id, previous_status.value)
    return response


__all__ = [
    "StoredResponse",
    "is_stalled",
    "list_student_responses",
    "list_teacher_responses",
    "record_response",
    "retry_response",
]
