"""Recording intake and the per-response processing pipeline."""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError
from sqlalchemy import select, update

from conftest import FakeTranscriber, RecordingDispatcher, TranscriptionError, complete_attempt
from oralassess.application.interfaces import OffTopicJudgment
from oralassess.config.settings import settings
from oralassess.models.base import utcnow
from oralassess.models.submission import (
    ProcessingStatus,
    RestartHint,
    SubmissionResponse,
    SubmissionStatus,
)
from oralassess.pipelines.response import (
    ResponseJob,
    ResponseProcessor,
    allowed_sources,
    normalize_mime_type,
)
from oralassess.services import lifecycle, responses
from oralassess.services.audit import AuditLog
from oralassess.services.dispatcher import TaskDispatcher
from oralassess.services.errors import (
    InvalidResponseUpload,
    PledgeRequired,
    QuestionOutOfOrder,
    ResponseAlreadyRecorded,
    ResponseNotRetryable,
)
from oralassess.services.response_contract import OffTopicResponse
from oralassess.services.responses import record_response, retry_response

pytestmark = pytest.mark.anyio


async def _responses(session_factory, submission_id):
    async with session_factory() as session:
        result = await session.execute(
            select(SubmissionResponse)
            .where(SubmissionResponse.submission_id == submission_id)
            .order_by(SubmissionResponse.created_at)
        )
        return result.scalars().all()


async def _started_attempt(session_factory, seed, pledge=True):
    audit = AuditLog(session_factory)
    async with session_factory() as session:
        begun = await lifecycle.begin_submission(
            session, assessment_id=seed.assessment_id, student=seed.student
        )
    if pledge:
        async with session_factory() as session:
            await lifecycle.accept_pledge(
                session,
                submission_id=begun.submission.id,
                student=seed.student,
                ip_address=None,
                audit=audit,
            )
    return begun.submission.id


async def _record(session_factory, seed, submission_id, question_id, media_store, dispatcher, processor):
    async with session_factory() as session:
        return await record_response(
            session,
            submission_id=submission_id,
            student=seed.student,
            question_id=question_id,
            audio=b"audio-bytes",
            mime_type="audio/webm",
            duration_seconds=8.0,
            media_store=media_store,
            dispatcher=dispatcher,
            processor=processor,
        )


def test_forward_order_only():
    assert allowed_sources(ProcessingStatus.TRANSCRIBING) == (ProcessingStatus.QUEUED,)
    assert ProcessingStatus.COMPLETE not in allowed_sources(ProcessingStatus.ERROR)
    assert ProcessingStatus.ERROR not in allowed_sources(ProcessingStatus.COMPLETE)


def test_mime_type_normalisation():
    assert normalize_mime_type("audio/webm;codecs=opus") == "audio/webm"
    assert normalize_mime_type(None, "answer.mp3") == "audio/mpeg"
    assert normalize_mime_type(None) == "audio/webm"
    with pytest.raises(InvalidResponseUpload):
        normalize_mime_type("video/quicktime")


async def test_processing_produces_transcript_and_followup(
    session_factory, seed, media_store, transcriber, language_model
):
    submission_id = await complete_attempt(
        session_factory,
        seed,
        media_store=media_store,
        transcriber=transcriber,
        language_model=language_model,
        submit=False,
    )

    first, second = await _responses(session_factory, submission_id)
    assert first.processing_status == ProcessingStatus.COMPLETE
    assert first.transcript == "Chlorophyll reflects green light."
    assert first.ai_followup_question == language_model.followup
    assert first.ai_followup_created_at is not None
    assert first.processing_error is None
    # The second question does not ask for a follow-up.
    assert second.processing_status == ProcessingStatus.COMPLETE
    assert second.ai_followup_question is None
    assert first.storage_path.startswith(f"{submission_id}/{seed.question_ids[0]}/")
    assert first.storage_path.endswith(".webm")
    assert first.storage_path in media_store.objects


async def test_transcription_failure_errors_the_response_but_not_submit(
    session_factory, seed, media_store, language_model
):
    transcriber = FakeTranscriber(error=TranscriptionError("Transcription timed out after 120s"))
    submission_id = await complete_attempt(
        session_factory,
        seed,
        media_store=media_store,
        transcriber=transcriber,
        language_model=language_model,
    )

    responses = await _responses(session_factory, submission_id)
    assert all(response.processing_status == ProcessingStatus.ERROR for response in responses)
    assert "timed out" in responses[0].processing_error
    assert responses[0].transcript is None

    from oralassess.models.submission import Submission

    async with session_factory() as session:
        submission = await session.get(Submission, submission_id)
    assert submission.status == SubmissionStatus.SUBMITTED


async def test_empty_transcript_degrades_to_fallback_followup(
    session_factory, seed, media_store, language_model
):
    submission_id = await complete_attempt(
        session_factory,
        seed,
        media_store=media_store,
        transcriber=FakeTranscriber(transcript="   "),
        language_model=language_model,
        submit=False,
    )

    first, _ = await _responses(session_factory, submission_id)
    assert first.processing_status == ProcessingStatus.COMPLETE
    assert first.transcript is None
    assert first.ai_followup_question == settings.pipeline.fallback_followup


async def test_followup_model_failure_uses_fallback(
    session_factory, seed, media_store, transcriber, language_model
):
    language_model.followup_error = RuntimeError("throttled")
    submission_id = await complete_attempt(
        session_factory,
        seed,
        media_store=media_store,
        transcriber=transcriber,
        language_model=language_model,
        submit=False,
    )

    first, _ = await _responses(session_factory, submission_id)
    assert first.processing_status == ProcessingStatus.COMPLETE
    assert first.ai_followup_question == settings.pipeline.fallback_followup


@pytest.mark.parametrize(
    ("judgment", "expected_hint"),
    [
        (OffTopicJudgment(off_topic=True, confidence=0.92), RestartHint.OFF_TOPIC),
        (OffTopicJudgment(off_topic=True, confidence=0.6), None),
        (OffTopicJudgment(off_topic=False, confidence=0.99), None),
        (OffTopicJudgment(off_topic=True, confidence=float("nan")), None),
    ],
)
async def test_only_confident_off_topic_verdicts_become_hints(
    session_factory, seed, media_store, transcriber, language_model, judgment, expected_hint
):
    language_model.off_topic = judgment
    submission_id = await complete_attempt(
        session_factory,
        seed,
        media_store=media_store,
        transcriber=transcriber,
        language_model=language_model,
        submit=False,
    )

    first, _ = await _responses(session_factory, submission_id)
    assert first.restart_hint == expected_hint
    if expected_hint is not None:
        assert first.restart_hint_confidence == pytest.approx(0.92)


async def test_processing_does_not_rerun_finished_responses(
    session_factory, seed, media_store, transcriber, language_model
):
    submission_id = await complete_attempt(
        session_factory,
        seed,
        media_store=media_store,
        transcriber=transcriber,
        language_model=language_model,
        submit=False,
    )
    first, _ = await _responses(session_factory, submission_id)
    processor = ResponseProcessor(session_factory, media_store, transcriber, language_model)
    calls_before = transcriber.calls

    outcome = await processor.process(
        ResponseJob(
            response_id=first.id,
            storage_path=first.storage_path,
            mime_type=first.mime_type,
            question_text="Why do leaves look green?",
            requires_followup=True,
            detect_off_topic=False,
        )
    )

    assert outcome is None
    assert transcriber.calls == calls_before


async def test_recording_requires_pledge(session_factory, seed, media_store, transcriber, language_model):
    submission_id = await _started_attempt(session_factory, seed, pledge=False)
    processor = ResponseProcessor(session_factory, media_store, transcriber, language_model)

    with pytest.raises(PledgeRequired):
        await _record(
            session_factory, seed, submission_id, seed.question_ids[0], media_store, RecordingDispatcher(), processor
        )


async def test_questions_must_be_answered_in_order_and_once(
    session_factory, seed, media_store, transcriber, language_model
):
    submission_id = await _started_attempt(session_factory, seed)
    processor = ResponseProcessor(session_factory, media_store, transcriber, language_model)
    dispatcher = RecordingDispatcher()

    with pytest.raises(QuestionOutOfOrder):
        await _record(session_factory, seed, submission_id, seed.question_ids[1], media_store, dispatcher, processor)

    stored = await _record(
        session_factory, seed, submission_id, seed.question_ids[0], media_store, dispatcher, processor
    )
    assert stored.response.processing_status == ProcessingStatus.QUEUED
    assert stored.signed_url.startswith("https://media.test/")
    assert dispatcher.names == [f"process-response:{stored.response.id}"]

    with pytest.raises(ResponseAlreadyRecorded):
        await _record(session_factory, seed, submission_id, seed.question_ids[0], media_store, dispatcher, processor)


async def test_retry_reprocesses_failed_response(session_factory, seed, media_store, language_model):
    failing = FakeTranscriber(error=TranscriptionError("stream closed"))
    submission_id = await complete_attempt(
        session_factory,
        seed,
        media_store=media_store,
        transcriber=failing,
        language_model=language_model,
        submit=False,
    )
    first, _ = await _responses(session_factory, submission_id)
    assert first.processing_status == ProcessingStatus.ERROR

    recovered = FakeTranscriber(transcript="Leaves reflect green wavelengths.")
    processor = ResponseProcessor(session_factory, media_store, recovered, language_model)
    dispatcher = TaskDispatcher()
    async with session_factory() as session:
        reset = await retry_response(
            session,
            response_id=first.id,
            teacher=seed.teacher,
            dispatcher=dispatcher,
            processor=processor,
        )
    assert reset.processing_status == ProcessingStatus.QUEUED
    assert reset.processing_error is None
    await dispatcher.drain(timeout=10)

    first, _ = await _responses(session_factory, submission_id)
    assert first.processing_status == ProcessingStatus.COMPLETE
    assert first.transcript == "Leaves reflect green wavelengths."


async def test_retry_rejects_healthy_responses_until_stalled(
    session_factory, seed, media_store, transcriber, language_model
):
    submission_id = await _started_attempt(session_factory, seed)
    processor = ResponseProcessor(session_factory, media_store, transcriber, language_model)
    stored = await _record(
        session_factory, seed, submission_id, seed.question_ids[0], media_store, RecordingDispatcher(), processor
    )

    with pytest.raises(ResponseNotRetryable):
        async with session_factory() as session:
            await retry_response(
                session,
                response_id=stored.response.id,
                teacher=seed.teacher,
                dispatcher=RecordingDispatcher(),
                processor=processor,
            )

    stale = utcnow() - timedelta(minutes=settings.pipeline.stuck_after_minutes + 1)
    async with session_factory() as session:
        await session.execute(
            update(SubmissionResponse)
            .where(SubmissionResponse.id == stored.response.id)
            .values(processing_status=ProcessingStatus.TRANSCRIBING, updated_at=stale)
        )
        await session.commit()

    dispatcher = RecordingDispatcher()
    async with session_factory() as session:
        reset = await retry_response(
            session,
            response_id=stored.response.id,
            teacher=seed.teacher,
            dispatcher=dispatcher,
            processor=processor,
        )
    assert reset.processing_status == ProcessingStatus.QUEUED
    assert dispatcher.names == [f"retry-response:{stored.response.id}"]


@pytest.mark.parametrize(
    "raw",
    ['{"offTopic": true, "confidence": NaN}', '{"offTopic": true, "confidence": Infinity}'],
)
def test_off_topic_contract_rejects_non_finite_confidence(raw):
    with pytest.raises(ValidationError):
        OffTopicResponse.from_json(raw)


class _RetryDuringTranscription(FakeTranscriber):
    """A teacher retry lands while this run is still transcribing."""

    def __init__(self, session_factory, seed, retry_processor) -> None:
        super().__init__(transcript="Stale transcript.")
        self.session_factory = session_factory
        self.seed = seed
        self.retry_processor = retry_processor
        self.retry_dispatcher = RecordingDispatcher()
        self.response_id = None

    async def transcribe(self, audio, mime_type):
        stale = utcnow() - timedelta(minutes=settings.pipeline.stuck_after_minutes + 1)
        async with self.session_factory() as session:
            await session.execute(
                update(SubmissionResponse)
                .where(SubmissionResponse.id == self.response_id)
                .values(updated_at=stale)
            )
            await session.commit()
        async with self.session_factory() as session:
            await retry_response(
                session,
                response_id=self.response_id,
                teacher=self.seed.teacher,
                dispatcher=self.retry_dispatcher,
                processor=self.retry_processor,
            )
        return await super().transcribe(audio, mime_type)


async def test_run_superseded_by_retry_leaves_the_retry_in_charge(
    session_factory, seed, media_store, language_model
):
    submission_id = await _started_attempt(session_factory, seed)
    retry_processor = ResponseProcessor(
        session_factory, media_store, FakeTranscriber(transcript="Fresh transcript."), language_model
    )
    transcriber = _RetryDuringTranscription(session_factory, seed, retry_processor)
    stale_processor = ResponseProcessor(session_factory, media_store, transcriber, language_model)
    dispatcher = RecordingDispatcher()
    stored = await _record(
        session_factory, seed, submission_id, seed.question_ids[0], media_store, dispatcher, stale_processor
    )
    transcriber.response_id = stored.response.id
    assert stored.response.processing_attempt == 0

    _, stale_run = dispatcher.dispatched[0]
    assert await stale_run() is None

    (row,) = await _responses(session_factory, submission_id)
    assert row.processing_status == ProcessingStatus.QUEUED
    assert row.transcript is None
    assert row.processing_attempt == 1

    _, retry_run = transcriber.retry_dispatcher.dispatched[0]
    assert await retry_run() == ProcessingStatus.COMPLETE

    (row,) = await _responses(session_factory, submission_id)
    assert row.processing_status == ProcessingStatus.COMPLETE
    assert row.transcript == "Fresh transcript."


async def test_upload_that_loses_the_insert_race_removes_its_blob(
    session_factory, seed, media_store, transcriber, language_model, monkeypatch
):
    submission_id = await _started_attempt(session_factory, seed)
    processor = ResponseProcessor(session_factory, media_store, transcriber, language_model)
    original_restart_used = responses.restart_used

    async def competing_insert(session, assessment_id, student_id):
        async with session_factory() as other:
            other.add(
                SubmissionResponse(
                    submission_id=submission_id,
                    question_id=seed.question_ids[0],
                    storage_path=f"{submission_id}/{seed.question_ids[0]}/winner.webm",
                    mime_type="audio/webm",
                    processing_status=ProcessingStatus.QUEUED,
                )
            )
            await other.commit()
        return await original_restart_used(session, assessment_id, student_id)

    monkeypatch.setattr(responses, "restart_used", competing_insert)
    dispatcher = RecordingDispatcher()

    with pytest.raises(ResponseAlreadyRecorded):
        await _record(
            session_factory, seed, submission_id, seed.question_ids[0], media_store, dispatcher, processor
        )

    assert media_store.objects == {}
    assert dispatcher.names == []
    (row,) = await _responses(session_factory, submission_id)
    assert row.storage_path.endswith("/winner.webm")
