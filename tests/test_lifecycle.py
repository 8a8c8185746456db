"""Submission lifecycle: begin/resume, pledge, submit and the grace restart."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select, update

from conftest import RecordingDispatcher
from oralassess.models.assessment import Assessment, AssessmentIntegrity, AssessmentStatus
from oralassess.models.integrity import AssessmentEvent, AuditEventType, RestartEvent, RestartReason
from oralassess.models.submission import ScoringStatus, Submission, SubmissionStatus
from oralassess.models.user import UserStatus
from oralassess.services import lifecycle
from oralassess.services.audit import AuditLog
from oralassess.services.errors import (
    AlreadySubmitted,
    AssessmentNotLive,
    Forbidden,
    NotAssignedToStudent,
    PledgeRequired,
    RestartAlreadyUsed,
    RestartNotAllowed,
)

pytestmark = pytest.mark.anyio


async def _begin(session_factory, seed, student=None):
    async with session_factory() as session:
        return await lifecycle.begin_submission(
            session, assessment_id=seed.assessment_id, student=student or seed.student
        )


async def _pledge(session_factory, seed, submission_id, audit):
    async with session_factory() as session:
        return await lifecycle.accept_pledge(
            session,
            submission_id=submission_id,
            student=seed.student,
            ip_address="198.51.100.4",
            audit=audit,
        )


async def _restart(session_factory, seed, submission_id, audit):
    async with session_factory() as session:
        return await lifecycle.restart_grace(
            session,
            submission_id=submission_id,
            student=seed.student,
            reason=RestartReason.SLOW_START,
            question_id=None,
            audit=audit,
        )


async def _count(session_factory, statement) -> int:
    async with session_factory() as session:
        return (await session.execute(statement)).scalar_one()


async def test_begin_creates_then_resumes(session_factory, seed):
    first = await _begin(session_factory, seed)
    second = await _begin(session_factory, seed)

    assert first.reused is False
    assert second.reused is True
    assert second.submission.id == first.submission.id
    assert first.submission.status == SubmissionStatus.STARTED
    assert first.submission.scoring_status == ScoringStatus.PENDING


async def test_concurrent_begin_leaves_one_active_submission(session_factory, seed):
    results = await asyncio.gather(*(_begin(session_factory, seed) for _ in range(3)))

    assert len({result.submission.id for result in results}) == 1
    active = await _count(
        session_factory,
        select(func.count(Submission.id)).where(
            Submission.assessment_id == seed.assessment_id,
            Submission.student_id == seed.student.id,
            Submission.status == SubmissionStatus.STARTED,
        ),
    )
    assert active == 1


async def test_begin_rejects_closed_assessment(session_factory, seed):
    async with session_factory() as session:
        await session.execute(
            update(Assessment)
            .where(Assessment.id == seed.assessment_id)
            .values(status=AssessmentStatus.CLOSED)
        )
        await session.commit()

    with pytest.raises(AssessmentNotLive):
        await _begin(session_factory, seed)


async def test_begin_rejects_students_outside_the_class(session_factory, seed):
    seed.other_student.class_id = None
    with pytest.raises(NotAssignedToStudent):
        await _begin(session_factory, seed, student=seed.other_student)


async def test_begin_rejects_suspended_students(session_factory, seed):
    seed.student.status = UserStatus.SUSPENDED
    with pytest.raises(Forbidden):
        await _begin(session_factory, seed)


async def test_pledge_acceptance_is_idempotent(session_factory, seed):
    audit = AuditLog(session_factory)
    begun = await _begin(session_factory, seed)

    first = await _pledge(session_factory, seed, begun.submission.id, audit)
    second = await _pledge(session_factory, seed, begun.submission.id, audit)

    assert first.newly_accepted is True
    assert second.newly_accepted is False
    assert (
        second.submission.integrity_pledge_accepted_at
        == first.submission.integrity_pledge_accepted_at
    )
    assert first.submission.integrity_pledge_version == 2
    assert first.submission.integrity_pledge_ip_address == "198.51.100.4"

    events = await audit.list_events(begun.submission.id)
    assert [event.event_type for event in events] == [AuditEventType.PLEDGE_ACCEPTED]


async def test_submit_requires_pledge_when_enabled(session_factory, seed):
    begun = await _begin(session_factory, seed)

    with pytest.raises(PledgeRequired):
        async with session_factory() as session:
            await lifecycle.submit(
                session,
                submission_id=begun.submission.id,
                student=seed.student,
                dispatcher=RecordingDispatcher(),
                scorer=None,
                audit=AuditLog(session_factory),
            )


async def test_submit_dispatches_scoring_once(session_factory, seed):
    audit = AuditLog(session_factory)
    dispatcher = RecordingDispatcher()
    begun = await _begin(session_factory, seed)
    await _pledge(session_factory, seed, begun.submission.id, audit)

    async with session_factory() as session:
        submitted = await lifecycle.submit(
            session,
            submission_id=begun.submission.id,
            student=seed.student,
            dispatcher=dispatcher,
            scorer=None,
            audit=audit,
        )

    assert submitted.status == SubmissionStatus.SUBMITTED
    assert submitted.submitted_at is not None
    assert submitted.scoring_status == ScoringStatus.PENDING
    assert dispatcher.names == [f"score:{begun.submission.id}"]

    with pytest.raises(AlreadySubmitted):
        async with session_factory() as session:
            await lifecycle.submit(
                session,
                submission_id=begun.submission.id,
                student=seed.student,
                dispatcher=dispatcher,
                scorer=None,
                audit=audit,
            )
    assert len(dispatcher.dispatched) == 1


async def test_practice_submit_dispatches_auto_publish(session_factory, practice_seed):
    dispatcher = RecordingDispatcher()
    begun = await _begin(session_factory, practice_seed)

    async with session_factory() as session:
        await lifecycle.submit(
            session,
            submission_id=begun.submission.id,
            student=practice_seed.student,
            dispatcher=dispatcher,
            scorer=None,
            audit=AuditLog(session_factory),
        )

    assert dispatcher.names == [f"score-and-publish:{begun.submission.id}"]


async def test_new_submission_carries_pledge_forward(session_factory, seed):
    audit = AuditLog(session_factory)
    begun = await _begin(session_factory, seed)
    pledged = await _pledge(session_factory, seed, begun.submission.id, audit)

    restarted = await _restart(session_factory, seed, begun.submission.id, audit)

    assert restarted.submission.id != begun.submission.id
    assert restarted.submission.status == SubmissionStatus.STARTED
    assert (
        restarted.submission.integrity_pledge_accepted_at
        == pledged.submission.integrity_pledge_accepted_at
    )
    assert restarted.submission.integrity_pledge_version == 2


async def test_grace_restart_is_single_use(session_factory, seed):
    audit = AuditLog(session_factory)
    begun = await _begin(session_factory, seed)

    restarted = await _restart(session_factory, seed, begun.submission.id, audit)

    async with session_factory() as session:
        old = await session.get(Submission, begun.submission.id)
    assert old.status == SubmissionStatus.RESTARTED
    assert old.submitted_at is None
    assert old.scoring_status == ScoringStatus.COMPLETE
    assert old.scoring_error == lifecycle.RESTART_SENTINEL
    assert restarted.event.old_submission_id == begun.submission.id
    assert restarted.event.new_submission_id == restarted.submission.id

    with pytest.raises(RestartAlreadyUsed):
        await _restart(session_factory, seed, restarted.submission.id, audit)
    with pytest.raises(RestartAlreadyUsed):
        await _restart(session_factory, seed, begun.submission.id, audit)

    events = await _count(session_factory, select(func.count(RestartEvent.id)))
    assert events == 1


async def test_concurrent_restarts_have_one_winner(session_factory, seed):
    audit = AuditLog(session_factory)
    begun = await _begin(session_factory, seed)

    results = await asyncio.gather(
        _restart(session_factory, seed, begun.submission.id, audit),
        _restart(session_factory, seed, begun.submission.id, audit),
        return_exceptions=True,
    )

    winners = [result for result in results if isinstance(result, lifecycle.RestartResult)]
    losers = [result for result in results if isinstance(result, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], RestartAlreadyUsed)

    assert await _count(session_factory, select(func.count(RestartEvent.id))) == 1
    active = await _count(
        session_factory,
        select(func.count(Submission.id)).where(Submission.status == SubmissionStatus.STARTED),
    )
    assert active == 1


async def test_restart_requires_grace_restart_enabled(session_factory, seed):
    async with session_factory() as session:
        await session.execute(
            update(AssessmentIntegrity)
            .where(AssessmentIntegrity.assessment_id == seed.assessment_id)
            .values(allow_grace_restart=False)
        )
        await session.commit()
    begun = await _begin(session_factory, seed)

    with pytest.raises(RestartNotAllowed):
        await _restart(session_factory, seed, begun.submission.id, AuditLog(session_factory))


async def test_restart_records_audit_event(session_factory, seed):
    audit = AuditLog(session_factory)
    begun = await _begin(session_factory, seed)
    restarted = await _restart(session_factory, seed, begun.submission.id, audit)

    async with session_factory() as session:
        result = await session.execute(
            select(AssessmentEvent).where(AssessmentEvent.event_type == AuditEventType.RESTARTED)
        )
        event = result.scalar_one()
    assert event.submission_id == begun.submission.id
    assert event.new_value["submission_id"] == str(restarted.submission.id)
    assert event.reason == RestartReason.SLOW_START.value
