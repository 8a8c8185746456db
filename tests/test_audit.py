"""Audit trail persistence and score aggregation."""

from __future__ import annotations

import contextlib
import uuid

import pytest
from sqlalchemy import func, select

from conftest import RecordingDispatcher
from oralassess.models.assessment import RubricAxis
from oralassess.models.integrity import ActorRole, AssessmentEvent, AuditEventType
from oralassess.models.submission import QuestionScore, SubmissionStatus
from oralassess.services import lifecycle
from oralassess.services.aggregation import aggregate_questions, submission_score
from oralassess.services.audit import AuditLog

pytestmark = pytest.mark.anyio


@contextlib.asynccontextmanager
async def _broken_session():
    raise RuntimeError("database unavailable")
    yield  # pragma: no cover


async def test_failed_audit_write_is_swallowed():
    audit = AuditLog(_broken_session)

    recorded = await audit.record(
        AuditEventType.SUBMITTED,
        actor_id=1,
        actor_role=ActorRole.STUDENT,
        submission_id=uuid.uuid4(),
    )

    assert recorded is False


async def test_events_are_listed_in_order(session_factory, seed):
    audit = AuditLog(session_factory)
    submission_id = uuid.uuid4()

    for event_type in (AuditEventType.SUBMITTED, AuditEventType.PUBLISHED):
        assert await audit.record(
            event_type,
            actor_id=seed.teacher.id,
            actor_role=ActorRole.TEACHER,
            submission_id=submission_id,
            assessment_id=seed.assessment_id,
            new_value={"event": event_type.value},
        )

    events = await audit.list_events(submission_id)
    assert [event.event_type for event in events] == [
        AuditEventType.SUBMITTED,
        AuditEventType.PUBLISHED,
    ]
    assert events[1].new_value == {"event": "published"}
    assert await audit.list_events(uuid.uuid4()) == []


def _score(question_id, axis, value):
    return QuestionScore(
        submission_id=uuid.uuid4(),
        question_id=question_id,
        scorer_type=axis,
        score=value,
        justification=None,
    )


def test_aggregation_leaves_unscored_questions_out():
    answered, partial = uuid.uuid4(), uuid.uuid4()
    rows = [
        _score(answered, RubricAxis.REASONING, 5),
        _score(answered, RubricAxis.EVIDENCE, 4),
        _score(partial, RubricAxis.REASONING, 2),
    ]

    grouped = aggregate_questions(rows)

    assert grouped[answered].score == 4.5
    assert grouped[partial].score == 2
    assert submission_score(list(grouped.values())) == 3.25
    assert submission_score([]) is None


async def test_audit_outage_does_not_fail_the_recorded_operation(session_factory, seed):
    audit = AuditLog(_broken_session)
    dispatcher = RecordingDispatcher()

    async with session_factory() as session:
        begun = await lifecycle.begin_submission(
            session, assessment_id=seed.assessment_id, student=seed.student
        )
    async with session_factory() as session:
        pledged = await lifecycle.accept_pledge(
            session,
            submission_id=begun.submission.id,
            student=seed.student,
            ip_address=None,
            audit=audit,
        )
    assert pledged.newly_accepted is True

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
    assert dispatcher.names == [f"score:{begun.submission.id}"]
    async with session_factory() as session:
        events = await session.execute(select(func.count(AssessmentEvent.id)))
    assert events.scalar_one() == 0
