"""Client integrity signals and the teacher-facing rollup."""

from __future__ import annotations

import uuid

import pytest

from oralassess.models.integrity import IntegrityEventType
from oralassess.services import integrity, lifecycle
from oralassess.services.errors import Forbidden, NotFound

pytestmark = pytest.mark.anyio


async def _begin(session_factory, seed, student):
    async with session_factory() as session:
        begun = await lifecycle.begin_submission(
            session, assessment_id=seed.assessment_id, student=student
        )
    return begun.submission.id


async def _report(session_factory, student, submission_id, event_type, **fields):
    async with session_factory() as session:
        return await integrity.record_integrity_event(
            session,
            submission_id=submission_id,
            student=student,
            event_type=event_type,
            **fields,
        )


async def _summaries(session_factory, seed, teacher=None):
    async with session_factory() as session:
        return await integrity.summarize_integrity(
            session,
            assessment_id=seed.assessment_id,
            teacher=teacher or seed.teacher,
        )


async def test_event_is_stored_with_question_and_metadata(session_factory, seed):
    submission_id = await _begin(session_factory, seed, seed.student)

    event = await _report(
        session_factory,
        seed.student,
        submission_id,
        IntegrityEventType.TAB_SWITCH,
        duration_ms=4200,
        question_id=seed.question_ids[1],
        metadata={"visibility": "hidden"},
    )

    assert event.submission_id == submission_id
    assert event.event_type == IntegrityEventType.TAB_SWITCH
    assert event.duration_ms == 4200
    assert event.question_id == seed.question_ids[1]
    assert event.event_metadata == {"visibility": "hidden"}
    assert event.created_at is not None


async def test_events_are_owner_only_and_scoped_to_the_assessment(session_factory, seed):
    submission_id = await _begin(session_factory, seed, seed.student)

    with pytest.raises(Forbidden):
        await _report(session_factory, seed.other_student, submission_id, IntegrityEventType.FAST_START)

    with pytest.raises(NotFound):
        await _report(
            session_factory,
            seed.student,
            submission_id,
            IntegrityEventType.SLOW_START,
            question_id=uuid.uuid4(),
        )


async def test_summary_counts_signals_per_submission(session_factory, seed):
    flagged_id = await _begin(session_factory, seed, seed.student)
    quiet_id = await _begin(session_factory, seed, seed.other_student)

    for duration in (1000, 1500, 800, 1200):
        await _report(
            session_factory, seed.student, flagged_id, IntegrityEventType.TAB_SWITCH, duration_ms=duration
        )
    await _report(session_factory, seed.student, flagged_id, IntegrityEventType.FAST_START)
    await _report(session_factory, seed.student, flagged_id, IntegrityEventType.SCREENSHOT_ATTEMPT)

    summaries = {item.submission_id: item for item in await _summaries(session_factory, seed)}

    flagged = summaries[flagged_id]
    assert flagged.tab_switch_count == 4
    assert flagged.tab_switch_total_ms == 4500
    assert flagged.fast_start == 1
    assert flagged.screenshot_attempt == 1
    assert flagged.tab_switch_flagged is True
    assert flagged.flag_count == 3

    quiet = summaries[quiet_id]
    assert quiet.student_id == seed.other_student.id
    assert quiet.flag_count == 0


async def test_long_absence_flags_tab_switching_once(session_factory, seed):
    submission_id = await _begin(session_factory, seed, seed.student)
    await _report(
        session_factory, seed.student, submission_id, IntegrityEventType.TAB_SWITCH, duration_ms=25000
    )

    (summary,) = await _summaries(session_factory, seed)

    assert summary.tab_switch_count == 1
    assert summary.tab_switch_flagged is True
    assert summary.flag_count == 1


async def test_summary_is_limited_to_the_teachers_workspace(session_factory, seed):
    await _begin(session_factory, seed, seed.student)

    with pytest.raises(Forbidden):
        await _summaries(session_factory, seed, teacher=seed.outsider_teacher)
