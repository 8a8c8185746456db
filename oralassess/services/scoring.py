"""Rubric scoring for submitted work.

One run claims the submission (``pending``/``error`` -> ``in_progress``), waits
until every response reached a terminal processing status, scores each
question on each rubric axis concurrently and upserts one ``QuestionScore`` row
per (submission, question, axis). The run ends ``complete`` or ``error``; it is
never retried automatically. The claim stamps ``scoring_started_at``; only the
run holding the latest stamp may finish, so a forced regrade supersedes an
older run still in flight.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from oralassess.application.interfaces import AxisScore, LanguageModelInterface
from oralassess.config.settings import settings
from oralassess.models.assessment import Assessment, AssessmentQuestion, Rubric, RubricAxis
from oralassess.models.base import utcnow
from oralassess.models.submission import (
    QuestionScore,
    ScoringStatus,
    Submission,
    SubmissionResponse,
    SubmissionStatus,
)
from oralassess.services.audit import SessionFactory
from oralassess.services.review import auto_publish
from oralassess.telemetry import record_scoring_run

logger = logging.getLogger("oralassess.pipeline")

CLAIMABLE_STATUSES = (ScoringStatus.PENDING, ScoringStatus.ERROR)


class ScoringRunError(RuntimeError):
    """Raised when a scoring run cannot finish; recorded on the submission."""


@dataclass(frozen=True)
class _AxisTask:
    question: AssessmentQuestion
    transcript: Optional[str]
    rubric: Rubric


def clamp_score(raw: float, scale_min: int, scale_max: int) -> int:
    """Round half up to an integer and clamp to the rubric scale."""

    if not math.isfinite(raw):
        raise ValueError(f"Model returned a non-numeric score: {raw!r}")
    rounded = int(math.floor(float(raw) + 0.5))
    return max(scale_min, min(scale_max, rounded))


def _truncate(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[:limit]


def _upsert_score(dialect_name: str, values: dict[str, Any]):
    if dialect_name == "postgresql":
        statement = pg_insert(QuestionScore).values(**values)
    elif dialect_name == "sqlite":
        statement = sqlite_insert(QuestionScore).values(**values)
    else:  # pragma: no cover - deployment uses postgres, tests sqlite
        raise ScoringRunError(f"Unsupported database dialect for score upsert: {dialect_name}")
    return statement.on_conflict_do_update(
        index_elements=["submission_id", "question_id", "scorer_type"],
        set_={
            "score": statement.excluded.score,
            "justification": statement.excluded.justification,
            "updated_at": statement.excluded.updated_at,
        },
    )


class ScoringDispatcher:
    """Score submissions against the assessment's reasoning and evidence rubrics."""

    def __init__(
        self,
        session_factory: SessionFactory,
        model: LanguageModelInterface,
        *,
        response_wait_seconds: Optional[float] = None,
        response_poll_seconds: Optional[float] = None,
    ) -> None:
        self._session_factory = session_factory
        self._model = model
        self._wait_seconds = (
            settings.scoring.response_wait_seconds
            if response_wait_seconds is None
            else response_wait_seconds
        )
        self._poll_seconds = (
            settings.scoring.response_poll_seconds
            if response_poll_seconds is None
            else response_poll_seconds
        )

    async def score_submission(
        self,
        submission_id: UUID,
        force: bool = False,
    ) -> Optional[ScoringStatus]:
        """Run one scoring pass; returns the final status, or ``None`` if not claimed
        or superseded by a newer claim before finishing.

        ``force`` is the explicit regrade path and may claim from any scoring
        status, including a stalled ``in_progress`` run.
        """

        started = time.perf_counter()
        claimed_at = await self._claim(submission_id, force)
        if claimed_at is None:
            return None

        try:
            rows, failures = await self._score_claimed(submission_id)
        except Exception as exc:
            logger.exception("Scoring failed for submission=%s", submission_id)
            if not await self._finish(
                submission_id, claimed_at, ScoringStatus.ERROR, str(exc) or repr(exc)
            ):
                return None
            record_scoring_run(ScoringStatus.ERROR.value, time.perf_counter() - started)
            return ScoringStatus.ERROR

        if failures:
            failed_questions = {question_id for question_id, _ in failures}
            message = (
                f"{len(failed_questions)} question(s) failed during scoring. {failures[0][1]}"
            )
            final_status, error = ScoringStatus.ERROR, message
        else:
            final_status, error = ScoringStatus.COMPLETE, None
        if not await self._finish(submission_id, claimed_at, final_status, error, rows):
            return None

        record_scoring_run(final_status.value, time.perf_counter() - started)
        logger.info("Scoring finished submission=%s status=%s", submission_id, final_status.value)
        return final_status

    async def score_and_publish(self, submission_id: UUID) -> bool:
        """Practice-mode continuation: score, then publish without teacher review."""

        final_status = await self.score_submission(submission_id)
        if final_status == ScoringStatus.ERROR:
            return False
        async with self._session_factory() as session:
            return await auto_publish(session, submission_id)

    async def score_pending(self, limit: Optional[int] = None) -> list[tuple[UUID, Optional[ScoringStatus]]]:
        """Score the oldest submitted work still waiting (or failed), one at a time."""

        batch = max(1, min(limit or settings.scoring.batch_limit, 10))
        async with self._session_factory() as session:
            result = await session.execute(
                select(Submission.id, Assessment.is_practice)
                .join(Assessment, Assessment.id == Submission.assessment_id)
                .where(
                    Submission.status == SubmissionStatus.SUBMITTED,
                    Submission.scoring_status.in_(CLAIMABLE_STATUSES),
                )
                .order_by(Submission.submitted_at)
                .limit(batch)
            )
            candidates = result.all()

        outcomes: list[tuple[UUID, Optional[ScoringStatus]]] = []
        for submission_id, is_practice in candidates:
            final_status = await self.score_submission(submission_id)
            if is_practice and final_status == ScoringStatus.COMPLETE:
                async with self._session_factory() as session:
                    await auto_publish(session, submission_id)
            outcomes.append((submission_id, final_status))
        return outcomes

    async def _claim(self, submission_id: UUID, force: bool) -> Optional[datetime]:
        """Claim the run; the returned ``scoring_started_at`` identifies it when finishing."""

        claimed_at = utcnow()
        async with self._session_factory() as session:
            statement = update(Submission).where(
                Submission.id == submission_id,
                Submission.status == SubmissionStatus.SUBMITTED,
            )
            if not force:
                statement = statement.where(Submission.scoring_status.in_(CLAIMABLE_STATUSES))
            result = await session.execute(
                statement.values(
                    scoring_status=ScoringStatus.IN_PROGRESS,
                    scoring_started_at=claimed_at,
                    scoring_error=None,
                ).execution_options(synchronize_session=False)
            )
            await session.commit()

        if result.rowcount != 1:
            logger.info(
                "Scoring not claimed for submission=%s (force=%s); not submitted or already handled",
                submission_id,
                force,
            )
            return None
        return claimed_at

    async def _score_claimed(
        self,
        submission_id: UUID,
    ) -> tuple[list[dict[str, Any]], list[tuple[UUID, str]]]:
        """Score every (question, axis); returns the rows to upsert and per-axis failures."""

        responses = await self._wait_for_responses(submission_id)
        if not responses:
            raise ScoringRunError("No recordings found for this submission.")

        async with self._session_factory() as session:
            submission = await session.get(Submission, submission_id)
            rubrics = await self._load_rubrics(session, submission.assessment_id)
            questions = await self._load_questions(
                session, [response.question_id for response in responses]
            )

        tasks: list[_AxisTask] = []
        for response in responses:
            question = questions.get(response.question_id)
            if question is None:
                raise ScoringRunError(f"Question {response.question_id} no longer exists.")
            for axis in RubricAxis:
                tasks.append(
                    _AxisTask(question=question, transcript=response.transcript, rubric=rubrics[axis])
                )

        # Model calls run concurrently; rows are written by _finish in one transaction.
        results = await asyncio.gather(
            *(self._score_axis(submission_id, task) for task in tasks),
            return_exceptions=True,
        )

        rows: list[dict[str, Any]] = []
        failures: list[tuple[UUID, str]] = []
        for task, outcome in zip(tasks, results):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failures.append((task.question.id, f"{task.rubric.rubric_type.value}: {outcome}"))
                logger.warning(
                    "Axis scoring failed submission=%s question=%s axis=%s: %s",
                    submission_id,
                    task.question.id,
                    task.rubric.rubric_type.value,
                    outcome,
                )
                continue
            rows.append(outcome)

        return rows, failures

    async def _score_axis(self, submission_id: UUID, task: _AxisTask) -> dict[str, Any]:
        """Model call plus clamping; any failure here counts against this axis only."""

        outcome = await self._model.score_axis(
            task.question.question_text,
            task.transcript,
            task.rubric.instructions,
            task.rubric.scale_min,
            task.rubric.scale_max,
        )
        return self._score_values(submission_id, task, outcome)

    @staticmethod
    def _score_values(submission_id: UUID, task: _AxisTask, outcome: AxisScore) -> dict[str, Any]:
        now = utcnow()
        justification = outcome.justification or ""
        return {
            "id": uuid.uuid4(),
            "submission_id": submission_id,
            "question_id": task.question.id,
            "scorer_type": task.rubric.rubric_type,
            "score": clamp_score(outcome.score, task.rubric.scale_min, task.rubric.scale_max),
            "justification": _truncate(justification, settings.scoring.max_justification_length),
            "created_at": now,
            "updated_at": now,
        }

    async def _wait_for_responses(self, submission_id: UUID) -> Sequence[SubmissionResponse]:
        """Poll until every response is terminal, or fail once the wait budget is spent."""

        deadline = time.monotonic() + self._wait_seconds
        while True:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(SubmissionResponse).where(
                        SubmissionResponse.submission_id == submission_id
                    )
                )
                responses = result.scalars().all()

            in_flight = [r for r in responses if not r.processing_status.is_terminal]
            if not in_flight:
                return responses
            if time.monotonic() >= deadline:
                raise ScoringRunError(
                    f"{len(in_flight)} recording(s) still processing after "
                    f"{self._wait_seconds:.0f}s; retry scoring once they finish."
                )
            await asyncio.sleep(self._poll_seconds)

    @staticmethod
    async def _load_rubrics(session: AsyncSession, assessment_id: UUID) -> dict[RubricAxis, Rubric]:
        result = await session.execute(select(Rubric).where(Rubric.assessment_id == assessment_id))
        rubrics = {rubric.rubric_type: rubric for rubric in result.scalars().all()}
        missing = [axis.value for axis in RubricAxis if axis not in rubrics]
        if missing:
            raise ScoringRunError(f"Rubric missing for axis: {', '.join(missing)}")
        return rubrics

    @staticmethod
    async def _load_questions(
        session: AsyncSession,
        question_ids: list[UUID],
    ) -> dict[UUID, AssessmentQuestion]:
        result = await session.execute(
            select(AssessmentQuestion).where(AssessmentQuestion.id.in_(question_ids))
        )
        return {question.id: question for question in result.scalars().all()}

    async def _finish(
        self,
        submission_id: UUID,
        claimed_at: datetime,
        final_status: ScoringStatus,
        error: Optional[str],
        rows: Sequence[dict[str, Any]] = (),
    ) -> bool:
        """Write scores and the final status atomically, only while this run holds the claim."""

        values: dict[str, Any] = {
            "scoring_status": final_status,
            "scoring_error": _truncate(error, settings.scoring.max_error_length) if error else None,
        }
        if final_status == ScoringStatus.COMPLETE:
            values["scored_at"] = utcnow()

        async with self._session_factory() as session:
            result = await session.execute(
                update(Submission)
                .where(
                    Submission.id == submission_id,
                    Submission.scoring_status == ScoringStatus.IN_PROGRESS,
                    Submission.scoring_started_at == claimed_at,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await session.rollback()
                logger.warning(
                    "Scoring result for submission=%s discarded; run was superseded", submission_id
                )
                return False

            dialect_name = session.get_bind().dialect.name
            for row in rows:
                await session.execute(_upsert_score(dialect_name, row))
            await session.commit()
        return True


__all__ = ["ScoringDispatcher", "ScoringRunError", "clamp_score"]
