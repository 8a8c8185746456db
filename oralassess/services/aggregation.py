"""Score aggregation shared by the scoring dispatcher and the release gate."""

from __future__ import annotations

from dataclasses import dataclass, field
from statistics import fmean
from typing import Iterable, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from oralassess.models.submission import QuestionScore


@dataclass
class QuestionAggregate:
    question_id: UUID
    axis_scores: dict[str, int] = field(default_factory=dict)
    justifications: dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def score(self) -> Optional[float]:
        """Mean of the axes present; ``None`` when nothing was scored."""

        if not self.axis_scores:
            return None
        return fmean(self.axis_scores.values())


def aggregate_questions(rows: Iterable[QuestionScore]) -> dict[UUID, QuestionAggregate]:
    grouped: dict[UUID, QuestionAggregate] = {}
    for row in rows:
        aggregate = grouped.setdefault(
            row.question_id, QuestionAggregate(question_id=row.question_id)
        )
        axis = getattr(row.scorer_type, "value", row.scorer_type)
        aggregate.axis_scores[axis] = row.score
        aggregate.justifications[axis] = row.justification
    return grouped


def submission_score(questions: Sequence[QuestionAggregate]) -> Optional[float]:
    """Mean of question scores; unscored questions are left out of the denominator."""

    present = [question.score for question in questions if question.score is not None]
    if not present:
        return None
    return round(fmean(present), 2)


async def load_question_scores(
    session: AsyncSession,
    submission_id: UUID,
) -> dict[UUID, QuestionAggregate]:
    result = await session.execute(
        select(QuestionScore).where(QuestionScore.submission_id == submission_id)
    )
    return aggregate_questions(result.scalars().all())


async def compute_submission_score(
    session: AsyncSession,
    submission_id: UUID,
) -> Optional[float]:
    questions = await load_question_scores(session, submission_id)
    return submission_score(list(questions.values()))


__all__ = [
    "QuestionAggregate",
    "aggregate_questions",
    "compute_submission_score",
    "load_question_scores",
    "submission_score",
]
