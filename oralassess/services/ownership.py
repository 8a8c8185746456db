"""Ownership resolution for students and teachers.

Each resolver either returns every row the caller needs or raises
``NotFound``/``Forbidden``; nothing downstream has to handle a missing join.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from oralassess.models.assessment import Assessment, AssessmentIntegrity
from oralassess.models.class_group import ClassGroup
from oralassess.models.submission import Submission
from oralassess.models.user import User
from oralassess.services.errors import Forbidden, NotFound


@dataclass(frozen=True)
class StudentSubmissionContext:
    submission: Submission
    assessment: Assessment
    integrity: Optional[AssessmentIntegrity]

    @property
    def pledge_enabled(self) -> bool:
        return bool(self.integrity and self.integrity.pledge_enabled)

    @property
    def pledge_version(self) -> int:
        return (self.integrity.pledge_version if self.integrity else None) or 1

    @property
    def allow_grace_restart(self) -> bool:
        return bool(self.integrity and self.integrity.allow_grace_restart)


@dataclass(frozen=True)
class TeacherAssessmentContext:
    assessment: Assessment
    class_group: ClassGroup


@dataclass(frozen=True)
class TeacherSubmissionContext:
    submission: Submission
    assessment: Assessment
    class_group: ClassGroup


async def load_integrity(
    session: AsyncSession,
    assessment_id: UUID,
) -> Optional[AssessmentIntegrity]:
    return await session.get(AssessmentIntegrity, assessment_id, populate_existing=True)


async def resolve_student_submission(
    session: AsyncSession,
    submission_id: UUID,
    student: User,
) -> StudentSubmissionContext:
    submission = await session.get(Submission, submission_id, populate_existing=True)
    if submission is None:
        raise NotFound("Submission not found.")
    if submission.student_id != student.id:
        raise Forbidden("This submission belongs to another student.")

    assessment = await session.get(Assessment, submission.assessment_id)
    if assessment is None:
        raise NotFound("Assessment not found.")

    integrity = await load_integrity(session, assessment.id)
    return StudentSubmissionContext(
        submission=submission,
        assessment=assessment,
        integrity=integrity,
    )


async def resolve_teacher_assessment(
    session: AsyncSession,
    assessment_id: UUID,
    teacher: User,
) -> TeacherAssessmentContext:
    assessment = await session.get(Assessment, assessment_id)
    if assessment is None:
        raise NotFound("Assessment not found.")

    class_group = await session.get(ClassGroup, assessment.class_id)
    if class_group is None:
        raise NotFound("Class not found.")

    if teacher.workspace_id is None or teacher.workspace_id != class_group.workspace_id:
        raise Forbidden("This assessment belongs to another workspace.")

    return TeacherAssessmentContext(assessment=assessment, class_group=class_group)


async def resolve_teacher_submission(
    session: AsyncSession,
    submission_id: UUID,
    teacher: User,
) -> TeacherSubmissionContext:
    submission = await session.get(Submission, submission_id, populate_existing=True)
    if submission is None:
        raise NotFound("Submission not found.")

    owned = await resolve_teacher_assessment(session, submission.assessment_id, teacher)
    return TeacherSubmissionContext(
        submission=submission,
        assessment=owned.assessment,
        class_group=owned.class_group,
    )


__all__ = [
    "StudentSubmissionContext",
    "TeacherAssessmentContext",
    "TeacherSubmissionContext",
    "load_integrity",
    "resolve_student_submission",
    "resolve_teacher_assessment",
    "resolve_teacher_submission",
]
