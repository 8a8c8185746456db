"""Shared fixtures: per-test SQLite database, seed data and fake collaborators."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
from uuid import UUID

_RUNTIME_DIR = Path(tempfile.mkdtemp(prefix="oralassess-tests-"))
os.environ.setdefault("DB_DSN", f"sqlite+aiosqlite:///{_RUNTIME_DIR / 'app.db'}")
os.environ.setdefault("LOG_FILE", str(_RUNTIME_DIR / "app.log"))
os.environ.setdefault("PIPELINE_LOG_FILE", str(_RUNTIME_DIR / "pipeline.log"))
os.environ.setdefault("TRANSCRIPT_LOG_FILE", str(_RUNTIME_DIR / "transcripts.log"))
os.environ.setdefault("TRANSCRIBE_ENABLED", "false")

import anyio  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from oralassess.application.interfaces import (  # noqa: E402
    AxisScore,
    LanguageModelInterface,
    MediaStoreInterface,
    OffTopicJudgment,
    TranscriptionServiceInterface,
)
from oralassess.models import Base  # noqa: E402
from oralassess.models.assessment import (  # noqa: E402
    Assessment,
    AssessmentIntegrity,
    AssessmentQuestion,
    AssessmentStatus,
    QuestionType,
    Rubric,
    RubricAxis,
)
from oralassess.models.class_group import ClassGroup  # noqa: E402
from oralassess.models.user import AccountType, User, UserStatus  # noqa: E402
from oralassess.models.workspace import Workspace  # noqa: E402
from oralassess.services.dispatcher import TaskDispatcher  # noqa: E402
from oralassess.services.storage import StorageError  # noqa: E402
from oralassess.services.transcribe import TranscriptionError  # noqa: E402

REASONING_INSTRUCTIONS = "Score the quality of the student's reasoning."
EVIDENCE_INSTRUCTIONS = "Score how well the student supports claims with evidence."


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def engine(tmp_path: Path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    async def _create_tables() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    anyio.run(_create_tables)
    yield engine
    anyio.run(engine.dispose)


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@dataclass
class Seed:
    workspace_id: int
    class_id: int
    teacher: User
    student: User
    other_student: User
    outsider_teacher: User
    assessment_id: UUID
    question_ids: list[UUID]


async def _seed(
    factory: async_sessionmaker[AsyncSession],
    *,
    pledge_enabled: bool = True,
    allow_grace_restart: bool = True,
    is_practice: bool = False,
) -> Seed:
    async with factory() as session:
        workspace = Workspace(name="North High")
        other_workspace = Workspace(name="South High")
        session.add_all([workspace, other_workspace])
        await session.flush()

        class_group = ClassGroup(name="Biology 1", workspace_id=workspace.id)
        session.add(class_group)
        await session.flush()

        teacher = User(
            email="teacher@example.com",
            first_name="Tess",
            last_name="Teacher",
            status=UserStatus.ACTIVE,
            account_type=AccountType.TEACHER,
            workspace_id=workspace.id,
        )
        student = User(
            email="student@example.com",
            first_name="Sam",
            last_name="Student",
            status=UserStatus.ACTIVE,
            account_type=AccountType.STUDENT,
            workspace_id=workspace.id,
            class_id=class_group.id,
        )
        other_student = User(
            email="other@example.com",
            first_name="Olive",
            last_name="Other",
            status=UserStatus.ACTIVE,
            account_type=AccountType.STUDENT,
            workspace_id=workspace.id,
            class_id=class_group.id,
        )
        outsider_teacher = User(
            email="outsider@example.com",
            first_name="Otto",
            last_name="Outsider",
            status=UserStatus.ACTIVE,
            account_type=AccountType.TEACHER,
            workspace_id=other_workspace.id,
        )
        session.add_all([teacher, student, other_student, outsider_teacher])

        assessment = Assessment(
            class_id=class_group.id,
            title="Photosynthesis oral check",
            status=AssessmentStatus.LIVE,
            is_practice=is_practice,
        )
        session.add(assessment)
        await session.flush()

        questions = [
            AssessmentQuestion(
                assessment_id=assessment.id,
                order_index=0,
                question_text="Why do leaves look green?",
                question_type=QuestionType.AUDIO_FOLLOWUP,
            ),
            AssessmentQuestion(
                assessment_id=assessment.id,
                order_index=1,
                question_text="What would happen to a plant kept in the dark?",
                question_type=QuestionType.AUDIO,
            ),
        ]
        session.add_all(questions)
        session.add_all(
            [
                Rubric(
                    assessment_id=assessment.id,
                    rubric_type=RubricAxis.REASONING,
                    instructions=REASONING_INSTRUCTIONS,
                    scale_min=1,
                    scale_max=5,
                ),
                Rubric(
                    assessment_id=assessment.id,
                    rubric_type=RubricAxis.EVIDENCE,
                    instructions=EVIDENCE_INSTRUCTIONS,
                    scale_min=1,
                    scale_max=5,
                ),
                AssessmentIntegrity(
                    assessment_id=assessment.id,
                    pledge_enabled=pledge_enabled,
                    pledge_version=2,
                    allow_grace_restart=allow_grace_restart,
                ),
            ]
        )
        await session.commit()

        return Seed(
            workspace_id=workspace.id,
            class_id=class_group.id,
            teacher=teacher,
            student=student,
            other_student=other_student,
            outsider_teacher=outsider_teacher,
            assessment_id=assessment.id,
            question_ids=[question.id for question in questions],
        )


@pytest.fixture
def seed(session_factory) -> Seed:
    return anyio.run(_seed, session_factory)


@pytest.fixture
def practice_seed(session_factory) -> Seed:
    async def _run() -> Seed:
        return await _seed(session_factory, pledge_enabled=False, is_practice=True)

    return anyio.run(_run)


class FakeMediaStore(MediaStoreInterface):
    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        self.objects[path] = (data, content_type)

    async def download(self, path: str) -> bytes:
        try:
            return self.objects[path][0]
        except KeyError:
            raise StorageError(f"Missing object {path}") from None

    async def signed_url(self, path: str, ttl_seconds: int) -> str:
        return f"https://media.test/{path}?expires={ttl_seconds}"

    async def delete(self, path: str) -> None:
        self.objects.pop(path, None)


class FakeTranscriber(TranscriptionServiceInterface):
    def __init__(self, transcript: Optional[str] = "Chlorophyll reflects green light.", error: Optional[Exception] = None) -> None:
        self.transcript = transcript
        self.error = error
        self.calls = 0

    async def transcribe(self, audio: bytes, mime_type: str) -> Optional[str]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.transcript


class FakeLanguageModel(LanguageModelInterface):
    """Deterministic model: reasoning scores 4, evidence scores 3 unless overridden."""

    def __init__(self) -> None:
        self.followup = "Which wavelengths does chlorophyll absorb?"
        self.followup_error: Optional[Exception] = None
        self.off_topic = OffTopicJudgment(off_topic=False, confidence=0.2)
        self.axis_scores: dict[str, float] = {
            REASONING_INSTRUCTIONS: 4,
            EVIDENCE_INSTRUCTIONS: 3,
        }
        self.axis_errors: dict[str, Exception] = {}
        self.score_calls: list[tuple[str, Optional[str], str]] = []

    async def generate_followup(self, question: str, transcript: str) -> str:
        if self.followup_error is not None:
            raise self.followup_error
        return self.followup

    async def detect_off_topic(self, question: str, transcript: str) -> OffTopicJudgment:
        return self.off_topic

    async def score_axis(
        self,
        question: str,
        transcript: Optional[str],
        rubric_instructions: str,
        scale_min: int,
        scale_max: int,
    ) -> AxisScore:
        self.score_calls.append((question, transcript, rubric_instructions))
        if rubric_instructions in self.axis_errors:
            raise self.axis_errors[rubric_instructions]
        return AxisScore(
            score=self.axis_scores[rubric_instructions],
            justification=f"Scored against: {rubric_instructions}",
        )


class RecordingDispatcher(TaskDispatcher):
    """Records dispatched work without scheduling it."""

    def __init__(self) -> None:
        super().__init__()
        self.dispatched: list[tuple[str, Any]] = []

    def dispatch(self, name, factory):  # type: ignore[override]
        self.dispatched.append((name, factory))
        return None

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.dispatched]


@pytest.fixture
def media_store() -> FakeMediaStore:
    return FakeMediaStore()


@pytest.fixture
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture
def language_model() -> FakeLanguageModel:
    return FakeLanguageModel()


__all__ = [
    "EVIDENCE_INSTRUCTIONS",
    "FakeLanguageModel",
    "FakeMediaStore",
    "FakeTranscriber",
    "REASONING_INSTRUCTIONS",
    "RecordingDispatcher",
    "Seed",
    "TranscriptionError",
    "complete_attempt",
]


async def complete_attempt(
    session_factory: async_sessionmaker[AsyncSession],
    seed: Seed,
    *,
    media_store: FakeMediaStore,
    transcriber: FakeTranscriber,
    language_model: FakeLanguageModel,
    submit: bool = True,
) -> UUID:
    """Begin, pledge, record every question, let processing finish, then submit.

    Scoring is only recorded, not run, so tests drive it explicitly.
    """

    from oralassess.pipelines.response import ResponseProcessor
    from oralassess.services import lifecycle
    from oralassess.services.audit import AuditLog
    from oralassess.services.responses import record_response

    audit = AuditLog(session_factory)
    dispatcher = TaskDispatcher()
    processor = ResponseProcessor(session_factory, media_store, transcriber, language_model)

    async with session_factory() as session:
        begun = await lifecycle.begin_submission(
            session, assessment_id=seed.assessment_id, student=seed.student
        )
        submission_id = begun.submission.id

    async with session_factory() as session:
        context_integrity = await session.get(AssessmentIntegrity, seed.assessment_id)
        pledge_enabled = bool(context_integrity and context_integrity.pledge_enabled)
    if pledge_enabled:
        async with session_factory() as session:
            await lifecycle.accept_pledge(
                session,
                submission_id=submission_id,
                student=seed.student,
                ip_address="203.0.113.7",
                audit=audit,
            )

    for question_id in seed.question_ids:
        async with session_factory() as session:
            await record_response(
                session,
                submission_id=submission_id,
                student=seed.student,
                question_id=question_id,
                audio=b"fake-webm-bytes",
                mime_type="audio/webm;codecs=opus",
                duration_seconds=12.5,
                media_store=media_store,
                dispatcher=dispatcher,
                processor=processor,
            )
        await dispatcher.drain(timeout=10)

    if submit:
        async with session_factory() as session:
            await lifecycle.submit(
                session,
                submission_id=submission_id,
                student=seed.student,
                dispatcher=RecordingDispatcher(),
                scorer=None,  # type: ignore[arg-type]
                audit=audit,
            )
    return submission_id
