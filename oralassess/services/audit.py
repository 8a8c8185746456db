"""Best-effort audit trail for submission-affecting actions."""

from __future__ import annotations

import logging
from typing import Any, AsyncContextManager, Callable, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from oralassess.models.integrity import ActorRole, AssessmentEvent, AuditEventType

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


class AuditLog:
    """Append events in a session of their own.

    A failed write is logged and swallowed so it can never undo or fail the
    operation being recorded. Callers record events only after their own
    transaction has committed.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        event_type: AuditEventType,
        *,
        actor_id: Optional[int],
        actor_role: ActorRole,
        submission_id: Optional[UUID] = None,
        assessment_id: Optional[UUID] = None,
        student_id: Optional[int] = None,
        previous_value: Optional[dict[str, Any]] = None,
        new_value: Optional[dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> bool:
        """Append one event, returning whether it was persisted."""

        try:
            async with self._session_factory() as session:
                session.add(
                    AssessmentEvent(
                        submission_id=submission_id,
                        assessment_id=assessment_id,
                        student_id=student_id,
                        actor_id=actor_id,
                        actor_role=actor_role,
                        event_type=event_type,
                        previous_value=previous_value,
                        new_value=new_value,
                        reason=reason[:1000] if reason else None,
                    )
                )
                await session.commit()
        except Exception as exc:
            logger.warning(
                "Audit event %s for submission=%s was not recorded: %s",
                event_type.value,
                submission_id,
                exc,
            )
            return False
        return True

    async def list_events(self, submission_id: UUID) -> Sequence[AssessmentEvent]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AssessmentEvent)
                .where(AssessmentEvent.submission_id == submission_id)
                .order_by(AssessmentEvent.created_at, AssessmentEvent.id)
            )
            return result.scalars().all()


__all__ = ["AuditLog", "SessionFactory"]
