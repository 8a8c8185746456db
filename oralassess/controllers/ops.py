"""Support queues and the scheduled scoring sweep."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from oralassess.config.settings import settings
from oralassess.controllers.dependencies import (
    DispatcherDep,
    ProcessorDep,
    ScorerDep,
    SessionDep,
    TeacherDep,
)
from oralassess.services import responses, support
from oralassess.views import (
    ResponseRead,
    ScorePendingItem,
    ScorePendingResponse,
    SubmissionRead,
)

router = APIRouter(prefix="/ops", tags=["ops"])

logger = logging.getLogger(__name__)


def require_cron_secret(
    x_cron_secret: Annotated[Optional[str], Header()] = None,
) -> None:
    """Reject scheduler calls that do not carry the configured shared secret."""

    configured = settings.scoring.cron_secret
    if configured is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduled scoring is not configured",
        )
    if not x_cron_secret or not secrets.compare_digest(
        x_cron_secret, configured.get_secret_value()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )


@router.get("/scoring/errors")
async def scoring_errors(teacher: TeacherDep, db_session: SessionDep) -> list[SubmissionRead]:
    rows = await support.list_scoring_errors(db_session, teacher)
    return [SubmissionRead.model_validate(row) for row in rows]


@router.get("/scoring/stuck")
async def stuck_scoring(teacher: TeacherDep, db_session: SessionDep) -> list[SubmissionRead]:
    rows = await support.list_stuck_scoring(db_session, teacher)
    return [SubmissionRead.model_validate(row) for row in rows]


@router.get("/responses/stuck")
async def stuck_responses(teacher: TeacherDep, db_session: SessionDep) -> list[ResponseRead]:
    rows = await support.list_stuck_responses(db_session, teacher)
    return [ResponseRead.model_validate(row) for row in rows]


@router.post("/responses/{response_id}/retry", status_code=status.HTTP_202_ACCEPTED)
async def retry_response(
    response_id: UUID,
    teacher: TeacherDep,
    db_session: SessionDep,
    dispatcher: DispatcherDep,
    processor: ProcessorDep,
) -> ResponseRead:
    """Reprocess a failed or stalled recording from the start."""

    response = await responses.retry_response(
        db_session,
        response_id=response_id,
        teacher=teacher,
        dispatcher=dispatcher,
        processor=processor,
    )
    return ResponseRead.model_validate(response)


@router.post("/scoring/run", dependencies=[Depends(require_cron_secret)])
async def score_pending(
    scorer: ScorerDep,
    limit: int = Query(settings.scoring.batch_limit, ge=1, le=10),
) -> ScorePendingResponse:
    """Score the oldest pending or failed submissions; the caller waits for the batch."""

    outcomes = await scorer.score_pending(limit)
    logger.info("Scheduled scoring processed %s submission(s)", len(outcomes))
    return ScorePendingResponse(
        processed=len(outcomes),
        results=[
            ScorePendingItem(submissionId=submission_id, scoringStatus=final_status)
            for submission_id, final_status in outcomes
        ],
    )
