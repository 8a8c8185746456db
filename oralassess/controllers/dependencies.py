"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from oralassess.application.interfaces import MediaStoreInterface
from oralassess.config.dependencies import (
    get_audit_log,
    get_dispatcher,
    get_media_store,
    get_response_processor,
    get_scoring_dispatcher,
)
from oralassess.database import get_session
from oralassess.models.user import AccountType, User as UserModel
from oralassess.pipelines.response import ResponseProcessor
from oralassess.services.audit import AuditLog
from oralassess.services.dispatcher import TaskDispatcher
from oralassess.services.scoring import ScoringDispatcher
from oralassess.utils import AuthenticationError, decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    session: SessionDep,
) -> UserModel:
    """Resolve and validate the user referenced by the bearer token."""

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(credentials.credentials)
        user_id = int(payload.sub)
    except (AuthenticationError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from None

    result = await session.execute(select(UserModel).where(UserModel.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return user


CurrentUserDep = Annotated[UserModel, Depends(get_current_user)]


async def get_current_student(user: CurrentUserDep) -> UserModel:
    if user.account_type != AccountType.STUDENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only students can perform this action",
        )
    return user


async def get_current_teacher(user: CurrentUserDep) -> UserModel:
    if user.account_type != AccountType.TEACHER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only teachers can perform this action",
        )
    return user


def client_ip(request: Request) -> Optional[str]:
    """First hop of ``X-Forwarded-For``, then ``X-Real-IP``, then the socket peer."""

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",", 1)[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


StudentDep = Annotated[UserModel, Depends(get_current_student)]
TeacherDep = Annotated[UserModel, Depends(get_current_teacher)]
ClientIpDep = Annotated[Optional[str], Depends(client_ip)]
MediaStoreDep = Annotated[MediaStoreInterface, Depends(get_media_store)]
DispatcherDep = Annotated[TaskDispatcher, Depends(get_dispatcher)]
AuditLogDep = Annotated[AuditLog, Depends(get_audit_log)]
ProcessorDep = Annotated[ResponseProcessor, Depends(get_response_processor)]
ScorerDep = Annotated[ScoringDispatcher, Depends(get_scoring_dispatcher)]


__all__ = [
    "AuditLogDep",
    "ClientIpDep",
    "CurrentUserDep",
    "DispatcherDep",
    "MediaStoreDep",
    "ProcessorDep",
    "ScorerDep",
    "SessionDep",
    "StudentDep",
    "TeacherDep",
    "bearer_scheme",
    "client_ip",
    "get_current_student",
    "get_current_teacher",
    "get_current_user",
]
