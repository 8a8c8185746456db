"""Pydantic schemas used as views in the MVC architecture."""

from .common import AcceptedResponse, ErrorResponse
from .integrity import IntegrityEventCreate, IntegrityEventRead, IntegritySummaryRead
from .ops import ScorePendingItem, ScorePendingResponse
from .review import ReleaseRequest, ReleaseResponse, ReviewResolveRequest
from .submissions import (
    AxisFeedback,
    BeginSubmissionRequest,
    BeginSubmissionResponse,
    FeedbackRead,
    PledgeResponse,
    QuestionFeedbackRead,
    ResponseRead,
    RestartRequest,
    RestartResponse,
    ReviewRequestCreate,
    ReviewRequestRead,
    SubmissionRead,
)

__all__ = [
    "AcceptedResponse",
    "AxisFeedback",
    "BeginSubmissionRequest",
    "BeginSubmissionResponse",
    "ErrorResponse",
    "FeedbackRead",
    "IntegrityEventCreate",
    "IntegrityEventRead",
    "IntegritySummaryRead",
    "PledgeResponse",
    "QuestionFeedbackRead",
    "ReleaseRequest",
    "ReleaseResponse",
    "ResponseRead",
    "RestartRequest",
    "RestartResponse",
    "ReviewRequestCreate",
    "ReviewRequestRead",
    "ReviewResolveRequest",
    "ScorePendingItem",
    "ScorePendingResponse",
    "SubmissionRead",
]
