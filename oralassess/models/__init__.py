"""SQLAlchemy models for the oral assessment core."""

from .base import Base
from .assessment import (  # noqa: F401
    Assessment,
    AssessmentIntegrity,
    AssessmentQuestion,
    Rubric,
)
from .class_group import ClassGroup  # noqa: F401
from .integrity import AssessmentEvent, IntegrityEvent, RestartEvent, ReviewRequest  # noqa: F401
from .log import RequestLog  # noqa: F401
from .submission import QuestionScore, Submission, SubmissionResponse  # noqa: F401
from .user import User  # noqa: F401
from .workspace import Workspace  # noqa: F401

__all__ = [
    "Base",
    "Assessment",
    "AssessmentEvent",
    "AssessmentIntegrity",
    "AssessmentQuestion",
    "ClassGroup",
    "IntegrityEvent",
    "QuestionScore",
    "RequestLog",
    "RestartEvent",
    "ReviewRequest",
    "Rubric",
    "Submission",
    "SubmissionResponse",
    "User",
    "Workspace",
]
