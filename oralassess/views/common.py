"""Common response schemas."""

from typing import Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    detail: str
    code: Optional[str] = None


class AcceptedResponse(BaseModel):
    """Returned when work was scheduled in the background."""

    message: str
    task: Optional[str] = None
