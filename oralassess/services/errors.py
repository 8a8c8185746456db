"""Caller-facing errors raised by the submission services.

Each error carries the HTTP status and a stable machine-readable code so the
FastAPI layer can translate it without knowing about individual cases.
"""

from __future__ import annotations

from fastapi import status


class SubmissionError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "submission_error"
    default_detail: str = "The request could not be completed."

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(SubmissionError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_detail = "Not found."


class Forbidden(SubmissionError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_detail = "You do not have access to this resource."


class NotAssignedToStudent(Forbidden):
    code = "not_assigned"
    default_detail = "This assessment is not assigned to your class."


class AssessmentNotLive(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "assessment_not_live"
    default_detail = "This assessment is not available."


class AlreadySubmitted(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "already_submitted"
    default_detail = "Already submitted."


class PledgeRequired(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "pledge_required"
    default_detail = "Accept the integrity pledge first."


class PledgeNotEnabled(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "pledge_not_enabled"
    default_detail = "This assessment does not use an integrity pledge."


class RestartNotAllowed(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "restart_not_allowed"
    default_detail = "Restarts are not enabled for this assessment."


class RestartAlreadyUsed(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "restart_already_used"
    default_detail = "Restart already used."


class InvalidResponseUpload(SubmissionError):
    code = "invalid_response"
    default_detail = "The recording could not be accepted."


class ResponseAlreadyRecorded(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "response_already_recorded"
    default_detail = "This question already has a recording."


class QuestionOutOfOrder(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "question_out_of_order"
    default_detail = "Answer the earlier questions first."


class ResponseNotRetryable(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "response_not_retryable"
    default_detail = "Only failed or stalled recordings can be reprocessed."


class ReleaseBlocked(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "release_blocked"
    default_detail = "Feedback cannot be released until scoring is complete."


class ScoringNotAllowed(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "scoring_not_allowed"
    default_detail = "Only submitted work can be scored."


class InvalidScoreOverride(SubmissionError):
    status_code = 422
    code = "invalid_score_override"
    default_detail = "The score override is not valid."


class FeedbackNotPublished(SubmissionError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "feedback_not_published"
    default_detail = "Feedback has not been released yet."


class ReviewRequestExists(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "review_request_exists"
    default_detail = "A review has already been requested for this submission."


class ReviewRequestResolved(SubmissionError):
    status_code = status.HTTP_409_CONFLICT
    code = "review_request_resolved"
    default_detail = "This review request has already been resolved."


class InvalidReviewResolution(SubmissionError):
    status_code = 422
    code = "invalid_review_resolution"
    default_detail = "Resolve a review request as reviewed, updated or no_change."


__all__ = [
    "AlreadySubmitted",
    "AssessmentNotLive",
    "FeedbackNotPublished",
    "Forbidden",
    "InvalidResponseUpload",
    "InvalidReviewResolution",
    "InvalidScoreOverride",
    "NotAssignedToStudent",
    "NotFound",
    "PledgeNotEnabled",
    "PledgeRequired",
    "QuestionOutOfOrder",
    "ReleaseBlocked",
    "ResponseAlreadyRecorded",
    "ResponseNotRetryable",
    "RestartAlreadyUsed",
    "RestartNotAllowed",
    "ReviewRequestExists",
    "ReviewRequestResolved",
    "ScoringNotAllowed",
    "SubmissionError",
]
