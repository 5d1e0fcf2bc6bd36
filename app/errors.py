"""Failure taxonomy for Veo job orchestration.

Every error carries two labels: ``code`` is the category surfaced to the caller
(the same vocabulary Firebase callable functions use) and ``reason`` is the
short value persisted to the job's ``error`` field.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

MAX_ERROR_MESSAGE = 500


def truncate_message(value: Any, limit: int = MAX_ERROR_MESSAGE) -> str:
    text = str(value or "").strip()
    return text[:limit]


class JobError(Exception):
    code = "internal"
    reason = "internal"
    status_code = 500
    # Whether the job record is moved to ``error`` when this is raised after admission.
    marks_job = True
    # Persist the truncated message instead of the short reason.
    persist_message = False

    def __init__(self, message: str | None = None, *, reason: str | None = None) -> None:
        self.message = truncate_message(message or self.__class__.reason)
        if reason:
            self.reason = reason
        super().__init__(self.message)

    @property
    def persisted_error(self) -> str:
        return self.message if self.persist_message else self.reason

    @property
    def detail(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "reason": self.reason}


class Unauthenticated(JobError):
    code = "unauthenticated"
    reason = "unauthenticated"
    status_code = 401
    marks_job = False


class InvalidArgument(JobError):
    code = "invalid-argument"
    reason = "invalid_argument"
    status_code = 400
    marks_job = False


class JobNotFound(JobError):
    code = "not-found"
    reason = "job_not_found"
    status_code = 404
    marks_job = False


class PermissionDenied(JobError):
    code = "permission-denied"
    reason = "not_owner"
    status_code = 403
    marks_job = False


class FailedPrecondition(JobError):
    code = "failed-precondition"
    reason = "failed_precondition"
    status_code = 400


class PromptSpecMissing(FailedPrecondition):
    reason = "missing_prompt_spec"
    marks_job = False


class MissingCredential(FailedPrecondition):
    reason = "missing_veo_api_key"
    marks_job = False


class JobAlreadyFailed(FailedPrecondition):
    reason = "job_failed"
    marks_job = False

    def __init__(self, previous: str | None = None) -> None:
        super().__init__(f"job already failed: {previous or 'unknown'}", reason=previous or "job_failed")


class ImageRequired(FailedPrecondition):
    reason = "image_required"


class ImageResolutionFailed(FailedPrecondition):
    reason = "image_resolution_failed"


class ProviderRejected(FailedPrecondition):
    reason = "provider_rejected"
    persist_message = True


class ProviderSubmissionError(JobError):
    reason = "provider_submission_failed"
    persist_message = True


class ProviderPollError(JobError):
    reason = "provider_poll_failed"
    persist_message = True


class PollTimeout(JobError):
    code = "deadline-exceeded"
    reason = "timeout"
    status_code = 504


class NoArtifact(JobError):
    reason = "no_video"


class RehostError(RuntimeError):
    """Rehosting failed; callers fall back to the provider URL."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


__all__ = [
    "MAX_ERROR_MESSAGE",
    "FailedPrecondition",
    "ImageRequired",
    "ImageResolutionFailed",
    "InvalidArgument",
    "JobAlreadyFailed",
    "JobError",
    "JobNotFound",
    "MissingCredential",
    "NoArtifact",
    "PermissionDenied",
    "PollTimeout",
    "PromptSpecMissing",
    "ProviderPollError",
    "ProviderRejected",
    "ProviderSubmissionError",
    "RehostError",
    "Unauthenticated",
    "truncate_message",
]
