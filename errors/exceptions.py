"""Domain-specific exceptions for the worksheet and assessment services.

These exceptions let the service and API layers distinguish failure modes
and map each one onto an HTTP status without inspecting messages.
"""

from __future__ import annotations

from models.errors import ErrorCode


class AppError(Exception):
    """Base class for every error the HTTP layer knows how to render."""

    status_code: int = 500
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message if not details else f"{message}: {details}")


# ── Request / identity errors ────────────────────────────────


class InvalidRequestError(AppError):
    """Malformed or missing input. Raised before any persistent side effect."""

    status_code = 400
    code = ErrorCode.INVALID_REQUEST


class InvalidStageError(InvalidRequestError):
    """A stage number outside ``[1, stage_count]``."""

    def __init__(self, stage: int, stage_count: int) -> None:
        self.stage = stage
        self.stage_count = stage_count
        super().__init__(f"Stage {stage} is out of range 1..{stage_count}")


class UnauthorizedError(AppError):
    """Missing or unresolvable learner credential."""

    status_code = 401
    code = ErrorCode.UNAUTHORIZED


class AuthRequiredError(UnauthorizedError):
    """A worksheet operation was attempted without an authenticated learner."""

    def __init__(self) -> None:
        super().__init__("User not authenticated")


# ── Lookup / state errors ────────────────────────────────────


class NotFoundError(AppError):
    status_code = 404
    code = ErrorCode.NOT_FOUND


class WorksheetNotFoundError(NotFoundError):
    def __init__(self, assignment_id: str) -> None:
        self.assignment_id = assignment_id
        super().__init__("Worksheet not found", f"assignment '{assignment_id}'")


class AssessmentNotFoundError(NotFoundError):
    def __init__(self, assessment_id: int) -> None:
        self.assessment_id = assessment_id
        super().__init__("Assessment not found", f"id={assessment_id}")


class NoActiveSubmissionError(AppError):
    """The session has no loaded submission; the caller must re-initialize."""

    status_code = 409
    code = ErrorCode.CONFLICT

    def __init__(self) -> None:
        super().__init__("No active submission found. Please reload the worksheet.")


class SubmissionClosedError(AppError):
    """The submission was already finalized; stage data is frozen."""

    status_code = 409
    code = ErrorCode.CONFLICT

    def __init__(self, submission_id: int) -> None:
        self.submission_id = submission_id
        super().__init__("Submission already completed", f"id={submission_id}")


# ── Persistence errors ───────────────────────────────────────


class StoreError(AppError):
    """Base class for record store failures."""

    status_code = 500
    code = ErrorCode.STORE_UNAVAILABLE


class StoreUnavailableError(StoreError):
    """The backing store could not be reached or rejected the operation."""


class RecordNotFoundError(StoreError):
    status_code = 404
    code = ErrorCode.NOT_FOUND

    def __init__(self, collection: str, record_id: int) -> None:
        self.collection = collection
        self.record_id = record_id
        super().__init__("Record not found", f"{collection}/{record_id}")


class VersionConflictError(StoreError):
    """A compare-and-swap update saw a newer version than expected."""

    status_code = 409
    code = ErrorCode.CONFLICT

    def __init__(self, collection: str, record_id: int, expected: int, actual: int) -> None:
        self.collection = collection
        self.record_id = record_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            "Record was modified concurrently",
            f"{collection}/{record_id} expected version {expected}, found {actual}",
        )


# ── Assessment errors ────────────────────────────────────────


class ModelInvocationFailedError(AppError):
    """The external assessment model call raised. The record is marked failed."""

    status_code = 500
    code = ErrorCode.MODEL_INVOCATION_FAILED

    def __init__(self, details: str, assessment_id: int | None = None) -> None:
        self.assessment_id = assessment_id
        super().__init__("AI evaluation failed", details)


class IllegalTransitionError(AppError):
    """An assessment record was asked to leave a terminal state."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Illegal status transition {current} -> {target}")
