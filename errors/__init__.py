"""Custom exception hierarchy for the worksheet assessment service."""

from errors.exceptions import (
    AppError,
    AssessmentNotFoundError,
    AuthRequiredError,
    IllegalTransitionError,
    InvalidRequestError,
    InvalidStageError,
    ModelInvocationFailedError,
    NoActiveSubmissionError,
    NotFoundError,
    RecordNotFoundError,
    StoreError,
    StoreUnavailableError,
    SubmissionClosedError,
    UnauthorizedError,
    VersionConflictError,
    WorksheetNotFoundError,
)

__all__ = [
    "AppError",
    "AssessmentNotFoundError",
    "AuthRequiredError",
    "IllegalTransitionError",
    "InvalidRequestError",
    "InvalidStageError",
    "ModelInvocationFailedError",
    "NoActiveSubmissionError",
    "NotFoundError",
    "RecordNotFoundError",
    "StoreError",
    "StoreUnavailableError",
    "SubmissionClosedError",
    "UnauthorizedError",
    "VersionConflictError",
    "WorksheetNotFoundError",
]
