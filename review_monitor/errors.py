"""Error taxonomy for the review service.

Every error carries an ``ErrorKind`` so callers branch on ``error.kind``
instead of matching on message text.
"""

from enum import Enum


class ErrorKind(Enum):
    INVALID_ARGUMENT = "invalid_argument"
    RETRIEVAL_FAILURE = "retrieval_failure"
    DATA_INTEGRITY = "data_integrity"
    CONSTRAINT_VIOLATION = "constraint_violation"


class ReviewServiceError(Exception):
    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgument(ReviewServiceError):
    """Caller-supplied identifier or parameter failed validation."""
    kind = ErrorKind.INVALID_ARGUMENT


class RetrievalFailure(ReviewServiceError):
    """The storage call failed; the original message is kept."""
    kind = ErrorKind.RETRIEVAL_FAILURE


class DataIntegrityError(ReviewServiceError):
    """Storage returned a row with an unexpected shape."""
    kind = ErrorKind.DATA_INTEGRITY


class ConstraintViolation(ReviewServiceError):
    """The database rejected a write (unknown business, duplicate, ...)."""
    kind = ErrorKind.CONSTRAINT_VIOLATION
