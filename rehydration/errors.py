"""Rehydration service error types.

Error codes are stable strings for programmatic handling. Errors that reach
the HTTP layer are rendered by the exception handler in ``rehydration.main``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rehydration.models.idempotency import IdempotencyRecord


class RehydrationError(Exception):
    """Base error for all rehydration service exceptions."""

    code: str = "internal_error"
    message: str = "An internal error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Render as an API error body."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "request_id": request_id,
                "details": self.details,
            }
        }


class ValidationError(RehydrationError):
    """Request validation error (400)."""

    code = "validation_error"
    message = "Validation error"
    status_code = 400


class ConflictError(RehydrationError):
    """Dataset version is busy (409)."""

    code = "conflict"
    message = "Conflict"
    status_code = 409


class InProgressError(ConflictError):
    """A rehydration of the dataset version is already running (409)."""

    code = "in_progress"
    message = "Rehydration already in progress"


class ExpiredError(ConflictError):
    """The previous rehydration of the dataset version is being expired (409)."""

    code = "expiration_in_progress"
    message = "Expiration in progress"


class RecordAlreadyExistsError(RehydrationError):
    """Conditional insert of an idempotency record lost.

    ``existing`` holds the record that won, when it could be read back.
    """

    code = "record_already_exists"
    message = "Idempotency record already exists"

    def __init__(
        self,
        record_id: str,
        existing: "IdempotencyRecord | None" = None,
    ) -> None:
        self.record_id = record_id
        self.existing = existing
        super().__init__(
            f"record with ID {record_id} already exists",
            details={"id": record_id},
        )


class RecordDoesNotExistError(RehydrationError):
    """Conditional update targeted an absent idempotency record."""

    code = "record_does_not_exist"
    message = "Idempotency record does not exist"

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(
            f"record with ID {record_id} does not exist",
            details={"id": record_id},
        )


class ConditionFailedError(RehydrationError):
    """Optimistic-concurrency precondition did not hold.

    ``expected`` and ``actual`` map field names to values.
    """

    code = "condition_failed"
    message = "Condition failed"

    def __init__(
        self,
        record_id: str,
        expected: dict[str, Any],
        actual: dict[str, Any],
        message: str | None = None,
    ) -> None:
        self.record_id = record_id
        self.expected = expected
        self.actual = actual
        if message is None:
            mismatched = sorted(k for k in expected if expected.get(k) != actual.get(k))
            message = (
                f"condition failed on record {record_id}: "
                f"fields {mismatched or sorted(expected)} expected {expected}, actual {actual}"
            )
        super().__init__(
            message,
            details={"id": record_id, "expected": expected, "actual": actual},
        )


class InconsistentStateError(RehydrationError):
    """Admission saw a record both present and absent across two reads."""

    code = "inconsistent_state"
    message = "Idempotency record changed during admission"


class CopyError(RehydrationError):
    """Copy of a single file failed."""

    code = "copy_error"
    message = "Copy failed"

    def __init__(self, file_name: str, message: str) -> None:
        self.file_name = file_name
        super().__init__(message, details={"file": file_name})


class DiscoverError(RehydrationError):
    """Discover service call failed."""

    code = "discover_error"
    message = "Discover service error"
    status_code = 502

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message, details={"status": status})


class TransportError(RehydrationError):
    """Object store or record store backend failure."""

    code = "transport_error"
    message = "Backend error"


class TaskStartError(RehydrationError):
    """Worker task could not be started."""

    code = "task_start_error"
    message = "Failed to start rehydration task"


class ExpirationError(RehydrationError):
    """An expiration sweep reported errors."""

    code = "expiration_failed"
    message = "Expiration sweep failed"
