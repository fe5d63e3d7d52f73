"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error taxonomy for delivery orchestration.

Every error carries an explicit ``retryable`` flag decided where the error is
raised, so the retry policy never has to guess from message text.
"""

from __future__ import annotations

from typing import Any


class DeliveryError(RuntimeError):
    """Base delivery error."""

    retryable: bool = False

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class NotFoundError(DeliveryError):
    """Raised when a prompt or remote resource does not exist."""


class InvalidTargetError(DeliveryError):
    """Raised when a delivery target fails validation."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__(f"Invalid target: {', '.join(self.violations)}")


class ValidationFailedError(DeliveryError):
    """Raised when a delivery payload fails structural validation."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__(f"Payload validation failed: {', '.join(self.violations)}")


class AuthFailureError(DeliveryError):
    """Raised for missing, expired or insufficient destination credentials."""


class TransientFailureError(DeliveryError):
    """Raised for failures that may succeed on a later attempt."""

    retryable = True


class DeliveryCancelledError(DeliveryError):
    """Raised when a delivery is cancelled at a stage or attempt boundary."""

    def __init__(self, message: str = "Delivery cancelled") -> None:
        super().__init__(message)


class RetryExhaustedError(DeliveryError):
    """Raised when every attempt of a retryable operation failed."""

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        detail = str(last_error) if last_error is not None else "unknown error"
        super().__init__(f"Operation failed after {attempts} attempts: {detail}")


class ContentGenerationError(DeliveryError):
    """Raised when the AI content generator fails or returns unusable output."""

    retryable = True


class BrokerUnavailableError(DeliveryError):
    """Raised when the ephemeral import broker cannot stage an import."""

    retryable = True


_NON_RETRYABLE_STATUSES = frozenset({400, 401, 403, 404, 409, 422})


class DestinationApiError(DeliveryError):
    """
    Normalized non-2xx response from a destination API.

    Attributes:
        status: HTTP status code (500 when the failure never reached the API).
        code: Destination error code, ``API_ERROR`` when absent.
        context: Decoded error body or the original exception.
    """

    def __init__(
        self,
        *,
        status: int,
        code: str,
        message: str,
        context: Any = None,
    ) -> None:
        self.status = status
        self.code = code
        self.message = message
        self.context = context
        super().__init__(message, retryable=status not in _NON_RETRYABLE_STATUSES)

    @property
    def is_auth_failure(self) -> bool:
        return self.status in (401, 403)

    def with_context(self, prefix: str) -> DestinationApiError:
        """Return a copy whose message is prefixed with operation context."""
        return DestinationApiError(
            status=self.status,
            code=self.code,
            message=f"{prefix}: {self.message}",
            context=self.context,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }
