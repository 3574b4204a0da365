"""Custom exception hierarchy for pydelivery.

Every error raised across the repository boundary is a :class:`DeliveryError`
carrying a machine-readable ``kind`` (e.g. ``HTTP_ERROR_500``) and a
``retryable`` flag, so presentation layers can pick a retry affordance or a
terminal message without parsing strings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pydelivery.models.mutations import QueuedMutation


class DeliveryError(Exception):
    """Base exception for all pydelivery errors."""

    kind: str = "DELIVERY_ERROR"
    retryable: bool = False

    def __init__(self, message: str, *, endpoint: str = "") -> None:
        self.message = message
        self.endpoint = endpoint
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
            "endpoint": self.endpoint,
        }


class DeliveryConfigError(DeliveryError):
    """Invalid or missing configuration."""

    kind = "CONFIG_ERROR"


class NotFoundError(DeliveryError):
    """No package with the requested id exists in the addressed store."""

    kind = "NOT_FOUND"

    def __init__(self, package_id: str) -> None:
        self.package_id = package_id
        super().__init__(f"Package with ID {package_id} not found")


class HttpStatusError(DeliveryError):
    """Remote responded with a non-success HTTP status."""

    retryable = True

    def __init__(self, message: str, *, status_code: int, endpoint: str = "") -> None:
        self.status_code = status_code
        super().__init__(message, endpoint=endpoint)

    @property
    def kind(self) -> str:  # type: ignore[override]
        return f"HTTP_ERROR_{self.status_code}"


class ServerError(DeliveryError):
    """Transport succeeded but the server reported a business failure."""

    kind = "SERVER_ERROR"
    retryable = True


class InvalidResponseError(DeliveryError):
    """Structurally malformed payload (contract violation)."""

    kind = "INVALID_RESPONSE"
    retryable = True


class NetworkError(DeliveryError):
    """The request never produced a response (DNS, refused, reset)."""

    kind = "NETWORK_ERROR"
    retryable = True


class NetworkTimeoutError(NetworkError):
    """A single network request exceeded its hard timeout."""

    kind = "NETWORK_TIMEOUT"


class SyncTimeoutError(DeliveryError):
    """The bulk sync exchange exceeded its client-side time budget."""

    kind = "SYNC_TIMEOUT"
    retryable = True


class OfflineQueueExpired(DeliveryError):
    """A queued mutation aged out or exhausted its replay attempts.

    Only surfaced through diagnostics callbacks; the caller that queued it already
    received an optimistic result.
    """

    kind = "OFFLINE_QUEUE_EXPIRED"

    def __init__(self, mutation: QueuedMutation, *, reason: str) -> None:
        self.mutation = mutation
        self.reason = reason
        super().__init__(
            f"Dropped queued {mutation.kind} for {mutation.target_id or '<new>'} "
            f"after {mutation.attempt_count} attempt(s): {reason}"
        )


#: Errors that mean "no connectivity" rather than "server said no".
CONNECTIVITY_ERRORS: tuple[type[DeliveryError], ...] = (NetworkError,)


class InvalidStatusError(DeliveryError, ValueError):
    """A status value that is not part of the package lifecycle."""

    kind = "INVALID_STATUS"
