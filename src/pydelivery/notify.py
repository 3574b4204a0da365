"""User-facing notifications and error guidance."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from pydelivery.exceptions import DeliveryError, HttpStatusError
from pydelivery.models.sync import SyncResult

_logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Presentation-layer sink for short titled messages."""

    def notify(self, title: str, message: str) -> None:
        ...


class LoggingNotifier:
    """Default notifier that writes messages to a logger."""

    def __init__(self, logger: logging.Logger | None = None, *, level: int = logging.INFO) -> None:
        self._logger = logger or _logger
        self._level = level

    def notify(self, title: str, message: str) -> None:
        self._logger.log(self._level, "%s: %s", title, message)


@dataclass(frozen=True)
class ErrorGuidance:
    title: str
    message: str
    suggestions: tuple[str, ...]
    retryable: bool

    def format(self) -> str:
        bullets = "\n".join(f"• {suggestion}" for suggestion in self.suggestions)
        return f"{self.message}\n\n{bullets}" if bullets else self.message


_HTTP_GUIDANCE: dict[int, tuple[str, str, tuple[str, ...]]] = {
    401: (
        "Authentication error",
        "Session expired or invalid credentials.",
        ("Sign in again", "Check your access token", "Contact your administrator"),
    ),
    404: (
        "Service unavailable",
        "The sync service is not available.",
        ("The server may be under maintenance", "Contact technical support"),
    ),
    500: (
        "Server error",
        "Internal server error.",
        ("Try again later", "The problem is temporary", "Report the error if it persists"),
    ),
}

_KIND_GUIDANCE: dict[str, tuple[str, str | None, tuple[str, ...]]] = {
    "SYNC_TIMEOUT": (
        "Timed out",
        "The sync took too long.",
        ("Check your internet connection", "The server may be slow", "Try again"),
    ),
    "NETWORK_TIMEOUT": (
        "Timed out",
        "The server did not answer in time.",
        ("Check your internet connection", "Try again"),
    ),
    "NETWORK_ERROR": (
        "Connection problem",
        "The server could not be reached.",
        ("Check your internet connection", "Changes made offline are kept and sent later"),
    ),
    # ``None`` means "use the error's own message".
    "SERVER_ERROR": (
        "Server error",
        None,
        ("The server reported an error", "Try again later", "Contact support if it persists"),
    ),
    "INVALID_RESPONSE": (
        "Invalid response",
        "The server returned malformed data.",
        ("Response format error", "Try again", "Report this error"),
    ),
    "NOT_FOUND": ("Package not found", None, ("Refresh the package list",)),
    "OFFLINE_QUEUE_EXPIRED": (
        "Change not synced",
        None,
        ("Check the package state", "Repeat the change if it is still needed"),
    ),
}

_DEFAULT_GUIDANCE = (
    "Sync error",
    "Packages could not be synchronized.",
    ("Check your internet connection", "Try again"),
)


def error_guidance(error: BaseException) -> ErrorGuidance:
    """Map a classified error to a title, message and suggestions."""
    retryable = error.retryable if isinstance(error, DeliveryError) else True

    if isinstance(error, HttpStatusError) and error.status_code in _HTTP_GUIDANCE:
        title, message, suggestions = _HTTP_GUIDANCE[error.status_code]
        return ErrorGuidance(title, message, suggestions, retryable)

    if isinstance(error, DeliveryError) and error.kind in _KIND_GUIDANCE:
        title, fixed_message, suggestions = _KIND_GUIDANCE[error.kind]
        return ErrorGuidance(title, fixed_message or error.message, suggestions, retryable)

    title, message, suggestions = _DEFAULT_GUIDANCE
    return ErrorGuidance(title, message, suggestions, retryable)


def report_error(notifier: Notifier, error: BaseException) -> ErrorGuidance:
    """Send guidance for *error* to *notifier*; returns the guidance used."""
    guidance = error_guidance(error)
    try:
        notifier.notify(guidance.title, guidance.format())
    except Exception:
        _logger.warning("Notifier failed reporting %s", type(error).__name__, exc_info=True)
    return guidance


def _shorten(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[: limit - 3]}..."


def format_sync_message(result: SyncResult, *, detail_limit: int = 5) -> str:
    """Human-readable summary of a completed sync."""
    response = result.response
    summary = result.summary
    lines = [
        f"Packages received: {summary.total_returned} of {response.total_packages}",
        f"Viable routes: {summary.with_route}",
        f"Green numbers: {summary.stamps_total}",
        f"With destination query: {summary.with_destination_query}",
    ]
    for index, package in enumerate(response.packages[:detail_limit], start=1):
        route = package.route_summary
        query = package.destination_query
        lines.append("")
        lines.append(f"[{index}] {package.tracking_number or package.id}")
        lines.append(f"  Carrier: {package.carrier or 'unknown'}")
        lines.append(
            f"  Route: {package.origin_short or route.from_ or 'N/A'} → {package.destination_short or route.to or 'N/A'}"
        )
        lines.append(f"  Status: {'Viable' if route.viable else 'Review'}")
        lines.append(f"  Confidence: {round(package.quality.address_confidence * 100)}%")
        lines.append(f"  Query: {_shorten(query, 40) if query else 'not available'}")
    remaining = len(response.packages) - detail_limit
    if remaining > 0:
        lines.append("")
        lines.append(f"... and {remaining} more packages")
    return "\n".join(lines)
