"""Package status state machine.

``PENDING -> ASSIGNED -> IN_TRANSIT -> OUT_FOR_DELIVERY -> {DELIVERED | FAILED}``

Automatic progression (the local simulator) only ever follows one edge at a
time and never leaves a terminal state. Callers may still request any
status; a non-adjacent request is treated as a manual override.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime

from pydelivery.exceptions import InvalidStatusError
from pydelivery.models.package import Package, PackageStatus, StatusContext

_logger = logging.getLogger(__name__)

TERMINAL_STATUSES: frozenset[PackageStatus] = frozenset({PackageStatus.DELIVERED, PackageStatus.FAILED})

_LINEAR_EDGES: dict[PackageStatus, PackageStatus] = {
    PackageStatus.PENDING: PackageStatus.ASSIGNED,
    PackageStatus.ASSIGNED: PackageStatus.IN_TRANSIT,
    PackageStatus.IN_TRANSIT: PackageStatus.OUT_FOR_DELIVERY,
}


def coerce_status(value: PackageStatus | str) -> PackageStatus:
    """Parse *value* (case-insensitive) or raise :class:`InvalidStatusError`."""
    try:
        return PackageStatus(value)
    except ValueError as exc:
        raise InvalidStatusError(f"Unknown package status: {value!r}") from exc


def is_terminal(status: PackageStatus) -> bool:
    return status in TERMINAL_STATUSES


def allowed_transitions(status: PackageStatus) -> frozenset[PackageStatus]:
    if status is PackageStatus.OUT_FOR_DELIVERY:
        return TERMINAL_STATUSES
    following = _LINEAR_EDGES.get(status)
    return frozenset({following}) if following is not None else frozenset()


def is_adjacent(current: PackageStatus, target: PackageStatus) -> bool:
    return target in allowed_transitions(current)


def next_status(
    status: PackageStatus,
    rng: random.Random,
    *,
    delivered_ratio: float = 0.8,
) -> PackageStatus | None:
    """Follow exactly one edge; ``None`` for terminal states.

    At the final edge ``DELIVERED`` is chosen with probability
    *delivered_ratio*, ``FAILED`` otherwise.
    """
    if is_terminal(status):
        return None
    if status is PackageStatus.OUT_FOR_DELIVERY:
        return PackageStatus.DELIVERED if rng.random() < delivered_ratio else PackageStatus.FAILED
    return _LINEAR_EDGES[status]


def apply_status_change(
    package: Package,
    status: PackageStatus,
    *,
    now: datetime,
    context: StatusContext | None = None,
) -> Package:
    """Return the replacement record for *package* moved to *status*.

    Leaving ``OUT_FOR_DELIVERY`` counts a delivery attempt. A failed attempt
    that exhausts ``max_attempts`` is forced into ``FAILED`` whatever was
    requested, and ``attempts`` never exceeds ``max_attempts``.
    """
    if status != package.status and not is_adjacent(package.status, status):
        _logger.debug(
            "Manual status override for %s: %s -> %s",
            package.id,
            package.status.value,
            status.value,
        )

    changes: dict[str, object] = {"status": status, "updated_at": now}

    if package.status is PackageStatus.OUT_FOR_DELIVERY and status is not PackageStatus.OUT_FOR_DELIVERY:
        attempts = min(package.attempts + 1, package.max_attempts)
        changes["attempts"] = attempts
        if status is not PackageStatus.DELIVERED and attempts >= package.max_attempts:
            changes["status"] = PackageStatus.FAILED

    if changes["status"] is PackageStatus.DELIVERED:
        changes["delivered_at"] = now

    if context is not None:
        if context.notes is not None:
            changes["notes"] = context.notes
        if context.location is not None:
            changes["last_location"] = context.location

    return package.with_changes(**changes)
