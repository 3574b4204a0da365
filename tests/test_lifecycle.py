from __future__ import annotations

import random

import pytest
from conftest import NOW

from pydelivery.exceptions import InvalidStatusError
from pydelivery.lifecycle import (
    allowed_transitions,
    apply_status_change,
    coerce_status,
    is_adjacent,
    is_terminal,
    next_status,
)
from pydelivery.models.package import Coordinates, Package, PackageStatus, StatusContext


def test_automatic_progression_follows_linear_chain() -> None:
    rng = random.Random(7)
    status = PackageStatus.PENDING
    visited = [status]
    while (following := next_status(status, rng, delivered_ratio=1.0)) is not None:
        assert is_adjacent(status, following)
        status = following
        visited.append(status)

    assert visited == [
        PackageStatus.PENDING,
        PackageStatus.ASSIGNED,
        PackageStatus.IN_TRANSIT,
        PackageStatus.OUT_FOR_DELIVERY,
        PackageStatus.DELIVERED,
    ]


def test_final_edge_respects_delivered_ratio() -> None:
    rng = random.Random(1)
    assert next_status(PackageStatus.OUT_FOR_DELIVERY, rng, delivered_ratio=0.0) is PackageStatus.FAILED
    assert next_status(PackageStatus.OUT_FOR_DELIVERY, rng, delivered_ratio=1.0) is PackageStatus.DELIVERED


@pytest.mark.parametrize("status", [PackageStatus.DELIVERED, PackageStatus.FAILED])
def test_terminal_states_never_progress(status: PackageStatus) -> None:
    assert is_terminal(status)
    assert allowed_transitions(status) == frozenset()
    assert next_status(status, random.Random()) is None


def test_coerce_status_is_lenient_about_case() -> None:
    assert coerce_status("in_transit") is PackageStatus.IN_TRANSIT
    assert coerce_status("out-for-delivery") is PackageStatus.OUT_FOR_DELIVERY

    with pytest.raises(InvalidStatusError):
        coerce_status("LOST")


def test_leaving_out_for_delivery_counts_an_attempt() -> None:
    package = Package(id="P1", status=PackageStatus.OUT_FOR_DELIVERY, attempts=0)
    failed = apply_status_change(package, PackageStatus.FAILED, now=NOW)
    assert failed.attempts == 1
    assert failed.updated_at == NOW
    assert failed.delivered_at is None


def test_exhausted_attempts_force_failed() -> None:
    package = Package(id="P1", status=PackageStatus.OUT_FOR_DELIVERY, attempts=2, max_attempts=3)
    result = apply_status_change(package, PackageStatus.IN_TRANSIT, now=NOW)
    assert result.status is PackageStatus.FAILED
    assert result.attempts == 3


def test_delivery_stamps_delivered_at_and_applies_context() -> None:
    package = Package(id="P1", status=PackageStatus.OUT_FOR_DELIVERY)
    context = StatusContext(notes="Left with neighbour", location=Coordinates(latitude=20.1, longitude=-103.2))

    delivered = apply_status_change(package, PackageStatus.DELIVERED, now=NOW, context=context)

    assert delivered.status is PackageStatus.DELIVERED
    assert delivered.delivered_at == NOW
    assert delivered.notes == "Left with neighbour"
    assert delivered.last_location == context.location
    assert delivered.id == package.id


def test_manual_override_is_allowed() -> None:
    package = Package(id="P1", status=PackageStatus.PENDING)
    assert apply_status_change(package, PackageStatus.DELIVERED, now=NOW).status is PackageStatus.DELIVERED
