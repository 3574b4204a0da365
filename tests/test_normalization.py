from __future__ import annotations

import pytest

from pydelivery._normalize import join_csv, safe_float, safe_int, split_csv


@pytest.mark.parametrize(
    ("value", "expected"),
    [("20.5", 20.5), (3, 3.0), ("", None), (None, None), (True, None), ("nan", None), ("abc", None)],
)
def test_safe_float(value: object, expected: float | None) -> None:
    assert safe_float(value) == expected


def test_safe_int_truncates() -> None:
    assert safe_int("4.9") == 4
    assert safe_int("x") is None


def test_split_csv_accepts_strings_and_iterables() -> None:
    assert split_csv("PENDING, ASSIGNED,,") == ["PENDING", "ASSIGNED"]
    assert split_csv(["HIGH", " LOW "]) == ["HIGH", "LOW"]
    assert split_csv(None) == []
    assert split_csv(7) == ["7"]


def test_join_csv() -> None:
    assert join_csv(("PENDING", "IN_TRANSIT")) == "PENDING,IN_TRANSIT"
