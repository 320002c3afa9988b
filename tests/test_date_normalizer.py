from __future__ import annotations

from datetime import date

import pytest

from spendlens.modules.extraction.dates import (
    correct_implausible_year,
    expand_two_digit_year,
    normalize_receipt_date,
    parse_date_string,
)

REFERENCE = date(2025, 6, 1)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2025-09-05", date(2025, 9, 5)),
        ("2025-09-06T19:22:16.000Z", date(2025, 9, 6)),
        ("03/04/2025", date(2025, 4, 3)),
        ("12/31/2025", date(2025, 12, 31)),
        ("05.09.2025", date(2025, 9, 5)),
        ("Sep 5, 2025", date(2025, 9, 5)),
        ("05 Sep 2025", date(2025, 9, 5)),
        ("31AUG25", date(2025, 8, 31)),
        ("05.09.25", date(2025, 9, 5)),
        ("05.09.85", date(1985, 9, 5)),
    ],
)
def test_parse_date_string_known_shapes(raw, expected):
    assert parse_date_string(raw, REFERENCE) == expected


def test_two_digit_year_pivot():
    assert expand_two_digit_year(25, REFERENCE) == 2025
    assert expand_two_digit_year(35, REFERENCE) == 2035
    assert expand_two_digit_year(36, REFERENCE) == 1936
    assert expand_two_digit_year(85, REFERENCE) == 1985


def test_implausible_year_is_replaced_with_reference_year():
    assert normalize_receipt_date("2019-03-14", REFERENCE) == date(2025, 3, 14)
    assert normalize_receipt_date("2024-03-14", REFERENCE) == date(2024, 3, 14)


def test_short_year_far_in_the_past_ends_up_in_reference_year():
    assert normalize_receipt_date("05.09.85", REFERENCE) == date(2025, 9, 5)


def test_leap_day_moved_into_non_leap_year():
    assert correct_implausible_year(date(2020, 2, 29), REFERENCE) == date(2025, 2, 28)


def test_unreadable_date_falls_back_to_reference():
    assert parse_date_string("not a date", REFERENCE) is None
    assert normalize_receipt_date("not a date", REFERENCE) == REFERENCE
    assert normalize_receipt_date(None, REFERENCE) == REFERENCE
    assert normalize_receipt_date("", REFERENCE) == REFERENCE


def test_future_dates_are_kept():
    assert normalize_receipt_date("2026-01-10", REFERENCE) == date(2026, 1, 10)


def test_compact_iso_date():
    assert parse_date_string("20250301", REFERENCE) == date(2025, 3, 1)
    assert parse_date_string("20251399", REFERENCE) is None
