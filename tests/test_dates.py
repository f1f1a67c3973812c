"""Tests for amendment date normalization."""

import pytest

from contract_engine.amendments.dates import normalize_date


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("03/01/2024", "2024-03-01"),
        ("3/1/2024", "2024-03-01"),
        ("12-31-2025", "2025-12-31"),
        ("2024/03/01", "2024-03-01"),
        ("2024-3-1", "2024-03-01"),
        ("03/01/24", "2024-03-01"),
        ("7-4-99", "2099-07-04"),
    ],
)
def test_supported_formats_normalize(raw, expected):
    assert normalize_date(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["March 1, 2024", "2024-03", "next quarter", "", "03/01/202", "1/2/3/4"],
)
def test_unparseable_passes_through(raw):
    assert normalize_date(raw) == raw


def test_iso_input_is_stable():
    assert normalize_date(normalize_date("03/01/2024")) == "2024-03-01"


def test_surrounding_whitespace_ignored():
    assert normalize_date("  03/01/2024 ") == "2024-03-01"
