import pytest

from rollcall.identifiers import normalize, parse


def test_normalize_equivalence():
    assert normalize("2025-001") == normalize("2025 001") == normalize("2025001") == "2025001"


def test_normalize_strips_and_lowercases():
    assert normalize("  OSCA-77 / b ") == "osca77b"
    assert normalize("") == ""
    assert normalize(None) == ""


@pytest.mark.parametrize("payload, expected", [
    ("https://x/v?id=2025-001", "2025-001"),
    ("OSCA2025001XYZ", "2025-001"),
    ("no-id-here", "no-id-here"),
    ("ID:2025-0012;v=1", "2025-0012"),
    ("ref 123456789", "123456789"),
    ("  hello  ", "hello"),
    ("123456", "123456"),
])
def test_parse_heuristics(payload, expected):
    assert parse(payload) == expected


def test_dashed_id_wins_over_longer_digit_run():
    assert parse("99999999 then 2025-001") == "2025-001"


def test_parse_empty():
    assert parse("   ") == ""
    assert parse(None) == ""
