from rollcall.matcher import match_registrant
from rollcall.models import Registrant


def test_primary_beats_earlier_secondary():
    secondary_hit = Registrant(key="a", primary_id="9999-999", secondary_ids=("2025-001",))
    primary_hit = Registrant(key="b", primary_id="2025 001")
    assert match_registrant("2025-001", [secondary_hit, primary_hit]).key == "b"


def test_secondary_pass(roster):
    assert match_registrant("osca 77", roster).key == "m2"


def test_first_in_snapshot_order_wins():
    a = Registrant(key="a", primary_id="2025-001")
    b = Registrant(key="b", primary_id="2025001")
    assert match_registrant("2025-001", [a, b]).key == "a"
    assert match_registrant("2025-001", [b, a]).key == "b"


def test_not_found_and_empty(roster):
    assert match_registrant("2025-404", roster) is None
    assert match_registrant("", roster) is None
    assert match_registrant("---", roster) is None


def test_accepts_any_iterable(roster):
    assert match_registrant("2025-002", iter(roster)).key == "m2"
