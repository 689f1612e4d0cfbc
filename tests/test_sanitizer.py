from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from foneflow.utils import round_amount, sanitize_input, to_instant


def test_sanitize_removes_script_tags():
    s = "<script>alert(1)</script>Mobile Hub"
    out = sanitize_input(s)
    assert "<script" not in out.lower()
    assert "mobile hub" in out.lower()


def test_sanitize_keeps_entities_and_punctuation():
    assert sanitize_input("A&B Mobiles") == "A&B Mobiles"
    assert sanitize_input("8/128; dual -- sim") == "8/128; dual -- sim"
    assert sanitize_input("Price < 5k") == "Price < 5k"
    assert sanitize_input("<b></b>") == ""


def test_sanitize_none_and_whitespace():
    assert sanitize_input(None) == ""
    assert sanitize_input("  Zed\x00 Mobiles  ") == "Zed Mobiles"


def test_round_amount_half_up():
    assert round_amount(Decimal("2.675")) == Decimal("2.68")
    assert round_amount(Decimal("10")) == Decimal("10.00")


def test_to_instant_accepts_every_boundary_format():
    expected = datetime(2024, 3, 1)
    assert to_instant(expected) == expected
    assert to_instant(date(2024, 3, 1)) == expected
    assert to_instant("2024-03-01") == expected
    assert to_instant("2024-03-01T00:00:00Z") == expected
    assert to_instant(datetime(2024, 3, 1, 5, 30, tzinfo=timezone(timedelta(hours=5, minutes=30)))) == expected
    assert to_instant(expected.replace(tzinfo=timezone.utc).timestamp()) == expected
    # hosted-store timestamp mapping
    seconds = int(expected.replace(tzinfo=timezone.utc).timestamp())
    assert to_instant({"seconds": seconds, "nanoseconds": 0}) == expected


def test_to_instant_rejects_garbage():
    for value in ("yesterday", None, True, [2024, 3, 1]):
        with pytest.raises(ValueError):
            to_instant(value)
