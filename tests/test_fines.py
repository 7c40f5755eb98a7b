from datetime import date, datetime
from decimal import Decimal

import pytest

from circulation.services.fines import (
    compute_fine,
    days_overdue,
    describe_fine,
    resolve_fine_rate,
    to_money,
)


def test_no_fine_for_normal_return_on_time():
    assert compute_fine(100000, 0, 5, "normal") == 0
    assert compute_fine(Decimal("12345.67"), 0, 50, "normal") == 0


def test_condition_charges():
    assert compute_fine(100000, 0, 5, "damaged") == Decimal("50000")
    assert compute_fine(100000, 0, 5, "lost") == Decimal("100000")


def test_overdue_charge():
    assert compute_fine(100000, 10, 5, "normal") == Decimal("50000")


def test_overdue_and_damaged_add_up():
    # due 2024-01-10, returned 2024-01-15
    days = days_overdue(date(2024, 1, 10), date(2024, 1, 15))
    assert days == 5
    assert compute_fine(100000, days, 5, "damaged") == Decimal("75000")


def test_fine_is_monotonic_in_days_and_price():
    for condition in ("normal", "damaged", "lost"):
        by_days = [compute_fine(100000, days, 5, condition) for days in range(0, 30)]
        assert by_days == sorted(by_days)
        by_price = [compute_fine(price, 3, 5, condition) for price in (0, 1, 999, 50000, 100000)]
        assert by_price == sorted(by_price)
        assert all(amount >= 0 for amount in by_days + by_price)


@pytest.mark.parametrize("price", [None, 0, -5000, "abc", float("nan")])
def test_unusable_price_counts_as_zero(price):
    assert compute_fine(price, 10, 5, "lost") == 0


def test_negative_days_are_not_charged():
    assert compute_fine(100000, -3, 5, "normal") == 0


def test_fine_rate_falls_back_to_five_percent():
    assert resolve_fine_rate(None) == Decimal("5")
    assert resolve_fine_rate("ten") == Decimal("5")
    assert resolve_fine_rate("7.5") == Decimal("7.5")
    assert compute_fine(100000, 1, "not-a-number", "normal") == Decimal("5000")


def test_negative_rate_charges_nothing():
    assert resolve_fine_rate("-1") == 0
    assert compute_fine(100000, 10, -5, "normal") == 0
    assert compute_fine(100000, 10, -5, "damaged") == Decimal("50000")


@pytest.mark.parametrize("days, expected", [("3", Decimal("15000")), ("soon", 0), (None, 0), (2.9, Decimal("10000"))])
def test_days_are_coerced_to_whole_numbers(days, expected):
    assert compute_fine(100000, days, 5, "normal") == expected


def test_unknown_condition_is_rejected():
    with pytest.raises(ValueError):
        compute_fine(100000, 0, 5, "soggy")


def test_days_overdue_uses_calendar_dates():
    assert days_overdue(date(2024, 1, 10), date(2024, 1, 9)) == 0
    assert days_overdue(date(2024, 1, 10), date(2024, 1, 10)) == 0
    assert days_overdue(datetime(2024, 1, 10, 23, 59), datetime(2024, 1, 11, 0, 1)) == 1
    assert days_overdue(None, date(2024, 1, 10)) == 0


def test_to_money_rounds_to_cents():
    assert to_money("1.005") == Decimal("1.01")
    assert to_money(None) == Decimal("0.00")


def test_describe_fine():
    reason = describe_fine(5, 5, "damaged")
    assert "5 day(s)" in reason
    assert "5%" in reason
    assert "damaged" in reason
    assert describe_fine(0, 5, "lost") == "Book lost (100% of price)"
