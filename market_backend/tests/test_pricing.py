"""
Rental term resolution tests.
"""

from datetime import date

import pytest

from market_backend.app.domain.booking.pricing import PricingResolver
from market_backend.app.models.booking_enums import RentalType
from market_backend.app.models.lock import Lock

START = date(2026, 3, 1)


def test_daily_covers_single_day():
    lock = Lock(price_daily=100.0)
    terms = PricingResolver.resolve(lock, START, RentalType.DAILY)
    assert terms.start_date == START
    assert terms.end_date == START
    assert terms.total_amount == 100.0


def test_weekly_uses_explicit_price():
    lock = Lock(price_daily=100.0, price_weekly=600.0)
    terms = PricingResolver.resolve(lock, START, RentalType.WEEKLY)
    assert terms.end_date == date(2026, 3, 7)
    assert terms.total_amount == 600.0


def test_weekly_falls_back_to_seven_days():
    lock = Lock(price_daily=100.0)
    terms = PricingResolver.resolve(lock, START, RentalType.WEEKLY)
    assert terms.total_amount == 700.0


@pytest.mark.parametrize("monthly, expected", [(2500.0, 2500.0), (None, 3000.0)])
def test_monthly_window_and_amount(monthly, expected):
    lock = Lock(price_daily=100.0, price_monthly=monthly)
    terms = PricingResolver.resolve(lock, START, "monthly")
    assert terms.end_date == date(2026, 3, 30)
    assert terms.total_amount == expected
