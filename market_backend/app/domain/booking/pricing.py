"""
Rental term resolution.

Turns a start date and rental type into the inclusive rental window and
the amount due, from the lock's pricing table.
"""

from datetime import date, timedelta
from typing import NamedTuple

from market_backend.app.models.booking_enums import RentalType
from market_backend.app.models.lock import Lock


class RentalTerms(NamedTuple):
    start_date: date
    end_date: date
    total_amount: float


# (days covered, multiplier of the daily rate when no explicit price is set)
_TERM_DAYS = {
    RentalType.DAILY: 1,
    RentalType.WEEKLY: 7,
    RentalType.MONTHLY: 30,
}


class PricingResolver:

    @staticmethod
    def resolve(lock: Lock, start_date: date, rental_type: RentalType) -> RentalTerms:
        """
        Compute the rental window and amount for a lock.

        daily   -> [start, start],      price_daily
        weekly  -> [start, start + 6],  price_weekly or 7 x price_daily
        monthly -> [start, start + 29], price_monthly or 30 x price_daily
        """
        rental_type = RentalType(rental_type)
        days = _TERM_DAYS[rental_type]
        end_date = start_date + timedelta(days=days - 1)

        if rental_type == RentalType.WEEKLY and lock.price_weekly:
            amount = lock.price_weekly
        elif rental_type == RentalType.MONTHLY and lock.price_monthly:
            amount = lock.price_monthly
        else:
            amount = lock.price_daily * days

        return RentalTerms(start_date=start_date, end_date=end_date, total_amount=float(amount))
