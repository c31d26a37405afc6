"""
Amount calculations for rental contracts.

Everything here is a pure function over ``Decimal`` values.  Settings such as
the deposit percentage are passed in by the caller; nothing in this module
reads configuration.
"""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from .constants import PaymentStatus
from .errors import InsufficientFunds, InvalidInterval

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    """Coerce ``value`` to a Decimal rounded to cents.

    Floats are converted through ``str`` so ``0.1`` becomes ``Decimal('0.10')``
    rather than its binary expansion.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Quote:
    duration_days: int
    total_amount: Decimal
    deposit_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    payment_status: PaymentStatus


def duration_days(start_date: date, end_date: date) -> int:
    """Number of rental days, counting both the start and the end day."""
    if end_date < start_date:
        raise InvalidInterval("End date must not be before start date",
                              field='end_date', current=end_date)
    return (end_date - start_date).days + 1


def day_rate(daily_rate, driver_rate=None, with_driver: bool = False) -> Decimal:
    rate = money(daily_rate)
    if with_driver:
        rate += money(driver_rate)
    return rate


def payment_status_for(paid_amount, total_amount) -> PaymentStatus:
    paid = money(paid_amount)
    if paid <= ZERO:
        return PaymentStatus.PENDING
    if paid >= money(total_amount):
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


def deposit_for(total_amount, deposit_percent) -> Decimal:
    percent = Decimal(str(deposit_percent))
    total = money(total_amount)
    if percent < 0 or total < 0:
        raise InsufficientFunds("Deposit cannot be computed from a negative amount",
                                field='deposit_percentage', current=percent)
    return money(total * percent / Decimal(100))


def price(daily_rate, driver_rate: Optional[Decimal], start_date: date, end_date: date,
          deposit_percent, paid_amount=ZERO, with_driver: bool = False) -> Quote:
    days = duration_days(start_date, end_date)
    total = money(day_rate(daily_rate, driver_rate, with_driver) * days)
    paid = money(paid_amount)
    return Quote(
        duration_days=days,
        total_amount=total,
        deposit_amount=deposit_for(total, deposit_percent),
        paid_amount=paid,
        remaining_amount=total - paid,
        payment_status=payment_status_for(paid, total),
    )


def extension_charge(daily_rate, driver_rate, with_driver: bool,
                     original_end: date, new_end: date) -> Tuple[int, Decimal]:
    """Days and amount for pushing a rental's end date forward.

    The original end day has already been paid for, so the count is
    ``new_end - original_end`` without the +1 used for a fresh contract.
    """
    days = (new_end - original_end).days
    if days <= 0:
        raise InvalidInterval("New end date must be after the current end date",
                              field='new_end_date', current=new_end)
    return days, money(day_rate(daily_rate, driver_rate, with_driver) * days)
