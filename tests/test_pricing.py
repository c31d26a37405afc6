from datetime import date
from decimal import Decimal

import pytest

from carrental import pricing
from carrental.constants import PaymentStatus
from carrental.errors import InsufficientFunds, InvalidInterval


def test_three_day_rental_is_priced_per_inclusive_day():
    quote = pricing.price(Decimal("100"), None, date(2030, 3, 1), date(2030, 3, 3), 20)

    assert quote.duration_days == 3
    assert quote.total_amount == Decimal("300.00")
    assert quote.deposit_amount == Decimal("60.00")
    assert quote.paid_amount == Decimal("0.00")
    assert quote.remaining_amount == Decimal("300.00")
    assert quote.payment_status is PaymentStatus.PENDING


def test_driver_rate_is_added_only_with_driver():
    start, end = date(2030, 3, 1), date(2030, 3, 3)
    assert pricing.price(100, 50, start, end, 20, with_driver=True).total_amount == Decimal("450.00")
    assert pricing.price(100, 50, start, end, 20).total_amount == Decimal("300.00")


def test_same_day_rental_counts_one_day():
    assert pricing.duration_days(date(2030, 3, 1), date(2030, 3, 1)) == 1


def test_end_before_start_is_rejected():
    with pytest.raises(InvalidInterval) as excinfo:
        pricing.price(100, None, date(2030, 3, 5), date(2030, 3, 1), 20)
    assert excinfo.value.field == 'end_date'


def test_paid_amount_carries_into_quote():
    quote = pricing.price(100, None, date(2030, 3, 1), date(2030, 3, 3), 20, paid_amount="100")
    assert quote.remaining_amount == Decimal("200.00")
    assert quote.payment_status is PaymentStatus.PARTIAL


@pytest.mark.parametrize("paid, expected", [
    ("0", PaymentStatus.PENDING),
    ("0.01", PaymentStatus.PARTIAL),
    ("299.99", PaymentStatus.PARTIAL),
    ("300", PaymentStatus.PAID),
    ("350", PaymentStatus.PAID),
])
def test_payment_status_follows_paid_versus_total(paid, expected):
    assert pricing.payment_status_for(Decimal(paid), Decimal("300")) is expected


def test_money_rounds_half_up_to_cents():
    assert pricing.money(0.1) == Decimal("0.10")
    assert pricing.money("10.005") == Decimal("10.01")
    assert pricing.money(None) == Decimal("0.00")


def test_deposit_uses_given_percentage():
    assert pricing.deposit_for(Decimal("333.33"), Decimal("15")) == Decimal("50.00")
    assert pricing.deposit_for(Decimal("300"), 0) == Decimal("0.00")


def test_negative_deposit_base_is_rejected():
    with pytest.raises(InsufficientFunds):
        pricing.deposit_for(Decimal("-1"), 20)
    with pytest.raises(InsufficientFunds):
        pricing.deposit_for(Decimal("100"), -5)


def test_extension_charge_counts_added_days_only():
    days, amount = pricing.extension_charge(Decimal("100"), None, False,
                                            date(2030, 3, 3), date(2030, 3, 5))
    assert days == 2
    assert amount == Decimal("200.00")

    days, amount = pricing.extension_charge(100, 50, True, date(2030, 3, 3), date(2030, 3, 4))
    assert (days, amount) == (1, Decimal("150.00"))


def test_extension_must_move_end_date_forward():
    with pytest.raises(InvalidInterval):
        pricing.extension_charge(100, None, False, date(2030, 3, 3), date(2030, 3, 3))
