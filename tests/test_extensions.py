from datetime import date
from decimal import Decimal

import pytest

from carrental.constants import PaymentStatus, RentalStatus
from carrental.errors import InvalidInterval, NotFound, UnavailableResource
from carrental.extension_manager import ExtensionManager
from carrental.extensions import db
from carrental.models import Rental, RentalExtension
from carrental.payments import PaymentReconciler


@pytest.fixture
def manager(app):
    return ExtensionManager()


def test_extension_adds_to_totals(manager, running_rental):
    rental = running_rental()
    PaymentReconciler().add_payment(rental.id, "100")

    extension = manager.create_extension(rental.id, "2030-03-05", approved_by=9)

    assert extension.original_end_date == date(2030, 3, 3)
    assert extension.extension_days == 2
    assert extension.extension_amount == Decimal("200.00")
    assert extension.payment_status is PaymentStatus.PENDING

    rental = db.session.get(Rental, rental.id)
    assert rental.status is RentalStatus.EXTENDED
    assert rental.end_date == date(2030, 3, 5)
    assert rental.rental_duration_days == 5
    assert rental.total_amount == Decimal("500.00")
    assert rental.remaining_amount == Decimal("400.00")
    assert rental.paid_amount == Decimal("100.00")
    assert rental.payment_status is PaymentStatus.PARTIAL
    # the deposit was agreed on the original contract
    assert rental.deposit_amount == Decimal("60.00")


def test_fully_paid_rental_drops_back_to_partial(manager, running_rental):
    rental = running_rental()
    PaymentReconciler().add_payment(rental.id, "300")
    manager.create_extension(rental.id, date(2030, 3, 4))
    assert db.session.get(Rental, rental.id).payment_status is PaymentStatus.PARTIAL


def test_extended_rental_can_be_extended_and_completed(manager, ledger, running_rental):
    rental = running_rental()
    manager.create_extension(rental.id, date(2030, 3, 4))
    manager.create_extension(rental.id, date(2030, 3, 6))

    rental = db.session.get(Rental, rental.id)
    assert rental.total_amount == Decimal("600.00")
    assert [e.extension_days for e in manager.extensions_for(rental.id)] == [2, 1]

    rental = ledger.complete(rental.id, odometer_end=10800, fuel_level_end="full")
    assert rental.status is RentalStatus.COMPLETED


def test_extension_blocked_by_next_booking(manager, ledger, make_rental):
    rental = make_rental()
    make_rental(start=date(2030, 3, 5), end=date(2030, 3, 7))
    ledger.confirm(rental.id)
    ledger.activate(rental.id, odometer_start=1, fuel_level_start="full")

    check = manager.can_extend(rental.id, "2030-03-06")
    assert not check.allowed
    assert "not available" in check.reason
    with pytest.raises(UnavailableResource):
        manager.create_extension(rental.id, "2030-03-06")

    assert manager.can_extend(rental.id, "2030-03-04").allowed
    manager.create_extension(rental.id, "2030-03-04")
    assert db.session.get(Rental, rental.id).end_date == date(2030, 3, 4)


def test_can_extend_explains_refusals(manager, make_rental, running_rental):
    pending = make_rental(start=date(2030, 5, 1), end=date(2030, 5, 2))
    check = manager.can_extend(pending.id, "2030-05-04")
    assert not check.allowed
    assert "pending" in check.reason

    rental = running_rental()
    check = manager.can_extend(rental.id, "2030-03-03")
    assert not check.allowed
    assert "after the current end date" in check.reason

    assert not manager.can_extend(999, "2030-03-05").allowed
    assert not manager.can_extend(rental.id, "not a date").allowed


def test_end_date_must_move_forward(manager, running_rental):
    rental = running_rental()
    with pytest.raises(InvalidInterval):
        manager.create_extension(rental.id, date(2030, 3, 2))
    assert RentalExtension.query.count() == 0
    assert db.session.get(Rental, rental.id).status is RentalStatus.ACTIVE


def test_mark_paid(manager, running_rental):
    rental = running_rental()
    extension = manager.create_extension(rental.id, date(2030, 3, 4))

    extension = manager.mark_paid(extension.id)
    assert extension.payment_status is PaymentStatus.PAID

    with pytest.raises(NotFound):
        manager.mark_paid(999)
