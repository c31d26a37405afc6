import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from . import pricing, signals
from .availability import AvailabilityChecker
from .collaborators import VehicleCatalog, log_audit
from .constants import TRANSITION_TARGET, PaymentStatus, RentalAction, can_apply
from .errors import InvalidInterval, InvalidTransition, NotFound, RentalError, UnavailableResource
from .extensions import db
from .models import Rental, RentalExtension
from .unit_of_work import UnitOfWork
from .validation import as_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtensionCheck:
    allowed: bool
    reason: Optional[str] = None


class ExtensionManager:
    """Pushes the end date of a running rental forward.

    The car has to be free for the added days only, ``(current end, new end]``,
    with the rental's own booking left out of the overlap test.  The added
    days are charged at the rental's copied rates and added on top of its
    total and remaining amounts.
    """

    def __init__(self, catalog=None, availability=None, audit=None):
        self.catalog = catalog or VehicleCatalog()
        self.availability = availability or AvailabilityChecker(self.catalog)
        self.audit = audit or log_audit

    def can_extend(self, rental_id: int, new_end_date) -> ExtensionCheck:
        try:
            self._check(rental_id, as_date(new_end_date, 'new_end_date'))
        except RentalError as e:
            return ExtensionCheck(False, e.message)
        return ExtensionCheck(True)

    def create_extension(self, rental_id: int, new_end_date,
                         approved_by: int = None) -> RentalExtension:
        new_end = as_date(new_end_date, 'new_end_date')

        with UnitOfWork('extend rental') as uow:
            rental = self._check(rental_id, new_end, lock=True)
            original_end = rental.end_date
            days, amount = pricing.extension_charge(
                rental.daily_rate, rental.driver_daily_rate, rental.with_driver,
                original_end, new_end)

            extension = RentalExtension(
                rental_id=rental.id,
                original_end_date=original_end,
                new_end_date=new_end,
                extension_days=days,
                extension_amount=amount,
                payment_status=PaymentStatus.PENDING,
                approved_by=approved_by,
            )
            db.session.add(extension)

            old = {'end_date': original_end.isoformat(), 'status': rental.status.value,
                   'total_amount': str(rental.total_amount)}
            rental.end_date = new_end
            rental.rental_duration_days = pricing.duration_days(rental.start_date, new_end)
            rental.total_amount = pricing.money(rental.total_amount) + amount
            rental.remaining_amount = pricing.money(rental.remaining_amount) + amount
            rental.payment_status = pricing.payment_status_for(rental.paid_amount, rental.total_amount)
            rental.status = TRANSITION_TARGET[RentalAction.EXTEND]
            db.session.flush()

            uow.after_commit(self.audit, 'extend_rental', 'rental_extension', extension.id, old,
                             extension.serialize())
            uow.after_commit(signals.rental_extended.send, rental, extension=extension)
        logger.info("Extended rental %s by %s day(s) to %s", rental_id, days, new_end)
        return extension

    def mark_paid(self, extension_id: int) -> RentalExtension:
        with UnitOfWork('mark extension paid') as uow:
            extension = db.session.get(RentalExtension, extension_id, with_for_update=True)
            if extension is None:
                raise NotFound(f"Extension {extension_id} not found",
                               field='extension_id', current=extension_id)
            old_status = extension.payment_status
            extension.payment_status = PaymentStatus.PAID
            uow.after_commit(self.audit, 'mark_extension_paid', 'rental_extension', extension.id,
                             {'payment_status': old_status.value},
                             {'payment_status': PaymentStatus.PAID.value})
        return extension

    def extensions_for(self, rental_id: int):
        return (RentalExtension.query
                .filter_by(rental_id=rental_id)
                .order_by(RentalExtension.created_at.desc(), RentalExtension.id.desc())
                .all())

    def _check(self, rental_id: int, new_end: date, lock: bool = False) -> Rental:
        rental = db.session.get(Rental, rental_id, with_for_update=lock or None)
        if rental is None:
            raise NotFound(f"Rental {rental_id} not found", field='rental_id', current=rental_id)
        if not can_apply(RentalAction.EXTEND, rental.status):
            raise InvalidTransition(
                f"Rental {rental.rental_number} cannot be extended while it is {rental.status.value}",
                field='status', current=rental.status.value)
        if new_end <= rental.end_date:
            raise InvalidInterval("New end date must be after the current end date",
                                  field='new_end_date', current=new_end)
        if lock:
            self.catalog.get_vehicle(rental.car_id, lock=True)
        if not self.availability.is_available(rental.car_id, rental.end_date + timedelta(days=1),
                                              new_end, exclude_rental_id=rental.id):
            raise UnavailableResource(
                f"Car {rental.car_id} is not available until {new_end}",
                field='new_end_date', current=new_end)
        return rental
