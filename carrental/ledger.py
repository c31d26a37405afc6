"""
Rental contracts and their state machine.

    pending -> confirmed -> active -> completed
    pending | confirmed | active -> cancelled
    active | extended -> extended   (see extension_manager)

Every public method runs in exactly one :class:`UnitOfWork`.  Methods that
touch both the rental and its car (activate, complete, cancel) write both
rows in that same transaction, so either both changes land or neither does.
"""

import logging
from datetime import date

from sqlalchemy import Integer, cast, func

from . import pricing, signals
from .availability import AvailabilityChecker
from .collaborators import CustomerDirectory, SettingsService, VehicleCatalog, log_audit
from .constants import TRANSITION_TARGET, CarStatus, PaymentType, RentalAction, can_apply
from .errors import InvalidTransition, NotFound, UnavailableResource, ValidationError
from .extensions import db
from .models import Rental
from .payments import PaymentReconciler
from .unit_of_work import UnitOfWork
from .validation import as_bool, as_date, as_datetime, as_int, as_money, require_text

logger = logging.getLogger(__name__)

# Fields a caller may change through update(); anything else is owned by the
# state machine or derived.
UPDATABLE_FIELDS = ('start_date', 'end_date', 'with_driver', 'driver_name', 'driver_phone',
                    'daily_rate', 'driver_daily_rate', 'branch_id', 'notes')


class RentalLedger:

    def __init__(self, catalog=None, settings=None, customers=None,
                 availability=None, audit=None, reconciler=None):
        self.catalog = catalog or VehicleCatalog()
        self.settings = settings or SettingsService()
        self.customers = customers or CustomerDirectory()
        self.availability = availability or AvailabilityChecker(self.catalog)
        self.audit = audit or log_audit
        self.reconciler = reconciler or PaymentReconciler(self.audit)

    # ------------------------------------------------------------------
    # Lookups

    def get(self, rental_id: int) -> Rental:
        rental = db.session.get(Rental, rental_id)
        if rental is None:
            raise NotFound(f"Rental {rental_id} not found", field='rental_id', current=rental_id)
        return rental

    def _load_for(self, rental_id: int, action: RentalAction) -> Rental:
        """Lock the rental row and make sure ``action`` is legal from its status."""
        rental = db.session.get(Rental, rental_id, with_for_update=True)
        if rental is None:
            raise NotFound(f"Rental {rental_id} not found", field='rental_id', current=rental_id)
        if not can_apply(action, rental.status):
            raise InvalidTransition(
                f"Cannot {action.value} rental {rental.rental_number} while it is {rental.status.value}",
                field='status', current=rental.status.value)
        return rental

    # ------------------------------------------------------------------
    # Creation and editing

    def create(self, car_id: int, customer_id: int, start_date, end_date,
               with_driver: bool = False, driver_name: str = None, driver_phone: str = None,
               daily_rate=None, driver_daily_rate=None, branch_id: int = None,
               notes: str = None, created_by: int = None, payments=None) -> Rental:
        """Write a new rental in ``pending`` status.

        Rates default to the car's catalog rates and are copied onto the
        rental.  Field problems are reported before any write; the
        availability check is repeated inside the write transaction, after
        the car row is locked, so two requests for the same dates cannot both
        succeed.

        ``payments`` is an optional list of dicts (``amount``, ``payment_type``,
        ``payment_method``, ``reference_number``, ``notes``) taken at the
        counter.  They are checked up front and written in the same
        transaction as the rental.
        """
        start = as_date(start_date, 'start_date')
        end = as_date(end_date, 'end_date')
        if not self.customers.customer_exists(customer_id):
            raise ValidationError("Customer does not exist", field='customer_id', current=customer_id)
        car = self.catalog.get_vehicle(car_id)
        if car is None:
            raise NotFound(f"Car {car_id} not found", field='car_id', current=car_id)

        terms = self._validate_terms(
            start, end, as_bool(with_driver, 'with_driver'),
            daily_rate if daily_rate is not None else car.daily_rate,
            driver_daily_rate if driver_daily_rate is not None else car.driver_daily_rate,
            driver_name, driver_phone)
        deposit_percent = self.settings.get_deposit_percentage()
        quote = pricing.price(terms['daily_rate'], terms['driver_daily_rate'], start, end,
                              deposit_percent, with_driver=terms['with_driver'])
        counter_payments = [self._check_counter_payment(p) for p in (payments or ())]

        with UnitOfWork('create rental') as uow:
            self.catalog.get_vehicle(car_id, lock=True)
            if not self.availability.is_available(car_id, start, end):
                raise UnavailableResource(
                    f"Car {car_id} is not available from {start} to {end}",
                    field='car_id', current=car_id)

            rental = Rental(
                rental_number=self._next_rental_number(),
                car_id=car_id,
                customer_id=customer_id,
                branch_id=branch_id,
                start_date=start,
                end_date=end,
                notes=notes,
                created_by=created_by,
                deposit_percentage=pricing.money(deposit_percent),
                **terms,
            )
            self._apply_quote(rental, quote)
            db.session.add(rental)
            db.session.flush()
            for amount, payment_type, details in counter_payments:
                self.reconciler.record(uow, rental, amount, payment_type, created_by=created_by, **details)
            if counter_payments:
                self.reconciler.reconcile(rental)
            uow.after_commit(self.audit, 'create_rental', 'rental', rental.id, None, rental.serialize())
            uow.after_commit(signals.rental_created.send, rental)
        logger.info("Created rental %s for car %s (%s..%s)", rental.rental_number, car_id, start, end)
        return rental

    def update(self, rental_id: int, **changes) -> Rental:
        """Change dates, rates, driver details or notes of a rental that has
        not been picked up yet, recomputing its amounts.  Payments already
        recorded are kept."""
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            field = sorted(unknown)[0]
            raise ValidationError(f"{field} cannot be updated", field=field)

        with UnitOfWork('update rental') as uow:
            rental = self._load_for(rental_id, RentalAction.UPDATE)
            old = rental.serialize()
            start = as_date(changes.get('start_date', rental.start_date), 'start_date')
            end = as_date(changes.get('end_date', rental.end_date), 'end_date')
            terms = self._validate_terms(
                start, end,
                as_bool(changes.get('with_driver'), 'with_driver', default=rental.with_driver),
                changes.get('daily_rate', rental.daily_rate),
                changes.get('driver_daily_rate', rental.driver_daily_rate),
                changes.get('driver_name', rental.driver_name),
                changes.get('driver_phone', rental.driver_phone))

            if (start, end) != (rental.start_date, rental.end_date):
                self.catalog.get_vehicle(rental.car_id, lock=True)
                if not self.availability.is_available(rental.car_id, start, end,
                                                      exclude_rental_id=rental.id):
                    raise UnavailableResource(
                        f"Car {rental.car_id} is not available from {start} to {end}",
                        field='car_id', current=rental.car_id)

            quote = pricing.price(terms['daily_rate'], terms['driver_daily_rate'], start, end,
                                  rental.deposit_percentage, paid_amount=rental.paid_amount,
                                  with_driver=terms['with_driver'])
            rental.start_date = start
            rental.end_date = end
            for key, value in terms.items():
                setattr(rental, key, value)
            if 'branch_id' in changes:
                rental.branch_id = changes['branch_id']
            if 'notes' in changes:
                rental.notes = changes['notes']
            self._apply_quote(rental, quote)
            db.session.flush()
            uow.after_commit(self.audit, 'update_rental', 'rental', rental.id, old, rental.serialize())
            uow.after_commit(signals.rental_updated.send, rental)
        return rental

    # ------------------------------------------------------------------
    # Transitions

    def confirm(self, rental_id: int, confirmed_by: int = None) -> Rental:
        with UnitOfWork('confirm rental') as uow:
            rental = self._load_for(rental_id, RentalAction.CONFIRM)
            old_status = rental.status
            rental.status = TRANSITION_TARGET[RentalAction.CONFIRM]
            rental.confirmed_by = confirmed_by
            self._after_transition(uow, rental, 'confirm_rental', old_status, signals.rental_confirmed)
        return rental

    def activate(self, rental_id: int, odometer_start, fuel_level_start,
                 car_condition_start: str = None) -> Rental:
        """Hand the car over: record the pickup snapshot and mark the car rented."""
        odometer = as_int(odometer_start, 'odometer_start', minimum=0)
        fuel = require_text(fuel_level_start, 'fuel_level_start')

        with UnitOfWork('activate rental') as uow:
            rental = self._load_for(rental_id, RentalAction.ACTIVATE)
            car = self.catalog.get_vehicle(rental.car_id, lock=True)
            if car is None:
                raise NotFound(f"Car {rental.car_id} not found", field='car_id', current=rental.car_id)
            held_elsewhere = car.current_rental_id not in (None, rental.id)
            if held_elsewhere or (car.status != CarStatus.AVAILABLE and car.current_rental_id != rental.id):
                raise UnavailableResource(
                    f"Car {car.id} is {car.status.value} and cannot be handed over",
                    field='car_id', current=car.status.value)

            old_status = rental.status
            rental.status = TRANSITION_TARGET[RentalAction.ACTIVATE]
            rental.odometer_start = odometer
            rental.fuel_level_start = fuel
            rental.car_condition_start = car_condition_start
            self.catalog.set_vehicle_status(car.id, CarStatus.RENTED)
            self.catalog.set_current_contract(car.id, rental.id)
            self._after_transition(uow, rental, 'activate_rental', old_status, signals.rental_activated)
        return rental

    def complete(self, rental_id: int, odometer_end, fuel_level_end,
                 car_condition_end: str = None, completed_by: int = None,
                 returned_at=None) -> Rental:
        """Take the car back: record the return snapshot and release the car."""
        odometer = as_int(odometer_end, 'odometer_end', minimum=0)
        fuel = require_text(fuel_level_end, 'fuel_level_end')
        returned = as_datetime(returned_at, 'actual_return_date')

        with UnitOfWork('complete rental') as uow:
            rental = self._load_for(rental_id, RentalAction.COMPLETE)
            if rental.odometer_start is not None and odometer < rental.odometer_start:
                raise ValidationError("Return odometer is below the pickup reading",
                                      field='odometer_end', current=odometer)
            self.catalog.get_vehicle(rental.car_id, lock=True)

            old_status = rental.status
            rental.status = TRANSITION_TARGET[RentalAction.COMPLETE]
            rental.actual_return_date = returned
            rental.odometer_end = odometer
            rental.fuel_level_end = fuel
            rental.car_condition_end = car_condition_end
            rental.completed_by = completed_by
            self._release_car(rental, force=True)
            self._after_transition(uow, rental, 'complete_rental', old_status, signals.rental_completed)
        return rental

    def cancel(self, rental_id: int, reason: str, cancelled_by: int = None) -> Rental:
        """Cancel the rental.  The car is put back in the pool only when this
        rental is the one holding it, so cancelling a future booking leaves a
        car handed over on another contract untouched."""
        reason = require_text(reason, 'cancellation_reason')

        with UnitOfWork('cancel rental') as uow:
            rental = self._load_for(rental_id, RentalAction.CANCEL)
            self.catalog.get_vehicle(rental.car_id, lock=True)
            old_status = rental.status
            rental.status = TRANSITION_TARGET[RentalAction.CANCEL]
            rental.cancellation_reason = reason
            self._release_car(rental, force=False)
            self._after_transition(uow, rental, 'cancel_rental', old_status, signals.rental_cancelled,
                                   reason=reason, cancelled_by=cancelled_by)
        return rental

    # ------------------------------------------------------------------
    # Helpers

    def _validate_terms(self, start: date, end: date, with_driver: bool, daily_rate,
                        driver_daily_rate, driver_name, driver_phone) -> dict:
        days = pricing.duration_days(start, end)
        min_days, max_days = self.settings.get_rental_day_limits()
        if days < min_days:
            raise ValidationError(f"Rental must last at least {min_days} day(s)",
                                  field='end_date', current=end)
        if days > max_days:
            raise ValidationError(f"Rental cannot last more than {max_days} days",
                                  field='end_date', current=end)

        rate = as_money(daily_rate, 'daily_rate')
        if rate <= 0:
            raise ValidationError("Daily rate must be greater than zero", field='daily_rate', current=rate)

        driver_rate = as_money(driver_daily_rate, 'driver_daily_rate', required=False)
        if with_driver:
            driver_name = require_text(driver_name, 'driver_name')
            driver_phone = require_text(driver_phone, 'driver_phone')
            if driver_rate is None or driver_rate <= 0:
                raise ValidationError("Driver daily rate must be greater than zero",
                                      field='driver_daily_rate', current=driver_rate)
        return {
            'with_driver': with_driver,
            'driver_name': driver_name if with_driver else None,
            'driver_phone': driver_phone if with_driver else None,
            'daily_rate': rate,
            'driver_daily_rate': driver_rate,
        }

    def _check_counter_payment(self, payment: dict):
        amount, payment_type = self.reconciler.check_payment(
            payment.get('amount'), payment.get('payment_type', PaymentType.RENTAL))
        details = {key: payment.get(key) for key in ('payment_method', 'reference_number', 'notes')}
        return amount, payment_type, details

    @staticmethod
    def _apply_quote(rental: Rental, quote: pricing.Quote) -> None:
        rental.rental_duration_days = quote.duration_days
        rental.total_amount = quote.total_amount
        rental.deposit_amount = quote.deposit_amount
        rental.paid_amount = quote.paid_amount
        rental.remaining_amount = quote.remaining_amount
        rental.payment_status = quote.payment_status

    def _next_rental_number(self, today: date = None) -> str:
        """Prefix + YYYYMMDD + sequence restarting every day, zero-padded to
        four digits and widening past 9999."""
        prefix = f"{self.settings.get_rental_number_prefix()}{(today or date.today()):%Y%m%d}"
        # numeric max: "...10000" sorts below "...9999" as text
        last = (db.session.query(func.max(cast(func.substr(Rental.rental_number, len(prefix) + 1),
                                               Integer)))
                .filter(Rental.rental_number.like(f"{prefix}%"))
                .scalar())
        sequence = (last or 0) + 1
        return f"{prefix}{sequence:04d}"

    def _release_car(self, rental: Rental, force: bool) -> None:
        """Put the car back to 'available' and clear its current rental.

        Without ``force`` the car is only touched when it is held by this
        rental; cancelling a booking must not free a car another rental is
        using.
        """
        car = self.catalog.get_vehicle(rental.car_id)
        if car is None:
            return
        if not force and car.current_rental_id != rental.id:
            return
        self.catalog.set_vehicle_status(car.id, CarStatus.AVAILABLE)
        self.catalog.set_current_contract(car.id, None)

    def _after_transition(self, uow: UnitOfWork, rental: Rental, action: str, old_status,
                          signal, **extra) -> None:
        db.session.flush()
        uow.after_commit(self.audit, action, 'rental', rental.id,
                         {'status': old_status.value}, {'status': rental.status.value, **extra})
        uow.after_commit(signal.send, rental)
        uow.after_commit(logger.info, "Rental %s: %s -> %s", rental.rental_number,
                         old_status.value, rental.status.value)
