"""
Services the rental engine consumes but does not own.

The vehicle catalog, settings store, customer registry and audit log live
outside this package.  The classes below are the default adapters: they read
and write the local ``car``/``customer`` tables and the Flask config, which is
enough to run the engine on its own and in tests.  Callers with real services
pass their own objects with the same methods into the ledger and managers.
"""

import logging
from decimal import Decimal

from flask import current_app

from .constants import CarStatus
from .extensions import db
from .models import Car, Customer

audit_logger = logging.getLogger('carrental.audit')


class VehicleCatalog:

    def get_vehicle(self, car_id: int, lock: bool = False):
        """Return the car, or None.  ``lock`` takes a row lock (FOR UPDATE)
        on backends that support it, serialising writers on the same car."""
        return db.session.get(Car, car_id, with_for_update=lock or None)

    def set_vehicle_status(self, car_id: int, status: CarStatus) -> None:
        car = db.session.get(Car, car_id)
        car.status = CarStatus(status)

    def set_current_contract(self, car_id: int, rental_id) -> None:
        car = db.session.get(Car, car_id)
        car.current_rental_id = rental_id


class SettingsService:

    def __init__(self, config=None):
        self._config = config

    @property
    def config(self):
        return self._config if self._config is not None else current_app.config

    def get_deposit_percentage(self) -> Decimal:
        return Decimal(str(self.config.get('RENTAL_DEPOSIT_PERCENTAGE', 20)))

    def get_rental_day_limits(self):
        return (int(self.config.get('RENTAL_MIN_DAYS', 1)),
                int(self.config.get('RENTAL_MAX_DAYS', 90)))

    def get_rental_number_prefix(self) -> str:
        return self.config.get('RENTAL_NUMBER_PREFIX', 'RNT')


class CustomerDirectory:

    def customer_exists(self, customer_id) -> bool:
        if customer_id is None:
            return False
        return db.session.get(Customer, customer_id) is not None


def log_audit(action: str, entity: str, entity_id, old=None, new=None) -> None:
    """Default audit sink: one log line per mutation."""
    audit_logger.info("%s %s #%s old=%s new=%s", action, entity, entity_id, old, new)
