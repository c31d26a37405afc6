import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .collaborators import VehicleCatalog
from .constants import NON_BLOCKING_STATUSES, CarStatus
from .extensions import db
from .models import Car, Rental

logger = logging.getLogger(__name__)


class AvailabilityChecker:
    """Decides whether a car is free for a date range.

    A car is free when its catalog status allows renting and no other rental
    that still holds the car (anything but completed/cancelled) overlaps the
    range.  Both ranges are inclusive of their end days, so two ranges overlap
    when ``existing.start <= end and existing.end >= start``; this single test
    covers an overlap from the left, from the right and full containment in
    either direction.
    """

    def __init__(self, catalog: VehicleCatalog = None):
        self.catalog = catalog or VehicleCatalog()

    def find_conflicts(self, car_id: int, start_date: date, end_date: date,
                       exclude_rental_id: Optional[int] = None) -> List[Rental]:
        query = Rental.query.filter(
            Rental.car_id == car_id,
            Rental.status.notin_(list(NON_BLOCKING_STATUSES)),
            Rental.start_date <= end_date,
            Rental.end_date >= start_date,
        )
        if exclude_rental_id is not None:
            query = query.filter(Rental.id != exclude_rental_id)
        return query.order_by(Rental.start_date.asc()).all()

    def is_available(self, car_id: int, start_date: date, end_date: date,
                     exclude_rental_id: Optional[int] = None) -> bool:
        try:
            car = self.catalog.get_vehicle(car_id)
            if car is None:
                return False
            # A rented car is still free as far as its own rental is concerned
            # (that is how an active rental gets extended).
            held_by_excluded = (exclude_rental_id is not None
                                and car.current_rental_id == exclude_rental_id)
            if car.status != CarStatus.AVAILABLE and not held_by_excluded:
                return False
            conflicts = self.find_conflicts(car_id, start_date, end_date, exclude_rental_id)
        except SQLAlchemyError:
            # Never report a car as free on data we could not read.
            logger.exception("Availability check failed for car %s", car_id)
            return False
        if conflicts:
            logger.info("Car %s unavailable %s..%s, overlaps %s", car_id, start_date,
                        end_date, ", ".join(r.rental_number for r in conflicts))
            return False
        return True

    def available_cars(self, start_date: date, end_date: date):
        """Cars in 'available' status with no rental overlapping the range."""
        busy = (db.select(Rental.car_id)
                .where(Rental.status.notin_(list(NON_BLOCKING_STATUSES)),
                       Rental.start_date <= end_date,
                       Rental.end_date >= start_date))
        return (Car.query
                .filter(Car.status == CarStatus.AVAILABLE, Car.id.notin_(busy))
                .order_by(Car.brand.asc(), Car.model.asc())
                .all())
