"""
Shared fixtures: an app on in-memory SQLite with fresh tables per test and a
small seeded fleet (two cars, one customer, one branch).
"""

from datetime import date
from decimal import Decimal

import pytest

from carrental import create_app, db
from carrental.config import TestConfig
from carrental.ledger import RentalLedger
from carrental.models import Branch, Car, Customer


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seed(app):
    car = Car(brand="Toyota", model="Corolla", year=2022, plate_number="A12345",
              daily_rate=Decimal("100.00"), driver_daily_rate=Decimal("50.00"))
    spare = Car(brand="Nissan", model="Sunny", year=2021, plate_number="B67890",
                daily_rate=Decimal("80.00"), driver_daily_rate=Decimal("50.00"))
    customer = Customer(name="Jane Doe", phone="0501234567", email="jane@example.com")
    branch = Branch(name="Main", phone="042000000", address="Airport Road")
    db.session.add_all([car, spare, customer, branch])
    db.session.commit()
    return {'car_id': car.id, 'spare_id': spare.id,
            'customer_id': customer.id, 'branch_id': branch.id}


@pytest.fixture
def ledger(app):
    return RentalLedger()


@pytest.fixture
def make_rental(ledger, seed):
    """Create a pending rental on the seeded car; dates default to 1-3 March 2030."""
    def _make(start=date(2030, 3, 1), end=date(2030, 3, 3), car_id=None, **kwargs):
        return ledger.create(car_id=car_id or seed['car_id'], customer_id=seed['customer_id'],
                             start_date=start, end_date=end, **kwargs)
    return _make


@pytest.fixture
def running_rental(ledger, make_rental):
    """A rental for 1-3 March 2030 that has been confirmed and handed over."""
    def _running(**kwargs):
        rental = make_rental(**kwargs)
        ledger.confirm(rental.id)
        return ledger.activate(rental.id, odometer_start=10000, fuel_level_start="full")
    return _running
