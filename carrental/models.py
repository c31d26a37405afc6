from datetime import datetime
from decimal import Decimal

from .constants import CarStatus, PaymentStatus, PaymentType, RentalStatus
from .extensions import db


def _enum(enum_cls):
    # Store the enum's value ('pending'), not its member name ('PENDING').
    return db.Enum(enum_cls, values_callable=lambda e: [m.value for m in e],
                   native_enum=False, validate_strings=True, length=20)


def _money(value):
    return None if value is None else str(value)


def _day(value):
    return value.isoformat() if value else None


class Branch(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(50))
    address = db.Column(db.Text)

    def __repr__(self) -> str:
        return f"<Branch {self.name}>"


class Customer(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(50))
    email = db.Column(db.String(120))

    rentals = db.relationship('Rental', back_populates='customer')

    def __repr__(self) -> str:
        return f"<Customer {self.name}>"


class Car(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    brand = db.Column(db.String(80), nullable=False)
    model = db.Column(db.String(120), nullable=False)
    year = db.Column(db.Integer)
    plate_number = db.Column(db.String(20), unique=True)
    status = db.Column(_enum(CarStatus), nullable=False, default=CarStatus.AVAILABLE)
    daily_rate = db.Column(db.Numeric(10, 2), nullable=False)
    driver_daily_rate = db.Column(db.Numeric(10, 2))

    # Rental currently holding the car (set on activation, cleared on
    # completion/cancellation).  Kept as a plain id so the car and rental
    # tables do not reference each other.
    current_rental_id = db.Column(db.Integer, nullable=True)

    rentals = db.relationship('Rental', back_populates='car')

    @property
    def description(self) -> str:
        parts = [self.brand, self.model]
        if self.year:
            parts.append(str(self.year))
        label = " ".join(parts)
        return f"{label} ({self.plate_number})" if self.plate_number else label

    def serialize(self) -> dict:
        return {
            'id': self.id,
            'brand': self.brand,
            'model': self.model,
            'year': self.year,
            'plate_number': self.plate_number,
            'status': self.status.value,
            'daily_rate': _money(self.daily_rate),
            'driver_daily_rate': _money(self.driver_daily_rate),
            'current_rental_id': self.current_rental_id,
        }

    def __repr__(self) -> str:
        return f"<Car {self.plate_number}>"


class Rental(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    rental_number = db.Column(db.String(32), unique=True, nullable=False)
    car_id = db.Column(db.Integer, db.ForeignKey('car.id'), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey('branch.id'), nullable=True)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    actual_return_date = db.Column(db.DateTime, nullable=True)
    rental_duration_days = db.Column(db.Integer, nullable=False)

    # Copied from the car when the contract is written; later catalog price
    # changes never touch an existing rental.
    with_driver = db.Column(db.Boolean, default=False, nullable=False)
    driver_name = db.Column(db.String(120))
    driver_phone = db.Column(db.String(50))
    daily_rate = db.Column(db.Numeric(10, 2), nullable=False)
    driver_daily_rate = db.Column(db.Numeric(10, 2))

    deposit_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0.00"))

    total_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    deposit_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    paid_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    remaining_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    payment_status = db.Column(_enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)

    odometer_start = db.Column(db.Integer)
    odometer_end = db.Column(db.Integer)
    fuel_level_start = db.Column(db.String(20))
    fuel_level_end = db.Column(db.String(20))
    car_condition_start = db.Column(db.Text)
    car_condition_end = db.Column(db.Text)

    status = db.Column(_enum(RentalStatus), nullable=False, default=RentalStatus.PENDING, index=True)
    cancellation_reason = db.Column(db.Text)
    notes = db.Column(db.Text)

    created_by = db.Column(db.Integer)
    confirmed_by = db.Column(db.Integer)
    completed_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    car = db.relationship('Car', back_populates='rentals')
    customer = db.relationship('Customer', back_populates='rentals')
    branch = db.relationship('Branch')
    payments = db.relationship('RentalPayment', back_populates='rental',
                               order_by='RentalPayment.id')
    extensions = db.relationship('RentalExtension', back_populates='rental',
                                 order_by='RentalExtension.id')

    def serialize(self) -> dict:
        return {
            'id': self.id,
            'rental_number': self.rental_number,
            'car_id': self.car_id,
            'customer_id': self.customer_id,
            'branch_id': self.branch_id,
            'start_date': _day(self.start_date),
            'end_date': _day(self.end_date),
            'actual_return_date': _day(self.actual_return_date),
            'rental_duration_days': self.rental_duration_days,
            'with_driver': self.with_driver,
            'driver_name': self.driver_name,
            'driver_phone': self.driver_phone,
            'daily_rate': _money(self.daily_rate),
            'driver_daily_rate': _money(self.driver_daily_rate),
            'deposit_percentage': _money(self.deposit_percentage),
            'total_amount': _money(self.total_amount),
            'deposit_amount': _money(self.deposit_amount),
            'paid_amount': _money(self.paid_amount),
            'remaining_amount': _money(self.remaining_amount),
            'payment_status': self.payment_status.value,
            'odometer_start': self.odometer_start,
            'odometer_end': self.odometer_end,
            'fuel_level_start': self.fuel_level_start,
            'fuel_level_end': self.fuel_level_end,
            'car_condition_start': self.car_condition_start,
            'car_condition_end': self.car_condition_end,
            'status': self.status.value,
            'cancellation_reason': self.cancellation_reason,
            'notes': self.notes,
            'created_by': self.created_by,
            'confirmed_by': self.confirmed_by,
            'completed_by': self.completed_by,
        }

    def __repr__(self) -> str:
        return f"<Rental {self.rental_number} car={self.car_id} status={self.status.value}>"


class RentalPayment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    rental_id = db.Column(db.Integer, db.ForeignKey('rental.id'), nullable=False, index=True)
    payment_method = db.Column(db.String(50))  # cash, card, transfer
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    payment_type = db.Column(_enum(PaymentType), nullable=False, default=PaymentType.RENTAL)
    payment_date = db.Column(db.DateTime, default=datetime.utcnow)
    reference_number = db.Column(db.String(120))
    notes = db.Column(db.Text)
    created_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    rental = db.relationship('Rental', back_populates='payments')

    def serialize(self) -> dict:
        return {
            'id': self.id,
            'rental_id': self.rental_id,
            'payment_method': self.payment_method,
            'amount': _money(self.amount),
            'payment_type': self.payment_type.value,
            'payment_date': self.payment_date.isoformat() if self.payment_date else None,
            'reference_number': self.reference_number,
            'notes': self.notes,
            'created_by': self.created_by,
        }

    def __repr__(self) -> str:
        return f"<RentalPayment {self.payment_type.value} {self.amount} on {self.payment_date}>"


class RentalExtension(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    rental_id = db.Column(db.Integer, db.ForeignKey('rental.id'), nullable=False, index=True)
    original_end_date = db.Column(db.Date, nullable=False)
    new_end_date = db.Column(db.Date, nullable=False)
    extension_days = db.Column(db.Integer, nullable=False)
    extension_amount = db.Column(db.Numeric(10, 2), nullable=False)
    payment_status = db.Column(_enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    approved_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    rental = db.relationship('Rental', back_populates='extensions')

    def serialize(self) -> dict:
        return {
            'id': self.id,
            'rental_id': self.rental_id,
            'original_end_date': _day(self.original_end_date),
            'new_end_date': _day(self.new_end_date),
            'extension_days': self.extension_days,
            'extension_amount': _money(self.extension_amount),
            'payment_status': self.payment_status.value,
            'approved_by': self.approved_by,
        }

    def __repr__(self) -> str:
        return f"<RentalExtension rental={self.rental_id} +{self.extension_days}d>"
