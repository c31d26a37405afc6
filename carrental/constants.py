"""
Closed value sets used by the rental models and services.

Statuses are stored in the database by their string value.  Which actions
may be applied to a rental in which status is expressed as a lookup table so
the state machine can be checked exhaustively.
"""

import enum


class RentalStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    EXTENDED = "extended"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class PaymentType(str, enum.Enum):
    RENTAL = "rental"
    DEPOSIT = "deposit"
    FINE = "fine"
    REFUND = "refund"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class CarStatus(str, enum.Enum):
    AVAILABLE = "available"
    RENTED = "rented"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"
    OUT_OF_SERVICE = "out_of_service"


class RentalAction(str, enum.Enum):
    UPDATE = "update"
    CONFIRM = "confirm"
    ACTIVATE = "activate"
    COMPLETE = "complete"
    CANCEL = "cancel"
    EXTEND = "extend"


TERMINAL_STATUSES = frozenset({RentalStatus.COMPLETED, RentalStatus.CANCELLED})

# Rentals in any other status hold the car for their date range.
NON_BLOCKING_STATUSES = TERMINAL_STATUSES

# action -> statuses the action may be applied from
ALLOWED_FROM = {
    RentalAction.UPDATE: frozenset({RentalStatus.PENDING, RentalStatus.CONFIRMED}),
    RentalAction.CONFIRM: frozenset({RentalStatus.PENDING}),
    RentalAction.ACTIVATE: frozenset({RentalStatus.CONFIRMED}),
    RentalAction.COMPLETE: frozenset({RentalStatus.ACTIVE, RentalStatus.EXTENDED}),
    RentalAction.CANCEL: frozenset({RentalStatus.PENDING, RentalStatus.CONFIRMED, RentalStatus.ACTIVE}),
    RentalAction.EXTEND: frozenset({RentalStatus.ACTIVE, RentalStatus.EXTENDED}),
}

# action -> resulting status (UPDATE keeps the current one)
TRANSITION_TARGET = {
    RentalAction.CONFIRM: RentalStatus.CONFIRMED,
    RentalAction.ACTIVATE: RentalStatus.ACTIVE,
    RentalAction.COMPLETE: RentalStatus.COMPLETED,
    RentalAction.CANCEL: RentalStatus.CANCELLED,
    RentalAction.EXTEND: RentalStatus.EXTENDED,
}


def can_apply(action: RentalAction, status: RentalStatus) -> bool:
    return status in ALLOWED_FROM[action]


DATE_FMT = "%Y-%m-%d"
