"""
JSON endpoints over the rental engine.

Request-shape checks happen in the services, which raise typed errors; the
error handlers registered in the app factory turn those into JSON responses.
Authentication is handled in front of this blueprint, so the acting user id
simply arrives as ``actor_id`` in the request body.
"""

from flask import Blueprint, jsonify, request

from . import queries
from .availability import AvailabilityChecker
from .errors import NotFound
from .extension_manager import ExtensionManager
from .extensions import db
from .ledger import UPDATABLE_FIELDS, RentalLedger
from .models import Car
from .payments import PaymentReconciler
from .validation import as_date, as_int

bp = Blueprint('rentals', __name__, url_prefix='/api')


def _body() -> dict:
    return request.get_json(silent=True) or {}


# ---------------------------------------------------------------------------
# Reads

@bp.route('/rentals', methods=['GET'])
def list_rentals():
    filters = {key: request.args.get(key) for key in
               ('status', 'payment_status', 'date_from', 'date_to', 'search')}
    for key in ('branch_id', 'customer_id', 'car_id'):
        filters[key] = request.args.get(key, type=int)
    page = as_int(request.args.get('page', 1), 'page', minimum=1)
    per_page = as_int(request.args.get('per_page', 20), 'per_page', minimum=1)
    return jsonify(queries.list_rentals(filters, page=page, per_page=min(per_page, 100)))


@bp.route('/rentals/<int:rental_id>', methods=['GET'])
def show_rental(rental_id: int):
    return jsonify(queries.get_rental_detail(rental_id))


@bp.route('/rentals/active', methods=['GET'])
def active_rentals():
    return jsonify(queries.active_rentals())


@bp.route('/rentals/overdue', methods=['GET'])
def overdue_rentals():
    today = request.args.get('today')
    return jsonify(queries.overdue_rentals(as_date(today, 'today') if today else None))


@bp.route('/rentals/calendar', methods=['GET'])
def rentals_calendar():
    start = as_date(request.args.get('start'), 'start')
    end = as_date(request.args.get('end'), 'end')
    return jsonify(queries.rentals_for_calendar(start, end))


@bp.route('/rentals/stats', methods=['GET'])
def rental_stats():
    args = request.args
    return jsonify({
        'rentals': queries.rental_stats(args.get('date_from'), args.get('date_to'),
                                        args.get('branch_id', type=int)),
        'payments': queries.payment_stats(args.get('date_from'), args.get('date_to')),
        'extensions': queries.extension_stats(args.get('date_from'), args.get('date_to')),
    })


@bp.route('/cars/<int:car_id>/availability', methods=['GET'])
def car_availability(car_id: int):
    if db.session.get(Car, car_id) is None:
        raise NotFound(f"Car {car_id} not found", field='car_id', current=car_id)
    start = as_date(request.args.get('start_date'), 'start_date')
    end = as_date(request.args.get('end_date'), 'end_date')
    exclude = request.args.get('exclude_rental_id', type=int)
    checker = AvailabilityChecker()
    return jsonify({
        'car_id': car_id,
        'available': checker.is_available(car_id, start, end, exclude_rental_id=exclude),
        'conflicts': [r.rental_number for r in checker.find_conflicts(car_id, start, end, exclude)],
    })


# ---------------------------------------------------------------------------
# Rental lifecycle

@bp.route('/rentals', methods=['POST'])
def create_rental():
    data = _body()
    ledger = RentalLedger()
    rental = ledger.create(
        car_id=data.get('car_id'),
        customer_id=data.get('customer_id'),
        start_date=data.get('start_date'),
        end_date=data.get('end_date'),
        with_driver=data.get('with_driver'),
        driver_name=data.get('driver_name'),
        driver_phone=data.get('driver_phone'),
        daily_rate=data.get('daily_rate'),
        driver_daily_rate=data.get('driver_daily_rate'),
        branch_id=data.get('branch_id'),
        notes=data.get('notes'),
        created_by=data.get('actor_id'),
        payments=[{'amount': data[key], 'payment_type': payment_type,
                   'payment_method': data.get('payment_method')}
                  for key, payment_type in (('initial_payment', 'rental'), ('deposit_payment', 'deposit'))
                  if data.get(key) not in (None, '')],
    )
    return jsonify(rental.serialize()), 201


@bp.route('/rentals/<int:rental_id>', methods=['PUT', 'PATCH'])
def update_rental(rental_id: int):
    data = _body()
    changes = {key: data[key] for key in UPDATABLE_FIELDS if key in data}
    rental = RentalLedger().update(rental_id, **changes)
    return jsonify(rental.serialize())


@bp.route('/rentals/<int:rental_id>/confirm', methods=['POST'])
def confirm_rental(rental_id: int):
    rental = RentalLedger().confirm(rental_id, confirmed_by=_body().get('actor_id'))
    return jsonify(rental.serialize())


@bp.route('/rentals/<int:rental_id>/activate', methods=['POST'])
def activate_rental(rental_id: int):
    data = _body()
    rental = RentalLedger().activate(rental_id,
                                     odometer_start=data.get('odometer_start'),
                                     fuel_level_start=data.get('fuel_level_start'),
                                     car_condition_start=data.get('car_condition_start'))
    return jsonify(rental.serialize())


@bp.route('/rentals/<int:rental_id>/complete', methods=['POST'])
def complete_rental(rental_id: int):
    data = _body()
    rental = RentalLedger().complete(rental_id,
                                     odometer_end=data.get('odometer_end'),
                                     fuel_level_end=data.get('fuel_level_end'),
                                     car_condition_end=data.get('car_condition_end'),
                                     completed_by=data.get('actor_id'),
                                     returned_at=data.get('actual_return_date'))
    return jsonify(rental.serialize())


@bp.route('/rentals/<int:rental_id>/cancel', methods=['POST'])
def cancel_rental(rental_id: int):
    data = _body()
    rental = RentalLedger().cancel(rental_id, data.get('cancellation_reason'),
                                   cancelled_by=data.get('actor_id'))
    return jsonify(rental.serialize())


# ---------------------------------------------------------------------------
# Payments

@bp.route('/rentals/<int:rental_id>/payments', methods=['GET'])
def list_payments(rental_id: int):
    reconciler = PaymentReconciler()
    balance = reconciler.balance(rental_id)
    return jsonify({
        'payments': [p.serialize() for p in reconciler.payments_for(rental_id)],
        'balance': balance,
    })


@bp.route('/rentals/<int:rental_id>/payments', methods=['POST'])
def add_payment(rental_id: int):
    data = _body()
    payment = PaymentReconciler().add_payment(
        rental_id,
        data.get('amount'),
        payment_type=data.get('payment_type', 'rental'),
        payment_method=data.get('payment_method'),
        payment_date=data.get('payment_date'),
        reference_number=data.get('reference_number'),
        notes=data.get('notes'),
        created_by=data.get('actor_id'),
    )
    return jsonify(payment.serialize()), 201


@bp.route('/payments/<int:payment_id>', methods=['DELETE'])
def delete_payment(payment_id: int):
    rental = PaymentReconciler().delete_payment(payment_id)
    return jsonify(rental.serialize())


# ---------------------------------------------------------------------------
# Extensions

@bp.route('/rentals/<int:rental_id>/extensions', methods=['GET'])
def list_extensions(rental_id: int):
    return jsonify([e.serialize() for e in ExtensionManager().extensions_for(rental_id)])


@bp.route('/rentals/<int:rental_id>/extensions/check', methods=['GET'])
def check_extension(rental_id: int):
    check = ExtensionManager().can_extend(rental_id, request.args.get('new_end_date'))
    return jsonify({'can_extend': check.allowed, 'reason': check.reason})


@bp.route('/rentals/<int:rental_id>/extensions', methods=['POST'])
def extend_rental(rental_id: int):
    data = _body()
    extension = ExtensionManager().create_extension(rental_id, data.get('new_end_date'),
                                                    approved_by=data.get('actor_id'))
    return jsonify(extension.serialize()), 201


@bp.route('/extensions/<int:extension_id>/paid', methods=['POST'])
def mark_extension_paid(extension_id: int):
    return jsonify(ExtensionManager().mark_paid(extension_id).serialize())
