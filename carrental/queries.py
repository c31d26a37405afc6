"""
Read-only views over rentals, payments and extensions.

Nothing here writes, so these can run alongside the mutating services
(the overdue scan included).  Rows come back as plain dicts carrying the
display fields callers need: customer name, car description, branch name.
"""

from datetime import date
from math import ceil

from sqlalchemy import case, func, or_
from sqlalchemy.orm import contains_eager

from .constants import PaymentStatus, PaymentType, RentalStatus
from .errors import NotFound
from .extensions import db
from .models import Branch, Car, Customer, Rental, RentalExtension, RentalPayment
from .pricing import money
from .validation import as_date, as_enum

# Rentals currently holding (or about to hold) their car.
OPEN_STATUSES = (RentalStatus.CONFIRMED, RentalStatus.ACTIVE, RentalStatus.EXTENDED)
RUNNING_STATUSES = (RentalStatus.ACTIVE, RentalStatus.EXTENDED)


def _rentals_with_details():
    return (Rental.query
            .join(Customer, Rental.customer_id == Customer.id)
            .join(Car, Rental.car_id == Car.id)
            .outerjoin(Branch, Rental.branch_id == Branch.id)
            .options(contains_eager(Rental.customer),
                     contains_eager(Rental.car),
                     contains_eager(Rental.branch)))


def _with_details(rental: Rental) -> dict:
    row = rental.serialize()
    row.update({
        'customer_name': rental.customer.name,
        'customer_phone': rental.customer.phone,
        'vehicle': rental.car.description,
        'plate_number': rental.car.plate_number,
        'branch_name': rental.branch.name if rental.branch else None,
    })
    return row


def list_rentals(filters: dict = None, page: int = 1, per_page: int = 20) -> dict:
    """Paginated rental list, newest first.

    Supported filters: status, payment_status, branch_id, customer_id,
    car_id, date_from (start on/after), date_to (end on/before) and search
    (rental number, customer name/phone or plate).
    """
    filters = filters or {}
    query = _rentals_with_details()

    if filters.get('status'):
        query = query.filter(Rental.status == as_enum(RentalStatus, filters['status'], 'status'))
    if filters.get('payment_status'):
        query = query.filter(Rental.payment_status ==
                             as_enum(PaymentStatus, filters['payment_status'], 'payment_status'))
    for key, column in (('branch_id', Rental.branch_id),
                        ('customer_id', Rental.customer_id),
                        ('car_id', Rental.car_id)):
        if filters.get(key):
            query = query.filter(column == filters[key])
    if filters.get('date_from'):
        query = query.filter(Rental.start_date >= as_date(filters['date_from'], 'date_from'))
    if filters.get('date_to'):
        query = query.filter(Rental.end_date <= as_date(filters['date_to'], 'date_to'))
    if filters.get('search'):
        pattern = f"%{filters['search']}%"
        query = query.filter(or_(Rental.rental_number.ilike(pattern),
                                 Customer.name.ilike(pattern),
                                 Customer.phone.ilike(pattern),
                                 Car.plate_number.ilike(pattern)))

    total = query.count()
    rentals = (query.order_by(Rental.created_at.desc(), Rental.id.desc())
               .limit(per_page).offset((page - 1) * per_page).all())
    return {
        'data': [_with_details(r) for r in rentals],
        'total': total,
        'page': page,
        'per_page': per_page,
        'total_pages': ceil(total / per_page) if per_page else 0,
    }


def get_rental_detail(rental_id: int) -> dict:
    rental = _rentals_with_details().filter(Rental.id == rental_id).first()
    if rental is None:
        raise NotFound(f"Rental {rental_id} not found", field='rental_id', current=rental_id)
    row = _with_details(rental)
    row['payments'] = [p.serialize() for p in
                       sorted(rental.payments, key=lambda p: (p.payment_date, p.id), reverse=True)]
    row['extensions'] = [e.serialize() for e in reversed(rental.extensions)]
    return row


def active_rentals() -> list:
    rentals = (_rentals_with_details()
               .filter(Rental.status.in_(OPEN_STATUSES))
               .order_by(Rental.start_date.asc())
               .all())
    return [_with_details(r) for r in rentals]


def overdue_rentals(today: date = None) -> list:
    """Running rentals whose end date has passed without the car coming back."""
    today = today or date.today()
    rentals = (_rentals_with_details()
               .filter(Rental.status.in_(RUNNING_STATUSES), Rental.end_date < today)
               .order_by(Rental.end_date.asc())
               .all())
    rows = []
    for r in rentals:
        row = _with_details(r)
        row['days_overdue'] = (today - r.end_date).days
        rows.append(row)
    return rows


def rentals_for_calendar(start: date, end: date) -> list:
    rentals = (_rentals_with_details()
               .filter(Rental.status != RentalStatus.CANCELLED,
                       Rental.start_date <= end,
                       Rental.end_date >= start)
               .order_by(Rental.start_date.asc())
               .all())
    return [{
        'id': r.id,
        'rental_number': r.rental_number,
        'start_date': r.start_date.isoformat(),
        'end_date': r.end_date.isoformat(),
        'status': r.status.value,
        'customer_name': r.customer.name,
        'car_info': r.car.description,
    } for r in rentals]


def _date_range(query, column, date_from, date_to):
    if date_from:
        query = query.filter(func.date(column, type_=db.Date) >= as_date(date_from, 'date_from'))
    if date_to:
        query = query.filter(func.date(column, type_=db.Date) <= as_date(date_to, 'date_to'))
    return query


def _count_when(condition):
    return func.sum(case((condition, 1), else_=0))


def _sum_when(condition, column):
    return func.sum(case((condition, column), else_=0))


def rental_stats(date_from=None, date_to=None, branch_id=None) -> dict:
    columns = [func.count(Rental.id)]
    columns += [_count_when(Rental.status == s) for s in RentalStatus]
    columns += [func.sum(Rental.total_amount), func.sum(Rental.paid_amount),
                func.sum(Rental.remaining_amount)]
    query = _date_range(db.session.query(*columns), Rental.created_at, date_from, date_to)
    if branch_id:
        query = query.filter(Rental.branch_id == branch_id)
    row = query.one()

    stats = {'total_rentals': row[0] or 0}
    for status, count in zip(RentalStatus, row[1:1 + len(RentalStatus)]):
        stats[status.value] = count or 0
    revenue, paid, remaining = row[1 + len(RentalStatus):]
    stats.update(total_revenue=money(revenue), total_paid=money(paid),
                 total_remaining=money(remaining))
    return stats


def payment_stats(date_from=None, date_to=None) -> dict:
    columns = [func.count(RentalPayment.id), func.sum(RentalPayment.amount)]
    columns += [_sum_when(RentalPayment.payment_type == t, RentalPayment.amount) for t in PaymentType]
    query = _date_range(db.session.query(*columns), RentalPayment.payment_date, date_from, date_to)
    row = query.one()

    stats = {'total_payments': row[0] or 0, 'total_amount': money(row[1])}
    for payment_type, total in zip(PaymentType, row[2:]):
        stats[f"{payment_type.value}_payments"] = money(total)
    return stats


def extension_stats(date_from=None, date_to=None) -> dict:
    query = db.session.query(
        func.count(RentalExtension.id),
        func.sum(RentalExtension.extension_days),
        func.sum(RentalExtension.extension_amount),
        _sum_when(RentalExtension.payment_status == PaymentStatus.PAID, RentalExtension.extension_amount),
        _sum_when(RentalExtension.payment_status == PaymentStatus.PENDING, RentalExtension.extension_amount),
    )
    row = _date_range(query, RentalExtension.created_at, date_from, date_to).one()
    return {
        'total_extensions': row[0] or 0,
        'total_days': row[1] or 0,
        'total_amount': money(row[2]),
        'paid_amount': money(row[3]),
        'pending_amount': money(row[4]),
    }
