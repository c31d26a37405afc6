import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from . import pricing, signals
from .collaborators import log_audit
from .constants import PaymentType
from .errors import NotFound, ValidationError
from .extensions import db
from .models import Rental, RentalPayment
from .unit_of_work import UnitOfWork
from .validation import as_datetime, as_enum, as_money

logger = logging.getLogger(__name__)


class PaymentReconciler:
    """
    Records payments against a rental and keeps its paid/remaining amounts
    and payment status in step with them.

    Only ``rental`` payments count towards what the customer has paid for the
    rental itself.  Deposits, fines and refunds are stored alongside but
    settle separate obligations, so they never move the rental balance.
    """

    def __init__(self, audit=None):
        self.audit = audit or log_audit

    def add_payment(self, rental_id: int, amount, payment_type=PaymentType.RENTAL,
                    payment_method: str = None, payment_date=None,
                    reference_number: str = None, notes: str = None,
                    created_by: int = None) -> RentalPayment:
        amount, payment_type = self.check_payment(amount, payment_type)
        paid_on = as_datetime(payment_date, 'payment_date')

        with UnitOfWork('add payment') as uow:
            rental = self._lock_rental(rental_id)
            payment = self.record(uow, rental, amount, payment_type, payment_method=payment_method,
                                  payment_date=paid_on, reference_number=reference_number,
                                  notes=notes, created_by=created_by)
            self.reconcile(rental)
        logger.info("Recorded %s payment of %s on rental %s", payment_type.value, amount, rental_id)
        return payment

    @staticmethod
    def check_payment(amount, payment_type=PaymentType.RENTAL):
        """Validated ``(amount, payment_type)``; raises before anything is written."""
        amount = as_money(amount, 'amount')
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero",
                                  field='amount', current=amount)
        return amount, as_enum(PaymentType, payment_type, 'payment_type')

    def record(self, uow: UnitOfWork, rental: Rental, amount, payment_type: PaymentType,
               payment_method: str = None, payment_date=None, reference_number: str = None,
               notes: str = None, created_by: int = None) -> RentalPayment:
        """Insert a checked payment inside the caller's unit of work.

        The caller reconciles the rental once all its payments are in.
        """
        payment = RentalPayment(
            rental_id=rental.id,
            amount=amount,
            payment_type=payment_type,
            payment_method=payment_method,
            payment_date=payment_date or datetime.utcnow(),
            reference_number=reference_number,
            notes=notes,
            created_by=created_by,
        )
        db.session.add(payment)
        db.session.flush()
        uow.after_commit(self.audit, 'add_payment', 'rental_payment', payment.id,
                         None, payment.serialize())
        uow.after_commit(signals.payment_added.send, payment)
        return payment

    def delete_payment(self, payment_id: int) -> Rental:
        with UnitOfWork('delete payment') as uow:
            payment = db.session.get(RentalPayment, payment_id)
            if payment is None:
                raise NotFound(f"Payment {payment_id} not found", field='payment_id', current=payment_id)
            rental = self._lock_rental(payment.rental_id)
            old = payment.serialize()
            db.session.delete(payment)
            db.session.flush()
            self.reconcile(rental)
            uow.after_commit(self.audit, 'delete_payment', 'rental_payment', payment_id, old, None)
            uow.after_commit(signals.payment_deleted.send, rental, payment=old)
        return rental

    def recompute(self, rental_id: int) -> Rental:
        """Re-derive a rental's paid/remaining amounts and payment status from
        its payments.  Running it again without new payments changes nothing."""
        with UnitOfWork('recompute rental amounts'):
            rental = self._lock_rental(rental_id)
            self.reconcile(rental)
        return rental

    def reconcile(self, rental: Rental) -> None:
        """Recompute ``rental``'s derived amounts inside the caller's transaction."""
        paid = self.rental_paid(rental.id)
        total = pricing.money(rental.total_amount)
        rental.paid_amount = paid
        rental.remaining_amount = total - paid
        rental.payment_status = pricing.payment_status_for(paid, total)
        db.session.flush()

    # ------------------------------------------------------------------
    # Reads

    def rental_paid(self, rental_id: int) -> Decimal:
        amounts = (db.session.query(RentalPayment.amount)
                   .filter(RentalPayment.rental_id == rental_id,
                           RentalPayment.payment_type == PaymentType.RENTAL))
        return sum((pricing.money(amount) for (amount,) in amounts), pricing.ZERO)

    def totals_by_type(self, rental_id: int) -> dict:
        totals = {payment_type: pricing.ZERO for payment_type in PaymentType}
        rows = (db.session.query(RentalPayment.payment_type, func.sum(RentalPayment.amount))
                .filter(RentalPayment.rental_id == rental_id)
                .group_by(RentalPayment.payment_type))
        for payment_type, total in rows:
            totals[payment_type] = pricing.money(total)
        return totals

    def balance(self, rental_id: int) -> dict:
        """Rental and deposit position side by side.

        The deposit is tracked against ``deposit_amount`` on its own; it is
        not applied to the rental balance.
        """
        rental = db.session.get(Rental, rental_id)
        if rental is None:
            raise NotFound(f"Rental {rental_id} not found", field='rental_id', current=rental_id)
        totals = self.totals_by_type(rental_id)
        deposit_amount = pricing.money(rental.deposit_amount)
        deposit_paid = totals[PaymentType.DEPOSIT]
        return {
            'total_amount': pricing.money(rental.total_amount),
            'paid_amount': pricing.money(rental.paid_amount),
            'remaining_amount': pricing.money(rental.remaining_amount),
            'payment_status': rental.payment_status,
            'deposit_amount': deposit_amount,
            'deposit_paid': deposit_paid,
            'deposit_outstanding': max(deposit_amount - deposit_paid, pricing.ZERO),
            'fines_paid': totals[PaymentType.FINE],
            'refunded': totals[PaymentType.REFUND],
        }

    def payments_for(self, rental_id: int):
        return (RentalPayment.query
                .filter_by(rental_id=rental_id)
                .order_by(RentalPayment.payment_date.desc(), RentalPayment.id.desc())
                .all())

    @staticmethod
    def _lock_rental(rental_id: int) -> Rental:
        rental = db.session.get(Rental, rental_id, with_for_update=True)
        if rental is None:
            raise NotFound(f"Rental {rental_id} not found", field='rental_id', current=rental_id)
        return rental
