"""
Hook points a caller can wire to a notifier.

Each signal is sent after the owning transaction has committed, with the
rental (or payment / extension) as the sender::

    from carrental.signals import rental_confirmed

    @rental_confirmed.connect
    def notify_customer(rental, **extra):
        ...
"""

from blinker import Namespace

_signals = Namespace()

rental_created = _signals.signal('rental-created')
rental_updated = _signals.signal('rental-updated')
rental_confirmed = _signals.signal('rental-confirmed')
rental_activated = _signals.signal('rental-activated')
rental_completed = _signals.signal('rental-completed')
rental_cancelled = _signals.signal('rental-cancelled')
rental_extended = _signals.signal('rental-extended')
payment_added = _signals.signal('payment-added')
payment_deleted = _signals.signal('payment-deleted')
