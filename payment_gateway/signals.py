"""
Payment domain events.

``payment_completed`` and ``payment_failed`` are sent by the services when
a transaction reaches a final state. The receivers below queue customer
notifications once the surrounding database transaction commits.
"""

import logging

from django.db import transaction as db_transaction
from django.dispatch import Signal, receiver

from .conf import get_section

logger = logging.getLogger(__name__)

# Sent with: transaction, gateway, amount, currency, result
payment_completed = Signal()

# Sent with: transaction, gateway, amount, currency, error_message, error_code, result
payment_failed = Signal()


def _emails_enabled() -> bool:
    return bool(get_section('notifications').get('email', True))


@receiver(payment_completed)
def queue_payment_completed_email(sender, transaction, **kwargs):
    """Email the customer a receipt for a completed payment"""
    if not _emails_enabled() or not transaction.customer_email:
        return

    from .tasks import send_payment_completed_email

    transaction_id = str(transaction.id)
    db_transaction.on_commit(lambda: send_payment_completed_email.delay(transaction_id))
    logger.info(f"Queued payment completed email for {transaction.reference}")


@receiver(payment_failed)
def queue_payment_failed_email(sender, transaction, **kwargs):
    """Tell the customer (and the admin contact, if set) that a payment failed"""
    if not _emails_enabled():
        return
    if not transaction.customer_email and not get_section('notifications').get('admin_email'):
        return

    from .tasks import send_payment_failed_email

    transaction_id = str(transaction.id)
    db_transaction.on_commit(lambda: send_payment_failed_email.delay(transaction_id))
    logger.info(f"Queued payment failed email for {transaction.reference}")
