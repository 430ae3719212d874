"""
Celery tasks for the payment_gateway app.

These tasks handle asynchronous operations like:
- Sending payment receipts and failure notices
- Charging due subscription renewals
- Retrying failed payments
- Cancelling subscriptions whose grace period has run out
"""
from celery import shared_task
from django.core.mail import send_mail
from django.template.loader import render_to_string
from django.conf import settings
from django.utils import timezone
import logging

from .conf import get_section
from .exceptions import PaymentGatewayException
from .models import Transaction
from .services import PaymentService, SubscriptionService

logger = logging.getLogger(__name__)


def _site_name():
    return getattr(settings, 'SITE_NAME', 'Payment Gateway')


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_payment_completed_email(self, transaction_id):
    """
    Send a receipt to the customer of a completed payment.

    Args:
        transaction_id (UUID): The ID of the completed transaction

    Returns:
        dict: Status of email sending operation
    """
    try:
        txn = Transaction.objects.get(id=transaction_id)

        if not txn.customer_email:
            return {
                'status': 'skipped',
                'transaction_id': str(transaction_id),
                'message': 'Transaction has no customer email'
            }

        context = {
            'transaction': txn,
            'site_name': _site_name(),
        }

        html_message = render_to_string('payment_gateway/emails/payment_completed.html', context)
        plain_message = render_to_string('payment_gateway/emails/payment_completed.txt', context)

        send_mail(
            subject=f'Payment receipt - {txn.formatted_amount}',
            message=plain_message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[txn.customer_email],
            html_message=html_message,
            fail_silently=False,
        )

        logger.info(f"Payment completed email sent for {txn.reference}")

        return {
            'status': 'success',
            'transaction_id': str(transaction_id),
            'email': txn.customer_email,
            'message': 'Payment completed email sent successfully'
        }

    except Transaction.DoesNotExist:
        logger.error(f"Transaction {transaction_id} not found")
        return {
            'status': 'error',
            'transaction_id': str(transaction_id),
            'message': f'Transaction with id {transaction_id} does not exist'
        }

    except Exception as exc:
        logger.error(f"Error sending payment completed email: {str(exc)}", exc_info=True)
        raise self.retry(exc=exc)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_payment_failed_email(self, transaction_id):
    """
    Tell the customer that a payment failed. The admin contact from the
    ``notifications`` settings is copied when configured.

    Args:
        transaction_id (UUID): The ID of the failed transaction

    Returns:
        dict: Status of email sending operation
    """
    try:
        txn = Transaction.objects.get(id=transaction_id)

        recipients = [email for email in (
            txn.customer_email,
            get_section('notifications').get('admin_email'),
        ) if email]

        if not recipients:
            return {
                'status': 'skipped',
                'transaction_id': str(transaction_id),
                'message': 'No recipients for payment failed email'
            }

        context = {
            'transaction': txn,
            'site_name': _site_name(),
            'can_retry': txn.can_retry(),
        }

        html_message = render_to_string('payment_gateway/emails/payment_failed.html', context)
        plain_message = render_to_string('payment_gateway/emails/payment_failed.txt', context)

        send_mail(
            subject=f'Payment failed - {txn.formatted_amount}',
            message=plain_message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=recipients,
            html_message=html_message,
            fail_silently=False,
        )

        logger.info(f"Payment failed email sent for {txn.reference}")

        return {
            'status': 'success',
            'transaction_id': str(transaction_id),
            'recipients': recipients,
            'message': 'Payment failed email sent successfully'
        }

    except Transaction.DoesNotExist:
        logger.error(f"Transaction {transaction_id} not found")
        return {
            'status': 'error',
            'transaction_id': str(transaction_id),
            'message': f'Transaction with id {transaction_id} does not exist'
        }

    except Exception as exc:
        logger.error(f"Error sending payment failed email: {str(exc)}", exc_info=True)
        raise self.retry(exc=exc)


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def process_recurring_payments(self, gateway=None, limit=100, dry_run=False, force=False):
    """
    Charge subscriptions whose next billing date has passed.

    This task should be run periodically (e.g., every hour).

    Args:
        gateway (str): Only process subscriptions on this gateway
        limit (int): Maximum number of subscriptions to process
        dry_run (bool): Report what would be charged without charging
        force (bool): Process every active auto-renewing subscription,
            due or not

    Returns:
        dict: Summary of the run with per-outcome counts
    """
    try:
        run = SubscriptionService.process_renewals(
            gateway=gateway,
            limit=limit,
            dry_run=dry_run,
            force=force,
        )

        result = {
            'status': 'completed',
            'processed_count': len(run['results']),
            'dry_run': dry_run,
            'counts': run['counts'],
            'results': run['results'],
            'message': f"Processed {len(run['results'])} subscriptions"
        }

        logger.info(f"Recurring payment task completed: {run['counts']}")
        return result

    except Exception as exc:
        logger.error(f"Critical error in process_recurring_payments task: {str(exc)}", exc_info=True)
        raise self.retry(exc=exc)


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def retry_failed_payments(self, limit=100):
    """
    Re-attempt failed payments whose scheduled retry time has arrived.

    Returns:
        dict: Summary of retry operation
    """
    try:
        due = Transaction.objects.filter(
            status='failed',
            retry_at__isnull=False,
            retry_at__lte=timezone.now(),
        ).exclude(transaction_type='refund').order_by('retry_at')[:limit]

        retried_count = 0
        failed_count = 0
        skipped_count = 0

        for txn in due:
            try:
                retry = PaymentService.execute_retry(txn)
                if retry is None:
                    skipped_count += 1
                else:
                    retried_count += 1
                    logger.info(f"Retried {txn.reference} as {retry.reference}")

            except PaymentGatewayException as e:
                failed_count += 1
                logger.error(f"Retry of {txn.reference} failed: {e.message}")

            except Exception as e:
                failed_count += 1
                logger.error(
                    f"Unexpected error retrying {txn.reference}: {str(e)}",
                    exc_info=True
                )

        result = {
            'status': 'completed',
            'retried_count': retried_count,
            'failed_count': failed_count,
            'skipped_count': skipped_count,
            'message': f'Retried {retried_count} payments, {failed_count} failed'
        }

        logger.info(f"Retry task completed: {result}")
        return result

    except Exception as exc:
        logger.error(f"Critical error in retry_failed_payments task: {str(exc)}", exc_info=True)
        raise self.retry(exc=exc)


@shared_task
def expire_grace_periods():
    """
    Cancel past-due subscriptions whose grace period has ended.

    Returns:
        dict: Number of subscriptions cancelled
    """
    cancelled = SubscriptionService.expire_grace_periods()
    logger.info(f"Cancelled {cancelled} subscriptions after their grace period")
    return {
        'status': 'completed',
        'cancelled_count': cancelled,
        'message': f'Cancelled {cancelled} subscriptions'
    }
