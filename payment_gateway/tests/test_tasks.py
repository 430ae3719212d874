"""
Tests for payment_gateway Celery tasks.

Tests for:
- Receipt and failure emails (sending mocked)
- Recurring payment runs
- Retrying failed payments
- Grace period expiry
"""
import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.utils import timezone

from payment_gateway.models import Subscription, Transaction
from payment_gateway.tasks import (
    expire_grace_periods,
    process_recurring_payments,
    retry_failed_payments,
    send_payment_completed_email,
    send_payment_failed_email,
)
from payment_gateway.tests.utils import make_subscription, make_transaction


@pytest.mark.django_db
@pytest.mark.usefixtures('payment_config')
class TestSendPaymentCompletedEmailTask:
    """Test send_payment_completed_email Celery task."""

    @patch('payment_gateway.tasks.send_mail')
    def test_send_receipt_success(self, mock_send_mail):
        txn = make_transaction(status='completed', amount=Decimal('150.00'), customer_name='Ada')

        result = send_payment_completed_email(txn.id)

        assert result['status'] == 'success'
        assert result['email'] == 'customer@example.com'
        mock_send_mail.assert_called_once()

        call_args = mock_send_mail.call_args
        assert call_args[1]['subject'] == 'Payment receipt - R150.00'
        assert call_args[1]['recipient_list'] == ['customer@example.com']
        assert txn.reference in call_args[1]['message']
        assert 'Hi Ada' in call_args[1]['message']

    @patch('payment_gateway.tasks.send_mail')
    def test_no_customer_email(self, mock_send_mail):
        txn = make_transaction(status='completed', customer_email=None)

        result = send_payment_completed_email(txn.id)

        assert result['status'] == 'skipped'
        mock_send_mail.assert_not_called()

    @patch('payment_gateway.tasks.send_mail')
    def test_nonexistent_transaction(self, mock_send_mail):
        result = send_payment_completed_email(uuid.uuid4())

        assert result['status'] == 'error'
        assert 'does not exist' in result['message']
        mock_send_mail.assert_not_called()

    @patch('payment_gateway.tasks.send_mail', side_effect=Exception('Email service error'))
    def test_retry_on_failure(self, mock_send_mail):
        """Test that task retries on email sending failure."""
        txn = make_transaction(status='completed')

        with patch.object(send_payment_completed_email, 'retry') as mock_retry:
            mock_retry.side_effect = Exception('Retry triggered')

            with pytest.raises(Exception):
                send_payment_completed_email(txn.id)

            assert mock_retry.called


@pytest.mark.django_db
@pytest.mark.usefixtures('payment_config')
class TestSendPaymentFailedEmailTask:
    """Test send_payment_failed_email Celery task."""

    @patch('payment_gateway.tasks.send_mail')
    def test_customer_and_admin_notified(self, mock_send_mail):
        txn = make_transaction(status='failed', error_code='network_error', error_message='Gateway timed out')

        result = send_payment_failed_email(txn.id)

        assert result['status'] == 'success'
        assert result['recipients'] == ['customer@example.com', 'billing@example.com']

        call_args = mock_send_mail.call_args
        assert call_args[1]['subject'] == 'Payment failed - R100.00'
        assert 'Reason: Gateway timed out' in call_args[1]['message']
        assert 'We will try the payment again shortly.' in call_args[1]['message']

    @patch('payment_gateway.tasks.send_mail')
    def test_declined_card_is_not_retried(self, mock_send_mail):
        txn = make_transaction(status='failed', error_code='card_declined')

        send_payment_failed_email(txn.id)

        assert 'different payment method' in mock_send_mail.call_args[1]['message']

    @patch('payment_gateway.tasks.send_mail')
    def test_admin_only(self, mock_send_mail):
        txn = make_transaction(status='failed', customer_email=None)

        result = send_payment_failed_email(txn.id)

        assert result['recipients'] == ['billing@example.com']

    @patch('payment_gateway.tasks.send_mail')
    def test_no_recipients(self, mock_send_mail, settings):
        settings.PAYMENT_GATEWAY = {'notifications': {'admin_email': None}}
        txn = make_transaction(status='failed', customer_email=None)

        result = send_payment_failed_email(txn.id)

        assert result['status'] == 'skipped'
        mock_send_mail.assert_not_called()

    @patch('payment_gateway.tasks.send_mail')
    def test_nonexistent_transaction(self, mock_send_mail):
        result = send_payment_failed_email(uuid.uuid4())

        assert result['status'] == 'error'
        assert 'does not exist' in result['message']


@pytest.mark.django_db
@pytest.mark.usefixtures('payment_config')
class TestProcessRecurringPaymentsTask:
    """Test process_recurring_payments Celery task."""

    def test_dry_run(self):
        make_subscription(next_billing_date=timezone.now() - timedelta(hours=1))
        make_subscription(next_billing_date=timezone.now() + timedelta(days=3))

        result = process_recurring_payments(dry_run=True)

        assert result['status'] == 'completed'
        assert result['dry_run'] is True
        assert result['processed_count'] == 1
        assert result['counts'] == {'dry_run': 1}
        assert not Transaction.objects.exists()

    def test_gateway_filter(self):
        make_subscription(gateway='stripe', next_billing_date=timezone.now() - timedelta(hours=1))

        result = process_recurring_payments(gateway='paystack', dry_run=True)

        assert result['processed_count'] == 0

    def test_force(self):
        make_subscription(next_billing_date=timezone.now() + timedelta(days=3))

        result = process_recurring_payments(dry_run=True, force=True)

        assert result['processed_count'] == 1

    def test_retry_on_error(self):
        with patch('payment_gateway.tasks.SubscriptionService.process_renewals', side_effect=Exception('DB down')):
            with patch.object(process_recurring_payments, 'retry') as mock_retry:
                mock_retry.side_effect = Exception('Retry triggered')

                with pytest.raises(Exception):
                    process_recurring_payments()

                assert mock_retry.called


@pytest.mark.django_db
@pytest.mark.usefixtures('payment_config')
class TestRetryFailedPaymentsTask:
    """Test retry_failed_payments Celery task."""

    def setup_method(self):
        self.past = timezone.now() - timedelta(minutes=1)

    def test_retry_due_payments(self):
        txn = make_transaction(status='failed', error_code='network_error', retry_at=self.past)
        make_transaction(status='failed', error_code='card_declined', retry_at=self.past)
        make_transaction(status='failed', error_code='network_error', retry_at=timezone.now() + timedelta(hours=1))
        make_transaction(status='failed', error_code='network_error')

        result = retry_failed_payments()

        assert result['status'] == 'completed'
        assert result['retried_count'] == 1
        assert result['skipped_count'] == 1
        assert result['failed_count'] == 0

        retry = Transaction.objects.get(transaction_type='retry')
        assert retry.parent_transaction_id == txn.id

    def test_gateway_error_counts_as_failed(self):
        make_transaction(gateway='paypal', status='failed', error_code='network_error', retry_at=self.past)

        result = retry_failed_payments()

        assert result['failed_count'] == 1
        assert result['retried_count'] == 0

    def test_limit(self):
        for _ in range(3):
            make_transaction(status='failed', error_code='network_error', retry_at=self.past)

        result = retry_failed_payments(limit=2)

        assert result['retried_count'] == 2


@pytest.mark.django_db
class TestExpireGracePeriodsTask:
    """Test expire_grace_periods Celery task."""

    def test_cancels_expired_subscriptions(self):
        make_subscription(status='past_due', grace_period_ends_at=timezone.now() - timedelta(hours=1))
        make_subscription(status='past_due', grace_period_ends_at=timezone.now() + timedelta(days=2))

        result = expire_grace_periods()

        assert result['status'] == 'completed'
        assert result['cancelled_count'] == 1
        assert Subscription.objects.filter(status='cancelled').count() == 1
