"""
Tests for the payment_gateway management commands.

Tests for:
- test_payment_gateway: single gateway, --all, and argument errors
- process_recurring_payments: dry runs, charging and grace period expiry
- list_transactions: filters, summary and argument errors
"""
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone

from payment_gateway.gateways.base import GatewayResponse
from payment_gateway.manager import PaymentManager
from payment_gateway.models import Subscription, Transaction
from payment_gateway.tests.utils import make_subscription, make_transaction


def run(*args, **options):
    out = StringIO()
    call_command(*args, stdout=out, **options)
    return out.getvalue()


@pytest.mark.django_db
@pytest.mark.usefixtures('payment_config')
class TestTestPaymentGatewayCommand:
    def test_single_gateway(self):
        """EFT issues instructions locally, so no HTTP call is made"""
        output = run('test_payment_gateway', 'eft')

        assert '(test mode)...' in output
        assert '1 gateway(s) passed the connection test' in output

    def test_all_gateways(self):
        passed = {'success': True, 'message': 'Connection successful', 'response_time_ms': 12}

        with patch.object(PaymentManager, 'test_gateway_connection', return_value=passed) as mock_test:
            output = run('test_payment_gateway', '--all')

        assert mock_test.call_count == 6
        assert '6 gateway(s) passed the connection test' in output

    def test_failed_connection(self):
        failed = {'success': False, 'message': 'Invalid API key', 'response_time_ms': 40}

        with patch.object(PaymentManager, 'test_gateway_connection', return_value=failed):
            with pytest.raises(CommandError, match='1 of 1 gateway\\(s\\) failed the connection test'):
                run('test_payment_gateway', 'paystack')

    def test_no_gateway_given(self):
        with pytest.raises(CommandError, match='Give a gateway name or --all'):
            run('test_payment_gateway')

    def test_unknown_gateway(self):
        with pytest.raises(CommandError, match="Unknown gateway 'bitpay'"):
            run('test_payment_gateway', 'bitpay')

    def test_disabled_gateway(self):
        with pytest.raises(CommandError, match="Gateway 'paypal' is not enabled"):
            run('test_payment_gateway', 'paypal')


@pytest.mark.django_db
@pytest.mark.usefixtures('payment_config')
class TestProcessRecurringPaymentsCommand:
    def setup_method(self):
        self.past = timezone.now() - timedelta(hours=1)

    def test_dry_run(self):
        subscription = make_subscription(next_billing_date=self.past)

        output = run('process_recurring_payments', '--dry-run')

        assert 'Dry run: no payments will be charged' in output
        assert f"{subscription.reference} [paystack]: dry_run" in output
        assert 'Processed 1 subscriptions (dry_run: 1)' in output
        assert not Transaction.objects.exists()

    def test_nothing_due(self):
        make_subscription(next_billing_date=timezone.now() + timedelta(days=3))

        output = run('process_recurring_payments')

        assert 'No subscriptions due for renewal.' in output
        assert 'Processed 0 subscriptions' in output

    def test_charge(self):
        make_subscription(next_billing_date=self.past, current_period_end=self.past)
        completed = GatewayResponse(success=True, status='completed', data={'gateway_transaction_id': 'ch_1'})

        with patch.object(PaymentManager, 'initialize_payment', return_value=completed):
            output = run('process_recurring_payments', '--gateway', 'PayStack')

        assert 'Processed 1 subscriptions (charged: 1)' in output
        assert Transaction.objects.filter(status='completed', is_subscription=True).count() == 1

    def test_expire_grace_periods(self):
        make_subscription(status='past_due', grace_period_ends_at=self.past)

        output = run('process_recurring_payments', '--expire-grace-periods')

        assert 'Cancelled 1 subscriptions after their grace period' in output
        assert Subscription.objects.filter(status='cancelled').count() == 1

    def test_unknown_gateway(self):
        with pytest.raises(CommandError, match="Unknown gateway 'bitpay'"):
            run('process_recurring_payments', '--gateway', 'bitpay')

    def test_invalid_limit(self):
        with pytest.raises(CommandError, match='--limit must be at least 1'):
            run('process_recurring_payments', '--limit', '0')


@pytest.mark.django_db
class TestListTransactionsCommand:
    def test_no_transactions(self):
        output = run('list_transactions')

        assert 'No transactions found matching the given filters.' in output

    def test_list_with_filters(self):
        completed = make_transaction(status='completed', gateway='payfast')
        make_transaction(status='failed')

        output = run('list_transactions', '--status', 'completed')

        assert completed.reference in output
        assert 'Showing 1 of 1 transactions' in output

    def test_limit(self):
        for _ in range(3):
            make_transaction()

        output = run('list_transactions', '--limit', '2')

        assert 'Showing 2 of 3 transactions' in output

    def test_customer_filter(self):
        make_transaction(customer_email='ada@example.com')
        make_transaction()

        output = run('list_transactions', '--customer', 'ada@')

        assert 'Showing 1 of 1 transactions' in output

    def test_summary(self):
        make_transaction(status='completed', amount=Decimal('100.00'))
        make_transaction(status='completed', amount=Decimal('50.00'), gateway='payfast')
        make_transaction(status='failed')

        output = run('list_transactions', '--summary')

        assert 'Transaction summary' in output
        assert 'Total transactions: 3' in output
        assert 'Total revenue: 150.00' in output
        assert 'By gateway' in output
        assert 'eft: 2 (66.7%)' in output

    def test_date_range(self):
        make_transaction()
        today = timezone.localdate()

        inside = run('list_transactions', '--start-date', today.isoformat())
        outside = run('list_transactions', '--end-date', (today - timedelta(days=1)).isoformat())

        assert 'Showing 1 of 1 transactions' in inside
        assert 'No transactions found' in outside

    def test_invalid_date(self):
        with pytest.raises(CommandError, match='--start-date must be a date in YYYY-MM-DD format'):
            run('list_transactions', '--start-date', '01/02/2024')
