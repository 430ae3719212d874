"""
Test cases for the staff payment administration API.

Tests for:
- Staff-only access
- Dashboard statistics
- Transaction listing, detail and status changes
- Runtime gateway switches
- CSV export, manual payments and the health check
"""

import csv
import io
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from payment_gateway.admin_views import EXPORT_COLUMNS
from payment_gateway.manager import PaymentManager
from payment_gateway.models import Transaction
from payment_gateway.tests.utils import TEST_PAYMENT_GATEWAY, make_subscription, make_transaction

User = get_user_model()


@override_settings(PAYMENT_GATEWAY=TEST_PAYMENT_GATEWAY)
class AdminAPITestCase(TestCase):
    """Shared setup for the admin API tests"""

    def setUp(self):
        self.client = APIClient()
        self.staff_user = User.objects.create_user(
            username='staff',
            email='staff@example.com',
            password='testpass123',
            is_staff=True
        )
        self.user = User.objects.create_user(
            username='customer',
            email='customer@example.com',
            password='testpass123'
        )
        self.client.force_authenticate(user=self.staff_user)


class AdminAccessTest(AdminAPITestCase):
    """Test that only staff reach the admin API"""

    def test_non_staff_forbidden(self):
        self.client.force_authenticate(user=self.user)

        for name in ('admin-statistics', 'admin-transactions', 'admin-gateways', 'admin-health'):
            response = self.client.get(reverse(f'payment-api:{name}'))
            self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN, name)

    def test_anonymous_forbidden(self):
        self.client.force_authenticate(user=None)

        response = self.client.get(reverse('payment-api:admin-statistics'))

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))


class AdminStatisticsViewTest(AdminAPITestCase):
    def test_statistics(self):
        parent = make_transaction(status='completed', amount=Decimal('100.00'))
        make_transaction(status='completed', gateway='payfast', amount=Decimal('300.00'))
        make_transaction(status='failed')
        make_transaction(
            status='completed',
            amount=Decimal('25.00'),
            transaction_type='refund',
            parent_transaction=parent,
        )
        make_subscription(status='active')
        make_subscription(status='past_due')

        response = self.client.get(reverse('payment-api:admin-statistics'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['statistics']['total_transactions'], 3)
        self.assertEqual(data['by_status'], {'completed': 2, 'failed': 1})
        self.assertEqual(data['by_gateway'][0], {'gateway': 'payfast', 'count': 1, 'total_amount': '300.00'})
        self.assertEqual(data['refunded_amount'], '25.00')
        self.assertEqual(data['subscriptions'], {'active': 1, 'past_due': 1, 'cancelled': 0})
        self.assertEqual(len(data['recent_transactions']), 3)


class AdminTransactionViewTest(AdminAPITestCase):
    """Test cases for transaction listing and changes"""

    def setUp(self):
        super().setUp()
        self.txn = make_transaction(owner=self.user, amount=Decimal('80.00'))

    def test_list_includes_refunds(self):
        make_transaction(status='completed', transaction_type='refund', parent_transaction=self.txn)

        response = self.client.get(reverse('payment-api:admin-transactions'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['pagination']['total'], 2)

    def test_search(self):
        make_transaction(customer_name='Grace Hopper')

        response = self.client.get(reverse('payment-api:admin-transactions'), {'search': 'hopper'})

        self.assertEqual(response.data['data']['pagination']['total'], 1)

    def test_detail(self):
        retry = make_transaction(transaction_type='retry', parent_transaction=self.txn)
        url = reverse('payment-api:admin-transaction-detail', kwargs={'transaction_id': self.txn.id})

        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['transaction']['reference'], self.txn.reference)
        self.assertEqual(response.data['data']['children'][0]['reference'], retry.reference)

    def test_detail_not_found(self):
        url = reverse(
            'payment-api:admin-transaction-detail',
            kwargs={'transaction_id': '00000000-0000-0000-0000-000000000000'}
        )

        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_mark_completed(self):
        url = reverse('payment-api:admin-transaction-detail', kwargs={'transaction_id': self.txn.id})

        response = self.client.patch(url, {'status': 'completed', 'notes': 'Deposit confirmed'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.txn.refresh_from_db()
        self.assertEqual(self.txn.status, 'completed')
        self.assertEqual(self.txn.notes, 'Deposit confirmed')
        self.assertIsNotNone(self.txn.completed_at)

    def test_invalid_transition(self):
        """Test a completed payment cannot be moved back to pending"""
        self.txn.update_status('completed')
        url = reverse('payment-api:admin-transaction-detail', kwargs={'transaction_id': self.txn.id})

        response = self.client.patch(url, {'status': 'pending'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.txn.refresh_from_db()
        self.assertEqual(self.txn.status, 'completed')

    def test_merge_metadata(self):
        self.txn.add_metadata('order', 42)
        url = reverse('payment-api:admin-transaction-detail', kwargs={'transaction_id': self.txn.id})

        response = self.client.patch(url, {'metadata': {'checked_by': 'finance'}}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.txn.refresh_from_db()
        self.assertEqual(self.txn.metadata, {'order': 42, 'checked_by': 'finance'})


class AdminGatewayViewTest(AdminAPITestCase):
    """Test cases for gateway listing and switches"""

    def test_list_all_registered_gateways(self):
        make_transaction(gateway='eft', amount=Decimal('40.00'))

        response = self.client.get(reverse('payment-api:admin-gateways'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        gateways = {row['name']: row for row in response.data['data']['gateways']}
        self.assertEqual(len(gateways), 10)
        self.assertFalse(gateways['paypal']['enabled'])
        self.assertEqual(gateways['eft']['transaction_count'], 1)
        self.assertEqual(gateways['eft']['transaction_volume'], '40.00')

    def test_enable_gateway(self):
        url = reverse('payment-api:admin-gateway-update', kwargs={'gateway': 'paypal'})

        response = self.client.patch(url, {'enabled': True, 'test_mode': True}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['data']['enabled'])
        self.assertTrue(PaymentManager().is_gateway_available('paypal'))

    def test_disable_gateway(self):
        url = reverse('payment-api:admin-gateway-update', kwargs={'gateway': 'EFT'})

        response = self.client.patch(url, {'enabled': False}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(PaymentManager().is_gateway_available('eft'))

    def test_unknown_gateway(self):
        url = reverse('payment-api:admin-gateway-update', kwargs={'gateway': 'bitpay'})

        response = self.client.patch(url, {'enabled': True}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_empty_update(self):
        url = reverse('payment-api:admin-gateway-update', kwargs={'gateway': 'paypal'})

        response = self.client.patch(url, {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)


class AdminExportViewTest(AdminAPITestCase):
    def test_export_csv(self):
        txn = make_transaction(status='completed', amount=Decimal('12.50'))
        make_transaction(status='failed')

        response = self.client.get(reverse('payment-api:admin-export'), {'status': 'completed'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/csv')
        self.assertIn('attachment; filename="transactions-', response['Content-Disposition'])

        rows = list(csv.reader(io.StringIO(response.content.decode('utf-8'))))
        self.assertEqual(rows[0], EXPORT_COLUMNS)
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[1][0], txn.reference)
        self.assertEqual(rows[1][EXPORT_COLUMNS.index('amount')], '12.50')


class AdminManualPaymentViewTest(AdminAPITestCase):
    def test_record_manual_payment(self):
        response = self.client.post(reverse('payment-api:admin-manual-payment'), {
            'amount': '500.00',
            'customer_email': 'ada@example.com',
            'gateway_transaction_id': 'FNB-123',
            'notes': 'Cash deposit',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['status'], 'completed')

        txn = Transaction.objects.get(reference=response.data['data']['reference'])
        self.assertEqual(txn.gateway, 'eft')
        self.assertEqual(txn.payment_method, 'manual')
        self.assertEqual(txn.metadata['recorded_by'], str(self.staff_user.pk))

    def test_record_pending_manual_payment(self):
        response = self.client.post(reverse('payment-api:admin-manual-payment'), {
            'gateway': 'payfast',
            'amount': '20.00',
            'status': 'pending',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['status'], 'pending')

    def test_invalid_manual_payment(self):
        response = self.client.post(reverse('payment-api:admin-manual-payment'), {
            'gateway': 'bitpay',
            'amount': '20.00',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)


class AdminHealthViewTest(AdminAPITestCase):
    def test_health(self):
        make_transaction(status='failed')

        response = self.client.get(reverse('payment-api:admin-health'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'healthy')
        self.assertEqual(response.data['checks']['database']['status'], 'ok')
        self.assertEqual(response.data['checks']['gateways']['eft']['status'], 'ok')
        self.assertEqual(response.data['metrics']['failed_last_24h'], 1)
