"""
Tests for the individual gateway drivers.

Tests for:
- Shared base behaviour (validation, status mapping, HTTP error handling)
- PayFast form signing and ITN parsing
- PayStack REST calls (mocked session) and HMAC-SHA512 webhooks
- Stripe PaymentIntents (mocked SDK) and signed webhooks
- Ozow hash checks, crypto charges, PayPal and Zapper notifications
- Manual EFT instructions and verification
"""

import hashlib
import hmac
import json
import time
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests
import stripe

from payment_gateway.exceptions import PaymentGatewayException
from payment_gateway.gateways.crypto import CryptoGateway
from payment_gateway.gateways.eft import EFTGateway
from payment_gateway.gateways.ozow import OzowGateway
from payment_gateway.gateways.payfast import PayFastGateway
from payment_gateway.gateways.paypal import PayPalGateway
from payment_gateway.gateways.paystack import PayStackGateway
from payment_gateway.gateways.stripe_gateway import StripeGateway
from payment_gateway.gateways.zapper import ZapperGateway
from payment_gateway.tests.utils import TEST_PAYMENT_GATEWAY, payment_settings


def gateway_settings(name):
    return dict(TEST_PAYMENT_GATEWAY['gateways'][name])


def mock_http_response(body, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.content = json.dumps(body).encode('utf-8')
    response.json.return_value = body
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    return response


class TestBaseGateway:
    """Test behaviour shared by every driver"""

    def setup_method(self):
        self.gateway = PayStackGateway(gateway_settings('paystack'))

    def test_map_status_unknown_is_pending(self):
        """Test vendor statuses we do not know stay pending"""
        assert self.gateway.map_status('success') == 'completed'
        assert self.gateway.map_status('SUCCESS') == 'completed'
        assert self.gateway.map_status('on_hold') == 'pending'
        assert self.gateway.map_status(None) == 'pending'

    def test_minor_units(self):
        assert PayStackGateway.to_minor_units(Decimal('100.50')) == 10050
        assert PayStackGateway.from_minor_units(10050) == Decimal('100.50')

    def test_validate_amount_limits(self):
        """Test amounts outside the configured limits are rejected"""
        with pytest.raises(PaymentGatewayException) as exc_info:
            self.gateway.validate_amount('0.50')
        assert exc_info.value.error_code == 'invalid_amount'

        with pytest.raises(PaymentGatewayException):
            self.gateway.validate_amount('not-a-number')

        assert self.gateway.validate_amount('10.00') == Decimal('10.00')

    def test_global_limits_apply_without_gateway_limits(self, settings):
        settings.PAYMENT_GATEWAY = payment_settings(transaction={'min_amount': '20.00', 'max_amount': '500.00'})

        assert self.gateway.minimum_amount == Decimal('20.00')
        assert self.gateway.maximum_amount == Decimal('500.00')
        with pytest.raises(PaymentGatewayException):
            self.gateway.validate_amount('10.00')

    def test_gateway_limits_take_precedence(self, settings):
        settings.PAYMENT_GATEWAY = payment_settings(transaction={'min_amount': '20.00'})

        assert CryptoGateway(gateway_settings('crypto')).minimum_amount == Decimal('0.01')

    def test_initialize_requires_fields(self):
        """Test required payment fields are checked before calling the gateway"""
        with pytest.raises(PaymentGatewayException) as exc_info:
            self.gateway.initialize_payment({'amount': '10.00', 'currency': 'NGN'})

        assert exc_info.value.error_code == 'initialization_failed'
        assert 'customer' in exc_info.value.errors

    def test_initialize_rejects_unsupported_currency(self):
        with pytest.raises(PaymentGatewayException) as exc_info:
            self.gateway.initialize_payment({'amount': '10.00', 'currency': 'JPY', 'customer': {'email': 'a@b.co'}})

        assert exc_info.value.error_code == 'invalid_currency'

    def test_request_timeout_is_network_error(self):
        """Test timeouts surface as network errors"""
        self.gateway.session.request = MagicMock(side_effect=requests.Timeout('timed out'))

        with pytest.raises(PaymentGatewayException) as exc_info:
            self.gateway.verify_payment('TXN-1')

        assert exc_info.value.error_code == 'network_error'

    def test_request_http_error_carries_vendor_code(self):
        """Test HTTP errors keep the vendor's error code and body"""
        self.gateway.session.request = MagicMock(
            return_value=mock_http_response({'status': False, 'code': 'invalid_key', 'message': 'Invalid key'}, 401)
        )

        with pytest.raises(PaymentGatewayException) as exc_info:
            self.gateway.verify_payment('TXN-1')

        assert exc_info.value.error_code == 'invalid_key'
        assert exc_info.value.errors['message'] == 'Invalid key'

    def test_get_payment_status_swallows_errors(self):
        self.gateway.session.request = MagicMock(side_effect=requests.ConnectionError('down'))

        assert self.gateway.get_payment_status('TXN-1') == 'error'
        assert self.gateway.is_payment_successful('TXN-1') is False

    def test_subscriptions_not_supported_by_default(self):
        with pytest.raises(PaymentGatewayException) as exc_info:
            EFTGateway(gateway_settings('eft')).create_subscription({'amount': '10.00'})

        assert exc_info.value.error_code == 'not_supported'


class TestPayFastGateway:
    """Test PayFast signatures, form building and ITN parsing"""

    def setup_method(self):
        self.gateway = PayFastGateway(gateway_settings('payfast'))

    def test_generate_signature(self):
        """Test signature covers sorted, encoded, non-empty fields plus the passphrase"""
        data = {
            'merchant_id': '10000100',
            'item_name': 'Test Item',
            'amount': '100.00',
            'email_address': '',
            'signature': 'ignored',
        }
        expected = hashlib.md5(
            'amount=100.00&item_name=Test+Item&merchant_id=10000100&passphrase=jt7NOE43FZPn'.encode('utf-8')
        ).hexdigest()

        assert self.gateway.generate_signature(data) == expected

    def test_initialize_payment_builds_signed_form(self):
        response = self.gateway.initialize_payment({
            'amount': '150.00',
            'currency': 'ZAR',
            'reference': 'TXN-1',
            'description': 'Order 1',
            'customer': {'email': 'ada@example.com', 'name': 'Ada'},
        })

        form = response.data['payment_data']
        assert response.success is True
        assert response.status == 'pending'
        assert response.data['payment_url'] == 'https://sandbox.payfast.co.za/eng/process'
        assert form['m_payment_id'] == 'TXN-1'
        assert form['amount'] == '150.00'
        assert form['signature'] == self.gateway.generate_signature(form)

    def test_initialize_payment_over_maximum(self):
        """Test PayFast's own maximum amount"""
        with pytest.raises(PaymentGatewayException) as exc_info:
            self.gateway.initialize_payment({'amount': '100000.01', 'currency': 'ZAR', 'reference': 'TXN-1'})

        assert exc_info.value.error_code == 'invalid_amount'

    def test_initialize_requires_credentials(self):
        gateway = PayFastGateway({'enabled': True})

        with pytest.raises(PaymentGatewayException) as exc_info:
            gateway.initialize_payment({'amount': '10.00', 'currency': 'ZAR', 'reference': 'TXN-1'})

        assert exc_info.value.error_code == 'invalid_configuration'

    def test_verify_webhook_signature(self):
        params = {'m_payment_id': 'TXN-1', 'pf_payment_id': '1089250', 'payment_status': 'COMPLETE'}
        params['signature'] = self.gateway.generate_signature(params)

        assert self.gateway.verify_webhook_signature(b'', {}, params) is True

        params['amount_gross'] = '999.00'
        assert self.gateway.verify_webhook_signature(b'', {}, params) is False
        assert self.gateway.verify_webhook_signature(b'', {}, {'m_payment_id': 'TXN-1'}) is False

    def test_process_callback(self):
        response = self.gateway.process_callback({
            'm_payment_id': 'TXN-1',
            'pf_payment_id': '1089250',
            'payment_status': 'COMPLETE',
            'amount_gross': '100.00',
            'amount_fee': '-2.30',
            'amount_net': '97.70',
        })

        assert response.success is True
        assert response.status == 'completed'
        assert response.data['transaction_id'] == 'TXN-1'
        assert response.data['gateway_transaction_id'] == '1089250'
        assert response.data['event_id'] == '1089250:COMPLETE'
        assert response.data['fee_amount'] == '2.30'

    def test_refund_requires_manual_processing(self):
        response = self.gateway.refund_payment('1089250', Decimal('10.00'))

        assert response.success is False
        assert response.error_code == 'manual_refund_required'


class TestPayStackGateway:
    """Test PayStack API calls with a mocked HTTP session"""

    def setup_method(self):
        self.gateway = PayStackGateway(gateway_settings('paystack'))
        self.gateway.session.request = MagicMock()

    def test_initialize_payment(self):
        self.gateway.session.request.return_value = mock_http_response({
            'status': True,
            'message': 'Authorization URL created',
            'data': {
                'authorization_url': 'https://checkout.paystack.com/abc123',
                'access_code': 'abc123',
                'reference': 'TXN-1',
            },
        })

        response = self.gateway.initialize_payment({
            'amount': '100.00',
            'currency': 'NGN',
            'reference': 'TXN-1',
            'customer': {'email': 'ada@example.com'},
        })

        assert response.success is True
        assert response.data['payment_url'] == 'https://checkout.paystack.com/abc123'

        args, kwargs = self.gateway.session.request.call_args
        assert args == ('POST', 'https://api.paystack.co/transaction/initialize')
        assert kwargs['json']['amount'] == 10000
        assert kwargs['json']['email'] == 'ada@example.com'
        assert kwargs['headers']['Authorization'] == 'Bearer sk_test_secret'

    def test_verify_payment(self):
        self.gateway.session.request.return_value = mock_http_response({
            'status': True,
            'message': 'Verification successful',
            'data': {
                'id': 4099260516,
                'status': 'success',
                'reference': 'TXN-1',
                'amount': 10000,
                'currency': 'NGN',
                'channel': 'card',
                'fees': 150,
                'gateway_response': 'Successful',
                'authorization': {'last4': '4081', 'brand': 'visa'},
            },
        })

        response = self.gateway.verify_payment('TXN-1')

        assert response.success is True
        assert response.status == 'completed'
        assert response.data['amount'] == '100.00'
        assert response.data['fee_amount'] == '1.50'
        assert response.data['gateway_transaction_id'] == '4099260516'
        assert response.data['card_last_four'] == '4081'

    def test_lookup_id_is_reference(self):
        assert self.gateway.lookup_id('TXN-1', '4099260516') == 'TXN-1'

    def test_webhook_signature(self):
        payload = b'{"event":"charge.success"}'
        signature = hmac.new(b'sk_test_secret', payload, hashlib.sha512).hexdigest()

        assert self.gateway.verify_webhook_signature(payload, {'x-paystack-signature': signature}, {}) is True
        assert self.gateway.verify_webhook_signature(payload, {'x-paystack-signature': 'bad'}, {}) is False
        assert self.gateway.verify_webhook_signature(payload, {}, {}) is False

    def test_charge_failed_callback(self):
        response = self.gateway.process_callback({
            'event': 'charge.failed',
            'data': {'id': 77, 'reference': 'TXN-1', 'status': 'failed', 'gateway_response': 'Declined'},
        })

        assert response.status == 'failed'
        assert response.data['error_message'] == 'Declined'
        assert response.data['event_id'] == 'charge.failed:77'

    def test_refund_payment(self):
        self.gateway.session.request.return_value = mock_http_response({
            'status': True,
            'message': 'Refund has been queued for processing',
            'data': {'id': 3018284, 'status': 'pending', 'amount': 5000},
        })

        response = self.gateway.refund_payment('TXN-1', Decimal('50.00'))

        assert response.success is True
        assert response.data['refund_id'] == '3018284'
        assert response.data['amount'] == '50.00'
        assert self.gateway.session.request.call_args[1]['json'] == {'transaction': 'TXN-1', 'amount': 5000}


class TestStripeGateway:
    """Test Stripe with the SDK mocked"""

    def setup_method(self):
        self.gateway = StripeGateway(gateway_settings('stripe'))

    @patch('stripe.PaymentIntent.create')
    def test_initialize_payment(self, mock_create):
        mock_create.return_value = {
            'id': 'pi_123',
            'client_secret': 'pi_123_secret_abc',
            'status': 'requires_payment_method',
        }

        response = self.gateway.initialize_payment({
            'amount': '25.00',
            'currency': 'usd',
            'reference': 'TXN-1',
            'customer': {'email': 'ada@example.com'},
        })

        assert response.status == 'pending'
        assert response.data['gateway_transaction_id'] == 'pi_123'
        assert response.data['client_secret'] == 'pi_123_secret_abc'
        kwargs = mock_create.call_args[1]
        assert kwargs['api_key'] == 'sk_test_stripe'
        assert kwargs['amount'] == 2500
        assert kwargs['currency'] == 'usd'
        assert kwargs['metadata']['reference'] == 'TXN-1'

    @patch('stripe.PaymentIntent.create')
    def test_zero_decimal_currency(self, mock_create):
        mock_create.return_value = {'id': 'pi_123', 'status': 'requires_payment_method'}

        self.gateway.initialize_payment({'amount': '500', 'currency': 'JPY', 'reference': 'TXN-1'})

        assert mock_create.call_args[1]['amount'] == 500

    @patch('stripe.PaymentIntent.create')
    def test_initialize_payment_stripe_error(self, mock_create):
        mock_create.side_effect = stripe.CardError('Your card was declined.', None, 'card_declined')

        with pytest.raises(PaymentGatewayException) as exc_info:
            self.gateway.initialize_payment({'amount': '25.00', 'currency': 'USD', 'reference': 'TXN-1'})

        assert exc_info.value.error_code == 'card_declined'

    @patch('stripe.PaymentIntent.retrieve')
    def test_verify_payment(self, mock_retrieve):
        mock_retrieve.return_value = {
            'id': 'pi_123',
            'status': 'succeeded',
            'amount': 2500,
            'currency': 'usd',
            'metadata': {'reference': 'TXN-1'},
        }

        response = self.gateway.verify_payment('pi_123')

        assert response.status == 'completed'
        assert response.data['transaction_id'] == 'TXN-1'
        assert response.data['amount'] == '25.00'
        assert response.data['currency'] == 'USD'

    @patch('stripe.Refund.create')
    def test_refund_payment(self, mock_refund):
        mock_refund.return_value = {'id': 're_123', 'status': 'succeeded', 'amount': 1000, 'currency': 'usd'}

        response = self.gateway.refund_payment('pi_123', Decimal('10.00'), 'USD')

        assert response.success is True
        assert response.status == 'completed'
        assert response.data['refund_id'] == 're_123'
        assert mock_refund.call_args[1]['payment_intent'] == 'pi_123'
        assert mock_refund.call_args[1]['amount'] == 1000

    def _signature(self, payload, timestamp):
        signed = f"{timestamp}.".encode('utf-8') + payload
        return hmac.new(b'whsec_test', signed, hashlib.sha256).hexdigest()

    def test_webhook_signature(self):
        payload = b'{"id":"evt_1"}'
        timestamp = int(time.time())
        header = f"t={timestamp},v1={self._signature(payload, timestamp)}"

        assert self.gateway.verify_webhook_signature(payload, {'Stripe-Signature': header}, {}) is True
        assert self.gateway.verify_webhook_signature(b'{"id":"evt_2"}', {'Stripe-Signature': header}, {}) is False

    def test_webhook_signature_outside_tolerance(self):
        payload = b'{"id":"evt_1"}'
        timestamp = int(time.time()) - 600
        header = f"t={timestamp},v1={self._signature(payload, timestamp)}"

        assert self.gateway.verify_webhook_signature(payload, {'Stripe-Signature': header}, {}) is False

    @pytest.mark.parametrize('header', ['', 'garbage', 't=abc,v1=deadbeef', 't=1700000000'])
    def test_webhook_signature_malformed_header(self, header):
        assert self.gateway.verify_webhook_signature(b'{"id":"evt_1"}', {'Stripe-Signature': header}, {}) is False

    def test_webhook_signature_checked_by_sdk(self):
        payload = b'{"id":"evt_1"}'
        header = f"t={int(time.time())},v1=abc"

        with patch.object(stripe.WebhookSignature, 'verify_header', return_value=True) as mock_verify:
            assert self.gateway.verify_webhook_signature(payload, {'Stripe-Signature': header}, {}) is True

        mock_verify.assert_called_once_with('{"id":"evt_1"}', header, 'whsec_test', tolerance=300)

    def test_refund_event(self):
        response = self.gateway.process_callback({
            'id': 'evt_1',
            'type': 'charge.refunded',
            'data': {'object': {
                'payment_intent': 'pi_123',
                'amount': 2500,
                'amount_refunded': 1000,
                'currency': 'usd',
                'metadata': {'reference': 'TXN-1'},
            }},
        })

        assert response.status == 'partially_refunded'
        assert response.data['refund_amount'] == '10.00'
        assert response.data['event_id'] == 'evt_1'


class TestOzowGateway:
    """Test Ozow hashing and notifications"""

    def setup_method(self):
        self.gateway = OzowGateway(gateway_settings('ozow'))

    def test_initialize_payment(self):
        response = self.gateway.initialize_payment({'amount': '50.00', 'currency': 'ZAR', 'reference': 'TXN-1'})

        request_data = response.data['payment_data']
        assert request_data['SiteCode'] == 'TST-TST-001'
        assert request_data['IsTest'] == 'true'
        hash_check = request_data.pop('HashCheck')
        assert hash_check == self.gateway.generate_hash(request_data)

    def test_minimum_amount(self):
        with pytest.raises(PaymentGatewayException):
            self.gateway.initialize_payment({'amount': '4.99', 'currency': 'ZAR', 'reference': 'TXN-1'})

    def test_notification_hash(self):
        params = {
            'SiteCode': 'TST-TST-001',
            'TransactionId': 'oz-1',
            'TransactionReference': 'TXN-1',
            'Amount': '50.00',
            'Status': 'Complete',
        }
        params['Hash'] = self.gateway.generate_hash(params).upper()

        assert self.gateway.verify_webhook_signature(b'', {}, params) is True

        params['Amount'] = '5000.00'
        assert self.gateway.verify_webhook_signature(b'', {}, params) is False

    def test_process_callback(self):
        response = self.gateway.process_callback({
            'TransactionId': 'oz-1',
            'TransactionReference': 'TXN-1',
            'Status': 'Complete',
            'Amount': '50.00',
        })

        assert response.status == 'completed'
        assert response.data['event_id'] == 'oz-1:Complete'


class TestCryptoGateway:
    """Test Coinbase Commerce charges"""

    def setup_method(self):
        self.gateway = CryptoGateway(gateway_settings('crypto'))
        self.gateway.session.request = MagicMock()

    def test_initialize_payment(self):
        self.gateway.session.request.return_value = mock_http_response({
            'data': {
                'id': 'charge-1',
                'hosted_url': 'https://commerce.coinbase.com/charges/ABC',
                'expires_at': '2024-01-01T01:00:00Z',
            },
        })

        response = self.gateway.initialize_payment({'amount': '0.05', 'currency': 'BTC', 'reference': 'TXN-1'})

        assert response.success is True
        assert response.data['payment_url'] == 'https://commerce.coinbase.com/charges/ABC'
        assert self.gateway.session.request.call_args[1]['headers']['X-CC-Api-Key'] == 'cc_api_key'

    def test_confirmed_event(self):
        response = self.gateway.process_callback({
            'event': {
                'id': 'evt-1',
                'type': 'charge:confirmed',
                'data': {
                    'id': 'charge-1',
                    'metadata': {'reference': 'TXN-1'},
                    'pricing': {'local': {'amount': '0.05', 'currency': 'BTC'}},
                    'timeline': [{'status': 'NEW'}, {'status': 'COMPLETED'}],
                },
            },
        })

        assert response.status == 'completed'
        assert response.data['transaction_id'] == 'TXN-1'
        assert response.data['event_id'] == 'evt-1'


class TestPayPalGateway:
    """Test PayPal notifications"""

    def setup_method(self):
        self.gateway = PayPalGateway({'client_id': 'id', 'client_secret': 'secret', 'mode': 'sandbox'})

    def test_base_url_follows_mode(self):
        assert self.gateway.base_url == 'https://api.sandbox.paypal.com'
        assert PayPalGateway({'mode': 'live', 'test_mode': True}).base_url == 'https://api.paypal.com'

    def test_capture_completed_event(self):
        response = self.gateway.process_callback({
            'id': 'WH-1',
            'event_type': 'PAYMENT.CAPTURE.COMPLETED',
            'resource': {
                'id': 'CAPTURE-1',
                'custom_id': 'TXN-1',
                'status': 'COMPLETED',
                'amount': {'value': '10.00', 'currency_code': 'USD'},
                'supplementary_data': {'related_ids': {'order_id': 'ORDER-1'}},
            },
        })

        assert response.status == 'completed'
        assert response.data['transaction_id'] == 'TXN-1'
        assert response.data['gateway_transaction_id'] == 'ORDER-1'
        assert response.data['refund_reference'] == 'CAPTURE-1'

    def test_webhook_requires_transmission_headers(self):
        assert self.gateway.verify_webhook_signature(b'{}', {}, {}) is False


class TestZapperGateway:
    def test_process_callback(self):
        gateway = ZapperGateway({'merchant_id': '1', 'site_id': '2', 'api_key': 'k'})

        response = gateway.process_callback({
            'paymentId': 'zp-1',
            'reference': 'TXN-1',
            'status': 'Success',
            'amount': '20.00',
        })

        assert response.status == 'completed'
        assert response.data['event_id'] == 'zp-1:Success'
        assert response.data['event_type'] == 'payment.success'


class TestEFTGateway:
    """Test manual EFT instructions and verification"""

    def setup_method(self):
        self.gateway = EFTGateway(gateway_settings('eft'))

    def test_initialize_returns_bank_details(self):
        response = self.gateway.initialize_payment({'amount': '250.00', 'currency': 'ZAR', 'reference': 'TXN-1'})

        assert response.success is True
        assert response.status == 'pending'
        assert response.data['redirect_required'] is False
        assert response.data['bank_details']['account_number'] == '62000000000'
        instructions = response.data['payment_instructions']
        assert instructions['payment_reference'] == 'LISO-TXN-1'
        assert instructions['payment_amount']['formatted'] == 'ZAR 250.00'

    def test_initialize_requires_bank_details(self):
        gateway = EFTGateway({'enabled': True})

        with pytest.raises(PaymentGatewayException) as exc_info:
            gateway.initialize_payment({'amount': '250.00', 'currency': 'ZAR', 'reference': 'TXN-1'})

        assert exc_info.value.error_code == 'invalid_configuration'
        assert set(exc_info.value.errors) == {'account_name', 'account_number', 'branch_code'}

    def test_verify_stays_pending(self):
        response = self.gateway.verify_payment('TXN-1')

        assert response.success is False
        assert response.status == 'pending'

    def test_callback_with_valid_code(self):
        response = self.gateway.process_callback({
            'reference': 'LISO-TXN-1',
            'amount': '250.00',
            'verification_code': 'VERIFY-123',
            'bank_reference': 'FNB-998',
        })

        assert response.success is True
        assert response.status == 'completed'
        assert response.data['transaction_id'] == 'TXN-1'
        assert response.data['event_id'] == 'TXN-1:FNB-998'

    def test_callback_with_wrong_code(self):
        response = self.gateway.process_callback({
            'reference': 'TXN-1',
            'amount': '250.00',
            'verification_code': 'WRONG',
        })

        assert response.success is False
        assert response.status == 'pending'
        assert response.error_code == 'verification_failed'

    def test_callback_missing_parameters(self):
        response = self.gateway.process_callback({'reference': 'TXN-1'})

        assert response.error_code == 'missing_parameters'

    def test_refund_issues_reference(self):
        response = self.gateway.refund_payment('TXN-1', Decimal('20.00'))

        assert response.success is True
        assert response.data['refund_id'].startswith('REF-TXN-1-')
