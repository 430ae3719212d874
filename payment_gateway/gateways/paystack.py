"""
PayStack payment gateway implementation.

Amounts are sent to PayStack in the currency's minor unit (kobo for NGN,
cents for ZAR/USD). Webhooks are signed with HMAC-SHA512 of the raw body.
"""

import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from .base import BasePaymentGateway, GatewayResponse

logger = logging.getLogger(__name__)


class PayStackGateway(BasePaymentGateway):
    """PayStack gateway implementation using the REST API."""

    name = 'paystack'
    display_name = 'PayStack'
    supported_currencies = ['NGN', 'GHS', 'ZAR', 'USD', 'EUR', 'GBP']
    required_fields = ['amount', 'customer']
    live_url = 'https://api.paystack.co'
    sandbox_url = 'https://api.paystack.co'
    signature_header = 'x-paystack-signature'
    status_map = {
        'success': 'completed',
        'failed': 'failed',
        'abandoned': 'cancelled',
        'pending': 'pending',
        'reversed': 'refunded',
        'processed': 'processing',
    }
    intervals = {
        'daily': 'daily',
        'weekly': 'weekly',
        'monthly': 'monthly',
        'quarterly': 'quarterly',
        'yearly': 'annually',
    }

    def get_default_config(self) -> Dict[str, Any]:
        return {
            **super().get_default_config(),
            'public_key': '',
            'secret_key': '',
            'merchant_email': '',
            'callback_url': '',
        }

    def lookup_id(self, reference: str, gateway_transaction_id: Optional[str] = None) -> str:
        # Verification is keyed on our reference; refunds accept either.
        return reference

    def _auth_headers(self) -> Dict[str, str]:
        self.validate_configuration('secret_key')
        return {'Authorization': f"Bearer {self.config['secret_key']}"}

    def verify_webhook_signature(self, payload: bytes, headers: Mapping[str, str], params: Dict[str, Any]) -> bool:
        signature = self.get_signature(headers, params)
        secret = self.config.get('secret_key')
        if not signature or not secret:
            return False
        expected = hmac.new(secret.encode('utf-8'), payload, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)

    def _initialize_payment(self, payment_data: Dict[str, Any]) -> GatewayResponse:
        customer = payment_data.get('customer') or {}
        email = customer.get('email') or self.config.get('merchant_email')
        body = {
            'email': email,
            'amount': self.to_minor_units(payment_data['amount']),
            'reference': payment_data.get('reference'),
            'currency': payment_data['currency'],
            'callback_url': payment_data.get('return_url') or self.config.get('callback_url') or None,
            'metadata': {
                'description': payment_data.get('description'),
                **(payment_data.get('metadata') or {}),
            },
        }

        response = self._request('POST', '/transaction/initialize', json=body, headers=self._auth_headers())
        data = response.get('data') or {}

        return GatewayResponse(
            success=bool(response.get('status')),
            status='pending',
            message=response.get('message', 'Authorization URL created'),
            data={
                'transaction_id': data.get('reference') or payment_data.get('reference'),
                'gateway_transaction_id': None,
                'payment_url': data.get('authorization_url'),
                'access_code': data.get('access_code'),
                'redirect_required': True,
            },
            gateway_response=response,
        )

    def _verify_payment(self, transaction_id: str) -> GatewayResponse:
        response = self._request('GET', f"/transaction/verify/{transaction_id}", headers=self._auth_headers())
        data = response.get('data') or {}
        status = self.map_status(data.get('status'))
        authorization = data.get('authorization') or {}

        return GatewayResponse(
            success=status == 'completed',
            status=status,
            message=data.get('gateway_response') or response.get('message'),
            data={
                'transaction_id': data.get('reference', transaction_id),
                'gateway_transaction_id': str(data['id']) if data.get('id') else None,
                'amount': str(self.from_minor_units(data.get('amount'))),
                'currency': data.get('currency'),
                'fee_amount': str(self.from_minor_units(data.get('fees'))) if data.get('fees') else None,
                'payment_method': data.get('channel'),
                'card_last_four': authorization.get('last4'),
                'card_brand': authorization.get('brand'),
                'paid_at': data.get('paid_at'),
            },
            gateway_response=response,
        )

    def _process_callback(self, callback_data: Dict[str, Any]) -> GatewayResponse:
        event = callback_data.get('event', '')
        data = callback_data.get('data') or {}
        status = self.map_status(data.get('status'))
        if event == 'charge.failed':
            status = 'failed'

        result = {
            'transaction_id': data.get('reference', ''),
            'gateway_transaction_id': str(data['id']) if data.get('id') else None,
            'event_id': f"{event}:{data.get('id')}" if data.get('id') else None,
            'event_type': event,
            'amount': str(self.from_minor_units(data.get('amount'))) if data.get('amount') else None,
            'currency': data.get('currency'),
            'payment_method': data.get('channel'),
        }
        if status == 'failed':
            result['error_message'] = data.get('gateway_response') or 'Payment failed'
        if event.startswith('subscription.'):
            result['subscription_id'] = data.get('subscription_code')

        return GatewayResponse(
            success=status == 'completed',
            status=status,
            message=f"PayStack event {event}",
            data=result,
            gateway_response=dict(callback_data),
        )

    def _refund_payment(
        self, transaction_id: str, amount: Optional[Decimal], currency: Optional[str] = None
    ) -> GatewayResponse:
        body = {'transaction': transaction_id}
        if amount is not None:
            body['amount'] = self.to_minor_units(amount)

        response = self._request('POST', '/refund', json=body, headers=self._auth_headers())
        data = response.get('data') or {}

        return GatewayResponse(
            success=bool(response.get('status')),
            status=self.map_status(data.get('status')) if data.get('status') else 'pending',
            message=response.get('message', 'Refund has been queued for processing'),
            data={
                'transaction_id': transaction_id,
                'refund_id': str(data['id']) if data.get('id') else None,
                'amount': str(self.from_minor_units(data['amount'])) if data.get('amount') else (
                    str(amount) if amount is not None else None
                ),
            },
            gateway_response=response,
        )

    def create_subscription(self, subscription_data: Dict[str, Any]) -> GatewayResponse:
        """
        Create a customer, a plan and a subscription on PayStack.

        Args:
            subscription_data: amount, currency, frequency, description and a
                ``customer`` dict. ``authorization_code`` is optional.
        """
        headers = self._auth_headers()
        customer = subscription_data.get('customer') or {}

        customer_response = self._request('POST', '/customer', json={
            'email': customer.get('email') or self.config.get('merchant_email'),
            'first_name': customer.get('first_name', ''),
            'last_name': customer.get('last_name', ''),
            'phone': customer.get('phone', ''),
        }, headers=headers)
        customer_code = (customer_response.get('data') or {}).get('customer_code')

        plan_response = self._request('POST', '/plan', json={
            'name': subscription_data.get('description') or 'Subscription Plan',
            'amount': self.to_minor_units(subscription_data['amount']),
            'interval': self.intervals.get(subscription_data.get('frequency', 'monthly'), 'monthly'),
            'currency': (subscription_data.get('currency') or 'NGN').upper(),
        }, headers=headers)
        plan_code = (plan_response.get('data') or {}).get('plan_code')

        response = self._request('POST', '/subscription', json={
            'customer': customer_code,
            'plan': plan_code,
            'authorization': subscription_data.get('authorization_code', ''),
        }, headers=headers)
        data = response.get('data') or {}

        return GatewayResponse(
            success=bool(response.get('status')),
            status='active',
            message=response.get('message', 'Subscription created successfully'),
            data={
                'subscription_id': data.get('subscription_code'),
                'customer_id': customer_code,
                'plan_code': plan_code,
                'email_token': data.get('email_token'),
            },
            gateway_response=response,
        )

    def cancel_subscription(self, subscription_id: str, email_token: str = '') -> GatewayResponse:
        response = self._request('POST', '/subscription/disable', json={
            'code': subscription_id,
            'token': email_token,
        }, headers=self._auth_headers())

        return GatewayResponse(
            success=bool(response.get('status')),
            status='cancelled',
            message=response.get('message', 'Subscription disabled successfully'),
            data={'subscription_id': subscription_id},
            gateway_response=response,
        )
