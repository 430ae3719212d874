"""
PayPal payment gateway implementation.

Uses the Orders v2 API: an order is created and approved by the payer,
then captured. Refunds are issued against the capture.
"""

import logging
import time
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from ..conf import environment
from .base import BasePaymentGateway, GatewayResponse

logger = logging.getLogger(__name__)


class PayPalGateway(BasePaymentGateway):
    """PayPal gateway implementation (OAuth2 client credentials + Orders v2)."""

    name = 'paypal'
    display_name = 'PayPal'
    supported_currencies = [
        'USD', 'EUR', 'GBP', 'CAD', 'AUD', 'JPY', 'CNY', 'MXN', 'BRL',
        'ZAR', 'AED', 'SAR', 'INR', 'SGD', 'HKD', 'NZD', 'CHF', 'NOK',
        'SEK', 'DKK', 'PLN', 'CZK', 'HUF', 'ILS', 'PHP', 'THB', 'MYR',
    ]
    live_url = 'https://api.paypal.com'
    sandbox_url = 'https://api.sandbox.paypal.com'
    status_map = {
        'COMPLETED': 'completed',
        'VOIDED': 'cancelled',
        'PAYER_ACTION_REQUIRED': 'pending',
        'PENDING': 'pending',
        'FAILED': 'failed',
        'DECLINED': 'failed',
        'EXPIRED': 'expired',
        'PARTIALLY_REFUNDED': 'partially_refunded',
        'REFUNDED': 'refunded',
    }
    event_statuses = {
        'CHECKOUT.ORDER.APPROVED': 'processing',
        'CHECKOUT.ORDER.COMPLETED': 'completed',
        'PAYMENT.CAPTURE.COMPLETED': 'completed',
        'PAYMENT.CAPTURE.PENDING': 'pending',
        'PAYMENT.CAPTURE.DENIED': 'failed',
        'PAYMENT.CAPTURE.DECLINED': 'failed',
        'PAYMENT.CAPTURE.REFUNDED': 'refunded',
        'PAYMENT.CAPTURE.REVERSED': 'refunded',
    }
    interval_units = {
        'daily': ('DAY', 1),
        'weekly': ('WEEK', 1),
        'monthly': ('MONTH', 1),
        'quarterly': ('MONTH', 3),
        'yearly': ('YEAR', 1),
    }

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self._access_token = None
        self._token_expires_at = 0.0

    def get_default_config(self) -> Dict[str, Any]:
        return {
            **super().get_default_config(),
            'client_id': '',
            'client_secret': '',
            'mode': 'sandbox',
            'webhook_id': '',
            'return_url': '',
            'cancel_url': '',
            'brand_name': '',
            'currency': 'USD',
        }

    @property
    def test_mode(self) -> bool:
        if self.config.get('mode') == 'live':
            return False
        return super().test_mode

    def get_access_token(self) -> str:
        """Fetch (and cache) an OAuth2 access token."""
        if self._access_token and time.time() < self._token_expires_at:
            return self._access_token

        self.validate_configuration('client_id', 'client_secret')
        response = self._request(
            'POST',
            '/v1/oauth2/token',
            data={'grant_type': 'client_credentials'},
            auth=(self.config['client_id'], self.config['client_secret']),
            headers={'Content-Type': 'application/x-www-form-urlencoded'},
        )
        self._access_token = response.get('access_token')
        # Refresh a minute early
        self._token_expires_at = time.time() + int(response.get('expires_in', 3600)) - 60
        return self._access_token

    def _auth_headers(self) -> Dict[str, str]:
        return {
            'Authorization': f"Bearer {self.get_access_token()}",
            'Content-Type': 'application/json',
        }

    def verify_webhook_signature(self, payload: bytes, headers: Mapping[str, str], params: Dict[str, Any]) -> bool:
        """
        Check PayPal's transmission headers and the webhook ID.

        When no webhook ID is configured, notifications are only trusted in
        the local and testing environments.
        """
        required = ('paypal-transmission-id', 'paypal-transmission-sig', 'paypal-cert-url')
        if not all(headers.get(header) for header in required):
            return False

        webhook_id = self.config.get('webhook_id')
        if not webhook_id:
            return environment() in ('local', 'testing')

        received = params.get('webhook_id') or (params.get('resource') or {}).get('webhook_id')
        return received == webhook_id

    @staticmethod
    def _approval_url(links) -> Optional[str]:
        for link in links or []:
            if link.get('rel') in ('approve', 'payer-action'):
                return link.get('href')
        return None

    def _initialize_payment(self, payment_data: Dict[str, Any]) -> GatewayResponse:
        reference = payment_data.get('reference')
        amount = {
            'currency_code': payment_data['currency'],
            'value': f"{Decimal(payment_data['amount']):.2f}",
        }
        order = {
            'intent': 'CAPTURE',
            'purchase_units': [{
                'reference_id': reference,
                'custom_id': reference,
                'invoice_id': reference,
                'description': payment_data.get('description') or 'Payment',
                'amount': amount,
            }],
            'payment_source': {
                'paypal': {
                    'experience_context': {
                        'payment_method_preference': 'IMMEDIATE_PAYMENT_REQUIRED',
                        'brand_name': self.config.get('brand_name') or None,
                        'shipping_preference': 'NO_SHIPPING',
                        'user_action': 'PAY_NOW',
                        'return_url': payment_data.get('return_url') or self.config.get('return_url') or None,
                        'cancel_url': payment_data.get('cancel_url') or self.config.get('cancel_url') or None,
                    },
                },
            },
        }

        response = self._request('POST', '/v2/checkout/orders', json=order, headers=self._auth_headers())

        return GatewayResponse(
            success=bool(response.get('id')),
            status='pending',
            message='PayPal order created',
            data={
                'transaction_id': reference,
                'gateway_transaction_id': response.get('id'),
                'payment_url': self._approval_url(response.get('links')),
                'redirect_required': True,
            },
            gateway_response=response,
        )

    def _verify_payment(self, transaction_id: str) -> GatewayResponse:
        response = self._request('GET', f"/v2/checkout/orders/{transaction_id}", headers=self._auth_headers())
        return self._order_response(transaction_id, response)

    def capture_payment(self, order_id: str) -> GatewayResponse:
        response = self._request('POST', f"/v2/checkout/orders/{order_id}/capture", headers=self._auth_headers())
        return self._order_response(order_id, response)

    def _order_response(self, order_id: str, response: Dict[str, Any]) -> GatewayResponse:
        status = self.map_status(response.get('status'))
        purchase_unit = (response.get('purchase_units') or [{}])[0]
        captures = (purchase_unit.get('payments') or {}).get('captures') or []
        capture = captures[0] if captures else {}
        amount = capture.get('amount') or purchase_unit.get('amount') or {}

        return GatewayResponse(
            success=status == 'completed',
            status=status,
            message=f"PayPal order {response.get('status', 'UNKNOWN')}",
            data={
                'transaction_id': purchase_unit.get('reference_id'),
                'gateway_transaction_id': order_id,
                'refund_reference': capture.get('id'),
                'amount': amount.get('value'),
                'currency': amount.get('currency_code'),
                'payment_method': 'paypal',
            },
            gateway_response=response,
        )

    def _process_callback(self, callback_data: Dict[str, Any]) -> GatewayResponse:
        event_type = callback_data.get('event_type', '')
        resource = callback_data.get('resource') or {}
        related = ((resource.get('supplementary_data') or {}).get('related_ids') or {})
        purchase_unit = (resource.get('purchase_units') or [{}])[0]

        if event_type.startswith('CHECKOUT.ORDER'):
            order_id = resource.get('id')
            capture_id = None
            reference = purchase_unit.get('reference_id') or purchase_unit.get('custom_id')
        else:
            order_id = related.get('order_id')
            capture_id = resource.get('id')
            reference = resource.get('custom_id') or resource.get('invoice_id')

        status = self.event_statuses.get(event_type, self.map_status(resource.get('status')))
        amount = resource.get('amount') or purchase_unit.get('amount') or {}

        result = {
            'transaction_id': reference or '',
            'gateway_transaction_id': order_id,
            'refund_reference': capture_id,
            'event_id': callback_data.get('id'),
            'event_type': event_type,
            'amount': amount.get('value'),
            'currency': amount.get('currency_code'),
        }
        if status == 'failed':
            result['error_message'] = (resource.get('status_details') or {}).get('reason') or 'Payment capture denied'

        return GatewayResponse(
            success=status == 'completed',
            status=status,
            message=callback_data.get('summary') or f"PayPal event {event_type}",
            data=result,
            gateway_response=dict(callback_data),
        )

    def _refund_payment(
        self, transaction_id: str, amount: Optional[Decimal], currency: Optional[str] = None
    ) -> GatewayResponse:
        body = {'note_to_payer': 'Refund'}
        if amount is not None:
            body['amount'] = {
                'value': f"{amount:.2f}",
                'currency_code': (currency or self.config.get('currency', 'USD')).upper(),
            }

        response = self._request(
            'POST',
            f"/v2/payments/captures/{transaction_id}/refund",
            json=body,
            headers=self._auth_headers(),
        )
        refund_status = response.get('status', 'PENDING')

        return GatewayResponse(
            success=refund_status in ('COMPLETED', 'PENDING'),
            status=self.map_status(refund_status),
            message='Refund processed successfully' if refund_status == 'COMPLETED' else f"Refund {refund_status.lower()}",
            data={
                'transaction_id': transaction_id,
                'refund_id': response.get('id'),
                'amount': (response.get('amount') or {}).get('value') or (str(amount) if amount is not None else None),
            },
            gateway_response=response,
        )

    def create_subscription(self, subscription_data: Dict[str, Any]) -> GatewayResponse:
        """Create a billing plan for an existing PayPal product and subscribe the customer to it."""
        headers = self._auth_headers()
        unit, multiplier = self.interval_units.get(subscription_data.get('frequency', 'monthly'), ('MONTH', 1))
        customer = subscription_data.get('customer') or {}

        plan = self._request('POST', '/v1/billing/plans', json={
            'product_id': subscription_data.get('product_id'),
            'name': subscription_data.get('description') or 'Subscription Plan',
            'status': 'ACTIVE',
            'billing_cycles': [{
                'frequency': {
                    'interval_unit': unit,
                    'interval_count': multiplier * int(subscription_data.get('interval_count', 1)),
                },
                'tenure_type': 'REGULAR',
                'sequence': 1,
                'total_cycles': 0,
                'pricing_scheme': {
                    'fixed_price': {
                        'value': f"{Decimal(str(subscription_data['amount'])):.2f}",
                        'currency_code': (subscription_data.get('currency') or 'USD').upper(),
                    },
                },
            }],
            'payment_preferences': {
                'auto_bill_outstanding': True,
                'payment_failure_threshold': 3,
            },
        }, headers=headers)

        response = self._request('POST', '/v1/billing/subscriptions', json={
            'plan_id': plan.get('id'),
            'subscriber': {
                'name': {
                    'given_name': customer.get('first_name') or customer.get('name') or '',
                    'surname': customer.get('last_name') or '',
                },
                'email_address': customer.get('email') or '',
            },
        }, headers=headers)

        return GatewayResponse(
            success=bool(response.get('id')),
            status='pending' if response.get('status') == 'APPROVAL_PENDING' else 'active',
            message='PayPal subscription created successfully',
            data={
                'subscription_id': response.get('id'),
                'plan_id': plan.get('id'),
                'payment_url': self._approval_url(response.get('links')),
            },
            gateway_response=response,
        )

    def cancel_subscription(self, subscription_id: str) -> GatewayResponse:
        self._request(
            'POST',
            f"/v1/billing/subscriptions/{subscription_id}/cancel",
            json={'reason': 'Customer requested cancellation'},
            headers=self._auth_headers(),
        )
        return GatewayResponse(
            success=True,
            status='cancelled',
            message='Subscription cancelled successfully',
            data={'subscription_id': subscription_id},
        )
