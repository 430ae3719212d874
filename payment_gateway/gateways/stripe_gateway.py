"""
Stripe payment gateway implementation.

Payments are Stripe PaymentIntents created through the official SDK. The
client secret is handed to the frontend, which confirms the intent with
Stripe.js; the outcome arrives through the ``payment_intent.*`` webhooks.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import stripe

from ..exceptions import PaymentGatewayException
from .base import BasePaymentGateway, GatewayResponse

logger = logging.getLogger(__name__)

# Signed webhooks older than this are rejected
SIGNATURE_TOLERANCE_SECONDS = 300


class StripeGateway(BasePaymentGateway):
    """Stripe gateway implementation backed by the ``stripe`` SDK."""

    name = 'stripe'
    display_name = 'Stripe'
    supported_currencies = [
        'USD', 'EUR', 'GBP', 'CAD', 'AUD', 'JPY', 'CHF', 'SEK', 'NOK',
        'DKK', 'NZD', 'SGD', 'HKD', 'MXN', 'BRL', 'ZAR', 'INR', 'NGN',
    ]
    live_url = 'https://api.stripe.com'
    sandbox_url = 'https://api.stripe.com'
    signature_header = 'Stripe-Signature'
    status_map = {
        'succeeded': 'completed',
        'pending': 'pending',
        'failed': 'failed',
        'canceled': 'cancelled',
        'requires_action': 'pending',
        'requires_confirmation': 'pending',
        'requires_payment_method': 'pending',
        'processing': 'processing',
        'requires_capture': 'authorized',
        'partially_refunded': 'partially_refunded',
        'refunded': 'refunded',
    }
    event_statuses = {
        'payment_intent.succeeded': 'completed',
        'payment_intent.payment_failed': 'failed',
        'payment_intent.canceled': 'cancelled',
        'payment_intent.processing': 'processing',
        'payment_intent.amount_capturable_updated': 'authorized',
        'charge.refunded': 'refunded',
    }
    zero_decimal_currencies = {'JPY'}

    def get_default_config(self) -> Dict[str, Any]:
        return {
            **super().get_default_config(),
            'publishable_key': '',
            'secret_key': '',
            'webhook_secret': '',
            'currency': 'USD',
        }

    @property
    def api_key(self) -> str:
        self.validate_configuration('secret_key')
        return self.config['secret_key']

    def _stripe_amount(self, amount, currency: str) -> int:
        if currency.upper() in self.zero_decimal_currencies:
            return int(Decimal(str(amount)))
        return self.to_minor_units(amount)

    def _from_stripe_amount(self, value, currency: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if (currency or '').upper() in self.zero_decimal_currencies:
            return str(Decimal(str(value)))
        return str(self.from_minor_units(value))

    def verify_webhook_signature(self, payload: bytes, headers: Mapping[str, str], params: Dict[str, Any]) -> bool:
        secret = self.config.get('webhook_secret')
        header = self.get_signature(headers, params)
        if not secret or not header:
            return False

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode('utf-8'), header, secret, tolerance=SIGNATURE_TOLERANCE_SECONDS
            )
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.warning("Stripe webhook signature rejected", extra={'reason': str(e)})
            return False
        return True

    def _raise_for_stripe_error(self, exc: Exception, factory, *args):
        code = getattr(exc, 'code', None) or 'stripe_error'
        message = getattr(exc, 'user_message', None) or str(exc)
        error = factory(self.name, *args, message)
        error.error_code = code
        raise error from exc

    def _initialize_payment(self, payment_data: Dict[str, Any]) -> GatewayResponse:
        reference = payment_data.get('reference')
        customer = payment_data.get('customer') or {}
        params = {
            'amount': self._stripe_amount(payment_data['amount'], payment_data['currency']),
            'currency': payment_data['currency'].lower(),
            'description': payment_data.get('description') or 'Payment',
            'metadata': {
                'reference': reference,
                'customer_email': customer.get('email') or '',
                'customer_name': customer.get('name') or '',
                **(payment_data.get('metadata') or {}),
            },
            'automatic_payment_methods': {'enabled': True},
        }
        if customer.get('email'):
            params['receipt_email'] = customer['email']

        try:
            intent = stripe.PaymentIntent.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            logger.warning("Stripe PaymentIntent creation failed", extra={'reference': reference, 'error': str(e)})
            self._raise_for_stripe_error(e, PaymentGatewayException.payment_initialization_failed)

        return GatewayResponse(
            success=True,
            status=self.map_status(intent.get('status')),
            message='Stripe payment initialized successfully',
            data={
                'transaction_id': reference,
                'gateway_transaction_id': intent.get('id'),
                'client_secret': intent.get('client_secret'),
                'publishable_key': self.config.get('publishable_key'),
                'redirect_required': False,
            },
            gateway_response=dict(intent),
        )

    def _verify_payment(self, transaction_id: str) -> GatewayResponse:
        try:
            intent = stripe.PaymentIntent.retrieve(transaction_id, api_key=self.api_key)
        except stripe.StripeError as e:
            self._raise_for_stripe_error(e, PaymentGatewayException.payment_verification_failed, transaction_id)

        return self._intent_response(intent)

    def _intent_response(self, intent, status: Optional[str] = None) -> GatewayResponse:
        status = status or self.map_status(intent.get('status'))
        metadata = intent.get('metadata') or {}
        error = intent.get('last_payment_error') or {}
        data = {
            'transaction_id': metadata.get('reference', ''),
            'gateway_transaction_id': intent.get('id'),
            'amount': self._from_stripe_amount(intent.get('amount'), intent.get('currency')),
            'currency': (intent.get('currency') or '').upper() or None,
            'payment_method': 'card',
        }
        if status == 'failed':
            data['error_message'] = error.get('message') or 'Payment failed'
            data['error_code'] = error.get('decline_code') or error.get('code')

        return GatewayResponse(
            success=status == 'completed',
            status=status,
            message=f"Stripe PaymentIntent {intent.get('status')}",
            data=data,
            gateway_response=dict(intent),
        )

    def _process_callback(self, callback_data: Dict[str, Any]) -> GatewayResponse:
        event_type = callback_data.get('type', '')
        obj = (callback_data.get('data') or {}).get('object') or {}

        if event_type == 'charge.refunded':
            fully = obj.get('amount_refunded') == obj.get('amount')
            status = 'refunded' if fully else 'partially_refunded'
            response = GatewayResponse(
                success=True,
                status=status,
                message='Charge refunded',
                data={
                    'transaction_id': (obj.get('metadata') or {}).get('reference', ''),
                    'gateway_transaction_id': obj.get('payment_intent'),
                    'refund_amount': self._from_stripe_amount(obj.get('amount_refunded'), obj.get('currency')),
                },
                gateway_response=dict(callback_data),
            )
        else:
            response = self._intent_response(obj, self.event_statuses.get(event_type))
            response.gateway_response = dict(callback_data)

        response.data['event_id'] = callback_data.get('id')
        response.data['event_type'] = event_type
        return response

    def _refund_payment(
        self, transaction_id: str, amount: Optional[Decimal], currency: Optional[str] = None
    ) -> GatewayResponse:
        params = {'payment_intent': transaction_id}
        if amount is not None:
            params['amount'] = self._stripe_amount(amount, currency or self.config.get('currency', 'USD'))

        try:
            refund = stripe.Refund.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe refund failed for {transaction_id}: {str(e)}")
            self._raise_for_stripe_error(e, PaymentGatewayException.refund_failed, transaction_id)

        refund_status = refund.get('status')
        return GatewayResponse(
            success=refund_status in ('succeeded', 'pending'),
            status='completed' if refund_status == 'succeeded' else self.map_status(refund_status),
            message=f"Refund {refund_status}",
            data={
                'transaction_id': transaction_id,
                'refund_id': refund.get('id'),
                'amount': self._from_stripe_amount(refund.get('amount'), refund.get('currency')),
            },
            gateway_response=dict(refund),
        )

    def create_subscription(self, subscription_data: Dict[str, Any]) -> GatewayResponse:
        """
        Subscribe a Stripe customer to a price.

        Args:
            subscription_data: ``price_id`` and ``customer_id`` (or a
                ``customer`` dict with an email, used to create one)
        """
        customer_id = subscription_data.get('customer_id')
        try:
            if not customer_id:
                customer = subscription_data.get('customer') or {}
                created = stripe.Customer.create(
                    api_key=self.api_key,
                    email=customer.get('email'),
                    name=customer.get('name'),
                )
                customer_id = created.get('id')

            subscription = stripe.Subscription.create(
                api_key=self.api_key,
                customer=customer_id,
                items=[{'price': subscription_data.get('price_id')}],
                payment_behavior='default_incomplete',
                metadata={'reference': subscription_data.get('reference', '')},
            )
        except stripe.StripeError as e:
            self._raise_for_stripe_error(e, PaymentGatewayException.payment_initialization_failed)

        return GatewayResponse(
            success=True,
            status=subscription.get('status'),
            message='Stripe subscription created successfully',
            data={
                'subscription_id': subscription.get('id'),
                'customer_id': customer_id,
            },
            gateway_response=dict(subscription),
        )

    def cancel_subscription(self, subscription_id: str) -> GatewayResponse:
        try:
            subscription = stripe.Subscription.cancel(subscription_id, api_key=self.api_key)
        except stripe.StripeError as e:
            self._raise_for_stripe_error(e, PaymentGatewayException.callback_processing_failed)

        return GatewayResponse(
            success=True,
            status='cancelled',
            message='Subscription cancelled successfully',
            data={'subscription_id': subscription_id},
            gateway_response=dict(subscription),
        )
