"""
Cryptocurrency payment gateway implementation (Coinbase Commerce).
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .base import BasePaymentGateway, GatewayResponse

logger = logging.getLogger(__name__)


class CryptoGateway(BasePaymentGateway):
    """
    Coinbase Commerce charges.

    A charge is created with a fixed local price and the payer settles it
    in any supported cryptocurrency on the hosted page.
    """

    name = 'crypto'
    display_name = 'Cryptocurrency'
    supported_currencies = ['BTC', 'ETH', 'USDT', 'USDC', 'LTC', 'BCH', 'DOGE', 'XRP']
    live_url = 'https://api.commerce.coinbase.com'
    sandbox_url = 'https://api.commerce.coinbase.com'
    signature_header = 'X-Crypto-Signature'
    api_version = '2018-03-22'
    status_map = {
        'NEW': 'pending',
        'PENDING': 'pending',
        'COMPLETED': 'completed',
        'CONFIRMED': 'completed',
        'OVERPAID': 'completed',
        'RESOLVED': 'completed',
        'EXPIRED': 'expired',
        'UNRESOLVED': 'failed',
        'CANCELED': 'cancelled',
        'UNDERPAID': 'pending',
        'DELAYED': 'pending',
        'MULTIPLE': 'pending',
    }
    event_statuses = {
        'charge:created': 'pending',
        'charge:pending': 'pending',
        'charge:delayed': 'pending',
        'charge:confirmed': 'completed',
        'charge:resolved': 'completed',
        'charge:failed': 'failed',
    }

    def get_default_config(self) -> Dict[str, Any]:
        return {
            **super().get_default_config(),
            'provider': 'coinbase',
            'api_key': '',
            'api_secret': '',
            'webhook_secret': '',
            'currencies': ['BTC', 'ETH', 'USDT', 'USDC'],
            'redirect_url': '',
            'cancel_url': '',
            'minimum_amount': '0.01',
        }

    def get_supported_currencies(self) -> List[str]:
        return [currency.upper() for currency in self.config.get('currencies') or self.supported_currencies]

    def _auth_headers(self) -> Dict[str, str]:
        self.validate_configuration('api_key')
        return {
            'X-CC-Api-Key': self.config['api_key'],
            'X-CC-Version': self.api_version,
        }

    def _initialize_payment(self, payment_data: Dict[str, Any]) -> GatewayResponse:
        reference = payment_data.get('reference')
        customer = payment_data.get('customer') or {}
        body = {
            'name': payment_data.get('description') or 'Payment',
            'description': payment_data.get('item_description') or payment_data.get('description') or 'Payment',
            'pricing_type': 'fixed_price',
            'local_price': {
                'amount': f"{Decimal(payment_data['amount']):.2f}",
                'currency': payment_data['currency'],
            },
            'metadata': {
                'reference': reference,
                'customer_email': customer.get('email', ''),
                'customer_name': customer.get('name', ''),
            },
            'redirect_url': payment_data.get('return_url') or self.config.get('redirect_url') or None,
            'cancel_url': payment_data.get('cancel_url') or self.config.get('cancel_url') or None,
        }

        response = self._request('POST', '/charges', json=body, headers=self._auth_headers())
        charge = response.get('data') or {}

        return GatewayResponse(
            success=bool(charge.get('id')),
            status='pending',
            message='Cryptocurrency payment initialized successfully',
            data={
                'transaction_id': reference,
                'gateway_transaction_id': charge.get('id'),
                'payment_url': charge.get('hosted_url'),
                'addresses': charge.get('addresses') or {},
                'expires_at': charge.get('expires_at'),
                'redirect_required': True,
            },
            gateway_response=response,
        )

    def _verify_payment(self, transaction_id: str) -> GatewayResponse:
        response = self._request('GET', f"/charges/{transaction_id}", headers=self._auth_headers())
        charge = response.get('data') or {}
        return self._charge_response(charge)

    def _charge_response(self, charge: Dict[str, Any], status: Optional[str] = None) -> GatewayResponse:
        timeline = charge.get('timeline') or []
        latest = timeline[-1] if timeline else {}
        crypto_status = latest.get('context') or latest.get('status') or 'NEW'
        status = status or self.map_status(crypto_status)
        local = (charge.get('pricing') or {}).get('local') or {}
        payments = charge.get('payments') or []

        data = {
            'transaction_id': (charge.get('metadata') or {}).get('reference', ''),
            'gateway_transaction_id': charge.get('id'),
            'amount': local.get('amount'),
            'currency': local.get('currency'),
            'payment_method': payments[0].get('network') if payments else 'crypto',
        }
        if status == 'failed':
            data['error_message'] = f"Charge {crypto_status.lower()}"

        return GatewayResponse(
            success=status == 'completed',
            status=status,
            message=f"Charge {crypto_status}",
            data=data,
            gateway_response=dict(charge),
        )

    def _process_callback(self, callback_data: Dict[str, Any]) -> GatewayResponse:
        event = callback_data.get('event') or {}
        event_type = event.get('type', '')
        response = self._charge_response(event.get('data') or {}, self.event_statuses.get(event_type))
        response.data['event_id'] = event.get('id')
        response.data['event_type'] = event_type
        response.gateway_response = dict(callback_data)
        return response

    def _refund_payment(
        self, transaction_id: str, amount: Optional[Decimal], currency: Optional[str] = None
    ) -> GatewayResponse:
        logger.warning(f"Crypto refund requested for {transaction_id}; manual refund required")
        return GatewayResponse(
            success=False,
            status='manual_refund_required',
            message='Cryptocurrency refunds must be sent back to the payer manually',
            error_code='manual_refund_required',
            data={
                'transaction_id': transaction_id,
                'amount': str(amount) if amount is not None else None,
            },
        )
