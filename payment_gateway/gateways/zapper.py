"""
Zapper QR payment gateway implementation.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from .base import BasePaymentGateway, GatewayResponse

logger = logging.getLogger(__name__)


class ZapperGateway(BasePaymentGateway):
    """
    Zapper gateway implementation.

    A payment is created through the REST API and the payer scans the
    returned QR code. Zapper signs its notifications with the API secret.
    """

    name = 'zapper'
    display_name = 'Zapper'
    supported_currencies = ['ZAR']
    live_url = 'https://api.zapper.com'
    sandbox_url = 'https://api-sandbox.zapper.com'
    signature_header = 'X-Zapper-Signature'
    status_map = {
        'Success': 'completed',
        'Pending': 'pending',
        'Failed': 'failed',
        'Cancelled': 'cancelled',
        'Expired': 'expired',
        'Refunded': 'refunded',
    }

    def get_default_config(self) -> Dict[str, Any]:
        return {
            **super().get_default_config(),
            'merchant_id': '',
            'site_id': '',
            'api_key': '',
            'api_secret': '',
            'callback_url': '',
            'expiry_minutes': 30,
        }

    def _auth_headers(self) -> Dict[str, str]:
        self.validate_configuration('merchant_id', 'site_id', 'api_key')
        return {
            'Api-Key': self.config['api_key'],
            'Merchant-Id': str(self.config['merchant_id']),
            'Site-Id': str(self.config['site_id']),
        }

    def _initialize_payment(self, payment_data: Dict[str, Any]) -> GatewayResponse:
        reference = payment_data.get('reference')
        customer = payment_data.get('customer') or {}
        body = {
            'merchantId': self.config.get('merchant_id'),
            'siteId': self.config.get('site_id'),
            'amount': f"{Decimal(payment_data['amount']):.2f}",
            'currency': payment_data['currency'],
            'reference': reference,
            'description': payment_data.get('description') or 'Payment',
            'callbackUrl': self.config.get('callback_url') or None,
            'successUrl': payment_data.get('return_url'),
            'cancelUrl': payment_data.get('cancel_url'),
            'expiryMinutes': self.config.get('expiry_minutes', 30),
            'isTest': self.test_mode,
        }
        if customer:
            body['customer'] = {
                'email': customer.get('email', ''),
                'firstName': customer.get('first_name') or customer.get('name', ''),
                'lastName': customer.get('last_name', ''),
                'mobile': customer.get('phone', ''),
            }

        response = self._request('POST', '/v1/payments', json=body, headers=self._auth_headers())

        return GatewayResponse(
            success=bool(response.get('success', True)),
            status='pending',
            message=response.get('message', 'Zapper payment initialized successfully'),
            data={
                'transaction_id': response.get('paymentReference') or reference,
                'gateway_transaction_id': response.get('paymentId'),
                'payment_url': response.get('paymentUrl'),
                'qr_code_url': response.get('qrCodeUrl'),
                'qr_code_data': response.get('qrCodeData'),
                'expires_at': response.get('expiresAt'),
                'redirect_required': False,
            },
            gateway_response=response,
        )

    def _verify_payment(self, transaction_id: str) -> GatewayResponse:
        response = self._request('GET', f"/v1/payments/{transaction_id}", headers=self._auth_headers())
        return self._payment_response(response, transaction_id)

    def _process_callback(self, callback_data: Dict[str, Any]) -> GatewayResponse:
        response = self._payment_response(callback_data)
        payment_id = callback_data.get('paymentId')
        response.data['event_id'] = f"{payment_id}:{callback_data.get('status')}" if payment_id else None
        response.data['event_type'] = f"payment.{str(callback_data.get('status', '')).lower()}"
        return response

    def _payment_response(self, payload: Dict[str, Any], payment_id: Optional[str] = None) -> GatewayResponse:
        zapper_status = payload.get('status', 'Pending')
        status = self.map_status(zapper_status)
        data = {
            'transaction_id': payload.get('reference', ''),
            'gateway_transaction_id': payload.get('paymentId') or payment_id,
            'amount': payload.get('amount'),
            'currency': payload.get('currency'),
            'payment_method': payload.get('paymentMethod') or 'zapper_qr',
            'paid_at': payload.get('paidAt'),
        }
        if status == 'failed':
            data['error_message'] = payload.get('errorMessage') or 'Payment failed'
            data['error_code'] = payload.get('errorCode')

        return GatewayResponse(
            success=status == 'completed',
            status=status,
            message=f"Zapper payment {zapper_status}",
            data=data,
            gateway_response=dict(payload),
        )

    def _refund_payment(
        self, transaction_id: str, amount: Optional[Decimal], currency: Optional[str] = None
    ) -> GatewayResponse:
        body = {
            'paymentId': transaction_id,
            'reason': 'Refund requested',
        }
        if amount is not None:
            body['amount'] = f"{amount:.2f}"

        response = self._request('POST', '/v1/refunds', json=body, headers=self._auth_headers())
        refund_status = response.get('status', 'Pending')

        return GatewayResponse(
            success=bool(response.get('success', True)),
            status=self.map_status(refund_status),
            message=response.get('message', 'Refund processed successfully'),
            data={
                'transaction_id': transaction_id,
                'refund_id': response.get('refundId'),
                'amount': response.get('amount') or (str(amount) if amount is not None else None),
            },
            gateway_response=response,
        )
