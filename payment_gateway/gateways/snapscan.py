"""
SnapScan QR payment gateway implementation.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from .base import BasePaymentGateway, GatewayResponse, json_dumps

logger = logging.getLogger(__name__)


class SnapScanGateway(BasePaymentGateway):
    """
    SnapScan gateway implementation.

    A payment request returns a QR code (and a hosted payment URL); the
    result is pushed to the callback URL signed with the API secret.
    """

    name = 'snapscan'
    display_name = 'SnapScan'
    supported_currencies = ['ZAR']
    live_url = 'https://pos.snapscan.io'
    sandbox_url = 'https://pos-staging.snapscan.io'
    signature_header = 'X-SnapScan-Signature'
    status_map = {
        'INITIATED': 'pending',
        'PENDING': 'pending',
        'SUCCESS': 'completed',
        'FAILED': 'failed',
        'CANCELLED': 'cancelled',
        'EXPIRED': 'expired',
        'REFUNDED': 'refunded',
    }

    def get_default_config(self) -> Dict[str, Any]:
        return {
            **super().get_default_config(),
            'merchant_id': '',
            'api_key': '',
            'api_secret': '',
            'callback_url': '',
            'return_url': '',
            'cancel_url': '',
            'expiry_minutes': 10,
        }

    def _call(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.validate_configuration('merchant_id', 'api_key', 'api_secret')
        headers = {
            'Content-Type': 'application/json',
            'X-Merchant-Id': str(self.config['merchant_id']),
            'X-Api-Key': self.config['api_key'],
            **self._signed_headers(method, path, body),
        }
        return self._request(method, path, data=json_dumps(body) if body else None, headers=headers)

    def _initialize_payment(self, payment_data: Dict[str, Any]) -> GatewayResponse:
        reference = payment_data.get('reference')
        customer = payment_data.get('customer') or {}
        body = {
            'merchantId': self.config.get('merchant_id'),
            'reference': reference,
            'amount': f"{Decimal(payment_data['amount']):.2f}",
            'currency': payment_data['currency'],
            'description': payment_data.get('description') or 'Payment',
            'customer': {
                'email': customer.get('email'),
                'name': customer.get('name'),
                'mobile': customer.get('phone'),
            },
            'callbackUrl': self.config.get('callback_url') or None,
            'successUrl': payment_data.get('return_url') or self.config.get('return_url') or None,
            'cancelUrl': payment_data.get('cancel_url') or self.config.get('cancel_url') or None,
            'metadata': payment_data.get('metadata') or {},
            'expiryMinutes': self.config.get('expiry_minutes', 10),
            'qrCodeSize': 'medium',
        }

        response = self._call('POST', '/payments', body)
        payment_id = response.get('id') or response.get('transaction_id')

        return GatewayResponse(
            success=bool(payment_id),
            status=self.map_status(response.get('status', 'INITIATED')),
            message='SnapScan payment initialized successfully',
            data={
                'transaction_id': reference,
                'gateway_transaction_id': payment_id,
                'payment_url': response.get('paymentUrl') or response.get('payment_url'),
                'qr_code_url': response.get('qrCodeUrl') or response.get('qr_code_url'),
                'qr_code_data': response.get('qrCodeData') or response.get('qr_code_data'),
                'expires_at': response.get('expiresAt') or response.get('expires_at'),
                'redirect_required': False,
            },
            gateway_response=response,
        )

    def _verify_payment(self, transaction_id: str) -> GatewayResponse:
        response = self._call('GET', f"/payments/{transaction_id}")
        return self._payment_response(response, transaction_id)

    def _process_callback(self, callback_data: Dict[str, Any]) -> GatewayResponse:
        response = self._payment_response(callback_data)
        payment_id = response.data.get('gateway_transaction_id')
        snapscan_status = callback_data.get('status', '')
        response.data['event_id'] = f"{payment_id}:{snapscan_status}" if payment_id else None
        response.data['event_type'] = f"payment.{str(snapscan_status).lower()}"
        return response

    def _payment_response(self, payload: Dict[str, Any], payment_id: Optional[str] = None) -> GatewayResponse:
        snapscan_status = payload.get('status', 'PENDING')
        status = self.map_status(snapscan_status)
        data = {
            'transaction_id': payload.get('reference', ''),
            'gateway_transaction_id': payload.get('id') or payload.get('transaction_id') or payment_id,
            'amount': payload.get('amount'),
            'currency': payload.get('currency'),
            'payment_method': 'snapscan_qr',
        }
        if status == 'failed':
            data['error_message'] = payload.get('failureReason') or payload.get('failure_reason') or 'Payment failed'

        return GatewayResponse(
            success=status == 'completed',
            status=status,
            message=f"SnapScan payment {snapscan_status}",
            data=data,
            gateway_response=dict(payload),
        )

    def _refund_payment(
        self, transaction_id: str, amount: Optional[Decimal], currency: Optional[str] = None
    ) -> GatewayResponse:
        body = {'paymentId': transaction_id, 'reason': 'Customer refund request'}
        if amount is not None:
            body['amount'] = f"{amount:.2f}"

        response = self._call('POST', '/refunds', body)
        refund_status = response.get('status', 'PENDING')

        return GatewayResponse(
            success=refund_status in ('SUCCESS', 'PENDING', 'REFUNDED'),
            status='completed' if refund_status in ('SUCCESS', 'REFUNDED') else self.map_status(refund_status),
            message=response.get('message', f"Refund {refund_status}"),
            data={
                'transaction_id': transaction_id,
                'refund_id': response.get('id') or response.get('refund_id'),
                'amount': response.get('amount') or (str(amount) if amount is not None else None),
            },
            gateway_response=response,
        )
