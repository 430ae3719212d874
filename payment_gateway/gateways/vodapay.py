"""
VodaPay wallet gateway implementation.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from .base import BasePaymentGateway, GatewayResponse, json_dumps

logger = logging.getLogger(__name__)


class VodaPayGateway(BasePaymentGateway):
    """
    VodaPay gateway implementation.

    Requests are signed with the API secret (see ``_signed_headers``) and
    the payer approves the payment in the VodaPay app or on the hosted
    page.
    """

    name = 'vodapay'
    display_name = 'VodaPay'
    supported_currencies = ['ZAR']
    live_url = 'https://api.vodapay.co.za'
    sandbox_url = 'https://sandbox-api.vodapay.co.za'
    api_path = '/v1/payments'
    signature_header = 'X-VodaPay-Signature'
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
            'expiry_minutes': 15,
        }

    def _call(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.validate_configuration('merchant_id', 'api_key', 'api_secret')
        full_path = f"{self.api_path}{path}"
        headers = {
            'Content-Type': 'application/json',
            'X-Merchant-ID': str(self.config['merchant_id']),
            'X-API-Key': self.config['api_key'],
            **self._signed_headers(method, full_path, body),
        }
        # Send the exact bytes that were signed
        return self._request(
            method,
            full_path,
            data=json_dumps(body) if body else None,
            headers=headers,
        )

    def _initialize_payment(self, payment_data: Dict[str, Any]) -> GatewayResponse:
        reference = payment_data.get('reference')
        customer = payment_data.get('customer') or {}
        body = {
            'merchant_id': self.config.get('merchant_id'),
            'reference': reference,
            'amount': f"{Decimal(payment_data['amount']):.2f}",
            'currency': payment_data['currency'],
            'description': payment_data.get('description') or 'Payment',
            'customer': {
                'msisdn': customer.get('phone'),
                'email': customer.get('email'),
                'name': customer.get('name'),
            },
            'callback_url': self.config.get('callback_url') or None,
            'return_url': payment_data.get('return_url') or self.config.get('return_url') or None,
            'cancel_url': payment_data.get('cancel_url') or self.config.get('cancel_url') or None,
            'metadata': payment_data.get('metadata') or {},
            'payment_method': payment_data.get('payment_method') or 'vodapay_wallet',
            'expiry_minutes': self.config.get('expiry_minutes', 15),
        }

        response = self._call('POST', '/initiate', body)

        return GatewayResponse(
            success=bool(response.get('transaction_id')),
            status=self.map_status(response.get('status', 'INITIATED')),
            message='VodaPay payment initialized successfully',
            data={
                'transaction_id': reference,
                'gateway_transaction_id': response.get('transaction_id'),
                'payment_url': response.get('payment_url'),
                'qr_code': response.get('qr_code'),
                'deep_link': response.get('deep_link'),
                'expires_at': response.get('expires_at'),
                'redirect_required': bool(response.get('payment_url')),
            },
            gateway_response=response,
        )

    def _verify_payment(self, transaction_id: str) -> GatewayResponse:
        response = self._call('GET', f"/status/{transaction_id}")
        return self._payment_response(response, transaction_id)

    def _process_callback(self, callback_data: Dict[str, Any]) -> GatewayResponse:
        response = self._payment_response(callback_data)
        gateway_id = response.data.get('gateway_transaction_id')
        vodapay_status = callback_data.get('status', '')
        response.data['event_id'] = callback_data.get('event_id') or (
            f"{gateway_id}:{vodapay_status}" if gateway_id else None
        )
        response.data['event_type'] = f"payment.{str(vodapay_status).lower()}"
        return response

    def _payment_response(self, payload: Dict[str, Any], transaction_id: Optional[str] = None) -> GatewayResponse:
        vodapay_status = payload.get('status', 'PENDING')
        status = self.map_status(vodapay_status)
        data = {
            'transaction_id': payload.get('reference', ''),
            'gateway_transaction_id': payload.get('transaction_id') or transaction_id,
            'amount': payload.get('amount'),
            'currency': payload.get('currency'),
            'payment_method': payload.get('payment_method') or 'vodapay_wallet',
        }
        if status == 'failed':
            data['error_message'] = payload.get('failure_reason') or 'Payment failed'
            data['error_code'] = payload.get('error_code')

        return GatewayResponse(
            success=status == 'completed',
            status=status,
            message=f"VodaPay payment {vodapay_status}",
            data=data,
            gateway_response=dict(payload),
        )

    def _refund_payment(
        self, transaction_id: str, amount: Optional[Decimal], currency: Optional[str] = None
    ) -> GatewayResponse:
        body = {
            'transaction_id': transaction_id,
            'reason': 'Customer refund request',
        }
        if amount is not None:
            body['amount'] = f"{amount:.2f}"

        response = self._call('POST', '/refund', body)
        refund_status = response.get('status', 'PENDING')

        logger.info(f"VodaPay refund {refund_status} for {transaction_id}")

        return GatewayResponse(
            success=refund_status in ('SUCCESS', 'PENDING', 'REFUNDED'),
            status='completed' if refund_status in ('SUCCESS', 'REFUNDED') else self.map_status(refund_status),
            message=response.get('message', f"Refund {refund_status}"),
            data={
                'transaction_id': transaction_id,
                'refund_id': response.get('refund_id'),
                'amount': response.get('amount') or (str(amount) if amount is not None else None),
            },
            gateway_response=response,
        )
