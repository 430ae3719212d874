"""
Ozow (instant EFT) payment gateway implementation.
"""

import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

from .base import BasePaymentGateway, GatewayResponse

logger = logging.getLogger(__name__)


class OzowGateway(BasePaymentGateway):
    """
    Ozow gateway implementation.

    The payer is redirected to Ozow with a hash-signed request. Ozow posts
    the result back with a ``Hash`` field computed the same way.
    """

    name = 'ozow'
    display_name = 'Ozow'
    supported_currencies = ['ZAR']
    live_url = 'https://api.ozow.com'
    sandbox_url = 'https://api-sandbox.ozow.com'
    status_map = {
        'Complete': 'completed',
        'Pending': 'pending',
        'PendingInvestigation': 'pending',
        'Cancelled': 'cancelled',
        'Abandoned': 'cancelled',
        'Error': 'failed',
        'Failed': 'failed',
        'Expired': 'expired',
    }

    def get_default_config(self) -> Dict[str, Any]:
        return {
            **super().get_default_config(),
            'site_code': '',
            'private_key': '',
            'api_key': '',
            'success_url': '',
            'cancel_url': '',
            'error_url': '',
            'notify_url': '',
            'minimum_amount': '5.00',
            'maximum_amount': '100000.00',
        }

    def generate_hash(self, params: Dict[str, Any]) -> str:
        """HMAC-SHA512 of the sorted, url-encoded parameters (``Hash`` excluded)."""
        fields = sorted(
            (key, str(value)) for key, value in params.items()
            if key.lower() != 'hash' and value not in ('', None)
        )
        message = urlencode(fields)
        return hmac.new(
            self.config.get('private_key', '').encode('utf-8'),
            message.encode('utf-8'),
            hashlib.sha512,
        ).hexdigest()

    def verify_webhook_signature(self, payload: bytes, headers: Mapping[str, str], params: Dict[str, Any]) -> bool:
        received = params.get('Hash')
        if not received or not self.config.get('private_key'):
            return False
        return hmac.compare_digest(self.generate_hash(params), str(received).lower())

    def _initialize_payment(self, payment_data: Dict[str, Any]) -> GatewayResponse:
        self.validate_configuration('site_code', 'private_key')

        reference = payment_data.get('reference')
        customer = payment_data.get('customer') or {}
        request_data = {
            'SiteCode': self.config['site_code'],
            'CountryCode': 'ZA',
            'CurrencyCode': payment_data['currency'],
            'Amount': f"{Decimal(payment_data['amount']):.2f}",
            'TransactionReference': reference,
            'BankReference': (payment_data.get('bank_reference') or reference)[:20],
            'Customer': customer.get('email') or customer.get('name') or '',
            'CancelUrl': payment_data.get('cancel_url') or self.config.get('cancel_url'),
            'ErrorUrl': self.config.get('error_url') or payment_data.get('cancel_url'),
            'SuccessUrl': payment_data.get('return_url') or self.config.get('success_url'),
            'NotifyUrl': self.config.get('notify_url'),
            'IsTest': 'true' if self.test_mode else 'false',
        }
        request_data = {key: value for key, value in request_data.items() if value not in ('', None)}
        request_data['HashCheck'] = self.generate_hash(request_data)

        return GatewayResponse(
            success=True,
            status='pending',
            message='Ozow payment initialized successfully',
            data={
                'transaction_id': reference,
                'gateway_transaction_id': None,
                'payment_url': f"{self.base_url}/payment/request",
                'payment_data': request_data,
                'method': 'POST',
                'redirect_required': True,
            },
        )

    def _verify_payment(self, transaction_id: str) -> GatewayResponse:
        # Ozow reports the outcome through the notify URL only.
        return GatewayResponse(
            success=True,
            status='pending',
            message='Payment status will be updated via notification',
            data={'transaction_id': transaction_id},
        )

    def _process_callback(self, callback_data: Dict[str, Any]) -> GatewayResponse:
        ozow_status = callback_data.get('Status', '')
        status = self.map_status(ozow_status)
        transaction_id = callback_data.get('TransactionId')

        data = {
            'transaction_id': callback_data.get('TransactionReference', ''),
            'gateway_transaction_id': transaction_id,
            'event_id': f"{transaction_id}:{ozow_status}" if transaction_id else None,
            'event_type': f"payment.{ozow_status.lower()}" if ozow_status else 'payment',
            'amount': callback_data.get('Amount'),
            'currency': callback_data.get('CurrencyCode'),
            'payment_method': 'instant_eft',
        }
        if status == 'failed':
            data['error_message'] = callback_data.get('StatusMessage') or 'Payment failed'

        return GatewayResponse(
            success=status == 'completed',
            status=status,
            message=f"Ozow payment {ozow_status}",
            data=data,
            gateway_response=dict(callback_data),
        )

    def _refund_payment(
        self, transaction_id: str, amount: Optional[Decimal], currency: Optional[str] = None
    ) -> GatewayResponse:
        logger.warning(f"Ozow refund requested for {transaction_id}; manual refund required")
        return GatewayResponse(
            success=False,
            status='manual_refund_required',
            message='Refunds for Ozow must be processed manually through the Ozow dashboard',
            error_code='manual_refund_required',
            data={
                'transaction_id': transaction_id,
                'amount': str(amount) if amount is not None else None,
            },
        )
