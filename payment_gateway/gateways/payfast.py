"""
PayFast payment gateway implementation.

PayFast payments are started by posting a signed form to PayFast's
checkout page. The final status arrives through an ITN (Instant
Transaction Notification) posted to our webhook.
"""

import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote_plus

from .base import BasePaymentGateway, GatewayResponse

logger = logging.getLogger(__name__)


class PayFastGateway(BasePaymentGateway):
    """
    PayFast gateway implementation.

    Form-based checkout with MD5 signatures over the sorted, url-encoded
    parameters (plus the optional passphrase).
    """

    name = 'payfast'
    display_name = 'PayFast'
    supported_currencies = ['ZAR']
    live_url = 'https://www.payfast.co.za'
    sandbox_url = 'https://sandbox.payfast.co.za'
    status_map = {
        'COMPLETE': 'completed',
        'PENDING': 'pending',
        'FAILED': 'failed',
        'CANCELLED': 'cancelled',
    }

    def get_default_config(self) -> Dict[str, Any]:
        return {
            **super().get_default_config(),
            'enabled': True,
            'merchant_id': '',
            'merchant_key': '',
            'passphrase': '',
            'return_url': '',
            'cancel_url': '',
            'notify_url': '',
            'payment_path': '/eng/process',
            'maximum_amount': '100000.00',
        }

    @property
    def payment_url(self) -> str:
        return f"{self.base_url}{self.config['payment_path']}"

    def generate_signature(self, data: Dict[str, Any]) -> str:
        """
        Build the PayFast MD5 signature.

        Empty values and any existing ``signature`` are dropped, keys are
        sorted and values url-encoded after trimming.
        """
        params = {
            key: value for key, value in data.items()
            if key != 'signature' and value not in ('', None)
        }
        param_string = '&'.join(
            f"{key}={quote_plus(str(params[key]).strip())}" for key in sorted(params)
        )
        passphrase = self.config.get('passphrase')
        if passphrase:
            param_string += f"&passphrase={quote_plus(passphrase.strip())}"
        return hashlib.md5(param_string.encode('utf-8')).hexdigest()

    def verify_webhook_signature(self, payload: bytes, headers: Mapping[str, str], params: Dict[str, Any]) -> bool:
        signature = params.get('signature')
        if not signature:
            return False
        return hmac.compare_digest(self.generate_signature(params), str(signature))

    def _initialize_payment(self, payment_data: Dict[str, Any]) -> GatewayResponse:
        self.validate_configuration('merchant_id', 'merchant_key')

        reference = payment_data.get('reference')
        customer = payment_data.get('customer') or {}
        form = {
            'merchant_id': self.config['merchant_id'],
            'merchant_key': self.config['merchant_key'],
            'return_url': payment_data.get('return_url') or self.config.get('return_url'),
            'cancel_url': payment_data.get('cancel_url') or self.config.get('cancel_url'),
            'notify_url': payment_data.get('notify_url') or self.config.get('notify_url'),
            'name_first': customer.get('first_name') or customer.get('name') or '',
            'name_last': customer.get('last_name') or '',
            'email_address': customer.get('email') or '',
            'cell_number': customer.get('phone') or '',
            'm_payment_id': reference,
            'amount': f"{Decimal(payment_data['amount']):.2f}",
            'item_name': payment_data.get('description') or 'Payment',
            'item_description': payment_data.get('item_description') or payment_data.get('description') or '',
        }
        form = {key: value for key, value in form.items() if value not in ('', None)}
        form['signature'] = self.generate_signature(form)

        logger.info(f"PayFast payment form built for {reference}")

        return GatewayResponse(
            success=True,
            status='pending',
            message='Payment initialized successfully',
            data={
                'transaction_id': reference,
                'gateway_transaction_id': None,
                'payment_url': self.payment_url,
                'payment_data': form,
                'method': 'POST',
                'redirect_required': True,
            },
        )

    def _verify_payment(self, transaction_id: str) -> GatewayResponse:
        # The ITN is authoritative; PayFast offers no lookup for once-off payments.
        return GatewayResponse(
            success=True,
            status='pending',
            message='Payment status will be updated via ITN',
            data={'transaction_id': transaction_id},
        )

    def _process_callback(self, callback_data: Dict[str, Any]) -> GatewayResponse:
        payment_status = callback_data.get('payment_status', '')
        status = self.map_status(payment_status)
        pf_payment_id = callback_data.get('pf_payment_id')

        return GatewayResponse(
            success=status == 'completed',
            status=status,
            message=f"PayFast payment {payment_status}",
            data={
                'transaction_id': callback_data.get('m_payment_id', ''),
                'gateway_transaction_id': pf_payment_id,
                'event_id': f"{pf_payment_id}:{payment_status}" if pf_payment_id else None,
                'event_type': f"payment.{payment_status.lower()}" if payment_status else 'payment',
                'amount': callback_data.get('amount_gross'),
                'fee_amount': self._negate_fee(callback_data.get('amount_fee')),
                'net_amount': callback_data.get('amount_net'),
                'customer': {
                    'first_name': callback_data.get('name_first', ''),
                    'last_name': callback_data.get('name_last', ''),
                    'email': callback_data.get('email_address', ''),
                },
            },
            gateway_response=dict(callback_data),
        )

    @staticmethod
    def _negate_fee(fee: Optional[str]) -> Optional[str]:
        # PayFast reports fees as negative numbers.
        if fee in (None, ''):
            return None
        return str(abs(Decimal(str(fee))))

    def _refund_payment(
        self, transaction_id: str, amount: Optional[Decimal], currency: Optional[str] = None
    ) -> GatewayResponse:
        logger.warning(f"PayFast refund requested for {transaction_id}; manual refund required")
        return GatewayResponse(
            success=False,
            status='manual_refund_required',
            message='PayFast refunds must be processed manually from the merchant dashboard',
            error_code='manual_refund_required',
            data={
                'transaction_id': transaction_id,
                'amount': str(amount) if amount is not None else None,
            },
        )
