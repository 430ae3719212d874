"""
Manual EFT (bank transfer) gateway.

No third-party API is involved: the payer receives our bank details and a
payment reference, and staff (or a bank reconciliation job) confirm the
deposit through the EFT callback with a verification code.
"""

import hmac
import logging
import secrets
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from django.utils import timezone

from .base import BasePaymentGateway, GatewayResponse

logger = logging.getLogger(__name__)


class EFTGateway(BasePaymentGateway):
    """Bank transfer payments confirmed out of band."""

    name = 'eft'
    display_name = 'EFT/Bank Transfer'
    supported_currencies = ['ZAR', 'USD', 'EUR', 'GBP']

    def get_default_config(self) -> Dict[str, Any]:
        return {
            **super().get_default_config(),
            'bank_name': '',
            'account_name': '',
            'account_number': '',
            'branch_code': '',
            'swift_code': '',
            'reference_prefix': 'LISO',
            'payment_window_hours': 24,
            'verification_code': '',
            'webhook_secret': '',
        }

    def payment_reference(self, reference: str) -> str:
        """Reference the payer quotes on the bank transfer."""
        return f"{self.config.get('reference_prefix') or ''}-{reference}".lstrip('-')

    def _strip_prefix(self, payment_reference: str) -> str:
        prefix = self.config.get('reference_prefix')
        if prefix and payment_reference.startswith(f"{prefix}-"):
            return payment_reference[len(prefix) + 1:]
        return payment_reference

    def get_bank_details(self) -> Dict[str, str]:
        return {
            'bank_name': self.config.get('bank_name', ''),
            'account_name': self.config.get('account_name', ''),
            'account_number': self.config.get('account_number', ''),
            'branch_code': self.config.get('branch_code', ''),
            'swift_code': self.config.get('swift_code', ''),
            'account_type': 'Current Account',
        }

    def _initialize_payment(self, payment_data: Dict[str, Any]) -> GatewayResponse:
        self.validate_configuration('account_name', 'account_number', 'branch_code')

        reference = payment_data.get('reference')
        window = int(self.config.get('payment_window_hours') or 24)
        expires_at = timezone.now() + timedelta(hours=window)
        bank_details = self.get_bank_details()
        amount = Decimal(payment_data['amount'])
        currency = payment_data['currency']

        instructions = {
            'steps': [
                'Log into your online banking',
                f"Add {bank_details['bank_name'] or 'our bank account'} as a beneficiary",
                'Use the beneficiary details below',
                'Use the payment reference exactly as shown',
                'Transfer the exact amount',
                'Keep proof of payment for verification',
            ],
            'payment_reference': self.payment_reference(reference),
            'payment_amount': {
                'amount': f"{amount:.2f}",
                'currency': currency,
                'formatted': f"{currency} {amount:,.2f}",
            },
            'important_notes': [
                f"Payment must be made within {window} hours",
                'Use the exact reference number provided',
                'International transfers may take longer',
            ],
        }

        logger.info(f"EFT payment instructions issued for {reference}")

        return GatewayResponse(
            success=True,
            status='pending',
            message='Please complete the bank transfer using the details provided',
            data={
                'transaction_id': reference,
                'gateway_transaction_id': None,
                'payment_url': None,
                'redirect_required': False,
                'bank_details': bank_details,
                'payment_instructions': instructions,
                'expires_at': expires_at.isoformat(),
            },
        )

    def _verify_payment(self, transaction_id: str) -> GatewayResponse:
        return GatewayResponse(
            success=False,
            status='pending',
            message='Payment is still pending manual verification',
            data={
                'transaction_id': transaction_id,
                'action_required': 'manual_verification',
            },
        )

    def _process_callback(self, callback_data: Dict[str, Any]) -> GatewayResponse:
        reference = self._strip_prefix(str(callback_data.get('reference') or ''))
        amount = callback_data.get('amount')
        code = str(callback_data.get('verification_code') or '')

        if not reference or not amount:
            return GatewayResponse(
                success=False,
                status='pending',
                message='Missing required parameters',
                error_code='missing_parameters',
                data={'transaction_id': reference},
            )

        expected = str(self.config.get('verification_code') or '')
        data = {
            'transaction_id': reference,
            'gateway_transaction_id': callback_data.get('bank_reference'),
            'event_id': f"{reference}:{callback_data.get('bank_reference') or code}",
            'event_type': 'eft.verification',
            'amount': str(amount),
            'payment_method': 'bank_transfer',
        }

        if expected and hmac.compare_digest(expected, code):
            return GatewayResponse(
                success=True,
                status='completed',
                message='Payment verified successfully',
                data=data,
                gateway_response=dict(callback_data),
            )

        return GatewayResponse(
            success=False,
            status='pending',
            message='Verification failed. Please check the verification code.',
            error_code='verification_failed',
            data=data,
            gateway_response=dict(callback_data),
        )

    def _refund_payment(
        self, transaction_id: str, amount: Optional[Decimal], currency: Optional[str] = None
    ) -> GatewayResponse:
        refund_reference = f"REF-{transaction_id}-{secrets.token_hex(3).upper()}"
        return GatewayResponse(
            success=True,
            status='pending',
            message='Refund initiated. Please allow 3-5 business days for processing.',
            data={
                'transaction_id': transaction_id,
                'refund_id': refund_reference,
                'amount': str(amount) if amount is not None else None,
                'estimated_completion': (timezone.now() + timedelta(days=3)).isoformat(),
            },
        )
