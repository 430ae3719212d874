"""
Base classes for payment gateway abstraction.

This module defines the interface that all payment gateways implement,
so views and services can initialize, verify, refund and reconcile
payments without knowing which provider is behind them.
"""

import hashlib
import hmac
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

import requests

from ..conf import get_section
from ..exceptions import PaymentGatewayException

logger = logging.getLogger(__name__)


def json_dumps(data) -> str:
    return json.dumps(data, separators=(',', ':'), sort_keys=True, default=str)


@dataclass
class GatewayResponse:
    """
    Standardized response from payment gateway operations.

    Attributes:
        success: Whether the operation succeeded
        data: Normalized response data (transaction_id, payment_url, ...)
        status: Transaction status the gateway reported, mapped onto our statuses
        message: Human-readable message
        error_code: Machine-readable error code when the operation failed
        gateway_response: Raw gateway response for debugging and logging
    """
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    status: Optional[str] = None
    message: Optional[str] = None
    error_code: Optional[str] = None
    gateway_response: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'status': self.status,
            'message': self.message,
            'error_code': self.error_code,
            **self.data,
        }


class BasePaymentGateway(ABC):
    """
    Abstract base class for payment gateway implementations.

    Subclasses implement the ``_initialize_payment``, ``_verify_payment``,
    ``_process_callback`` and ``_refund_payment`` hooks. The public methods
    wrap them with validation and consistent error reporting.
    """

    name: str = ''
    display_name: str = ''
    supported_currencies: List[str] = []
    required_fields: List[str] = ['amount']
    live_url: str = ''
    sandbox_url: str = ''
    status_map: Dict[str, str] = {}
    signature_header: str = 'X-Signature'

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the payment gateway.

        Args:
            config: Gateway configuration (credentials, test_mode, limits).
                    Merged over the gateway defaults.
        """
        self.config = {**self.get_default_config(), **(config or {})}
        self.session = requests.Session()
        self.session.headers.update(self.get_default_headers())

    def get_default_config(self) -> Dict[str, Any]:
        return {
            'enabled': False,
            'test_mode': True,
            'timeout': 30,
        }

    def get_default_headers(self) -> Dict[str, str]:
        return {
            'User-Agent': 'django-payment-gateway',
            'Accept': 'application/json',
        }

    # Configuration

    @property
    def test_mode(self) -> bool:
        return bool(self.config.get('test_mode', True))

    @property
    def base_url(self) -> str:
        return self.sandbox_url if self.test_mode else self.live_url

    def lookup_id(self, reference: str, gateway_transaction_id: Optional[str] = None) -> str:
        """ID to use when asking the gateway about a stored transaction."""
        return gateway_transaction_id or reference

    def is_available(self) -> bool:
        return bool(self.config.get('enabled', False))

    def get_supported_currencies(self) -> List[str]:
        return list(self.supported_currencies)

    def supports_currency(self, currency: str) -> bool:
        return (currency or '').upper() in self.get_supported_currencies()

    def _amount_limit(self, key: str, global_key: str, default: str) -> Decimal:
        value = self.config.get(key)
        if value in (None, ''):
            # No limit of its own: the global transaction limit applies
            value = get_section('transaction').get(global_key, default)
        return Decimal(str(value))

    @property
    def minimum_amount(self) -> Decimal:
        return self._amount_limit('minimum_amount', 'min_amount', '1.00')

    @property
    def maximum_amount(self) -> Decimal:
        return self._amount_limit('maximum_amount', 'max_amount', '1000000.00')

    def validate_amount(self, amount) -> Decimal:
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, TypeError, ValueError):
            raise PaymentGatewayException.invalid_amount(self.name, amount)

        if value < self.minimum_amount:
            raise PaymentGatewayException.invalid_amount(
                self.name, amount, f"Amount must be at least {self.minimum_amount}"
            )
        if value > self.maximum_amount:
            raise PaymentGatewayException.invalid_amount(
                self.name, amount, f"Amount cannot exceed {self.maximum_amount}"
            )
        return value

    def validate_configuration(self, *keys: str):
        """Raise if any of the given credential keys are empty."""
        missing = [key for key in keys if not self.config.get(key)]
        if missing:
            raise PaymentGatewayException.invalid_configuration(
                self.name,
                f"Missing {', '.join(missing)}",
                errors={key: 'required' for key in missing},
            )

    def map_status(self, gateway_status: Optional[str]) -> str:
        """Map a vendor status onto a Transaction status; unknown values stay pending."""
        if gateway_status is None:
            return 'pending'
        return self.status_map.get(str(gateway_status), self.status_map.get(str(gateway_status).lower(), 'pending'))

    # Payment operations

    def initialize_payment(self, payment_data: Dict[str, Any]) -> GatewayResponse:
        """
        Start a payment with the gateway.

        Args:
            payment_data: Dict with amount, currency, reference, description and
                          a ``customer`` dict (email, name, phone)

        Returns:
            GatewayResponse with transaction_id and payment_url (or instructions) in data

        Raises:
            PaymentGatewayException: If validation or the gateway call fails
        """
        errors = {
            key: f"The {key} field is required"
            for key in self.required_fields
            if payment_data.get(key) in (None, '')
        }
        if errors:
            raise PaymentGatewayException.payment_initialization_failed(
                self.name, 'Invalid payment data', errors=errors
            )

        payment_data = dict(payment_data)
        payment_data['currency'] = (payment_data.get('currency') or self.config.get('currency', 'ZAR')).upper()
        if not self.supports_currency(payment_data['currency']):
            raise PaymentGatewayException.unsupported_currency(self.display_name, payment_data['currency'])
        payment_data['amount'] = self.validate_amount(payment_data['amount'])

        try:
            return self._initialize_payment(payment_data)
        except PaymentGatewayException:
            raise
        except Exception as e:
            logger.error(f"{self.name} initialization error: {str(e)}", exc_info=True)
            raise PaymentGatewayException.payment_initialization_failed(self.name, str(e))

    def verify_payment(self, transaction_id: str) -> GatewayResponse:
        if not transaction_id:
            raise PaymentGatewayException.payment_verification_failed(
                self.name, '', 'Transaction ID is required'
            )
        try:
            return self._verify_payment(transaction_id)
        except PaymentGatewayException:
            raise
        except Exception as e:
            logger.error(f"{self.name} verification error: {str(e)}", exc_info=True)
            raise PaymentGatewayException.payment_verification_failed(self.name, transaction_id, str(e))

    def process_callback(self, callback_data: Dict[str, Any]) -> GatewayResponse:
        """
        Normalize a webhook/ITN payload.

        Signature checks happen before this is called; see
        ``verify_webhook_signature``.

        Returns:
            GatewayResponse whose data holds transaction_id (our reference),
            gateway_transaction_id and event_id
        """
        try:
            return self._process_callback(callback_data)
        except PaymentGatewayException:
            raise
        except Exception as e:
            logger.error(f"{self.name} callback error: {str(e)}", exc_info=True)
            raise PaymentGatewayException.callback_processing_failed(self.name, str(e))

    def refund_payment(self, transaction_id: str, amount=None, currency: Optional[str] = None) -> GatewayResponse:
        """
        Refund a payment in full, or partially when ``amount`` is given.

        Args:
            transaction_id: Gateway transaction (or capture) ID to refund
            amount: Amount to refund, None for the full amount
            currency: Currency of the original payment
        """
        if not transaction_id:
            raise PaymentGatewayException.refund_failed(self.name, '', 'Transaction ID is required')
        amount = None if amount is None else Decimal(str(amount))
        try:
            return self._refund_payment(transaction_id, amount, currency)
        except PaymentGatewayException:
            raise
        except Exception as e:
            logger.error(f"{self.name} refund error: {str(e)}", exc_info=True)
            raise PaymentGatewayException.refund_failed(self.name, transaction_id, str(e))

    def get_payment_status(self, transaction_id: str) -> str:
        try:
            return self.verify_payment(transaction_id).status or 'pending'
        except Exception as e:
            logger.warning(f"Could not fetch {self.name} status for {transaction_id}: {str(e)}")
            return 'error'

    def is_payment_successful(self, transaction_id: str) -> bool:
        return self.get_payment_status(transaction_id) in ('completed', 'authorized')

    @abstractmethod
    def _initialize_payment(self, payment_data: Dict[str, Any]) -> GatewayResponse:
        pass

    @abstractmethod
    def _verify_payment(self, transaction_id: str) -> GatewayResponse:
        pass

    @abstractmethod
    def _process_callback(self, callback_data: Dict[str, Any]) -> GatewayResponse:
        pass

    @abstractmethod
    def _refund_payment(
        self, transaction_id: str, amount: Optional[Decimal], currency: Optional[str] = None
    ) -> GatewayResponse:
        pass

    # Subscriptions

    def create_subscription(self, subscription_data: Dict[str, Any]) -> GatewayResponse:
        raise PaymentGatewayException(
            f"Subscriptions are not supported by {self.display_name}",
            gateway=self.name,
            error_code='not_supported',
        )

    def cancel_subscription(self, subscription_id: str) -> GatewayResponse:
        raise PaymentGatewayException(
            f"Subscriptions are not supported by {self.display_name}",
            gateway=self.name,
            error_code='not_supported',
        )

    # Webhooks

    def get_signature(self, headers: Mapping[str, str], params: Dict[str, Any]) -> str:
        return headers.get(self.signature_header, '') or ''

    def verify_webhook_signature(self, payload: bytes, headers: Mapping[str, str], params: Dict[str, Any]) -> bool:
        """
        Verify a webhook signature to ensure the request came from the gateway.

        The default scheme is HMAC-SHA256 over the raw body with the API
        secret (or webhook secret). When an ``X-Timestamp`` header is sent,
        the timestamp is prepended to the body before signing. Unsigned
        requests are only accepted in test mode.

        Args:
            payload: Raw webhook body
            headers: Request headers (case-insensitive mapping)
            params: Parsed body (form or JSON)

        Returns:
            True if signature is valid, False otherwise
        """
        signature = self.get_signature(headers, params)
        secret = self.config.get('api_secret') or self.config.get('webhook_secret')

        if not signature or not secret:
            return self.test_mode

        timestamp = headers.get('X-Timestamp')
        message = timestamp.encode('utf-8') + payload if timestamp else payload
        expected = hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)

    # HTTP

    def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        auth=None,
        data=None,
    ) -> Dict[str, Any]:
        """
        Call the gateway's REST API and return the decoded JSON body.

        Raises:
            PaymentGatewayException: network_error on timeouts and connection
                failures; a plain exception carrying the vendor error otherwise
        """
        url = path if path.startswith('http') else f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                json=json,
                params=params,
                data=data,
                headers=headers,
                auth=auth,
                timeout=self.config.get('timeout', 30),
            )
            response.raise_for_status()
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.warning(
                f"{self.name} API unreachable",
                extra={'url': url, 'error': str(e)}
            )
            raise PaymentGatewayException.network_error(self.name, str(e))
        except requests.HTTPError as e:
            body = self._safe_json(e.response)
            logger.warning(
                f"{self.name} API returned an error",
                extra={'url': url, 'status_code': e.response.status_code, 'body': body}
            )
            raise PaymentGatewayException(
                f"{self.display_name} API error ({e.response.status_code})",
                errors=body,
                gateway=self.name,
                error_code=str(body.get('code') or body.get('error') or 'api_error') if isinstance(body, dict) else 'api_error',
            )

        return self._safe_json(response)

    def _signed_headers(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
        """
        Request signing used by the wallet APIs: HMAC-SHA256 over method,
        path, JSON body and timestamp, keyed with the API secret.
        """
        timestamp = str(int(time.time()))
        message = f"{method.upper()}{path}{json_dumps(body) if body else ''}{timestamp}"
        signature = hmac.new(
            (self.config.get('api_secret') or '').encode('utf-8'),
            message.encode('utf-8'),
            hashlib.sha256,
        ).hexdigest()
        return {
            'X-Timestamp': timestamp,
            'X-Signature': signature,
        }

    @staticmethod
    def _safe_json(response) -> Dict[str, Any]:
        if response is None or not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {'raw': response.text}

    @staticmethod
    def to_minor_units(amount) -> int:
        """Convert an amount to cents/kobo."""
        return int((Decimal(str(amount)) * 100).quantize(Decimal('1')))

    @staticmethod
    def from_minor_units(value) -> Decimal:
        return (Decimal(str(value or 0)) / 100).quantize(Decimal('0.01'))
