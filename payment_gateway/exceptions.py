"""
Exceptions raised by the payment gateway layer.

A single exception type carries structured error details. Named
constructors exist for each failure category so callers (and the JSON
error envelopes built from ``to_dict``) can tell failures apart.
"""

from typing import Any, Dict, Optional


class PaymentGatewayException(Exception):
    """
    Raised when a gateway operation fails.

    Attributes:
        message: Human-readable error message
        errors: Field or detail level errors
        gateway: Gateway the failure happened on
        transaction_id: Reference or gateway transaction ID involved
        error_code: Machine-readable error code
        type: Failure category (e.g. 'refund_error', 'security_error')
    """

    def __init__(
        self,
        message: str,
        errors: Optional[Dict[str, Any]] = None,
        gateway: Optional[str] = None,
        transaction_id: Optional[str] = None,
        error_code: Optional[str] = None,
        error_type: Optional[str] = None,
    ):
        self.message = message
        self.errors = dict(errors or {})
        self.gateway = gateway
        self.transaction_id = transaction_id
        self.error_code = error_code
        self.type = error_type
        super().__init__(self.message)

    def add_error(self, key: str, value: Any) -> 'PaymentGatewayException':
        self.errors[key] = value
        return self

    def has_errors(self) -> bool:
        return bool(self.errors)

    def get_errors(self) -> Dict[str, Any]:
        return self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'errors': self.errors,
            'gateway': self.gateway,
            'transaction_id': self.transaction_id,
            'error_code': self.error_code,
            'type': self.type,
        }

    # Named constructors

    @classmethod
    def invalid_configuration(cls, gateway: str, message: str = 'Invalid configuration', errors=None):
        return cls(
            f"Invalid configuration for {gateway}: {message}",
            errors=errors,
            gateway=gateway,
            error_code='invalid_configuration',
            error_type='configuration_error',
        )

    @classmethod
    def payment_initialization_failed(cls, gateway: str, message: str, errors=None):
        return cls(
            f"Payment initialization failed for {gateway}: {message}",
            errors=errors,
            gateway=gateway,
            error_code='initialization_failed',
            error_type='initialization_error',
        )

    @classmethod
    def payment_verification_failed(cls, gateway: str, transaction_id: str, message: str, errors=None):
        return cls(
            f"Payment verification failed for {gateway} (transaction {transaction_id}): {message}",
            errors=errors,
            gateway=gateway,
            transaction_id=transaction_id,
            error_code='verification_failed',
            error_type='verification_error',
        )

    @classmethod
    def callback_processing_failed(cls, gateway: str, message: str, errors=None):
        return cls(
            f"Callback processing failed for {gateway}: {message}",
            errors=errors,
            gateway=gateway,
            error_code='callback_failed',
            error_type='callback_error',
        )

    @classmethod
    def refund_failed(cls, gateway: str, transaction_id: str, message: str, errors=None):
        return cls(
            f"Refund failed for {gateway} (transaction {transaction_id}): {message}",
            errors=errors,
            gateway=gateway,
            transaction_id=transaction_id,
            error_code='refund_failed',
            error_type='refund_error',
        )

    @classmethod
    def invalid_signature(cls, gateway: str, message: str = 'Invalid signature'):
        return cls(
            f"Invalid signature for {gateway}: {message}",
            gateway=gateway,
            error_code='invalid_signature',
            error_type='security_error',
        )

    @classmethod
    def unsupported_currency(cls, gateway: str, currency: str):
        return cls(
            f"Currency {currency} is not supported by {gateway}",
            errors={'currency': currency},
            gateway=gateway,
            error_code='invalid_currency',
            error_type='currency_error',
        )

    @classmethod
    def invalid_amount(cls, gateway: str, amount: Any, message: Optional[str] = None):
        return cls(
            message or f"Invalid amount {amount} for {gateway}",
            errors={'amount': str(amount)},
            gateway=gateway,
            error_code='invalid_amount',
            error_type='amount_error',
        )

    @classmethod
    def gateway_not_available(cls, gateway: str):
        return cls(
            f"Payment gateway '{gateway}' is not available",
            gateway=gateway,
            error_code='gateway_not_available',
            error_type='availability_error',
        )

    @classmethod
    def network_error(cls, gateway: str, message: str):
        return cls(
            f"Network error communicating with {gateway}: {message}",
            gateway=gateway,
            error_code='network_error',
            error_type='network_error',
        )
