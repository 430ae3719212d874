"""
Payment amount validation shared by the serializers and the views.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from rest_framework import serializers

from .conf import get_section
from .exceptions import PaymentGatewayException
from .gateways.factory import get_gateway


def amount_limits(gateway: Optional[str] = None) -> Tuple[Decimal, Decimal]:
    """
    Minimum and maximum payment amount.

    Global limits come from the ``transaction`` section. A gateway's own
    limits take precedence: ``minimum_amount`` / ``maximum_amount`` from its
    settings, else the ones its driver ships with (PayFast and Ozow cap
    payments, crypto accepts fractions of the global minimum).
    """
    if gateway:
        try:
            driver = get_gateway(gateway)
        except PaymentGatewayException:
            # Unsupported names are reported by the gateway field itself
            driver = None
        if driver is not None:
            return driver.minimum_amount, driver.maximum_amount

    transaction = get_section('transaction')
    minimum = Decimal(str(transaction.get('min_amount', '1.00')))
    maximum = Decimal(str(transaction.get('max_amount', '1000000.00')))
    return minimum, maximum


def validate_payment_amount(amount, gateway: Optional[str] = None) -> Decimal:
    """
    Validate a payment amount and return it as a Decimal.

    Raises:
        serializers.ValidationError: If the amount is not a number, is
            outside the configured limits or has more than 2 decimal places
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError):
        raise serializers.ValidationError('Payment amount must be a valid number')

    if not value.is_finite():
        raise serializers.ValidationError('Payment amount must be a valid number')

    minimum, maximum = amount_limits(gateway)

    if value < minimum:
        raise serializers.ValidationError(f"Payment amount must be at least {minimum}")
    if value > maximum:
        raise serializers.ValidationError(f"Payment amount cannot exceed {maximum}")
    if value.as_tuple().exponent < -2 and value != value.quantize(Decimal('0.01')):
        raise serializers.ValidationError('Payment amount cannot have more than 2 decimal places')

    return value
