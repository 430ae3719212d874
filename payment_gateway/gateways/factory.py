"""
Payment gateway factory.

Provides a centralized way to get payment gateway instances based on configuration.
New gateways are added by registering their class; business logic never
imports a driver directly.
"""

from typing import Any, Dict, List, Optional, Type

from ..conf import default_gateway, gateway_config
from ..exceptions import PaymentGatewayException
from .base import BasePaymentGateway
from .crypto import CryptoGateway
from .eft import EFTGateway
from .ozow import OzowGateway
from .payfast import PayFastGateway
from .paypal import PayPalGateway
from .paystack import PayStackGateway
from .snapscan import SnapScanGateway
from .stripe_gateway import StripeGateway
from .vodapay import VodaPayGateway
from .zapper import ZapperGateway


# Gateway registry - maps gateway names to their classes
GATEWAY_REGISTRY: Dict[str, Type[BasePaymentGateway]] = {
    'payfast': PayFastGateway,
    'paystack': PayStackGateway,
    'paypal': PayPalGateway,
    'stripe': StripeGateway,
    'ozow': OzowGateway,
    'zapper': ZapperGateway,
    'crypto': CryptoGateway,
    'eft': EFTGateway,
    'vodapay': VodaPayGateway,
    'snapscan': SnapScanGateway,
}


def get_gateway(gateway_name: Optional[str] = None, config: Optional[Dict[str, Any]] = None) -> BasePaymentGateway:
    """
    Get a payment gateway instance.

    Args:
        gateway_name: Name of the gateway ('payfast', 'stripe', etc.)
                     If None, uses the configured default gateway
        config: Configuration to use instead of the one from settings

    Returns:
        Configured payment gateway instance

    Raises:
        PaymentGatewayException: If gateway is not supported

    Example:
        >>> gateway = get_gateway('paystack')
        >>> response = gateway.verify_payment('TXN-1700000000-A1B2C3')
    """
    if gateway_name is None:
        gateway_name = default_gateway()

    gateway_name = gateway_name.lower().strip()

    if gateway_name not in GATEWAY_REGISTRY:
        supported = ', '.join(GATEWAY_REGISTRY.keys())
        raise PaymentGatewayException(
            f"Unsupported payment gateway: {gateway_name}. Supported gateways: {supported}",
            gateway=gateway_name,
            error_code='unsupported_gateway',
            error_type='availability_error',
        )

    if config is None:
        config = gateway_config(gateway_name) or {}

    return GATEWAY_REGISTRY[gateway_name](config)


def register_gateway(name: str, gateway_class: type):
    """
    Register a new payment gateway.

    Allows adding custom payment gateways at runtime.

    Args:
        name: Gateway identifier (e.g., 'custom_gateway')
        gateway_class: Gateway class that extends BasePaymentGateway

    Example:
        >>> from myapp.gateways import CustomGateway
        >>> register_gateway('custom', CustomGateway)
    """
    if not isinstance(gateway_class, type) or not issubclass(gateway_class, BasePaymentGateway):
        raise PaymentGatewayException(
            "Gateway class must extend BasePaymentGateway",
            gateway=name,
            error_code='invalid_gateway_class',
        )

    GATEWAY_REGISTRY[name.lower().strip()] = gateway_class


def list_available_gateways() -> List[str]:
    """
    List all registered payment gateways.

    Returns:
        List of gateway names
    """
    return list(GATEWAY_REGISTRY.keys())
