"""
Payment gateway abstraction layer.

Provides a unified interface over PayFast, PayStack, PayPal, Stripe, Ozow,
Zapper, Coinbase Commerce, manual EFT, VodaPay and SnapScan.
"""

from .base import BasePaymentGateway, GatewayResponse
from .crypto import CryptoGateway
from .eft import EFTGateway
from .factory import GATEWAY_REGISTRY, get_gateway, list_available_gateways, register_gateway
from .ozow import OzowGateway
from .payfast import PayFastGateway
from .paypal import PayPalGateway
from .paystack import PayStackGateway
from .snapscan import SnapScanGateway
from .stripe_gateway import StripeGateway
from .vodapay import VodaPayGateway
from .zapper import ZapperGateway

__all__ = [
    'BasePaymentGateway',
    'GatewayResponse',
    'GATEWAY_REGISTRY',
    'CryptoGateway',
    'EFTGateway',
    'OzowGateway',
    'PayFastGateway',
    'PayPalGateway',
    'PayStackGateway',
    'SnapScanGateway',
    'StripeGateway',
    'VodaPayGateway',
    'ZapperGateway',
    'get_gateway',
    'register_gateway',
    'list_available_gateways',
]
