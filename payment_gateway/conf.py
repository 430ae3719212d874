"""
Configuration access for the payment gateway app.

All settings live under the ``PAYMENT_GATEWAY`` dict in Django settings.
Values given there are merged over the defaults below, so a project only
needs to declare what it changes.
"""

import copy
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.cache import cache


DEFAULTS: Dict[str, Any] = {
    'default': 'payfast',
    'environment': 'production',
    'gateways': {
        'payfast': {
            'enabled': True,
            'merchant_id': '',
            'merchant_key': '',
            'passphrase': '',
            'test_mode': True,
            'return_url': '',
            'cancel_url': '',
            'notify_url': '',
        },
        'paystack': {
            'enabled': False,
            'public_key': '',
            'secret_key': '',
            'merchant_email': '',
            'callback_url': '',
            'test_mode': True,
        },
        'paypal': {
            'enabled': False,
            'client_id': '',
            'client_secret': '',
            'mode': 'sandbox',
            'webhook_id': '',
            'test_mode': True,
        },
        'stripe': {
            'enabled': False,
            'publishable_key': '',
            'secret_key': '',
            'webhook_secret': '',
            'test_mode': True,
        },
        'ozow': {
            'enabled': False,
            'site_code': '',
            'private_key': '',
            'api_key': '',
            'test_mode': True,
        },
        'zapper': {
            'enabled': False,
            'merchant_id': '',
            'site_id': '',
            'api_key': '',
            'api_secret': '',
            'test_mode': True,
        },
        'crypto': {
            'enabled': False,
            'provider': 'coinbase',
            'api_key': '',
            'api_secret': '',
            'webhook_secret': '',
            'currencies': ['BTC', 'ETH', 'USDT', 'USDC'],
            'test_mode': True,
        },
        'eft': {
            'enabled': False,
            'bank_name': '',
            'account_name': '',
            'account_number': '',
            'branch_code': '',
            'reference_prefix': 'LISO',
            'payment_window_hours': 24,
            'verification_code': '',
            'webhook_secret': '',
            'test_mode': True,
        },
        'vodapay': {
            'enabled': False,
            'merchant_id': '',
            'api_key': '',
            'api_secret': '',
            'test_mode': True,
        },
        'snapscan': {
            'enabled': False,
            'merchant_id': '',
            'api_key': '',
            'api_secret': '',
            'test_mode': True,
        },
    },
    'transaction': {
        'currency': 'ZAR',
        'decimal_places': 2,
        'min_amount': '1.00',
        'max_amount': '1000000.00',
        'default_description': 'Payment',
    },
    'webhooks': {
        'enabled': True,
        'signature_verification': True,
        'timeout': 30,
    },
    'security': {
        'rate_limit': 60,
        'rate_limit_period': 1,
        'ip_whitelist': [],
    },
    'notifications': {
        'email': True,
        'admin_email': '',
    },
    'recurring': {
        'grace_period_days': 3,
        'retry_attempts': 3,
        'retry_interval_hours': 24,
    },
    'logging': {
        'level': 'INFO',
    },
}


OVERRIDES_CACHE_KEY = 'payment_gateway:gateway_overrides'


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_config() -> Dict[str, Any]:
    """
    Return the full payment configuration with defaults applied.

    Gateway switches changed at runtime through the admin API are layered
    on top of the settings.
    """
    config = _merge(DEFAULTS, getattr(settings, 'PAYMENT_GATEWAY', {}))
    overrides = get_gateway_overrides()
    if overrides:
        config = _merge(config, {'gateways': overrides})
    return config


def get_gateway_overrides() -> Dict[str, Dict[str, Any]]:
    return cache.get(OVERRIDES_CACHE_KEY) or {}


def set_gateway_override(gateway_name: str, values: Dict[str, Any]) -> Dict[str, Any]:
    """
    Override ``enabled`` / ``test_mode`` for a gateway without a deploy.

    Overrides live in the default cache, so they are shared by every
    process using that cache and are lost when it is flushed.
    """
    name = gateway_name.lower().strip()
    overrides = get_gateway_overrides()
    overrides[name] = {**overrides.get(name, {}), **values}
    cache.set(OVERRIDES_CACHE_KEY, overrides, timeout=None)
    return overrides[name]


def clear_gateway_overrides():
    cache.delete(OVERRIDES_CACHE_KEY)


def get_section(name: str) -> Dict[str, Any]:
    return get_config().get(name, {})


def gateway_config(gateway_name: str) -> Optional[Dict[str, Any]]:
    """
    Get the configuration block for a single gateway.

    Returns None if the gateway has no configuration at all.
    """
    return get_config()['gateways'].get(gateway_name.lower().strip())


def default_gateway() -> str:
    return get_config().get('default', 'payfast')


def environment() -> str:
    return get_config().get('environment', 'production')
