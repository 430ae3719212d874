"""
Shared test configuration and factories for the payment_gateway tests.
"""

import copy
import hashlib
import hmac
from decimal import Decimal

from django.contrib.contenttypes.models import ContentType

from payment_gateway.models import Subscription, Transaction


TEST_PAYMENT_GATEWAY = {
    'default': 'eft',
    'environment': 'testing',
    'gateways': {
        'payfast': {
            'enabled': True,
            'merchant_id': '10000100',
            'merchant_key': '46f0cd694581a',
            'passphrase': 'jt7NOE43FZPn',
            'test_mode': True,
        },
        'paystack': {
            'enabled': True,
            'public_key': 'pk_test_public',
            'secret_key': 'sk_test_secret',
            'test_mode': True,
        },
        'stripe': {
            'enabled': True,
            'publishable_key': 'pk_test_stripe',
            'secret_key': 'sk_test_stripe',
            'webhook_secret': 'whsec_test',
            'test_mode': True,
        },
        'ozow': {
            'enabled': True,
            'site_code': 'TST-TST-001',
            'private_key': 'ozow_private_key',
            'api_key': 'ozow_api_key',
            'test_mode': True,
        },
        'crypto': {
            'enabled': True,
            'api_key': 'cc_api_key',
            'webhook_secret': 'cc_webhook_secret',
            'test_mode': True,
        },
        'eft': {
            'enabled': True,
            'bank_name': 'First National Bank',
            'account_name': 'Liso Payments',
            'account_number': '62000000000',
            'branch_code': '250655',
            'reference_prefix': 'LISO',
            'verification_code': 'VERIFY-123',
            'webhook_secret': 'eft_webhook_secret',
            'test_mode': True,
        },
    },
    'notifications': {
        'email': True,
        'admin_email': 'billing@example.com',
    },
}

EFT_WEBHOOK_SECRET = TEST_PAYMENT_GATEWAY['gateways']['eft']['webhook_secret']


def payment_settings(**sections):
    """TEST_PAYMENT_GATEWAY with some sections replaced or extended."""
    config = copy.deepcopy(TEST_PAYMENT_GATEWAY)
    for key, value in sections.items():
        if isinstance(value, dict) and isinstance(config.get(key), dict):
            config[key].update(value)
        else:
            config[key] = value
    return config


def sign_body(body: bytes, secret: str = EFT_WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode('utf-8'), body, hashlib.sha256).hexdigest()


def make_transaction(owner=None, **kwargs) -> Transaction:
    values = {
        'gateway': 'eft',
        'amount': Decimal('100.00'),
        'currency': 'ZAR',
        'status': 'pending',
        'description': 'Test payment',
        'customer_email': 'customer@example.com',
        'customer_name': 'Test Customer',
    }
    values.update(kwargs)
    if owner is not None:
        values['user_type'] = ContentType.objects.get_for_model(owner)
        values['user_id'] = str(owner.pk)
    return Transaction.objects.create(**values)


def make_subscription(owner=None, **kwargs) -> Subscription:
    values = {
        'gateway': 'paystack',
        'amount': Decimal('99.00'),
        'currency': 'ZAR',
        'status': 'active',
        'frequency': 'monthly',
        'description': 'Pro plan',
        'customer_email': 'customer@example.com',
    }
    values.update(kwargs)
    if owner is not None:
        values['user_type'] = ContentType.objects.get_for_model(owner)
        values['user_id'] = str(owner.pk)
    return Subscription.objects.create(**values)
