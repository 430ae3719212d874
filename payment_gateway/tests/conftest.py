import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from payment_gateway.tests.utils import TEST_PAYMENT_GATEWAY

User = get_user_model()


@pytest.fixture(autouse=True)
def clear_cache():
    """Throttle counters and gateway overrides live in the cache."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def payment_config(settings):
    settings.PAYMENT_GATEWAY = TEST_PAYMENT_GATEWAY
    return settings.PAYMENT_GATEWAY


@pytest.fixture
def user(db):
    return User.objects.create_user(
        username='customer',
        email='customer@example.com',
        password='testpass123'
    )


@pytest.fixture
def staff_user(db):
    return User.objects.create_user(
        username='staff',
        email='staff@example.com',
        password='testpass123',
        is_staff=True
    )


@pytest.fixture
def api_client():
    return APIClient()
