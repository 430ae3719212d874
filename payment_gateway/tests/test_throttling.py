"""
Tests for payment rate limiting.

Tests for:
- IP whitelist matching (exact addresses and CIDR ranges)
- Requests over the configured limit are rejected with 429
- Whitelisted clients are never throttled
"""
import pytest
from django.urls import reverse
from rest_framework import status

from payment_gateway.tests.utils import payment_settings
from payment_gateway.throttling import ip_is_whitelisted


class TestIpIsWhitelisted:
    def test_exact_match(self):
        assert ip_is_whitelisted('41.0.0.5', ['41.0.0.5'])
        assert not ip_is_whitelisted('41.0.0.6', ['41.0.0.5'])

    def test_cidr_range(self):
        whitelist = ['196.33.227.0/24', '10.0.0.0/8']

        assert ip_is_whitelisted('196.33.227.224', whitelist)
        assert ip_is_whitelisted('10.20.30.40', whitelist)
        assert not ip_is_whitelisted('196.33.228.1', whitelist)

    def test_ipv6(self):
        assert ip_is_whitelisted('2001:db8::1', ['2001:db8::/32'])

    def test_empty_or_invalid(self):
        assert not ip_is_whitelisted('', ['10.0.0.0/8'])
        assert not ip_is_whitelisted('10.0.0.1', [])
        assert not ip_is_whitelisted('not-an-ip', ['10.0.0.0/8'])

    def test_invalid_entries_are_skipped(self):
        assert ip_is_whitelisted('10.0.0.1', ['garbage', '10.0.0.1'])


@pytest.mark.django_db
class TestPaymentRateThrottle:
    """Test the per-client limit on the payment API"""

    def setup_method(self):
        self.url = reverse('payment-api:public-currencies')

    def test_requests_over_limit_rejected(self, api_client, settings):
        settings.PAYMENT_GATEWAY = payment_settings(security={'rate_limit': 2, 'rate_limit_period': 1})

        responses = [api_client.get(self.url) for _ in range(3)]

        assert responses[0].status_code == status.HTTP_200_OK
        assert responses[1].status_code == status.HTTP_200_OK
        assert responses[2].status_code == status.HTTP_429_TOO_MANY_REQUESTS

    def test_limits_are_per_route(self, api_client, settings):
        settings.PAYMENT_GATEWAY = payment_settings(security={'rate_limit': 1, 'rate_limit_period': 1})

        first = api_client.get(self.url)
        other = api_client.get(reverse('payment-api:gateways'))

        assert first.status_code == status.HTTP_200_OK
        assert other.status_code == status.HTTP_200_OK

    def test_whitelisted_ip_not_throttled(self, api_client, settings):
        settings.PAYMENT_GATEWAY = payment_settings(security={
            'rate_limit': 1,
            'rate_limit_period': 1,
            'ip_whitelist': ['127.0.0.0/8'],
        })

        for _ in range(3):
            response = api_client.get(self.url)
            assert response.status_code == status.HTTP_200_OK
