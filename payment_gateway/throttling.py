"""
Rate limiting for the payment endpoints.
"""

import hashlib
import ipaddress
import logging

from rest_framework.throttling import SimpleRateThrottle

from .conf import get_section

logger = logging.getLogger(__name__)


def ip_is_whitelisted(ip: str, whitelist) -> bool:
    """Match an IP against exact addresses and CIDR ranges."""
    if not ip or not whitelist:
        return False
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False

    for entry in whitelist:
        entry = str(entry).strip()
        try:
            if '/' in entry:
                if address in ipaddress.ip_network(entry, strict=False):
                    return True
            elif address == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning(f"Ignoring invalid IP whitelist entry: {entry}")
    return False


class PaymentRateThrottle(SimpleRateThrottle):
    """
    Limit payment requests per client, user and route.

    The limit is ``security.rate_limit`` requests every
    ``security.rate_limit_period`` minutes. Whitelisted IPs are never
    throttled.
    """
    scope = 'payments'

    def get_rate(self):
        security = get_section('security')
        return f"{int(security.get('rate_limit', 60))}/{int(security.get('rate_limit_period', 1))}"

    def parse_rate(self, rate):
        if rate is None:
            return (None, None)
        num, minutes = rate.split('/')
        return int(num), int(minutes) * 60

    def allow_request(self, request, view):
        whitelist = get_section('security').get('ip_whitelist') or []
        if ip_is_whitelisted(self.get_ident(request), whitelist):
            return True
        allowed = super().allow_request(request, view)
        if not allowed:
            logger.warning(
                "Payment rate limit exceeded",
                extra={'ip': self.get_ident(request), 'path': request.path}
            )
        return allowed

    def get_cache_key(self, request, view):
        user = request.user.pk if request.user and request.user.is_authenticated else ''
        match = getattr(request, 'resolver_match', None)
        route = (match.url_name if match else None) or request.path
        signature = hashlib.sha1(f"{self.get_ident(request)}|{user}|{route}".encode('utf-8')).hexdigest()
        return self.cache_format % {'scope': self.scope, 'ident': signature}
