"""
Tests for payment amount validation.

Tests for:
- Global minimum and maximum amounts
- Per-gateway limits taking precedence
- Malformed amounts and decimal places
"""
from decimal import Decimal

import pytest
from rest_framework import serializers

from payment_gateway.tests.utils import TEST_PAYMENT_GATEWAY, payment_settings
from payment_gateway.validators import amount_limits, validate_payment_amount


@pytest.mark.usefixtures('payment_config')
class TestAmountLimits:
    def test_global_limits(self):
        assert amount_limits() == (Decimal('1.00'), Decimal('1000000.00'))

    def test_gateway_without_limits_uses_global(self):
        assert amount_limits('eft') == (Decimal('1.00'), Decimal('1000000.00'))

    def test_gateway_limits_take_precedence(self, settings):
        ozow = {**TEST_PAYMENT_GATEWAY['gateways']['ozow'], 'minimum_amount': '5.00', 'maximum_amount': '100000.00'}
        settings.PAYMENT_GATEWAY = payment_settings(gateways={'ozow': ozow})

        assert amount_limits('ozow') == (Decimal('5.00'), Decimal('100000.00'))

    def test_configured_global_limits(self, settings):
        settings.PAYMENT_GATEWAY = payment_settings(transaction={'min_amount': '10', 'max_amount': '500'})

        assert amount_limits() == (Decimal('10'), Decimal('500'))
        assert amount_limits('eft') == (Decimal('10'), Decimal('500'))

    def test_driver_limits(self):
        """Drivers with built-in limits apply them without any settings"""
        assert amount_limits('payfast') == (Decimal('1.00'), Decimal('100000.00'))
        assert amount_limits('ozow') == (Decimal('5.00'), Decimal('100000.00'))
        assert amount_limits('crypto') == (Decimal('0.01'), Decimal('1000000.00'))

    def test_unknown_gateway_uses_global(self):
        assert amount_limits('bitpay') == (Decimal('1.00'), Decimal('1000000.00'))


@pytest.mark.usefixtures('payment_config')
class TestValidatePaymentAmount:
    def test_valid_amounts(self):
        assert validate_payment_amount('100.00') == Decimal('100.00')
        assert validate_payment_amount(25) == Decimal('25')
        assert validate_payment_amount('10.500') == Decimal('10.500')

    def test_below_minimum(self):
        with pytest.raises(serializers.ValidationError) as exc_info:
            validate_payment_amount('0.50')

        assert 'at least 1.00' in str(exc_info.value)

    def test_above_maximum(self):
        with pytest.raises(serializers.ValidationError) as exc_info:
            validate_payment_amount('1000000.01')

        assert 'cannot exceed 1000000.00' in str(exc_info.value)

    def test_too_many_decimal_places(self):
        with pytest.raises(serializers.ValidationError) as exc_info:
            validate_payment_amount('10.001')

        assert '2 decimal places' in str(exc_info.value)

    @pytest.mark.parametrize('amount', ['abc', None, 'NaN', 'Infinity', ''])
    def test_not_a_number(self, amount):
        with pytest.raises(serializers.ValidationError) as exc_info:
            validate_payment_amount(amount)

        assert 'valid number' in str(exc_info.value)

    def test_gateway_minimum(self, settings):
        ozow = {**TEST_PAYMENT_GATEWAY['gateways']['ozow'], 'minimum_amount': '5.00'}
        settings.PAYMENT_GATEWAY = payment_settings(gateways={'ozow': ozow})

        validate_payment_amount('5.00', 'ozow')
        with pytest.raises(serializers.ValidationError):
            validate_payment_amount('4.99', 'ozow')

    def test_gateway_maximum_without_settings(self):
        with pytest.raises(serializers.ValidationError) as exc_info:
            validate_payment_amount('200000.00', 'payfast')

        assert 'cannot exceed 100000.00' in str(exc_info.value)
