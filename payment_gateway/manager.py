"""
PaymentManager: the single entry point business code uses to reach a gateway.

It resolves drivers through the factory registry, reports which gateways
are enabled, and wraps every gateway operation with activity and error
logging.
"""

import logging
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.db.models import Avg, Count, Q, Sum
from django.utils import timezone

from .conf import default_gateway, gateway_config, get_config
from .exceptions import PaymentGatewayException
from .gateways.base import BasePaymentGateway, GatewayResponse
from .gateways.factory import GATEWAY_REGISTRY, get_gateway

logger = logging.getLogger(__name__)


class PaymentManager:
    """
    Facade over the registered payment gateways.

    Example:
        >>> manager = PaymentManager()
        >>> response = manager.initialize_payment('paystack', {
        ...     'amount': '250.00', 'currency': 'NGN', 'reference': 'TXN-...',
        ...     'customer': {'email': 'ada@example.com'},
        ... })
    """

    def get_default_driver(self) -> str:
        return default_gateway()

    def gateway(self, name: Optional[str] = None) -> BasePaymentGateway:
        """Return a configured driver, raising for unknown names."""
        name = name or self.get_default_driver()
        return get_gateway(name, self.get_gateway_config(name))

    def gateway_with_config(self, name: str, custom_config: Dict[str, Any]) -> BasePaymentGateway:
        """Return a driver whose settings are overridden by ``custom_config``."""
        config = {**self.get_gateway_config(name), **(custom_config or {})}
        return get_gateway(name, config)

    def get_gateway_config(self, name: str) -> Dict[str, Any]:
        return dict(gateway_config(name) or {})

    def get_gateway_display_name(self, name: str) -> str:
        gateway_class = GATEWAY_REGISTRY.get((name or '').lower().strip())
        if gateway_class is None:
            return (name or '').title()
        return gateway_class.display_name or name.title()

    # Availability

    def is_gateway_available(self, name: str) -> bool:
        name = (name or '').lower().strip()
        if name not in GATEWAY_REGISTRY:
            return False
        return bool((gateway_config(name) or {}).get('enabled', False))

    def get_available_gateways(self) -> Dict[str, Dict[str, Any]]:
        """Enabled gateways keyed by name."""
        gateways = {}
        for name, config in get_config().get('gateways', {}).items():
            if name in GATEWAY_REGISTRY and config.get('enabled', False):
                gateways[name] = {
                    'name': name,
                    'display_name': self.get_gateway_display_name(name),
                    'test_mode': bool(config.get('test_mode', True)),
                    'supported_currencies': self.get_supported_currencies(name),
                }
        return gateways

    # Operations

    def _log_activity(self, action: str, gateway: str, data: Dict[str, Any]):
        logger.info(
            f"Payment manager activity: {action}",
            extra={'action': action, 'gateway': gateway, 'data': data}
        )

    def _log_error(self, action: str, gateway: str, exc: PaymentGatewayException, context: Dict[str, Any]):
        logger.error(
            f"Payment manager error: {action}",
            extra={
                'action': action,
                'gateway': gateway,
                'error_message': exc.message,
                'error_code': exc.error_code,
                'errors': exc.errors,
                'context': context,
            }
        )

    def initialize_payment(self, gateway: str, payment_data: Dict[str, Any]) -> GatewayResponse:
        context = {
            'reference': payment_data.get('reference'),
            'amount': str(payment_data.get('amount')),
            'currency': payment_data.get('currency'),
        }
        try:
            driver = self.gateway(gateway)
            self._log_activity('initialize', gateway, context)
            return driver.initialize_payment(payment_data)
        except PaymentGatewayException as e:
            self._log_error('initialize', gateway, e, context)
            raise

    def verify_payment(self, gateway: str, transaction_id: str) -> GatewayResponse:
        context = {'transaction_id': transaction_id}
        try:
            driver = self.gateway(gateway)
            self._log_activity('verify', gateway, context)
            return driver.verify_payment(transaction_id)
        except PaymentGatewayException as e:
            self._log_error('verify', gateway, e, context)
            raise

    def process_callback(self, gateway: str, callback_data: Dict[str, Any]) -> GatewayResponse:
        try:
            driver = self.gateway(gateway)
            self._log_activity('callback', gateway, {'keys': sorted(callback_data.keys())})
            return driver.process_callback(callback_data)
        except PaymentGatewayException as e:
            self._log_error('callback', gateway, e, {})
            raise

    def refund_payment(
        self,
        gateway: str,
        transaction_id: str,
        amount: Optional[Decimal] = None,
        currency: Optional[str] = None,
    ) -> GatewayResponse:
        context = {'transaction_id': transaction_id, 'amount': str(amount) if amount is not None else None}
        try:
            driver = self.gateway(gateway)
            self._log_activity('refund', gateway, context)
            return driver.refund_payment(transaction_id, amount, currency)
        except PaymentGatewayException as e:
            self._log_error('refund', gateway, e, context)
            raise

    def get_payment_status(self, gateway: str, transaction_id: str) -> str:
        try:
            return self.gateway(gateway).get_payment_status(transaction_id)
        except Exception as e:
            logger.error(
                "Failed to get payment status",
                extra={'gateway': gateway, 'transaction_id': transaction_id, 'error': str(e)}
            )
            return 'error'

    def is_payment_successful(self, gateway: str, transaction_id: str) -> bool:
        try:
            return self.gateway(gateway).is_payment_successful(transaction_id)
        except Exception:
            return False

    # Currencies

    def get_supported_currencies(self, gateway: str) -> List[str]:
        try:
            return self.gateway(gateway).get_supported_currencies()
        except PaymentGatewayException:
            return []

    def get_all_supported_currencies(self) -> List[str]:
        currencies = set()
        for name in self.get_available_gateways():
            currencies.update(self.get_supported_currencies(name))
        return sorted(currencies)

    # Reporting

    def get_statistics(self, gateway: Optional[str] = None) -> Dict[str, Any]:
        """
        Transaction statistics, optionally for a single gateway.

        Returns:
            Dict with total_transactions, completed_count, total_amount
            (completed payments only), success_rate (percent) and
            average_amount, plus the enabled gateways.
        """
        from .models import Transaction

        queryset = Transaction.objects.payments()
        if gateway:
            queryset = queryset.for_gateway(gateway)

        totals = queryset.aggregate(
            total_transactions=Count('id'),
            completed_count=Count('id', filter=Q(status='completed')),
            total_amount=Sum('amount', filter=Q(status='completed')),
            average_amount=Avg('amount', filter=Q(status='completed')),
        )
        total = totals['total_transactions'] or 0
        completed = totals['completed_count'] or 0
        average = totals['average_amount']
        available = self.get_available_gateways()

        return {
            'gateway': gateway,
            'total_transactions': total,
            'completed_count': completed,
            'total_amount': str(totals['total_amount'] or Decimal('0.00')),
            'success_rate': round(completed / total * 100, 2) if total else 0.0,
            'average_amount': str(Decimal(average).quantize(Decimal('0.01'))) if average is not None else '0.00',
            'total_gateways': len(available),
            'available_gateways': list(available.keys()),
            'default_gateway': self.get_default_driver(),
            'timestamp': timezone.now().isoformat(),
        }

    def test_gateway_connection(self, gateway: str) -> Dict[str, Any]:
        """
        Make a real initialization call against the gateway and time it.

        Only meant for sandbox credentials; a live gateway will create a
        real (unpaid) payment request.
        """
        started = time.monotonic()
        try:
            driver = self.gateway(gateway)
            currency = driver.config.get('currency')
            if not driver.supports_currency(currency):
                currency = driver.get_supported_currencies()[0]
            response = driver.initialize_payment({
                'amount': driver.minimum_amount,
                'currency': currency,
                'reference': f"TEST-{int(time.time())}",
                'description': 'Gateway connection test',
                'customer': {'email': 'test@example.com', 'name': 'Connection Test'},
            })
            success = response.success
            message = response.message or ('Connection successful' if success else 'Gateway rejected the test request')
        except PaymentGatewayException as e:
            success = False
            message = e.message
        except Exception as e:
            logger.error(f"Connection test for {gateway} failed: {str(e)}", exc_info=True)
            success = False
            message = str(e)

        return {
            'gateway': gateway,
            'success': success,
            'message': message,
            'response_time_ms': int((time.monotonic() - started) * 1000),
        }


payment_manager = PaymentManager()
