"""
Service layer for payment operations.

Views, webhooks, tasks and management commands go through these services
so that every status change is persisted, announced through the payment
signals and reflected on the owning subscription in the same way.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from django.contrib.contenttypes.models import ContentType
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from .conf import get_section
from .exceptions import PaymentGatewayException
from .gateways.base import GatewayResponse
from .manager import PaymentManager
from .models import FAILED_STATUSES, NON_RETRYABLE_ERROR_CODES, REFUNDED_STATUSES, Subscription, Transaction
from .signals import payment_completed, payment_failed

logger = logging.getLogger(__name__)

# GatewayResponse.data keys copied onto the Transaction when present
RESULT_FIELDS = (
    'gateway_transaction_id',
    'payment_method',
    'card_last_four',
    'card_brand',
    'error_code',
    'error_message',
)
RESULT_AMOUNT_FIELDS = ('fee_amount', 'net_amount', 'refund_amount')


def owner_fields(owner) -> Dict[str, Any]:
    """user_type/user_id values for a polymorphic owner (or none)."""
    if owner is None or not getattr(owner, 'pk', None):
        return {}
    return {
        'user_type': ContentType.objects.get_for_model(owner),
        'user_id': str(owner.pk),
    }


class PaymentService:
    """
    Payment lifecycle: initialization, verification, callbacks, refunds
    and retries.
    """

    @staticmethod
    def initialize_payment(
        gateway: Optional[str],
        amount,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        customer: Optional[Dict[str, Any]] = None,
        return_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        owner=None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        subscription: Optional[Subscription] = None,
        parent: Optional[Transaction] = None,
        transaction_type: str = 'payment',
    ) -> Tuple[Transaction, GatewayResponse]:
        """
        Start a payment and persist it as a pending Transaction.

        Args:
            gateway: Gateway name, None for the configured default
            amount: Payment amount
            currency: Currency code; defaults to the gateway's or the global currency
            description: Shown to the payer
            customer: Dict with email, name and phone
            owner: Model instance the payment belongs to (usually the user)
            subscription: Subscription being renewed, if any
            parent: Original transaction when this is a retry

        Returns:
            Tuple of (Transaction, GatewayResponse)

        Raises:
            PaymentGatewayException: If the gateway is unavailable or rejects
                the payment. The transaction is kept and marked failed.
        """
        manager = PaymentManager()
        gateway = (gateway or manager.get_default_driver()).lower().strip()

        if not manager.is_gateway_available(gateway):
            raise PaymentGatewayException.gateway_not_available(gateway)

        defaults = get_section('transaction')
        driver_config = manager.get_gateway_config(gateway)
        currency = (currency or driver_config.get('currency') or defaults.get('currency', 'ZAR')).upper()
        description = description or defaults.get('default_description', 'Payment')
        customer = customer or {}

        txn = Transaction.objects.create(
            gateway=gateway,
            amount=Decimal(str(amount)),
            currency=currency,
            status='pending',
            description=description,
            customer_email=customer.get('email') or None,
            customer_name=customer.get('name') or None,
            customer_phone=customer.get('phone') or None,
            return_url=return_url or None,
            cancel_url=cancel_url or None,
            metadata=dict(metadata or {}),
            ip_address=ip_address,
            user_agent=user_agent,
            transaction_type=transaction_type,
            parent_transaction=parent,
            is_subscription=subscription is not None,
            subscription_id=subscription.reference if subscription else None,
            recurring_frequency=subscription.frequency if subscription else None,
            next_billing_date=subscription.next_billing_date if subscription else None,
            **owner_fields(owner),
        )

        payment_data = {
            'reference': txn.reference,
            'amount': txn.amount,
            'currency': currency,
            'description': description,
            'customer': customer,
            'return_url': return_url,
            'cancel_url': cancel_url,
            'metadata': {'reference': txn.reference, **(metadata or {})},
        }

        try:
            response = manager.initialize_payment(gateway, payment_data)
        except PaymentGatewayException as e:
            PaymentService.apply_status(txn, 'failed', {
                'error_code': e.error_code,
                'error_message': e.message,
                'error_details': e.to_dict(),
            })
            raise

        if not response.success:
            PaymentService.apply_status(txn, 'failed', {
                'error_code': response.error_code or 'initialization_failed',
                'error_message': response.message,
            }, response)
            raise PaymentGatewayException.payment_initialization_failed(
                gateway, response.message or 'Gateway rejected the payment'
            )

        data = response.data or {}
        txn.gateway_transaction_id = data.get('gateway_transaction_id') or txn.gateway_transaction_id
        txn.metadata = {
            **(txn.metadata or {}),
            'initialization': {
                key: data.get(key)
                for key in ('payment_url', 'method', 'redirect_required', 'expires_at')
                if data.get(key) is not None
            },
        }
        if data.get('refund_reference'):
            txn.metadata['refund_reference'] = data['refund_reference']
        txn.save(update_fields=['gateway_transaction_id', 'metadata', 'updated_at'])

        if response.status and response.status != 'pending':
            PaymentService.apply_result(txn, response)

        logger.info(
            f"Payment {txn.reference} initialized with {gateway}",
            extra={'reference': txn.reference, 'gateway': gateway, 'amount': str(txn.amount)}
        )
        return txn, response

    @staticmethod
    def apply_status(
        txn: Transaction,
        status: str,
        additional_data: Optional[Dict[str, Any]] = None,
        result: Optional[GatewayResponse] = None,
    ) -> bool:
        """
        Move a transaction to ``status`` and run the side effects of
        reaching it: payment signals and subscription bookkeeping.

        Returns:
            True if the status changed
        """
        previous = txn.status
        if not txn.update_status(status, additional_data):
            return False
        if txn.status == previous:
            return False

        result_data = result.to_dict() if result else {}

        if txn.status == 'completed' and txn.transaction_type != 'refund':
            payment_completed.send(
                sender=Transaction,
                transaction=txn,
                gateway=txn.gateway,
                amount=txn.amount,
                currency=txn.currency,
                result=result_data,
            )
            subscription = PaymentService._subscription_for(txn)
            if subscription:
                subscription.record_successful_payment(txn)

        elif txn.status in FAILED_STATUSES and txn.transaction_type != 'refund':
            payment_failed.send(
                sender=Transaction,
                transaction=txn,
                gateway=txn.gateway,
                amount=txn.amount,
                currency=txn.currency,
                error_message=txn.error_message,
                error_code=txn.error_code,
                result=result_data,
            )
            subscription = PaymentService._subscription_for(txn)
            if subscription:
                subscription.record_failed_payment(txn.error_message, txn.error_code)

        logger.info(f"Transaction {txn.reference} moved from {previous} to {txn.status}")
        return True

    @staticmethod
    def _subscription_for(txn: Transaction) -> Optional[Subscription]:
        if not txn.subscription_id:
            return None
        return Subscription.objects.filter(reference=txn.subscription_id).first()

    @staticmethod
    def apply_result(txn: Transaction, response: GatewayResponse) -> bool:
        """Apply a normalized gateway result (verification or callback) to a transaction."""
        data = response.data or {}
        status = response.status or 'pending'
        additional = {
            key: data[key] for key in RESULT_FIELDS
            if data.get(key) not in (None, '')
        }
        for key in RESULT_AMOUNT_FIELDS:
            if data.get(key) not in (None, ''):
                additional[key] = Decimal(str(data[key]))

        if data.get('refund_reference'):
            additional['metadata'] = {**(txn.metadata or {}), 'refund_reference': data['refund_reference']}

        reported = data.get('amount')
        if status == 'completed' and reported not in (None, ''):
            if Decimal(str(reported)) != txn.amount and (data.get('currency') or txn.currency).upper() == txn.currency.upper():
                logger.warning(
                    "Gateway reported a different amount",
                    extra={'reference': txn.reference, 'expected': str(txn.amount), 'reported': str(reported)}
                )

        refunded = additional.pop('refund_amount', None)
        if refunded is not None and status in REFUNDED_STATUSES and txn.can_transition_to(status):
            additional['refund_amount'] = PaymentService._record_gateway_refund(txn, refunded)

        return PaymentService.apply_status(txn, status, additional, response)

    @staticmethod
    def _record_gateway_refund(txn: Transaction, refunded: Decimal) -> Decimal:
        """
        Book a refund made on the gateway side (dashboard, dispute) as a
        completed child refund so refundable_amount() accounts for it.

        ``refunded`` is the gateway's running total for the payment. Totals
        already recorded create nothing.

        Returns:
            The refund total to store on the payment
        """
        missing = refunded - txn.total_refunded()
        if missing <= 0:
            return max(refunded, txn.refund_amount or Decimal('0.00'))

        child = txn.refund(missing, 'Refunded at gateway')
        if child is None:
            logger.warning(
                "Could not record gateway refund",
                extra={'reference': txn.reference, 'refunded': str(refunded), 'refundable': str(txn.refundable_amount())}
            )
            return txn.refund_amount or Decimal('0.00')

        child.metadata = {'gateway_status': 'refunded', 'source': 'gateway'}
        child.save(update_fields=['metadata', 'updated_at'])
        child.update_status('completed')
        logger.info(
            f"Recorded gateway refund of {missing} for {txn.reference}",
            extra={'reference': txn.reference, 'refund': child.reference, 'gateway': txn.gateway}
        )
        return refunded

    @staticmethod
    def verify_payment(txn: Transaction) -> GatewayResponse:
        """
        Ask the gateway for the current state of a payment and apply it.

        Raises:
            PaymentGatewayException: If the gateway call fails
        """
        manager = PaymentManager()
        driver = manager.gateway(txn.gateway)
        response = manager.verify_payment(
            txn.gateway,
            driver.lookup_id(txn.reference, txn.gateway_transaction_id),
        )
        PaymentService.apply_result(txn, response)
        return response

    @staticmethod
    def refresh_status(txn: Transaction) -> Transaction:
        """Re-check a pending transaction with its gateway; other statuses are final."""
        if txn.is_pending:
            try:
                PaymentService.verify_payment(txn)
            except PaymentGatewayException as e:
                logger.warning(f"Could not refresh {txn.reference}: {e.message}")
        return txn

    @staticmethod
    def find_transaction(gateway: str, response: GatewayResponse) -> Optional[Transaction]:
        """Locate the transaction a callback refers to: our reference first, then the gateway's ID."""
        data = response.data or {}
        reference = data.get('transaction_id')
        gateway_id = data.get('gateway_transaction_id')
        queryset = Transaction.objects.filter(gateway=gateway).exclude(transaction_type='refund')

        txn = queryset.filter(reference=reference).first() if reference else None
        if txn is None and gateway_id:
            txn = queryset.filter(gateway_transaction_id=gateway_id).first()
        return txn

    @staticmethod
    def apply_callback(txn: Transaction, response: GatewayResponse) -> bool:
        """
        Apply a webhook result while holding the transaction lock.

        Raises:
            PaymentGatewayException: ``transaction_locked`` when another
                worker is processing the same transaction
        """
        if not txn.lock():
            raise PaymentGatewayException(
                f"Transaction {txn.reference} is being processed",
                gateway=txn.gateway,
                transaction_id=txn.reference,
                error_code='transaction_locked',
            )
        try:
            # The caller's copy may predate a callback another worker just applied
            txn.refresh_from_db()
            return PaymentService.apply_result(txn, response)
        finally:
            txn.unlock()

    @staticmethod
    @transaction.atomic
    def refund_payment(txn: Transaction, amount=None, reason: Optional[str] = None) -> Transaction:
        """
        Refund a completed payment in full or in part.

        Args:
            txn: Original payment
            amount: Amount to refund; defaults to everything still refundable
            reason: Optional refund reason

        Returns:
            The completed child refund transaction

        Raises:
            PaymentGatewayException: If the payment cannot be refunded, the
                amount is too large, or the gateway rejects the refund
        """
        txn = Transaction.objects.select_for_update().get(pk=txn.pk)

        if not txn.can_refund():
            raise PaymentGatewayException.refund_failed(txn.gateway, txn.reference, 'Transaction cannot be refunded')

        refundable = txn.refundable_amount()
        amount = refundable if amount is None else Decimal(str(amount))
        if amount <= 0 or amount > refundable:
            raise PaymentGatewayException.refund_failed(
                txn.gateway,
                txn.reference,
                f"Refund amount must be between 0.01 and {refundable}",
                errors={'amount': str(amount)},
            )

        refund = txn.refund(amount, reason)

        manager = PaymentManager()
        driver = manager.gateway(txn.gateway)
        refund_id = txn.get_metadata('refund_reference') or driver.lookup_id(txn.reference, txn.gateway_transaction_id)
        response = manager.refund_payment(txn.gateway, refund_id, amount, txn.currency)

        if not response.success:
            error = PaymentGatewayException.refund_failed(
                txn.gateway, txn.reference, response.message or 'Gateway rejected the refund'
            )
            error.error_code = response.error_code or error.error_code
            raise error

        refund.metadata = {
            'refund_id': (response.data or {}).get('refund_id'),
            'gateway_status': response.status,
        }
        refund.save(update_fields=['metadata', 'updated_at'])
        refund.update_status('completed')

        new_status = 'refunded' if txn.is_fully_refunded() else 'partially_refunded'
        txn.update_status(new_status, {
            'refund_amount': (txn.refund_amount or Decimal('0.00')) + amount,
            'refund_reason': reason or txn.refund_reason,
        })

        logger.info(
            f"Refunded {amount} of {txn.reference}",
            extra={'reference': txn.reference, 'refund': refund.reference, 'gateway': txn.gateway}
        )
        return refund

    @staticmethod
    def schedule_retry(txn: Transaction, delay_minutes: int = 5) -> Transaction:
        """
        Queue a failed payment for another attempt.

        Raises:
            PaymentGatewayException: ``retry_not_allowed`` when the payment
                is not retryable
        """
        if not txn.can_retry():
            raise PaymentGatewayException(
                'Transaction cannot be retried',
                gateway=txn.gateway,
                transaction_id=txn.reference,
                error_code='retry_not_allowed',
            )
        txn.mark_for_retry(delay_minutes)
        logger.info(f"Transaction {txn.reference} scheduled for retry at {txn.retry_at}")
        return txn

    @staticmethod
    def execute_retry(txn: Transaction) -> Optional[Transaction]:
        """
        Run a scheduled retry: a new ``retry`` child transaction is started
        against the same gateway.

        Returns:
            The retry transaction, or None if the payment is no longer due
            or another worker holds it
        """
        if txn.status != 'failed' or txn.error_code in NON_RETRYABLE_ERROR_CODES:
            return None
        if txn.attempts > txn.max_attempts:
            return None
        if txn.retry_at and txn.retry_at > timezone.now():
            return None
        if not txn.lock():
            return None

        try:
            retry, _ = PaymentService.initialize_payment(
                txn.gateway,
                txn.amount,
                currency=txn.currency,
                description=txn.description,
                customer={
                    'email': txn.customer_email,
                    'name': txn.customer_name,
                    'phone': txn.customer_phone,
                },
                return_url=txn.return_url,
                cancel_url=txn.cancel_url,
                metadata={'retry_of': txn.reference},
                owner=txn.owner,
                subscription=PaymentService._subscription_for(txn),
                parent=txn,
                transaction_type='retry',
            )
            return retry
        finally:
            Transaction.all_objects.filter(pk=txn.pk).update(retry_at=None)
            txn.retry_at = None
            txn.unlock()

    @staticmethod
    def history_stats(queryset) -> Dict[str, Any]:
        """Totals for a (filtered) transaction history."""
        totals = queryset.aggregate(
            total_amount=Sum('amount', filter=Q(status='completed')),
            successful_count=Count('id', filter=Q(status='completed')),
            failed_count=Count('id', filter=Q(status__in=FAILED_STATUSES)),
            total_count=Count('id'),
        )
        total = totals['total_count'] or 0
        successful = totals['successful_count'] or 0
        return {
            'total_count': total,
            'total_amount': str(totals['total_amount'] or Decimal('0.00')),
            'successful_count': successful,
            'failed_count': totals['failed_count'] or 0,
            'success_rate': round(successful / total * 100, 2) if total else 0.0,
        }


class SubscriptionService:
    """
    Recurring billing: subscription creation, changes, cancellation and
    the renewal charge.
    """

    UPDATABLE_FIELDS = (
        'amount',
        'description',
        'customer_email',
        'customer_name',
        'customer_phone',
        'auto_renew',
        'end_date',
    )

    @staticmethod
    def create_subscription(
        gateway: Optional[str],
        amount,
        currency: Optional[str] = None,
        frequency: str = 'monthly',
        interval_count: int = 1,
        description: Optional[str] = None,
        customer: Optional[Dict[str, Any]] = None,
        owner=None,
        start_date=None,
        end_date=None,
        trial_days: int = 0,
        plan_code: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Subscription:
        """
        Create a subscription.

        Without a trial the first charge is due on ``start_date`` (now by
        default). When ``plan_code`` is given the subscription is also
        created with the gateway, which then bills it itself.

        Raises:
            PaymentGatewayException: If the gateway is unavailable or
                rejects the subscription
        """
        manager = PaymentManager()
        gateway = (gateway or manager.get_default_driver()).lower().strip()
        if not manager.is_gateway_available(gateway):
            raise PaymentGatewayException.gateway_not_available(gateway)

        now = timezone.now()
        start = start_date or now
        customer = customer or {}
        currency = (currency or manager.get_gateway_config(gateway).get('currency')
                    or get_section('transaction').get('currency', 'ZAR')).upper()

        subscription = Subscription(
            gateway=gateway,
            amount=Decimal(str(amount)),
            currency=currency,
            frequency=frequency,
            interval_count=interval_count or 1,
            description=description or get_section('transaction').get('default_description', 'Payment'),
            customer_email=customer.get('email') or None,
            customer_name=customer.get('name') or None,
            customer_phone=customer.get('phone') or None,
            start_date=start,
            end_date=end_date,
            billing_cycle_anchor=start,
            metadata=dict(metadata or {}),
            **owner_fields(owner),
        )

        if trial_days:
            subscription.status = 'trialing'
            subscription.trial_start = now
            subscription.trial_end = now + timedelta(days=trial_days)
            subscription.current_period_start = now
            subscription.current_period_end = subscription.trial_end
            subscription.next_billing_date = subscription.trial_end
        else:
            subscription.current_period_start = start
            subscription.current_period_end = start
            subscription.next_billing_date = start

        if plan_code:
            subscription.reference = Subscription.generate_reference()
            response = manager.gateway(gateway).create_subscription({
                'reference': subscription.reference,
                'plan_code': plan_code,
                'price_id': plan_code,
                'product_id': plan_code,
                'amount': subscription.amount,
                'currency': currency,
                'frequency': frequency,
                'customer': customer,
                'description': subscription.description,
            })
            data = response.data or {}
            subscription.gateway_subscription_id = data.get('subscription_id')
            subscription.gateway_customer_id = data.get('customer_id')
            subscription.metadata['gateway_plan'] = plan_code
            subscription.metadata['gateway_subscription'] = {
                key: value for key, value in data.items()
                if key in ('plan_id', 'plan_code', 'payment_url', 'email_token') and value
            }

        subscription.save()
        logger.info(f"Subscription {subscription.reference} created on {gateway}")
        return subscription

    @staticmethod
    def update_subscription(subscription: Subscription, **changes) -> Subscription:
        for field in SubscriptionService.UPDATABLE_FIELDS:
            if field in changes:
                setattr(subscription, field, changes[field])
        if changes.get('metadata'):
            subscription.metadata = {**(subscription.metadata or {}), **changes['metadata']}
        if changes.get('auto_renew') and subscription.cancel_at_period_end:
            subscription.cancel_at_period_end = False
        subscription.save()
        return subscription

    @staticmethod
    def cancel_subscription(
        subscription: Subscription,
        at_period_end: bool = True,
        reason: Optional[str] = None,
    ) -> Subscription:
        """
        Cancel a subscription now or at the end of the current period.

        Gateway-billed subscriptions are cancelled with the gateway first.
        """
        if subscription.gateway_subscription_id:
            try:
                PaymentManager().gateway(subscription.gateway).cancel_subscription(
                    subscription.gateway_subscription_id
                )
            except PaymentGatewayException as e:
                if e.error_code != 'not_supported':
                    raise
                logger.info(f"{subscription.gateway} cannot cancel subscriptions remotely")

        subscription.cancel(at_period_end=at_period_end, reason=reason)
        logger.info(
            f"Subscription {subscription.reference} cancelled",
            extra={'at_period_end': at_period_end, 'reason': reason}
        )
        return subscription

    @staticmethod
    def charge(subscription: Subscription, dry_run: bool = False) -> Dict[str, Any]:
        """
        Bill one renewal of a subscription.

        Subscriptions flagged ``cancel_at_period_end`` are cancelled instead
        of charged. Manual (EFT) and gateway-billed subscriptions are
        skipped. A renewal that stays pending with the gateway is not
        charged again until the retry interval has passed.

        Returns:
            Dict with the outcome ('charged', 'pending', 'failed',
            'cancelled', 'expired', 'skipped' or 'dry_run') and the
            transaction reference when one was created
        """
        result = {'subscription': subscription.reference, 'gateway': subscription.gateway, 'transaction': None}
        now = timezone.now()

        if subscription.cancel_at_period_end:
            if not dry_run:
                subscription.cancel(at_period_end=False, reason=subscription.cancel_reason or 'cancelled_at_period_end')
            return {**result, 'outcome': 'cancelled'}

        if subscription.end_date and subscription.end_date <= now:
            if not dry_run:
                subscription.status = 'expired'
                subscription.next_billing_date = None
                subscription.save(update_fields=['status', 'next_billing_date', 'updated_at'])
            return {**result, 'outcome': 'expired'}

        if subscription.gateway == 'eft' or subscription.gateway_subscription_id:
            return {**result, 'outcome': 'skipped'}

        if dry_run:
            return {**result, 'outcome': 'dry_run', 'amount': str(subscription.amount)}

        try:
            txn, response = PaymentService.initialize_payment(
                subscription.gateway,
                subscription.amount,
                currency=subscription.currency,
                description=subscription.description,
                customer={
                    'email': subscription.customer_email,
                    'name': subscription.customer_name,
                    'phone': subscription.customer_phone,
                },
                metadata={'subscription': subscription.reference},
                owner=subscription.owner,
                subscription=subscription,
            )
        except PaymentGatewayException as e:
            logger.warning(f"Renewal of {subscription.reference} failed: {e.message}")
            subscription.refresh_from_db()
            if e.error_code == 'gateway_not_available':
                # Raised before a transaction existed, so nothing recorded the failure yet
                subscription.record_failed_payment(e.message, e.error_code)
            return {**result, 'outcome': 'failed', 'error': e.message}

        txn.refresh_from_db()
        subscription.refresh_from_db()
        if txn.status == 'completed':
            return {**result, 'outcome': 'charged', 'transaction': txn.reference}

        if txn.is_pending:
            interval = get_section('recurring').get('retry_interval_hours', 24)
            subscription.retry_at = now + timedelta(hours=interval)
            subscription.save(update_fields=['retry_at', 'updated_at'])
        return {**result, 'outcome': 'pending', 'transaction': txn.reference}

    @staticmethod
    def expire_grace_periods() -> int:
        """Cancel past-due subscriptions whose grace period has ended."""
        count = 0
        for subscription in Subscription.objects.grace_period_expired():
            subscription.cancel(at_period_end=False, reason='grace_period_expired')
            count += 1
            logger.info(f"Subscription {subscription.reference} cancelled after grace period")
        return count

    @staticmethod
    def renewal_candidates(gateway: Optional[str] = None, limit: int = 100, force: bool = False):
        """
        Subscriptions the renewal run should look at, oldest due first.

        Subscriptions flagged to end with the period have ``auto_renew``
        off, so they are picked up separately to be closed.
        """
        now = timezone.now()
        if force:
            due = Subscription.objects.active().filter(auto_renew=True)
        else:
            due = Subscription.objects.due_for_renewal(now)
        closing = Subscription.objects.active().filter(
            cancel_at_period_end=True,
            current_period_end__lte=now,
        )
        if gateway:
            due = due.filter(gateway=gateway)
            closing = closing.filter(gateway=gateway)

        candidates = list(closing.order_by('current_period_end')[:limit])
        remaining = max(limit - len(candidates), 0)
        return candidates + list(due.order_by('next_billing_date')[:remaining])

    @staticmethod
    def process_renewals(
        gateway: Optional[str] = None,
        limit: int = 100,
        dry_run: bool = False,
        force: bool = False,
    ) -> Dict[str, Any]:
        """
        Charge every due subscription.

        Returns:
            Dict with per-outcome ``counts`` and the per-subscription ``results``
        """
        counts: Dict[str, int] = {}
        results = []

        for subscription in SubscriptionService.renewal_candidates(gateway, limit, force):
            try:
                outcome = SubscriptionService.charge(subscription, dry_run=dry_run)
            except Exception as e:
                logger.error(
                    f"Unexpected error charging subscription {subscription.reference}: {str(e)}",
                    exc_info=True
                )
                outcome = {
                    'subscription': subscription.reference,
                    'gateway': subscription.gateway,
                    'transaction': None,
                    'outcome': 'error',
                    'error': str(e),
                }
            counts[outcome['outcome']] = counts.get(outcome['outcome'], 0) + 1
            results.append(outcome)

        return {'counts': counts, 'results': results}
