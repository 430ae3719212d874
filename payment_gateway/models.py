import logging
import secrets
import time
import uuid
from datetime import timedelta
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.db import models
from django.db.models import Q, Sum
from django.utils import timezone

from .conf import get_section

logger = logging.getLogger(__name__)


SUCCESSFUL_STATUSES = ('completed', 'authorized')
PENDING_STATUSES = ('pending', 'processing')
FAILED_STATUSES = ('failed', 'expired', 'voided')
REFUNDED_STATUSES = ('refunded', 'partially_refunded')

# Status only ever moves forward; anything not listed here is refused.
STATUS_TRANSITIONS = {
    'pending': {'processing', 'authorized', 'completed', 'failed', 'cancelled', 'expired', 'voided'},
    'processing': {'authorized', 'completed', 'failed', 'cancelled', 'expired'},
    'authorized': {'completed', 'voided', 'failed', 'cancelled', 'expired'},
    'completed': {'partially_refunded', 'refunded'},
    'partially_refunded': {'partially_refunded', 'refunded'},
    'failed': set(),
    'cancelled': set(),
    'refunded': set(),
    'voided': set(),
    'expired': set(),
}

NON_RETRYABLE_ERROR_CODES = (
    'invalid_card',
    'insufficient_funds',
    'card_declined',
    'expired_card',
    'invalid_amount',
    'invalid_currency',
    'unauthorized',
)

CURRENCY_SYMBOLS = {
    'ZAR': 'R',
    'USD': '$',
    'EUR': '€',
    'GBP': '£',
}


class SoftDeleteQuerySet(models.QuerySet):
    """QuerySet whose delete() marks rows as deleted instead of removing them."""

    def delete(self):
        return super().update(deleted_at=timezone.now())

    def hard_delete(self):
        return super().delete()

    def for_user(self, user):
        content_type = ContentType.objects.get_for_model(user)
        return self.filter(user_type=content_type, user_id=str(user.pk))


class SoftDeleteManager(models.Manager):
    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)


class TransactionQuerySet(SoftDeleteQuerySet):
    def successful(self):
        return self.filter(status__in=SUCCESSFUL_STATUSES)

    def pending(self):
        return self.filter(status__in=PENDING_STATUSES)

    def failed(self):
        return self.filter(status__in=FAILED_STATUSES)

    def refunded(self):
        return self.filter(status__in=REFUNDED_STATUSES)

    def for_gateway(self, gateway):
        return self.filter(gateway=gateway)

    def between_dates(self, start, end):
        return self.filter(created_at__range=(start, end))

    def subscriptions(self):
        return self.filter(is_subscription=True)

    def one_time(self):
        return self.filter(is_subscription=False)

    def payments(self):
        return self.exclude(transaction_type='refund')


class SubscriptionQuerySet(SoftDeleteQuerySet):
    def active(self):
        return self.filter(status__in=['active', 'trialing'])

    def due_for_renewal(self, at=None):
        at = at or timezone.now()
        return self.active().filter(
            auto_renew=True,
            next_billing_date__lte=at,
        ).filter(Q(retry_at__isnull=True) | Q(retry_at__lte=at))

    def in_grace_period(self):
        return self.filter(status='past_due', grace_period_ends_at__gt=timezone.now())

    def grace_period_expired(self):
        return self.filter(status='past_due', grace_period_ends_at__lte=timezone.now())


class Transaction(models.Model):
    """
    A single payment attempt against a gateway.

    Refunds and retries are stored as child transactions pointing back at
    the original through ``parent_transaction``. Rows are soft deleted.
    """
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('processing', 'Processing'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
        ('cancelled', 'Cancelled'),
        ('refunded', 'Refunded'),
        ('partially_refunded', 'Partially Refunded'),
        ('authorized', 'Authorized'),
        ('voided', 'Voided'),
        ('expired', 'Expired'),
    ]

    TYPE_CHOICES = [
        ('payment', 'Payment'),
        ('refund', 'Refund'),
        ('retry', 'Retry'),
        ('chargeback', 'Chargeback'),
    ]

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for the transaction"
    )
    reference = models.CharField(
        max_length=100,
        unique=True,
        help_text="Merchant reference shared with the gateway (e.g. 'TXN-1700000000-A1B2C3')"
    )
    gateway = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Payment gateway that processed this transaction"
    )
    gateway_transaction_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Transaction ID assigned by the gateway"
    )

    # Polymorphic owner
    user_type = models.ForeignKey(
        ContentType,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    user_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    owner = GenericForeignKey('user_type', 'user_id')

    amount = models.DecimalField(max_digits=15, decimal_places=2)
    currency = models.CharField(
        max_length=10,
        default='ZAR',
        help_text="Currency code (ISO 4217, or a crypto ticker)"
    )
    status = models.CharField(
        max_length=30,
        choices=STATUS_CHOICES,
        default='pending',
        db_index=True,
    )
    description = models.CharField(max_length=255, blank=True, default='')

    customer_email = models.EmailField(null=True, blank=True)
    customer_name = models.CharField(max_length=255, null=True, blank=True)
    customer_phone = models.CharField(max_length=30, null=True, blank=True)
    customer_address = models.TextField(null=True, blank=True)
    billing_address = models.JSONField(null=True, blank=True)
    shipping_address = models.JSONField(null=True, blank=True)

    payment_method = models.CharField(max_length=50, null=True, blank=True)
    card_last_four = models.CharField(max_length=4, null=True, blank=True)
    card_brand = models.CharField(max_length=50, null=True, blank=True)
    card_expiry_month = models.CharField(max_length=2, null=True, blank=True)
    card_expiry_year = models.CharField(max_length=4, null=True, blank=True)

    is_subscription = models.BooleanField(default=False)
    subscription_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
        help_text="Reference of the subscription this payment belongs to"
    )
    recurring_frequency = models.CharField(max_length=20, null=True, blank=True)
    recurring_cycles = models.PositiveIntegerField(null=True, blank=True)
    next_billing_date = models.DateTimeField(null=True, blank=True)

    parent_transaction = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='child_transactions',
        help_text="Original transaction for refunds and retries"
    )
    transaction_type = models.CharField(
        max_length=20,
        choices=TYPE_CHOICES,
        default='payment',
    )

    return_url = models.URLField(max_length=500, null=True, blank=True)
    cancel_url = models.URLField(max_length=500, null=True, blank=True)
    webhook_url = models.URLField(max_length=500, null=True, blank=True)

    processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    refund_amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    refund_reason = models.CharField(max_length=255, null=True, blank=True)

    fee_amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    tax_amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    discount_amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)
    net_amount = models.DecimalField(max_digits=15, decimal_places=2, null=True, blank=True)

    error_code = models.CharField(max_length=100, null=True, blank=True)
    error_message = models.TextField(null=True, blank=True)
    error_details = models.JSONField(null=True, blank=True)

    attempts = models.PositiveIntegerField(default=1)
    max_attempts = models.PositiveIntegerField(default=3)
    retry_at = models.DateTimeField(null=True, blank=True)
    locked_until = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Rows are claimed for processing until this time"
    )

    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    notes = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = SoftDeleteManager.from_queryset(TransactionQuerySet)()
    all_objects = models.Manager.from_queryset(TransactionQuerySet)()

    class Meta:
        db_table = 'payment_transactions'
        ordering = ['-created_at']
        verbose_name = 'Transaction'
        verbose_name_plural = 'Transactions'
        indexes = [
            models.Index(fields=['gateway', 'status'], name='pay_txn_gateway_status_idx'),
            models.Index(fields=['status', 'created_at'], name='pay_txn_status_created_idx'),
            models.Index(fields=['user_type', 'user_id'], name='pay_txn_owner_idx'),
            models.Index(fields=['status', 'retry_at'], name='pay_txn_status_retry_idx'),
        ]

    def __str__(self):
        return f"{self.reference} - {self.formatted_amount} ({self.status})"

    @staticmethod
    def generate_reference() -> str:
        return f"TXN-{int(time.time())}-{secrets.token_hex(3).upper()}"

    def save(self, *args, **kwargs):
        """Generate a reference if one was not supplied"""
        if not self.reference:
            self.reference = self.generate_reference()
        if self.amount is not None:
            self.amount = Decimal(str(self.amount))
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        """Soft delete; the row stays in the table with ``deleted_at`` set."""
        self.deleted_at = timezone.now()
        self.save(update_fields=['deleted_at', 'updated_at'])

    def hard_delete(self, using=None, keep_parents=False):
        return super().delete(using=using, keep_parents=keep_parents)

    # Status handling

    @property
    def is_successful(self):
        return self.status in SUCCESSFUL_STATUSES

    @property
    def is_pending(self):
        return self.status in PENDING_STATUSES

    @property
    def is_failed(self):
        return self.status in FAILED_STATUSES

    @property
    def is_refunded(self):
        return self.status in REFUNDED_STATUSES

    def can_transition_to(self, status: str) -> bool:
        return status == self.status or status in STATUS_TRANSITIONS.get(self.status, set())

    def update_status(self, status: str, additional_data: dict = None) -> bool:
        """
        Move the transaction to a new status.

        Sets the matching lifecycle timestamp and applies any extra field
        values. Backward moves (e.g. completed -> pending) are refused.

        Args:
            status: Target status
            additional_data: Extra model field values to set in the same save

        Returns:
            True if the transaction was updated, False if the move was refused
        """
        if status not in STATUS_TRANSITIONS:
            logger.warning(f"Ignoring unknown status '{status}' for transaction {self.reference}")
            return False

        if not self.can_transition_to(status):
            logger.warning(
                "Refused status transition",
                extra={'reference': self.reference, 'from': self.status, 'to': status}
            )
            return False

        now = timezone.now()
        if status != self.status:
            self.status = status
            if status in ('processing', 'authorized'):
                self.processed_at = self.processed_at or now
            elif status == 'completed':
                self.processed_at = self.processed_at or now
                self.completed_at = now
            elif status in FAILED_STATUSES:
                self.failed_at = now
            elif status == 'cancelled':
                self.cancelled_at = now
            elif status in REFUNDED_STATUSES:
                self.refunded_at = now

        field_names = {f.name for f in self._meta.concrete_fields}
        for key, value in (additional_data or {}).items():
            if key in field_names:
                setattr(self, key, value)

        self.save()
        return True

    # Retry and locking

    def is_locked(self) -> bool:
        return bool(self.locked_until and self.locked_until > timezone.now())

    def lock(self, minutes: int = 5) -> bool:
        """
        Claim the row for processing.

        Implemented as one conditional UPDATE so two workers can never both
        acquire the lock.
        """
        now = timezone.now()
        until = now + timedelta(minutes=minutes)
        claimed = Transaction.all_objects.filter(pk=self.pk).filter(
            Q(locked_until__isnull=True) | Q(locked_until__lte=now)
        ).update(locked_until=until)
        if claimed:
            self.locked_until = until
            return True
        return False

    def unlock(self):
        Transaction.all_objects.filter(pk=self.pk).update(locked_until=None)
        self.locked_until = None

    def can_retry(self) -> bool:
        if self.status != 'failed':
            return False
        if self.attempts >= self.max_attempts:
            return False
        if self.retry_at and self.retry_at > timezone.now():
            return False
        if self.is_locked():
            return False
        if self.error_code in NON_RETRYABLE_ERROR_CODES:
            return False
        return True

    def mark_for_retry(self, delay_minutes: int = 5):
        self.retry_at = timezone.now() + timedelta(minutes=delay_minutes)
        self.attempts += 1
        self.save(update_fields=['retry_at', 'attempts', 'updated_at'])

    # Refunds

    def total_refunded(self) -> Decimal:
        total = self.child_transactions.filter(
            transaction_type='refund',
            status='completed',
        ).aggregate(total=Sum('amount'))['total']
        return total or Decimal('0.00')

    def refundable_amount(self) -> Decimal:
        return self.amount - self.total_refunded()

    def is_fully_refunded(self) -> bool:
        return self.total_refunded() >= self.amount

    def is_partially_refunded(self) -> bool:
        refunded = self.total_refunded()
        return Decimal('0.00') < refunded < self.amount

    def can_refund(self) -> bool:
        if self.transaction_type == 'refund':
            return False
        return self.status in ('completed', 'partially_refunded') and self.refundable_amount() > 0

    def refund(self, amount=None, reason: str = None):
        """
        Create a pending child refund transaction.

        Returns None if the transaction cannot be refunded or the amount is
        more than what is left to refund.
        """
        if not self.can_refund():
            return None

        refundable = self.refundable_amount()
        amount = refundable if amount is None else Decimal(str(amount))
        if amount <= 0 or amount > refundable:
            return None

        return Transaction.objects.create(
            reference=self.generate_reference(),
            gateway=self.gateway,
            gateway_transaction_id=self.gateway_transaction_id,
            user_type=self.user_type,
            user_id=self.user_id,
            amount=amount,
            currency=self.currency,
            status='pending',
            transaction_type='refund',
            parent_transaction=self,
            description=f"Refund for {self.reference}",
            refund_reason=reason,
            customer_email=self.customer_email,
            customer_name=self.customer_name,
        )

    # Metadata

    def add_metadata(self, key: str, value):
        metadata = dict(self.metadata or {})
        metadata[key] = value
        self.metadata = metadata
        self.save(update_fields=['metadata', 'updated_at'])

    def get_metadata(self, key: str, default=None):
        return (self.metadata or {}).get(key, default)

    # Display helpers

    @property
    def formatted_amount(self):
        symbol = CURRENCY_SYMBOLS.get((self.currency or '').upper())
        if symbol:
            return f"{symbol}{Decimal(self.amount):,.2f}"
        return f"{self.currency} {Decimal(self.amount):,.2f}"

    @property
    def status_label(self):
        return self.get_status_display()

    @property
    def payment_age(self):
        """Minutes since the transaction was created."""
        if not self.created_at:
            return 0
        return int((timezone.now() - self.created_at).total_seconds() // 60)

    def get_summary(self):
        return {
            'id': str(self.id),
            'reference': self.reference,
            'gateway': self.gateway,
            'gateway_transaction_id': self.gateway_transaction_id,
            'amount': str(self.amount),
            'currency': self.currency,
            'formatted_amount': self.formatted_amount,
            'status': self.status,
            'status_label': self.status_label,
            'transaction_type': self.transaction_type,
            'description': self.description,
            'customer_email': self.customer_email,
            'customer_name': self.customer_name,
            'is_subscription': self.is_subscription,
            'refund_amount': str(self.refund_amount),
            'attempts': self.attempts,
            'max_attempts': self.max_attempts,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }


class Subscription(models.Model):
    """
    A recurring billing agreement.

    Each successful renewal advances the billing period by the configured
    frequency. Failed renewals are retried and eventually move the
    subscription into a grace period before it is cancelled.
    """
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('trialing', 'Trialing'),
        ('past_due', 'Past Due'),
        ('paused', 'Paused'),
        ('cancelled', 'Cancelled'),
        ('expired', 'Expired'),
    ]

    FREQUENCY_CHOICES = [
        ('daily', 'Daily'),
        ('weekly', 'Weekly'),
        ('monthly', 'Monthly'),
        ('quarterly', 'Quarterly'),
        ('yearly', 'Yearly'),
    ]

    FREQUENCY_DELTAS = {
        'daily': relativedelta(days=1),
        'weekly': relativedelta(weeks=1),
        'monthly': relativedelta(months=1),
        'quarterly': relativedelta(months=3),
        'yearly': relativedelta(years=1),
    }

    FREQUENCY_UNITS = {
        'daily': 'day',
        'weekly': 'week',
        'monthly': 'month',
        'quarterly': 'quarter',
        'yearly': 'year',
    }

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for the subscription"
    )
    reference = models.CharField(max_length=100, unique=True)
    gateway = models.CharField(max_length=50, db_index=True)
    gateway_subscription_id = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    gateway_customer_id = models.CharField(max_length=255, null=True, blank=True)

    user_type = models.ForeignKey(
        ContentType,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    user_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    owner = GenericForeignKey('user_type', 'user_id')

    amount = models.DecimalField(max_digits=15, decimal_places=2)
    currency = models.CharField(max_length=10, default='ZAR')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    description = models.CharField(max_length=255, blank=True, default='')

    customer_email = models.EmailField(null=True, blank=True)
    customer_name = models.CharField(max_length=255, null=True, blank=True)
    customer_phone = models.CharField(max_length=30, null=True, blank=True)
    payment_method = models.CharField(max_length=50, null=True, blank=True)

    frequency = models.CharField(max_length=20, choices=FREQUENCY_CHOICES, default='monthly')
    interval_count = models.PositiveIntegerField(
        default=1,
        help_text="Number of frequency units between billings"
    )
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(null=True, blank=True)

    cancel_at_period_end = models.BooleanField(default=False)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.CharField(max_length=255, null=True, blank=True)

    trial_start = models.DateTimeField(null=True, blank=True)
    trial_end = models.DateTimeField(null=True, blank=True)
    billing_cycle_anchor = models.DateTimeField(null=True, blank=True)
    days_until_due = models.PositiveIntegerField(null=True, blank=True)
    collection_method = models.CharField(max_length=30, default='charge_automatically')

    attempts = models.PositiveIntegerField(default=0)
    max_attempts = models.PositiveIntegerField(default=3)
    retry_at = models.DateTimeField(null=True, blank=True)

    last_payment_date = models.DateTimeField(null=True, blank=True)
    last_transaction = models.ForeignKey(
        Transaction,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    total_payments = models.PositiveIntegerField(default=0)
    total_amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))

    next_billing_date = models.DateTimeField(null=True, blank=True, db_index=True)
    grace_period_ends_at = models.DateTimeField(null=True, blank=True)
    auto_renew = models.BooleanField(default=True)

    metadata = models.JSONField(default=dict, blank=True)
    notes = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = SoftDeleteManager.from_queryset(SubscriptionQuerySet)()
    all_objects = models.Manager.from_queryset(SubscriptionQuerySet)()

    class Meta:
        db_table = 'payment_subscriptions'
        ordering = ['-created_at']
        verbose_name = 'Subscription'
        verbose_name_plural = 'Subscriptions'
        indexes = [
            models.Index(fields=['status', 'next_billing_date'], name='pay_sub_status_billing_idx'),
            models.Index(fields=['user_type', 'user_id'], name='pay_sub_owner_idx'),
        ]

    def __str__(self):
        return f"{self.reference} - {self.frequency_display} ({self.status})"

    @staticmethod
    def generate_reference() -> str:
        return f"SUB-{timezone.now():%Y%m%d%H%M%S}-{secrets.token_hex(3).upper()}"

    def save(self, *args, **kwargs):
        if not self.reference:
            self.reference = self.generate_reference()
        if self.amount is not None:
            self.amount = Decimal(str(self.amount))
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        self.deleted_at = timezone.now()
        self.save(update_fields=['deleted_at', 'updated_at'])

    def hard_delete(self, using=None, keep_parents=False):
        return super().delete(using=using, keep_parents=keep_parents)

    def transactions(self):
        """Payments charged against this subscription"""
        return Transaction.objects.filter(subscription_id=self.reference)

    # Billing cycle

    def calculate_next_billing_date(self):
        """
        Next billing date: end of the current period plus ``interval_count``
        frequency units, using calendar arithmetic (Jan 31 + 1 month is the
        last day of February).
        """
        base = self.current_period_end or timezone.now()
        delta = self.FREQUENCY_DELTAS.get(self.frequency, self.FREQUENCY_DELTAS['monthly'])
        return base + delta * max(self.interval_count or 1, 1)

    def record_successful_payment(self, transaction: Transaction):
        now = timezone.now()
        next_date = self.calculate_next_billing_date()

        self.current_period_start = self.current_period_end or now
        self.current_period_end = next_date
        self.next_billing_date = next_date
        self.status = 'active'
        self.attempts = 0
        self.retry_at = None
        self.grace_period_ends_at = None
        self.last_payment_date = now
        self.last_transaction = transaction
        self.total_payments += 1
        self.total_amount = (self.total_amount or Decimal('0.00')) + transaction.amount
        self.save()

    def record_failed_payment(self, error_message: str = None, error_code: str = None):
        recurring = get_section('recurring')
        now = timezone.now()

        self.attempts += 1
        self.retry_at = now + timedelta(hours=recurring.get('retry_interval_hours', 24))

        if self.attempts >= self.max_attempts:
            self.status = 'past_due'
            self.grace_period_ends_at = now + timedelta(days=recurring.get('grace_period_days', 3))

        if error_message or error_code:
            metadata = dict(self.metadata or {})
            metadata['last_failure'] = {
                'message': error_message,
                'code': error_code,
                'at': now.isoformat(),
            }
            self.metadata = metadata

        self.save()

    def cancel(self, at_period_end: bool = True, reason: str = None):
        self.cancel_reason = reason
        if at_period_end:
            self.cancel_at_period_end = True
            self.auto_renew = False
        else:
            self.status = 'cancelled'
            self.cancelled_at = timezone.now()
            self.cancel_at_period_end = False
            self.next_billing_date = None
        self.save()

    def reactivate(self):
        self.status = 'active'
        self.cancelled_at = None
        self.cancel_at_period_end = False
        self.cancel_reason = None
        self.grace_period_ends_at = None
        self.attempts = 0
        self.retry_at = None
        self.auto_renew = True
        if not self.next_billing_date:
            self.next_billing_date = self.calculate_next_billing_date()
        self.save()

    # State checks

    def is_active(self):
        return self.status in ['active', 'trialing']

    def is_due_for_renewal(self):
        if not self.is_active() or not self.next_billing_date:
            return False
        return self.next_billing_date <= timezone.now()

    def on_trial(self):
        return bool(self.trial_end and self.trial_end > timezone.now())

    def on_grace_period(self):
        return bool(self.grace_period_ends_at and self.grace_period_ends_at > timezone.now())

    @property
    def frequency_display(self):
        """e.g. 'Monthly' or 'Every 2 weeks'"""
        count = self.interval_count or 1
        if count == 1:
            return self.get_frequency_display()
        return f"Every {count} {self.FREQUENCY_UNITS.get(self.frequency, 'month')}s"

    @property
    def formatted_amount(self):
        symbol = CURRENCY_SYMBOLS.get((self.currency or '').upper())
        if symbol:
            return f"{symbol}{Decimal(self.amount):,.2f}"
        return f"{self.currency} {Decimal(self.amount):,.2f}"


class WebhookEvent(models.Model):
    """
    Record of a processed gateway notification.

    The (gateway, event_id) pair is unique, so a redelivered notification is
    recognised and skipped.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event_id = models.CharField(max_length=255)
    gateway = models.CharField(max_length=50)
    event_type = models.CharField(max_length=100, blank=True, default='')
    payload = models.JSONField(default=dict, blank=True)
    processed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'payment_webhook_events'
        ordering = ['-processed_at']
        verbose_name = 'Webhook Event'
        verbose_name_plural = 'Webhook Events'
        constraints = [
            models.UniqueConstraint(fields=['gateway', 'event_id'], name='unique_gateway_event'),
        ]

    def __str__(self):
        return f"{self.gateway}:{self.event_id} ({self.event_type})"
