"""
Django Admin configuration for the payment_gateway app.

Provides admin interfaces for:
- Transactions (with child refunds/retries and a verify action)
- Subscriptions (with billing cycle details and a cancel action)
- Webhook events (read-only audit log)
"""

from django.contrib import admin, messages
from django.urls import reverse
from django.utils.html import format_html

from .models import Subscription, Transaction, WebhookEvent

STATUS_COLORS = {
    'completed': 'green',
    'authorized': 'teal',
    'pending': 'orange',
    'processing': 'blue',
    'failed': 'red',
    'expired': 'red',
    'voided': 'gray',
    'cancelled': 'gray',
    'refunded': 'purple',
    'partially_refunded': 'purple',
    'active': 'green',
    'trialing': 'blue',
    'past_due': 'orange',
    'paused': 'gray',
}


def status_badge(obj):
    color = STATUS_COLORS.get(obj.status, 'gray')
    return format_html(
        '<span style="color: {}; font-weight: bold;">{}</span>',
        color,
        obj.get_status_display()
    )


class ChildTransactionInline(admin.TabularInline):
    """
    Refunds and retries of a transaction.
    """
    model = Transaction
    fk_name = 'parent_transaction'
    extra = 0
    fields = ['reference', 'transaction_type', 'amount', 'status', 'created_at']
    readonly_fields = ['reference', 'transaction_type', 'amount', 'status', 'created_at']
    can_delete = False
    verbose_name_plural = 'Refunds and retries'

    def has_add_permission(self, request, obj=None):
        """Refunds go through the refund service, not the admin"""
        return False


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """
    Admin interface for Transaction model.

    Features:
    - List view with amount, gateway and colour-coded status
    - Filter by status, gateway, type and date
    - Search by reference, gateway ID and customer
    - Action to re-verify pending payments with their gateway
    """

    list_display = [
        'reference',
        'gateway',
        'amount_display',
        'status_display',
        'transaction_type',
        'customer_email',
        'parent_link',
        'created_at',
    ]

    list_filter = [
        'status',
        'gateway',
        'transaction_type',
        'is_subscription',
        'created_at',
    ]

    search_fields = [
        'reference',
        'gateway_transaction_id',
        'customer_email',
        'customer_name',
        'subscription_id',
    ]

    readonly_fields = [
        'id',
        'reference',
        'gateway',
        'gateway_transaction_id',
        'parent_transaction',
        'amount',
        'currency',
        'refund_amount',
        'attempts',
        'locked_until',
        'ip_address',
        'user_agent',
        'error_details',
        'processed_at',
        'completed_at',
        'failed_at',
        'cancelled_at',
        'refunded_at',
        'created_at',
        'updated_at',
    ]

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'reference', 'transaction_type', 'parent_transaction', 'description')
        }),
        ('Gateway Details', {
            'fields': ('gateway', 'gateway_transaction_id', 'payment_method', 'card_brand', 'card_last_four')
        }),
        ('Amounts', {
            'fields': ('amount', 'currency', 'fee_amount', 'net_amount', 'refund_amount', 'refund_reason')
        }),
        ('Status', {
            'fields': ('status', 'error_code', 'error_message', 'error_details')
        }),
        ('Customer', {
            'fields': ('customer_email', 'customer_name', 'customer_phone', 'ip_address', 'user_agent')
        }),
        ('Subscription', {
            'fields': ('is_subscription', 'subscription_id', 'recurring_frequency', 'next_billing_date'),
            'classes': ('collapse',)
        }),
        ('Retries', {
            'fields': ('attempts', 'max_attempts', 'retry_at', 'locked_until'),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': (
                'processed_at', 'completed_at', 'failed_at', 'cancelled_at',
                'refunded_at', 'created_at', 'updated_at',
            )
        }),
        ('Metadata', {
            'fields': ('metadata', 'notes'),
            'description': 'Gateway data stored with the transaction plus staff notes'
        }),
    )

    inlines = [ChildTransactionInline]
    actions = ['verify_with_gateway']

    def amount_display(self, obj):
        """Display formatted amount"""
        return obj.formatted_amount
    amount_display.short_description = 'Amount'
    amount_display.admin_order_field = 'amount'

    def status_display(self, obj):
        return status_badge(obj)
    status_display.short_description = 'Status'
    status_display.admin_order_field = 'status'

    def parent_link(self, obj):
        """Link to the original transaction of a refund or retry"""
        if not obj.parent_transaction_id:
            return '-'
        url = reverse('admin:payment_gateway_transaction_change', args=[obj.parent_transaction_id])
        return format_html('<a href="{}">{}</a>', url, obj.parent_transaction.reference)
    parent_link.short_description = 'Parent'

    def verify_with_gateway(self, request, queryset):
        """Action to re-check pending transactions with their gateway"""
        from .exceptions import PaymentGatewayException
        from .services import PaymentService

        MAX_VERIFY_PER_REQUEST = 50

        count = queryset.count()
        if count > MAX_VERIFY_PER_REQUEST:
            self.message_user(
                request,
                f"Cannot verify more than {MAX_VERIFY_PER_REQUEST} transactions at once. "
                f"You selected {count}.",
                level=messages.ERROR
            )
            return

        verified = 0
        failed = 0
        for txn in queryset.filter(status__in=['pending', 'processing']):
            try:
                PaymentService.verify_payment(txn)
                verified += 1
            except PaymentGatewayException:
                failed += 1

        self.message_user(request, f"Verified {verified} transaction(s). {failed} failed.")
    verify_with_gateway.short_description = "Verify selected pending transactions with gateway"

    def get_queryset(self, request):
        """Optimize queryset with select_related"""
        return super().get_queryset(request).select_related('parent_transaction')


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """
    Admin interface for Subscription model.

    Features:
    - List view with amount, frequency and next billing date
    - Filter by status, gateway and frequency
    - Action to cancel immediately
    """

    list_display = [
        'reference',
        'gateway',
        'amount_display',
        'frequency_display',
        'status_display',
        'next_billing_date',
        'total_payments',
        'created_at',
    ]

    list_filter = [
        'status',
        'gateway',
        'frequency',
        'auto_renew',
        'cancel_at_period_end',
    ]

    search_fields = [
        'reference',
        'gateway_subscription_id',
        'gateway_customer_id',
        'customer_email',
        'customer_name',
    ]

    readonly_fields = [
        'id',
        'reference',
        'gateway_subscription_id',
        'gateway_customer_id',
        'total_payments',
        'total_amount',
        'last_payment_date',
        'last_transaction',
        'created_at',
        'updated_at',
    ]

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'reference', 'description', 'status')
        }),
        ('Gateway Details', {
            'fields': ('gateway', 'gateway_subscription_id', 'gateway_customer_id', 'payment_method')
        }),
        ('Billing', {
            'fields': ('amount', 'currency', 'frequency', 'interval_count', 'auto_renew', 'collection_method')
        }),
        ('Billing Period', {
            'fields': (
                'start_date', 'end_date', 'current_period_start', 'current_period_end',
                'next_billing_date', 'trial_start', 'trial_end',
            )
        }),
        ('Failures', {
            'fields': ('attempts', 'max_attempts', 'retry_at', 'grace_period_ends_at'),
            'classes': ('collapse',)
        }),
        ('Cancellation', {
            'fields': ('cancel_at_period_end', 'cancelled_at', 'cancel_reason')
        }),
        ('Totals', {
            'fields': ('total_payments', 'total_amount', 'last_payment_date', 'last_transaction')
        }),
        ('Customer', {
            'fields': ('customer_email', 'customer_name', 'customer_phone')
        }),
        ('Metadata', {
            'fields': ('metadata', 'notes', 'created_at', 'updated_at')
        }),
    )

    actions = ['cancel_now']

    def amount_display(self, obj):
        return obj.formatted_amount
    amount_display.short_description = 'Amount'
    amount_display.admin_order_field = 'amount'

    def status_display(self, obj):
        return status_badge(obj)
    status_display.short_description = 'Status'
    status_display.admin_order_field = 'status'

    def cancel_now(self, request, queryset):
        """Action to cancel the selected subscriptions immediately"""
        from .exceptions import PaymentGatewayException
        from .services import SubscriptionService

        cancelled = 0
        failed = 0
        for subscription in queryset.exclude(status='cancelled'):
            try:
                SubscriptionService.cancel_subscription(
                    subscription,
                    at_period_end=False,
                    reason='cancelled_by_admin'
                )
                cancelled += 1
            except PaymentGatewayException:
                failed += 1

        self.message_user(request, f"Cancelled {cancelled} subscription(s). {failed} failed.")
    cancel_now.short_description = "Cancel selected subscriptions now"


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Read-only view of processed webhook events for debugging and auditing.
    """
    list_display = [
        'event_id',
        'event_type',
        'gateway',
        'processed_at',
    ]
    list_filter = [
        'gateway',
        'event_type',
        'processed_at',
    ]
    search_fields = [
        'event_id',
        'event_type',
    ]
    readonly_fields = [
        'id',
        'event_id',
        'event_type',
        'gateway',
        'processed_at',
        'payload',
    ]
    ordering = ['-processed_at']
    date_hierarchy = 'processed_at'

    def has_add_permission(self, request):
        """Webhook events are created automatically, not manually"""
        return False

    def has_change_permission(self, request, obj=None):
        """Webhook events should not be modified"""
        return False
