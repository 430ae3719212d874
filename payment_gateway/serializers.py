from decimal import Decimal

from rest_framework import serializers

from .conf import default_gateway
from .gateways.factory import list_available_gateways
from .models import Subscription, Transaction
from .validators import validate_payment_amount


class TransactionSerializer(serializers.ModelSerializer):
    """
    Serializer for transaction data.
    Includes formatted amount, status label and refund position.
    """
    formatted_amount = serializers.ReadOnlyField()
    status_label = serializers.ReadOnlyField()
    refundable_amount = serializers.SerializerMethodField()
    parent_reference = serializers.CharField(
        source='parent_transaction.reference',
        read_only=True,
        default=None
    )

    class Meta:
        model = Transaction
        fields = [
            'id',
            'reference',
            'gateway',
            'gateway_transaction_id',
            'transaction_type',
            'parent_reference',
            'amount',
            'currency',
            'formatted_amount',
            'fee_amount',
            'net_amount',
            'status',
            'status_label',
            'description',
            'customer_email',
            'customer_name',
            'payment_method',
            'card_last_four',
            'card_brand',
            'is_subscription',
            'subscription_id',
            'refund_amount',
            'refundable_amount',
            'error_code',
            'error_message',
            'attempts',
            'max_attempts',
            'retry_at',
            'metadata',
            'created_at',
            'completed_at',
            'failed_at',
            'refunded_at',
        ]
        read_only_fields = fields

    def get_refundable_amount(self, obj):
        if obj.transaction_type == 'refund':
            return '0.00'
        return str(obj.refundable_amount())


class InitializePaymentSerializer(serializers.Serializer):
    """Input for starting a payment."""
    gateway = serializers.CharField(required=False, allow_blank=True)
    amount = serializers.DecimalField(max_digits=15, decimal_places=8, coerce_to_string=False)
    currency = serializers.CharField(max_length=10, required=False, allow_blank=True)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    customer_email = serializers.EmailField(required=False, allow_blank=True)
    customer_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    customer_phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    return_url = serializers.URLField(required=False, allow_blank=True)
    cancel_url = serializers.URLField(required=False, allow_blank=True)
    metadata = serializers.DictField(required=False)

    def validate_gateway(self, value):
        value = (value or '').lower().strip()
        if value and value not in list_available_gateways():
            raise serializers.ValidationError(f"Unsupported payment gateway: {value}")
        return value

    def validate_currency(self, value):
        return (value or '').upper().strip()

    def validate(self, attrs):
        attrs['amount'] = validate_payment_amount(attrs['amount'], attrs.get('gateway') or default_gateway())
        return attrs


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(
        max_digits=15,
        decimal_places=2,
        required=False,
        allow_null=True,
        min_value=Decimal('0.01')
    )
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)


class SubscriptionSerializer(serializers.ModelSerializer):
    """
    Serializer for subscription data.
    """
    formatted_amount = serializers.ReadOnlyField()
    frequency_display = serializers.ReadOnlyField()
    status_display = serializers.CharField(
        source='get_status_display',
        read_only=True
    )
    is_active = serializers.SerializerMethodField()
    on_trial = serializers.SerializerMethodField()
    on_grace_period = serializers.SerializerMethodField()

    class Meta:
        model = Subscription
        fields = [
            'id',
            'reference',
            'gateway',
            'gateway_subscription_id',
            'amount',
            'currency',
            'formatted_amount',
            'status',
            'status_display',
            'description',
            'customer_email',
            'customer_name',
            'frequency',
            'interval_count',
            'frequency_display',
            'start_date',
            'end_date',
            'current_period_start',
            'current_period_end',
            'next_billing_date',
            'trial_end',
            'cancel_at_period_end',
            'cancelled_at',
            'cancel_reason',
            'grace_period_ends_at',
            'auto_renew',
            'total_payments',
            'total_amount',
            'last_payment_date',
            'metadata',
            'created_at',
            'updated_at',
            'is_active',
            'on_trial',
            'on_grace_period',
        ]
        read_only_fields = fields

    def get_is_active(self, obj):
        return obj.is_active()

    def get_on_trial(self, obj):
        return obj.on_trial()

    def get_on_grace_period(self, obj):
        return obj.on_grace_period()


class CreateSubscriptionSerializer(serializers.Serializer):
    """Input for creating a subscription."""
    gateway = serializers.CharField(required=False, allow_blank=True)
    amount = serializers.DecimalField(max_digits=15, decimal_places=8, coerce_to_string=False)
    currency = serializers.CharField(max_length=10, required=False, allow_blank=True)
    frequency = serializers.ChoiceField(choices=Subscription.FREQUENCY_CHOICES, default='monthly')
    interval_count = serializers.IntegerField(min_value=1, max_value=365, default=1)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    customer_email = serializers.EmailField(required=False, allow_blank=True)
    customer_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    customer_phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    start_date = serializers.DateTimeField(required=False, allow_null=True)
    end_date = serializers.DateTimeField(required=False, allow_null=True)
    trial_days = serializers.IntegerField(min_value=0, max_value=365, required=False, default=0)
    plan_code = serializers.CharField(required=False, allow_blank=True)
    metadata = serializers.DictField(required=False)

    def validate_gateway(self, value):
        value = (value or '').lower().strip()
        if value and value not in list_available_gateways():
            raise serializers.ValidationError(f"Unsupported payment gateway: {value}")
        return value

    def validate_currency(self, value):
        return (value or '').upper().strip()

    def validate(self, attrs):
        attrs['amount'] = validate_payment_amount(attrs['amount'], attrs.get('gateway') or default_gateway())
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and end <= start:
            raise serializers.ValidationError({'end_date': 'End date must be after the start date'})
        return attrs


class UpdateSubscriptionSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=15, decimal_places=8, required=False, coerce_to_string=False)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    customer_email = serializers.EmailField(required=False, allow_blank=True)
    customer_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    customer_phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    auto_renew = serializers.BooleanField(required=False)
    end_date = serializers.DateTimeField(required=False, allow_null=True)
    metadata = serializers.DictField(required=False)

    def validate(self, attrs):
        if 'amount' in attrs:
            gateway = self.instance.gateway if self.instance else None
            attrs['amount'] = validate_payment_amount(attrs['amount'], gateway)
        return attrs


class CancelSubscriptionSerializer(serializers.Serializer):
    """
    Serializer for subscription cancellation.
    """
    cancel_at_period_end = serializers.BooleanField(
        default=True,
        help_text="If true, cancel at period end; if false, cancel immediately"
    )
    reason = serializers.CharField(
        required=False,
        allow_blank=True,
        max_length=255,
        help_text="Optional reason for cancellation"
    )


class AdminTransactionUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Transaction.STATUS_CHOICES, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    metadata = serializers.DictField(required=False)


class AdminGatewayUpdateSerializer(serializers.Serializer):
    enabled = serializers.BooleanField(required=False)
    test_mode = serializers.BooleanField(required=False)


class ManualPaymentSerializer(serializers.Serializer):
    """Payment recorded by staff, e.g. a reconciled bank deposit."""
    gateway = serializers.CharField(default='eft')
    amount = serializers.DecimalField(max_digits=15, decimal_places=8, coerce_to_string=False)
    currency = serializers.CharField(max_length=10, required=False, allow_blank=True)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    customer_email = serializers.EmailField(required=False, allow_blank=True)
    customer_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    gateway_transaction_id = serializers.CharField(max_length=255, required=False, allow_blank=True)
    status = serializers.ChoiceField(
        choices=[('completed', 'Completed'), ('pending', 'Pending')],
        default='completed'
    )
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate_gateway(self, value):
        value = (value or '').lower().strip()
        if value not in list_available_gateways():
            raise serializers.ValidationError(f"Unsupported payment gateway: {value}")
        return value

    def validate(self, attrs):
        attrs['amount'] = validate_payment_amount(attrs['amount'], attrs.get('gateway'))
        return attrs


class TransactionFilterSerializer(serializers.Serializer):
    """Query parameters for the history, my-transactions and admin listings."""
    page = serializers.IntegerField(min_value=1, required=False, default=1)
    per_page = serializers.IntegerField(min_value=1, max_value=100, required=False, default=15)
    status = serializers.ChoiceField(choices=Transaction.STATUS_CHOICES, required=False)
    gateway = serializers.CharField(required=False)
    transaction_type = serializers.ChoiceField(choices=Transaction.TYPE_CHOICES, required=False)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    customer_email = serializers.EmailField(required=False)
    search = serializers.CharField(max_length=255, required=False)

    def validate(self, attrs):
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'End date must be on or after the start date'})
        return attrs
