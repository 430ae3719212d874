import logging
import uuid

from django.contrib.contenttypes.models import ContentType
from django.core.paginator import EmptyPage, Paginator
from django.db.models import Q
from rest_framework import status, views
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from .exceptions import PaymentGatewayException
from .manager import PaymentManager
from .models import Subscription, Transaction
from .serializers import (
    CancelSubscriptionSerializer,
    CreateSubscriptionSerializer,
    InitializePaymentSerializer,
    RefundSerializer,
    SubscriptionSerializer,
    TransactionFilterSerializer,
    TransactionSerializer,
    UpdateSubscriptionSerializer,
)
from .services import PaymentService, SubscriptionService
from .throttling import PaymentRateThrottle

logger = logging.getLogger(__name__)


def client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def owns(user, obj) -> bool:
    """True if ``obj`` (a Transaction or Subscription) belongs to ``user``."""
    if not user or not user.is_authenticated:
        return False
    return (
        obj.user_type_id == ContentType.objects.get_for_model(user).id
        and obj.user_id == str(user.pk)
    )


def can_manage(user, obj) -> bool:
    return bool(user and user.is_authenticated and user.is_staff) or owns(user, obj)


def filter_transactions(queryset, params):
    """Apply validated TransactionFilterSerializer values to a queryset."""
    if params.get('status'):
        queryset = queryset.filter(status=params['status'])
    if params.get('gateway'):
        queryset = queryset.filter(gateway=params['gateway'].lower())
    if params.get('transaction_type'):
        queryset = queryset.filter(transaction_type=params['transaction_type'])
    if params.get('customer_email'):
        queryset = queryset.filter(customer_email__iexact=params['customer_email'])
    if params.get('start_date'):
        queryset = queryset.filter(created_at__date__gte=params['start_date'])
    if params.get('end_date'):
        queryset = queryset.filter(created_at__date__lte=params['end_date'])
    if params.get('search'):
        search = params['search']
        queryset = queryset.filter(
            Q(reference__icontains=search)
            | Q(description__icontains=search)
            | Q(customer_name__icontains=search)
            | Q(customer_email__icontains=search)
        )
    return queryset.order_by('-created_at')


def paginate(queryset, page_number, per_page):
    """
    Slice a queryset into one page.

    Returns:
        Tuple of (page object list, pagination dict)
    """
    paginator = Paginator(queryset, per_page)
    try:
        page = paginator.page(page_number)
    except EmptyPage:
        page = paginator.page(paginator.num_pages)
    return page.object_list, {
        'current_page': page.number,
        'per_page': per_page,
        'total': paginator.count,
        'last_page': paginator.num_pages,
        'has_next': page.has_next(),
        'has_previous': page.has_previous(),
    }


class PaymentAPIView(views.APIView):
    """
    Base view for the payment endpoints.

    Every response uses the same envelope: ``success`` and ``message``,
    plus ``error`` / ``error_details`` when something went wrong.
    """
    permission_classes = [AllowAny]
    throttle_classes = [PaymentRateThrottle]

    def validation_failed(self, errors):
        return Response(
            {'success': False, 'message': 'Validation failed', 'errors': errors},
            status=status.HTTP_422_UNPROCESSABLE_ENTITY
        )

    def gateway_failed(self, exc: PaymentGatewayException, message: str, **extra):
        return Response(
            {
                'success': False,
                'message': message,
                'error': exc.message,
                'error_code': exc.error_code,
                'error_details': exc.get_errors(),
                **extra,
            },
            status=status.HTTP_400_BAD_REQUEST
        )

    def not_found(self, message: str, **extra):
        return Response(
            {'success': False, 'message': message, **extra},
            status=status.HTTP_404_NOT_FOUND
        )

    def forbidden(self, message: str = 'You do not have permission to manage this resource'):
        return Response(
            {'success': False, 'message': message},
            status=status.HTTP_403_FORBIDDEN
        )

    def unexpected_error(self, exc: Exception, message: str, **extra):
        logger.error(f"{message}: {str(exc)}", exc_info=True)
        return Response(
            {'success': False, 'message': message, 'error': 'An unexpected error occurred', **extra},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    def get_transaction(self, reference):
        return Transaction.objects.filter(reference=reference).first()


class InitializePaymentView(PaymentAPIView):
    """
    Start a payment with a gateway.

    Request body:
        - gateway (str, optional): Gateway name, defaults to the configured default
        - amount (decimal): Payment amount
        - currency (str, optional)
        - description, customer_email, customer_name, customer_phone
        - return_url, cancel_url (optional)
        - metadata (dict, optional)
    """

    def post(self, request):
        serializer = InitializePaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return self.validation_failed(serializer.errors)

        data = serializer.validated_data
        gateway = data.get('gateway') or None

        try:
            txn, result = PaymentService.initialize_payment(
                gateway,
                data['amount'],
                currency=data.get('currency') or None,
                description=data.get('description') or None,
                customer={
                    'email': data.get('customer_email'),
                    'name': data.get('customer_name'),
                    'phone': data.get('customer_phone'),
                },
                return_url=data.get('return_url') or None,
                cancel_url=data.get('cancel_url') or None,
                metadata=data.get('metadata'),
                owner=request.user if request.user.is_authenticated else None,
                ip_address=client_ip(request),
                user_agent=request.META.get('HTTP_USER_AGENT'),
            )
        except PaymentGatewayException as e:
            return self.gateway_failed(e, 'Payment initialization failed', gateway=gateway)
        except Exception as e:
            return self.unexpected_error(e, 'Payment initialization error', gateway=gateway)

        return Response(
            {
                'success': True,
                'message': 'Payment initialized successfully',
                'data': result.to_dict(),
                'transaction': TransactionSerializer(txn).data,
            },
            status=status.HTTP_201_CREATED
        )


class VerifyPaymentView(PaymentAPIView):
    """Ask the gateway for the latest state of a payment and store it."""

    def get(self, request, reference):
        txn = self.get_transaction(reference)
        if txn is None:
            return self.not_found('Transaction not found', transaction_reference=reference)

        try:
            result = PaymentService.verify_payment(txn)
        except PaymentGatewayException as e:
            return self.gateway_failed(e, 'Payment verification failed', transaction_reference=reference)
        except Exception as e:
            return self.unexpected_error(e, 'Payment verification error', transaction_reference=reference)

        txn.refresh_from_db()
        return Response({
            'success': True,
            'message': 'Payment verification completed',
            'transaction': TransactionSerializer(txn).data,
            'verification_result': result.to_dict(),
        })


class PaymentStatusView(PaymentAPIView):
    """
    Current status of a payment. Pending payments are re-checked with the
    gateway first.
    """

    def get(self, request, reference):
        txn = self.get_transaction(reference)
        if txn is None:
            return self.not_found('Transaction not found', transaction_reference=reference)

        try:
            PaymentService.refresh_status(txn)
        except Exception as e:
            return self.unexpected_error(e, 'Failed to get payment status', transaction_reference=reference)

        return Response({
            'success': True,
            'message': 'Payment status retrieved',
            'transaction': TransactionSerializer(txn).data,
            'can_retry': txn.can_retry(),
            'is_locked': txn.is_locked(),
        })


class RefundPaymentView(PaymentAPIView):
    """
    Refund a payment in full or in part.

    Request body:
        - amount (decimal, optional): Defaults to the refundable amount
        - reason (str, optional)
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, reference):
        serializer = RefundSerializer(data=request.data)
        if not serializer.is_valid():
            return self.validation_failed(serializer.errors)

        txn = self.get_transaction(reference)
        if txn is None:
            return self.not_found('Transaction not found', transaction_reference=reference)
        if not can_manage(request.user, txn):
            return self.forbidden()

        try:
            refund = PaymentService.refund_payment(
                txn,
                amount=serializer.validated_data.get('amount'),
                reason=serializer.validated_data.get('reason') or None,
            )
        except PaymentGatewayException as e:
            return self.gateway_failed(
                e,
                'Refund processing failed',
                transaction_reference=reference,
                refundable_amount=str(txn.refundable_amount()),
            )
        except Exception as e:
            return self.unexpected_error(e, 'Refund processing error', transaction_reference=reference)

        txn.refresh_from_db()
        return Response({
            'success': True,
            'message': 'Refund processed successfully',
            'original_transaction': TransactionSerializer(txn).data,
            'refund_transaction': TransactionSerializer(refund).data,
        })


class RetryPaymentView(PaymentAPIView):
    """Queue a failed payment for another attempt."""
    permission_classes = [IsAuthenticated]

    def post(self, request, reference):
        txn = self.get_transaction(reference)
        if txn is None:
            return self.not_found('Transaction not found', transaction_reference=reference)
        if not can_manage(request.user, txn):
            return self.forbidden()

        if not txn.can_retry():
            return Response(
                {
                    'success': False,
                    'message': 'Transaction cannot be retried',
                    'can_retry': False,
                    'attempts': txn.attempts,
                    'max_attempts': txn.max_attempts,
                    'status': txn.status,
                },
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            PaymentService.schedule_retry(txn)
        except PaymentGatewayException as e:
            return self.gateway_failed(e, 'Transaction cannot be retried', transaction_reference=reference)

        return Response({
            'success': True,
            'message': 'Transaction marked for retry',
            'transaction': TransactionSerializer(txn).data,
            'retry_at': txn.retry_at.isoformat() if txn.retry_at else None,
            'next_attempt': txn.attempts,
        })


class GatewayListView(PaymentAPIView):
    """Enabled gateways with overall payment statistics."""

    def get(self, request):
        manager = PaymentManager()
        try:
            return Response({
                'success': True,
                'message': 'Available payment gateways retrieved',
                'data': {
                    'gateways': manager.get_available_gateways(),
                    'statistics': manager.get_statistics(),
                    'default_gateway': manager.get_default_driver(),
                },
            })
        except Exception as e:
            return self.unexpected_error(e, 'Failed to get payment gateways')


class TransactionHistoryView(PaymentAPIView):
    """
    Paginated transaction history with filters.

    Staff see every transaction; other users only their own.

    Query params:
        page, per_page (max 100), status, gateway, transaction_type,
        start_date, end_date, customer_email, search
    """
    permission_classes = [IsAuthenticated]

    def get_queryset(self, request):
        if request.user.is_staff:
            return Transaction.objects.all()
        return Transaction.objects.for_user(request.user)

    def get(self, request):
        filters = TransactionFilterSerializer(data=request.query_params)
        if not filters.is_valid():
            return self.validation_failed(filters.errors)
        params = filters.validated_data

        queryset = filter_transactions(self.get_queryset(request), params)
        page, pagination = paginate(queryset, params['page'], params['per_page'])

        return Response({
            'success': True,
            'message': 'Transaction history retrieved',
            'data': {
                'transactions': TransactionSerializer(page, many=True).data,
                'pagination': pagination,
                'stats': PaymentService.history_stats(queryset),
            },
        })


class MyTransactionsView(TransactionHistoryView):
    """The authenticated user's own transactions, even for staff."""

    def get_queryset(self, request):
        return Transaction.objects.for_user(request.user)


class PublicPaymentStatusView(PaymentAPIView):
    """Minimal, unauthenticated status lookup for payment return pages."""

    def get(self, request, reference):
        txn = self.get_transaction(reference)
        if txn is None:
            return self.not_found('Transaction not found', transaction_reference=reference)
        return Response({
            'success': True,
            'data': {
                'reference': txn.reference,
                'status': txn.status,
                'status_label': txn.status_label,
                'formatted_amount': txn.formatted_amount,
                'is_successful': txn.is_successful,
                'is_pending': txn.is_pending,
            },
        })


class CurrencyListView(PaymentAPIView):
    def get(self, request):
        manager = PaymentManager()
        return Response({
            'success': True,
            'data': {
                'currencies': manager.get_all_supported_currencies(),
                'by_gateway': {
                    name: info['supported_currencies']
                    for name, info in manager.get_available_gateways().items()
                },
            },
        })


# Subscriptions

class SubscriptionMixin:
    def get_subscription(self, request, subscription_id):
        """Look a subscription up by ID or reference, scoped to the user unless staff."""
        queryset = Subscription.objects.all()
        if not request.user.is_staff:
            queryset = queryset.for_user(request.user)

        lookup = Q(reference=subscription_id)
        try:
            lookup |= Q(id=uuid.UUID(str(subscription_id)))
        except ValueError:
            pass
        return queryset.filter(lookup).first()


class SubscriptionListCreateView(SubscriptionMixin, PaymentAPIView):
    """
    list: The user's subscriptions, optionally filtered by ``status``
    create: Start a new subscription
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        queryset = Subscription.objects.for_user(request.user)
        if request.query_params.get('status'):
            queryset = queryset.filter(status=request.query_params['status'])
        return Response({
            'success': True,
            'data': SubscriptionSerializer(queryset.order_by('-created_at'), many=True).data,
        })

    def post(self, request):
        serializer = CreateSubscriptionSerializer(data=request.data)
        if not serializer.is_valid():
            return self.validation_failed(serializer.errors)
        data = serializer.validated_data

        try:
            subscription = SubscriptionService.create_subscription(
                data.get('gateway') or None,
                data['amount'],
                currency=data.get('currency') or None,
                frequency=data['frequency'],
                interval_count=data['interval_count'],
                description=data.get('description') or None,
                customer={
                    'email': data.get('customer_email') or getattr(request.user, 'email', None),
                    'name': data.get('customer_name'),
                    'phone': data.get('customer_phone'),
                },
                owner=request.user,
                start_date=data.get('start_date'),
                end_date=data.get('end_date'),
                trial_days=data.get('trial_days') or 0,
                plan_code=data.get('plan_code') or None,
                metadata=data.get('metadata'),
            )
        except PaymentGatewayException as e:
            return self.gateway_failed(e, 'Subscription creation failed')
        except Exception as e:
            return self.unexpected_error(e, 'Subscription creation error')

        return Response(
            {
                'success': True,
                'message': 'Subscription created successfully',
                'data': SubscriptionSerializer(subscription).data,
            },
            status=status.HTTP_201_CREATED
        )


class SubscriptionDetailView(SubscriptionMixin, PaymentAPIView):
    """
    retrieve: Subscription details
    update (PUT): Change amount, description, customer details, auto_renew or end_date
    destroy (DELETE): Cancel, at period end by default
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, subscription_id):
        subscription = self.get_subscription(request, subscription_id)
        if subscription is None:
            return self.not_found('Subscription not found', subscription_id=subscription_id)
        return Response({'success': True, 'data': SubscriptionSerializer(subscription).data})

    def put(self, request, subscription_id):
        subscription = self.get_subscription(request, subscription_id)
        if subscription is None:
            return self.not_found('Subscription not found', subscription_id=subscription_id)

        serializer = UpdateSubscriptionSerializer(subscription, data=request.data, partial=True)
        if not serializer.is_valid():
            return self.validation_failed(serializer.errors)

        subscription = SubscriptionService.update_subscription(subscription, **serializer.validated_data)
        return Response({
            'success': True,
            'message': 'Subscription updated successfully',
            'data': SubscriptionSerializer(subscription).data,
        })

    def delete(self, request, subscription_id):
        subscription = self.get_subscription(request, subscription_id)
        if subscription is None:
            return self.not_found('Subscription not found', subscription_id=subscription_id)

        serializer = CancelSubscriptionSerializer(data=request.data or request.query_params)
        if not serializer.is_valid():
            return self.validation_failed(serializer.errors)

        try:
            subscription = SubscriptionService.cancel_subscription(
                subscription,
                at_period_end=serializer.validated_data.get('cancel_at_period_end', True),
                reason=serializer.validated_data.get('reason') or None,
            )
        except PaymentGatewayException as e:
            return self.gateway_failed(e, 'Subscription cancellation failed')

        return Response({
            'success': True,
            'message': 'Subscription cancelled successfully',
            'data': SubscriptionSerializer(subscription).data,
        })


class SubscriptionTransactionsView(SubscriptionMixin, PaymentAPIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, subscription_id):
        subscription = self.get_subscription(request, subscription_id)
        if subscription is None:
            return self.not_found('Subscription not found', subscription_id=subscription_id)

        transactions = subscription.transactions().order_by('-created_at')
        return Response({
            'success': True,
            'data': {
                'subscription': subscription.reference,
                'transactions': TransactionSerializer(transactions, many=True).data,
                'stats': PaymentService.history_stats(transactions),
            },
        })
