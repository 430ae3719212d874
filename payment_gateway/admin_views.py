"""
Staff-only payment administration API, mounted under
``/api/v1/payments/admin/``.
"""

import csv
import logging
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.db import connection
from django.db.models import Count, Sum
from django.http import HttpResponse
from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from .conf import get_config, set_gateway_override
from .exceptions import PaymentGatewayException
from .gateways.factory import GATEWAY_REGISTRY
from .manager import PaymentManager
from .models import Subscription, Transaction
from .serializers import (
    AdminGatewayUpdateSerializer,
    AdminTransactionUpdateSerializer,
    ManualPaymentSerializer,
    TransactionFilterSerializer,
    TransactionSerializer,
)
from .services import PaymentService
from .views import PaymentAPIView, filter_transactions, paginate

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    'reference',
    'gateway',
    'gateway_transaction_id',
    'transaction_type',
    'amount',
    'currency',
    'status',
    'description',
    'customer_email',
    'customer_name',
    'payment_method',
    'fee_amount',
    'net_amount',
    'refund_amount',
    'created_at',
    'completed_at',
]


class AdminAPIView(PaymentAPIView):
    permission_classes = [IsAdminUser]


class AdminStatisticsView(AdminAPIView):
    """
    Dashboard figures: overall statistics plus breakdowns by status and
    gateway, subscription counts and the latest transactions.
    """

    def get(self, request):
        gateway = request.query_params.get('gateway') or None
        payments = Transaction.objects.payments()
        if gateway:
            payments = payments.for_gateway(gateway)

        by_status = {
            row['status']: row['count']
            for row in payments.values('status').annotate(count=Count('id')).order_by()
        }
        by_gateway = [
            {
                'gateway': row['gateway'],
                'count': row['count'],
                'total_amount': str(row['total'] or Decimal('0.00')),
            }
            for row in payments.filter(status='completed')
            .values('gateway')
            .annotate(count=Count('id'), total=Sum('amount'))
            .order_by('-total')
        ]
        since = timezone.now() - timedelta(days=30)
        recent_total = payments.filter(status='completed', completed_at__gte=since).aggregate(
            total=Sum('amount')
        )['total']

        return Response({
            'success': True,
            'data': {
                'statistics': PaymentManager().get_statistics(gateway),
                'by_status': by_status,
                'by_gateway': by_gateway,
                'last_30_days_amount': str(recent_total or Decimal('0.00')),
                'refunded_amount': str(
                    Transaction.objects.filter(transaction_type='refund', status='completed')
                    .aggregate(total=Sum('amount'))['total'] or Decimal('0.00')
                ),
                'subscriptions': {
                    'active': Subscription.objects.active().count(),
                    'past_due': Subscription.objects.filter(status='past_due').count(),
                    'cancelled': Subscription.objects.filter(status='cancelled').count(),
                },
                'recent_transactions': TransactionSerializer(payments.order_by('-created_at')[:10], many=True).data,
            },
        })


class AdminTransactionListView(AdminAPIView):
    """Every transaction, including refunds and retries, with the history filters."""

    def get(self, request):
        filters = TransactionFilterSerializer(data=request.query_params)
        if not filters.is_valid():
            return self.validation_failed(filters.errors)
        params = filters.validated_data

        queryset = filter_transactions(Transaction.objects.all(), params)
        page, pagination = paginate(queryset, params['page'], params['per_page'])

        return Response({
            'success': True,
            'data': {
                'transactions': TransactionSerializer(page, many=True).data,
                'pagination': pagination,
                'stats': PaymentService.history_stats(queryset),
            },
        })


class AdminTransactionDetailView(AdminAPIView):
    """
    retrieve: Transaction with its refunds and retries
    partial_update (PATCH): Change status, notes or metadata
    """

    def get_object(self, transaction_id):
        return Transaction.objects.filter(id=transaction_id).first()

    def get(self, request, transaction_id):
        txn = self.get_object(transaction_id)
        if txn is None:
            return self.not_found('Transaction not found', transaction_id=str(transaction_id))

        return Response({
            'success': True,
            'data': {
                'transaction': TransactionSerializer(txn).data,
                'children': TransactionSerializer(txn.child_transactions.order_by('created_at'), many=True).data,
                'notes': txn.notes,
                'ip_address': txn.ip_address,
                'user_agent': txn.user_agent,
                'error_details': txn.error_details,
            },
        })

    def patch(self, request, transaction_id):
        txn = self.get_object(transaction_id)
        if txn is None:
            return self.not_found('Transaction not found', transaction_id=str(transaction_id))

        serializer = AdminTransactionUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return self.validation_failed(serializer.errors)
        data = serializer.validated_data

        new_status = data.get('status')
        if new_status and new_status != txn.status:
            if not txn.can_transition_to(new_status):
                return Response(
                    {
                        'success': False,
                        'message': f"Cannot change status from {txn.status} to {new_status}",
                        'status': txn.status,
                    },
                    status=status.HTTP_400_BAD_REQUEST
                )
            PaymentService.apply_status(txn, new_status)
            logger.info(
                f"Transaction {txn.reference} set to {new_status} by staff",
                extra={'reference': txn.reference, 'user_id': request.user.pk}
            )

        fields = []
        if 'notes' in data:
            txn.notes = data['notes']
            fields.append('notes')
        if data.get('metadata'):
            txn.metadata = {**(txn.metadata or {}), **data['metadata']}
            fields.append('metadata')
        if fields:
            txn.save(update_fields=fields + ['updated_at'])

        return Response({
            'success': True,
            'message': 'Transaction updated successfully',
            'data': TransactionSerializer(txn).data,
        })


class AdminGatewayListView(AdminAPIView):
    """Every registered gateway with its switches and payment counts."""

    def get(self, request):
        manager = PaymentManager()
        gateways_config = get_config().get('gateways', {})
        counts = {
            row['gateway']: row
            for row in Transaction.objects.payments()
            .values('gateway')
            .annotate(total=Count('id'), volume=Sum('amount'))
            .order_by()
        }

        gateways = []
        for name in GATEWAY_REGISTRY:
            config = gateways_config.get(name, {})
            row = counts.get(name, {})
            gateways.append({
                'name': name,
                'display_name': manager.get_gateway_display_name(name),
                'enabled': bool(config.get('enabled', False)),
                'test_mode': bool(config.get('test_mode', True)),
                'supported_currencies': manager.get_supported_currencies(name),
                'transaction_count': row.get('total', 0),
                'transaction_volume': str(row.get('volume') or Decimal('0.00')),
            })

        return Response({
            'success': True,
            'data': {
                'gateways': gateways,
                'default_gateway': manager.get_default_driver(),
            },
        })


class AdminGatewayUpdateView(AdminAPIView):
    """
    Switch a gateway on or off, or in and out of test mode, at runtime.

    Credentials stay in settings; only ``enabled`` and ``test_mode`` can be
    changed here.
    """

    def patch(self, request, gateway):
        gateway = gateway.lower()
        if gateway not in GATEWAY_REGISTRY:
            return self.not_found(f"Unknown payment gateway: {gateway}", gateway=gateway)

        serializer = AdminGatewayUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return self.validation_failed(serializer.errors)
        if not serializer.validated_data:
            return self.validation_failed({'non_field_errors': ['Provide enabled and/or test_mode']})

        override = set_gateway_override(gateway, dict(serializer.validated_data))
        logger.info(
            f"Gateway {gateway} updated by staff",
            extra={'gateway': gateway, 'override': override, 'user_id': request.user.pk}
        )

        config = get_config()['gateways'].get(gateway, {})
        return Response({
            'success': True,
            'message': 'Gateway updated successfully',
            'data': {
                'name': gateway,
                'enabled': bool(config.get('enabled', False)),
                'test_mode': bool(config.get('test_mode', True)),
            },
        })


class AdminExportView(AdminAPIView):
    """Download the (filtered) transactions as CSV."""

    def get(self, request):
        filters = TransactionFilterSerializer(data=request.query_params)
        if not filters.is_valid():
            return self.validation_failed(filters.errors)

        queryset = filter_transactions(Transaction.objects.all(), filters.validated_data)

        response = HttpResponse(content_type='text/csv')
        filename = f"transactions-{timezone.now():%Y%m%d-%H%M%S}.csv"
        response['Content-Disposition'] = f'attachment; filename="{filename}"'

        writer = csv.writer(response)
        writer.writerow(EXPORT_COLUMNS)
        for txn in queryset.iterator():
            row = []
            for column in EXPORT_COLUMNS:
                value = getattr(txn, column)
                row.append(value.isoformat() if hasattr(value, 'isoformat') else ('' if value is None else value))
            writer.writerow(row)

        logger.info(f"Transactions exported by staff user {request.user.pk}")
        return response

    post = get


class AdminManualPaymentView(AdminAPIView):
    """
    Record a payment received outside the gateways, e.g. a reconciled
    bank deposit. No gateway is called.
    """

    def post(self, request):
        serializer = ManualPaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return self.validation_failed(serializer.errors)
        data = serializer.validated_data

        txn = Transaction.objects.create(
            gateway=data['gateway'],
            gateway_transaction_id=data.get('gateway_transaction_id') or None,
            amount=data['amount'],
            currency=(data.get('currency') or get_config()['transaction'].get('currency', 'ZAR')).upper(),
            status='pending',
            description=data.get('description') or 'Manual payment',
            customer_email=data.get('customer_email') or None,
            customer_name=data.get('customer_name') or None,
            payment_method='manual',
            notes=data.get('notes') or None,
            metadata={'manual': True, 'recorded_by': str(request.user.pk)},
            ip_address=request.META.get('REMOTE_ADDR'),
        )
        if data['status'] == 'completed':
            PaymentService.apply_status(txn, 'completed')

        logger.info(
            f"Manual payment {txn.reference} recorded",
            extra={'reference': txn.reference, 'user_id': request.user.pk, 'amount': str(txn.amount)}
        )

        return Response(
            {
                'success': True,
                'message': 'Manual payment recorded successfully',
                'data': TransactionSerializer(txn).data,
            },
            status=status.HTTP_201_CREATED
        )


class AdminHealthView(AdminAPIView):
    """
    Database, cache and gateway checks plus stuck-payment counts.
    Responds 503 when a core dependency is down.
    """

    def get(self, request):
        checks = {}

        try:
            with connection.cursor() as cursor:
                cursor.execute('SELECT 1')
            checks['database'] = {'status': 'ok'}
        except Exception as e:
            logger.error(f"Health check database failure: {str(e)}", exc_info=True)
            checks['database'] = {'status': 'error', 'message': str(e)}

        try:
            cache.set('payment_gateway:health', 'ok', 10)
            cache_ok = cache.get('payment_gateway:health') == 'ok'
            checks['cache'] = {'status': 'ok' if cache_ok else 'error'}
        except Exception as e:
            logger.error(f"Health check cache failure: {str(e)}", exc_info=True)
            checks['cache'] = {'status': 'error', 'message': str(e)}

        manager = PaymentManager()
        gateways = {}
        for name in manager.get_available_gateways():
            try:
                manager.gateway(name)
                gateways[name] = {'status': 'ok'}
            except PaymentGatewayException as e:
                gateways[name] = {'status': 'error', 'message': e.message}
        checks['gateways'] = gateways

        healthy = all(checks[key]['status'] == 'ok' for key in ('database', 'cache'))
        now = timezone.now()
        payload = {
            'success': healthy,
            'status': 'healthy' if healthy else 'unhealthy',
            'checks': checks,
            'timestamp': now.isoformat(),
        }
        if checks['database']['status'] == 'ok':
            payload['metrics'] = {
                'stale_pending': Transaction.objects.pending().filter(
                    created_at__lte=now - timedelta(hours=1)
                ).count(),
                'failed_last_24h': Transaction.objects.failed().filter(
                    created_at__gte=now - timedelta(hours=24)
                ).count(),
                'locked': Transaction.objects.filter(locked_until__gt=now).count(),
                'subscriptions_past_due': Subscription.objects.filter(status='past_due').count(),
            }

        return Response(payload, status=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE)
