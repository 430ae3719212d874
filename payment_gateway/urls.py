"""
URL configuration for the payment_gateway app.

Two route sets are mounted from the same views:
- ``payment/``: web routes (namespace ``payment``)
- ``api/v1/payments/``: API routes (namespace ``payment-api``), which add
  my-transactions, subscriptions, public lookups and the admin API

Include this module at the project root:
    path('', include('payment_gateway.urls'))
"""

from django.urls import path, include
from . import admin_views, views
from .webhooks import handle_gateway_webhook


# Endpoints shared by both route sets
payment_patterns = [
    path(
        'initialize/',
        views.InitializePaymentView.as_view(),
        name='initialize'
    ),
    path(
        'verify/<str:reference>/',
        views.VerifyPaymentView.as_view(),
        name='verify'
    ),
    path(
        'status/<str:reference>/',
        views.PaymentStatusView.as_view(),
        name='status'
    ),
    path(
        'refund/<str:reference>/',
        views.RefundPaymentView.as_view(),
        name='refund'
    ),
    path(
        'retry/<str:reference>/',
        views.RetryPaymentView.as_view(),
        name='retry'
    ),
    path(
        'gateways/',
        views.GatewayListView.as_view(),
        name='gateways'
    ),
    path(
        'history/',
        views.TransactionHistoryView.as_view(),
        name='history'
    ),

    # Webhook endpoints
    path(
        'webhook/<str:gateway_name>/',
        handle_gateway_webhook,
        name='webhook'
    ),
]

admin_patterns = [
    path('statistics/', admin_views.AdminStatisticsView.as_view(), name='admin-statistics'),
    path('transactions/', admin_views.AdminTransactionListView.as_view(), name='admin-transactions'),
    path(
        'transactions/<uuid:transaction_id>/',
        admin_views.AdminTransactionDetailView.as_view(),
        name='admin-transaction-detail'
    ),
    path('gateways/', admin_views.AdminGatewayListView.as_view(), name='admin-gateways'),
    path('gateways/<str:gateway>/', admin_views.AdminGatewayUpdateView.as_view(), name='admin-gateway-update'),
    path('export/', admin_views.AdminExportView.as_view(), name='admin-export'),
    path('manual-payment/', admin_views.AdminManualPaymentView.as_view(), name='admin-manual-payment'),
    path('health/', admin_views.AdminHealthView.as_view(), name='admin-health'),
]

api_patterns = payment_patterns + [
    path(
        'my-transactions/',
        views.MyTransactionsView.as_view(),
        name='my-transactions'
    ),

    # Subscriptions
    path(
        'subscriptions/',
        views.SubscriptionListCreateView.as_view(),
        name='subscriptions'
    ),
    path(
        'subscriptions/<str:subscription_id>/',
        views.SubscriptionDetailView.as_view(),
        name='subscription-detail'
    ),
    path(
        'subscriptions/<str:subscription_id>/transactions/',
        views.SubscriptionTransactionsView.as_view(),
        name='subscription-transactions'
    ),

    # Public lookups
    path(
        'public/status/<str:reference>/',
        views.PublicPaymentStatusView.as_view(),
        name='public-status'
    ),
    path(
        'public/currencies/',
        views.CurrencyListView.as_view(),
        name='public-currencies'
    ),

    path('admin/', include(admin_patterns)),
]

urlpatterns = [
    path('payment/', include((payment_patterns, 'payment'))),
    path('api/v1/payments/', include((api_patterns, 'payment-api'))),
]
