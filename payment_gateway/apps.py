from django.apps import AppConfig


class PaymentGatewayConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payment_gateway"
    verbose_name = "Payment Gateway"

    def ready(self):
        """
        Import signal receivers when the app is ready so payment events
        queue their notifications from the first request onwards.
        """
        import payment_gateway.signals  # noqa: F401
