from django.core.management.base import BaseCommand, CommandError

from payment_gateway.gateways.factory import GATEWAY_REGISTRY
from payment_gateway.manager import PaymentManager


class Command(BaseCommand):
    help = "Check that a payment gateway is configured and reachable (use sandbox credentials)"

    def add_arguments(self, parser):
        parser.add_argument('gateway', nargs='?', help="Gateway to test, e.g. payfast")
        parser.add_argument('--all', action='store_true', help="Test every enabled gateway")

    def handle(self, *args, **options):
        manager = PaymentManager()

        if options['all']:
            gateways = list(manager.get_available_gateways().keys())
            if not gateways:
                raise CommandError("No payment gateways are enabled")
        elif options.get('gateway'):
            name = options['gateway'].lower().strip()
            if name not in GATEWAY_REGISTRY:
                raise CommandError(
                    f"Unknown gateway '{name}'. Supported gateways: {', '.join(GATEWAY_REGISTRY)}"
                )
            if not manager.is_gateway_available(name):
                raise CommandError(f"Gateway '{name}' is not enabled")
            gateways = [name]
        else:
            raise CommandError("Give a gateway name or --all")

        failures = 0
        for name in gateways:
            config = manager.get_gateway_config(name)
            mode = 'test' if config.get('test_mode', True) else 'LIVE'
            self.stdout.write(f"Testing {manager.get_gateway_display_name(name)} ({mode} mode)...")

            result = manager.test_gateway_connection(name)
            line = f"  {result['message']} [{result['response_time_ms']} ms]"
            if result['success']:
                self.stdout.write(self.style.SUCCESS(line))
            else:
                failures += 1
                self.stdout.write(self.style.ERROR(line))

        if failures:
            raise CommandError(f"{failures} of {len(gateways)} gateway(s) failed the connection test")

        self.stdout.write(self.style.SUCCESS(f"{len(gateways)} gateway(s) passed the connection test"))
