from django.core.management.base import BaseCommand, CommandError

from payment_gateway.gateways.factory import GATEWAY_REGISTRY
from payment_gateway.services import SubscriptionService


class Command(BaseCommand):
    help = "Charge subscriptions whose next billing date has passed"

    def add_arguments(self, parser):
        parser.add_argument('--gateway', help="Only process subscriptions on this gateway")
        parser.add_argument('--limit', type=int, default=100, help="Maximum number of subscriptions to process")
        parser.add_argument('--dry-run', action='store_true', help="Show what would be charged without charging")
        parser.add_argument('--force', action='store_true', help="Process every active subscription, due or not")
        parser.add_argument(
            '--expire-grace-periods',
            action='store_true',
            help="Also cancel past-due subscriptions whose grace period has ended",
        )

    def handle(self, *args, **options):
        gateway = options.get('gateway')
        if gateway and gateway.lower() not in GATEWAY_REGISTRY:
            raise CommandError(f"Unknown gateway '{gateway}'")
        if options['limit'] < 1:
            raise CommandError("--limit must be at least 1")

        if options['dry_run']:
            self.stdout.write(self.style.WARNING("Dry run: no payments will be charged"))

        run = SubscriptionService.process_renewals(
            gateway=gateway.lower() if gateway else None,
            limit=options['limit'],
            dry_run=options['dry_run'],
            force=options['force'],
        )

        for result in run['results']:
            line = f"{result['subscription']} [{result['gateway']}]: {result['outcome']}"
            if result.get('transaction'):
                line += f" ({result['transaction']})"
            if result.get('error'):
                line += f" - {result['error']}"

            if result['outcome'] in ('failed', 'error'):
                self.stdout.write(self.style.ERROR(line))
            else:
                self.stdout.write(line)

        if not run['results']:
            self.stdout.write("No subscriptions due for renewal.")

        summary = ', '.join(f"{outcome}: {count}" for outcome, count in sorted(run['counts'].items()))
        self.stdout.write(self.style.SUCCESS(
            f"Processed {len(run['results'])} subscriptions" + (f" ({summary})" if summary else "")
        ))

        if options['expire_grace_periods'] and not options['dry_run']:
            cancelled = SubscriptionService.expire_grace_periods()
            self.stdout.write(self.style.SUCCESS(f"Cancelled {cancelled} subscriptions after their grace period"))
