from datetime import datetime, time

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Avg, Count, Q, Sum
from django.utils import timezone

from payment_gateway.models import Transaction

STATUS_ICONS = {
    'pending': '...',
    'processing': '...',
    'completed': 'OK',
    'failed': 'X',
    'refunded': '<-',
    'partially_refunded': '<-',
    'cancelled': '-',
    'expired': '-',
}


def _parse_date(value, option):
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise CommandError(f"{option} must be a date in YYYY-MM-DD format")


class Command(BaseCommand):
    help = "List payment transactions with optional filters and a summary"

    def add_arguments(self, parser):
        parser.add_argument('--status', help="Filter by status (pending, completed, failed, refunded, ...)")
        parser.add_argument('--gateway', help="Filter by gateway")
        parser.add_argument('--customer', help="Filter by customer email or name (substring)")
        parser.add_argument('--reference', help="Filter by transaction reference (substring)")
        parser.add_argument('--start-date', help="Created on or after this date (YYYY-MM-DD)")
        parser.add_argument('--end-date', help="Created on or before this date (YYYY-MM-DD)")
        parser.add_argument('--limit', type=int, default=50, help="Number of transactions to display")
        parser.add_argument('--summary', action='store_true', help="Show summary statistics")

    def filter_queryset(self, queryset, options):
        if options.get('status'):
            queryset = queryset.filter(status=options['status'])
        if options.get('gateway'):
            queryset = queryset.filter(gateway=options['gateway'].lower())
        if options.get('customer'):
            customer = options['customer']
            queryset = queryset.filter(
                Q(customer_email__icontains=customer) | Q(customer_name__icontains=customer)
            )
        if options.get('reference'):
            queryset = queryset.filter(reference__icontains=options['reference'])

        tz = timezone.get_current_timezone()
        if options.get('start_date'):
            start = _parse_date(options['start_date'], '--start-date')
            queryset = queryset.filter(created_at__gte=timezone.make_aware(datetime.combine(start, time.min), tz))
        if options.get('end_date'):
            end = _parse_date(options['end_date'], '--end-date')
            queryset = queryset.filter(created_at__lte=timezone.make_aware(datetime.combine(end, time.max), tz))
        return queryset

    def write_summary(self, queryset):
        totals = queryset.aggregate(
            total=Count('id'),
            revenue=Sum('amount', filter=Q(status='completed')),
            completed=Count('id', filter=Q(status='completed')),
            pending=Count('id', filter=Q(status='pending')),
            failed=Count('id', filter=Q(status='failed')),
            refunded=Count('id', filter=Q(status__in=['refunded', 'partially_refunded'])),
            average=Avg('amount', filter=Q(status='completed')),
        )
        self.stdout.write(self.style.MIGRATE_HEADING("Transaction summary"))
        self.stdout.write(f"  Total transactions: {totals['total']}")
        self.stdout.write(f"  Total revenue: {totals['revenue'] or 0:,.2f}")
        self.stdout.write(f"  Completed: {totals['completed']}")
        self.stdout.write(f"  Pending: {totals['pending']}")
        self.stdout.write(f"  Failed: {totals['failed']}")
        self.stdout.write(f"  Refunded: {totals['refunded']}")
        self.stdout.write(f"  Average amount: {totals['average'] or 0:,.2f}")

        breakdown = queryset.order_by().values('gateway').annotate(count=Count('id')).order_by('-count')
        if breakdown:
            self.stdout.write(self.style.MIGRATE_HEADING("By gateway"))
            for row in breakdown:
                share = round(row['count'] / totals['total'] * 100, 1) if totals['total'] else 0
                self.stdout.write(f"  {row['gateway']}: {row['count']} ({share}%)")
        self.stdout.write("")

    def handle(self, *args, **options):
        if options['limit'] < 1:
            raise CommandError("--limit must be at least 1")

        queryset = self.filter_queryset(Transaction.objects.all(), options)
        total = queryset.count()

        if total == 0:
            self.stdout.write(self.style.WARNING("No transactions found matching the given filters."))
            return

        if options['summary']:
            self.write_summary(queryset)

        self.stdout.write(
            f"{'Reference':<28} {'Gateway':<10} {'Amount':>16} {'Status':<22} {'Customer':<30} Created"
        )
        shown = 0
        for txn in queryset.order_by('-created_at')[:options['limit']]:
            status = f"{STATUS_ICONS.get(txn.status, '?')} {txn.status}"
            self.stdout.write(
                f"{txn.reference:<28} {txn.gateway:<10} {f'{txn.amount:,.2f} {txn.currency}':>16} "
                f"{status:<22} {(txn.customer_email or ''):<30} {txn.created_at:%Y-%m-%d %H:%M}"
            )
            shown += 1

        self.stdout.write(self.style.SUCCESS(f"Showing {shown} of {total} transactions"))
