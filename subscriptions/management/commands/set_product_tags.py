"""
Management command to open monthly product tag windows.
Run: python manage.py set_product_tags --month 2018-02 --product 138427301906 --tags current,skippable,switchable
"""
from datetime import datetime

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from subscriptions.billing_cycle import end_of_month, start_of_month
from subscriptions.models import ProductTag


class Command(BaseCommand):
    help = 'Tag products for a billing month (closes earlier open windows)'

    def add_arguments(self, parser):
        parser.add_argument('--month', help='Month as YYYY-MM (default: current month)')
        parser.add_argument('--product', action='append', dest='products', required=True,
                            help='Product id; repeat for several products')
        parser.add_argument('--tags', default=ProductTag.TAG_CURRENT,
                            help='Comma separated tags (current, prepaid, skippable, switchable)')
        parser.add_argument('--theme', default='', help='Theme id the tags apply to')
        parser.add_argument('--sunset', action='store_true',
                            help='Close every open window before the month starts')
        parser.add_argument('--open-ended', action='store_true',
                            help='Leave the new windows open instead of ending them with the month')

    def handle(self, *args, **options):
        month_start = self._month_start(options['month'])
        month_end = None if options['open_ended'] else end_of_month(month_start)

        valid_tags = {choice for choice, _ in ProductTag.TAG_CHOICES}
        tags = [tag.strip() for tag in options['tags'].split(',') if tag.strip()]
        unknown = set(tags) - valid_tags
        if unknown:
            raise CommandError(f"Unknown tag(s): {', '.join(sorted(unknown))}")

        try:
            products = [int(product_id) for product_id in options['products']]
        except ValueError:
            raise CommandError('Product ids must be numbers')

        created_count = 0
        with transaction.atomic():
            if options['sunset']:
                closed = ProductTag.objects.open().filter(active_start__lt=month_start).update(
                    active_end=month_start - ProductTag.TICK
                )
                self.stdout.write(f'  Closed {closed} open window(s)')

            for product_id in products:
                for tag in tags:
                    window, created = ProductTag.open_window(
                        product_id, tag, month_start, end=month_end, theme_id=options['theme']
                    )
                    if created:
                        created_count += 1
                        self.stdout.write(self.style.SUCCESS(f'  Created: {window}'))
                    else:
                        self.stdout.write(f'  Exists: {window}')

        self.stdout.write(self.style.SUCCESS(f'\nDone! {created_count} tag window(s) created.'))

    def _month_start(self, month):
        if not month:
            return start_of_month(timezone.now())
        try:
            naive = datetime.strptime(month, '%Y-%m')
        except ValueError:
            raise CommandError('--month must look like YYYY-MM')
        return start_of_month(timezone.make_aware(naive))
