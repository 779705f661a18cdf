"""
Management command to re-dispatch pending sync jobs.
Run: python manage.py redeliver_sync_jobs --older-than 900
"""
from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand

from subscriptions.services.job_queue import SyncJobQueue


class Command(BaseCommand):
    help = 'Re-dispatch pending sync jobs that were never processed'

    def add_arguments(self, parser):
        parser.add_argument('--older-than', type=int, default=settings.SYNC_REDELIVERY_AFTER,
                            help='Only jobs created more than this many seconds ago')

    def handle(self, *args, **options):
        count = SyncJobQueue().redeliver_stale(timedelta(seconds=options['older_than']))
        self.stdout.write(self.style.SUCCESS(f'Redelivered {count} sync job(s).'))
