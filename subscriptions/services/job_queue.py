# subscriptions/services/job_queue.py
"""
Durable per-subscription FIFO queue for remote sync jobs.

A job is accepted once its SyncJob row is committed; the Celery task that
processes it is dispatched after commit to the subscription's partition
queue. Delivery is at-least-once: pending rows that were never picked up
are re-dispatched by ``redeliver_stale``.

Ordering per subscription is kept two ways: a row is only processed when no
earlier unfinished row exists for the same subscription, and a cache lock
is held around the remote call and the audit write.

Usage:
    queue = SyncJobQueue()
    accepted = queue.enqueue(SkipJob(subscription_id=123, customer_ref=456))
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import timedelta

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, transaction
from django.utils import timezone

from subscriptions.exceptions import MalformedJobError
from subscriptions.jobs import validate

logger = logging.getLogger(__name__)

LOCK_KEY = 'sync-lock:{subscription_id}'


def partition_queue(subscription_id, partitions=None):
    partitions = partitions or settings.SYNC_QUEUE_PARTITIONS
    return f"recharge_sync.{int(subscription_id) % partitions}"


class SyncJobQueue:

    # =========================================================================
    # PRODUCER SIDE
    # =========================================================================

    def enqueue(self, job) -> bool:
        """
        Durably record a job and schedule its delivery.

        Returns:
            True when the job row is stored; False for malformed jobs or a
            storage failure.
        """
        from subscriptions.models import SyncJob

        try:
            job = validate(job)
        except MalformedJobError as e:
            logger.error(f"Refusing malformed sync job {job!r}: {e}")
            return False

        try:
            with transaction.atomic():
                row = SyncJob.objects.create(
                    kind=job.kind,
                    subscription_id=job.subscription_id,
                    payload=job.as_payload(),
                )
                transaction.on_commit(lambda: self.dispatch(row))
        except DatabaseError:
            logger.exception(f"Could not store {job.kind} job for subscription {job.subscription_id}")
            return False

        logger.info(f"Enqueued {row}")
        return True

    def dispatch(self, row):
        """Send a stored row to its partition queue."""
        from subscriptions.models import SyncJob
        from subscriptions.tasks import process_sync_job

        queue = partition_queue(row.subscription_id)
        result = process_sync_job.apply_async(args=[row.pk], queue=queue)
        SyncJob.objects.filter(pk=row.pk).update(celery_task_id=result.id)
        logger.debug(f"Dispatched sync job {row.pk} to {queue} (task {result.id})")
        return result

    def redeliver_stale(self, older_than=None) -> int:
        """
        Re-dispatch pending rows created before ``now - older_than``.

        Returns:
            Number of rows re-dispatched
        """
        from subscriptions.models import SyncJob

        if older_than is None:
            older_than = timedelta(seconds=settings.SYNC_REDELIVERY_AFTER)
        cutoff = timezone.now() - older_than

        count = 0
        for row in SyncJob.objects.stale(cutoff).order_by('pk'):
            self.dispatch(row)
            count += 1
        if count:
            logger.warning(f"Redelivered {count} stale sync job(s) created before {cutoff.isoformat()}")
        return count

    # =========================================================================
    # CONSUMER SIDE
    # =========================================================================

    def next_for_subscription(self, subscription_id):
        from subscriptions.models import SyncJob
        return SyncJob.objects.for_subscription(subscription_id).unfinished().order_by('pk').first()

    def is_head(self, row) -> bool:
        """True when no earlier unfinished row exists for the same subscription."""
        from subscriptions.models import SyncJob
        return not SyncJob.objects.ahead_of(row).exists()

    @contextmanager
    def lock(self, subscription_id, timeout=None):
        """
        Per-subscription lock held across remote call and audit write.

        Yields:
            True when the lock was acquired
        """
        key = LOCK_KEY.format(subscription_id=int(subscription_id))
        token = uuid.uuid4().hex
        acquired = cache.add(key, token, timeout or settings.SYNC_LOCK_TIMEOUT)
        try:
            yield acquired
        finally:
            if acquired and cache.get(key) == token:
                cache.delete(key)
