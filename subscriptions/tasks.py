# subscriptions/tasks.py
"""
Celery tasks for the remote sync pipeline.

- process_sync_job: apply one stored SyncJob to the remote ledger
- send_notification: mail the outcome of a sync job
- push_subscription: send a locally updated subscription to the ledger
- redeliver_stale_jobs: re-dispatch pending jobs nobody picked up (beat)

Sync jobs are dispatched to partition queues (recharge_sync.N) so that all
jobs of one subscription are consumed by the same worker.
"""

import logging

import requests
from celery import shared_task
from django.conf import settings

from subscriptions.models import Subscription, SyncJob
from subscriptions.services.job_queue import SyncJobQueue
from subscriptions.services.notifications import deliver
from subscriptions.services.recharge_client import RechargeClient, is_success
from subscriptions.services.sync_worker import RemoteSyncWorker

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=20)
def process_sync_job(self, sync_job_id):
    """
    Process one SyncJob row.

    Waits (by retrying) while an earlier job for the same subscription is
    unfinished or another worker holds the subscription lock.

    Returns:
        {'status': ..., 'sync_job_id': ...}
    """
    row = SyncJob.objects.filter(pk=sync_job_id).first()
    if row is None:
        logger.error(f"Sync job {sync_job_id} not found")
        return {'status': 'missing', 'sync_job_id': sync_job_id}

    if row.is_complete():
        logger.info(f"Sync job {sync_job_id} already {row.status}; ignoring redelivery")
        return {'status': row.status, 'sync_job_id': sync_job_id}

    queue = SyncJobQueue()
    if not queue.is_head(row):
        logger.info(f"Sync job {sync_job_id} waiting for earlier jobs of subscription {row.subscription_id}")
        raise self.retry(countdown=settings.SYNC_RETRY_COUNTDOWN)

    with queue.lock(row.subscription_id) as acquired:
        if not acquired:
            logger.info(f"Subscription {row.subscription_id} locked; retrying sync job {sync_job_id}")
            raise self.retry(countdown=settings.SYNC_RETRY_COUNTDOWN)

        row.refresh_from_db()
        if row.is_complete():
            logger.info(f"Sync job {sync_job_id} finished by another worker; ignoring redelivery")
            return {'status': row.status, 'sync_job_id': sync_job_id}

        outcome = RemoteSyncWorker().process_row(row)

    return {
        'status': 'succeeded' if outcome.success else 'failed',
        'sync_job_id': sync_job_id,
        'action': outcome.action,
        'error': outcome.error,
    }


@shared_task(bind=True, max_retries=3)
def send_notification(self, kind, subscription_id, action, detail):
    """Send one notification email; retried on mail transport errors."""
    try:
        sent = deliver(kind, subscription_id, action, detail)
    except OSError as exc:
        logger.warning(f"Notification for subscription {subscription_id} failed: {exc}")
        raise self.retry(exc=exc, countdown=60)
    return {'status': 'sent' if sent else 'skipped', 'subscription_id': subscription_id}


@shared_task(bind=True, max_retries=3)
def push_subscription(self, subscription_id, keys=None):
    """
    Send the outbound representation of a local subscription to the ledger.

    Args:
        subscription_id: Local/remote subscription id
        keys: Remote keys to send (default: all mapped fields)
    """
    subscription = Subscription.objects.filter(pk=subscription_id).first()
    if subscription is None:
        logger.error(f"push_subscription: subscription {subscription_id} not found")
        return {'status': 'missing', 'subscription_id': subscription_id}

    from subscriptions.api_map import to_remote

    client = RechargeClient.from_settings()
    try:
        status, body = client.put(f"/subscriptions/{subscription_id}", to_remote(subscription, keys))
    except requests.RequestException as exc:
        logger.warning(f"push_subscription {subscription_id} failed: {exc}")
        raise self.retry(exc=exc, countdown=settings.SYNC_RETRY_COUNTDOWN)

    if not is_success(status):
        logger.error(f"Recharge rejected update of subscription {subscription_id}: {status} {body}")
        return {'status': 'failed', 'subscription_id': subscription_id, 'code': status}
    return {'status': 'pushed', 'subscription_id': subscription_id}


@shared_task
def redeliver_stale_jobs():
    count = SyncJobQueue().redeliver_stale()
    return {'redelivered': count}
