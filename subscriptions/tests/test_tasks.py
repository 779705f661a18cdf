"""
Tests for the Celery tasks (called directly, as the eager worker would).

Verifies:
- process_sync_job waits for earlier jobs and for the subscription lock
- Completed rows are not processed again
- Notification mail goes to the customer or to customer service
- push_subscription sends the outbound representation
"""

import pytest
from celery.exceptions import Retry
from django.core import mail
from django.core.cache import cache

from subscriptions.models import SyncJob
from subscriptions.services.job_queue import SyncJobQueue
from subscriptions.services.notifications import CeleryNotificationSink
from subscriptions.services.sync_worker import SyncOutcome
from subscriptions.tasks import process_sync_job, push_subscription, send_notification
from subscriptions.tests.conftest import FakeLedgerClient


class FakeWorker:
    processed = []

    def process_row(self, row, now=None):
        FakeWorker.processed.append(row.pk)
        row.mark_running()
        row.mark_finished(True)
        return SyncOutcome(success=True, action='skipping')


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def fake_worker(monkeypatch):
    FakeWorker.processed = []
    monkeypatch.setattr('subscriptions.tasks.RemoteSyncWorker', FakeWorker)
    return FakeWorker


def _row(subscription_id=501, **kwargs):
    return SyncJob.objects.create(
        kind='skip', subscription_id=subscription_id, payload={'subscription_id': subscription_id}, **kwargs
    )


# ============================================================================
# PROCESS SYNC JOB
# ============================================================================

@pytest.mark.django_db
class TestProcessSyncJob:

    def test_missing_row(self, fake_worker):
        assert process_sync_job(424242)['status'] == 'missing'
        assert fake_worker.processed == []

    def test_processes_head_row(self, fake_worker):
        row = _row()

        result = process_sync_job(row.pk)

        assert result['status'] == 'succeeded'
        assert fake_worker.processed == [row.pk]
        # Lock released after processing
        with SyncJobQueue().lock(501) as acquired:
            assert acquired is True

    def test_completed_row_is_not_processed_again(self, fake_worker):
        row = _row(status='succeeded')

        assert process_sync_job(row.pk)['status'] == 'succeeded'
        assert fake_worker.processed == []

    def test_waits_for_earlier_job(self, fake_worker):
        _row()
        later = _row()

        with pytest.raises(Retry):
            process_sync_job(later.pk)
        assert fake_worker.processed == []

    def test_waits_for_lock(self, fake_worker):
        row = _row()

        with SyncJobQueue().lock(501):
            with pytest.raises(Retry):
                process_sync_job(row.pk)
        assert fake_worker.processed == []

    def test_row_finished_while_waiting_for_lock_is_not_reprocessed(self, fake_worker, monkeypatch):
        row = _row()

        def finished_elsewhere(queue, job_row):
            SyncJob.objects.filter(pk=job_row.pk).update(status='succeeded')
            return True

        monkeypatch.setattr(SyncJobQueue, 'is_head', finished_elsewhere)

        assert process_sync_job(row.pk)['status'] == 'succeeded'
        assert fake_worker.processed == []


# ============================================================================
# NOTIFICATIONS
# ============================================================================

@pytest.mark.django_db
class TestSendNotification:

    def test_success_mails_customer(self, subscription):
        result = send_notification('success', 501, 'skipping', {'date': '2024-02-20'})

        assert result['status'] == 'sent'
        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ['ellie@example.com']
        assert '2024-02-20' in mail.outbox[0].body

    def test_failure_mails_customer_service(self, subscription, settings):
        settings.CUSTOMER_SERVICE_EMAIL = 'care@example.com'

        send_notification('failure', 501, 'switching_product', {'error': 'Recharge returned 500'})

        assert mail.outbox[0].to == ['care@example.com']
        assert '501' in mail.outbox[0].subject
        assert 'Recharge returned 500' in mail.outbox[0].body

    def test_success_without_customer_email_is_skipped(self, subscription, customer):
        customer.email = ''
        customer.save()

        assert send_notification('success', 501, 'skipping', {})['status'] == 'skipped'
        assert mail.outbox == []

    def test_celery_sink_queues_task(self, monkeypatch):
        queued = []

        class FakeTask:
            def delay(self, *args):
                queued.append(args)

        monkeypatch.setattr('subscriptions.tasks.send_notification', FakeTask())

        CeleryNotificationSink().notify('failure', 501, 'skipping', None)

        assert queued == [('failure', 501, 'skipping', {})]


# ============================================================================
# PUSH SUBSCRIPTION
# ============================================================================

@pytest.mark.django_db
class TestPushSubscription:

    @pytest.fixture
    def ledger(self, monkeypatch):
        client = FakeLedgerClient()
        monkeypatch.setattr('subscriptions.tasks.RechargeClient.from_settings', classmethod(lambda cls: client))
        return client

    def test_puts_selected_keys(self, ledger, subscription):
        result = push_subscription(501, ['sku', 'quantity'])

        assert result['status'] == 'pushed'
        assert ledger.calls == [{
            'method': 'PUT', 'path': '/subscriptions/501', 'body': {'sku': 'LVR-3', 'quantity': 1}, 'params': None,
        }]

    def test_rejected_update(self, ledger, subscription):
        ledger.responses[('PUT', '/subscriptions/501')] = (422, {'errors': {'sku': 'invalid'}})

        result = push_subscription(501, ['sku'])

        assert result == {'status': 'failed', 'subscription_id': 501, 'code': 422}

    def test_missing_subscription(self, ledger):
        assert push_subscription(424242)['status'] == 'missing'
        assert ledger.calls == []


# ============================================================================
# END TO END
# ============================================================================

@pytest.mark.django_db
class TestQueuedSkipRuns:
    """A skip accepted on the request path is applied by process_sync_job."""

    def test_request_then_process(self, subscription, now_jan3, ledger, notifier, monkeypatch):
        from subscriptions.models import SkipReason
        from subscriptions.services.subscription_service import SubscriptionActionService
        from subscriptions.services.sync_worker import RemoteSyncWorker

        monkeypatch.setattr(
            'subscriptions.tasks.RemoteSyncWorker', lambda: RemoteSyncWorker(client=ledger, notifier=notifier)
        )
        SubscriptionActionService.request_skip(subscription, customer_ref=9001, reason='x', now=now_jan3)
        row = SyncJob.objects.get()

        result = process_sync_job(row.pk)

        row.refresh_from_db()
        assert result['status'] == 'succeeded'
        assert row.status == 'succeeded'
        assert SkipReason.objects.count() == 1
        assert ledger.paths('POST') == ['/subscriptions/501/set_next_charge_date']

