"""
Tests for audit trail models and management commands.
"""

from datetime import timedelta
from io import StringIO
from types import SimpleNamespace

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone

from subscriptions.exceptions import AuditTrailError
from subscriptions.models import ProductSwitch, ProductTag, SkipReason, SyncJob
from subscriptions.tests.conftest import REGULAR_PRODUCT, local_dt, tag


@pytest.mark.django_db
class TestAuditTrail:
    """Audit rows can be written once and never changed."""

    def test_skip_reason_is_append_only(self):
        audit = SkipReason.objects.create(customer_id=301, subscription_id=501, skip_status=True)

        audit.reason = 'edited'
        with pytest.raises(AuditTrailError):
            audit.save()
        with pytest.raises(AuditTrailError):
            audit.delete()
        with pytest.raises(AuditTrailError):
            SkipReason.objects.filter(pk=audit.pk).update(skip_status=False)
        with pytest.raises(AuditTrailError):
            SkipReason.objects.all().delete()

        assert SkipReason.objects.get().reason is None

    def test_product_switch_is_append_only(self):
        audit = ProductSwitch.objects.create(customer_id=301, subscription_id=501, to_product_id=3002)

        with pytest.raises(AuditTrailError):
            audit.delete()
        assert ProductSwitch.objects.for_subscription(501).count() == 1


@pytest.mark.django_db
class TestSetProductTags:

    def test_creates_month_windows(self):
        out = StringIO()

        call_command(
            'set_product_tags', '--month', '2024-02', '--product', str(REGULAR_PRODUCT),
            '--tags', 'current,skippable', stdout=out,
        )

        windows = ProductTag.objects.filter(product_id=REGULAR_PRODUCT)
        assert {w.tag for w in windows} == {'current', 'skippable'}
        for window in windows:
            assert window.active_start == local_dt(2024, 2, 1, 0)
            assert timezone.localtime(window.active_end).day == 29
        assert '2 tag window(s) created' in out.getvalue()

    def test_sunset_closes_open_windows(self, jan_start):
        january = tag(REGULAR_PRODUCT, ProductTag.TAG_SKIPPABLE, jan_start)

        call_command(
            'set_product_tags', '--month', '2024-02', '--product', '3001', '--sunset', '--open-ended',
            stdout=StringIO(),
        )

        january.refresh_from_db()
        assert january.active_end == local_dt(2024, 2, 1, 0) - ProductTag.TICK
        assert ProductTag.objects.get(product_id=3001).is_open()

    def test_unknown_tag(self):
        with pytest.raises(CommandError):
            call_command('set_product_tags', '--product', '1', '--tags', 'bestseller', stdout=StringIO())

    def test_bad_month(self):
        with pytest.raises(CommandError):
            call_command('set_product_tags', '--product', '1', '--month', 'February', stdout=StringIO())


@pytest.mark.django_db
def test_redeliver_sync_jobs_command(monkeypatch):
    dispatched = []

    class FakeTask:
        def apply_async(self, args=None, queue=None):
            dispatched.append(args)
            return SimpleNamespace(id='task-1')

    monkeypatch.setattr('subscriptions.tasks.process_sync_job', FakeTask())
    row = SyncJob.objects.create(kind='skip', subscription_id=501, payload={'subscription_id': 501})
    SyncJob.objects.filter(pk=row.pk).update(created_at=timezone.now() - timedelta(hours=1))
    out = StringIO()

    call_command('redeliver_sync_jobs', '--older-than', '600', stdout=out)

    assert dispatched == [[row.pk]]
    assert 'Redelivered 1 sync job(s)' in out.getvalue()
