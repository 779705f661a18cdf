"""
QuerySets and managers for the subscription replica.

The order manager doubles as the read-only order repository used by the
eligibility rules: it answers "which of this month's queued orders belong to
this subscription" with typed records instead of JSON containment queries.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from django.db import models
from django.db.models import Q

from subscriptions.billing_cycle import start_of_month, end_of_month
from subscriptions.exceptions import AuditTrailError


@dataclass(frozen=True)
class LineItem:
    """Line item of a queued order as seen by the eligibility rules."""
    subscription_id: int
    properties: Tuple[dict, ...] = ()
    shopify_product_id: Optional[int] = None
    shopify_variant_id: Optional[int] = None
    title: str = ''
    variant_title: str = ''
    sku: str = ''
    quantity: int = 1

    def property_value(self, name):
        value = None
        for prop in self.properties:
            if prop.get('name') == name:
                value = prop.get('value')
        return value


@dataclass(frozen=True)
class QueuedOrder:
    order_id: int
    subscription_id: int
    scheduled_at: object
    status: str
    is_prepaid: bool
    line_items: Tuple[LineItem, ...] = field(default_factory=tuple)

    def property_value(self, name):
        """Value of property ``name`` on this subscription's line item(s)."""
        value = None
        for item in self.line_items:
            if item.subscription_id == self.subscription_id:
                value = item.property_value(name) or value
        return value


# ==============================================================================
# PRODUCT TAG WINDOWS
# ==============================================================================

class ProductTagQuerySet(models.QuerySet):

    def active(self, at_time, theme_id=None):
        """Windows with active_start <= at_time < active_end (open end = forever)."""
        qs = self.filter(active_start__lte=at_time).filter(
            Q(active_end__isnull=True) | Q(active_end__gt=at_time)
        )
        if theme_id is not None:
            qs = qs.filter(theme_id=theme_id)
        return qs

    def open(self):
        return self.filter(active_end__isnull=True)

    def for_product(self, product_id):
        return self.filter(product_id=int(product_id))


class ProductTagManager(models.Manager):
    def get_queryset(self):
        return ProductTagQuerySet(self.model, using=self._db)

    def active(self, at_time, theme_id=None):
        """Shortcut: ProductTag.objects.active(now)"""
        return self.get_queryset().active(at_time, theme_id=theme_id)

    def open(self):
        return self.get_queryset().open()


# ==============================================================================
# ORDERS (read-only repository)
# ==============================================================================

class OrderQuerySet(models.QuerySet):

    def for_subscription(self, subscription_id):
        return self.filter(line_items__subscription_id=int(subscription_id)).distinct()

    def queued(self):
        return self.filter(status='QUEUED')

    def scheduled_in_month(self, now):
        return self.filter(
            scheduled_at__gt=start_of_month(now),
            scheduled_at__lt=end_of_month(now),
        )


class OrderManager(models.Manager):
    def get_queryset(self):
        return OrderQuerySet(self.model, using=self._db)

    def queued_for_subscription_this_month(self, subscription_id, now, is_prepaid=True):
        """
        Queued orders for a subscription scheduled inside ``now``'s month.

        Args:
            subscription_id: Remote subscription id
            now: Reference time (defines the month)
            is_prepaid: Only orders with this prepaid flag

        Returns:
            List of QueuedOrder records ordered by scheduled_at
        """
        orders = (
            self.get_queryset()
            .for_subscription(subscription_id)
            .queued()
            .scheduled_in_month(now)
            .filter(is_prepaid=is_prepaid)
            .prefetch_related('line_items')
            .order_by('scheduled_at', 'order_id')
        )
        return [order.as_queued_order(subscription_id) for order in orders]


# ==============================================================================
# AUDIT TRAIL (append-only)
# ==============================================================================

class AuditQuerySet(models.QuerySet):

    def for_subscription(self, subscription_id):
        return self.filter(subscription_id=int(subscription_id))

    def for_customer(self, customer_id):
        return self.filter(customer_id=int(customer_id))

    def update(self, **kwargs):
        raise AuditTrailError(f"{self.model.__name__} rows are append-only")

    def delete(self):
        raise AuditTrailError(f"{self.model.__name__} rows are append-only")


class AuditManager(models.Manager):
    def get_queryset(self):
        return AuditQuerySet(self.model, using=self._db)

    def for_subscription(self, subscription_id):
        return self.get_queryset().for_subscription(subscription_id)

    def for_customer(self, customer_id):
        return self.get_queryset().for_customer(customer_id)


# ==============================================================================
# SYNC JOBS
# ==============================================================================

class SyncJobQuerySet(models.QuerySet):

    def for_subscription(self, subscription_id):
        return self.filter(subscription_id=int(subscription_id))

    def unfinished(self):
        return self.filter(status__in=['pending', 'running'])

    def ahead_of(self, job):
        """Unfinished jobs for the same subscription enqueued before ``job``."""
        return self.for_subscription(job.subscription_id).unfinished().filter(pk__lt=job.pk)

    def stale(self, before):
        return self.filter(status='pending', created_at__lt=before)


class SyncJobManager(models.Manager):
    def get_queryset(self):
        return SyncJobQuerySet(self.model, using=self._db)

    def for_subscription(self, subscription_id):
        return self.get_queryset().for_subscription(subscription_id)

    def unfinished(self):
        return self.get_queryset().unfinished()

    def ahead_of(self, job):
        return self.get_queryset().ahead_of(job)

    def stale(self, before):
        return self.get_queryset().stale(before)
