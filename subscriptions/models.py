# subscriptions/models.py
"""
Local replica of the remote subscription ledger plus business-rule metadata.

Models:
- ProductTag: Time-windowed product classification (current, prepaid, skippable, switchable)
- Product / ProductVariant: Remote product identity used when switching
- Customer: Remote customer with storefront id and email
- Subscription: Replica of a remote subscription
- Order / OrderLineItem: Replica of remote orders (read-only to the sync core)
- SkipReason: Append-only audit of skip attempts
- ProductSwitch: Append-only audit of product switch attempts
- SyncJob: Durable record of every queued remote mutation
"""

from datetime import timedelta
from django.db import models, transaction
from django.utils import timezone

from subscriptions.exceptions import AuditTrailError
from subscriptions.managers import (
    AuditManager, LineItem, OrderManager, ProductTagManager, QueuedOrder, SyncJobManager,
)


# ==============================================================================
# PRODUCT TAGS
# ==============================================================================

class ProductTag(models.Model):
    """
    Asserts that a product belongs to a named category for a time window.

    A window is active for ``active_start <= t < active_end``; a window with
    no ``active_end`` is open. Only one open window may exist per product,
    tag and theme: opening a new one closes the previous one a tick before
    the new start.
    """
    TAG_CURRENT = 'current'
    TAG_PREPAID = 'prepaid'
    TAG_SKIPPABLE = 'skippable'
    TAG_SWITCHABLE = 'switchable'

    TAG_CHOICES = (
        (TAG_CURRENT, 'Current'),
        (TAG_PREPAID, 'Prepaid'),
        (TAG_SKIPPABLE, 'Skippable'),
        (TAG_SWITCHABLE, 'Switchable'),
    )

    TICK = timedelta(microseconds=1)

    product_id = models.BigIntegerField(db_index=True)
    tag = models.CharField(max_length=20, choices=TAG_CHOICES, db_index=True)
    theme_id = models.CharField(
        max_length=50,
        blank=True,
        default='',
        help_text="Storefront theme the tag applies to (blank = all themes)"
    )

    active_start = models.DateTimeField()
    active_end = models.DateTimeField(null=True, blank=True, help_text="Blank = open window")

    created_at = models.DateTimeField(auto_now_add=True)

    objects = ProductTagManager()

    class Meta:
        ordering = ['product_id', 'tag', '-active_start']
        indexes = [
            models.Index(fields=['tag', 'active_start', 'active_end'], name='producttag_window_idx'),
            models.Index(fields=['product_id', 'tag'], name='producttag_product_tag_idx'),
        ]

    def __str__(self):
        end = self.active_end.isoformat() if self.active_end else 'open'
        return f"{self.product_id}:{self.tag} [{self.active_start.isoformat()}, {end})"

    def is_open(self):
        return self.active_end is None

    def is_active_at(self, at_time):
        if self.active_start > at_time:
            return False
        return self.active_end is None or at_time < self.active_end

    def save(self, *args, **kwargs):
        if self._state.adding and self.active_end is None:
            with transaction.atomic():
                # Only one open window per product/tag/theme
                ProductTag.objects.open().filter(
                    product_id=self.product_id,
                    tag=self.tag,
                    theme_id=self.theme_id,
                    active_start__lt=self.active_start,
                ).update(active_end=self.active_start - self.TICK)
                super().save(*args, **kwargs)
            return
        super().save(*args, **kwargs)

    @classmethod
    def open_window(cls, product_id, tag, start, end=None, theme_id=''):
        """
        Open a tag window, closing earlier open windows for the same key.

        Returns:
            (ProductTag, created: bool)
        """
        with transaction.atomic():
            cls.objects.open().filter(
                product_id=int(product_id),
                tag=tag,
                theme_id=theme_id,
                active_start__lt=start,
            ).update(active_end=start - cls.TICK)
            return cls.objects.get_or_create(
                product_id=int(product_id),
                tag=tag,
                theme_id=theme_id,
                active_start=start,
                defaults={'active_end': end},
            )


# ==============================================================================
# PRODUCT CATALOGUE
# ==============================================================================

class Product(models.Model):
    shopify_id = models.BigIntegerField(unique=True)
    title = models.CharField(max_length=255)
    handle = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['title']

    def __str__(self):
        return f"{self.title} ({self.shopify_id})"

    def default_variant(self):
        return self.variants.order_by('pk').first()


class ProductVariant(models.Model):
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='variants')
    variant_id = models.BigIntegerField(unique=True)
    sku = models.CharField(max_length=100, blank=True)
    title = models.CharField(max_length=255, blank=True)

    def __str__(self):
        return f"{self.product.title} - {self.title or self.sku}"


# ==============================================================================
# CUSTOMERS
# ==============================================================================

class Customer(models.Model):
    customer_id = models.BigIntegerField(unique=True, help_text="Remote ledger customer id")
    shopify_customer_id = models.BigIntegerField(unique=True, null=True, blank=True)
    email = models.EmailField(blank=True)
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.first_name} {self.last_name} <{self.email}>".strip()

    @classmethod
    def resolve(cls, customer_ref):
        """Find a customer by storefront id first, then by remote id."""
        if customer_ref in (None, ''):
            return None
        try:
            ref = int(customer_ref)
        except (TypeError, ValueError):
            return None
        return (
            cls.objects.filter(shopify_customer_id=ref).first()
            or cls.objects.filter(customer_id=ref).first()
        )


# ==============================================================================
# SUBSCRIPTIONS
# ==============================================================================

class Subscription(models.Model):
    """
    Replica of a remote subscription.

    ``next_charge_scheduled_at`` is the next billing instant as last observed
    from the remote ledger, or as locally advanced by a confirmed skip.
    """
    STATUS_ACTIVE = 'ACTIVE'
    STATUS_CANCELLED = 'CANCELLED'

    STATUS_CHOICES = (
        ('ACTIVE', 'Active'),
        ('CANCELLED', 'Cancelled'),
        ('EXPIRED', 'Expired'),
        ('ONETIME', 'One-time'),
    )

    SIZE_PROPERTIES = ('leggings', 'tops', 'sports-bra', 'sports-jacket', 'gloves')

    subscription_id = models.BigIntegerField(primary_key=True)
    customer_id = models.BigIntegerField(db_index=True)
    address_id = models.BigIntegerField(null=True, blank=True)

    shopify_product_id = models.BigIntegerField(db_index=True)
    shopify_variant_id = models.BigIntegerField(null=True, blank=True)
    product_title = models.CharField(max_length=255, blank=True)
    sku = models.CharField(max_length=100, blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    quantity = models.PositiveIntegerField(default=1)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='ACTIVE', db_index=True)
    is_prepaid = models.BooleanField(default=False)

    next_charge_scheduled_at = models.DateTimeField(null=True, blank=True, db_index=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    order_interval_unit = models.CharField(max_length=20, blank=True)
    order_interval_frequency = models.CharField(max_length=20, blank=True)
    order_day_of_month = models.CharField(max_length=20, blank=True, null=True)
    order_day_of_week = models.CharField(max_length=20, blank=True, null=True)

    # Ordered [{"name": ..., "value": ...}, ...] exactly as the remote sends them
    raw_line_item_properties = models.JSONField(default=list, blank=True)

    created_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['subscription_id']
        indexes = [
            models.Index(fields=['customer_id', 'status'], name='subscription_customer_idx'),
        ]

    def __str__(self):
        return f"Subscription {self.subscription_id} ({self.status})"

    def is_active(self):
        return self.status == self.STATUS_ACTIVE

    def line_item_property(self, name):
        for prop in self.raw_line_item_properties or []:
            if prop.get('name') == name:
                return prop.get('value')
        return None

    @property
    def sizes(self):
        return {
            prop['name']: prop['value']
            for prop in self.raw_line_item_properties or []
            if prop.get('name') in self.SIZE_PROPERTIES
        }

    def customer(self):
        return Customer.objects.filter(customer_id=self.customer_id).first()

    def as_recharge(self):
        """Remote (outbound) representation of this subscription."""
        from subscriptions.api_map import to_remote
        return to_remote(self)

    def update_from_recharge(self, payload):
        """Apply a remote payload to this replica (inbound) and save."""
        from subscriptions.api_map import to_local
        for local_key, value in to_local(payload).items():
            setattr(self, local_key, value)
        self.save()
        return self


# ==============================================================================
# ORDERS
# ==============================================================================

class Order(models.Model):
    STATUS_CHOICES = (
        ('QUEUED', 'Queued'),
        ('SUCCESS', 'Success'),
        ('ERROR', 'Error'),
        ('REFUNDED', 'Refunded'),
        ('SKIPPED', 'Skipped'),
        ('CANCELLED', 'Cancelled'),
    )

    order_id = models.BigIntegerField(primary_key=True)
    customer_id = models.BigIntegerField(null=True, blank=True, db_index=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='QUEUED', db_index=True)
    is_prepaid = models.BooleanField(default=False)
    scheduled_at = models.DateTimeField(db_index=True)
    shipped_date = models.DateTimeField(null=True, blank=True)

    objects = OrderManager()

    class Meta:
        ordering = ['scheduled_at']
        indexes = [
            models.Index(fields=['status', 'is_prepaid', 'scheduled_at'], name='order_queue_idx'),
        ]

    def __str__(self):
        return f"Order {self.order_id} ({self.status} @ {self.scheduled_at:%Y-%m-%d})"

    def as_queued_order(self, subscription_id):
        return QueuedOrder(
            order_id=self.order_id,
            subscription_id=int(subscription_id),
            scheduled_at=self.scheduled_at,
            status=self.status,
            is_prepaid=self.is_prepaid,
            line_items=tuple(item.as_line_item() for item in self.line_items.all()),
        )


class OrderLineItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='line_items')
    subscription_id = models.BigIntegerField(db_index=True)
    shopify_product_id = models.BigIntegerField(null=True, blank=True)
    shopify_variant_id = models.BigIntegerField(null=True, blank=True)
    title = models.CharField(max_length=255, blank=True)
    variant_title = models.CharField(max_length=255, blank=True)
    sku = models.CharField(max_length=100, blank=True)
    quantity = models.PositiveIntegerField(default=1)
    properties = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ['order', 'pk']

    def __str__(self):
        return f"{self.order_id}:{self.subscription_id} {self.title}"

    def as_line_item(self):
        return LineItem(
            subscription_id=self.subscription_id,
            properties=tuple(self.properties or ()),
            shopify_product_id=self.shopify_product_id,
            shopify_variant_id=self.shopify_variant_id,
            title=self.title,
            variant_title=self.variant_title,
            sku=self.sku,
            quantity=self.quantity,
        )


# ==============================================================================
# AUDIT TRAIL
# ==============================================================================

class AppendOnlyModel(models.Model):
    """Rows may be inserted but never updated or deleted."""

    objects = AuditManager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AuditTrailError(f"{type(self).__name__} rows are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AuditTrailError(f"{type(self).__name__} rows are append-only")


class SkipReason(AppendOnlyModel):
    """One row per attempted skip, successful or not."""
    customer_id = models.BigIntegerField(db_index=True)
    shopify_customer_id = models.BigIntegerField(null=True, blank=True)
    subscription_id = models.BigIntegerField(db_index=True)
    charge_id = models.BigIntegerField(null=True, blank=True)

    skipped_to = models.DateTimeField(null=True, blank=True)
    skip_status = models.BooleanField(default=False)
    reason = models.TextField(null=True, blank=True)

    # Per-call results, duplicate marker, error text
    detail = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-created_at', '-pk']
        indexes = [
            models.Index(fields=['subscription_id', 'created_at'], name='skipreason_sub_idx'),
            models.Index(fields=['customer_id', 'created_at'], name='skipreason_customer_idx'),
        ]

    def __str__(self):
        outcome = 'ok' if self.skip_status else 'failed'
        return f"Skip {self.subscription_id} -> {self.skipped_to} ({outcome})"


class ProductSwitch(AppendOnlyModel):
    """One row per attempted product switch, successful or not."""
    customer_id = models.BigIntegerField(db_index=True)
    subscription_id = models.BigIntegerField(db_index=True)
    from_product_id = models.BigIntegerField(null=True, blank=True)
    to_product_id = models.BigIntegerField(null=True, blank=True)
    order_ids = models.JSONField(default=list, blank=True)

    switch_status = models.BooleanField(default=False)
    reason = models.TextField(null=True, blank=True)
    detail = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-created_at', '-pk']
        verbose_name_plural = 'Product switches'
        indexes = [
            models.Index(fields=['subscription_id', 'created_at'], name='productswitch_sub_idx'),
            models.Index(fields=['customer_id', 'created_at'], name='productswitch_customer_idx'),
        ]

    def __str__(self):
        outcome = 'ok' if self.switch_status else 'failed'
        return f"Switch {self.subscription_id} {self.from_product_id} -> {self.to_product_id} ({outcome})"


# ==============================================================================
# SYNC JOBS
# ==============================================================================

class SyncJob(models.Model):
    """Durable record of a queued remote mutation (skip or switch)."""
    KIND_SKIP = 'skip'
    KIND_SWITCH = 'switch'

    KIND_CHOICES = (
        (KIND_SKIP, 'Skip'),
        (KIND_SWITCH, 'Switch'),
    )

    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('running', 'Running'),
        ('succeeded', 'Succeeded'),
        ('failed', 'Failed'),
        ('rejected', 'Rejected'),
    )

    kind = models.CharField(max_length=10, choices=KIND_CHOICES)
    subscription_id = models.BigIntegerField(db_index=True)
    payload = models.JSONField(default=dict)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    attempts = models.PositiveIntegerField(default=0)

    # Celery task tracking
    celery_task_id = models.CharField(max_length=255, blank=True, null=True, db_index=True)
    last_error = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    started_at = models.DateTimeField(null=True, blank=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    objects = SyncJobManager()

    class Meta:
        ordering = ['pk']
        indexes = [
            models.Index(fields=['subscription_id', 'status'], name='syncjob_sub_status_idx'),
            models.Index(fields=['status', 'created_at'], name='syncjob_status_created_idx'),
        ]

    def __str__(self):
        return f"{self.kind} #{self.pk} for {self.subscription_id} ({self.status})"

    def is_complete(self):
        return self.status in ('succeeded', 'failed', 'rejected')

    def as_job(self):
        from subscriptions.jobs import job_from_payload
        return job_from_payload(self.kind, self.payload)

    def mark_running(self):
        self.status = 'running'
        self.attempts += 1
        self.started_at = timezone.now()
        self.save(update_fields=['status', 'attempts', 'started_at'])

    def mark_finished(self, success, error=''):
        self.status = 'succeeded' if success else 'failed'
        self.last_error = error or ''
        self.finished_at = timezone.now()
        self.save(update_fields=['status', 'last_error', 'finished_at'])

    def mark_rejected(self, error):
        self.status = 'rejected'
        self.last_error = error
        self.finished_at = timezone.now()
        self.save(update_fields=['status', 'last_error', 'finished_at'])
