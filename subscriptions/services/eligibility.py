# subscriptions/services/eligibility.py
"""
Skip and switch eligibility rules.

Every rule is evaluated fresh from the subscription, the product tags and
this month's queued orders; nothing about eligibility is stored. Each
predicate takes the reference time explicitly.

Prepaid subscriptions pre-generate their orders, so whether they can be
skipped or switched depends on this month's pre-generated order rather
than on the subscription record alone.

Usage:
    engine = EligibilityEngine()
    if engine.is_skippable(subscription, now):
        engine.skip(subscription, now)
"""

import logging

from django.conf import settings
from django.utils import timezone

from subscriptions.billing_cycle import add_months, day_of_month, in_month
from subscriptions.models import ProductTag
from subscriptions.services.product_tags import ProductClassifier

logger = logging.getLogger(__name__)


class EligibilityEngine:
    """
    Decides whether a subscription may be skipped or switched.

    Args:
        classifier: ProductClassifier (defaults to one reading ProductTag)
        orders: Order repository exposing queued_for_subscription_this_month
        alternate_products: {product_id: alternate_product_id}
        skip_cutoff_day: Skips are allowed while day-of-month is below this
    """

    def __init__(self, classifier=None, orders=None, alternate_products=None, skip_cutoff_day=None):
        if orders is None:
            from subscriptions.models import Order
            orders = Order.objects
        self.classifier = classifier or ProductClassifier()
        self.orders = orders
        self.alternate_products = (
            alternate_products if alternate_products is not None else settings.ALTERNATE_PRODUCTS
        )
        self.skip_cutoff_day = skip_cutoff_day or settings.SKIP_CUTOFF_DAY

    # =========================================================================
    # BASIC PREDICATES
    # =========================================================================

    def has_tag(self, product_id, now, *tags):
        return self.classifier.has_tags(product_id, now, *tags)

    def is_prepaid(self, subscription, now):
        """Prepaid by product tag or by the subscription's own flag."""
        return subscription.is_prepaid or self.has_tag(
            subscription.shopify_product_id, now, ProductTag.TAG_PREPAID
        )

    def before_cutoff(self, now):
        return day_of_month(now) < self.skip_cutoff_day

    def charges_later_this_month(self, subscription, now):
        next_charge = subscription.next_charge_scheduled_at
        return in_month(next_charge, now) and next_charge > now

    # =========================================================================
    # REGULAR SUBSCRIPTIONS
    # =========================================================================

    def is_skippable(self, subscription, now):
        return all([
            not self.is_prepaid(subscription, now),
            subscription.is_active(),
            self.before_cutoff(now),
            self.has_tag(subscription.shopify_product_id, now, ProductTag.TAG_SKIPPABLE),
            self.charges_later_this_month(subscription, now),
        ])

    def is_switchable(self, subscription, now):
        return all([
            not self.is_prepaid(subscription, now),
            subscription.is_active(),
            self.has_tag(subscription.shopify_product_id, now, ProductTag.TAG_SWITCHABLE),
            self.charges_later_this_month(subscription, now),
        ])

    # =========================================================================
    # PREPAID SUBSCRIPTIONS
    # =========================================================================

    def queued_prepaid_orders(self, subscription, now):
        return self.orders.queued_for_subscription_this_month(
            subscription.subscription_id, now, is_prepaid=True
        )

    def has_queued_prepaid_order_this_month(self, subscription, now):
        return any(order.scheduled_at > now for order in self.queued_prepaid_orders(subscription, now))

    def _order_products_with(self, subscription, now, *tags):
        for order in self.queued_prepaid_orders(subscription, now):
            product_id = order.property_value('product_id')
            if product_id and self.has_tag(product_id, now, *tags):
                yield order

    def can_skip_and_hasnt_switched(self, subscription, now):
        """True when some queued order is still on a skippable current product."""
        return any(self._order_products_with(
            subscription, now, ProductTag.TAG_SKIPPABLE, ProductTag.TAG_CURRENT
        ))

    def has_switched_this_month(self, subscription, now):
        """True unless some queued order is still on a switchable current product."""
        return not any(self._order_products_with(
            subscription, now, ProductTag.TAG_SWITCHABLE, ProductTag.TAG_CURRENT
        ))

    def is_skippable_prepaid(self, subscription, now):
        return all([
            self.is_prepaid(subscription, now),
            subscription.next_charge_scheduled_at is not None,
            self.has_queued_prepaid_order_this_month(subscription, now),
            self.can_skip_and_hasnt_switched(subscription, now),
            self.before_cutoff(now),
        ])

    def is_switchable_prepaid(self, subscription, now):
        return all([
            self.is_prepaid(subscription, now),
            self.has_queued_prepaid_order_this_month(subscription, now),
            not self.has_switched_this_month(subscription, now),
        ])

    # =========================================================================
    # ACTIONS
    # =========================================================================

    def skip(self, subscription, now):
        """
        Advance the next charge by one calendar month when skippable.

        The local advance happens before the remote ledger confirms it; the
        sync worker pushes it.

        Returns:
            True when the subscription was advanced and saved
        """
        if not self.is_skippable(subscription, now):
            return False
        self._advance(subscription)
        return True

    def skip_prepaid(self, subscription, now):
        """Prepaid counterpart of skip(); the worker re-dates the queued orders."""
        if not self.is_skippable_prepaid(subscription, now):
            return False
        self._advance(subscription)
        return True

    def _advance(self, subscription):
        previous = subscription.next_charge_scheduled_at
        subscription.next_charge_scheduled_at = add_months(previous, 1)
        subscription.save(update_fields=['next_charge_scheduled_at'])
        logger.info(
            f"Advanced subscription {subscription.subscription_id} next charge "
            f"{previous.isoformat()} -> {subscription.next_charge_scheduled_at.isoformat()}"
        )

    def alternate_product_id(self, product_id):
        if product_id in (None, ''):
            return None
        return self.alternate_products.get(int(product_id))

    def switch_product(self, subscription, new_product_id=None, now=None):
        """
        Point a switchable subscription at another product.

        Uses ``new_product_id`` or the configured alternate for the current
        product. Variant, title and sku follow from the local catalogue when
        the product is known there.

        Returns:
            True when the subscription was switched and saved
        """
        now = now or timezone.now()
        if not self.is_switchable(subscription, now):
            return False
        target = new_product_id or self.alternate_product_id(subscription.shopify_product_id)
        if target in (None, ''):
            logger.warning(
                f"No alternate product for {subscription.shopify_product_id}; "
                f"subscription {subscription.subscription_id} not switched"
            )
            return False

        apply_product_identity(subscription, int(target))
        subscription.save(update_fields=[
            'shopify_product_id', 'shopify_variant_id', 'product_title', 'sku',
        ])
        return True


def apply_product_identity(subscription, product_id):
    """Set product id, and variant/title/sku when the catalogue knows the product."""
    from subscriptions.models import Product

    subscription.shopify_product_id = product_id
    product = Product.objects.filter(shopify_id=product_id).first()
    if product is None:
        return subscription
    subscription.product_title = product.title
    variant = product.default_variant()
    if variant is not None:
        subscription.shopify_variant_id = variant.variant_id
        subscription.sku = variant.sku
    return subscription
