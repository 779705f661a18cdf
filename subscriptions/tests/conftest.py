"""
pytest configuration and fixtures for subscription sync testing.

Provides:
- Product tag windows and catalogue products
- Regular and prepaid subscriptions with their customer
- Queued prepaid orders
- A scripted fake ledger client and a recording notifier
"""

from datetime import datetime

import pytest
from django.utils import timezone

from subscriptions.models import (
    Customer, Order, OrderLineItem, Product, ProductTag, ProductVariant, Subscription,
)
from subscriptions.services.notifications import RecordingNotificationSink
from subscriptions.services.sync_worker import RemoteSyncWorker

REGULAR_PRODUCT = 1001
PREPAID_WRAPPER = 2001
ORDER_PRODUCT = 3001
ALTERNATE_PRODUCT = 3002


def local_dt(year, month, day, hour=12, minute=0):
    """Aware datetime in the service time zone."""
    return timezone.make_aware(datetime(year, month, day, hour, minute))


def tag(product_id, name, start, end=None):
    return ProductTag.objects.create(product_id=product_id, tag=name, active_start=start, active_end=end)


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================

class FakeLedgerClient:
    """
    Scripted stand-in for RechargeClient.

    ``responses`` maps (method, path) to (status, body) or to an exception
    instance to raise. Unscripted calls answer (200, {}).
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def _answer(self, method, path, body=None, params=None):
        self.calls.append({'method': method, 'path': path, 'body': body, 'params': params})
        answer = self.responses.get((method, path), (200, {}))
        if isinstance(answer, Exception):
            raise answer
        return answer

    def get(self, path, headers=None, params=None):
        return self._answer('GET', path, params=params)

    def post(self, path, body=None, headers=None, timeout=None):
        return self._answer('POST', path, body=body)

    def put(self, path, body=None, headers=None, timeout=None):
        return self._answer('PUT', path, body=body)

    def paths(self, method=None):
        return [call['path'] for call in self.calls if method is None or call['method'] == method]


@pytest.fixture
def ledger():
    return FakeLedgerClient()


@pytest.fixture
def notifier():
    return RecordingNotificationSink()


@pytest.fixture
def worker(ledger, notifier):
    return RemoteSyncWorker(client=ledger, notifier=notifier)


# ============================================================================
# TIME FIXTURES
# ============================================================================

@pytest.fixture
def jan_start():
    return local_dt(2024, 1, 1, 0)


@pytest.fixture
def now_jan3():
    return local_dt(2024, 1, 3, 10)


@pytest.fixture
def now_jan6():
    return local_dt(2024, 1, 6, 10)


# ============================================================================
# PRODUCT FIXTURES
# ============================================================================

@pytest.fixture
def regular_tags(jan_start):
    """REGULAR_PRODUCT is current, skippable and switchable from Jan 1 (open)."""
    return [
        tag(REGULAR_PRODUCT, ProductTag.TAG_CURRENT, jan_start),
        tag(REGULAR_PRODUCT, ProductTag.TAG_SKIPPABLE, jan_start),
        tag(REGULAR_PRODUCT, ProductTag.TAG_SWITCHABLE, jan_start),
    ]


@pytest.fixture
def prepaid_tags(jan_start):
    """Wrapper product is prepaid; ORDER_PRODUCT is skippable+current."""
    return [
        tag(PREPAID_WRAPPER, ProductTag.TAG_PREPAID, jan_start),
        tag(ORDER_PRODUCT, ProductTag.TAG_SKIPPABLE, jan_start),
        tag(ORDER_PRODUCT, ProductTag.TAG_CURRENT, jan_start),
    ]


@pytest.fixture
def alternate_product():
    product = Product.objects.create(shopify_id=ALTERNATE_PRODUCT, title="Sweetest Thing", handle="sweetest-thing")
    ProductVariant.objects.create(product=product, variant_id=43002, sku="ST-3", title="3 Items")
    return product


# ============================================================================
# CUSTOMER & SUBSCRIPTION FIXTURES
# ============================================================================

@pytest.fixture
def customer():
    return Customer.objects.create(
        customer_id=301,
        shopify_customer_id=9001,
        email="ellie@example.com",
        first_name="Ellie",
        last_name="Tester",
    )


@pytest.fixture
def subscription(customer, regular_tags):
    """Scenario A: active, charging Jan 20 on a skippable product."""
    return Subscription.objects.create(
        subscription_id=501,
        customer_id=customer.customer_id,
        shopify_product_id=REGULAR_PRODUCT,
        shopify_variant_id=41001,
        product_title="La Vie en Rose - 3 Items",
        sku="LVR-3",
        status='ACTIVE',
        next_charge_scheduled_at=local_dt(2024, 1, 20),
        raw_line_item_properties=[
            {'name': 'leggings', 'value': 'M'},
            {'name': 'tops', 'value': 'S'},
            {'name': 'charge_interval_frequency', 'value': '1'},
        ],
    )


@pytest.fixture
def prepaid_subscription(customer, prepaid_tags):
    return Subscription.objects.create(
        subscription_id=502,
        customer_id=customer.customer_id,
        shopify_product_id=PREPAID_WRAPPER,
        product_title="3 Month Prepaid",
        status='ACTIVE',
        is_prepaid=True,
        next_charge_scheduled_at=local_dt(2024, 1, 15),
    )


@pytest.fixture
def prepaid_order(prepaid_subscription):
    """Queued prepaid order for Jan 15; shares the order with another subscription."""
    order = Order.objects.create(
        order_id=7001,
        customer_id=prepaid_subscription.customer_id,
        status='QUEUED',
        is_prepaid=True,
        scheduled_at=local_dt(2024, 1, 15),
    )
    OrderLineItem.objects.create(
        order=order,
        subscription_id=prepaid_subscription.subscription_id,
        shopify_product_id=PREPAID_WRAPPER,
        shopify_variant_id=42001,
        title="3 Month Prepaid",
        variant_title="M",
        sku="PP-3",
        properties=[
            {'name': 'product_id', 'value': str(ORDER_PRODUCT)},
            {'name': 'product_collection', 'value': 'La Vie en Rose'},
            {'name': 'leggings', 'value': 'M'},
        ],
    )
    OrderLineItem.objects.create(
        order=order,
        subscription_id=999,
        shopify_product_id=5555,
        shopify_variant_id=45555,
        title="Gift Card",
        sku="GIFT",
        properties=[],
    )
    return order
