# subscriptions/api_map.py
"""
Bidirectional field map between the local Subscription replica and the
remote ledger's subscription representation.

Each entry names the remote key, the local field, and the transforms used
on the way in (remote JSON -> local value) and on the way out (local value
-> remote JSON). Remote timestamps are naive ``%Y-%m-%dT%H:%M:%S`` strings
in the service's local time zone.

Usage:
    payload = to_remote(subscription)
    values = to_local(remote_json)
    update = filter_recognized(request_json)
"""

from collections import namedtuple
from datetime import datetime
from decimal import Decimal, InvalidOperation

from django.utils import timezone

from subscriptions.exceptions import MappingError

REMOTE_TIME_FORMAT = '%Y-%m-%dT%H:%M:%S'

FieldMap = namedtuple('FieldMap', ['remote_key', 'local_key', 'inbound', 'outbound'])


# ==============================================================================
# TRANSFORMS
# ==============================================================================

def identity(value):
    return value


def to_int(value):
    if value in (None, ''):
        return None
    return int(value)


def to_decimal(value):
    if value in (None, ''):
        return None
    return Decimal(str(value))


def from_decimal(value):
    if value is None:
        return None
    return float(value)


def to_time(value):
    """Parse a naive remote timestamp as local time."""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)[:19]
        try:
            parsed = datetime.strptime(text, REMOTE_TIME_FORMAT)
        except ValueError:
            parsed = datetime.strptime(text[:10], '%Y-%m-%d')
    if timezone.is_naive(parsed):
        return timezone.make_aware(parsed)
    return parsed


def remote_time(value):
    if value is None:
        return None
    if timezone.is_aware(value):
        value = timezone.localtime(value)
    return value.strftime(REMOTE_TIME_FORMAT)


def to_properties(value):
    return list(value or [])


# ==============================================================================
# FIELD MAP
# ==============================================================================

API_MAP = (
    FieldMap('id', 'subscription_id', to_int, to_int),
    FieldMap('address_id', 'address_id', to_int, to_int),
    FieldMap('customer_id', 'customer_id', to_int, to_int),
    FieldMap('created_at', 'created_at', to_time, remote_time),
    FieldMap('updated_at', 'updated_at', to_time, remote_time),
    FieldMap('next_charge_scheduled_at', 'next_charge_scheduled_at', to_time, remote_time),
    FieldMap('cancelled_at', 'cancelled_at', to_time, remote_time),
    FieldMap('product_title', 'product_title', identity, identity),
    FieldMap('price', 'price', to_decimal, from_decimal),
    FieldMap('quantity', 'quantity', to_int, to_int),
    FieldMap('status', 'status', identity, identity),
    FieldMap('shopify_product_id', 'shopify_product_id', to_int, to_int),
    FieldMap('shopify_variant_id', 'shopify_variant_id', to_int, to_int),
    FieldMap('sku', 'sku', identity, identity),
    FieldMap('order_interval_unit', 'order_interval_unit', identity, identity),
    FieldMap('order_interval_frequency', 'order_interval_frequency', identity, identity),
    FieldMap('order_day_of_month', 'order_day_of_month', identity, identity),
    FieldMap('order_day_of_week', 'order_day_of_week', identity, identity),
    FieldMap('properties', 'raw_line_item_properties', to_properties, identity),
)

RECOGNIZED_REMOTE_KEYS = frozenset(entry.remote_key for entry in API_MAP)

# Fields the remote ledger assigns; never taken from a client update
REMOTE_ASSIGNED_KEYS = frozenset(['id', 'created_at', 'updated_at'])

_BY_REMOTE_KEY = {entry.remote_key: entry for entry in API_MAP}

# Fields sent when only the product changes
PRODUCT_FIELDS = ('shopify_product_id', 'shopify_variant_id', 'product_title', 'sku')


def _inbound(entry, value):
    try:
        return entry.inbound(value)
    except (TypeError, ValueError, InvalidOperation) as e:
        raise MappingError(entry.remote_key, value, str(e))


def to_local(payload):
    """Map recognised remote keys of ``payload`` to local field values."""
    return {
        entry.local_key: _inbound(entry, payload[entry.remote_key])
        for entry in API_MAP
        if entry.remote_key in payload
    }


def to_remote(subscription, keys=None):
    """Remote representation of ``subscription`` (optionally only ``keys``)."""
    entries = API_MAP if keys is None else [_BY_REMOTE_KEY[key] for key in keys]
    return {
        entry.remote_key: entry.outbound(getattr(subscription, entry.local_key))
        for entry in entries
    }


def filter_recognized(payload, exclude=REMOTE_ASSIGNED_KEYS):
    """
    Keep only the remote keys the ledger recognises.

    Unknown keys are dropped. Every kept value is run through its inbound
    transform so an untransformable value fails here, before anything is
    applied locally.

    Raises:
        MappingError: a recognised key carries a value of the wrong shape
    """
    if not isinstance(payload, dict):
        raise MappingError('<payload>', payload, 'Update payload must be an object')
    recognized = {
        key: value
        for key, value in payload.items()
        if key in RECOGNIZED_REMOTE_KEYS and key not in exclude
    }
    for key, value in recognized.items():
        _inbound(_BY_REMOTE_KEY[key], value)
    return recognized
