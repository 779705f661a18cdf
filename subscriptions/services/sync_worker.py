# subscriptions/services/sync_worker.py
"""
Applies queued skip and switch jobs to the remote ledger.

One call to ``process`` makes one attempt at the remote mutation (retries
are the queue's redelivery), writes exactly one audit row and emits exactly
one notification, whatever the outcome. Exceptions raised by remote calls
are handled like HTTP failures and are also logged on this module's logger.

Skip:
    POST /subscriptions/{id}/set_next_charge_date {"date": "YYYY-MM-DD"}
    prepaid: GET /orders?subscription_id=&status=QUEUED, then
             POST /orders/{id}/change_date {"scheduled_at": ...} per order
Switch:
    regular: PUT /subscriptions/{id} with the product fields
    prepaid: PUT /orders/{id} {"line_items": [...]} per queued order

For multi-call jobs the outcome is the result of the last call; every call
is recorded under ``detail["calls"]`` of the audit row.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from django.db import transaction
from django.utils import timezone

from subscriptions.api_map import PRODUCT_FIELDS, remote_time, to_remote, to_time
from subscriptions.billing_cycle import add_months, in_month, local
from subscriptions.exceptions import MalformedJobError, SubscriptionSyncError
from subscriptions.jobs import SkipJob, requested_at, validate
from subscriptions.services.eligibility import EligibilityEngine
from subscriptions.services.notifications import FAILURE, SUCCESS, CeleryNotificationSink
from subscriptions.services.recharge_client import RechargeClient, is_success

logger = logging.getLogger(__name__)

ACTION_SKIP = 'skipping'
ACTION_SWITCH = 'switching_product'


@dataclass
class SyncOutcome:
    success: bool
    action: str
    audit: Optional[object] = None
    detail: dict = field(default_factory=dict)
    error: str = ''


class RemoteSyncWorker:
    """
    Consumes one sync job at a time.

    Args:
        client: Remote ledger client (get/post/put -> (status, body))
        notifier: NotificationSink
        classifier: ProductClassifier used to tell prepaid subscriptions apart
    """

    def __init__(self, client=None, notifier=None, classifier=None):
        self.client = client or RechargeClient.from_settings()
        self.notifier = notifier or CeleryNotificationSink()
        self.engine = EligibilityEngine(classifier=classifier)

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def process(self, job, now=None) -> SyncOutcome:
        from subscriptions.models import Subscription

        now = now or timezone.now()
        action = ACTION_SKIP if isinstance(job, SkipJob) else ACTION_SWITCH
        try:
            job = validate(job)
        except MalformedJobError as e:
            return self._malformed(action, getattr(job, 'subscription_id', None), e)

        subscription = Subscription.objects.filter(pk=job.subscription_id).first()
        if subscription is None:
            return self._malformed(
                action,
                job.subscription_id,
                MalformedJobError(f"Unknown subscription {job.subscription_id}", job.subscription_id),
            )

        if isinstance(job, SkipJob):
            return self._skip(job, subscription, now)
        return self._switch(job, subscription, now)

    def process_row(self, row, now=None) -> SyncOutcome:
        """Process a stored SyncJob row and record its final status."""
        action = ACTION_SKIP if row.kind == row.KIND_SKIP else ACTION_SWITCH
        try:
            job = row.as_job()
        except MalformedJobError as e:
            row.mark_rejected(str(e))
            return self._malformed(action, row.subscription_id, e)

        row.mark_running()
        try:
            outcome = self.process(job, now=now)
        except Exception as e:
            # Always finish the row
            logger.exception(f"Sync job {row.pk} for subscription {row.subscription_id} aborted")
            error = f"{type(e).__name__}: {e}"
            row.mark_finished(False, error)
            return SyncOutcome(success=False, action=action, error=error)
        if outcome.audit is None and not outcome.success:
            row.mark_rejected(outcome.error)
        else:
            row.mark_finished(outcome.success, outcome.error)
        return outcome

    # =========================================================================
    # SKIP
    # =========================================================================

    def _skip(self, job, subscription, now):
        from subscriptions.models import Customer, SkipReason

        sid = subscription.subscription_id
        prepaid = self.engine.is_prepaid(subscription, now)
        next_charge = subscription.next_charge_scheduled_at
        customer = Customer.resolve(job.customer_ref)

        detail = {'prepaid': prepaid, 'calls': []}
        success = False
        error = ''
        date_str = local(next_charge).strftime('%Y-%m-%d') if next_charge else None

        already_applied = next_charge is not None and SkipReason.objects.for_subscription(sid).filter(
            skip_status=True, skipped_to=next_charge
        ).exists()

        if already_applied:
            # Redelivered job: the ledger already has this date
            detail['duplicate'] = True
            success = True
            logger.info(f"Skip for subscription {sid} to {date_str} already applied; no remote call")
        elif next_charge is None:
            error = f"Subscription {sid} has no next charge date"
        else:
            try:
                success = self._push_skip(job, sid, date_str, prepaid, now, detail['calls'])
                if not success:
                    error = _describe_failure(detail['calls'][-1])
            except Exception as e:
                logger.exception(f"Skip for subscription {sid} failed during remote call")
                detail['calls'].append({'error': f"{type(e).__name__}: {e}"})
                success = False
                error = f"{type(e).__name__}: {e}"

        if error:
            detail['error'] = error

        audit = SkipReason.objects.create(
            customer_id=customer.customer_id if customer else subscription.customer_id,
            shopify_customer_id=customer.shopify_customer_id if customer else job.customer_ref,
            subscription_id=sid,
            skipped_to=next_charge,
            skip_status=success,
            reason=job.reason,
            detail=detail,
        )
        self._audit_log(ACTION_SKIP, sid, {'status': success, 'skipped_to': date_str, 'audit': audit.pk})

        notice = {'date': date_str, 'reason': job.reason}
        if detail.get('duplicate'):
            notice['duplicate'] = True
        if error:
            notice['error'] = error
        self._notify(SUCCESS if success else FAILURE, sid, ACTION_SKIP, notice)

        return SyncOutcome(success=success, action=ACTION_SKIP, audit=audit, detail=detail, error=error)

    def _push_skip(self, job, sid, date_str, prepaid, now, calls):
        path = f"/subscriptions/{sid}/set_next_charge_date"
        status, body = self.client.post(path, {'date': date_str})
        calls.append(_call('POST', path, status, body))

        if prepaid:
            self._redate_prepaid_orders(job, sid, now, calls)
        return calls[-1]['ok']

    def _redate_prepaid_orders(self, job, sid, now, calls):
        from subscriptions.models import Order

        path = '/orders'
        status, body = self.client.get(path, params={'subscription_id': sid, 'status': 'QUEUED'})
        calls.append(_call('GET', path, status, body))
        if not is_success(status):
            return

        reference = requested_at(job) or now
        for remote_order in (body or {}).get('orders') or []:
            scheduled_at = to_time(remote_order.get('scheduled_at'))
            if not in_month(scheduled_at, reference):
                continue
            new_scheduled_at = add_months(scheduled_at, 1)
            order_path = f"/orders/{remote_order['id']}/change_date"
            status, body = self.client.post(order_path, {'scheduled_at': remote_time(new_scheduled_at)})
            call = _call('POST', order_path, status, body)
            call['order_id'] = int(remote_order['id'])
            call['scheduled_at'] = remote_time(new_scheduled_at)
            calls.append(call)
            if call['ok']:
                Order.objects.filter(pk=call['order_id']).update(scheduled_at=new_scheduled_at)

    # =========================================================================
    # SWITCH
    # =========================================================================

    def _switch(self, job, subscription, now):
        from subscriptions.models import ProductSwitch

        sid = subscription.subscription_id
        prepaid = self.engine.is_prepaid(subscription, now)
        detail = {'prepaid': prepaid, 'calls': []}
        order_ids = []
        from_product_id = None
        to_product_id = job.target_product_id
        success = False
        error = ''

        try:
            if prepaid:
                from_product_id, to_product_id, order_ids = self._switch_prepaid(job, sid, now, detail['calls'])
            else:
                # Local product was already switched when the job was enqueued
                to_product_id = subscription.shopify_product_id
                self._switch_subscription(subscription, detail['calls'])
            success = bool(detail['calls']) and detail['calls'][-1]['ok']
            if not success:
                error = _describe_failure(detail['calls'][-1]) if detail['calls'] else 'Nothing to switch'
        except SubscriptionSyncError as e:
            error = str(e)
        except Exception as e:
            logger.exception(f"Switch for subscription {sid} failed during remote call")
            detail['calls'].append({'error': f"{type(e).__name__}: {e}"})
            error = f"{type(e).__name__}: {e}"

        if error:
            detail['error'] = error

        audit = ProductSwitch.objects.create(
            customer_id=subscription.customer_id,
            subscription_id=sid,
            from_product_id=from_product_id,
            to_product_id=to_product_id,
            order_ids=order_ids,
            switch_status=success,
            reason=error or None,
            detail=detail,
        )
        self._audit_log(ACTION_SWITCH, sid, {'status': success, 'to': to_product_id, 'audit': audit.pk})

        notice = {
            'shopify_product_id': to_product_id,
            'product_title': _product_title(to_product_id) or subscription.product_title,
        }
        if error:
            notice['error'] = error
        self._notify(SUCCESS if success else FAILURE, sid, ACTION_SWITCH, notice)

        return SyncOutcome(success=success, action=ACTION_SWITCH, audit=audit, detail=detail, error=error)

    def _switch_subscription(self, subscription, calls):
        path = f"/subscriptions/{subscription.subscription_id}"
        status, body = self.client.put(path, to_remote(subscription, PRODUCT_FIELDS))
        calls.append(_call('PUT', path, status, body, ok=status == 200))

    def _switch_prepaid(self, job, sid, now, calls):
        from subscriptions.models import Order, Product

        orders = Order.objects.queued_for_subscription_this_month(sid, now, is_prepaid=True)
        if not orders:
            raise SubscriptionSyncError(f"No queued prepaid orders this month for subscription {sid}")

        from_product_id = _int_or_none(orders[0].property_value('product_id'))
        target = job.target_product_id or self.engine.alternate_product_id(from_product_id)
        product = Product.objects.filter(shopify_id=target).first() if target else None
        if product is None:
            raise SubscriptionSyncError(f"Unknown target product {target!r} for subscription {sid}")
        variant = product.default_variant()

        order_ids = []
        for order in orders:
            line_items = rewrite_line_items(order, product, variant)
            path = f"/orders/{order.order_id}"
            status, body = self.client.put(path, {'line_items': line_items})
            call = _call('PUT', path, status, body, ok=status == 200)
            call['order_id'] = order.order_id
            calls.append(call)
            order_ids.append(order.order_id)
            if call['ok']:
                _store_line_items(order.order_id, sid, line_items)
        return from_product_id, product.shopify_id, order_ids

    # =========================================================================
    # FAILURE PATHS
    # =========================================================================

    def _malformed(self, action, subscription_id, error):
        logger.error(f"Malformed {action} job for subscription {subscription_id}: {error}")
        if subscription_id not in (None, ''):
            self._notify(FAILURE, subscription_id, action, {'error': str(error)})
        return SyncOutcome(success=False, action=action, error=str(error))

    def _notify(self, kind, subscription_id, action, detail):
        try:
            self.notifier.notify(kind, subscription_id, action, detail)
        except Exception:
            logger.exception(f"Could not queue {kind} notification for subscription {subscription_id} ({action})")

    @classmethod
    def _audit_log(cls, action, subscription_id, metadata):
        logger.info(f"[SYNC_AUDIT] {action} | subscription={subscription_id} | {metadata}")


# ==============================================================================
# HELPERS
# ==============================================================================

def _call(method, path, status, body, ok=None):
    return {
        'method': method,
        'path': path,
        'status': status,
        'ok': is_success(status) if ok is None else ok,
        'body': body if not is_success(status) else None,
    }


def _describe_failure(call):
    if call.get('error'):
        return call['error']
    return f"Recharge returned {call.get('status')} for {call.get('method')} {call.get('path')}"


def _int_or_none(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _product_title(product_id):
    from subscriptions.models import Product

    if not product_id:
        return None
    product = Product.objects.filter(shopify_id=product_id).first()
    return product.title if product else None


def rewrite_line_items(order, product, variant=None):
    """
    Full line-item array for an order with this subscription's items moved
    to ``product``.

    The remote ledger replaces the whole array, so every other field and
    every other subscription's items are sent back unchanged.
    """
    rewritten = []
    for item in order.line_items:
        properties = [dict(prop) for prop in item.properties]
        line_item = {
            'properties': properties,
            'quantity': int(item.quantity or 1),
            'sku': item.sku,
            'title': item.title,
            'variant_title': item.variant_title,
            'product_id': _int_or_none(item.shopify_product_id),
            'variant_id': _int_or_none(item.shopify_variant_id),
            'subscription_id': int(item.subscription_id),
        }
        if item.subscription_id == order.subscription_id:
            for prop in properties:
                if prop.get('name') == 'product_id':
                    prop['value'] = str(product.shopify_id)
                elif prop.get('name') == 'product_collection':
                    prop['value'] = product.title
            line_item.update({
                'title': product.title,
                'product_id': product.shopify_id,
            })
            if variant is not None:
                line_item.update({
                    'sku': variant.sku,
                    'variant_title': variant.title,
                    'variant_id': variant.variant_id,
                })
        rewritten.append(line_item)
    return rewritten


def _store_line_items(order_id, subscription_id, line_items):
    from subscriptions.models import OrderLineItem

    with transaction.atomic():
        rows = list(OrderLineItem.objects.filter(order_id=order_id).order_by('pk'))
        for row, item in zip(rows, line_items):
            if row.subscription_id != subscription_id:
                continue
            row.shopify_product_id = item['product_id']
            row.shopify_variant_id = item['variant_id']
            row.title = item['title']
            row.variant_title = item['variant_title'] or ''
            row.sku = item['sku'] or ''
            row.properties = item['properties']
            row.save()
