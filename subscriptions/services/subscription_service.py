# subscriptions/services/subscription_service.py
"""
Subscription action service - skip, switch, listing, remote field updates.

This is the request path: it asks the eligibility engine whether an action
is allowed, applies the local change, and queues the remote sync job. The
remote ledger is only touched by the sync worker.
"""

import logging
from typing import Optional

from django.db import transaction
from django.utils import timezone

from subscriptions.exceptions import MappingError

logger = logging.getLogger(__name__)


class SubscriptionActionService:
    """
    Skip/switch requests and subscription updates.

    Usage:
        result = SubscriptionActionService.request_skip(subscription, customer_ref, reason)
        result = SubscriptionActionService.request_switch(subscription, product_id)
        result = SubscriptionActionService.skippable_subscriptions(customer)
        result = SubscriptionActionService.apply_update(subscription, payload)
    """

    # =========================================================================
    # SKIP
    # =========================================================================

    @classmethod
    def request_skip(cls, subscription, customer_ref=None, reason: Optional[str] = None, now=None,
                     engine=None, queue=None) -> dict:
        """
        Skip a subscription's next charge by one month.

        Args:
            subscription: Subscription instance
            customer_ref: Storefront customer id of the requester
            reason: Free-text skip reason
            now: Reference time (default: now)

        Returns:
            {ok: bool, reason: str, code?: str, data: {subscription_id, next_charge_scheduled_at, prepaid}}
        """
        from subscriptions.jobs import SkipJob, stamp
        from subscriptions.models import Customer, SkipReason

        now = now or timezone.now()
        engine = engine or cls._engine()
        queue = queue or cls._queue()
        sid = subscription.subscription_id
        prepaid = engine.is_prepaid(subscription, now)

        accepted = False
        with transaction.atomic():
            if prepaid:
                allowed = engine.skip_prepaid(subscription, now)
            else:
                allowed = engine.skip(subscription, now)
            if allowed:
                job = SkipJob(
                    subscription_id=sid,
                    customer_ref=customer_ref,
                    reason=reason,
                    requested_at=stamp(now),
                )
                accepted = queue.enqueue(job)
                if not accepted:
                    transaction.set_rollback(True)

        if not allowed:
            customer = Customer.resolve(customer_ref)
            SkipReason.objects.create(
                customer_id=customer.customer_id if customer else subscription.customer_id,
                shopify_customer_id=customer.shopify_customer_id if customer else customer_ref,
                subscription_id=sid,
                skipped_to=subscription.next_charge_scheduled_at,
                skip_status=False,
                reason=reason,
                detail={'rejected': True, 'prepaid': prepaid},
            )
            cls._audit_log(sid, "skip_rejected", {"prepaid": prepaid})
            return cls._fail(
                "Subscription can not be skipped this month.",
                code="NOT_ELIGIBLE",
                data={"subscription_id": sid, "prepaid": prepaid},
            )

        if not accepted:
            subscription.refresh_from_db()
            return cls._fail(
                "Skip could not be queued, please try again.",
                code="QUEUE_ERROR",
                data={"subscription_id": sid},
            )

        next_charge = subscription.next_charge_scheduled_at
        cls._audit_log(sid, "skip_queued", {"prepaid": prepaid, "next_charge": next_charge})
        return cls._success(
            "Skip queued.",
            data={
                "subscription_id": sid,
                "next_charge_scheduled_at": next_charge.isoformat() if next_charge else None,
                "prepaid": prepaid,
            }
        )

    # =========================================================================
    # SWITCH
    # =========================================================================

    @classmethod
    def request_switch(cls, subscription, product_id=None, now=None, engine=None, queue=None) -> dict:
        """
        Switch a subscription to another product.

        Regular subscriptions change their local product immediately; the
        prepaid wrapper product is left alone and only this month's queued
        orders are rewritten by the worker.

        Returns:
            {ok: bool, reason: str, code?: str, data: {subscription_id, shopify_product_id, prepaid}}
        """
        from subscriptions.jobs import SwitchJob, stamp
        from subscriptions.models import ProductSwitch

        now = now or timezone.now()
        engine = engine or cls._engine()
        queue = queue or cls._queue()
        sid = subscription.subscription_id
        from_product_id = subscription.shopify_product_id
        prepaid = engine.is_prepaid(subscription, now)
        target = int(product_id) if product_id not in (None, '') else None

        accepted = False
        with transaction.atomic():
            if prepaid:
                allowed = engine.is_switchable_prepaid(subscription, now)
            else:
                allowed = engine.switch_product(subscription, target, now)
                target = subscription.shopify_product_id if allowed else target
            if allowed:
                accepted = queue.enqueue(SwitchJob(
                    subscription_id=sid,
                    target_product_id=target,
                    requested_at=stamp(now),
                ))
                if not accepted:
                    transaction.set_rollback(True)

        if not allowed:
            ProductSwitch.objects.create(
                customer_id=subscription.customer_id,
                subscription_id=sid,
                from_product_id=from_product_id,
                to_product_id=target,
                switch_status=False,
                reason="Not eligible for a product switch this month",
                detail={'rejected': True, 'prepaid': prepaid},
            )
            cls._audit_log(sid, "switch_rejected", {"prepaid": prepaid, "to": target})
            return cls._fail(
                "Subscription can not be switched this month.",
                code="NOT_ELIGIBLE",
                data={"subscription_id": sid, "prepaid": prepaid},
            )

        if not accepted:
            subscription.refresh_from_db()
            return cls._fail(
                "Switch could not be queued, please try again.",
                code="QUEUE_ERROR",
                data={"subscription_id": sid},
            )

        cls._audit_log(sid, "switch_queued", {"prepaid": prepaid, "from": from_product_id, "to": target})
        return cls._success(
            "Switch queued.",
            data={
                "subscription_id": sid,
                "shopify_product_id": subscription.shopify_product_id,
                "target_product_id": target,
                "prepaid": prepaid,
            }
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    @classmethod
    def skippable_subscriptions(cls, customer, now=None, engine=None) -> dict:
        """
        List a customer's subscriptions with their skip/switch eligibility.

        Returns:
            {ok: bool, data: {subscriptions: [...]}}
        """
        from subscriptions.models import Subscription

        now = now or timezone.now()
        engine = engine or cls._engine()
        rows = []
        for subscription in Subscription.objects.filter(customer_id=customer.customer_id):
            prepaid = engine.is_prepaid(subscription, now)
            if prepaid:
                skippable = engine.is_skippable_prepaid(subscription, now)
                switchable = engine.is_switchable_prepaid(subscription, now)
            else:
                skippable = engine.is_skippable(subscription, now)
                switchable = engine.is_switchable(subscription, now)
            next_charge = subscription.next_charge_scheduled_at
            rows.append({
                "subscription_id": subscription.subscription_id,
                "product_title": subscription.product_title,
                "shopify_product_id": subscription.shopify_product_id,
                "status": subscription.status,
                "next_charge_scheduled_at": next_charge.isoformat() if next_charge else None,
                "prepaid": prepaid,
                "skippable": skippable,
                "switchable": switchable,
            })

        return cls._success(
            "Subscriptions retrieved.",
            data={"subscriptions": rows, "count": len(rows)}
        )

    # =========================================================================
    # REMOTE FIELD UPDATES
    # =========================================================================

    @classmethod
    def apply_update(cls, subscription, payload) -> dict:
        """
        Apply a partial remote-format update locally, then push it.

        Unknown keys are dropped; recognised keys with values that cannot be
        transformed reject the whole update.

        Returns:
            {ok: bool, reason: str, code?: str, data: {subscription_id, updated}}
        """
        from subscriptions.api_map import filter_recognized, to_local
        from subscriptions.tasks import push_subscription

        try:
            recognized = filter_recognized(payload)
        except MappingError as e:
            return cls._fail(str(e), code="INVALID_FIELD", data={"field": e.field})

        if not recognized:
            return cls._fail("No updatable fields in request.", code="NO_FIELDS")

        sid = subscription.subscription_id
        keys = sorted(recognized)
        with transaction.atomic():
            for local_key, value in to_local(recognized).items():
                setattr(subscription, local_key, value)
            subscription.save()
            transaction.on_commit(lambda: push_subscription.delay(sid, keys))

        cls._audit_log(sid, "subscription_updated", {"fields": keys})
        return cls._success(
            "Subscription updated.",
            data={"subscription_id": sid, "updated": keys}
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @classmethod
    def _engine(cls):
        from subscriptions.services.eligibility import EligibilityEngine
        return EligibilityEngine()

    @classmethod
    def _queue(cls):
        from subscriptions.services.job_queue import SyncJobQueue
        return SyncJobQueue()

    @classmethod
    def _success(cls, reason: str, data: Optional[dict] = None) -> dict:
        return {"ok": True, "reason": reason, "data": data or {}}

    @classmethod
    def _fail(cls, reason: str, code: str = "ERROR", data: Optional[dict] = None) -> dict:
        return {"ok": False, "reason": reason, "code": code, "data": data or {}}

    @classmethod
    def _audit_log(cls, subscription_id, action: str, metadata: dict):
        logger.info(f"[SUBSCRIPTION_AUDIT] {action} | subscription={subscription_id} | {metadata}")
