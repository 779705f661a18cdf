# subscriptions/services/notifications.py
"""
Follow-up notifications for sync outcomes.

The worker emits exactly one notification per processed job. Delivery is a
Celery task that sends mail through Django's configured email backend:
successes go to the customer, failures go to customer service.
"""

import logging

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)

SUCCESS = 'success'
FAILURE = 'failure'

ACTION_LABELS = {
    'skipping': 'skip',
    'switching_product': 'product switch',
}


class NotificationSink:
    """Interface: notify(kind, subscription_id, action, detail)."""

    def notify(self, kind, subscription_id, action, detail):
        raise NotImplementedError


class CeleryNotificationSink(NotificationSink):
    """Queues a send_notification task per notification."""

    def notify(self, kind, subscription_id, action, detail):
        from subscriptions.tasks import send_notification

        logger.info(f"Queueing {kind} notification for subscription {subscription_id} ({action})")
        send_notification.delay(kind, subscription_id, action, detail or {})


class RecordingNotificationSink(NotificationSink):
    """Keeps notifications in memory (tests)."""

    def __init__(self):
        self.sent = []

    def notify(self, kind, subscription_id, action, detail):
        self.sent.append({
            'kind': kind,
            'subscription_id': subscription_id,
            'action': action,
            'detail': detail or {},
        })


# ==============================================================================
# EMAIL COMPOSITION
# ==============================================================================

def compose(kind, subscription_id, action, detail):
    """
    Build (subject, body, recipients) for a notification.

    Returns:
        Tuple, or None when there is nobody to send to.
    """
    from subscriptions.models import Customer, Subscription

    label = ACTION_LABELS.get(action, action)
    detail = detail or {}

    if kind == SUCCESS:
        subscription = Subscription.objects.filter(subscription_id=subscription_id).first()
        customer = None
        if subscription is not None:
            customer = Customer.objects.filter(customer_id=subscription.customer_id).first()
        if customer is None or not customer.email:
            logger.warning(f"No customer email for subscription {subscription_id}; success mail not sent")
            return None
        subject = f"Your subscription {label} is confirmed"
        lines = [f"Hi {customer.first_name or 'there'},", "", f"Your {label} request has been processed."]
        if detail.get('date'):
            lines.append(f"Your next charge date is {detail['date']}.")
        if detail.get('product_title'):
            lines.append(f"Your next order will be {detail['product_title']}.")
        return subject, "\n".join(lines), [customer.email]

    subject = f"[Subscription sync] {label} failed for subscription {subscription_id}"
    lines = [
        f"The {label} for subscription {subscription_id} could not be applied to Recharge.",
        "",
    ]
    lines.extend(f"{key}: {value}" for key, value in sorted(detail.items()))
    return subject, "\n".join(lines), [settings.CUSTOMER_SERVICE_EMAIL]


def deliver(kind, subscription_id, action, detail):
    """Compose and send one notification email. Returns True when sent."""
    message = compose(kind, subscription_id, action, detail)
    if message is None:
        return False
    subject, body, recipients = message
    send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, recipients, fail_silently=False)
    logger.info(f"Sent {kind} notification for subscription {subscription_id} to {recipients}")
    return True
