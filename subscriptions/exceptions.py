# subscriptions/exceptions.py
"""
Exceptions raised by the subscription sync pipeline.

Policy rejections (a subscription that may not be skipped or switched) are
never exceptions; eligibility checks return booleans.
"""


class SubscriptionSyncError(Exception):
    """Base class for sync pipeline errors."""


class MalformedJobError(SubscriptionSyncError):
    """A queued job lacks the references needed to replay it."""

    def __init__(self, message, subscription_id=None):
        super().__init__(message)
        self.subscription_id = subscription_id


class RemoteLedgerError(SubscriptionSyncError):
    """The remote ledger could not be reached or answered with garbage."""


class MappingError(SubscriptionSyncError, ValueError):
    """A remote field value could not be transformed to its local type."""

    def __init__(self, field, value, message=''):
        self.field = field
        self.value = value
        super().__init__(message or f"Invalid value for '{field}': {value!r}")


class AuditTrailError(SubscriptionSyncError):
    """Audit rows are append-only; updates and deletes are refused."""
