# subscriptions/jobs.py
"""
Typed sync jobs carried by the sync queue.

A job holds everything the worker needs to replay the remote call without
going back to the request that produced it. Jobs travel as JSON with a
``kind`` discriminator.
"""

from dataclasses import dataclass, asdict
from typing import Optional

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from subscriptions.exceptions import MalformedJobError


@dataclass(frozen=True)
class SkipJob:
    subscription_id: int
    customer_ref: Optional[int] = None
    reason: Optional[str] = None
    requested_at: Optional[str] = None

    kind = 'skip'

    def as_payload(self):
        return asdict(self)


@dataclass(frozen=True)
class SwitchJob:
    subscription_id: int
    target_product_id: Optional[int] = None
    requested_at: Optional[str] = None

    kind = 'switch'

    def as_payload(self):
        return asdict(self)


JOB_TYPES = {
    SkipJob.kind: SkipJob,
    SwitchJob.kind: SwitchJob,
}


def _optional_int(payload, key):
    value = payload.get(key)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedJobError(f"{key} is not an integer: {value!r}")


def job_from_payload(kind, payload):
    """
    Build a typed job from its JSON form.

    Raises:
        MalformedJobError: unknown kind or missing/invalid subscription reference
    """
    job_type = JOB_TYPES.get(kind)
    if job_type is None:
        raise MalformedJobError(f"Unknown job kind: {kind!r}")
    if not isinstance(payload, dict):
        raise MalformedJobError(f"{kind} payload must be an object")

    subscription_id = _optional_int(payload, 'subscription_id')
    if subscription_id is None:
        raise MalformedJobError(f"{kind} job has no subscription_id")

    if job_type is SkipJob:
        return SkipJob(
            subscription_id=subscription_id,
            customer_ref=_optional_int(payload, 'customer_ref'),
            reason=payload.get('reason'),
            requested_at=payload.get('requested_at'),
        )
    return SwitchJob(
        subscription_id=subscription_id,
        target_product_id=_optional_int(payload, 'target_product_id'),
        requested_at=payload.get('requested_at'),
    )


def validate(job):
    """Return ``job`` unchanged, or raise MalformedJobError."""
    if type(job) not in JOB_TYPES.values():
        raise MalformedJobError(f"Not a sync job: {job!r}")
    if job.subscription_id in (None, ''):
        raise MalformedJobError(f"{job.kind} job has no subscription_id")
    return job_from_payload(job.kind, job.as_payload())


def stamp(now=None):
    """Wire form of a request timestamp."""
    return (now or timezone.now()).isoformat()


def requested_at(job):
    """Parsed ``requested_at`` of a job, or None."""
    if not job.requested_at:
        return None
    return parse_datetime(job.requested_at)
