import json
from datetime import datetime, timezone, timedelta
from uuid import UUID
from typing import Any, Iterable

from deferral.core.base import BaseQueue
from deferral.models.base_job import BaseJob
from deferral.models.params import EnqueueParams, ClaimParams


DEFAULT_MIN_RETRY_DELAY = 1000
DEFAULT_MAX_RETRY_DELAY = 12 * 3600 * 1000
DEFAULT_BACKOFF_BASE = 1000


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def to_ms(value: int | timedelta | None) -> int | None:
    if isinstance(value, timedelta):
        return int(value.total_seconds() * 1000)
    return value


def _expect(value: Any, kind: type, message: str) -> None:
    if value is not None and not isinstance(value, kind):
        raise ValueError(message)


def validate_queue_name(queue: str | None) -> None:
    _expect(queue, str, "Queue name must be a string")


def validate_queue_names(queues: Iterable[str]) -> None:
    for queue in queues:
        validate_queue_name(queue)


def validate_job_id(job_id: UUID) -> None:
    if not isinstance(job_id, UUID):
        raise ValueError("Job ID must be a UUID")


def parse_statuses(status: str | Iterable[str] | None) -> list[str]:
    if status is None:
        return []
    statuses = [status] if isinstance(status, str) else list(status)
    for value in statuses:
        _expect(value, str, "Status must be a string")
    return statuses


def serialize_payload(payload: Any) -> str | None:
    """Strings are stored as they are, anything else as JSON."""
    if payload is None or isinstance(payload, str):
        return payload
    return json.dumps(payload)


def parse_enqueue_params(
    queue: str | None = None,
    payload: Any | None = None,
    at: datetime | int | None = None,
    delay: int | timedelta | None = None,
    max_age: int | timedelta | None = None,
    max_retry_count: int | None = None,
    min_retry_delay: int | timedelta | None = None,
    max_retry_delay: int | timedelta | None = None,
    backoff_base: int | timedelta | None = None,
    job_type: str | None = None,
    display_name: str | None = None,
) -> EnqueueParams:
    if isinstance(payload, BaseJob):
        # Re-enqueue of an existing job, explicit arguments win
        template = payload
        queue = queue or template.queue
        job_type = job_type or template.job_type
        display_name = display_name or template.display_name
        at = at or template.scheduled_at
        max_age = max_age or template.max_age
        max_retry_count = max_retry_count or template.max_retry_count
        min_retry_delay = min_retry_delay or template.min_retry_delay
        max_retry_delay = max_retry_delay or template.max_retry_delay
        backoff_base = backoff_base or template.backoff_base
        payload = template.payload

    queue = queue or BaseQueue.DEFAULT
    validate_queue_name(queue)
    _expect(max_retry_count, int, "max_retry_count must be an integer")

    min_retry_delay = to_ms(min_retry_delay) or DEFAULT_MIN_RETRY_DELAY
    max_retry_delay = to_ms(max_retry_delay) or DEFAULT_MAX_RETRY_DELAY
    if max_retry_delay < min_retry_delay:
        raise ValueError("max_retry_delay cannot be less than min_retry_delay")

    enqueued_at = now_ms()
    if at is None:
        scheduled_at = enqueued_at
    elif isinstance(at, datetime):
        scheduled_at = int(at.timestamp() * 1000)
    else:
        scheduled_at = at
    scheduled_at += to_ms(delay) or 0

    return EnqueueParams(
        queue=queue,
        job_type=job_type,
        display_name=display_name,
        serialized_payload=serialize_payload(payload),
        max_age_ms=to_ms(max_age),
        max_retry_count=max_retry_count,
        min_retry_delay=min_retry_delay,
        max_retry_delay=max_retry_delay,
        backoff_base=to_ms(backoff_base) or DEFAULT_BACKOFF_BASE,
        enqueued_at_ms=enqueued_at,
        scheduled_at_ms=scheduled_at,
    )


def parse_claim_params(
    *queues: str,
    before: datetime | int | None = None,
    claim_as: str | None = None,
) -> ClaimParams:
    validate_queue_names(queues)
    _expect(claim_as, str, "claim_as must be a string")

    now = now_ms()
    if before is None:
        before_ms = now
    elif isinstance(before, datetime):
        before_ms = int(before.timestamp() * 1000)
    else:
        before_ms = before

    return ClaimParams(
        queues=list(queues),
        now_ms=now,
        before_ms=before_ms,
        claim_as=claim_as,
    )
