import json
import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from uuid import uuid4, UUID
from typing import Any

from .base_job import BaseJob, JobStatusValueType
from .raw_job import RawJob


logger = logging.getLogger(__name__)


_TIMESTAMPS = ("enqueued_at", "scheduled_at", "claimed_at", "finished_at")
_COPIED = (
    "id",
    "queue",
    "job_type",
    "display_name",
    "status",
    "max_age",
    "max_retry_count",
    "min_retry_delay",
    "max_retry_delay",
    "backoff_base",
    "attempts",
    "error",
    "error_trace",
    "claimed_by",
)


def _from_ms(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job(BaseJob):
    """A job as workers see it: decoded payload, ``datetime`` timestamps.

    Durations (``max_age`` and the retry delays) stay in milliseconds.
    """

    id: UUID = field(default_factory=uuid4)
    """Generated by the producer, never by the database."""
    queue: str = field(default="default")
    job_type: str | None = field(default=None)
    """Flavor that executes a deferred call: ``"call"``, ``"model"`` or
    ``"mailer"``. None for jobs enqueued directly."""
    display_name: str | None = field(default=None)
    """``"User.notify"`` for a call on a class, ``"User#notify"`` for a call
    on an instance."""
    payload: Any | None = field(default=None)
    status: JobStatusValueType | None = field(default=None)
    """One of "queued", "claimed", "success", "failed", "expired",
    "exhausted" or "cancelled"."""
    max_age: int | None = field(default=None)
    """How long the job may wait to be processed before it expires."""
    max_retry_count: int | None = field(default=None)
    """Failed attempts tolerated before the job is exhausted. None means
    retry forever."""
    min_retry_delay: int | None = field(default=1000)
    max_retry_delay: int | None = field(default=12 * 3600 * 1000)
    backoff_base: int | None = field(default=1000)
    """Retry ``n`` waits ``backoff_base * 2 ** n``, clamped to the min and
    max retry delays."""
    enqueued_at: datetime = field(default_factory=_utcnow)
    scheduled_at: datetime = field(default_factory=_utcnow)
    """Earliest time the job may be claimed."""
    attempts: int = field(default=0)
    error: str | None = field(default=None)
    error_trace: str | None = field(default=None)
    claimed_by: str | None = field(default=None)
    claimed_at: datetime | None = field(default=None)
    finished_at: datetime | None = field(default=None)
    _rejected: bool = field(default=False)
    _failed: bool = field(default=False)
    _rescheduled: bool = field(default=False)
    _rescheduled_at: datetime | None = field(default=None)

    @staticmethod
    def from_raw_job(raw_job: RawJob) -> "Job":
        values = {name: getattr(raw_job, name) for name in _COPIED}
        values.update(
            {name: _from_ms(getattr(raw_job, name)) for name in _TIMESTAMPS}
        )
        return Job(payload=Job.deserialize_payload(raw_job.payload), **values)

    @property
    def is_scheduled(self) -> bool:
        """Whether the job was enqueued to run later rather than right away."""
        return self.scheduled_at > self.enqueued_at

    def reject(self) -> None:
        """Hand the job back to the queue, unchanged, when the block exits.

        Only meaningful inside ``dequeue()``.
        """
        self._rejected = True

    def fail(self, exception: str | Exception | None = None) -> None:
        """Fail the job without raising.

        Only meaningful inside ``dequeue()``. A string becomes the error
        message. An exception also records its traceback.
        """
        self._failed = True
        if not exception:
            return
        self.error = str(exception)
        if isinstance(exception, Exception):
            self.error_trace = "".join(traceback.format_exception(exception))

    def reschedule(
        self,
        delay: timedelta | int | None = None,
        at: datetime | int | None = None,
    ) -> None:
        """Run the job again later, without counting this attempt as a failure.

        The new time is ``at + delay``. ``at`` defaults to the current
        ``scheduled_at``. With neither argument the job waits
        ``min_retry_delay``.

        Args:
            delay (timedelta | int | None): Milliseconds or ``timedelta``.
            at (datetime | int | None): ``datetime`` or epoch milliseconds.
        """
        if at is None:
            base = self.scheduled_at
        elif isinstance(at, datetime):
            base = at
        elif isinstance(at, int):
            base = _from_ms(at)
        else:
            raise ValueError(
                "Invalid value for 'at' argument. Expected datetime or int."
            )

        if isinstance(delay, timedelta):
            offset = delay
        elif isinstance(delay, int):
            offset = timedelta(milliseconds=delay)
        elif at is None:
            offset = timedelta(milliseconds=self.min_retry_delay)
        else:
            offset = timedelta()

        self._rescheduled = True
        self._rescheduled_at = base + offset

    @staticmethod
    def deserialize_payload(serialized_payload: str | None) -> Any | None:
        """Decode JSON payloads, other text is returned as it is."""
        if not serialized_payload:
            return None
        try:
            return json.loads(serialized_payload)
        except json.JSONDecodeError:
            logger.debug(f"Payload is not JSON: {serialized_payload[:100]}")
            return serialized_payload
