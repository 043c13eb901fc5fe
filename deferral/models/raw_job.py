import time
from uuid import uuid4, UUID
from typing import Optional

from sqlalchemy import Integer, BigInteger, String, Text, Uuid
from sqlalchemy.orm import mapped_column, Mapped

from .params import EnqueueParams
from .base_sql import BaseSQL


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


class RawJob(BaseSQL):
    """One row of the ``jobs`` table.

    Timestamps and durations are integer milliseconds (UTC epoch for
    timestamps). The payload is the serialized text, see ``Job`` for the
    decoded view.
    """

    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    queue: Mapped[str] = mapped_column(String, index=True)
    job_type: Mapped[Optional[str]] = mapped_column(String(30))
    display_name: Mapped[Optional[str]] = mapped_column(String)
    payload: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(30), default="queued", index=True)

    # Retry policy
    max_age: Mapped[Optional[int]] = mapped_column(BigInteger)
    max_retry_count: Mapped[Optional[int]] = mapped_column(Integer)
    min_retry_delay: Mapped[Optional[int]] = mapped_column(Integer, default=1000)
    max_retry_delay: Mapped[Optional[int]] = mapped_column(
        Integer, default=12 * 3600 * 1000
    )
    backoff_base: Mapped[Optional[int]] = mapped_column(Integer, default=1000)

    # Lifecycle
    enqueued_at: Mapped[int] = mapped_column(BigInteger, default=_epoch_ms)
    scheduled_at: Mapped[int] = mapped_column(
        BigInteger, default=_epoch_ms, index=True
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    error: Mapped[Optional[str]] = mapped_column(Text)
    error_trace: Mapped[Optional[str]] = mapped_column(Text)
    claimed_by: Mapped[Optional[str]] = mapped_column(String, index=True)
    claimed_at: Mapped[Optional[int]] = mapped_column(BigInteger)
    finished_at: Mapped[Optional[int]] = mapped_column(BigInteger)

    @staticmethod
    def from_enqueue_params(params: EnqueueParams) -> "RawJob":
        return RawJob(
            queue=params.queue,
            job_type=params.job_type,
            display_name=params.display_name,
            payload=params.serialized_payload,
            status="queued",
            attempts=0,
            max_age=params.max_age_ms,
            max_retry_count=params.max_retry_count,
            min_retry_delay=params.min_retry_delay,
            max_retry_delay=params.max_retry_delay,
            backoff_base=params.backoff_base,
            enqueued_at=params.enqueued_at_ms,
            scheduled_at=params.scheduled_at_ms,
        )
