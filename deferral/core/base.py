from uuid import UUID
from datetime import datetime, timedelta
from typing import Callable, TypeVar, Any

from sqlalchemy import update, Update

from deferral.models.base_job import BaseJob
from deferral.models.raw_job import RawJob


DecoratedCallable = TypeVar("DecoratedCallable", bound=Callable[..., Any])


class StopSubscription(BaseException):
    """Raised inside a worker to end its subscription loop."""


def _ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def retry_delay(job: BaseJob, attempt_num: int) -> int:
    """Milliseconds to wait before the next attempt of a failed job.

    ``backoff_base * 2 ** attempt_num``, kept within the job's
    ``min_retry_delay`` and ``max_retry_delay``.
    """
    delay = job.backoff_base * 2**attempt_num
    return max(job.min_retry_delay, min(delay, job.max_retry_delay))


class BaseQueue:
    """Job statuses, and the statements that record how a claimed job ended."""

    QUEUED = "queued"
    CLAIMED = "claimed"
    SUCCESS = "success"
    FAILED = "failed"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    DEFAULT = "default"

    @staticmethod
    def _finish(job_id: UUID, **values: Any) -> Update:
        return update(RawJob).where(RawJob.id == job_id).values(**values)

    @staticmethod
    def _reject_statement(job_id: UUID, attempt_num: int) -> Update:
        # Back in line, scheduled_at untouched
        return BaseQueue._finish(
            job_id,
            status=BaseQueue.QUEUED,
            attempts=attempt_num,
            claimed_by=None,
            claimed_at=None,
        )

    @staticmethod
    def _success_statement(job_id: UUID, attempt_num: int, finished_at: int) -> Update:
        return BaseQueue._finish(
            job_id,
            status=BaseQueue.SUCCESS,
            attempts=attempt_num,
            finished_at=finished_at,
        )

    @staticmethod
    def _exhausted_statement(job: BaseJob, attempt_num: int, finished_at: int) -> Update:
        return BaseQueue._finish(
            job.id,
            status=BaseQueue.EXHAUSTED,
            attempts=attempt_num,
            finished_at=finished_at,
            error=job.error,
            error_trace=job.error_trace,
        )

    @staticmethod
    def _reschedule_statement(
        job: BaseJob,
        rescheduled_at: datetime,
        status: str = QUEUED,
        attempt_num: int = 0,
        finished_at: int | None = None,
    ) -> Update:
        return BaseQueue._finish(
            job.id,
            status=status,
            attempts=attempt_num,
            scheduled_at=_ms(rescheduled_at),
            finished_at=finished_at,
            error=job.error,
            error_trace=job.error_trace,
        )

    @staticmethod
    def _failed_statement(job: BaseJob, attempt_num: int, finished_at: int) -> Update:
        """Mark the job failed and due again after its retry delay.

        The delay counts from the moment the attempt finished.
        """
        delay = timedelta(milliseconds=retry_delay(job, attempt_num))
        finished = job.claimed_at + timedelta(
            milliseconds=finished_at - _ms(job.claimed_at)
        )
        return BaseQueue._reschedule_statement(
            job,
            finished + delay,
            status=BaseQueue.FAILED,
            attempt_num=attempt_num,
            finished_at=finished_at,
        )
