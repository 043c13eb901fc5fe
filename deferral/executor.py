import logging
from typing import Any, Callable, Mapping

from sqlalchemy.orm import Session

from deferral.codecs import decode_payload
from deferral.exceptions import UnknownJobType
from deferral.jobs import JOB_TYPES, GenericJob
from deferral.models.call import At, DeferredCallRecord, Immediate
from deferral.models.job import Job


logger = logging.getLogger(__name__)


class Executor:
    """Replays the deferred calls stored in dequeued jobs.

    An executor holds no per-job state, running the same job twice simply
    makes the call twice.

    Examples:

        >>> executor = Executor(session_factory=sessionmaker(engine))
        >>> with queue.dequeue("default") as job:
        ...     if job:
        ...         executor.execute(job)

    Args:
        session_factory (Callable[[], Session] | None): Opens sessions for
            the model flavor.
        job_types (Mapping[str, type[GenericJob]] | None): Job flavors by
            name. Defaults to ``"call"``, ``"model"`` and ``"mailer"``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        job_types: Mapping[str, type[GenericJob]] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.job_types = dict(JOB_TYPES if job_types is None else job_types)

    def decode(self, job: Job) -> DeferredCallRecord:
        """Rebuild the record that was submitted as ``job``.

        The schedule reflects the row as it is now, not the original capture:
        a job retried after a failure has a later ``scheduled_at`` and decodes
        as ``At``, even when it was first enqueued for immediate processing.
        """
        _, parts = decode_payload(job.payload)
        schedule = At(job.scheduled_at.timestamp()) if job.is_scheduled else Immediate()
        return DeferredCallRecord(
            schedule=schedule,
            queue_name=job.queue,
            job_type=job.job_type or "call",
            **parts,
        )

    def flavor(self, job_type: str) -> GenericJob:
        try:
            job_class = self.job_types[job_type]
        except KeyError:
            raise UnknownJobType(f"Unknown job type {job_type!r}") from None
        return job_class(session_factory=self.session_factory)

    def execute(self, job: Job) -> Any:
        """Run the deferred call stored in ``job``.

        Any error is re-raised, so that the dequeue context manager marks
        the job as failed.

        Raises:
            SerializationError: The payload can't be decoded.
            UnknownJobType: No flavor is registered for the job's type.
            UnresolvableReceiver: The receiver or the method is gone.
            UndeliverableMessage: A mailer method returned no message.
        """
        logger.debug(f"Dequeued job {job.id} ({job.job_type}) from queue {job.queue!r}")
        try:
            record = self.decode(job)
            result = self.flavor(record.job_type).perform(record)
        except Exception as exc:
            logger.debug(f"Failed job {job.id} {job.display_name or ''}: {exc!r}")
            raise

        logger.debug(f"Completed job {job.id}")
        logger.info(f"Executed {record.display_name} (job {job.id})")
        return result
