import logging
from typing import Any
from uuid import UUID

from deferral.codecs import ProxyStrategy, encode_payload, get_codec
from deferral.core import JobQueue
from deferral.models.call import DeferredCallRecord, Immediate, InstanceReceiver


logger = logging.getLogger(__name__)


PAYLOAD_WARNING_THRESHOLD = 8192
"""Arguments larger than this many bytes, once encoded, are logged."""


class JobDispatch:
    """Turns deferred call records into jobs on a ``JobQueue``.

    Args:
        queue (JobQueue): The queue the jobs go to.
        warning_threshold (int): Encoded size in bytes above which an
            argument is reported as oversized.
    """

    def __init__(
        self,
        queue: JobQueue,
        warning_threshold: int = PAYLOAD_WARNING_THRESHOLD,
    ) -> None:
        self.queue = queue
        self.warning_threshold = warning_threshold

    def submit(
        self,
        record: DeferredCallRecord,
        strategy: ProxyStrategy = ProxyStrategy.GENERIC,
    ) -> UUID:
        """Encode the record and enqueue it.

        Immediate calls are enqueued for now, delayed and timed calls are
        scheduled at their resolved timestamp. Each submission creates a
        new job.

        Returns:
            UUID: Identifier of the new job.

        Raises:
            SerializationError: The call can't be encoded.
            QueueUnavailable: The queue refused the job.
        """
        codec = get_codec(strategy)
        payload = encode_payload(record, codec)
        self._check_sizes(record, codec)

        options: dict[str, Any] = dict(record.queue_options)
        options["job_type"] = record.job_type
        options["display_name"] = record.display_name

        if isinstance(record.schedule, Immediate):
            job = self.queue.enqueue_now(record.queue_name, payload, **options)
        else:
            job = self.queue.schedule_at(
                record.queue_name,
                payload,
                record.schedule.resolve(),
                **options,
            )

        logger.debug(
            f"Submitted {record.display_name} as job {job.id} "
            f"in queue {job.queue!r} using {codec.name} codec"
        )
        return job.id

    def _check_sizes(self, record: DeferredCallRecord, codec: Any) -> None:
        values = list(record.positional_args) + list(record.keyword_args.values())
        if isinstance(record.receiver, InstanceReceiver):
            values.append(record.receiver.identity)

        for value in values:
            size = codec.measure(value)
            if size > self.warning_threshold:
                logger.warning(
                    f"{record.receiver.display}.{record.method_name} job argument "
                    f"is {size} bytes, you should refactor it to reduce the size"
                )
