from .base_job import BaseJob, JobStatusValueType
from .base_sql import BaseSQL
from .call import (
    DEFAULT_QUEUE,
    After,
    At,
    DeferredCallRecord,
    EnqueueOptions,
    Immediate,
    InstanceReceiver,
    ReceiverDescriptor,
    Schedule,
    TypeReceiver,
)
from .job import Job
from .queue_stats import QueueStats
from .raw_job import RawJob


__all__ = [
    "BaseJob",
    "BaseSQL",
    "JobStatusValueType",
    "Job",
    "RawJob",
    "QueueStats",
    "DEFAULT_QUEUE",
    "Immediate",
    "After",
    "At",
    "Schedule",
    "TypeReceiver",
    "InstanceReceiver",
    "ReceiverDescriptor",
    "EnqueueOptions",
    "DeferredCallRecord",
]
