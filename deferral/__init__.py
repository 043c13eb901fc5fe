from .app import Deferral
from .codecs import ProxyStrategy
from .core import JobQueue, StopSubscription, Subscription
from .dispatch import JobDispatch
from .exceptions import (
    DeferralError,
    QueueUnavailable,
    SerializationError,
    UndeliverableMessage,
    UnknownJobType,
    UnresolvableReceiver,
)
from .executor import Executor
from .models import DeferredCallRecord, Job, QueueStats
from .proxy import CaptureProxy
from .receivers import Deferrable, Identifiable


__all__ = [
    "Deferral",
    "JobQueue",
    "Subscription",
    "StopSubscription",
    "Job",
    "QueueStats",
    "DeferredCallRecord",
    "CaptureProxy",
    "ProxyStrategy",
    "JobDispatch",
    "Executor",
    "Deferrable",
    "Identifiable",
    "DeferralError",
    "SerializationError",
    "QueueUnavailable",
    "UnresolvableReceiver",
    "UndeliverableMessage",
    "UnknownJobType",
]
