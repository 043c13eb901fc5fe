from .queue import JobQueue, Subscription
from .base import StopSubscription


__all__ = ["JobQueue", "Subscription", "StopSubscription"]
