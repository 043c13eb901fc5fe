"""Exceptions raised by deferral."""


class DeferralError(Exception):
    """Base class for all deferral errors."""


class SerializationError(DeferralError):
    """A receiver or an argument can't be converted to its transport form,
    or a payload can't be converted back."""


class QueueUnavailable(DeferralError):
    """The job queue could not accept the job."""


class UnresolvableReceiver(DeferralError):
    """The recorded type, module, instance or method no longer resolves."""


class UndeliverableMessage(DeferralError):
    """A mailer method returned no message to deliver."""


class UnknownJobType(DeferralError):
    """A job names a job flavor that the executor doesn't know about."""
