"""Job flavors that replay deferred calls inside a worker.

Every flavor resolves the receiver, invokes the method and then does its
own post-processing with the result:

* ``DelayedCall`` discards the result.
* ``DelayedModel`` loads SQLAlchemy instances by primary key and commits
  the session the method ran in.
* ``DelayedMailer`` delivers the message the mailer method built.
"""
import logging
from typing import Any, Callable

from sqlalchemy.orm import Session

from deferral.exceptions import UndeliverableMessage, UnresolvableReceiver
from deferral.models.call import DeferredCallRecord, InstanceReceiver
from deferral.receivers import resolve_type_name, restore_instance


logger = logging.getLogger(__name__)


class GenericJob:
    """Base class for job flavors.

    Args:
        session_factory (Callable[[], Session] | None): Opens the ORM
            sessions used to load model instances.
    """

    job_type = "call"

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self.session_factory = session_factory

    def perform(self, record: DeferredCallRecord) -> Any:
        """Resolve the receiver, invoke the method and post-process."""
        logger.debug(f"Resolving {record.display_name}")
        target = self.resolve(record)
        return self._perform(target, record)

    def resolve(self, record: DeferredCallRecord) -> Any:
        target = resolve_type_name(record.receiver.type_name)
        if isinstance(record.receiver, InstanceReceiver):
            return self.restore(target, record.receiver.identity)
        return target

    def restore(self, cls: type, identity: Any) -> Any:
        return restore_instance(cls, identity)

    def invoke(self, target: Any, record: DeferredCallRecord) -> Any:
        try:
            method = getattr(target, record.method_name)
        except AttributeError as exc:
            raise UnresolvableReceiver(
                f"{record.display_name} is not defined anymore"
            ) from exc

        logger.debug(f"Invoking {record.display_name}")
        if record.has_keyword_args:
            return method(*record.positional_args, **record.keyword_args)
        return method(*record.positional_args)

    def _perform(self, target: Any, record: DeferredCallRecord) -> Any:
        return self.invoke(target, record)


class DelayedCall(GenericJob):
    """Calls a method on a class, a module or a value object."""

    job_type = "call"

    def _perform(self, target: Any, record: DeferredCallRecord) -> None:
        self.invoke(target, record)


class DelayedModel(GenericJob):
    """Calls a method on a SQLAlchemy model class or a persisted instance.

    Instances are loaded with ``Session.get()`` in a fresh session, and the
    session is committed once the method returns, so that changes the
    method makes to the instance are saved.
    """

    job_type = "model"

    def perform(self, record: DeferredCallRecord) -> Any:
        if not isinstance(record.receiver, InstanceReceiver):
            return super().perform(record)

        if self.session_factory is None:
            raise UnresolvableReceiver(
                f"Can't load {record.receiver.display} without a session factory"
            )

        logger.debug(f"Resolving {record.display_name}")
        cls = resolve_type_name(record.receiver.type_name)
        with self.session_factory() as session:
            identity = record.receiver.identity
            if isinstance(identity, list):
                identity = tuple(identity)
            instance = session.get(cls, identity)
            if instance is None:
                raise UnresolvableReceiver(
                    f"{record.receiver.display} with identity {record.receiver.identity!r} "
                    "doesn't exist anymore"
                )
            self.invoke(instance, record)
            session.commit()


class DelayedMailer(GenericJob):
    """Calls a mailer method and delivers the message it returns."""

    job_type = "mailer"

    def _perform(self, target: Any, record: DeferredCallRecord) -> None:
        message = self.invoke(target, record)
        if not message:
            raise UndeliverableMessage(
                f"{record.receiver.display}#{record.method_name} "
                "returned an undeliverable mail object"
            )
        message.deliver_now()


JOB_TYPES: dict[str, type[GenericJob]] = {
    job.job_type: job for job in (DelayedCall, DelayedModel, DelayedMailer)
}
