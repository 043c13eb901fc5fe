import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, TypeVar

from sqlalchemy import Engine
from sqlalchemy.engine.url import URL
from sqlalchemy.orm import Session, sessionmaker

from deferral.codecs import ProxyStrategy
from deferral.core import JobQueue, Subscription
from deferral.dispatch import PAYLOAD_WARNING_THRESHOLD, JobDispatch
from deferral.executor import Executor
from deferral.models.call import DEFAULT_QUEUE
from deferral.models.job import Job
from deferral.proxy import CaptureProxy
from deferral.receivers import is_mapped


logger = logging.getLogger(__name__)

T = TypeVar("T", bound=type)


class Deferral:
    """Defers method calls to background workers.

    Examples:

        Configure with an in memory SQLite database
        >>> app = Deferral("sqlite:///:memory:")
        >>> app.create_all()

        Defer calls on any importable class, module or instance
        >>> app.defer(Report).rebuild(2024)
        >>> app.defer_for(user, timedelta(minutes=5)).send_reminder()
        >>> app.defer_until(UserMailer, tomorrow).digest(user_id=1)

        Classes bound to the app get the entry points as methods
        >>> @app.deferrable(job_type="mailer")
        ... class UserMailer(Deferrable):
        ...     ...
        >>> UserMailer.defer(queue="emails").welcome(user.id)

        Replay the calls in a worker
        >>> app.worker("default", "emails")
        >>> app.run_workers()

    Args:
        engine_or_url (Engine | str | URL): SQLAlchemy engine or database
            connection string of the job queue.
        strategy (ProxyStrategy): Default transport codec for deferred calls.
        default_queue (str): Queue used when a call names none.
        warning_threshold (int): Encoded argument size in bytes above
            which a warning is logged.
        session_factory (Callable[[], Session] | None): Opens the sessions
            model instances are loaded in. Defaults to a ``sessionmaker``
            bound to the queue's engine.
        **kwargs: Additional keyword arguments for SQLAlchemy's
            ``create_engine()`` function.
    """

    def __init__(
        self,
        engine_or_url: Engine | str | URL,
        strategy: ProxyStrategy = ProxyStrategy.GENERIC,
        default_queue: str = DEFAULT_QUEUE,
        warning_threshold: int = PAYLOAD_WARNING_THRESHOLD,
        session_factory: Callable[[], Session] | None = None,
        **kwargs: Any,
    ) -> None:
        self.queue = JobQueue(engine_or_url, **kwargs)
        self.strategy = ProxyStrategy(strategy)
        self.default_queue = default_queue
        self.dispatch = JobDispatch(self.queue, warning_threshold=warning_threshold)
        self.session_factory = session_factory or sessionmaker(self.queue.engine)
        self.executor = Executor(session_factory=self.session_factory)

    def job_type_for(self, receiver: Any) -> str:
        """Name of the job flavor that executes calls on ``receiver``."""
        job_type = getattr(receiver, "__deferred_job__", None)
        if job_type:
            return job_type
        if is_mapped(receiver):
            return "model"
        return "call"

    def defer(
        self,
        receiver: Any,
        *,
        strategy: ProxyStrategy | None = None,
        job_type: str | None = None,
        **options: Any,
    ) -> CaptureProxy:
        """Capture the next method call on ``receiver`` as a job.

        Args:
            receiver (Any): Class, module or instance to call the method on.
            strategy (ProxyStrategy | None): Transport codec for this call.
                Defaults to the app's strategy.
            job_type (str | None): Job flavor. Defaults to the receiver's
                ``__deferred_job__``, ``"model"`` for SQLAlchemy models and
                ``"call"`` otherwise.
            **options: Enqueue options: ``queue``, ``at``, ``retry`` and
                any other ``JobQueue.enqueue()`` parameter.

        Returns:
            CaptureProxy: Enqueues a job for the method called on it.
        """
        return CaptureProxy(
            self.dispatch,
            job_type or self.job_type_for(receiver),
            receiver,
            options,
            strategy=self.strategy if strategy is None else strategy,
            default_queue=self.default_queue,
        )

    def defer_for(
        self, receiver: Any, interval: float | timedelta, **options: Any
    ) -> CaptureProxy:
        """Like ``defer()``, run once ``interval`` has elapsed.

        Args:
            interval (float | timedelta): Delay, in seconds or as a
                ``timedelta``.
        """
        if isinstance(interval, timedelta):
            interval = interval.total_seconds()
        options["at"] = time.time() + float(interval)
        return self.defer(receiver, **options)

    def defer_until(
        self, receiver: Any, timestamp: float | datetime, **options: Any
    ) -> CaptureProxy:
        """Like ``defer()``, run at ``timestamp``.

        Args:
            timestamp (float | datetime): Unix timestamp in seconds or a
                ``datetime``.
        """
        options["at"] = timestamp
        return self.defer(receiver, **options)

    def register(self, cls: T, job_type: str | None = None) -> T:
        """Bind a ``Deferrable`` class to this app."""
        cls.__deferral__ = self
        if job_type is not None:
            cls.__deferred_job__ = job_type
        logger.debug(f"Registered {cls.__module__}.{cls.__qualname__}")
        return cls

    def deferrable(
        self, cls: T | None = None, *, job_type: str | None = None
    ) -> T | Callable[[T], T]:
        """Decorator form of ``register()``.

        Examples:

            >>> @app.deferrable
            ... class Report(Deferrable): ...

            >>> @app.deferrable(job_type="mailer")
            ... class UserMailer(Deferrable): ...
        """

        def decorator(cls: T) -> T:
            return self.register(cls, job_type=job_type)

        if cls is None:
            return decorator
        return decorator(cls)

    def work_once(self, *queues: str, claim_as: str | None = None) -> Job | None:
        """Execute the oldest ready job, if any.

        Failures are recorded on the job and not raised.

        Returns:
            (Job | None): The processed job or None if no job was ready.
        """
        with self.queue.dequeue(*queues, claim_as=claim_as) as job:
            if job:
                self.executor.execute(job)
        return job

    def worker(
        self,
        *queues: str,
        claim_as: str | None = None,
        sleep: int = 1000,
        raise_stop_on_unhandled_exc: bool = False,
        reclaim_after: int = 60 * 1000,
    ) -> Subscription:
        """Register a subscription that executes deferred calls.

        Args:
            queues (str): Queues to work on. Defaults to all queues.
            claim_as (str | None): Name of the worker claiming the jobs.
            sleep (int): Milliseconds to sleep when no job is available.
            raise_stop_on_unhandled_exc (bool): Stop on the first failure.
            reclaim_after (int): Milliseconds after which a claimed but
                unfinished job can be claimed again.
        """
        return self.queue.add_subscription(
            self.executor.execute,
            queues,
            claim_as=claim_as,
            sleep=sleep,
            raise_stop_on_unhandled_exc=raise_stop_on_unhandled_exc,
            reclaim_after=reclaim_after,
        )

    def run_workers(self) -> None:
        """Run every registered worker until they stop."""
        self.queue.run_subscriptions()

    def create_all(self) -> None:
        self.queue.create_all()

    def drop_all(self) -> None:
        self.queue.drop_all()
