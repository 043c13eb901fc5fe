import functools
import logging
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID

from deferral.codecs import ProxyStrategy
from deferral.models.call import DEFAULT_QUEUE, DeferredCallRecord, EnqueueOptions
from deferral.receivers import describe_receiver

if TYPE_CHECKING:
    from deferral.dispatch import JobDispatch


logger = logging.getLogger(__name__)


class CaptureProxy:
    """Records a method call on ``receiver`` instead of making it.

    The call is turned into a ``DeferredCallRecord`` and handed to the
    dispatch, which puts it on the job queue. The target method itself is
    never invoked here.

    Examples:

        >>> proxy = CaptureProxy(dispatch, "call", User, {"queue": "emails"})
        >>> proxy.call("send_digest", 42)
        UUID('...')

        Attribute access is a shortcut for ``call()``
        >>> proxy.send_digest(42)
        UUID('...')

    Args:
        dispatch (JobDispatch): Submits the captured record.
        job_type (str): Name of the job flavor that will execute the call.
        receiver (Any): Class, module or instance the method is called on.
        options (Mapping | None): Enqueue options, see ``EnqueueOptions``.
        strategy (ProxyStrategy): Transport codec for this call.
        default_queue (str): Queue used when the options name none.
    """

    def __init__(
        self,
        dispatch: "JobDispatch",
        job_type: str,
        receiver: Any,
        options: Mapping[str, Any] | None = None,
        strategy: ProxyStrategy = ProxyStrategy.GENERIC,
        default_queue: str = DEFAULT_QUEUE,
    ) -> None:
        self._dispatch = dispatch
        self._job_type = job_type
        self._receiver = receiver
        self._options = EnqueueOptions.parse(options)
        self._strategy = ProxyStrategy(strategy)
        self._default_queue = default_queue

    def call(self, method_name: str, /, *args: Any, **kwargs: Any) -> UUID:
        """Capture ``receiver.method_name(*args, **kwargs)`` and enqueue it.

        ``method_name`` is positional-only, so the captured call may use it
        as a keyword argument of its own.

        Returns:
            UUID: Identifier of the enqueued job.

        Raises:
            ValueError: The method name is empty or private.
            UnresolvableReceiver: The receiver can't be found by name.
            SerializationError: An argument can't be encoded.
            QueueUnavailable: The queue refused the job.
        """
        if not method_name or not isinstance(method_name, str):
            raise ValueError("Method name must be a non-empty string")
        if method_name.startswith("_"):
            raise ValueError(f"Can't defer private method {method_name!r}")

        record = DeferredCallRecord(
            receiver=describe_receiver(self._receiver),
            method_name=method_name,
            positional_args=args,
            keyword_args=kwargs,
            schedule=self._options.schedule,
            queue_name=self._options.queue or self._default_queue,
            job_type=self._job_type,
            queue_options=self._options.passthrough,
        )
        logger.debug(f"Captured {record.display_name} for queue {record.queue_name!r}")
        return self._dispatch.submit(record, self._strategy)

    def __getattr__(self, name: str) -> Any:
        # Keeps copy, pickle and introspection lookups away from call()
        if name.startswith("_"):
            raise AttributeError(name)
        return functools.partial(self.call, name)

    def __repr__(self) -> str:
        return (
            f"<CaptureProxy {self._receiver!r} job_type={self._job_type!r} "
            f"strategy={self._strategy.value}>"
        )
