import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Union


DEFAULT_QUEUE = "default"


@dataclass(frozen=True)
class Immediate:
    """Run as soon as a worker picks the job up."""

    def resolve(self, now: float | None = None) -> float:
        return time.time() if now is None else now


@dataclass(frozen=True)
class After:
    """Run once ``duration_seconds`` have elapsed."""

    duration_seconds: float

    def resolve(self, now: float | None = None) -> float:
        now = time.time() if now is None else now
        return now + self.duration_seconds


@dataclass(frozen=True)
class At:
    """Run at an absolute unix timestamp, in seconds."""

    unix_timestamp: float

    def resolve(self, now: float | None = None) -> float:
        return self.unix_timestamp


Schedule = Union[Immediate, After, At]


@dataclass(frozen=True)
class TypeReceiver:
    """The receiver is a class or a module.

    ``type_name`` is ``"module:Qual.Name"`` for classes and the dotted
    module name for modules.
    """

    type_name: str

    @property
    def display(self) -> str:
        return self.type_name.rpartition(":")[2]


@dataclass(frozen=True)
class InstanceReceiver:
    """The receiver is an instance of the class named by ``type_name``."""

    type_name: str
    identity: Any

    @property
    def display(self) -> str:
        return self.type_name.rpartition(":")[2]


ReceiverDescriptor = Union[TypeReceiver, InstanceReceiver]


@dataclass(frozen=True)
class EnqueueOptions:
    """Options a caller passes along with a deferred call.

    ``queue`` and ``at`` are interpreted here. ``retry`` becomes the queue's
    ``max_retry_count``. Everything else is handed to the queue untouched.
    """

    queue: str | None = None
    at: float | None = None
    passthrough: Mapping[str, Any] = field(default_factory=dict)

    @staticmethod
    def parse(options: Mapping[str, Any] | None) -> "EnqueueOptions":
        options = dict(options or {})

        queue = options.pop("queue", None)
        if queue is not None:
            queue = str(queue)

        at = options.pop("at", None)
        if isinstance(at, datetime):
            at = at.timestamp()
        elif at is not None:
            at = float(at)

        if "retry" in options:
            retry = options.pop("retry")
            if retry is False:
                options["max_retry_count"] = 0
            elif retry is not True and retry is not None:
                options["max_retry_count"] = int(retry)

        return EnqueueOptions(queue=queue, at=at, passthrough=options)

    @property
    def schedule(self) -> Schedule:
        if self.at is None:
            return Immediate()
        return At(self.at)


@dataclass(frozen=True)
class DeferredCallRecord:
    """A captured method call, ready to be handed to the job queue.

    Records are values: they are built once by the capture proxy and never
    mutated afterwards.
    """

    receiver: ReceiverDescriptor
    method_name: str
    positional_args: tuple = ()
    keyword_args: Mapping[str, Any] = field(default_factory=dict)
    schedule: Schedule = field(default_factory=Immediate)
    queue_name: str = DEFAULT_QUEUE
    job_type: str = "call"
    queue_options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.method_name or not isinstance(self.method_name, str):
            raise ValueError("method_name must be a non-empty string")
        if not self.queue_name or not isinstance(self.queue_name, str):
            raise ValueError("queue_name must be a non-empty string")
        object.__setattr__(self, "positional_args", tuple(self.positional_args))
        object.__setattr__(self, "keyword_args", dict(self.keyword_args))
        object.__setattr__(self, "queue_options", dict(self.queue_options))

    @property
    def has_keyword_args(self) -> bool:
        return bool(self.keyword_args)

    @property
    def display_name(self) -> str:
        separator = "#" if isinstance(self.receiver, InstanceReceiver) else "."
        return f"{self.receiver.display}{separator}{self.method_name}"
