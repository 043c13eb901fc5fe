"""Naming, describing and restoring the objects deferred calls are made on.

A receiver is recorded by name, so that a worker in another process can
find it again: ``"package.module:Class.Nested"`` for classes and
``"package.module"`` for modules. Instances additionally carry their
identity:

* SQLAlchemy-mapped instances are identified by their primary key and
  looked up again by the worker.
* Objects implementing the ``Identifiable`` protocol decide themselves.
* Dataclass instances are recorded field by field.
* Anything else is recorded whole, which only the pickle codec can carry.
"""
import dataclasses
import functools
import importlib
import sys
from collections.abc import Mapping
from types import ModuleType
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import InstanceState, Mapper

from deferral.exceptions import (
    DeferralError,
    SerializationError,
    UnresolvableReceiver,
)
from deferral.models.call import (
    InstanceReceiver,
    ReceiverDescriptor,
    TypeReceiver,
)


@runtime_checkable
class Identifiable(Protocol):
    """Objects that know how to be recorded and rebuilt by identity."""

    def __deferral_identity__(self) -> Any:
        ...

    @classmethod
    def __deferral_restore__(cls, identity: Any) -> "Identifiable":
        ...


def type_name_of(target: type | ModuleType) -> str:
    if isinstance(target, ModuleType):
        return target.__name__
    if isinstance(target, type):
        return f"{target.__module__}:{target.__qualname__}"
    raise TypeError(f"Expected a class or a module, got {type(target).__name__}")


def resolve_type_name(type_name: str) -> Any:
    """Find the live class or module recorded as ``type_name``.

    Raises:
        UnresolvableReceiver: The module can't be imported or doesn't
            define the name anymore.
    """
    module_name, _, qualname = type_name.partition(":")
    try:
        module = sys.modules.get(module_name) or importlib.import_module(
            module_name
        )
    except ImportError as exc:
        raise UnresolvableReceiver(
            f"Can't resolve {type_name!r}: module {module_name!r} can't be imported"
        ) from exc

    target = module
    for part in qualname.split(".") if qualname else ():
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise UnresolvableReceiver(
                f"Can't resolve {type_name!r}: {part!r} is not defined"
            ) from exc
    return target


def is_mapped(target: Any) -> bool:
    """Whether ``target`` is a SQLAlchemy-mapped class or instance of one."""
    cls = target if isinstance(target, type) else type(target)
    return isinstance(sa_inspect(cls, raiseerr=False), Mapper)


def identity_of(obj: Any) -> Any:
    if isinstance(obj, Identifiable):
        return obj.__deferral_identity__()

    state = sa_inspect(obj, raiseerr=False)
    if isinstance(state, InstanceState):
        if state.identity is None:
            raise SerializationError(
                f"{type(obj).__qualname__} instance has no identity yet, "
                "flush it before deferring its methods"
            )
        return list(state.identity)

    if dataclasses.is_dataclass(obj):
        return {
            f.name: getattr(obj, f.name)
            for f in dataclasses.fields(obj)
            if f.init
        }

    return obj


def restore_instance(cls: type, identity: Any) -> Any:
    """Rebuild a value object from the identity recorded by ``identity_of()``."""
    if isinstance(identity, cls):
        return identity
    if isinstance(cls, type) and issubclass(cls, Identifiable):
        return cls.__deferral_restore__(identity)
    if dataclasses.is_dataclass(cls) and isinstance(identity, Mapping):
        return cls(**identity)
    raise UnresolvableReceiver(
        f"Don't know how to restore a {cls.__qualname__} instance from its identity"
    )


def _check_resolves(type_name: str, expected: Any) -> None:
    if "<locals>" in type_name:
        raise UnresolvableReceiver(
            f"{type_name!r} is defined inside a function, workers can't find it"
        )
    if resolve_type_name(type_name) is not expected:
        raise UnresolvableReceiver(
            f"{type_name!r} resolves to a different object than the receiver"
        )


def describe_receiver(receiver: Any) -> ReceiverDescriptor:
    """Record ``receiver`` so that a worker can find it again.

    Raises:
        UnresolvableReceiver: The receiver's class or module can't be found
            by its name.
        SerializationError: The receiver is an ORM instance without a
            primary key yet.
    """
    if isinstance(receiver, (type, ModuleType)):
        type_name = type_name_of(receiver)
        _check_resolves(type_name, receiver)
        return TypeReceiver(type_name)

    cls = type(receiver)
    type_name = type_name_of(cls)
    _check_resolves(type_name, cls)
    return InstanceReceiver(type_name, identity_of(receiver))


class DeferMethod:
    """Exposes one of the ``Deferral.defer*`` entry points on a class.

    Accessed on the class, the class is the receiver. Accessed on an
    instance, the instance is.
    """

    def __init__(self, entry_point: str) -> None:
        self.entry_point = entry_point

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        receiver = objtype if obj is None else obj
        return functools.partial(self._call, receiver)

    def _call(self, receiver: Any, *args: Any, **kwargs: Any) -> Any:
        cls = receiver if isinstance(receiver, type) else type(receiver)
        app = getattr(cls, "__deferral__", None)
        if app is None:
            raise DeferralError(
                f"{cls.__qualname__} is not registered, call Deferral.register() first"
            )
        return getattr(app, self.entry_point)(receiver, *args, **kwargs)


class Deferrable:
    """Mixin that adds ``defer()``, ``defer_for()`` and ``defer_until()``.

    The class has to be bound to a ``Deferral`` instance with
    ``Deferral.register()`` or the ``Deferral.deferrable()`` decorator.

    Examples:

        >>> class User(Deferrable):
        ...     @classmethod
        ...     def cleanup(cls) -> None: ...
        ...     def notify(self, text: str) -> None: ...
        >>> app.register(User)
        >>> User.defer().cleanup()
        >>> user.defer_for(timedelta(hours=1)).notify("hello")
    """

    __deferral__ = None
    __deferred_job__ = None

    defer = DeferMethod("defer")
    defer_for = DeferMethod("defer_for")
    defer_until = DeferMethod("defer_until")
