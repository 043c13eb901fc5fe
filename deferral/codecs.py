"""Transport codecs for deferred calls.

A job payload is always a JSON object naming the codec that encoded the
call::

    {"codec": "json", "call": {"receiver": {...}, "method": "...", "args": [...], "kwargs": {...}}}
    {"codec": "pickle", "call": "<base64 of the pickled call>"}

The JSON codec keeps payloads readable and portable. Values JSON can't
represent natively are wrapped in single-key tag objects, e.g.
``{"__datetime__": "2024-01-01T00:00:00+00:00"}``. The pickle codec
accepts any picklable value, including whole objects used as receivers.
"""
import base64
import binascii
import json
import pickle
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable
from uuid import UUID

from deferral.exceptions import SerializationError, UnresolvableReceiver
from deferral.models.call import (
    DeferredCallRecord,
    InstanceReceiver,
    ReceiverDescriptor,
    TypeReceiver,
)


class ProxyStrategy(str, Enum):
    """How a captured call travels to the worker.

    Both strategies capture the same record, they only differ in the
    codec used for the payload.
    """

    GENERIC = "generic"
    """Tagged JSON. Arguments must be JSON friendly values."""
    LEGACY = "legacy"
    """Pickle, base64 encoded. Carries any picklable value."""


def _decode_dict(value: Any) -> dict:
    return {k: decode_value(v) for k, v in value.items()}


_DECODERS: dict[str, Callable[[Any], Any]] = {
    "__tuple__": lambda v: tuple(decode_value(item) for item in v),
    "__datetime__": datetime.fromisoformat,
    "__date__": date.fromisoformat,
    "__time__": time.fromisoformat,
    "__uuid__": UUID,
    "__decimal__": Decimal,
    "__bytes__": lambda v: base64.b64decode(v.encode("ascii")),
    "__dict__": _decode_dict,
}


def encode_value(value: Any) -> Any:
    """Convert ``value`` into something ``json.dumps()`` accepts.

    Raises:
        SerializationError: The value, or something nested in it, has no
            JSON form.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, list):
        return [encode_value(item) for item in value]
    if isinstance(value, tuple):
        return {"__tuple__": [encode_value(item) for item in value]}
    if isinstance(value, dict):
        encoded = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise SerializationError(
                    f"Dictionary keys must be strings, got {type(key).__name__}"
                )
            encoded[key] = encode_value(item)
        # A plain dict that looks like a tag is escaped
        if len(encoded) == 1 and next(iter(encoded)) in _DECODERS:
            return {"__dict__": encoded}
        return encoded
    # datetime is a subclass of date
    if isinstance(value, datetime):
        return {"__datetime__": value.isoformat()}
    if isinstance(value, date):
        return {"__date__": value.isoformat()}
    if isinstance(value, time):
        return {"__time__": value.isoformat()}
    if isinstance(value, UUID):
        return {"__uuid__": str(value)}
    if isinstance(value, Decimal):
        return {"__decimal__": str(value)}
    if isinstance(value, (bytes, bytearray)):
        return {"__bytes__": base64.b64encode(bytes(value)).decode("ascii")}
    raise SerializationError(
        f"Object of type {type(value).__name__} is not JSON serializable"
    )


def decode_value(value: Any) -> Any:
    """Inverse of ``encode_value()``."""
    if isinstance(value, list):
        return [decode_value(item) for item in value]
    if isinstance(value, dict):
        if len(value) == 1:
            tag, inner = next(iter(value.items()))
            decoder = _DECODERS.get(tag)
            if decoder is not None:
                try:
                    return decoder(inner)
                except (TypeError, ValueError, InvalidOperation, binascii.Error) as exc:
                    raise SerializationError(
                        f"Malformed {tag} value: {inner!r}"
                    ) from exc
        return _decode_dict(value)
    return value


class JsonCodec:
    name = "json"

    def dump_call(self, record: DeferredCallRecord) -> dict:
        receiver: dict[str, Any]
        if isinstance(record.receiver, InstanceReceiver):
            receiver = {
                "kind": "instance",
                "type": record.receiver.type_name,
                "identity": encode_value(record.receiver.identity),
            }
        else:
            receiver = {"kind": "type", "type": record.receiver.type_name}

        return {
            "receiver": receiver,
            "method": record.method_name,
            "args": [encode_value(arg) for arg in record.positional_args],
            "kwargs": encode_value(dict(record.keyword_args)),
        }

    def load_call(self, call: Any) -> dict[str, Any]:
        try:
            receiver = call["receiver"]
            kind = receiver["kind"]
            type_name = receiver["type"]
            method_name = call["method"]
            args = call.get("args") or []
            kwargs = call.get("kwargs") or {}
        except (KeyError, TypeError, AttributeError) as exc:
            raise SerializationError(f"Malformed call payload: {call!r}") from exc

        descriptor: ReceiverDescriptor
        if kind == "instance":
            descriptor = InstanceReceiver(
                type_name, decode_value(receiver.get("identity"))
            )
        elif kind == "type":
            descriptor = TypeReceiver(type_name)
        else:
            raise SerializationError(f"Unknown receiver kind {kind!r}")

        return {
            "receiver": descriptor,
            "method_name": method_name,
            "positional_args": tuple(decode_value(arg) for arg in args),
            "keyword_args": decode_value(kwargs),
        }

    def measure(self, value: Any) -> int:
        """Size in bytes of ``value`` once encoded."""
        return len(json.dumps(encode_value(value)).encode("utf-8"))


class PickleCodec:
    name = "pickle"

    def dump_call(self, record: DeferredCallRecord) -> str:
        parts = (
            record.receiver,
            record.method_name,
            tuple(record.positional_args),
            dict(record.keyword_args),
        )
        return base64.b64encode(self._dumps(parts)).decode("ascii")

    def load_call(self, call: Any) -> dict[str, Any]:
        if not isinstance(call, str):
            raise SerializationError(f"Malformed call payload: {call!r}")
        try:
            blob = base64.b64decode(call.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise SerializationError("Call payload is not valid base64") from exc

        try:
            receiver, method_name, args, kwargs = pickle.loads(blob)
        except (AttributeError, ImportError) as exc:
            raise UnresolvableReceiver(
                f"Can't unpickle the deferred call: {exc}"
            ) from exc
        except (pickle.UnpicklingError, EOFError, TypeError, ValueError) as exc:
            raise SerializationError(
                f"Can't unpickle the deferred call: {exc}"
            ) from exc

        return {
            "receiver": receiver,
            "method_name": method_name,
            "positional_args": tuple(args),
            "keyword_args": dict(kwargs),
        }

    def measure(self, value: Any) -> int:
        return len(self._dumps(value))

    @staticmethod
    def _dumps(value: Any) -> bytes:
        try:
            return pickle.dumps(value)
        except (pickle.PicklingError, TypeError, AttributeError) as exc:
            raise SerializationError(f"Can't pickle {value!r}: {exc}") from exc


_CODECS = {
    ProxyStrategy.GENERIC: JsonCodec(),
    ProxyStrategy.LEGACY: PickleCodec(),
}


def get_codec(strategy_or_name: ProxyStrategy | str) -> JsonCodec | PickleCodec:
    """Find a codec by strategy or by the name stored in a payload."""
    for strategy, codec in _CODECS.items():
        if strategy_or_name in (strategy, strategy.value, codec.name):
            return codec
    raise SerializationError(f"Unknown codec {strategy_or_name!r}")


def encode_payload(record: DeferredCallRecord, codec: JsonCodec | PickleCodec) -> str:
    """Wrap the encoded call in the JSON envelope stored as the job payload."""
    try:
        return json.dumps({"codec": codec.name, "call": codec.dump_call(record)})
    except (TypeError, ValueError) as exc:
        raise SerializationError(str(exc)) from exc


def decode_payload(payload: Any) -> tuple[str, dict[str, Any]]:
    """Unwrap a job payload.

    ``payload`` is either the stored JSON text or the object it was already
    parsed into.

    Returns:
        tuple[str, dict]: The codec name and the decoded call parts:
            ``receiver``, ``method_name``, ``positional_args`` and
            ``keyword_args``.
    """
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise SerializationError("Job payload is not valid JSON") from exc

    if not isinstance(payload, dict) or "codec" not in payload or "call" not in payload:
        raise SerializationError("Job payload is not a deferred call")

    codec = get_codec(payload["codec"])
    return codec.name, codec.load_call(payload["call"])
