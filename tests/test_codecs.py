import json
from datetime import date, datetime, time, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from deferral import SerializationError, UnresolvableReceiver
from deferral.codecs import (
    JsonCodec,
    PickleCodec,
    ProxyStrategy,
    decode_payload,
    decode_value,
    encode_payload,
    encode_value,
    get_codec,
)
from deferral.models import DeferredCallRecord, InstanceReceiver, TypeReceiver
from . import targets
from .targets import Opaque


def test_json_values_roundtrip():
    value = {
        "when": datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
        "day": date(2024, 5, 1),
        "at": time(8, 15),
        "id": uuid4(),
        "price": Decimal("10.25"),
        "pair": (1, "two"),
        "blob": b"\x00\xff",
        "nested": [{"a": (1, 2)}, None, True, 1.5],
    }

    encoded = encode_value(value)
    # Must survive a trip through JSON text
    decoded = decode_value(json.loads(json.dumps(encoded)))

    assert decoded == value
    assert isinstance(decoded["pair"], tuple)
    assert isinstance(decoded["when"], datetime)


def test_json_escapes_dicts_that_look_like_tags():
    value = {"__tuple__": [1, 2]}

    encoded = encode_value(value)
    assert encoded == {"__dict__": {"__tuple__": [1, 2]}}
    assert decode_value(encoded) == value


def test_json_rejects_unsupported_values():
    with pytest.raises(SerializationError):
        encode_value(Opaque(1))

    with pytest.raises(SerializationError):
        encode_value({1: "int keys"})

    with pytest.raises(SerializationError):
        decode_value({"__uuid__": "not-a-uuid"})


def test_json_measure():
    assert JsonCodec().measure("a" * 8192) == 8194
    assert JsonCodec().measure(1) == 1


def test_get_codec():
    assert isinstance(get_codec(ProxyStrategy.GENERIC), JsonCodec)
    assert isinstance(get_codec(ProxyStrategy.LEGACY), PickleCodec)
    assert isinstance(get_codec("legacy"), PickleCodec)
    assert isinstance(get_codec("json"), JsonCodec)
    assert isinstance(get_codec("pickle"), PickleCodec)

    with pytest.raises(SerializationError):
        get_codec("yaml")


@pytest.mark.parametrize("codec", [JsonCodec(), PickleCodec()])
def test_payload_roundtrip(codec):
    record = DeferredCallRecord(
        receiver=InstanceReceiver("tests.targets:Point", {"x": 1, "y": 2}),
        method_name="record",
        positional_args=("label", date(2024, 1, 1)),
        keyword_args={"flag": True},
    )

    payload = encode_payload(record, codec)
    assert json.loads(payload)["codec"] == codec.name

    codec_name, parts = decode_payload(payload)
    assert codec_name == codec.name
    assert parts == {
        "receiver": record.receiver,
        "method_name": "record",
        "positional_args": ("label", date(2024, 1, 1)),
        "keyword_args": {"flag": True},
    }


def test_json_payload_is_readable():
    record = DeferredCallRecord(
        receiver=TypeReceiver("tests.targets:SomeClass"),
        method_name="doit",
        positional_args=(1, "a"),
    )

    payload = json.loads(encode_payload(record, JsonCodec()))
    assert payload == {
        "codec": "json",
        "call": {
            "receiver": {"kind": "type", "type": "tests.targets:SomeClass"},
            "method": "doit",
            "args": [1, "a"],
            "kwargs": {},
        },
    }


def test_pickle_carries_opaque_objects():
    opaque = Opaque(7)
    record = DeferredCallRecord(
        receiver=InstanceReceiver("tests.targets:Opaque", opaque),
        method_name="record",
    )

    with pytest.raises(SerializationError):
        encode_payload(record, JsonCodec())

    _, parts = decode_payload(encode_payload(record, PickleCodec()))
    assert isinstance(parts["receiver"].identity, Opaque)
    assert parts["receiver"].identity.value == 7


def test_pickle_rejects_unpicklable_values():
    record = DeferredCallRecord(
        receiver=TypeReceiver("tests.targets:SomeClass"),
        method_name="doit",
        positional_args=(lambda: None,),
    )

    with pytest.raises(SerializationError):
        encode_payload(record, PickleCodec())


def test_pickle_missing_class_is_unresolvable(monkeypatch):
    record = DeferredCallRecord(
        receiver=TypeReceiver("tests.targets:SomeClass"),
        method_name="doit",
        positional_args=(Opaque(1),),
    )
    payload = encode_payload(record, PickleCodec())

    # The class is gone by the time the worker runs
    monkeypatch.delattr(targets, "Opaque")

    with pytest.raises(UnresolvableReceiver):
        decode_payload(payload)


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        json.dumps([1, 2]),
        json.dumps({"foo": "bar"}),
        json.dumps({"codec": "yaml", "call": {}}),
        json.dumps({"codec": "json", "call": {"method": "doit"}}),
        json.dumps({"codec": "pickle", "call": "%%%"}),
        {"codec": "json", "call": None},
    ],
)
def test_malformed_payloads(payload):
    with pytest.raises(SerializationError):
        decode_payload(payload)
