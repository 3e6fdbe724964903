from __future__ import annotations

import json

import pytest

from relay.errors import PayloadUnwrapError
from relay.webhook.envelope import EnvelopeDecodeError, SnsEnvelope, parse_envelope, unwrap_payload


def test_parse_envelope_maps_sns_fields() -> None:
    raw = json.dumps(
        {
            "Type": "Notification",
            "MessageId": "mid-1",
            "TopicArn": "arn:aws:sns:us-east-1:000000000000:t",
            "Message": '{"a":1}',
            "Timestamp": "2024-01-01T00:00:00.000Z",
            "Signature": "sig",
        }
    ).encode("utf-8")

    env = parse_envelope(raw)

    assert isinstance(env, SnsEnvelope)
    assert env.type == "Notification"
    assert env.message_id == "mid-1"
    assert env.topic_arn == "arn:aws:sns:us-east-1:000000000000:t"
    assert env.message == '{"a":1}'
    assert env.token is None


def test_missing_type_defaults_to_empty() -> None:
    assert parse_envelope("{}").type == ""


@pytest.mark.parametrize("raw", [b"", b"not json", b"[1,2]", b'{"Type": 5}', b'"Notification"'])
def test_parse_envelope_rejects_garbage(raw) -> None:
    with pytest.raises(EnvelopeDecodeError):
        parse_envelope(raw)


def test_unwrap_json_string() -> None:
    assert unwrap_payload('{"a":1}') == {"a": 1}


def test_unwrap_double_encoded_string() -> None:
    assert unwrap_payload(json.dumps('{"a":1}')) == {"a": 1}


def test_unwrap_object_is_returned_as_is() -> None:
    payload = {"a": {"b": [1, 2]}}
    assert unwrap_payload(payload) == payload


@pytest.mark.parametrize(
    "value",
    [
        "plain text",
        "[1,2,3]",
        "42",
        json.dumps(json.dumps(json.dumps({"a": 1}))),
        None,
        7,
        ["a"],
    ],
)
def test_unwrap_rejects_non_objects(value) -> None:
    with pytest.raises(PayloadUnwrapError):
        unwrap_payload(value)


def test_unwrap_rejects_deeply_nested_json() -> None:
    with pytest.raises(PayloadUnwrapError):
        unwrap_payload("[" * 100_000 + "]" * 100_000)
