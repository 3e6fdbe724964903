from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from relay.errors import PayloadUnwrapError

SUBSCRIPTION_CONFIRMATION = "SubscriptionConfirmation"
NOTIFICATION = "Notification"

# A payload may arrive as an object, a JSON string, or a JSON string that was
# itself JSON-encoded once more.
_MAX_STRING_LAYERS = 2


class EnvelopeDecodeError(ValueError):
    """The request body is not a decodable SNS envelope."""


class SnsEnvelope(BaseModel):
    """
    SNS HTTP(S) delivery envelope.

    Only the fields the relay acts on are typed; everything else SNS sends
    (Signature, SigningCertURL, ...) is kept as extra data.
    """

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    type: str = Field(default="", alias="Type")
    token: Optional[str] = Field(default=None, alias="Token")
    topic_arn: Optional[str] = Field(default=None, alias="TopicArn")
    message: Any = Field(default=None, alias="Message")
    message_id: Optional[str] = Field(default=None, alias="MessageId")
    subject: Optional[str] = Field(default=None, alias="Subject")
    timestamp: Optional[str] = Field(default=None, alias="Timestamp")


def parse_envelope(raw: bytes | str) -> SnsEnvelope:
    try:
        return SnsEnvelope.model_validate_json(raw)
    except ValidationError as e:
        raise EnvelopeDecodeError(f"error decoding SNS message: {e.error_count()} error(s): {e.errors()[0]['msg']}") from e


def unwrap_payload(value: Any) -> dict[str, Any]:
    """
    Decode an SNS `Message` into a JSON object.

    Objects are returned as-is; strings are decoded as JSON, at most twice, until
    an object appears. Anything else raises `PayloadUnwrapError`.
    """
    current = value
    for _ in range(_MAX_STRING_LAYERS):
        if not isinstance(current, str):
            break
        try:
            current = json.loads(current)
        except (ValueError, RecursionError) as e:
            raise PayloadUnwrapError(f"error parsing message body: {e}") from e
    if isinstance(current, dict):
        return current
    raise PayloadUnwrapError(f"message body is not a JSON object (got {type(current).__name__})")
