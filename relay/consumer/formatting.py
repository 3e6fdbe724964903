from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from relay.common.timeutils import NanoTimestamp
from relay.errors import MessageFormatError


@dataclass(frozen=True)
class NormalizedMessage:
    message: str
    timestamp: NanoTimestamp

    def to_json_dict(self) -> dict[str, Any]:
        return {"message": self.message, "timestamp": self.timestamp.isoformat()}


def format_queue_message(body: str) -> NormalizedMessage:
    """
    Normalize an SQS body (usually an SNS-to-SQS envelope) into `{message, timestamp}`.

    Raises `MessageFormatError` when the body is not a JSON object, `Message` or
    `Timestamp` is missing / not a string, or the timestamp is not RFC3339.
    """
    try:
        parsed = json.loads(body)
    except (ValueError, RecursionError) as e:
        raise MessageFormatError(f"failed to parse message body: {e}") from e
    if not isinstance(parsed, dict):
        raise MessageFormatError(f"message body is not a JSON object (got {type(parsed).__name__})")

    message = parsed.get("Message")
    if not isinstance(message, str):
        raise MessageFormatError("Message field not found or not a string")

    ts_raw = parsed.get("Timestamp")
    if not isinstance(ts_raw, str):
        raise MessageFormatError("Timestamp field not found or not a string")

    try:
        ts = NanoTimestamp.parse(ts_raw)
    except ValueError as e:
        raise MessageFormatError(f"failed to parse timestamp: {e}") from e

    return NormalizedMessage(message=message, timestamp=ts)
