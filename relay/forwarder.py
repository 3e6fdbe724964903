"""
Forwarder: the one place messages leave the relay.

Serializes a normalized message to JSON and POSTs it to the configured sink.
There is no retry here; callers own redelivery (SQS visibility timeout on the
queue path, the dead-letter queue on the webhook path).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping

import requests

from relay.common.logging import get_request_id, log_event
from relay.errors import ForwardEncodeError, ForwardTransportError, SinkRejectedError

logger = logging.getLogger(__name__)

USER_AGENT = "notification-relay/forwarder"


def encode_payload(payload: Any) -> bytes:
    """
    Strict JSON encoding (no NaN/Infinity, no implicit str() of unknown objects).
    """
    if hasattr(payload, "to_json_dict"):
        payload = payload.to_json_dict()
    try:
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise ForwardEncodeError(f"failed to marshal JSON data: {e}") from e


@dataclass(frozen=True)
class Forwarder:
    sink_url: str
    timeout_s: float = 10.0

    def _headers(self) -> Mapping[str, str]:
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        rid = get_request_id()
        if rid:
            headers["X-Request-ID"] = rid
        return headers

    def forward(self, payload: Any) -> None:
        """
        Deliver `payload` to the sink.

        Raises:
        - ForwardEncodeError: payload is not JSON-serializable
        - ForwardTransportError: connection failure / timeout
        - SinkRejectedError: sink answered with a non-2xx status
        """
        body = encode_payload(payload)
        try:
            resp = requests.post(self.sink_url, data=body, headers=self._headers(), timeout=self.timeout_s)
        except requests.RequestException as e:
            raise ForwardTransportError(f"failed to send data to sink: {e}") from e

        try:
            if not 200 <= int(resp.status_code) < 300:
                raise SinkRejectedError(resp.status_code, body=(resp.text or "")[:512])
        finally:
            resp.close()

        log_event(logger, "forward.ok", severity="DEBUG", status_code=int(resp.status_code), bytes=len(body))
