from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from botocore.exceptions import BotoCoreError, ClientError

from relay.common.logging import log_event
from relay.errors import QueueResolutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueRecord:
    """
    One received SQS message.

    `receipt_handle` is the capability needed to acknowledge (delete) the message;
    it changes on every receive.
    """

    body: str
    receipt_handle: str
    message_id: str

    @classmethod
    def from_sqs(cls, raw: Mapping[str, Any]) -> "QueueRecord":
        return cls(
            body=str(raw.get("Body") or ""),
            receipt_handle=str(raw.get("ReceiptHandle") or ""),
            message_id=str(raw.get("MessageId") or ""),
        )


def resolve_queue_url(client: Any, queue_name: str) -> str:
    """
    Translate a queue name into its URL. Raises `QueueResolutionError` on any failure.
    """
    try:
        resp = client.get_queue_url(QueueName=queue_name)
    except (BotoCoreError, ClientError) as e:
        raise QueueResolutionError(f"failed to get SQS queue URL for {queue_name!r}: {e}") from e
    url = str((resp or {}).get("QueueUrl") or "").strip()
    if not url:
        raise QueueResolutionError(f"SQS returned no QueueUrl for {queue_name!r}")
    return url


class SqsQueue:
    """
    Thin adapter over a boto3 SQS client bound to a single queue URL.

    Errors from receive/delete/send propagate as botocore exceptions; callers
    decide whether they are fatal.
    """

    def __init__(self, *, client: Any, queue_url: str) -> None:
        self._client = client
        self.queue_url = str(queue_url)

    @classmethod
    def from_name(cls, *, client: Any, queue_name: str) -> "SqsQueue":
        return cls(client=client, queue_url=resolve_queue_url(client, queue_name))

    def receive(
        self,
        *,
        max_messages: int,
        wait_time_seconds: int,
        visibility_timeout_seconds: int,
    ) -> list[QueueRecord]:
        resp = self._client.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=max(1, min(10, int(max_messages))),
            WaitTimeSeconds=int(wait_time_seconds),
            VisibilityTimeout=int(visibility_timeout_seconds),
        )
        return [QueueRecord.from_sqs(m) for m in (resp or {}).get("Messages") or []]

    def delete(self, receipt_handle: str) -> None:
        self._client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=receipt_handle)

    def send_json(self, payload: Mapping[str, Any], *, attributes: Optional[Mapping[str, str]] = None) -> str:
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)
        kwargs: dict[str, Any] = {"QueueUrl": self.queue_url, "MessageBody": body}
        if attributes:
            kwargs["MessageAttributes"] = {
                str(k): {"DataType": "String", "StringValue": str(v)} for k, v in attributes.items()
            }
        resp = self._client.send_message(**kwargs)
        message_id = str((resp or {}).get("MessageId") or "")
        log_event(logger, "sqs.message_sent", severity="DEBUG", queue_url=self.queue_url, sqs_message_id=message_id)
        return message_id
