"""
Dead-letter sink for webhook notifications that could not be relayed.

SNS considers a notification delivered once we answer 2xx, so without this the
webhook path silently loses payloads that fail to unwrap or forward. When a
dead-letter queue is configured, those notifications are parked there instead.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from relay.aws.sqs import SqsQueue
from relay.common.logging import log_event
from relay.webhook.envelope import SnsEnvelope

logger = logging.getLogger(__name__)

SOURCE = "sns-webhook"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DeadLetterQueue:
    def __init__(self, *, queue: SqsQueue) -> None:
        self._queue = queue

    @property
    def queue_url(self) -> str:
        return self._queue.queue_url

    def publish(self, *, reason: str, error: str, envelope: SnsEnvelope) -> str:
        """
        Park a notification. botocore errors propagate to the caller.
        """
        record: dict[str, Any] = {
            "source": SOURCE,
            "reason": reason,
            "error": error,
            "topicArn": envelope.topic_arn,
            "messageId": envelope.message_id,
            "message": envelope.message,
            "receivedAt": _utc_now_iso(),
        }
        dlq_message_id = self._queue.send_json(record, attributes={"source": SOURCE, "reason": reason})
        log_event(
            logger,
            "dlq.published",
            severity="WARNING",
            reason=reason,
            sns_message_id=envelope.message_id,
            dlq_message_id=dlq_message_id,
        )
        return dlq_message_id


def build_dead_letter_queue(*, sqs_client: Any, queue_name: Optional[str]) -> Optional[DeadLetterQueue]:
    if not queue_name:
        return None
    return DeadLetterQueue(queue=SqsQueue.from_name(client=sqs_client, queue_name=queue_name))
