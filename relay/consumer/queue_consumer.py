"""
SQS long-poll consumer.

Delivery contract (at-least-once):
- A message is deleted only after the sink accepted it.
- Malformed bodies and failed forwards are left in the queue; SQS redelivers them
  once the visibility timeout expires.
- A failed delete is logged and never re-forwarded (the message may be delivered twice).

Messages of one batch are handled sequentially, in the order SQS returned them.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from relay.aws.sqs import QueueRecord, SqsQueue
from relay.common.config import RelayConfig
from relay.common.logging import log_event
from relay.common.retry import CircuitBreaker, ExponentialBackoff
from relay.common.shutdown import SHUTDOWN_EVENT, wait_or_shutdown
from relay.consumer.formatting import format_queue_message
from relay.errors import ForwardError, MessageFormatError
from relay.forwarder import Forwarder

logger = logging.getLogger(__name__)

POLL_INTERVAL_S_DEFAULT = 0.5


class MessageOutcome(Enum):
    DELIVERED = "delivered"
    DELETE_FAILED = "delete_failed"
    FORWARD_FAILED = "forward_failed"
    MALFORMED = "malformed"


class QueueConsumer:
    def __init__(
        self,
        *,
        sqs_client: Any,
        forwarder: Forwarder,
        max_messages: int = 10,
        poll_interval_s: float = POLL_INTERVAL_S_DEFAULT,
        backoff: Optional[ExponentialBackoff] = None,
        breaker: Optional[CircuitBreaker] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self._client = sqs_client
        self._forwarder = forwarder
        self.max_messages = max(1, min(10, int(max_messages)))
        self.poll_interval_s = max(0.0, float(poll_interval_s))
        self._backoff = backoff or ExponentialBackoff(initial_s=0.5, max_s=30.0)
        self._breaker = breaker or CircuitBreaker(failure_threshold=5, cooldown_s=60.0)
        self._stop = stop_event if stop_event is not None else SHUTDOWN_EVENT

    @classmethod
    def from_config(
        cls,
        config: RelayConfig,
        *,
        sqs_client: Any,
        forwarder: Forwarder,
        stop_event: Optional[threading.Event] = None,
    ) -> "QueueConsumer":
        return cls(
            sqs_client=sqs_client,
            forwarder=forwarder,
            max_messages=config.max_messages,
            poll_interval_s=config.poll_interval_s,
            backoff=ExponentialBackoff(initial_s=config.poll_backoff_initial_s, max_s=config.poll_backoff_max_s),
            breaker=CircuitBreaker(
                failure_threshold=config.poll_circuit_threshold,
                cooldown_s=config.poll_circuit_cooldown_s,
            ),
            stop_event=stop_event,
        )

    def resolve(self, queue_name: str) -> SqsQueue:
        """
        Resolve the queue URL once. `QueueResolutionError` propagates: nothing to poll without it.
        """
        queue = SqsQueue.from_name(client=self._client, queue_name=queue_name)
        log_event(logger, "sqs.queue_resolved", queue_name=queue_name, queue_url=queue.queue_url)
        return queue

    def run(self, queue_name: str, wait_time_seconds: int, visibility_timeout_seconds: int) -> None:
        """
        Resolve `queue_name` and consume it until a stop is requested.
        """
        queue = self.resolve(queue_name)
        self.consume(queue, wait_time_seconds=wait_time_seconds, visibility_timeout_seconds=visibility_timeout_seconds)

    def consume(self, queue: SqsQueue, *, wait_time_seconds: int, visibility_timeout_seconds: int) -> None:
        log_event(
            logger,
            "sqs.consumer_started",
            queue_url=queue.queue_url,
            wait_time_seconds=wait_time_seconds,
            visibility_timeout_seconds=visibility_timeout_seconds,
            max_messages=self.max_messages,
        )
        while not self._stop.is_set():
            if not self._breaker.allow_request():
                remaining = self._breaker.remaining_cooldown_s()
                log_event(logger, "sqs.circuit_open", severity="WARNING", retry_in_s=round(remaining, 3))
                if wait_or_shutdown(remaining, event=self._stop):
                    break
                continue

            if not self.poll_once(
                queue,
                wait_time_seconds=wait_time_seconds,
                visibility_timeout_seconds=visibility_timeout_seconds,
            ):
                delay = self._backoff.next_delay()
                log_event(
                    logger,
                    "sqs.poll_backoff",
                    severity="WARNING",
                    attempt=self._backoff.attempt,
                    sleep_s=round(delay, 3),
                )
                if wait_or_shutdown(delay, event=self._stop):
                    break
                continue

            if wait_or_shutdown(self.poll_interval_s, event=self._stop):
                break
        log_event(logger, "sqs.consumer_stopped", severity="WARNING", queue_url=queue.queue_url)

    def poll_once(self, queue: SqsQueue, *, wait_time_seconds: int, visibility_timeout_seconds: int) -> bool:
        """
        One receive + process cycle. Returns False when the receive call itself failed.
        """
        try:
            records = queue.receive(
                max_messages=self.max_messages,
                wait_time_seconds=wait_time_seconds,
                visibility_timeout_seconds=visibility_timeout_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            opened = self._breaker.record_failure()
            log_event(
                logger,
                "sqs.poll_failed",
                severity="ERROR",
                queue_url=queue.queue_url,
                error_type=e.__class__.__name__,
                error=str(e),
                consecutive_failures=self._breaker.consecutive_failures,
            )
            if opened:
                log_event(
                    logger,
                    "sqs.circuit_opened",
                    severity="ERROR",
                    consecutive_failures=self._breaker.consecutive_failures,
                    cooldown_s=self._breaker.cooldown_s,
                )
            return False

        self._breaker.record_success()
        self._backoff.reset()
        for record in records:
            try:
                self.process_record(queue, record)
            except Exception:
                # Left undeleted; SQS redelivers it after the visibility timeout.
                log_event(
                    logger,
                    "sqs.message_failed",
                    severity="ERROR",
                    exc_info=True,
                    sqs_message_id=record.message_id,
                )
        return True

    def process_record(self, queue: SqsQueue, record: QueueRecord) -> MessageOutcome:
        try:
            normalized = format_queue_message(record.body)
        except MessageFormatError as e:
            log_event(
                logger,
                "sqs.message_malformed",
                severity="ERROR",
                sqs_message_id=record.message_id,
                error=str(e),
            )
            return MessageOutcome.MALFORMED

        try:
            self._forwarder.forward(normalized)
        except ForwardError as e:
            log_event(
                logger,
                "forward.failed",
                severity="ERROR",
                source="sqs",
                sqs_message_id=record.message_id,
                error_type=e.__class__.__name__,
                error=str(e),
            )
            return MessageOutcome.FORWARD_FAILED

        try:
            queue.delete(record.receipt_handle)
        except (BotoCoreError, ClientError) as e:
            log_event(
                logger,
                "sqs.delete_failed",
                severity="ERROR",
                sqs_message_id=record.message_id,
                error=str(e),
            )
            return MessageOutcome.DELETE_FAILED

        log_event(logger, "sqs.message_deleted", sqs_message_id=record.message_id)
        return MessageOutcome.DELIVERED
