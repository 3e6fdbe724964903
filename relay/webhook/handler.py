"""
SNS HTTP(S) subscription handler.

Required behavior:
- malformed body -> 400, nothing else happens
- SubscriptionConfirmation -> ConfirmSubscription(token, topic); 500 if that fails; never forwards
- Notification -> unwrap payload + forward once; always 200 (SNS must not retry)
- any other Type -> 400
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from relay.aws.sns import SnsTopicClient
from relay.common.logging import log_event, redact_token
from relay.errors import ForwardError, PayloadUnwrapError, SubscriptionConfirmError
from relay.forwarder import Forwarder
from relay.webhook.envelope import (
    NOTIFICATION,
    SUBSCRIPTION_CONFIRMATION,
    EnvelopeDecodeError,
    SnsEnvelope,
    parse_envelope,
    unwrap_payload,
)
from relay.webhook.subscriptions import SubscriptionTracker

if TYPE_CHECKING:
    from relay.dead_letter import DeadLetterQueue

logger = logging.getLogger(__name__)

ACK_BODY = {"message": "Received SNS message"}


@dataclass(frozen=True)
class WebhookResult:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


BAD_REQUEST = WebhookResult(400, {"error": "Bad Request"})
UNKNOWN_TYPE = WebhookResult(400, {"error": "Unknown Message Type"})
CONFIRM_FAILED = WebhookResult(500, {"error": "Internal Server Error"})
ACCEPTED = WebhookResult(200, ACK_BODY)


class SnsWebhookHandler:
    def __init__(
        self,
        *,
        sns: SnsTopicClient,
        forwarder: Forwarder,
        tracker: Optional[SubscriptionTracker] = None,
        dead_letter: Optional["DeadLetterQueue"] = None,
    ) -> None:
        self._sns = sns
        self._forwarder = forwarder
        self.tracker = tracker or SubscriptionTracker()
        self._dead_letter = dead_letter

    def handle(self, raw_body: bytes | str) -> WebhookResult:
        try:
            envelope = parse_envelope(raw_body)
        except EnvelopeDecodeError as e:
            log_event(logger, "sns.rejected", severity="WARNING", reason="invalid_envelope", error=str(e))
            return BAD_REQUEST

        if envelope.type == SUBSCRIPTION_CONFIRMATION:
            return self._confirm_subscription(envelope)
        if envelope.type == NOTIFICATION:
            self._relay_notification(envelope)
            return ACCEPTED

        log_event(
            logger,
            "sns.rejected",
            severity="WARNING",
            reason="unknown_message_type",
            sns_type=envelope.type,
            topic_arn=envelope.topic_arn,
        )
        return UNKNOWN_TYPE

    def _confirm_subscription(self, envelope: SnsEnvelope) -> WebhookResult:
        topic_arn = envelope.topic_arn or ""
        try:
            subscription_arn = self._sns.confirm_subscription(token=envelope.token or "", topic_arn=topic_arn)
        except SubscriptionConfirmError as e:
            log_event(
                logger,
                "sns.confirm_failed",
                severity="ERROR",
                topic_arn=topic_arn,
                token=redact_token(envelope.token),
                error=str(e),
            )
            return CONFIRM_FAILED

        self.tracker.mark_confirmed(topic_arn)
        log_event(
            logger,
            "sns.subscription_confirmed",
            topic_arn=topic_arn,
            subscription_arn=subscription_arn,
        )
        return ACCEPTED

    def _relay_notification(self, envelope: SnsEnvelope) -> None:
        state = self.tracker.state_of(envelope.topic_arn or "")
        log_event(
            logger,
            "sns.notification_received",
            topic_arn=envelope.topic_arn,
            sns_message_id=envelope.message_id,
            subscription_state=state.value if state else "unknown",
        )

        try:
            payload = unwrap_payload(envelope.message)
        except PayloadUnwrapError as e:
            log_event(
                logger,
                "sns.payload_dropped",
                severity="ERROR",
                reason="unwrap_failed",
                sns_message_id=envelope.message_id,
                error=str(e),
            )
            self._dead_letter_or_drop(envelope, reason="unwrap_failed", error=str(e))
            return

        try:
            self._forwarder.forward(payload)
        except ForwardError as e:
            log_event(
                logger,
                "forward.failed",
                severity="ERROR",
                source="sns",
                sns_message_id=envelope.message_id,
                error_type=e.__class__.__name__,
                error=str(e),
            )
            self._dead_letter_or_drop(envelope, reason="forward_failed", error=str(e))
            return

        log_event(logger, "sns.notification_forwarded", sns_message_id=envelope.message_id)

    def _dead_letter_or_drop(self, envelope: SnsEnvelope, *, reason: str, error: str) -> None:
        if self._dead_letter is None:
            return
        try:
            self._dead_letter.publish(reason=reason, error=error, envelope=envelope)
        except (BotoCoreError, ClientError) as e:
            log_event(
                logger,
                "dlq.publish_failed",
                severity="ERROR",
                reason=reason,
                sns_message_id=envelope.message_id,
                error=str(e),
            )
