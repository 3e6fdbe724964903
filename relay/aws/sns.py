from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

from botocore.exceptions import BotoCoreError, ClientError

from relay.common.logging import log_event, redact_token
from relay.errors import SubscribeError, SubscriptionConfirmError

logger = logging.getLogger(__name__)


def protocol_for_endpoint(endpoint: str) -> str:
    """
    SNS protocol ("http" / "https") matching an HTTP endpoint URL.
    """
    scheme = urlparse(endpoint).scheme.lower()
    if scheme not in {"http", "https"}:
        raise ValueError(f"unsupported SNS endpoint scheme: {scheme!r}")
    return scheme


class SnsTopicClient:
    """
    Adapter over a boto3 SNS client for the subscription handshake.
    """

    def __init__(self, *, client: Any) -> None:
        self._client = client

    def confirm_subscription(self, *, token: str, topic_arn: str) -> str:
        try:
            resp = self._client.confirm_subscription(Token=token, TopicArn=topic_arn)
        except (BotoCoreError, ClientError) as e:
            raise SubscriptionConfirmError(f"confirm subscription failed for {topic_arn!r}: {e}") from e
        subscription_arn = str((resp or {}).get("SubscriptionArn") or "")
        log_event(
            logger,
            "sns.confirm_subscription",
            topic_arn=topic_arn,
            subscription_arn=subscription_arn,
            token=redact_token(token),
        )
        return subscription_arn

    def subscribe(self, *, topic_arn: str, protocol: str, endpoint: str) -> str:
        try:
            resp = self._client.subscribe(TopicArn=topic_arn, Protocol=protocol, Endpoint=endpoint)
        except (BotoCoreError, ClientError) as e:
            log_event(logger, "sns.subscribe_failed", severity="ERROR", topic_arn=topic_arn, error=str(e))
            raise SubscribeError(f"subscribe to {topic_arn!r} failed: {e}") from e
        return str((resp or {}).get("SubscriptionArn") or "")
