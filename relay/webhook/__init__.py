from relay.webhook.envelope import SnsEnvelope, parse_envelope, unwrap_payload
from relay.webhook.handler import SnsWebhookHandler, WebhookResult
from relay.webhook.subscriptions import SubscriptionState, SubscriptionTracker

__all__ = [
    "SnsEnvelope",
    "SnsWebhookHandler",
    "SubscriptionState",
    "SubscriptionTracker",
    "WebhookResult",
    "parse_envelope",
    "unwrap_payload",
]
