from __future__ import annotations


class RelayError(RuntimeError):
    """Root of all relay-specific failures."""


class ConfigError(RelayError):
    """
    Startup configuration is missing or invalid (fatal at boot).
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("Invalid relay configuration: " + "; ".join(self.problems))


class QueueResolutionError(RelayError):
    """The queue name could not be resolved to a URL (fatal at startup)."""


class MessageFormatError(ValueError):
    """A queue message body does not carry a usable {Message, Timestamp} pair."""


class PayloadUnwrapError(ValueError):
    """An SNS notification payload could not be decoded into a JSON object."""


class SubscriptionConfirmError(RelayError):
    """ConfirmSubscription call to SNS failed."""


class SubscribeError(RelayError):
    """Subscribe call to SNS failed."""


class ForwardError(RelayError):
    """Base for failures delivering a message to the downstream sink."""


class ForwardEncodeError(ForwardError):
    """The payload could not be serialized to JSON."""


class ForwardTransportError(ForwardError):
    """Connection error / timeout talking to the sink."""


class SinkRejectedError(ForwardError):
    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = int(status_code)
        self.body = body
        super().__init__(f"sink returned non-2xx status code: {self.status_code}")
