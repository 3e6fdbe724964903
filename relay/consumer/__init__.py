from relay.consumer.formatting import NormalizedMessage, format_queue_message
from relay.consumer.queue_consumer import MessageOutcome, QueueConsumer

__all__ = [
    "MessageOutcome",
    "NormalizedMessage",
    "QueueConsumer",
    "format_queue_message",
]
