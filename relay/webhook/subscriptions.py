"""
In-memory view of the SNS subscription handshake, per topic.

SNS itself owns the real state; this only mirrors what this process has seen so
logs can tell a notification from a freshly confirmed topic apart from one whose
confirmation happened before the last restart. Nothing is persisted.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Optional


class SubscriptionState(Enum):
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"


class SubscriptionTracker:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, SubscriptionState] = {}

    def mark_unconfirmed(self, topic_arn: str) -> None:
        with self._lock:
            # Never downgrade a topic already confirmed in this process.
            self._states.setdefault(topic_arn, SubscriptionState.UNCONFIRMED)

    def mark_confirmed(self, topic_arn: str) -> None:
        with self._lock:
            self._states[topic_arn] = SubscriptionState.CONFIRMED

    def state_of(self, topic_arn: str) -> Optional[SubscriptionState]:
        with self._lock:
            return self._states.get(topic_arn)

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return {topic: state.value for topic, state in self._states.items()}
