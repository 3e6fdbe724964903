"""
Relay configuration contract.

All settings are read once at startup into an immutable `RelayConfig` that is
passed to each component's constructor. Nothing reads the environment after boot.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse

from relay.errors import ConfigError

REQUIRED_ENV: tuple[str, ...] = (
    "SQS_QUEUE_NAME",
    "SQS_LONG_POLL_WAIT_TIME",
    "SQS_VISIBILITY_TIMEOUT",
    "REDIRECT_URL",
    "AWS_REGION",
    "PORT",
)

# SQS hard limits.
SQS_MAX_WAIT_TIME_S = 20
SQS_MAX_VISIBILITY_TIMEOUT_S = 43200
SQS_MAX_BATCH = 10

SINK_TIMEOUT_S_DEFAULT = "10"
AWS_TIMEOUT_S_DEFAULT = "10"
SQS_MAX_MESSAGES_DEFAULT = "10"
SQS_POLL_INTERVAL_MS_DEFAULT = "500"
SQS_POLL_BACKOFF_INITIAL_S_DEFAULT = "0.5"
SQS_POLL_BACKOFF_MAX_S_DEFAULT = "30"
SQS_POLL_CIRCUIT_THRESHOLD_DEFAULT = "5"
SQS_POLL_CIRCUIT_COOLDOWN_S_DEFAULT = "60"


@dataclass(frozen=True)
class RelayConfig:
    queue_name: str
    wait_time_seconds: int
    visibility_timeout_seconds: int
    sink_url: str
    region: str
    port: int
    endpoint_url: Optional[str] = None

    sink_timeout_s: float = 10.0
    aws_timeout_s: float = 10.0
    max_messages: int = SQS_MAX_BATCH
    poll_interval_s: float = 0.5
    poll_backoff_initial_s: float = 0.5
    poll_backoff_max_s: float = 30.0
    poll_circuit_threshold: int = 5
    poll_circuit_cooldown_s: float = 60.0

    dead_letter_queue_name: Optional[str] = None
    sns_topic_arn: Optional[str] = None
    sns_notification_endpoint: Optional[str] = None

    service_name: str = "notification-relay"
    env: str = "unknown"
    log_level: str = "INFO"

    @property
    def auto_subscribe(self) -> bool:
        return bool(self.sns_topic_arn and self.sns_notification_endpoint)


def _get(environ: Mapping[str, str], name: str) -> str:
    return str(environ.get(name) or "").strip()


def _parse_port(raw: str) -> int:
    # Accept gin-style ":8080" as well as "8080".
    s = raw[1:] if raw.startswith(":") else raw
    port = int(s)
    if not 0 < port < 65536:
        raise ValueError(f"port out of range: {port}")
    return port


def _is_http_url(raw: str) -> bool:
    parsed = urlparse(raw)
    return parsed.scheme.lower() in {"http", "https"} and bool(parsed.netloc)


class _Collector:
    """Accumulates every config problem so the boot failure names all of them at once."""

    def __init__(self, environ: Mapping[str, str]) -> None:
        self.environ = environ
        self.problems: list[str] = []

    def int_in_range(self, name: str, *, lo: int, hi: int, default: str | None = None) -> int:
        raw = _get(self.environ, name) or (default or "")
        try:
            v = int(raw)
        except ValueError:
            self.problems.append(f"{name} must be an integer (got {raw!r})")
            return lo
        if not lo <= v <= hi:
            self.problems.append(f"{name} must be within {lo}..{hi} (got {v})")
        return v

    def float_min(self, name: str, *, default: str, minimum: float = 0.0) -> float:
        raw = _get(self.environ, name) or default
        try:
            v = float(raw)
        except ValueError:
            self.problems.append(f"{name} must be a number (got {raw!r})")
            return float(default)
        if v < minimum:
            self.problems.append(f"{name} must be >= {minimum} (got {v})")
        return v


def load_config(environ: Mapping[str, str] | None = None) -> RelayConfig:
    """
    Build a `RelayConfig` from process environment variables.

    Raises `ConfigError` listing every missing or unparsable variable.
    """
    env = os.environ if environ is None else environ
    c = _Collector(env)

    missing = [name for name in REQUIRED_ENV if not _get(env, name)]
    c.problems.extend(f"missing required env var: {name}" for name in missing)

    wait_time = 0
    if "SQS_LONG_POLL_WAIT_TIME" not in missing:
        wait_time = c.int_in_range("SQS_LONG_POLL_WAIT_TIME", lo=0, hi=SQS_MAX_WAIT_TIME_S)
    visibility = 0
    if "SQS_VISIBILITY_TIMEOUT" not in missing:
        visibility = c.int_in_range("SQS_VISIBILITY_TIMEOUT", lo=0, hi=SQS_MAX_VISIBILITY_TIMEOUT_S)

    port = 0
    if "PORT" not in missing:
        try:
            port = _parse_port(_get(env, "PORT"))
        except ValueError:
            c.problems.append(f"PORT must be a TCP port (got {_get(env, 'PORT')!r})")

    sink_url = _get(env, "REDIRECT_URL")
    if sink_url and not _is_http_url(sink_url):
        c.problems.append(f"REDIRECT_URL must be an http(s) URL (got {sink_url!r})")

    endpoint_url = _get(env, "LOCALSTACK_ENDPOINT") or None
    if endpoint_url and not _is_http_url(endpoint_url):
        c.problems.append(f"LOCALSTACK_ENDPOINT must be an http(s) URL (got {endpoint_url!r})")

    max_messages = c.int_in_range("SQS_MAX_MESSAGES", lo=1, hi=SQS_MAX_BATCH, default=SQS_MAX_MESSAGES_DEFAULT)
    poll_interval_ms = c.float_min("SQS_POLL_INTERVAL_MS", default=SQS_POLL_INTERVAL_MS_DEFAULT)
    backoff_initial = c.float_min("SQS_POLL_BACKOFF_INITIAL_S", default=SQS_POLL_BACKOFF_INITIAL_S_DEFAULT)
    backoff_max = c.float_min("SQS_POLL_BACKOFF_MAX_S", default=SQS_POLL_BACKOFF_MAX_S_DEFAULT)
    circuit_threshold = c.int_in_range(
        "SQS_POLL_CIRCUIT_THRESHOLD", lo=1, hi=1_000_000, default=SQS_POLL_CIRCUIT_THRESHOLD_DEFAULT
    )
    circuit_cooldown = c.float_min("SQS_POLL_CIRCUIT_COOLDOWN_S", default=SQS_POLL_CIRCUIT_COOLDOWN_S_DEFAULT)
    sink_timeout = c.float_min("SINK_TIMEOUT_S", default=SINK_TIMEOUT_S_DEFAULT, minimum=0.1)
    aws_timeout = c.float_min("AWS_TIMEOUT_S", default=AWS_TIMEOUT_S_DEFAULT, minimum=0.1)

    topic_arn = _get(env, "SNS_TOPIC_ARN") or None
    notification_endpoint = _get(env, "SNS_NOTIFICATION_ENDPOINT") or None
    if bool(topic_arn) != bool(notification_endpoint):
        c.problems.append("SNS_TOPIC_ARN and SNS_NOTIFICATION_ENDPOINT must be set together")
    if notification_endpoint and not _is_http_url(notification_endpoint):
        c.problems.append(f"SNS_NOTIFICATION_ENDPOINT must be an http(s) URL (got {notification_endpoint!r})")

    if c.problems:
        raise ConfigError(c.problems)

    return RelayConfig(
        queue_name=_get(env, "SQS_QUEUE_NAME"),
        wait_time_seconds=wait_time,
        visibility_timeout_seconds=visibility,
        sink_url=sink_url,
        region=_get(env, "AWS_REGION"),
        port=port,
        endpoint_url=endpoint_url,
        sink_timeout_s=sink_timeout,
        aws_timeout_s=aws_timeout,
        max_messages=max_messages,
        poll_interval_s=poll_interval_ms / 1000.0,
        poll_backoff_initial_s=backoff_initial,
        poll_backoff_max_s=max(backoff_initial, backoff_max),
        poll_circuit_threshold=circuit_threshold,
        poll_circuit_cooldown_s=circuit_cooldown,
        dead_letter_queue_name=_get(env, "WEBHOOK_DLQ_QUEUE_NAME") or None,
        sns_topic_arn=topic_arn,
        sns_notification_endpoint=notification_endpoint,
        service_name=_get(env, "SERVICE_NAME") or "notification-relay",
        env=_get(env, "ENV") or "unknown",
        log_level=(_get(env, "LOG_LEVEL") or "INFO").upper(),
    )
