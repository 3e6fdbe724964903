"""
boto3 client factory.

Every client carries explicit connect/read timeouts; the SQS client's read
timeout is widened by the long-poll wait so a full long-poll never trips it.
"""

from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config

from relay.common.config import RelayConfig


def _client_config(*, region: str, connect_timeout_s: float, read_timeout_s: float) -> Config:
    return Config(
        region_name=region,
        connect_timeout=connect_timeout_s,
        read_timeout=read_timeout_s,
        # Retries are owned by the relay (queue redelivery / poll backoff), not botocore.
        retries={"max_attempts": 1, "mode": "standard"},
    )


def make_session(config: RelayConfig) -> boto3.session.Session:
    return boto3.session.Session(region_name=config.region)


def make_sqs_client(config: RelayConfig, *, session: Any = None) -> Any:
    sess = session or make_session(config)
    return sess.client(
        "sqs",
        endpoint_url=config.endpoint_url,
        config=_client_config(
            region=config.region,
            connect_timeout_s=config.aws_timeout_s,
            read_timeout_s=config.aws_timeout_s + float(config.wait_time_seconds),
        ),
    )


def make_sns_client(config: RelayConfig, *, session: Any = None) -> Any:
    sess = session or make_session(config)
    return sess.client(
        "sns",
        endpoint_url=config.endpoint_url,
        config=_client_config(
            region=config.region,
            connect_timeout_s=config.aws_timeout_s,
            read_timeout_s=config.aws_timeout_s,
        ),
    )
