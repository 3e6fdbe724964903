from __future__ import annotations

import pytest

from relay.common.config import RelayConfig
from tests.fakes import QUEUE_NAME, SINK_URL, FakeSink, FakeSnsClient, FakeSqsClient


@pytest.fixture
def sink(monkeypatch) -> FakeSink:
    import relay.forwarder as forwarder_module

    fake = FakeSink()
    monkeypatch.setattr(forwarder_module.requests, "post", fake.post, raising=True)
    return fake


@pytest.fixture
def sqs_client() -> FakeSqsClient:
    return FakeSqsClient()


@pytest.fixture
def sns_client() -> FakeSnsClient:
    return FakeSnsClient()


@pytest.fixture
def relay_env() -> dict[str, str]:
    return {
        "SQS_QUEUE_NAME": QUEUE_NAME,
        "SQS_LONG_POLL_WAIT_TIME": "20",
        "SQS_VISIBILITY_TIMEOUT": "30",
        "REDIRECT_URL": SINK_URL,
        "AWS_REGION": "us-east-1",
        "LOCALSTACK_ENDPOINT": "http://localhost:4566",
        "PORT": ":8080",
    }


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(
        queue_name=QUEUE_NAME,
        wait_time_seconds=0,
        visibility_timeout_seconds=30,
        sink_url=SINK_URL,
        region="us-east-1",
        port=8080,
        endpoint_url="http://localhost:4566",
        poll_interval_s=0.0,
        poll_backoff_initial_s=0.0,
        poll_backoff_max_s=0.0,
    )
