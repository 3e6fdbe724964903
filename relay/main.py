"""
notification relay entrypoint

Runs two independent tasks for the process lifetime:
- the SQS consumer loop on a dedicated thread
- the FastAPI server exposing `POST /sns-webhook` and `GET /health`

Startup is fail-fast: invalid configuration, an unresolvable queue, or a failed
auto-subscribe stops the process before it serves traffic.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import relay
from relay.aws.clients import make_sns_client, make_sqs_client
from relay.aws.sns import SnsTopicClient, protocol_for_endpoint
from relay.common.config import RelayConfig, load_config
from relay.common.logging import init_structured_logging, install_fastapi_request_id_middleware, log_event
from relay.consumer.queue_consumer import QueueConsumer
from relay.dead_letter import build_dead_letter_queue
from relay.errors import ConfigError, QueueResolutionError, SubscribeError
from relay.forwarder import Forwarder
from relay.webhook.handler import SnsWebhookHandler
from relay.webhook.subscriptions import SubscriptionTracker

logger = logging.getLogger("relay")

CONSUMER_JOIN_TIMEOUT_S = 2.0


def _start_consumer(app: FastAPI, config: RelayConfig, *, sqs_client: Any, forwarder: Forwarder) -> None:
    stop = threading.Event()
    consumer = QueueConsumer.from_config(config, sqs_client=sqs_client, forwarder=forwarder, stop_event=stop)
    try:
        queue = consumer.resolve(config.queue_name)
    except QueueResolutionError as e:
        log_event(logger, "sqs.queue_resolution_failed", severity="CRITICAL", queue_name=config.queue_name, error=str(e))
        raise

    thread = threading.Thread(
        target=consumer.consume,
        args=(queue,),
        kwargs={
            "wait_time_seconds": config.wait_time_seconds,
            "visibility_timeout_seconds": config.visibility_timeout_seconds,
        },
        name="relay.sqs_consumer",
        daemon=True,
    )
    thread.start()
    app.state.consumer_stop = stop
    app.state.consumer_thread = thread


def _stop_consumer(app: FastAPI) -> None:
    stop: Optional[threading.Event] = getattr(app.state, "consumer_stop", None)
    thread: Optional[threading.Thread] = getattr(app.state, "consumer_thread", None)
    if stop is not None:
        stop.set()
    if thread is not None and thread.is_alive():
        # A long-poll in flight cannot be interrupted; its messages simply redeliver.
        thread.join(timeout=CONSUMER_JOIN_TIMEOUT_S)


def _auto_subscribe(config: RelayConfig, *, sns: SnsTopicClient, tracker: SubscriptionTracker) -> None:
    topic_arn = str(config.sns_topic_arn)
    endpoint = str(config.sns_notification_endpoint)
    try:
        subscription_arn = sns.subscribe(
            topic_arn=topic_arn,
            protocol=protocol_for_endpoint(endpoint),
            endpoint=endpoint,
        )
    except SubscribeError:
        log_event(logger, "sns.auto_subscribe_failed", severity="CRITICAL", topic_arn=topic_arn)
        raise
    tracker.mark_unconfirmed(topic_arn)
    log_event(logger, "sns.subscribed", topic_arn=topic_arn, subscription_arn=subscription_arn, endpoint=endpoint)


def create_app(
    config: RelayConfig,
    *,
    sqs_client: Any = None,
    sns_client: Any = None,
    start_consumer: bool = True,
) -> FastAPI:
    """
    Build the relay application. AWS clients may be injected (tests, LocalStack wiring).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sqs = sqs_client if sqs_client is not None else make_sqs_client(config)
        sns = SnsTopicClient(client=sns_client if sns_client is not None else make_sns_client(config))
        forwarder = Forwarder(sink_url=config.sink_url, timeout_s=config.sink_timeout_s)
        tracker = SubscriptionTracker()

        dead_letter = build_dead_letter_queue(sqs_client=sqs, queue_name=config.dead_letter_queue_name)
        app.state.webhook_handler = SnsWebhookHandler(
            sns=sns,
            forwarder=forwarder,
            tracker=tracker,
            dead_letter=dead_letter,
        )

        if config.auto_subscribe:
            _auto_subscribe(config, sns=sns, tracker=tracker)

        if start_consumer:
            _start_consumer(app, config, sqs_client=sqs, forwarder=forwarder)

        log_event(
            logger,
            "startup",
            queue_name=config.queue_name,
            wait_time_seconds=config.wait_time_seconds,
            visibility_timeout_seconds=config.visibility_timeout_seconds,
            endpoint_override=bool(config.endpoint_url),
            region=config.region,
            dead_letter_configured=dead_letter is not None,
            auto_subscribe=config.auto_subscribe,
            consumer_started=start_consumer,
        )
        try:
            yield
        finally:
            _stop_consumer(app)
            log_event(logger, "shutdown", severity="WARNING")

    app = FastAPI(title="SQS/SNS → HTTP notification relay", version=relay.__version__, lifespan=lifespan)
    install_fastapi_request_id_middleware(app, service=config.service_name)

    @app.get("/health")
    async def health() -> str:
        return "OK"

    @app.post("/sns-webhook")
    async def sns_webhook(req: Request) -> JSONResponse:
        body = await req.body()
        handler: SnsWebhookHandler = req.app.state.webhook_handler
        # boto3 + requests are blocking; keep them off the event loop.
        result = await asyncio.to_thread(handler.handle, body)
        return JSONResponse(status_code=result.status_code, content=result.body)

    return app


def main() -> None:
    init_structured_logging(service="notification-relay")
    try:
        config = load_config()
    except ConfigError as e:
        log_event(logger, "config.invalid", severity="CRITICAL", problems=e.problems)
        raise SystemExit(1) from e

    init_structured_logging(service=config.service_name, env=config.env, level=config.log_level)

    import uvicorn

    uvicorn.run(create_app(config), host="0.0.0.0", port=config.port, log_level="warning", access_log=False)


if __name__ == "__main__":
    main()
