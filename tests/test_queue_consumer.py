from __future__ import annotations

import json
import logging
import threading

import pytest

from relay.aws.sqs import QueueRecord, SqsQueue
from relay.common.retry import CircuitBreaker, ExponentialBackoff
from relay.consumer.queue_consumer import MessageOutcome, QueueConsumer
from relay.errors import QueueResolutionError
from relay.forwarder import Forwarder
from tests.fakes import QUEUE_NAME, QUEUE_URL, SINK_URL, FakeSqsClient, client_error, sqs_message

GOOD_BODY = {"Type": "Notification", "Message": "hello", "Timestamp": "2024-01-01T00:00:00.000000000Z"}


def _consumer(client: FakeSqsClient, *, stop: threading.Event | None = None, **kw) -> QueueConsumer:
    kw.setdefault("poll_interval_s", 0.0)
    kw.setdefault("backoff", ExponentialBackoff(initial_s=0.0, max_s=0.0))
    return QueueConsumer(
        sqs_client=client,
        forwarder=Forwarder(sink_url=SINK_URL, timeout_s=1.0),
        stop_event=stop or threading.Event(),
        **kw,
    )


def _queue(client: FakeSqsClient) -> SqsQueue:
    return SqsQueue(client=client, queue_url=QUEUE_URL)


def _events(caplog, event_type: str) -> list[logging.LogRecord]:
    return [r for r in caplog.records if getattr(r, "event_type", None) == event_type]


def test_delivered_message_is_deleted_once_with_its_receipt_handle(sink) -> None:
    client = FakeSqsClient()
    record_msg = sqs_message(GOOD_BODY, receipt_handle="rh-42", message_id="m-42")
    consumer = _consumer(client)

    outcome = consumer.process_record(_queue(client), QueueRecord.from_sqs(record_msg))

    assert outcome is MessageOutcome.DELIVERED
    assert sink.payloads == [{"message": "hello", "timestamp": "2024-01-01T00:00:00Z"}]
    assert client.deleted == [(QUEUE_URL, "rh-42")]


def test_forward_failure_leaves_message_in_queue(sink, caplog) -> None:
    caplog.set_level(logging.INFO)
    sink.responses = [500]
    client = FakeSqsClient(batches=[[sqs_message(GOOD_BODY)]])

    assert _consumer(client).poll_once(_queue(client), wait_time_seconds=0, visibility_timeout_seconds=30) is True

    assert len(sink.calls) == 1
    assert client.deleted == []
    assert _events(caplog, "forward.failed")


def test_malformed_message_is_neither_forwarded_nor_deleted(sink, caplog) -> None:
    caplog.set_level(logging.INFO)
    client = FakeSqsClient(batches=[[sqs_message("not json"), sqs_message({"Message": "m"}, receipt_handle="rh-2")]])

    _consumer(client).poll_once(_queue(client), wait_time_seconds=0, visibility_timeout_seconds=30)

    assert sink.calls == []
    assert client.deleted == []
    assert len(_events(caplog, "sqs.message_malformed")) == 2


def test_delete_failure_is_logged_and_not_reforwarded(sink, caplog) -> None:
    caplog.set_level(logging.INFO)
    client = FakeSqsClient(batches=[[sqs_message(GOOD_BODY, receipt_handle="stale")]])
    client.fail_delete_for.add("stale")

    _consumer(client).poll_once(_queue(client), wait_time_seconds=0, visibility_timeout_seconds=30)

    assert len(sink.calls) == 1
    assert client.deleted == []
    assert _events(caplog, "sqs.delete_failed")


def test_batch_is_processed_in_order(sink) -> None:
    batch = [
        sqs_message({**GOOD_BODY, "Message": f"m{i}"}, receipt_handle=f"rh-{i}", message_id=f"id-{i}")
        for i in range(3)
    ]
    client = FakeSqsClient(batches=[batch])

    _consumer(client).poll_once(_queue(client), wait_time_seconds=0, visibility_timeout_seconds=30)

    assert [p["message"] for p in sink.payloads] == ["m0", "m1", "m2"]
    assert [h for _, h in client.deleted] == ["rh-0", "rh-1", "rh-2"]


def test_receive_uses_configured_parameters(sink) -> None:
    client = FakeSqsClient(batches=[[]])

    _consumer(client, max_messages=4).poll_once(_queue(client), wait_time_seconds=20, visibility_timeout_seconds=45)

    assert client.receive_calls == [
        {"QueueUrl": QUEUE_URL, "MaxNumberOfMessages": 4, "WaitTimeSeconds": 20, "VisibilityTimeout": 45}
    ]


def test_max_messages_is_clamped_to_sqs_limit() -> None:
    assert _consumer(FakeSqsClient(), max_messages=50).max_messages == 10
    assert _consumer(FakeSqsClient(), max_messages=0).max_messages == 1


def test_receive_error_reports_failure(sink, caplog) -> None:
    caplog.set_level(logging.INFO)
    client = FakeSqsClient(batches=[client_error("ReceiveMessage")])

    ok = _consumer(client).poll_once(_queue(client), wait_time_seconds=0, visibility_timeout_seconds=30)

    assert ok is False
    assert _events(caplog, "sqs.poll_failed")


def test_consume_backs_off_after_receive_errors_and_keeps_polling(sink, caplog) -> None:
    caplog.set_level(logging.INFO)
    stop = threading.Event()
    client = FakeSqsClient(
        batches=[client_error("ReceiveMessage"), client_error("ReceiveMessage"), [sqs_message(GOOD_BODY)]]
    )
    client.on_exhausted = stop

    _consumer(client, stop=stop).consume(_queue(client), wait_time_seconds=0, visibility_timeout_seconds=30)

    assert len(_events(caplog, "sqs.poll_backoff")) == 2
    assert len(sink.calls) == 1
    assert client.deleted == [(QUEUE_URL, "rh-1")]
    assert _events(caplog, "sqs.consumer_stopped")


def test_circuit_opens_after_consecutive_receive_errors(sink, caplog) -> None:
    caplog.set_level(logging.INFO)
    stop = threading.Event()
    client = FakeSqsClient(batches=[client_error("ReceiveMessage"), client_error("ReceiveMessage")])
    breaker = CircuitBreaker(failure_threshold=2, cooldown_s=60.0)

    consumer = _consumer(client, stop=stop, breaker=breaker)
    consumer.poll_once(_queue(client), wait_time_seconds=0, visibility_timeout_seconds=30)
    consumer.poll_once(_queue(client), wait_time_seconds=0, visibility_timeout_seconds=30)

    assert _events(caplog, "sqs.circuit_opened")
    assert breaker.allow_request() is False


def test_open_circuit_pauses_polling_until_stopped(sink, caplog) -> None:
    caplog.set_level(logging.INFO)
    stop = threading.Event()
    client = FakeSqsClient()
    breaker = CircuitBreaker(failure_threshold=1, cooldown_s=60.0)
    breaker.record_failure()

    thread = threading.Thread(
        target=_consumer(client, stop=stop, breaker=breaker).consume,
        args=(_queue(client),),
        kwargs={"wait_time_seconds": 0, "visibility_timeout_seconds": 30},
        daemon=True,
    )
    thread.start()
    stop.set()
    thread.join(timeout=5.0)

    assert not thread.is_alive()
    assert client.receive_calls == []


def test_stop_event_set_before_start_never_polls(sink) -> None:
    stop = threading.Event()
    stop.set()
    client = FakeSqsClient()

    _consumer(client, stop=stop).consume(_queue(client), wait_time_seconds=0, visibility_timeout_seconds=30)

    assert client.receive_calls == []


def test_resolve_unknown_queue_raises() -> None:
    client = FakeSqsClient(queues={})
    with pytest.raises(QueueResolutionError):
        _consumer(client).resolve(QUEUE_NAME)


def test_run_resolves_then_consumes(sink) -> None:
    stop = threading.Event()
    client = FakeSqsClient(batches=[[sqs_message(GOOD_BODY)]])
    client.on_exhausted = stop

    _consumer(client, stop=stop).run(QUEUE_NAME, 0, 30)

    assert client.receive_calls[0]["QueueUrl"] == QUEUE_URL
    assert client.deleted == [(QUEUE_URL, "rh-1")]


def test_from_config_wires_tuning_values(relay_config) -> None:
    consumer = QueueConsumer.from_config(
        relay_config,
        sqs_client=FakeSqsClient(),
        forwarder=Forwarder(sink_url=SINK_URL),
    )
    assert consumer.max_messages == relay_config.max_messages
    assert consumer.poll_interval_s == relay_config.poll_interval_s


def test_forwarded_body_matches_normalized_shape(sink) -> None:
    body = {"Message": "x", "Timestamp": "2024-02-29T23:59:59.999999999-05:00"}
    client = FakeSqsClient(batches=[[sqs_message(json.dumps(body))]])

    _consumer(client).poll_once(_queue(client), wait_time_seconds=0, visibility_timeout_seconds=30)

    assert sink.payloads == [{"message": "x", "timestamp": "2024-02-29T23:59:59.999999999-05:00"}]


def test_deeply_nested_body_is_skipped_and_polling_continues(sink, caplog) -> None:
    caplog.set_level(logging.INFO)
    stop = threading.Event()
    nested = "[" * 100_000 + "]" * 100_000
    client = FakeSqsClient(
        batches=[
            [sqs_message(nested, receipt_handle="rh-deep")],
            [sqs_message(GOOD_BODY, receipt_handle="rh-next")],
        ]
    )
    client.on_exhausted = stop

    _consumer(client, stop=stop).consume(_queue(client), wait_time_seconds=0, visibility_timeout_seconds=30)

    assert len(sink.calls) == 1
    assert client.deleted == [(QUEUE_URL, "rh-next")]
    assert _events(caplog, "sqs.message_malformed")
    assert len(client.receive_calls) == 3


def test_unexpected_record_error_is_logged_and_batch_continues(sink, caplog, monkeypatch) -> None:
    caplog.set_level(logging.INFO)
    client = FakeSqsClient(
        batches=[[sqs_message(GOOD_BODY, receipt_handle="rh-a"), sqs_message(GOOD_BODY, receipt_handle="rh-b")]]
    )
    consumer = _consumer(client)
    real_process = consumer.process_record

    def _process(queue, record):  # type: ignore[no-untyped-def]
        if record.receipt_handle == "rh-a":
            raise RuntimeError("unexpected")
        return real_process(queue, record)

    monkeypatch.setattr(consumer, "process_record", _process)

    assert consumer.poll_once(_queue(client), wait_time_seconds=0, visibility_timeout_seconds=30) is True

    assert client.deleted == [(QUEUE_URL, "rh-b")]
    failed = _events(caplog, "sqs.message_failed")
    assert len(failed) == 1
    assert failed[0].exc_info is not None
