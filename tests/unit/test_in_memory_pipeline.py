"""End-to-end over the in-memory transport: queue -> dispatcher -> controller -> upstream fake."""
from __future__ import annotations

import asyncio

from relay_worker.app.application.group_dispatcher import GroupDispatcher
from relay_worker.app.domain.models import DeliveryPolicy
from relay_worker.app.infrastructure.messaging.inmemory.in_memory_queue import (
    InMemoryConsumer,
    InMemoryDeadLetterSink,
    InMemoryQueue,
)
from relay_worker.app.messaging.consumer import create_batch_handler
from tests.conftest import ScriptedUpstream, make_controller, subscriber

NO_WAIT_POLICY = DeliveryPolicy(
    group_size=10,
    inter_group_pause_seconds=0.0,
    max_attempts=5,
    backoff_base_seconds=0.0,
    backoff_max_seconds=0.0,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _pipeline(upstream, sink, queue):
    controller = make_controller(upstream, sink, NO_WAIT_POLICY)
    errors: asyncio.Queue = asyncio.Queue()
    handler = create_batch_handler(GroupDispatcher(controller), errors)
    return InMemoryConsumer(queue, batch_max_size=100), handler, errors


def test_flaky_upstream_eventually_acks_everything():
    queue = InMemoryQueue()
    for i in range(25):
        queue.put(subscriber(i))
    # Every third call fails once with 503.
    script = [503 if i % 3 == 0 else 200 for i in range(25)]
    upstream = ScriptedUpstream(script)
    sink = InMemoryDeadLetterSink()

    async def run():
        consumer, handler, errors = _pipeline(upstream, sink, queue)
        rounds = 0
        while len(queue) and rounds < 10:
            await consumer.drain_once(handler)
            rounds += 1
        return errors

    errors = asyncio.run(run())

    assert len(queue) == 0
    assert errors.empty()
    assert sink.records == []
    delivered = {body["email_address"] for _, body in upstream.calls}
    assert delivered == {f"user{i}@example.com" for i in range(25)}
    assert len(upstream.calls) == 25 + 9


def test_persistent_failure_ends_in_dead_letter_after_five_calls():
    queue = InMemoryQueue()
    queue.put(subscriber(1))
    upstream = ScriptedUpstream(default_status=500)
    sink = InMemoryDeadLetterSink()

    async def run():
        consumer, handler, _ = _pipeline(upstream, sink, queue)
        for _ in range(10):
            await consumer.drain_once(handler)

    asyncio.run(run())

    assert len(upstream.calls) == 5
    assert len(sink.records) == 1
    assert sink.records[0].attempts == 5
    assert sink.records[0].original == subscriber(1)
    assert len(queue) == 0


def test_requeued_items_stay_invisible_until_delay_passes():
    clock = FakeClock()
    queue = InMemoryQueue(clock=clock)
    queue.put(subscriber(1), attempt_count=1, delay_seconds=60.0)

    assert queue.take_ready(10) == []
    clock.now = 60.0
    ready = queue.take_ready(10)
    assert [item.attempt_count for item in ready] == [1]


def test_configuration_error_is_reported_and_items_return_to_queue():
    from relay_worker.app.ports.upstream_client import UpstreamConfigurationError

    queue = InMemoryQueue()
    for i in range(3):
        queue.put(subscriber(i))
    upstream = ScriptedUpstream(config_error=UpstreamConfigurationError("no data centre"))
    sink = InMemoryDeadLetterSink()

    async def run():
        consumer, handler, errors = _pipeline(upstream, sink, queue)
        await consumer.drain_once(handler)
        return errors

    errors = asyncio.run(run())

    assert isinstance(errors.get_nowait(), UpstreamConfigurationError)
    assert len(queue) == 3
    assert upstream.calls == []


def test_consumer_task_runs_until_cancelled():
    queue = InMemoryQueue()
    queue.put(subscriber(1))
    upstream = ScriptedUpstream()
    sink = InMemoryDeadLetterSink()

    async def run():
        consumer = InMemoryConsumer(queue, poll_interval_seconds=0.001)
        controller = make_controller(upstream, sink, NO_WAIT_POLICY)
        handler = create_batch_handler(GroupDispatcher(controller), asyncio.Queue())
        tag = await consumer.start_consuming(handler)
        for _ in range(100):
            if upstream.calls:
                break
            await asyncio.sleep(0.001)
        await consumer.cancel(tag)
        await consumer.close()
        return tag

    assert asyncio.run(run()) == "inmemory"
    assert len(upstream.calls) == 1
    assert len(queue) == 0
