from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi import FastAPI

from relay_api.app.infrastructure.messaging.rabbitmq.constants import PublisherState
from relay_api.app.routers.dead_letters import dead_letters_router
from relay_api.app.routers.health import health_router
from relay_api.app.routers.subscribers import subscribers_router
from relay_worker.app.application.delivery_controller import DeliveryController
from relay_worker.app.domain.models import DeadLetterRecord, DeliveryPolicy
from relay_worker.app.ports.upstream_client import UpstreamConfigurationError, UpstreamResponse

FIXED_NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

# No inter-group pause; FakeItem records requeue delays instead of waiting them out.
FAST_POLICY = DeliveryPolicy(
    group_size=10,
    inter_group_pause_seconds=0.0,
    max_attempts=5,
    backoff_base_seconds=30.0,
    backoff_max_seconds=300.0,
)


# ---- worker fakes ----

class FakeItem:
    """Implements QueuedItem; records how it was resolved."""

    def __init__(
        self,
        payload: Any,
        attempt_count: int = 0,
        *,
        events: list[tuple[str, Any]] | None = None,
        ack_raises: Exception | None = None,
    ) -> None:
        self._payload = payload
        self._attempt_count = attempt_count
        self.events = events if events is not None else []
        self._ack_raises = ack_raises
        self.ack_calls = 0
        self.requeues: list[tuple[float, int]] = []

    @property
    def payload(self) -> Any:
        return self._payload

    @property
    def attempt_count(self) -> int:
        return self._attempt_count

    @property
    def acked(self) -> bool:
        return self.ack_calls > 0

    async def ack(self) -> None:
        if self._ack_raises is not None:
            raise self._ack_raises
        self.ack_calls += 1
        self.events.append(("ack", self._payload))

    async def requeue_with_delay(self, delay_seconds: float, *, attempt_count: int) -> None:
        self.requeues.append((delay_seconds, attempt_count))
        self.events.append(("requeue", self._payload))


class ScriptedUpstream:
    """UpstreamClient fake. Each call pops the next scripted result (int status or exception)."""

    def __init__(
        self,
        script: list[int | BaseException] | None = None,
        *,
        default_status: int = 200,
        config_error: UpstreamConfigurationError | None = None,
        yield_during_call: bool = False,
    ) -> None:
        self._script = list(script or [])
        self._default_status = default_status
        self._config_error = config_error
        self._yield = yield_during_call
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.events: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    def verify_configuration(self) -> None:
        if self._config_error is not None:
            raise self._config_error

    async def upsert(self, key: str, body: dict[str, Any]) -> UpstreamResponse:
        self.calls.append((key, body))
        self.events.append(("start", body["email_address"]))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._yield:
                await asyncio.sleep(0)
            result: int | BaseException = self._script.pop(0) if self._script else self._default_status
            if isinstance(result, BaseException):
                raise result
            return UpstreamResponse(status_code=result)
        finally:
            self.in_flight -= 1
            self.events.append(("end", body["email_address"]))

    async def close(self) -> None:
        self.closed = True


class RecordingSink:
    """DeadLetterSink fake."""

    def __init__(self, *, raises: Exception | None = None, events: list[tuple[str, Any]] | None = None) -> None:
        self.records: list[DeadLetterRecord] = []
        self._raises = raises
        self.events = events if events is not None else []

    async def send(self, record: DeadLetterRecord) -> None:
        if self._raises is not None:
            raise self._raises
        self.records.append(record)
        self.events.append(("dead_letter", record.original))

    async def close(self) -> None:
        return


def subscriber(index: int = 0, email: str | None = None) -> dict[str, Any]:
    return {
        "email": email or f"user{index}@example.com",
        "firstName": f"First{index}",
        "lastName": f"Last{index}",
    }


def make_controller(
    upstream: ScriptedUpstream,
    sink: RecordingSink | None = None,
    policy: DeliveryPolicy = FAST_POLICY,
) -> DeliveryController:
    return DeliveryController(upstream, sink or RecordingSink(), policy, clock=lambda: FIXED_NOW)


# ---- api fakes ----

class FakePublisher:
    """Implements MessagePublisher for tests; routers depend only on .ready and .publish()."""

    def __init__(
        self,
        state: PublisherState = PublisherState.READY,
        *,
        raise_on_publish: Exception | None = None,
    ) -> None:
        self.state = state
        self.published: list[dict[str, Any]] = []
        self._raise_on_publish = raise_on_publish

    @property
    def ready(self) -> bool:
        return self.state == PublisherState.READY

    async def publish(self, message: dict[str, Any]) -> None:
        if self._raise_on_publish is not None:
            raise self._raise_on_publish
        self.published.append(message)


class FakeDatabase:
    """Implements DatabaseConnection for tests."""

    def __init__(self, ping_ok: bool = True) -> None:
        self._ping_ok = ping_ok
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def connect(self) -> None:
        self._ready = True

    async def ping(self) -> bool:
        return self._ping_ok

    async def close(self) -> None:
        self._ready = False


class FakeDeadLetterRepository:
    """Implements DeadLetterRepository over a dict keyed by id."""

    def __init__(
        self,
        records: dict[str, dict[str, Any]] | None = None,
        *,
        raise_on_read: Exception | None = None,
    ) -> None:
        self.records = records or {}
        self._raise_on_read = raise_on_read
        self.list_calls: list[tuple[str | None, int]] = []

    async def list_records(self, *, status: str | None, limit: int) -> list[dict[str, Any]]:
        if self._raise_on_read is not None:
            raise self._raise_on_read
        self.list_calls.append((status, limit))
        rows = [r for r in self.records.values() if status is None or r.get("status") == status]
        return rows[:limit]

    async def get_by_id(self, record_id: str) -> dict[str, Any] | None:
        if self._raise_on_read is not None:
            raise self._raise_on_read
        return self.records.get(record_id)

    async def mark_replayed(self, record_id: str) -> bool:
        record = self.records.get(record_id)
        if record is None or record.get("status") != "PENDING_REVIEW":
            return False
        record["status"] = "REPLAYED"
        record["replayed_at"] = FIXED_NOW
        return True


def dead_letter_doc(record_id: str, *, status: str = "PENDING_REVIEW", email: str = "a@example.com") -> dict[str, Any]:
    return {
        "_id": record_id,
        "original": {"email": email, "firstName": "A", "lastName": "B", "request_id": "old-req"},
        "error": "retryable 500",
        "failed_at": FIXED_NOW,
        "attempts": 5,
        "status": status,
        "replayed_at": None,
    }


@pytest.fixture()
def test_app() -> FastAPI:
    app = FastAPI()
    app.state.publisher = FakePublisher()
    app.state.database = FakeDatabase()
    app.state.dead_letter_repository = FakeDeadLetterRepository()
    app.include_router(health_router)
    app.include_router(subscribers_router)
    app.include_router(dead_letters_router)
    return app
