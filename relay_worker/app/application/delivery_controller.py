from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from loguru import logger

from relay_worker.app.constants import UPSTREAM_STATUS, DeliveryAction
from relay_worker.app.core import SERVICE_NAME
from relay_worker.app.core.backoff import retry_delay_seconds
from relay_worker.app.domain.member import InvalidPayloadError, build_member_upsert
from relay_worker.app.domain.models import DeadLetterRecord, DeliveryOutcome, DeliveryPolicy
from relay_worker.app.ports.dead_letter_sink import DeadLetterSink
from relay_worker.app.ports.queued_item import QueuedItem
from relay_worker.app.ports.upstream_client import (
    UpstreamClient,
    UpstreamConfigurationError,
    UpstreamResponse,
)


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _warn(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).warning("")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_retryable_status(status_code: int) -> bool:
    return (
        status_code == UPSTREAM_STATUS.TOO_MANY_REQUESTS
        or status_code >= UPSTREAM_STATUS.SERVER_ERROR_MIN
    )


class DeliveryController:
    """
    Performs one upstream attempt for a queued item and resolves it to Ack, Retry or DeadLetter.

    attempt_count on the item counts attempts already made. A retryable failure bumps it;
    if the bumped count reaches policy.max_attempts the item is dead-lettered (sink first,
    then ack), otherwise it is requeued with backoff base * 2**attempt_count capped at the
    ceiling. So with max_attempts=5 an item gets exactly five upstream calls.

    An item whose carried count already exceeds the budget (max_attempts lowered while
    copies sat in retry queues) is dead-lettered with its real count, so the record shows
    attempts > max_attempts; delivery_attempt_budget_exceeded is logged for it.

    Non-retryable statuses (4xx other than 429) and unusable payloads are acked and dropped.
    UpstreamConfigurationError is not item-scoped and propagates.
    """

    def __init__(
        self,
        upstream: UpstreamClient,
        dead_letter_sink: DeadLetterSink,
        policy: DeliveryPolicy,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._upstream = upstream
        self._dead_letter_sink = dead_letter_sink
        self._policy = policy
        self._clock = clock

    @property
    def policy(self) -> DeliveryPolicy:
        return self._policy

    def verify_configuration(self) -> None:
        self._upstream.verify_configuration()

    async def deliver(self, item: QueuedItem) -> DeliveryOutcome:
        attempt_count = int(item.attempt_count)

        try:
            upsert = build_member_upsert(item.payload)
        except InvalidPayloadError as exc:
            _warn("delivery_payload_rejected", attempt_count=attempt_count, error=str(exc))
            await item.ack()
            return DeliveryOutcome(DeliveryAction.ACK, attempt_count, error=str(exc))

        try:
            response = await self._upstream.upsert(upsert.key, upsert.body)
        except UpstreamConfigurationError:
            raise
        except Exception as exc:
            return await self._handle_retryable(item, attempt_count, str(exc) or type(exc).__name__)

        return await self._handle_response(item, attempt_count, upsert.key, response)

    async def _handle_response(
        self,
        item: QueuedItem,
        attempt_count: int,
        key: str,
        response: UpstreamResponse,
    ) -> DeliveryOutcome:
        status = response.status_code
        if response.ok:
            await item.ack()
            _log("delivery_succeeded", member_key=key, status=status, attempt_count=attempt_count)
            return DeliveryOutcome(DeliveryAction.ACK, attempt_count, status_code=status)

        if is_retryable_status(status):
            _warn("delivery_retryable_status", member_key=key, status=status, attempt_count=attempt_count)
            return await self._handle_retryable(
                item, attempt_count, f"retryable {status}", status_code=status
            )

        error_text = f"nonretryable {status}"
        _warn("delivery_nonretryable_status", member_key=key, status=status, attempt_count=attempt_count)
        await item.ack()
        return DeliveryOutcome(DeliveryAction.ACK, attempt_count, status_code=status, error=error_text)

    async def _handle_retryable(
        self,
        item: QueuedItem,
        attempt_count: int,
        error_text: str,
        *,
        status_code: int | None = None,
    ) -> DeliveryOutcome:
        next_attempt = attempt_count + 1

        if next_attempt >= self._policy.max_attempts:
            if next_attempt > self._policy.max_attempts:
                _warn(
                    "delivery_attempt_budget_exceeded",
                    attempt_count=next_attempt,
                    max_attempts=self._policy.max_attempts,
                )
            record = DeadLetterRecord(
                original=item.payload,
                error=error_text,
                failed_at=self._clock(),
                attempts=next_attempt,
            )
            await self._dead_letter_sink.send(record)
            await item.ack()
            _warn("delivery_dead_lettered", attempt_count=next_attempt, error=error_text)
            return DeliveryOutcome(
                DeliveryAction.DEAD_LETTER,
                next_attempt,
                status_code=status_code,
                dead_letter=record,
                error=error_text,
            )

        delay = retry_delay_seconds(
            attempt_count,
            self._policy.backoff_base_seconds,
            self._policy.backoff_max_seconds,
        )
        await item.requeue_with_delay(delay, attempt_count=next_attempt)
        _warn("delivery_retry_scheduled", attempt_count=next_attempt, delay_seconds=delay, error=error_text)
        return DeliveryOutcome(
            DeliveryAction.RETRY,
            next_attempt,
            status_code=status_code,
            delay_seconds=delay,
            error=error_text,
        )
