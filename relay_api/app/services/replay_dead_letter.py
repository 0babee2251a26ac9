"""Replay a stored dead-letter record: publish its original payload, then flip it to REPLAYED."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from relay_api.app.constants import DeadLetterStatus
from relay_api.app.ports.dead_letter_repository import DeadLetterRepository
from relay_api.app.ports.message_publisher import MessagePublisher
from relay_api.app.services.enqueue_subscriber import enqueue_payload


class ReplayResult(str, Enum):
    REPLAYED = "REPLAYED"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_REPLAYED = "ALREADY_REPLAYED"
    PUBLISH_FAILED = "PUBLISH_FAILED"


@dataclass(frozen=True)
class ReplayOutcome:
    result: ReplayResult
    request_id: str | None = None
    error: str | None = None


async def replay_dead_letter(
    record_id: str,
    repository: DeadLetterRepository,
    publisher: MessagePublisher,
) -> ReplayOutcome:
    record = await repository.get_by_id(record_id)
    if record is None:
        return ReplayOutcome(ReplayResult.NOT_FOUND)
    if record.get("status") != DeadLetterStatus.PENDING_REVIEW:
        return ReplayOutcome(ReplayResult.ALREADY_REPLAYED)

    original = dict(record.get("original") or {})
    original.pop("request_id", None)
    original.pop("requested_at", None)
    outcome = await enqueue_payload(original, publisher)
    if not outcome.success:
        return ReplayOutcome(ReplayResult.PUBLISH_FAILED, request_id=outcome.request_id, error=outcome.error)

    if not await repository.mark_replayed(record_id):
        return ReplayOutcome(ReplayResult.ALREADY_REPLAYED, request_id=outcome.request_id)
    return ReplayOutcome(ReplayResult.REPLAYED, request_id=outcome.request_id)
