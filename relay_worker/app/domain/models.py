"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from relay_worker.app.constants import DeliveryAction


@dataclass(frozen=True)
class DeliveryPolicy:
    """Tunables for the delivery engine. Passed in at construction; tests tighten them freely."""

    group_size: int = 10
    inter_group_pause_seconds: float = 0.25
    max_attempts: int = 5
    backoff_base_seconds: float = 30.0
    backoff_max_seconds: float = 300.0

    def __post_init__(self) -> None:
        if self.group_size < 1:
            raise ValueError("group_size must be >= 1")
        if self.inter_group_pause_seconds < 0:
            raise ValueError("inter_group_pause_seconds must be >= 0")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds must be >= 0")
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_max_seconds must be >= backoff_base_seconds")


@dataclass(frozen=True)
class MemberUpsert:
    """Idempotent create-or-update request for one audience member."""

    key: str
    body: dict[str, Any]


@dataclass(frozen=True)
class DeadLetterRecord:
    """Terminal artifact for a message that exhausted its retry budget."""

    original: dict[str, Any]
    error: str
    failed_at: datetime
    attempts: int

    def to_dict(self) -> dict[str, Any]:
        """Serialisable dict for sinks. `failed_at` stays a datetime; JSON sinks format it."""
        return {
            "original": dict(self.original),
            "error": self.error,
            "failed_at": self.failed_at,
            "attempts": int(self.attempts),
        }


@dataclass(frozen=True)
class DeliveryOutcome:
    """How a single delivery attempt was resolved."""

    action: DeliveryAction
    attempt_count: int
    status_code: int | None = None
    delay_seconds: float | None = None
    dead_letter: DeadLetterRecord | None = None
    error: str | None = None


@dataclass
class BatchSummary:
    """Per-batch tally reported by the group dispatcher."""

    groups: int = 0
    acked: int = 0
    retried: int = 0
    dead_lettered: int = 0
    failed: int = 0
    outcomes: list[DeliveryOutcome] = field(default_factory=list)

    def record(self, outcome: DeliveryOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.action is DeliveryAction.ACK:
            self.acked += 1
        elif outcome.action is DeliveryAction.RETRY:
            self.retried += 1
        else:
            self.dead_lettered += 1
