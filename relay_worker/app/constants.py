"""Worker-level constants shared across modules."""
from __future__ import annotations

from enum import Enum


class DeliveryAction(str, Enum):
    ACK = "ACK"
    RETRY = "RETRY"
    DEAD_LETTER = "DEAD_LETTER"


class UPSTREAM_STATUS:
    TOO_MANY_REQUESTS = 429
    SERVER_ERROR_MIN = 500


ATTEMPT_COUNT_HEADER = "x-attempt-count"


class DEAD_LETTER_STATUS:
    PENDING_REVIEW = "PENDING_REVIEW"
