"""API-level constants shared across modules."""
from __future__ import annotations


class DeadLetterStatus:
    PENDING_REVIEW = "PENDING_REVIEW"
    REPLAYED = "REPLAYED"


class EnqueueStatus:
    QUEUED = "QUEUED"


# Read by the worker; a freshly published record starts with no prior attempts.
ATTEMPT_COUNT_HEADER = "x-attempt-count"
