"""
Accepts plain Python types and the MessagePublisher abstraction; returns an outcome.
Routers translate outcomes to HTTP status codes.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from relay_api.app.ports.message_publisher import MessagePublisher


@dataclass(frozen=True)
class EnqueueOutcome:
    """success=True => request_id set. success=False => error set."""

    success: bool
    request_id: str | None = None
    error: str | None = None

    @property
    def is_queue_rejected(self) -> bool:
        return bool(self.error) and "queue_rejected" in self.error


async def enqueue_payload(payload: dict[str, Any], publisher: MessagePublisher) -> EnqueueOutcome:
    """Publish a subscriber payload to the inbound queue with a fresh request_id."""
    if not publisher.ready:
        return EnqueueOutcome(success=False, error="publisher_not_ready")

    request_id = str(uuid.uuid4())
    message: dict[str, Any] = {
        **payload,
        "request_id": request_id,
        "requested_at": datetime.now(tz=timezone.utc).isoformat(),
    }
    try:
        await publisher.publish(message)
    except Exception as e:
        return EnqueueOutcome(success=False, request_id=request_id, error=str(e))
    return EnqueueOutcome(success=True, request_id=request_id)


async def enqueue_subscriber(
    email: str,
    first_name: str,
    last_name: str,
    publisher: MessagePublisher,
) -> EnqueueOutcome:
    return await enqueue_payload(
        {"email": email, "firstName": first_name, "lastName": last_name},
        publisher,
    )
