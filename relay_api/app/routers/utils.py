from __future__ import annotations

from typing import Any

from fastapi import Request, Response
from loguru import logger

from relay_api.app.core import SERVICE_NAME
from relay_api.app.schemas.subscribers import EnqueueResponse
from relay_api.app.services.enqueue_subscriber import EnqueueOutcome

READINESS_PING_TIMEOUT_DEFAULT = 30.0
DEAD_LETTER_LIST_MAX_DEFAULT = 200


def _setting(request: Request, name: str, default: Any) -> Any:
    settings = getattr(request.app.state, "settings", None)
    if settings is not None:
        return getattr(settings, name, default)
    return default


def readiness_ping_timeout_seconds(request: Request) -> float:
    """Read readiness DB ping timeout from app.state.settings or default."""
    return _setting(request, "readiness_ping_timeout_seconds", READINESS_PING_TIMEOUT_DEFAULT)


def dead_letter_list_max(request: Request) -> int:
    return _setting(request, "dead_letter_list_max", DEAD_LETTER_LIST_MAX_DEFAULT)


def _warn(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).warning("")


def enqueue_response(outcome: EnqueueOutcome) -> Response:
    """202 with request_id on success; 503 otherwise."""
    if outcome.success:
        return Response(
            status_code=202,
            media_type="application/json",
            content=EnqueueResponse(request_id=outcome.request_id or "").model_dump_json(),
        )
    _warn("publish_failed", reason=outcome.error, request_id=outcome.request_id or "")
    content = "Queue rejected" if outcome.is_queue_rejected else (outcome.error or "Publish failed")
    return Response(status_code=503, content=content)


__all__ = [
    "readiness_ping_timeout_seconds",
    "dead_letter_list_max",
    "enqueue_response",
]
