from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, Request, Response
from loguru import logger

from relay_api.app.core import SERVICE_NAME
from relay_api.app.routers.utils import dead_letter_list_max, enqueue_response
from relay_api.app.schemas.dead_letters import DeadLetterListResponse, DeadLetterResponse
from relay_api.app.services.enqueue_subscriber import EnqueueOutcome
from relay_api.app.services.replay_dead_letter import ReplayResult, replay_dead_letter

dead_letters_router = APIRouter(prefix="/dead-letters", tags=["Dead letters"])


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@dead_letters_router.get(
    "",
    summary="List dead-letter records",
    description="Most recent first. Optionally filter by status (PENDING_REVIEW or REPLAYED).",
    responses={
        200: {"description": "Records returned."},
        503: {"description": "Database unavailable."},
    },
)
async def list_dead_letters(
    request: Request,
    status: str | None = None,
    limit: int = Query(50, ge=1),
) -> Response:
    repo = getattr(request.app.state, "dead_letter_repository", None)
    if repo is None:
        return Response(status_code=503, content="Database not available")
    try:
        records = await repo.list_records(status=status, limit=min(limit, dead_letter_list_max(request)))
    except Exception as e:
        _log("list_dead_letters_error", error=str(e))
        return Response(status_code=503)
    items = [DeadLetterResponse.from_record(r) for r in records]
    return Response(
        status_code=200,
        media_type="application/json",
        content=DeadLetterListResponse(items=items, count=len(items)).model_dump_json(),
    )


@dead_letters_router.get(
    "/{record_id}",
    summary="Get one dead-letter record",
    responses={404: {"description": "No such record."}, 503: {"description": "Database unavailable."}},
)
async def get_dead_letter(request: Request, record_id: str) -> Response:
    repo = getattr(request.app.state, "dead_letter_repository", None)
    if repo is None:
        return Response(status_code=503, content="Database not available")
    try:
        record = await repo.get_by_id(record_id)
    except Exception as e:
        _log("get_dead_letter_error", record_id=record_id, error=str(e))
        return Response(status_code=503)
    if record is None:
        return Response(status_code=404, content="Dead letter not found")
    return Response(
        status_code=200,
        media_type="application/json",
        content=DeadLetterResponse.from_record(record).model_dump_json(),
    )


@dead_letters_router.post(
    "/{record_id}/replay",
    summary="Replay a dead-letter record",
    description="Republishes the original payload to the inbound queue with a fresh attempt budget and marks the record REPLAYED.",
    responses={
        202: {"description": "Original payload queued again."},
        404: {"description": "No such record."},
        409: {"description": "Record was already replayed."},
        503: {"description": "Database or publisher unavailable."},
    },
)
async def post_replay(request: Request, record_id: str) -> Response:
    repo = getattr(request.app.state, "dead_letter_repository", None)
    publisher = getattr(request.app.state, "publisher", None)
    if repo is None or publisher is None:
        return Response(status_code=503, content="Not available")

    try:
        outcome = await replay_dead_letter(record_id, repo, publisher)
    except Exception as e:
        _log("dead_letter_replay_error", record_id=record_id, error=str(e))
        return Response(status_code=503)
    _log("dead_letter_replay", record_id=record_id, result=outcome.result.value)
    if outcome.result is ReplayResult.NOT_FOUND:
        return Response(status_code=404, content="Dead letter not found")
    if outcome.result is ReplayResult.ALREADY_REPLAYED:
        return Response(status_code=409, content="Dead letter already replayed")
    return enqueue_response(
        EnqueueOutcome(
            success=outcome.result is ReplayResult.REPLAYED,
            request_id=outcome.request_id,
            error=outcome.error,
        )
    )
