from __future__ import annotations

from fastapi import APIRouter, Request, Response

from relay_api.app.routers.utils import enqueue_response
from relay_api.app.schemas.subscribers import SubscriberPostRequest
from relay_api.app.services.enqueue_subscriber import enqueue_subscriber

subscribers_router = APIRouter(prefix="/subscribers", tags=["Subscribers"])


@subscribers_router.post(
    "",
    summary="Enqueue a subscriber upsert",
    description="Queues the subscriber for relay to the audience. Returns 202 with a request_id; delivery happens in the worker.",
    responses={
        202: {"description": "Subscriber accepted and queued."},
        422: {"description": "Invalid request body."},
        503: {"description": "Publisher or queue unavailable; try again later."},
    },
)
async def post_subscriber(request: Request, body: SubscriberPostRequest) -> Response:
    publisher = getattr(request.app.state, "publisher", None)
    if publisher is None:
        return Response(status_code=503, content="Publisher not available")
    outcome = await enqueue_subscriber(body.email, body.first_name, body.last_name, publisher)
    return enqueue_response(outcome)
