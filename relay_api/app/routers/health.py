import asyncio
from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from loguru import logger

from relay_api.app.core import SERVICE_NAME
from relay_api.app.routers.utils import readiness_ping_timeout_seconds

health_router = APIRouter(tags=["Health"])

NOT_READY = "not_ready"
READY = "ready"


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def _database_status(request: Request, database: Any) -> str:
    try:
        ping_ok = await asyncio.wait_for(database.ping(), timeout=readiness_ping_timeout_seconds(request))
    except asyncio.TimeoutError:
        _log("db_ping_timeout")
        return NOT_READY
    if not ping_ok:
        _log("db_not_ready")
        return NOT_READY
    return READY


@health_router.get(
    "/health/live",
    summary="Liveness probe",
    description="Returns 200 while the API process is up.",
    responses={200: {"description": "Service is alive."}},
)
async def live() -> dict:
    return {"status": "ok"}


@health_router.get(
    "/health/ready",
    summary="Readiness probe",
    description=(
        "Reports the inbound-queue publisher (RabbitMQ) and the dead-letter store (MongoDB). "
        "200 only when both are ready; the body lists each component either way."
    ),
    responses={
        200: {"description": "Publisher and dead-letter store are ready."},
        503: {"description": "A component is missing or not ready."},
    },
)
async def ready(request: Request) -> Response:
    publisher = getattr(request.app.state, "publisher", None)
    database = getattr(request.app.state, "database", None)
    if publisher is None or database is None:
        _log("components_not_initialized")
        return Response(status_code=503, content="Not ready")

    components = {"publisher": READY if publisher.ready else NOT_READY}
    if components["publisher"] == NOT_READY:
        _log("publisher_not_ready")
    components["dead_letter_store"] = await _database_status(request, database)

    all_ready = all(state == READY for state in components.values())
    return JSONResponse(
        status_code=200 if all_ready else 503,
        content={"status": READY if all_ready else NOT_READY, "components": components},
    )
