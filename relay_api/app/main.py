from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from relay_api.app.composition import create_app_dependencies
from relay_api.app.core import SERVICE_NAME
from relay_api.app.routers.dead_letters import dead_letters_router
from relay_api.app.routers.health import health_router
from relay_api.app.routers.subscribers import subscribers_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.bind(service_name=SERVICE_NAME, event="api_starting").info("")
    deps = create_app_dependencies()
    try:
        await deps.connect()
    except Exception as e:
        logger.exception("dependency connect failed: {}", e)
        raise
    app.state.settings = deps.settings
    app.state.publisher = deps.publisher
    app.state.database = deps.database
    app.state.dead_letter_repository = deps.dead_letter_repository
    try:
        yield
    finally:
        logger.bind(service_name=SERVICE_NAME, event="api_stopping").info("")
        await deps.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Audience Relay API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(health_router)
    app.include_router(subscribers_router)
    app.include_router(dead_letters_router)
    return app


app = create_app()
