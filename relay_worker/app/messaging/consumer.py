"""Batch handler: hands each consumed batch to the group dispatcher and records fatal errors."""
from __future__ import annotations

import asyncio
from typing import Sequence

from loguru import logger

from relay_worker.app.application.group_dispatcher import GroupDispatcher
from relay_worker.app.ports.message_consumer import BatchHandler
from relay_worker.app.ports.queued_item import QueuedItem


def create_batch_handler(
    dispatcher: GroupDispatcher,
    batch_handler_errors: asyncio.Queue[Exception],
) -> BatchHandler:
    """Create an async batch handler. Anything escaping the dispatcher is batch-fatal and reported."""

    async def on_batch(items: Sequence[QueuedItem]) -> None:
        try:
            await dispatcher.dispatch(items)
        except Exception as e:
            logger.exception("batch handling failed: {}", e)
            await batch_handler_errors.put(e)

    return on_batch
