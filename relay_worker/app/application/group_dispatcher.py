"""Group dispatcher: drains a batch in fixed-size groups with a pause between groups.

Items inside a group are delivered concurrently and the group is a settle-all
barrier: one item's failure never cancels its siblings. Groups run strictly in
order, so at most group_size upstream calls are in flight at any time.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from loguru import logger

from relay_worker.app.application.delivery_controller import DeliveryController
from relay_worker.app.core import SERVICE_NAME
from relay_worker.app.domain.models import BatchSummary, DeliveryOutcome
from relay_worker.app.ports.queued_item import QueuedItem
from relay_worker.app.ports.upstream_client import UpstreamConfigurationError

T = TypeVar("T")


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def partition(items: Sequence[T], group_size: int) -> list[list[T]]:
    """Consecutive slices of group_size; the last one may be shorter."""
    if group_size < 1:
        raise ValueError("group_size must be >= 1")
    return [list(items[i:i + group_size]) for i in range(0, len(items), group_size)]


class GroupDispatcher:
    def __init__(
        self,
        controller: DeliveryController,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._controller = controller
        self._policy = controller.policy
        self._sleep = sleep

    async def dispatch(self, batch: Sequence[QueuedItem]) -> BatchSummary:
        summary = BatchSummary()
        groups = partition(batch, self._policy.group_size)
        if not groups:
            return summary

        # Abort before any upstream call if the endpoint cannot be built.
        self._controller.verify_configuration()

        _log("batch_started", batch_size=len(batch), groups=len(groups))
        for index, group in enumerate(groups):
            results = await asyncio.gather(
                *(self._controller.deliver(item) for item in group),
                return_exceptions=True,
            )
            summary.groups += 1
            config_error: UpstreamConfigurationError | None = None
            for result in results:
                if isinstance(result, DeliveryOutcome):
                    summary.record(result)
                    continue
                if isinstance(result, UpstreamConfigurationError):
                    config_error = config_error or result
                elif isinstance(result, asyncio.CancelledError):
                    raise result
                else:
                    logger.opt(exception=result).error("item resolution failed: {}", result)
                summary.failed += 1
            if config_error is not None:
                raise config_error

            if index + 1 < len(groups):
                await self._sleep(self._policy.inter_group_pause_seconds)

        _log(
            "batch_settled",
            batch_size=len(batch),
            groups=summary.groups,
            acked=summary.acked,
            retried=summary.retried,
            dead_lettered=summary.dead_lettered,
            failed=summary.failed,
        )
        return summary
