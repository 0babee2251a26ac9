"""Upstream client port: contract for the idempotent member upsert.

The delivery controller depends on this port; infrastructure (httpx) implements
it. Transport failures surface as UpstreamTransportError; HTTP statuses are
returned, not raised, so the controller owns classification.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


class UpstreamError(Exception):
    """Base for upstream client failures."""


class UpstreamTransportError(UpstreamError):
    """Network-level failure: connection refused, DNS, protocol error."""


class UpstreamTimeoutError(UpstreamTransportError):
    """Raised when the request times out."""


class UpstreamConfigurationError(UpstreamError):
    """The upstream endpoint cannot be built from configuration. Not item-scoped."""


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class RequestTimeout:
    """Connect and read timeouts in seconds."""

    connect_seconds: float
    read_seconds: float


@runtime_checkable
class UpstreamClient(Protocol):
    def verify_configuration(self) -> None:
        """Raise UpstreamConfigurationError if no request could be built."""
        ...

    async def upsert(self, key: str, body: dict[str, Any]) -> UpstreamResponse:
        """Single create-or-update call; no internal retries."""
        ...

    async def close(self) -> None: ...
