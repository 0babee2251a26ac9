"""Upstream client factory: builds the UpstreamClient from settings (no provider logic in composition)."""
from __future__ import annotations

import httpx

from relay_worker.app.config.settings import Settings
from relay_worker.app.infrastructure.http.mailchimp_client import MailchimpMemberClient
from relay_worker.app.ports.upstream_client import RequestTimeout, UpstreamClient


def create_upstream_client(settings: Settings) -> UpstreamClient:
    """Timeouts are applied per request by the adapter; the client never retries on its own."""
    default_headers: dict[str, str] | None = None
    if settings.upstream_user_agent:
        default_headers = {"User-Agent": settings.upstream_user_agent}
    return MailchimpMemberClient(
        httpx.AsyncClient(),
        api_key=settings.mailchimp_api_key,
        list_id=settings.mailchimp_list_id,
        timeout=RequestTimeout(
            connect_seconds=settings.upstream_connect_timeout_seconds,
            read_seconds=settings.upstream_read_timeout_seconds,
        ),
        default_headers=default_headers,
    )
