"""Concrete UpstreamClient for a Mailchimp audience, using httpx.

The data-centre prefix of the API host is the suffix of the API key
("abc123-us21" -> "us21.api.mailchimp.com"). A key without it is a
configuration error, not a delivery failure.
"""
from __future__ import annotations

from typing import Any

import httpx

from relay_worker.app.ports.upstream_client import (
    RequestTimeout,
    UpstreamConfigurationError,
    UpstreamResponse,
    UpstreamTimeoutError,
    UpstreamTransportError,
)


def data_center_from_api_key(api_key: str) -> str:
    _, sep, dc = api_key.strip().rpartition("-")
    if not sep or not dc:
        raise UpstreamConfigurationError(
            "MAILCHIMP_API_KEY must include data centre suffix (e.g. xxxx-us21)"
        )
    return dc


class MailchimpMemberClient:
    """UpstreamClient implementation: PUT /3.0/lists/{list_id}/members/{key}."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        list_id: str,
        timeout: RequestTimeout,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._list_id = list_id.strip()
        self._timeout = httpx.Timeout(
            connect=timeout.connect_seconds,
            read=timeout.read_seconds,
            write=timeout.read_seconds,
            pool=timeout.connect_seconds,
        )
        self._default_headers = dict(default_headers) if default_headers else {}

    def verify_configuration(self) -> None:
        self._base_url()

    def _base_url(self) -> str:
        dc = data_center_from_api_key(self._api_key)
        if not self._list_id:
            raise UpstreamConfigurationError("MAILCHIMP_LIST_ID must not be empty")
        return f"https://{dc}.api.mailchimp.com/3.0/lists/{self._list_id}"

    def member_url(self, key: str) -> str:
        return f"{self._base_url()}/members/{key}"

    async def upsert(self, key: str, body: dict[str, Any]) -> UpstreamResponse:
        url = self.member_url(key)
        try:
            response = await self._client.put(
                url,
                json=body,
                auth=httpx.BasicAuth("any", self._api_key),
                timeout=self._timeout,
                headers=self._default_headers,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeoutError(f"timeout while upserting member {key}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamTransportError(f"member upsert failed for {key}: {exc}") from exc
        return UpstreamResponse(status_code=response.status_code, text=response.text)

    async def close(self) -> None:
        await self._client.aclose()
