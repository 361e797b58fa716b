from __future__ import annotations

import httpx

from ticketdesk.core.errors import UpstreamUnavailableError


class MediaFetcher:
    def __init__(self, *, client: httpx.AsyncClient) -> None:
        self.client = client

    async def fetch(self, url: str) -> bytes:
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"Fetch failed for {url}: {exc}") from exc
        return response.content
