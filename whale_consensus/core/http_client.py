from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from whale_consensus.config import Settings

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "WhaleConsensusMonitor/1.0",
}


def build_client(settings: Settings, headers: dict[str, str] | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.API_TIMEOUT_SEC,
        headers={**DEFAULT_HEADERS, **(headers or {})},
        follow_redirects=True,
    )


class JsonApiClient:
    """Base for the small REST clients: GET + JSON with 429 back-off."""

    name = "api"

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.settings = settings
        self.client = client or build_client(settings, headers)
        self.logger = logging.getLogger(f"whale_consensus.{self.name}")

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        log_level: str = "debug",
    ) -> dict[str, Any] | list | None:
        max_retries = max(1, self.settings.API_MAX_RETRIES)
        backoff = max(0.1, self.settings.API_RETRY_BACKOFF_SEC)
        for attempt in range(max_retries):
            try:
                response = await self.client.get(url, params=params)
                if response.status_code == 429:
                    retry_after = response.headers.get("Retry-After")
                    delay = float(retry_after) if retry_after else backoff * (attempt + 1)
                    self.logger.warning("%s rate limited, retrying in %.1fs", self.name, delay)
                    await asyncio.sleep(delay)
                    continue
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return response.json()
            except (httpx.HTTPError, ValueError) as exc:
                if attempt < max_retries - 1:
                    await asyncio.sleep(backoff)
                    continue
                getattr(self.logger, log_level)("%s request failed for %s: %s", self.name, url, exc)
                return None
        return None
