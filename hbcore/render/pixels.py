"""Fire-and-forget tracking pixels over HTTP."""

from __future__ import annotations

import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)


class PixelClient:
    def __init__(self, *, timeout_ms: int = 1000, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._timeout = timeout_ms / 1000
        self._pending: set[asyncio.Task] = set()

    async def close(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self._client.aclose()

    def trigger(self, url: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._fire(url))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _fire(self, url: str) -> None:
        try:
            response = await self._client.get(url, timeout=self._timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("pixel %s failed: %s", url, exc)
