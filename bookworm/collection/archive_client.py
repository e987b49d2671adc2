"""
News Archive Client
-------------------
Fetches news posts and the section listing from the game's public archive
using httpx.

    GET {base_url}/news.json                     -> [NewsSection, ...]
    GET {base_url}/news/{section}/{id}.json      -> PostResult

A transient transport failure is retried once; HTTP errors (including 404
for a missing post) propagate.
"""
from __future__ import annotations

from typing import Optional

import httpx
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from bookworm.config import ArchiveSettings
from bookworm.schemas import NewsPost, NewsSection, PostResult

_HEADERS = {"User-Agent": "bookworm/1.0 (news archive indexer)"}

_retry_once = retry(
    stop=stop_after_attempt(2),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)


class ArchiveClient:
    """Async client for the news archive."""

    def __init__(
        self,
        settings: Optional[ArchiveSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        settings = settings or ArchiveSettings()
        self.base_url = settings.base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=settings.timeout,
            follow_redirects=True,
            headers=_HEADERS,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @_retry_once
    async def _get_json(self, url: str):
        resp = await self._client.get(url)
        resp.raise_for_status()
        return resp.json()

    async def fetch_post(self, section: str, post_id: int) -> NewsPost:
        url = f"{self.base_url}/news/{section}/{post_id}.json"
        logger.debug(f"[Archive] Fetching {url}")
        data = await self._get_json(url)
        return PostResult.model_validate(data).post

    async def list_sections(self) -> list[NewsSection]:
        data = await self._get_json(f"{self.base_url}/news.json")
        sections = [NewsSection.model_validate(entry) for entry in data]
        logger.info(f"[Archive] {len(sections)} section(s) listed")
        return sections
