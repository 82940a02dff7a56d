"""Latest headlines for a base asset from the CryptoCompare public news API.

News is a supplement to the analysis: any failure is logged and yields an
empty list, never an exception.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

import config
from log_utils import setup_logger

logger = setup_logger(__name__)

_SUCCESS_TYPE = 100


@dataclass(frozen=True)
class NewsArticle:
    id: str
    title: str
    source: str
    published_on: Optional[datetime]
    url: str
    image_url: str = ""


def _parse_article(item: Dict[str, Any]) -> Optional[NewsArticle]:
    title = str(item.get("title") or "").strip()
    url = str(item.get("url") or "").strip()
    if not title or not url:
        return None
    published = item.get("published_on")
    try:
        published_on = datetime.fromtimestamp(int(published), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        published_on = None
    return NewsArticle(
        id=str(item.get("id") or url),
        title=title,
        source=str(item.get("source") or ""),
        published_on=published_on,
        url=url,
        image_url=str(item.get("imageurl") or ""),
    )


class NewsFeed:
    def __init__(
        self,
        *,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> None:
        self._api_url = api_url or config.get_news_api_url()
        self._timeout = timeout if timeout is not None else config.get_history_timeout()
        self._limit = limit

    async def _request(self, params: Dict[str, str]) -> Tuple[int, Any]:
        timeout = aiohttp.ClientTimeout(total=self._timeout)
        async with aiohttp.ClientSession(timeout=timeout) as sess:
            async with sess.get(self._api_url, params=params) as r:
                status = r.status
                try:
                    payload = await r.json(content_type=None)
                except ValueError:
                    payload = None
        return status, payload

    async def fetch(self, base_coin: str) -> List[NewsArticle]:
        """Return the latest articles tagged with ``base_coin`` (may be empty)."""

        coin = (base_coin or "").strip().upper()
        if not coin:
            return []
        try:
            status, payload = await self._request({"lang": "EN", "categories": coin})
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("News fetch for %s failed: %r", coin, exc)
            return []

        if status >= 400:
            logger.warning("News API request for %s failed with status %s", coin, status)
            return []
        if (
            not isinstance(payload, dict)
            or payload.get("Type") != _SUCCESS_TYPE
            or not isinstance(payload.get("Data"), list)
        ):
            logger.warning("Unexpected news API response for %s", coin)
            return []

        articles = [
            article
            for article in (
                _parse_article(item) for item in payload["Data"] if isinstance(item, dict)
            )
            if article is not None
        ]
        if self._limit is not None:
            articles = articles[: self._limit]
        logger.info("Fetched %d news articles for %s", len(articles), coin)
        return articles


__all__ = ["NewsArticle", "NewsFeed"]
