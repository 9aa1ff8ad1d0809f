from __future__ import annotations

import logging
from typing import Any

import httpx

from insight.config import SearchConfig
from insight.errors import ValidationError
from insight.models import SearchBatch, SearchResult

LOGGER = logging.getLogger(__name__)


def normalize_organic(raw: dict[str, Any]) -> list[SearchResult]:
    results: list[SearchResult] = []
    for item in raw.get("organic") or []:
        if not isinstance(item, dict):
            continue
        link = item.get("link")
        if not link:
            continue
        results.append(
            SearchResult(
                title=str(item.get("title") or link),
                link=str(link),
                snippet=str(item.get("snippet") or ""),
            )
        )
    return results


class SearchGateway:
    """Web search client. Never raises on upstream failure, degrades to an empty batch."""

    def __init__(self, config: SearchConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport

    async def search(self, query: str) -> SearchBatch:
        if not query or not query.strip():
            raise ValidationError("search query must not be empty")
        if not self.config.api_key:
            LOGGER.warning("Search API key not configured, skipping query %r", query)
            return SearchBatch(query=query, results=[])

        headers = {"X-API-KEY": self.config.api_key, "Content-Type": "application/json"}
        payload = {"q": query, "num": self.config.result_count}
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport) as client:
                response = await client.post(self.config.url, json=payload, headers=headers)
            if not response.is_success:
                LOGGER.warning("Search error for %r: HTTP %s", query, response.status_code)
                return SearchBatch(query=query, results=[])
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.warning("Search request failed for %r: %s", query, exc)
            return SearchBatch(query=query, results=[])

        if not isinstance(data, dict):
            LOGGER.warning("Search returned unexpected payload for %r", query)
            return SearchBatch(query=query, results=[])
        results = normalize_organic(data)
        LOGGER.info("Search %r returned %s results", query, len(results))
        return SearchBatch(query=query, results=results)
