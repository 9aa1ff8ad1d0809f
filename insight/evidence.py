from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from insight.errors import ValidationError
from insight.models import SearchBatch
from insight.search import SearchGateway

LOGGER = logging.getLogger(__name__)

QUERY_TEMPLATES = (
    "{name} AI security vulnerabilities {year}",
    "{name} AI data privacy concerns CVE",
    "{name} vs competitors comparison features pricing",
    "{name} AI bias fairness audit",
)


def build_queries(subject_name: str, year: int | None = None) -> list[str]:
    name = (subject_name or "").strip()
    if not name:
        raise ValidationError("subject name is required")
    year = year or datetime.now(timezone.utc).year
    return [template.format(name=name, year=year) for template in QUERY_TEMPLATES]


async def gather_evidence(gateway: SearchGateway, subject_name: str, year: int | None = None) -> list[SearchBatch]:
    queries = build_queries(subject_name, year)
    corpus = await asyncio.gather(*(gateway.search(query) for query in queries))
    total = sum(len(batch.results) for batch in corpus)
    LOGGER.info("Gathered %s evidence items across %s queries for %s", total, len(corpus), subject_name)
    return list(corpus)
