from __future__ import annotations

import asyncio

import pytest

from insight.errors import ValidationError
from insight.evidence import build_queries, gather_evidence
from insight.models import SearchBatch, SearchResult


def test_build_queries_uses_four_templates():
    queries = build_queries("Acme Chat", year=2026)
    assert queries == [
        "Acme Chat AI security vulnerabilities 2026",
        "Acme Chat AI data privacy concerns CVE",
        "Acme Chat vs competitors comparison features pricing",
        "Acme Chat AI bias fairness audit",
    ]


def test_build_queries_strips_name():
    assert build_queries("  Acme Chat ", year=2026)[0].startswith("Acme Chat AI")


def test_build_queries_rejects_blank_name():
    with pytest.raises(ValidationError):
        build_queries("  ")


class FakeGateway:
    def __init__(self, results_by_query=None, delay=0.0):
        self.results_by_query = results_by_query or {}
        self.delay = delay
        self.queries = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def search(self, query):
        self.queries.append(query)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(self.delay)
        self.in_flight -= 1
        return SearchBatch(query=query, results=list(self.results_by_query.get(query, [])))


@pytest.mark.asyncio
async def test_gather_evidence_keeps_query_order():
    first = "Acme Chat AI security vulnerabilities 2026"
    gateway = FakeGateway({first: [SearchResult(title="t", link="https://x.test", snippet="s")]})

    corpus = await gather_evidence(gateway, "Acme Chat", year=2026)

    assert [batch.query for batch in corpus] == build_queries("Acme Chat", year=2026)
    assert len(corpus[0].results) == 1
    assert all(batch.results == [] for batch in corpus[1:])


@pytest.mark.asyncio
async def test_gather_evidence_runs_queries_concurrently():
    gateway = FakeGateway(delay=0.01)
    await gather_evidence(gateway, "Acme Chat", year=2026)
    assert len(gateway.queries) == 4
    assert gateway.max_in_flight == 4


@pytest.mark.asyncio
async def test_gather_evidence_all_empty_is_still_a_corpus():
    corpus = await gather_evidence(FakeGateway(), "Acme Chat", year=2026)
    assert len(corpus) == 4
    assert sum(len(batch.results) for batch in corpus) == 0
