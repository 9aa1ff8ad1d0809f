"""
Pytest configuration and shared fixtures for portal tests.
"""
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from insight.config import CompletionConfig, PortalConfig, SearchConfig, Settings
from portal.app import create_app

ORG_HEADERS = {"X-User-Id": "user-1", "X-Org-Id": "org-1"}

ASSESSMENT = {
    "trustScore": 62,
    "executiveSummary": "Acme Chat has a moderate security posture.",
    "vulnerabilities": {
        name: {"score": 5, "details": f"{name} details"}
        for name in (
            "dataPrivacy",
            "promptInjection",
            "modelBias",
            "infrastructureSecurity",
            "outputReliability",
            "complianceRisk",
        )
    },
    "knowledgeFeed": [],
    "competitors": [],
}


class FakeUpstream:
    """Scripted search and completion endpoints behind one mock transport."""

    def __init__(self):
        self.organic = [{"title": "Acme Chat leak", "link": "https://news.test/leak", "snippet": "flaw"}]
        self.completion_status = 200
        self.completion_content = "```json\n" + json.dumps(ASSESSMENT) + "\n```"
        self.stream_chunks = ["Hello", " there"]
        self.completion_requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if request.url.host == "search.test":
            return httpx.Response(200, json={"organic": self.organic})
        self.completion_requests.append(body)
        if self.completion_status != 200:
            return httpx.Response(self.completion_status, json={"error": {"message": "upstream said no"}})
        if body.get("stream"):
            frames = "".join(
                f"data: {json.dumps({'choices': [{'delta': {'content': chunk}}]})}\n\n" for chunk in self.stream_chunks
            )
            return httpx.Response(
                200, content=(frames + "data: [DONE]\n\n").encode("utf-8"), headers={"Content-Type": "text/event-stream"}
            )
        return httpx.Response(200, json={"choices": [{"message": {"content": self.completion_content}}]})


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def portal_settings(tmp_path):
    return Settings(
        db_path=str(tmp_path / "portal.db"),
        search=SearchConfig(api_key="search-key", url="https://search.test/search"),
        completion=CompletionConfig(api_key="llm-key", url="https://llm.test/v1/chat/completions"),
        portal=PortalConfig(rate_limit_requests=1000, rate_limit_window_seconds=60),
    )


@pytest.fixture
def app(portal_settings, upstream):
    return create_app(portal_settings, transport=httpx.MockTransport(upstream.handler))


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def store(app):
    return app.state.services.store


@pytest.fixture
def org_headers():
    return dict(ORG_HEADERS)
