"""
Shared fixtures for insight tests.
"""
import json

import pytest

from insight.config import CompletionConfig, SearchConfig, Settings
from insight.storage import Store

SEARCH_URL = "https://search.test/search"
COMPLETION_URL = "https://llm.test/v1/chat/completions"


def _assessment(trust_score: int = 62) -> dict:
    return {
        "trustScore": trust_score,
        "executiveSummary": "Acme Chat has a moderate security posture with open privacy questions.",
        "vulnerabilities": {
            "dataPrivacy": {"score": 6, "details": "Conversation logs retained for 30 days."},
            "promptInjection": {"score": 5, "details": "Public jailbreak reports exist."},
            "modelBias": {"score": 7, "details": "No published fairness audit."},
            "infrastructureSecurity": {"score": 4, "details": "SOC 2 Type II report available."},
            "outputReliability": {"score": 5, "details": "Hallucination rate not disclosed."},
            "complianceRisk": {"score": 6, "details": "GDPR DPA offered on request."},
        },
        "knowledgeFeed": [
            {
                "title": "Acme Chat patches data leak",
                "source": "example.com",
                "url": "https://example.com/leak",
                "date": "2026-01-10",
                "snippet": "A session isolation flaw was fixed.",
                "credibility": "high",
            },
            {
                "title": "Acme Chat adds enterprise SSO",
                "source": "news.test",
                "url": "https://news.test/sso",
                "date": "Recent",
                "snippet": "SAML SSO is now available on business plans.",
                "credibility": "medium",
            },
            {
                "title": "Forum thread on Acme Chat jailbreaks",
                "source": "forum.test",
                "url": "https://forum.test/jailbreaks",
                "date": "2025-11-02",
                "snippet": "Users share prompts that bypass the content filter.",
                "credibility": "low",
            },
        ],
        "competitors": [
            {
                "name": "Globex Assist",
                "trustScore": 71,
                "pricing": "$20/user/month",
                "securityFeatures": "SSO, audit logs",
                "compliance": "SOC 2, ISO 27001",
            },
            {
                "name": "Initech Copilot",
                "trustScore": 55,
                "pricing": "Usage based",
                "securityFeatures": "Data residency options",
                "compliance": "SOC 2",
            },
            {
                "name": "Umbrella AI",
                "trustScore": 38,
                "pricing": "Free tier",
                "securityFeatures": "None documented",
                "compliance": "None published",
            },
        ],
    }


@pytest.fixture
def assessment_payload():
    return _assessment()


@pytest.fixture
def fenced_assessment(assessment_payload):
    return "```json\n" + json.dumps(assessment_payload) + "\n```"


@pytest.fixture
def search_config():
    return SearchConfig(api_key="search-key", url=SEARCH_URL, result_count=8)


@pytest.fixture
def completion_config():
    return CompletionConfig(api_key="llm-key", url=COMPLETION_URL, model="test/model", advisory_model="test/advisor")


@pytest.fixture
def settings(tmp_path, search_config, completion_config):
    return Settings(db_path=str(tmp_path / "insight.db"), search=search_config, completion=completion_config)


@pytest.fixture
def store(tmp_path):
    store = Store(str(tmp_path / "store.db"))
    store.init_db()
    return store
