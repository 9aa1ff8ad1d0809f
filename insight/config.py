from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_SEARCH_URL = "https://google.serper.dev/search"
DEFAULT_COMPLETION_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_MODEL = "google/gemini-2.5-flash"


@dataclass(frozen=True)
class SearchConfig:
    api_key: str | None = None
    url: str = DEFAULT_SEARCH_URL
    result_count: int = 8
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class CompletionConfig:
    api_key: str | None = None
    url: str = DEFAULT_COMPLETION_URL
    model: str = DEFAULT_MODEL
    advisory_model: str = DEFAULT_MODEL
    temperature: float = 0.3
    timeout_seconds: float = 120.0


@dataclass(frozen=True)
class PortalConfig:
    rate_limit_requests: int = 180
    rate_limit_window_seconds: int = 60


@dataclass(frozen=True)
class Settings:
    db_path: str
    search: SearchConfig = field(default_factory=SearchConfig)
    completion: CompletionConfig = field(default_factory=CompletionConfig)
    portal: PortalConfig = field(default_factory=PortalConfig)


def load_yaml(path: str | None) -> dict[str, Any]:
    if not path or not Path(path).exists():
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _env_or_none(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def resolve_settings(path: str | None = None) -> Settings:
    raw = load_yaml(path)
    raw.setdefault("paths", {})
    raw.setdefault("search", {})
    raw.setdefault("completion", {})
    raw.setdefault("advisory", {})
    raw.setdefault("portal", {})
    raw["paths"].setdefault("db_path", os.getenv("AEGIS_DB_PATH", "/data/aegis_insight.db"))
    raw["search"].setdefault("api_key", _env_or_none("SERPER_API_KEY"))
    raw["search"].setdefault("url", os.getenv("SEARCH_API_URL", DEFAULT_SEARCH_URL))
    raw["search"].setdefault("result_count", int(os.getenv("SEARCH_RESULT_COUNT", "8")))
    raw["search"].setdefault("timeout_seconds", float(os.getenv("SEARCH_TIMEOUT_SECONDS", "30")))
    raw["completion"].setdefault("api_key", _env_or_none("COMPLETION_API_KEY"))
    raw["completion"].setdefault("url", os.getenv("COMPLETION_API_URL", DEFAULT_COMPLETION_URL))
    raw["completion"].setdefault("model", os.getenv("COMPLETION_MODEL", DEFAULT_MODEL))
    raw["completion"].setdefault("temperature", float(os.getenv("COMPLETION_TEMPERATURE", "0.3")))
    raw["completion"].setdefault("timeout_seconds", float(os.getenv("COMPLETION_TIMEOUT_SECONDS", "120")))
    raw["advisory"].setdefault("model", os.getenv("ADVISORY_MODEL", raw["completion"]["model"]))
    raw["portal"].setdefault("rate_limit_requests", int(os.getenv("PORTAL_RATE_LIMIT_REQUESTS", "180")))
    raw["portal"].setdefault("rate_limit_window_seconds", int(os.getenv("PORTAL_RATE_LIMIT_WINDOW_SECONDS", "60")))

    search = raw["search"]
    completion = raw["completion"]
    portal = raw["portal"]
    return Settings(
        db_path=str(raw["paths"]["db_path"]),
        search=SearchConfig(
            api_key=search.get("api_key"),
            url=str(search["url"]),
            result_count=int(search["result_count"]),
            timeout_seconds=float(search["timeout_seconds"]),
        ),
        completion=CompletionConfig(
            api_key=completion.get("api_key"),
            url=str(completion["url"]),
            model=str(completion["model"]),
            advisory_model=str(raw["advisory"]["model"]),
            temperature=float(completion["temperature"]),
            timeout_seconds=float(completion["timeout_seconds"]),
        ),
        portal=PortalConfig(
            rate_limit_requests=int(portal["rate_limit_requests"]),
            rate_limit_window_seconds=int(portal["rate_limit_window_seconds"]),
        ),
    )
