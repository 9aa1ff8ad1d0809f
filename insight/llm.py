from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx

from insight.config import CompletionConfig
from insight.errors import (
    ConfigurationError,
    QuotaExceededError,
    RateLimitError,
    SynthesisError,
    TransportError,
)

LOGGER = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again shortly."
QUOTA_MESSAGE = "AI usage limit reached. Please add credits."
_QUOTA_CODES = {"insufficient_quota", "billing_hard_limit_reached"}


def _is_quota_exhausted(body: str) -> bool:
    try:
        payload = json.loads(body or "{}")
    except json.JSONDecodeError:
        return False
    error = payload.get("error", {}) if isinstance(payload, dict) else {}
    if not isinstance(error, dict):
        return False
    code = str(error.get("code", "") or "").strip().lower()
    err_type = str(error.get("type", "") or "").strip().lower()
    message = str(error.get("message", "") or "").strip().lower()
    return code in _QUOTA_CODES or err_type in _QUOTA_CODES or "exceeded your current quota" in message


def raise_for_completion_status(status_code: int, body: str) -> None:
    if 200 <= status_code < 300:
        return
    if status_code == 402 or (status_code == 429 and _is_quota_exhausted(body)):
        raise QuotaExceededError(QUOTA_MESSAGE, status_code=402, body=body)
    if status_code == 429:
        raise RateLimitError(RATE_LIMIT_MESSAGE, status_code=429, body=body)
    raise TransportError(f"Completion API error: {status_code}", status_code=status_code, body=body)


def extract_message_content(payload: Any) -> str:
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise SynthesisError("completion response carried no message content") from exc
    if not isinstance(content, str):
        raise SynthesisError("completion response carried no message content")
    return content


def extract_delta_content(chunk: Any) -> str:
    try:
        content = chunk["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""
    return content if isinstance(content, str) else ""


class CompletionClient:
    """Chat-completion client for an OpenAI-compatible endpoint."""

    def __init__(self, config: CompletionConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        if not self.config.api_key:
            raise ConfigurationError("completion API key not configured")
        return {"Authorization": f"Bearer {self.config.api_key}", "Content-Type": "application/json"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport)

    async def complete(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        model: str | None = None,
    ) -> str:
        """Send one non-streaming completion and return the assistant text."""
        headers = self._headers()
        payload = {
            "model": model or self.config.model,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
            "temperature": self.config.temperature if temperature is None else temperature,
            "stream": False,
        }
        try:
            async with self._client() as client:
                response = await client.post(self.config.url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"Completion API unreachable: {exc}") from exc

        if not response.is_success:
            LOGGER.error("Completion error: %s %s", response.status_code, response.text[:500])
            raise_for_completion_status(response.status_code, response.text)
        try:
            data = response.json()
        except ValueError as exc:
            raise SynthesisError("completion response is not JSON", status_code=response.status_code) from exc
        return extract_message_content(data)

    async def open_stream(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        model: str | None = None,
    ) -> AsyncIterator[str]:
        """Open a streaming completion and return an iterator of content deltas.

        The upstream status is checked before this returns, so rate-limit and
        quota failures surface here rather than mid-stream.
        """
        headers = self._headers()
        payload = {
            "model": model or self.config.advisory_model,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
            "stream": True,
        }
        client = self._client()
        try:
            request = client.build_request("POST", self.config.url, json=payload, headers=headers)
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            raise TransportError(f"Completion API unreachable: {exc}") from exc

        if not response.is_success:
            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            await client.aclose()
            LOGGER.error("Completion stream error: %s %s", response.status_code, body[:500])
            raise_for_completion_status(response.status_code, body)
        return self._iter_deltas(client, response)

    async def _iter_deltas(self, client: httpx.AsyncClient, response: httpx.Response) -> AsyncIterator[str]:
        try:
            async for line in response.aiter_lines():
                line = line.strip()
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    break
                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError:
                    LOGGER.warning("Skipping undecodable stream chunk: %s", data[:200])
                    continue
                content = extract_delta_content(chunk)
                if content:
                    yield content
        except httpx.HTTPError as exc:
            raise TransportError(f"Completion stream interrupted: {exc}") from exc
        finally:
            await response.aclose()
            await client.aclose()
