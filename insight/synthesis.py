from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from insight.assessment import Assessment
from insight.errors import SynthesisError
from insight.llm import CompletionClient
from insight.models import SearchBatch
from insight.prompts import SYNTHESIS_SYSTEM_PROMPT

LOGGER = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def format_evidence_block(corpus: list[SearchBatch]) -> str:
    lines = []
    for batch in corpus:
        for result in batch.results:
            lines.append(f"- [{result.title}]({result.link}): {result.snippet}")
    return "\n".join(lines)


def strip_code_fences(text: str) -> str:
    return _FENCE_OPEN.sub("", text or "").strip()


def parse_json_payload(text: str) -> Any:
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        LOGGER.error("Failed to parse model response: %s", cleaned[:500])
        raise SynthesisError("AI returned invalid JSON", raw=cleaned[:500]) from exc


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors()[:5]:
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


def parse_assessment(text: str) -> Assessment:
    payload = parse_json_payload(text)
    if not isinstance(payload, dict):
        raise SynthesisError("AI returned JSON that is not an object", raw=str(payload)[:500])
    try:
        return Assessment.model_validate(payload)
    except PydanticValidationError as exc:
        LOGGER.error("Model response failed assessment validation: %s", _describe(exc))
        raise SynthesisError(f"AI returned an invalid assessment: {_describe(exc)}", raw=json.dumps(payload)[:500]) from exc


class RiskSynthesizer:
    def __init__(self, completion: CompletionClient) -> None:
        self.completion = completion

    def build_user_prompt(self, subject_name: str, corpus: list[SearchBatch]) -> str:
        return f'Analyze the AI service "{subject_name}" based on these search results:\n\n{format_evidence_block(corpus)}'

    async def synthesize(self, subject_name: str, corpus: list[SearchBatch]) -> Assessment:
        user_prompt = self.build_user_prompt(subject_name, corpus)
        content = await self.completion.complete(
            SYNTHESIS_SYSTEM_PROMPT,
            [{"role": "user", "content": user_prompt}],
        )
        assessment = parse_assessment(content)
        LOGGER.info("Synthesized assessment for %s (trust score %s)", subject_name, assessment.trust_score)
        return assessment
