from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from insight.assessment import MaturityNarrative
from insight.errors import InsightError, SynthesisError, ValidationError
from insight.llm import CompletionClient
from insight.prompts import MATURITY_SYSTEM_PROMPT
from insight.storage import Store
from insight.synthesis import parse_json_payload

LOGGER = logging.getLogger(__name__)

TOOL_WEIGHT = 40
CONTROL_WEIGHT = 60
GRADE_BANDS = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))


def maturity_score(total_tools: int, approved_tools: int, total_controls: int, compliant_controls: int) -> int:
    tool_ratio = approved_tools / total_tools if total_tools > 0 else 0.0
    control_ratio = compliant_controls / total_controls if total_controls > 0 else 0.0
    # round half up
    return int(math.floor(tool_ratio * TOOL_WEIGHT + control_ratio * CONTROL_WEIGHT + 0.5))


def grade_for_score(score: int) -> str:
    for threshold, grade in GRADE_BANDS:
        if score >= threshold:
            return grade
    return "F"


@dataclass
class MaturityCounts:
    total_tools: int = 0
    approved_tools: int = 0
    total_controls: int = 0
    compliant_controls: int = 0

    @classmethod
    def from_records(cls, tools: list[dict[str, Any]], controls: list[dict[str, Any]]) -> "MaturityCounts":
        return cls(
            total_tools=len(tools),
            approved_tools=sum(1 for tool in tools if tool.get("status") == "approved"),
            total_controls=len(controls),
            compliant_controls=sum(1 for control in controls if control.get("status") == "compliant"),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "totalTools": self.total_tools,
            "approvedTools": self.approved_tools,
            "totalControls": self.total_controls,
            "compliantControls": self.compliant_controls,
        }


@dataclass
class MaturityResult:
    score: int
    grade: str
    counts: MaturityCounts = field(default_factory=MaturityCounts)
    narrative: MaturityNarrative | None = None
    narrative_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "grade": self.grade,
            "counts": self.counts.to_dict(),
            "narrative": self.narrative.model_dump(mode="json") if self.narrative else None,
            "narrativeError": self.narrative_error,
        }


async def request_narrative(completion: CompletionClient, score: int, counts: MaturityCounts) -> MaturityNarrative:
    user_prompt = (
        f"Org has {counts.total_tools} tools ({counts.approved_tools} approved), "
        f"{counts.total_controls} controls ({counts.compliant_controls} attested). "
        f"Maturity score: {score}/100. Provide assessment."
    )
    content = await completion.complete(MATURITY_SYSTEM_PROMPT, [{"role": "user", "content": user_prompt}])
    payload = parse_json_payload(content)
    try:
        return MaturityNarrative.model_validate(payload)
    except PydanticValidationError as exc:
        raise SynthesisError(f"AI returned an invalid maturity narrative: {exc.error_count()} errors") from exc


async def derive_maturity(store: Store, completion: CompletionClient, org_id: str | None) -> MaturityResult:
    if not org_id:
        raise ValidationError("orgId is required")

    tools = await asyncio.to_thread(store.list_tools, org_id)
    controls = await asyncio.to_thread(store.list_controls, org_id)
    counts = MaturityCounts.from_records(tools, controls)
    score = maturity_score(counts.total_tools, counts.approved_tools, counts.total_controls, counts.compliant_controls)
    result = MaturityResult(score=score, grade=grade_for_score(score), counts=counts)

    try:
        narrative = await request_narrative(completion, score, counts)
    except InsightError as exc:
        LOGGER.warning("Maturity narrative failed for org %s, returning score only: %s", org_id, exc)
        result.narrative_error = str(exc)
        return result

    narrative.score = score
    narrative.grade = result.grade
    result.narrative = narrative
    LOGGER.info("Derived maturity %s (%s) for org %s", score, result.grade, org_id)
    return result
