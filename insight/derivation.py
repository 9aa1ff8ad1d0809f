from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from insight.assessment import Assessment
from insight.models import RiskTier, SubjectRef
from insight.storage import Store

LOGGER = logging.getLogger(__name__)

LOW_RISK_THRESHOLD = 70
MEDIUM_RISK_THRESHOLD = 40


def risk_tier(trust_score: int) -> RiskTier:
    if trust_score >= LOW_RISK_THRESHOLD:
        return RiskTier.LOW
    if trust_score >= MEDIUM_RISK_THRESHOLD:
        return RiskTier.MEDIUM
    return RiskTier.HIGH


async def _best_effort(name: str, write: Callable[[], Any]) -> str | None:
    try:
        await asyncio.to_thread(write)
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("Best-effort write %s failed: %s", name, exc)
        return name
    return None


async def apply_assessment(store: Store, ref: SubjectRef, assessment: Assessment) -> list[str]:
    """Persist an assessment and its derived fields.

    The primary report write raises on failure. Tool tier, request snapshot and
    vendor upsert are best-effort: their failures are logged and their names
    returned, never raised.
    """
    if ref.report_id:
        await asyncio.to_thread(store.save_assessment, ref.report_id, assessment)

    failed: list[str] = []
    if ref.tool_id:
        tier = risk_tier(assessment.trust_score)
        outcome = await _best_effort(
            "tool_risk_level",
            lambda: store.update_tool_risk(ref.tool_id, tier.value, ref.report_id),
        )
        if outcome:
            failed.append(outcome)

    payload = assessment.to_payload()
    scatter = []
    if ref.request_id:
        scatter.append(_best_effort("request_submission", lambda: store.update_request_submission(ref.request_id, payload)))
    if ref.kind == "vendor" and ref.org_id:
        scatter.append(
            _best_effort("vendor_research", lambda: store.upsert_vendor(ref.org_id, ref.subject_name, ref.url, payload))
        )
    if scatter:
        results = await asyncio.gather(*scatter)
        failed.extend(name for name in results if name)
    return failed
