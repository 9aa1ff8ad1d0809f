from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from insight.assessment import Assessment, PlanStep
from insight.errors import NotFoundError, SynthesisError, ValidationError
from insight.frameworks import FRAMEWORKS, control_title, get_framework
from insight.llm import CompletionClient
from insight.models import CONTROL_STATUSES, utc_now_iso
from insight.prompts import COMPLIANCE_PLAN_SYSTEM_PROMPT
from insight.storage import Store
from insight.synthesis import parse_json_payload

LOGGER = logging.getLogger(__name__)

_PLAN_STEPS = TypeAdapter(list[PlanStep])


def attest_control(
    store: Store,
    org_id: str,
    framework: str,
    control_ref: str,
    status: str,
    actor_id: str | None,
    note: str | None = None,
) -> dict[str, Any]:
    if not org_id:
        raise ValidationError("orgId is required")
    if status not in CONTROL_STATUSES:
        raise ValidationError(f"invalid control status: {status}")
    title = control_title(framework, control_ref)
    if title is None:
        raise ValidationError(f"unknown control {framework}/{control_ref}")

    compliant = status == "compliant"
    store.upsert_control(
        org_id=org_id,
        framework=framework,
        control_ref=control_ref,
        title=title,
        status=status,
        attested_by=actor_id if compliant else None,
        attested_at=utc_now_iso() if compliant else None,
        attestation=note,
    )
    return store.get_control(org_id, framework, control_ref)


def toggle_control(store: Store, org_id: str, framework: str, control_ref: str, actor_id: str | None) -> dict[str, Any]:
    existing = store.get_control(org_id, framework, control_ref)
    if existing and existing["status"] == "compliant":
        status = "not_applicable"
    else:
        status = "compliant"
    return attest_control(store, org_id, framework, control_ref, status, actor_id)


def update_attestation_note(store: Store, control_id: str, note: str | None, org_id: str | None = None) -> dict[str, Any]:
    control = store.get_control_by_id(control_id)
    if control is None or (org_id and control["org_id"] != org_id):
        raise NotFoundError(f"control {control_id} not found")
    note = (note or "").strip() or None
    store.update_control_note(control_id, note)
    return store.get_control_by_id(control_id)


def complete_plan_step(store: Store, plan_id: str, step_id: int, completed: bool = True) -> dict[str, Any]:
    """Mark one plan step done (or not) and return the plan with its recomputed status."""
    if store.get_compliance_plan(plan_id) is None:
        raise NotFoundError(f"compliance plan {plan_id} not found")
    status = store.set_step_completed(plan_id, step_id, completed)
    LOGGER.info("Compliance plan %s step %s completed=%s, plan now %s", plan_id, step_id, completed, status)
    return store.get_compliance_plan(plan_id)


def framework_stats(controls: list[dict[str, Any]], framework_id: str) -> dict[str, int]:
    framework = get_framework(framework_id)
    total = len(framework["controls"]) if framework else 0
    attested = sum(
        1 for control in controls if control.get("framework") == framework_id and control.get("status") == "compliant"
    )
    percent = int(attested * 100 / total + 0.5) if total > 0 else 0
    return {"total": total, "attested": attested, "percent": percent}


def catalog_with_stats(controls: list[dict[str, Any]]) -> list[dict[str, Any]]:
    by_key = {(control["framework"], control["control_ref"]): control for control in controls}
    catalog = []
    for framework in FRAMEWORKS:
        catalog.append(
            {
                "id": framework["id"],
                "name": framework["name"],
                "description": framework["description"],
                "stats": framework_stats(controls, framework["id"]),
                "controls": [
                    {
                        "ref": ref,
                        "title": title,
                        "status": (by_key.get((framework["id"], ref)) or {}).get("status"),
                    }
                    for ref, title in framework["controls"]
                ],
            }
        )
    return catalog


def vulnerability_summary(assessment: Assessment) -> str:
    return "\n".join(
        f"- {name}: Score {category.score}/10 - {category.details}"
        for name, category in assessment.vulnerabilities.by_category().items()
    )


async def request_plan_steps(completion: CompletionClient, service_name: str, assessment: Assessment) -> list[PlanStep]:
    user_prompt = (
        f'Generate a compliance plan for "{service_name}".\n\n'
        f"Vulnerability Assessment:\n{vulnerability_summary(assessment)}"
    )
    content = await completion.complete(COMPLIANCE_PLAN_SYSTEM_PROMPT, [{"role": "user", "content": user_prompt}])
    payload = parse_json_payload(content)
    try:
        steps = _PLAN_STEPS.validate_python(payload)
    except PydanticValidationError as exc:
        raise SynthesisError(f"AI returned an invalid compliance plan: {exc.error_count()} errors") from exc
    if not steps:
        raise SynthesisError("AI returned an empty compliance plan")
    return sorted(steps, key=lambda step: step.step_number)


async def generate_compliance_plan(
    store: Store,
    completion: CompletionClient,
    report_id: str,
    user_id: str | None,
    company_id: str | None = None,
) -> str:
    report = await asyncio.to_thread(store.get_report, report_id)
    if report is None:
        raise NotFoundError(f"report {report_id} not found")
    if not report.get("analysis"):
        raise ValidationError("report has no completed analysis")
    assessment = Assessment.from_payload(report["analysis"])

    steps = await request_plan_steps(completion, report["service_name"], assessment)
    plan_id = await asyncio.to_thread(
        store.create_compliance_plan,
        report_id,
        company_id or report.get("company_id"),
        user_id,
        f"Compliance Plan: {report['service_name']}",
        [step.model_dump() for step in steps],
    )
    LOGGER.info("Generated compliance plan %s for report %s", plan_id, report_id)
    return plan_id
