from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from insight.errors import NotFoundError, ValidationError
from insight.models import TOOL_STATUSES, WORKFLOW_STAGES, ScanOutcome, ScanRequest
from insight.pipeline import ScanPipeline
from insight.storage import Store

LOGGER = logging.getLogger(__name__)

# stage -> tool status it implies
_TOOL_STATUS_FOR_STAGE = {"approved": "approved", "rejected": "rejected"}


@dataclass
class RequestSubmission:
    request_id: str
    tool_id: str
    report_id: str
    outcome: ScanOutcome

    def to_dict(self) -> dict[str, Any]:
        return {
            "requestId": self.request_id,
            "toolId": self.tool_id,
            "reportId": self.report_id,
            "scan": self.outcome.to_dict(),
        }


def _owned(record: dict[str, Any] | None, org_id: str | None) -> bool:
    return record is not None and (not org_id or record["org_id"] == org_id)


async def submit_request(
    store: Store,
    pipeline: ScanPipeline,
    org_id: str,
    requester_id: str,
    tool_name: str,
    url: str | None = None,
    notes: str | None = None,
) -> RequestSubmission:
    """
    Register a tool request: tool, report and draft request rows, then a scan
    that writes back to all three.
    """
    name = (tool_name or "").strip()
    if not name:
        raise ValidationError("tool name is required")
    if not org_id:
        raise ValidationError("orgId is required")
    if not requester_id:
        raise ValidationError("userId is required")
    url = (url or "").strip() or None

    report_id = await asyncio.to_thread(store.create_report, name, "service", url, org_id, requester_id)
    tool_id = await asyncio.to_thread(
        store.create_tool,
        org_id,
        name,
        url=url,
        status="pending",
        created_by=requester_id,
        report_id=report_id,
    )
    request_id = await asyncio.to_thread(store.create_request, org_id, requester_id, tool_id, "draft", notes)
    LOGGER.info("Request %s opened for tool %s (%s)", request_id, tool_id, name)

    outcome = await pipeline.run(
        ScanRequest(
            subject_name=name,
            url=url,
            kind="service",
            org_id=org_id,
            user_id=requester_id,
            tool_id=tool_id,
            request_id=request_id,
            report_id=report_id,
        )
    )
    return RequestSubmission(request_id=request_id, tool_id=tool_id, report_id=report_id, outcome=outcome)


def advance_request(store: Store, request_id: str, stage: str, actor_id: str | None, org_id: str | None = None) -> dict[str, Any]:
    if stage not in WORKFLOW_STAGES:
        raise ValidationError(f"invalid workflow stage: {stage}")
    request = store.get_request(request_id)
    if not _owned(request, org_id):
        raise NotFoundError(f"request {request_id} not found")

    reviewer = actor_id if stage in _TOOL_STATUS_FOR_STAGE else None
    store.update_request_stage(request_id, stage, reviewed_by=reviewer)
    tool_status = _TOOL_STATUS_FOR_STAGE.get(stage)
    if tool_status and request.get("tool_id"):
        store.update_tool_status(request["tool_id"], tool_status)
        LOGGER.info("Tool %s %s via request %s", request["tool_id"], tool_status, request_id)
    return store.get_request(request_id)


def set_tool_status(store: Store, tool_id: str, status: str, org_id: str | None = None) -> dict[str, Any]:
    if status not in TOOL_STATUSES:
        raise ValidationError(f"invalid tool status: {status}")
    if not _owned(store.get_tool(tool_id), org_id):
        raise NotFoundError(f"tool {tool_id} not found")
    store.update_tool_status(tool_id, status)
    return store.get_tool(tool_id)
