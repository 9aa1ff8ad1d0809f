from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator

from insight.errors import TransportError, ValidationError
from insight.llm import CompletionClient
from insight.prompts import ADVISORY_SYSTEM_PROMPT
from insight.storage import Store

LOGGER = logging.getLogger(__name__)

ALLOWED_ROLES = {"user", "assistant"}
DONE_EVENT = "data: [DONE]\n\n"
PENDING_STAGES = {"draft", "review"}


def sse_event(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def validate_messages(messages: Any) -> list[dict[str, str]]:
    if not isinstance(messages, list) or not messages:
        raise ValidationError("messages must be a non-empty list")
    cleaned = []
    for message in messages:
        if not isinstance(message, dict):
            raise ValidationError("each message must be an object")
        role = message.get("role")
        content = message.get("content")
        if role not in ALLOWED_ROLES:
            raise ValidationError(f"unsupported message role: {role}")
        if not isinstance(content, str):
            raise ValidationError("message content must be a string")
        cleaned.append({"role": role, "content": content})
    return cleaned


def build_org_context(store: Store, org_id: str) -> str:
    company = store.get_company(org_id) or {}
    tools = store.list_tools(org_id)
    requests = store.list_requests(org_id)
    controls = store.list_controls(org_id)
    vendors = store.list_vendors(org_id)
    reports = store.list_reports(org_id, limit=10)

    approved_tools = sum(1 for tool in tools if tool.get("status") == "approved")
    pending_requests = sum(1 for item in requests if item.get("workflow_stage") in PENDING_STAGES)
    compliant_controls = sum(1 for control in controls if control.get("status") == "compliant")
    frameworks = sorted({control["framework"] for control in controls})

    tool_names = ", ".join(
        f"{tool['name']} [{tool['status']}, risk: {tool.get('risk_level') or 'unassessed'}]" for tool in tools
    )
    report_names = ", ".join(
        f"{report['service_name']} (score: {report['trust_score'] if report.get('trust_score') is not None else 'pending'})"
        for report in reports
    )
    vendor_names = ", ".join(vendor["name"] for vendor in vendors)
    return (
        f'\nCURRENT ORGANIZATION DATA for "{company.get("name") or "Unknown"}":\n'
        f"- Tools: {len(tools)} total ({approved_tools} approved). Names: {tool_names or 'none'}\n"
        f"- Requests: {len(requests)} total ({pending_requests} pending review)\n"
        f"- Compliance Controls: {len(controls)} total ({compliant_controls} compliant). "
        f"Frameworks: {', '.join(frameworks) or 'none'}\n"
        f"- Vendors: {vendor_names or 'none'}\n"
        f"- Recent Reports: {report_names or 'none'}\n"
    )


def build_system_prompt(org_context: str = "") -> str:
    return ADVISORY_SYSTEM_PROMPT.format(org_context=org_context)


class AdvisoryChannel:
    def __init__(self, store: Store, completion: CompletionClient) -> None:
        self.store = store
        self.completion = completion

    async def open_stream(self, messages: Any, org_id: str | None = None) -> AsyncIterator[str]:
        """Start an advisory answer and return its event-stream frames.

        Upstream failures that happen before the first delta are raised from
        here; later failures end the stream with an error frame.
        """
        history = validate_messages(messages)
        org_context = ""
        if org_id:
            org_context = await asyncio.to_thread(build_org_context, self.store, org_id)
        deltas = await self.completion.open_stream(build_system_prompt(org_context), history)
        return self._relay(deltas)

    async def _relay(self, deltas: AsyncIterator[str]) -> AsyncIterator[str]:
        try:
            async for text in deltas:
                yield sse_event({"delta": text})
        except TransportError as exc:
            LOGGER.warning("Advisory stream ended early: %s", exc)
            yield sse_event({"error": str(exc)})
        finally:
            await deltas.aclose()
        yield DONE_EVENT
