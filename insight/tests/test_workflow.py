from __future__ import annotations

import httpx
import pytest

from insight.errors import NotFoundError, ValidationError
from insight.pipeline import build_services
from insight.workflow import advance_request, set_tool_status, submit_request


def _transport(completion_content, completion_status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "search.test":
            return httpx.Response(200, json={"organic": []})
        if completion_status != 200:
            return httpx.Response(completion_status, json={"error": {"message": "upstream"}})
        return httpx.Response(200, json={"choices": [{"message": {"content": completion_content}}]})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_submit_request_links_tool_report_and_request(settings, fenced_assessment):
    services = build_services(settings, transport=_transport(fenced_assessment))

    submission = await submit_request(
        services.store, services.pipeline, "org-1", "user-1", "  Acme Chat ", url="https://acme.test", notes="for support"
    )

    assert submission.outcome.success is True
    assert submission.outcome.report_id == submission.report_id
    tool = services.store.get_tool(submission.tool_id)
    assert tool["name"] == "Acme Chat"
    assert tool["status"] == "pending"
    assert tool["report_id"] == submission.report_id
    assert tool["risk_level"] == "medium"

    request = services.store.get_request(submission.request_id)
    assert request["tool_id"] == submission.tool_id
    assert request["workflow_stage"] == "draft"
    assert request["notes"] == "for support"
    assert request["submission_data"]["trustScore"] == 62

    report = services.store.get_report(submission.report_id)
    assert report["status"] == "complete"
    assert report["url"] == "https://acme.test"
    assert submission.to_dict()["scan"]["success"] is True


@pytest.mark.asyncio
async def test_submit_request_keeps_records_when_scan_fails(settings):
    services = build_services(settings, transport=_transport("not json"))

    submission = await submit_request(services.store, services.pipeline, "org-1", "user-1", "Acme Chat")

    assert submission.outcome.success is False
    assert services.store.get_report(submission.report_id)["status"] == "error"
    assert services.store.get_tool(submission.tool_id)["status"] == "pending"
    assert services.store.get_request(submission.request_id)["submission_data"] is None


@pytest.mark.asyncio
async def test_submit_request_requires_name(settings):
    services = build_services(settings, transport=_transport("{}"))
    with pytest.raises(ValidationError):
        await submit_request(services.store, services.pipeline, "org-1", "user-1", "   ")
    assert services.store.list_tools("org-1") == []


def test_advance_request_carries_decision_to_tool(store):
    tool_id = store.create_tool("org-1", "Acme Chat")
    request_id = store.create_request("org-1", "user-1", tool_id=tool_id)

    request = advance_request(store, request_id, "review", "user-2", org_id="org-1")
    assert request["workflow_stage"] == "review"
    assert request["reviewed_by"] is None
    assert store.get_tool(tool_id)["status"] == "pending"

    request = advance_request(store, request_id, "approved", "user-2", org_id="org-1")
    assert request["workflow_stage"] == "approved"
    assert request["reviewed_by"] == "user-2"
    assert store.get_tool(tool_id)["status"] == "approved"

    advance_request(store, request_id, "rejected", "user-3")
    assert store.get_tool(tool_id)["status"] == "rejected"


def test_advance_request_without_tool(store):
    request_id = store.create_request("org-1", "user-1")
    assert advance_request(store, request_id, "approved", "user-2")["workflow_stage"] == "approved"


def test_advance_request_errors(store):
    request_id = store.create_request("org-1", "user-1")
    with pytest.raises(ValidationError):
        advance_request(store, request_id, "shipped", "user-2")
    with pytest.raises(NotFoundError):
        advance_request(store, "missing", "review", "user-2")
    with pytest.raises(NotFoundError):
        advance_request(store, request_id, "review", "user-2", org_id="org-2")


def test_set_tool_status(store):
    tool_id = store.create_tool("org-1", "Acme Chat")
    assert set_tool_status(store, tool_id, "sunset", org_id="org-1")["status"] == "sunset"
    with pytest.raises(ValidationError):
        set_tool_status(store, tool_id, "banned")
    with pytest.raises(NotFoundError):
        set_tool_status(store, tool_id, "approved", org_id="org-2")
    with pytest.raises(NotFoundError):
        set_tool_status(store, "missing", "approved")


@pytest.mark.asyncio
async def test_submit_request_requires_org_and_requester(settings):
    services = build_services(settings, transport=_transport("{}"))
    with pytest.raises(ValidationError):
        await submit_request(services.store, services.pipeline, "", "user-1", "Acme Chat")
    with pytest.raises(ValidationError):
        await submit_request(services.store, services.pipeline, "org-1", None, "Acme Chat")
