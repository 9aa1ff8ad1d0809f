from __future__ import annotations

import sqlite3

import pytest

from insight.assessment import Assessment
from insight.errors import NotFoundError, PersistenceError
from insight.models import SearchBatch, SearchResult, corpus_from_payload
from insight.storage import Store


def test_init_db_creates_tables(store):
    conn = sqlite3.connect(store.db_path)
    names = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    conn.close()
    assert {"reports", "tools", "vendors", "requests", "controls", "activity_log", "compliance_plans"} <= names


def test_init_db_is_idempotent(tmp_path):
    store = Store(str(tmp_path / "twice.db"))
    store.init_db()
    store.init_db()
    assert store.list_tools("org-1") == []


def test_report_lifecycle(store, assessment_payload):
    report_id = store.create_report("Acme Chat", url="https://acme.test", company_id="org-1", user_id="user-1")
    assert store.get_report(report_id)["status"] == "gathering"

    corpus = [
        SearchBatch(query="q1", results=[SearchResult(title="A", link="https://a.test", snippet="s")]),
        SearchBatch(query="q2", results=[]),
    ]
    store.save_evidence(report_id, corpus)
    report = store.get_report(report_id)
    assert report["status"] == "analyzing"
    assert corpus_from_payload(report["search_data"]) == corpus

    store.save_assessment(report_id, Assessment.from_payload(assessment_payload))
    report = store.get_report(report_id)
    assert report["status"] == "complete"
    assert report["trust_score"] == 62
    assert Assessment.from_payload(report["analysis"]) == Assessment.from_payload(assessment_payload)


def test_assessment_lists_keep_order_through_store(store, assessment_payload):
    report_id = store.create_report("Acme Chat", company_id="org-1")
    store.save_assessment(report_id, Assessment.from_payload(assessment_payload))

    analysis = store.get_report(report_id)["analysis"]

    assert [item["title"] for item in analysis["knowledgeFeed"]] == [
        "Acme Chat patches data leak",
        "Acme Chat adds enterprise SSO",
        "Forum thread on Acme Chat jailbreaks",
    ]
    assert [item["name"] for item in analysis["competitors"]] == ["Globex Assist", "Initech Copilot", "Umbrella AI"]
    assert [item["trustScore"] for item in analysis["competitors"]] == [71, 55, 38]


def test_save_assessment_overwrites_and_clears_error(store, assessment_payload):
    report_id = store.create_report("Acme Chat")
    store.mark_report_error(report_id, "AI returned invalid JSON")
    assert store.get_report(report_id)["error_message"] == "AI returned invalid JSON"

    store.save_assessment(report_id, Assessment.from_payload(assessment_payload))
    assessment_payload["trustScore"] = 80
    store.save_assessment(report_id, Assessment.from_payload(assessment_payload))

    report = store.get_report(report_id)
    assert report["trust_score"] == 80
    assert report["error_message"] is None


def test_save_to_missing_report_raises(store, assessment_payload):
    with pytest.raises(PersistenceError):
        store.save_evidence("missing", [])
    with pytest.raises(PersistenceError):
        store.save_assessment("missing", Assessment.from_payload(assessment_payload))


def test_list_reports_newest_first(store):
    first = store.create_report("First", company_id="org-1")
    second = store.create_report("Second", company_id="org-1")
    store.create_report("Other org", company_id="org-2")
    assert [report["id"] for report in store.list_reports("org-1")] == [second, first]


def test_vendor_upsert_keeps_one_row(store):
    first_id = store.upsert_vendor("org-1", "Acme", "https://old.test", {"trustScore": 40})
    second_id = store.upsert_vendor("org-1", "Acme", "https://new.test", {"trustScore": 75})
    assert first_id == second_id
    vendors = store.list_vendors("org-1")
    assert len(vendors) == 1
    assert vendors[0]["website"] == "https://new.test"
    assert vendors[0]["research_data"] == {"trustScore": 75}


def test_update_missing_records_raise_not_found(store):
    with pytest.raises(NotFoundError):
        store.update_tool_risk("missing", "low")
    with pytest.raises(NotFoundError):
        store.update_request_submission("missing", {})
    with pytest.raises(NotFoundError):
        store.update_control_note("missing", "note")
    with pytest.raises(NotFoundError):
        store.update_tool_status("missing", "approved")
    with pytest.raises(NotFoundError):
        store.update_request_stage("missing", "review")


def test_control_upsert_keeps_attestation_note(store):
    store.upsert_control("org-1", "soc2", "CC1", "Control environment", "compliant", "user-1", "2026-01-01", "policy v2")
    store.upsert_control("org-1", "soc2", "CC1", "Control environment", "not_applicable", None, None)
    control = store.get_control("org-1", "soc2", "CC1")
    assert control["status"] == "not_applicable"
    assert control["attestation"] == "policy v2"
    assert control["attested_by"] is None


def test_activity_newest_first(store):
    store.log_activity("org-1", "tool_created", actor_id="user-1", entity_type="tool", entity_id="t1")
    store.log_activity("org-1", "control_attested", actor_id="user-1", metadata={"framework": "soc2"})
    activity = store.list_activity("org-1")
    assert [entry["action"] for entry in activity] == ["control_attested", "tool_created"]
    assert activity[0]["metadata"] == {"framework": "soc2"}


def test_compliance_plan_steps_ordered(store):
    report_id = store.create_report("Acme Chat")
    plan_id = store.create_compliance_plan(
        report_id,
        "org-1",
        "user-1",
        "Compliance Plan: Acme Chat",
        [
            {"step_number": 2, "title": "Second", "description": "b"},
            {"step_number": 1, "title": "First", "description": "a"},
        ],
    )
    plan = store.get_compliance_plan(plan_id)
    assert plan["title"] == "Compliance Plan: Acme Chat"
    assert [step["title"] for step in plan["steps"]] == ["First", "Second"]
    assert store.get_compliance_plan("missing") is None


def test_tool_status_and_request_stage_updates(store):
    report_id = store.create_report("Acme Chat", company_id="org-1")
    tool_id = store.create_tool("org-1", "Acme Chat", created_by="user-1", report_id=report_id)
    request_id = store.create_request("org-1", "user-1", tool_id=tool_id)
    assert store.get_tool(tool_id)["report_id"] == report_id
    assert store.get_request(request_id)["workflow_stage"] == "draft"

    store.update_tool_status(tool_id, "approved")
    store.update_request_stage(request_id, "approved", reviewed_by="user-2")

    assert store.get_tool(tool_id)["status"] == "approved"
    request = store.get_request(request_id)
    assert request["workflow_stage"] == "approved"
    assert request["reviewed_by"] == "user-2"
    assert request["reviewed_at"]

    store.update_request_stage(request_id, "review")
    request = store.get_request(request_id)
    assert request["reviewed_by"] is None
    assert request["reviewed_at"] is None


def test_step_completion_moves_plan_status(store):
    report_id = store.create_report("Acme Chat")
    plan_id = store.create_compliance_plan(
        report_id,
        "org-1",
        "user-1",
        "Compliance Plan: Acme Chat",
        [{"step_number": number, "title": f"Step {number}", "description": ""} for number in (1, 2)],
    )
    first, second = [step["id"] for step in store.get_compliance_plan(plan_id)["steps"]]
    assert store.get_compliance_plan(plan_id)["status"] == "active"

    assert store.set_step_completed(plan_id, first, True) == "in_progress"
    assert store.set_step_completed(plan_id, second, True) == "completed"
    plan = store.get_compliance_plan(plan_id)
    assert plan["status"] == "completed"
    assert [step["is_completed"] for step in plan["steps"]] == [1, 1]

    assert store.set_step_completed(plan_id, second, False) == "in_progress"
    assert store.set_step_completed(plan_id, first, False) == "active"

    with pytest.raises(NotFoundError):
        store.set_step_completed(plan_id, 9999, True)
    with pytest.raises(NotFoundError):
        store.set_step_completed("other-plan", first, True)


def test_count_reports_by_status(store, assessment_payload):
    assert store.count_reports_by_status() == {}
    done = store.create_report("Acme Chat")
    store.save_assessment(done, Assessment.from_payload(assessment_payload))
    failed = store.create_report("Globex")
    store.mark_report_error(failed, "AI returned invalid JSON")
    store.create_report("Initech")

    assert store.count_reports_by_status() == {"complete": 1, "error": 1, "gathering": 1}
