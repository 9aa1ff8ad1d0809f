from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any

from insight.assessment import Assessment
from insight.errors import NotFoundError, PersistenceError
from insight.models import ReportStatus, SearchBatch, corpus_to_payload, plan_status, utc_now_iso

LOGGER = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS companies (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS reports (
    id TEXT PRIMARY KEY,
    service_name TEXT NOT NULL,
    url TEXT,
    kind TEXT NOT NULL DEFAULT 'service',
    company_id TEXT,
    user_id TEXT,
    status TEXT NOT NULL,
    search_data TEXT,
    analysis TEXT,
    trust_score INTEGER,
    error_message TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tools (
    id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    name TEXT NOT NULL,
    url TEXT,
    category TEXT,
    description TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    risk_level TEXT,
    report_id TEXT,
    created_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS vendors (
    id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    name TEXT NOT NULL,
    website TEXT,
    research_data TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (org_id, name)
);

CREATE TABLE IF NOT EXISTS requests (
    id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    requester_id TEXT NOT NULL,
    tool_id TEXT,
    workflow_stage TEXT NOT NULL DEFAULT 'draft',
    submission_data TEXT,
    notes TEXT,
    reviewed_by TEXT,
    reviewed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS controls (
    id TEXT PRIMARY KEY,
    org_id TEXT NOT NULL,
    framework TEXT NOT NULL,
    control_ref TEXT NOT NULL,
    title TEXT NOT NULL,
    status TEXT NOT NULL,
    attestation TEXT,
    attested_by TEXT,
    attested_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (org_id, framework, control_ref)
);

CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    org_id TEXT NOT NULL,
    actor_id TEXT,
    action TEXT NOT NULL,
    entity_type TEXT,
    entity_id TEXT,
    metadata TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS compliance_plans (
    id TEXT PRIMARY KEY,
    report_id TEXT NOT NULL,
    company_id TEXT,
    user_id TEXT,
    title TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS compliance_steps (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    plan_id TEXT NOT NULL,
    step_number INTEGER NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    is_completed INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (plan_id) REFERENCES compliance_plans(id)
);

CREATE INDEX IF NOT EXISTS idx_reports_company_id ON reports(company_id);
CREATE INDEX IF NOT EXISTS idx_tools_org_id ON tools(org_id);
CREATE INDEX IF NOT EXISTS idx_controls_org_id ON controls(org_id);
CREATE INDEX IF NOT EXISTS idx_requests_org_id ON requests(org_id);
CREATE INDEX IF NOT EXISTS idx_activity_org_id ON activity_log(org_id);
"""

_JSON_COLUMNS = ("search_data", "analysis", "research_data", "submission_data", "metadata")


def connect(db_path: str) -> sqlite3.Connection:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    return conn


def _to_sqlite_text(value):
    if value is None:
        return None
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _decode(row: sqlite3.Row | None) -> dict[str, Any] | None:
    if row is None:
        return None
    record = dict(row)
    for column in _JSON_COLUMNS:
        if record.get(column):
            try:
                record[column] = json.loads(record[column])
            except json.JSONDecodeError:
                LOGGER.warning("Column %s holds invalid JSON, returning raw text", column)
    return record


def _new_id() -> str:
    return str(uuid.uuid4())


class Store:
    """SQLite-backed record store for reports, tools, vendors, requests and controls."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def init_db(self) -> None:
        with connect(self.db_path) as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        LOGGER.info("SQLite initialized at %s", self.db_path)

    def _fetch_one(self, query: str, params: tuple) -> dict[str, Any] | None:
        with connect(self.db_path) as conn:
            row = conn.execute(query, params).fetchone()
        return _decode(row)

    def _fetch_all(self, query: str, params: tuple) -> list[dict[str, Any]]:
        with connect(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [_decode(row) for row in rows]

    def _update(self, query: str, params: tuple) -> int:
        with connect(self.db_path) as conn:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor.rowcount

    # companies

    def create_company(self, name: str, company_id: str | None = None) -> str:
        company_id = company_id or _new_id()
        with connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO companies (id, name, created_at) VALUES (?, ?, ?)",
                (company_id, name, utc_now_iso()),
            )
            conn.commit()
        return company_id

    def get_company(self, company_id: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM companies WHERE id = ?", (company_id,))

    # reports

    def create_report(
        self,
        service_name: str,
        kind: str = "service",
        url: str | None = None,
        company_id: str | None = None,
        user_id: str | None = None,
    ) -> str:
        report_id = _new_id()
        now = utc_now_iso()
        try:
            with connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO reports (
                        id, service_name, url, kind, company_id, user_id, status, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (report_id, service_name, url, kind, company_id, user_id, ReportStatus.GATHERING.value, now, now),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"could not create report for {service_name}: {exc}") from exc
        LOGGER.info("Created report %s for %s", report_id, service_name)
        return report_id

    def get_report(self, report_id: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM reports WHERE id = ?", (report_id,))

    def list_reports(self, company_id: str, limit: int = 50) -> list[dict[str, Any]]:
        return self._fetch_all(
            "SELECT * FROM reports WHERE company_id = ? ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (company_id, limit),
        )

    def save_evidence(self, report_id: str, corpus: list[SearchBatch]) -> None:
        try:
            affected = self._update(
                "UPDATE reports SET search_data = ?, status = ?, updated_at = ? WHERE id = ?",
                (
                    json.dumps(corpus_to_payload(corpus), ensure_ascii=False),
                    ReportStatus.ANALYZING.value,
                    utc_now_iso(),
                    report_id,
                ),
            )
        except sqlite3.Error as exc:
            raise PersistenceError(f"could not persist evidence for report {report_id}: {exc}") from exc
        if affected == 0:
            raise PersistenceError(f"report {report_id} not found")

    def save_assessment(self, report_id: str, assessment: Assessment) -> None:
        try:
            affected = self._update(
                """
                UPDATE reports
                SET analysis = ?, trust_score = ?, status = ?, error_message = NULL, updated_at = ?
                WHERE id = ?
                """,
                (
                    json.dumps(assessment.to_payload(), ensure_ascii=False),
                    assessment.trust_score,
                    ReportStatus.COMPLETE.value,
                    utc_now_iso(),
                    report_id,
                ),
            )
        except sqlite3.Error as exc:
            raise PersistenceError(f"could not persist assessment for report {report_id}: {exc}") from exc
        if affected == 0:
            raise PersistenceError(f"report {report_id} not found")
        LOGGER.info("Persisted assessment for report %s (trust score %s)", report_id, assessment.trust_score)

    def mark_report_error(self, report_id: str, message: str) -> None:
        self._update(
            "UPDATE reports SET status = ?, error_message = ?, updated_at = ? WHERE id = ?",
            (ReportStatus.ERROR.value, message, utc_now_iso(), report_id),
        )

    def count_reports_by_status(self) -> dict[str, int]:
        with connect(self.db_path) as conn:
            rows = conn.execute("SELECT status, COUNT(*) AS total FROM reports GROUP BY status").fetchall()
        return {row["status"]: row["total"] for row in rows}

    # tools

    def create_tool(
        self,
        org_id: str,
        name: str,
        url: str | None = None,
        category: str | None = None,
        status: str = "pending",
        created_by: str | None = None,
        description: str | None = None,
        report_id: str | None = None,
    ) -> str:
        tool_id = _new_id()
        now = utc_now_iso()
        with connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO tools (
                    id, org_id, name, url, category, description, status, report_id, created_by, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (tool_id, org_id, name, url, category, description, status, report_id, created_by, now, now),
            )
            conn.commit()
        return tool_id

    def get_tool(self, tool_id: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM tools WHERE id = ?", (tool_id,))

    def list_tools(self, org_id: str) -> list[dict[str, Any]]:
        return self._fetch_all("SELECT * FROM tools WHERE org_id = ? ORDER BY created_at ASC, rowid ASC", (org_id,))

    def update_tool_risk(self, tool_id: str, risk_level: str, report_id: str | None = None) -> None:
        affected = self._update(
            "UPDATE tools SET risk_level = ?, report_id = COALESCE(?, report_id), updated_at = ? WHERE id = ?",
            (risk_level, report_id, utc_now_iso(), tool_id),
        )
        if affected == 0:
            raise NotFoundError(f"tool {tool_id} not found")

    def update_tool_status(self, tool_id: str, status: str) -> None:
        affected = self._update(
            "UPDATE tools SET status = ?, updated_at = ? WHERE id = ?",
            (status, utc_now_iso(), tool_id),
        )
        if affected == 0:
            raise NotFoundError(f"tool {tool_id} not found")

    # requests

    def create_request(
        self,
        org_id: str,
        requester_id: str,
        tool_id: str | None = None,
        workflow_stage: str = "draft",
        notes: str | None = None,
    ) -> str:
        request_id = _new_id()
        now = utc_now_iso()
        with connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO requests (
                    id, org_id, requester_id, tool_id, workflow_stage, notes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (request_id, org_id, requester_id, tool_id, workflow_stage, notes, now, now),
            )
            conn.commit()
        return request_id

    def get_request(self, request_id: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM requests WHERE id = ?", (request_id,))

    def list_requests(self, org_id: str) -> list[dict[str, Any]]:
        return self._fetch_all("SELECT * FROM requests WHERE org_id = ? ORDER BY created_at ASC, rowid ASC", (org_id,))

    def update_request_submission(self, request_id: str, submission: dict[str, Any]) -> None:
        affected = self._update(
            "UPDATE requests SET submission_data = ?, updated_at = ? WHERE id = ?",
            (json.dumps(submission, ensure_ascii=False), utc_now_iso(), request_id),
        )
        if affected == 0:
            raise NotFoundError(f"request {request_id} not found")

    def update_request_stage(self, request_id: str, stage: str, reviewed_by: str | None = None) -> None:
        reviewed_at = utc_now_iso() if reviewed_by else None
        affected = self._update(
            "UPDATE requests SET workflow_stage = ?, reviewed_by = ?, reviewed_at = ?, updated_at = ? WHERE id = ?",
            (stage, reviewed_by, reviewed_at, utc_now_iso(), request_id),
        )
        if affected == 0:
            raise NotFoundError(f"request {request_id} not found")

    # vendors

    def upsert_vendor(self, org_id: str, name: str, website: str | None, research_data: dict[str, Any]) -> str:
        now = utc_now_iso()
        with connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO vendors (id, org_id, name, website, research_data, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(org_id, name) DO UPDATE SET
                    website = excluded.website,
                    research_data = excluded.research_data,
                    updated_at = excluded.updated_at
                """,
                (_new_id(), org_id, name, website, json.dumps(research_data, ensure_ascii=False), now, now),
            )
            conn.commit()
            row = conn.execute("SELECT id FROM vendors WHERE org_id = ? AND name = ?", (org_id, name)).fetchone()
        return row["id"]

    def get_vendor(self, org_id: str, name: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM vendors WHERE org_id = ? AND name = ?", (org_id, name))

    def list_vendors(self, org_id: str) -> list[dict[str, Any]]:
        return self._fetch_all("SELECT * FROM vendors WHERE org_id = ? ORDER BY name ASC", (org_id,))

    # controls

    def list_controls(self, org_id: str) -> list[dict[str, Any]]:
        return self._fetch_all(
            "SELECT * FROM controls WHERE org_id = ? ORDER BY framework ASC, control_ref ASC",
            (org_id,),
        )

    def get_control(self, org_id: str, framework: str, control_ref: str) -> dict[str, Any] | None:
        return self._fetch_one(
            "SELECT * FROM controls WHERE org_id = ? AND framework = ? AND control_ref = ?",
            (org_id, framework, control_ref),
        )

    def upsert_control(
        self,
        org_id: str,
        framework: str,
        control_ref: str,
        title: str,
        status: str,
        attested_by: str | None,
        attested_at: str | None,
        attestation: str | None = None,
    ) -> str:
        now = utc_now_iso()
        with connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO controls (
                    id, org_id, framework, control_ref, title, status, attestation,
                    attested_by, attested_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(org_id, framework, control_ref) DO UPDATE SET
                    status = excluded.status,
                    attestation = COALESCE(excluded.attestation, controls.attestation),
                    attested_by = excluded.attested_by,
                    attested_at = excluded.attested_at,
                    updated_at = excluded.updated_at
                """,
                (_new_id(), org_id, framework, control_ref, title, status, attestation, attested_by, attested_at, now, now),
            )
            conn.commit()
            row = conn.execute(
                "SELECT id FROM controls WHERE org_id = ? AND framework = ? AND control_ref = ?",
                (org_id, framework, control_ref),
            ).fetchone()
        return row["id"]

    def get_control_by_id(self, control_id: str) -> dict[str, Any] | None:
        return self._fetch_one("SELECT * FROM controls WHERE id = ?", (control_id,))

    def update_control_note(self, control_id: str, note: str | None) -> None:
        affected = self._update(
            "UPDATE controls SET attestation = ?, updated_at = ? WHERE id = ?",
            (note, utc_now_iso(), control_id),
        )
        if affected == 0:
            raise NotFoundError(f"control {control_id} not found")

    # activity

    def log_activity(
        self,
        org_id: str,
        action: str,
        actor_id: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        with connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO activity_log (org_id, actor_id, action, entity_type, entity_id, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (org_id, actor_id, action, entity_type, entity_id, _to_sqlite_text(metadata), utc_now_iso()),
            )
            conn.commit()

    def list_activity(self, org_id: str, limit: int = 50) -> list[dict[str, Any]]:
        return self._fetch_all(
            "SELECT * FROM activity_log WHERE org_id = ? ORDER BY id DESC LIMIT ?",
            (org_id, limit),
        )

    # compliance plans

    def create_compliance_plan(
        self,
        report_id: str,
        company_id: str | None,
        user_id: str | None,
        title: str,
        steps: list[dict[str, Any]],
    ) -> str:
        plan_id = _new_id()
        now = utc_now_iso()
        try:
            with connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO compliance_plans (id, report_id, company_id, user_id, title, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (plan_id, report_id, company_id, user_id, title, now, now),
                )
                conn.executemany(
                    "INSERT INTO compliance_steps (plan_id, step_number, title, description) VALUES (?, ?, ?, ?)",
                    [(plan_id, step["step_number"], step["title"], step.get("description")) for step in steps],
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"could not persist compliance plan for report {report_id}: {exc}") from exc
        LOGGER.info("Persisted compliance plan %s with %s steps", plan_id, len(steps))
        return plan_id

    def get_compliance_plan(self, plan_id: str) -> dict[str, Any] | None:
        plan = self._fetch_one("SELECT * FROM compliance_plans WHERE id = ?", (plan_id,))
        if plan is None:
            return None
        plan["steps"] = self._fetch_all(
            "SELECT * FROM compliance_steps WHERE plan_id = ? ORDER BY step_number ASC",
            (plan_id,),
        )
        return plan

    def set_step_completed(self, plan_id: str, step_id: int, completed: bool) -> str:
        """Flip one step and recompute the plan status from its steps. Returns the new plan status."""
        with connect(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE compliance_steps SET is_completed = ? WHERE id = ? AND plan_id = ?",
                (int(completed), step_id, plan_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"step {step_id} not found in compliance plan {plan_id}")
            row = conn.execute(
                "SELECT COUNT(*) AS total, COALESCE(SUM(is_completed), 0) AS done FROM compliance_steps WHERE plan_id = ?",
                (plan_id,),
            ).fetchone()
            status = plan_status(row["total"], row["done"])
            conn.execute(
                "UPDATE compliance_plans SET status = ?, updated_at = ? WHERE id = ?",
                (status, utc_now_iso(), plan_id),
            )
            conn.commit()
        return status
