from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from insight.assessment import Assessment


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReportStatus(str, Enum):
    GATHERING = "gathering"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"


SUBJECT_KINDS = {"service", "vendor"}
TOOL_STATUSES = {"pending", "approved", "rejected", "sunset"}
CONTROL_STATUSES = {"compliant", "non_compliant", "not_applicable"}
WORKFLOW_STAGES = {"draft", "review", "approved", "rejected"}
PLAN_STATUSES = {"active", "in_progress", "completed"}


def plan_status(total_steps: int, completed_steps: int) -> str:
    if total_steps > 0 and completed_steps >= total_steps:
        return "completed"
    if completed_steps > 0:
        return "in_progress"
    return "active"


@dataclass
class SearchResult:
    title: str
    link: str
    snippet: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SearchBatch:
    query: str
    results: list[SearchResult] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchBatch":
        results = [
            SearchResult(
                title=str(item.get("title") or ""),
                link=str(item.get("link") or ""),
                snippet=str(item.get("snippet") or ""),
            )
            for item in data.get("results") or []
        ]
        return cls(query=str(data.get("query") or ""), results=results)

    def to_dict(self) -> dict[str, Any]:
        return {"query": self.query, "results": [result.to_dict() for result in self.results]}


def corpus_to_payload(corpus: list[SearchBatch]) -> list[dict[str, Any]]:
    return [batch.to_dict() for batch in corpus]


def corpus_from_payload(payload: list[dict[str, Any]] | None) -> list[SearchBatch]:
    return [SearchBatch.from_dict(item) for item in payload or []]


@dataclass
class ScanRequest:
    subject_name: str
    url: str | None = None
    kind: str = "service"
    org_id: str | None = None
    user_id: str | None = None
    tool_id: str | None = None
    request_id: str | None = None
    report_id: str | None = None


@dataclass
class SubjectRef:
    """Where an assessment lands: the report plus the records it fans out to."""

    subject_name: str
    report_id: str | None = None
    kind: str = "service"
    url: str | None = None
    org_id: str | None = None
    tool_id: str | None = None
    request_id: str | None = None

    @classmethod
    def from_request(cls, request: ScanRequest, report_id: str | None) -> "SubjectRef":
        return cls(
            subject_name=request.subject_name,
            report_id=report_id,
            kind=request.kind,
            url=request.url,
            org_id=request.org_id,
            tool_id=request.tool_id,
            request_id=request.request_id,
        )


@dataclass
class ScanOutcome:
    success: bool
    report_id: str | None
    assessment: "Assessment | None" = None
    error: str | None = None
    failed_writes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "reportId": self.report_id,
            "analysis": self.assessment.to_payload() if self.assessment else None,
            "error": self.error,
            "failedWrites": list(self.failed_writes),
        }
