from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ScanBody(_Body):
    subject_name: str = Field(alias="subjectName")
    url: str | None = None
    kind: str = "service"
    tool_id: str | None = Field(default=None, alias="toolId")
    request_id: str | None = Field(default=None, alias="requestId")
    report_id: str | None = Field(default=None, alias="reportId")


class AdvisorBody(_Body):
    messages: list[dict[str, Any]]
    include_org_context: bool = Field(default=False, alias="includeOrgContext")


class ToolBody(_Body):
    name: str
    url: str | None = None
    category: str | None = None
    description: str | None = None
    status: str = "pending"


class ControlBody(_Body):
    framework: str
    control_ref: str = Field(alias="controlRef")
    status: str
    attestation: str | None = None


class CompliancePlanBody(_Body):
    report_id: str = Field(alias="reportId")


class ToolStatusBody(_Body):
    status: str


class RequestBody(_Body):
    tool_name: str = Field(alias="toolName")
    url: str | None = None
    notes: str | None = None


class RequestStageBody(_Body):
    workflow_stage: str = Field(alias="workflowStage")


class ControlToggleBody(_Body):
    framework: str
    control_ref: str = Field(alias="controlRef")


class AttestationNoteBody(_Body):
    attestation: str | None = None


class PlanStepBody(_Body):
    is_completed: bool = Field(default=True, alias="isCompleted")
