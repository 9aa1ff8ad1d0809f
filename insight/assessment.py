from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

VULNERABILITY_CATEGORIES = (
    "dataPrivacy",
    "promptInjection",
    "modelBias",
    "infrastructureSecurity",
    "outputReliability",
    "complianceRisk",
)


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CategoryScore(_Schema):
    score: int = Field(ge=1, le=10)
    details: str = ""


class Vulnerabilities(_Schema):
    data_privacy: CategoryScore = Field(alias="dataPrivacy")
    prompt_injection: CategoryScore = Field(alias="promptInjection")
    model_bias: CategoryScore = Field(alias="modelBias")
    infrastructure_security: CategoryScore = Field(alias="infrastructureSecurity")
    output_reliability: CategoryScore = Field(alias="outputReliability")
    compliance_risk: CategoryScore = Field(alias="complianceRisk")

    def by_category(self) -> dict[str, CategoryScore]:
        return {
            "dataPrivacy": self.data_privacy,
            "promptInjection": self.prompt_injection,
            "modelBias": self.model_bias,
            "infrastructureSecurity": self.infrastructure_security,
            "outputReliability": self.output_reliability,
            "complianceRisk": self.compliance_risk,
        }


class KnowledgeItem(_Schema):
    title: str
    source: str = ""
    url: str = ""
    date: str = "Recent"
    snippet: str = ""
    credibility: Literal["High", "Medium", "Low"] = "Medium"

    @field_validator("credibility", mode="before")
    @classmethod
    def _normalize_credibility(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().capitalize()
        return value


class Competitor(_Schema):
    name: str
    trust_score: int = Field(alias="trustScore", ge=0, le=100)
    pricing: str = ""
    security_features: str = Field(default="", alias="securityFeatures")
    compliance: str = ""


class Assessment(_Schema):
    trust_score: int = Field(alias="trustScore", ge=0, le=100)
    executive_summary: str = Field(alias="executiveSummary")
    vulnerabilities: Vulnerabilities
    knowledge_feed: list[KnowledgeItem] = Field(default_factory=list, alias="knowledgeFeed")
    competitors: list[Competitor] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Assessment":
        return cls.model_validate(payload)


class Recommendation(_Schema):
    title: str
    description: str = ""
    priority: Literal["high", "medium", "low"] = "medium"

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class MaturityNarrative(_Schema):
    score: int | None = None
    grade: str | None = None
    strengths: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)


class PlanStep(_Schema):
    step_number: int = Field(ge=1)
    title: str
    description: str = ""
