from __future__ import annotations

import asyncio
import logging
import os
import time
from collections import defaultdict, deque
from threading import Lock

import httpx
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from insight.compliance import (
    attest_control,
    catalog_with_stats,
    complete_plan_step,
    generate_compliance_plan,
    toggle_control,
    update_attestation_note,
)
from insight.config import Settings, resolve_settings
from insight.errors import (
    ConfigurationError,
    InsightError,
    NotFoundError,
    PersistenceError,
    QuotaExceededError,
    RateLimitError,
    SynthesisError,
    TransportError,
    ValidationError,
)
from insight.maturity import derive_maturity
from insight.models import TOOL_STATUSES, ScanRequest
from insight.pipeline import Services, build_services
from insight.workflow import advance_request, set_tool_status, submit_request
from portal.identity import Identity, get_identity, require_org
from portal.monitoring import router as monitoring_router
from portal.schemas import (
    AdvisorBody,
    AttestationNoteBody,
    CompliancePlanBody,
    ControlBody,
    ControlToggleBody,
    PlanStepBody,
    RequestBody,
    RequestStageBody,
    ScanBody,
    ToolBody,
    ToolStatusBody,
)

LOGGER = logging.getLogger(__name__)

APP_TITLE = "Aegis Insight Portal"

_RATE_LIMIT_EXCLUDED_PATHS = {"/api/health", "/api/ready", "/api/metrics"}

# most specific first
_ERROR_STATUS: list[tuple[type[InsightError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (RateLimitError, 429),
    (QuotaExceededError, 402),
    (TransportError, 502),
    (SynthesisError, 502),
    (ConfigurationError, 503),
    (PersistenceError, 500),
]


def status_for_error(exc: InsightError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


class SlidingWindowLimiter:
    """Per-client request counter over a sliding time window."""

    def __init__(self, max_requests: int, window_seconds: int) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._timestamps: dict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def is_limited(self, client_id: str, now: float) -> bool:
        with self._lock:
            bucket = self._timestamps[client_id]
            threshold = now - self.window_seconds
            while bucket and bucket[0] < threshold:
                bucket.popleft()
            if len(bucket) >= self.max_requests:
                return True
            bucket.append(now)
        return False


def _client_key(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return "unknown"


def get_services(request: Request) -> Services:
    return request.app.state.services


def _log_activity(services: Services, identity: Identity, action: str, entity_type: str, entity_id: str | None, metadata=None) -> None:
    if not identity.org_id:
        return
    try:
        services.store.log_activity(
            identity.org_id,
            action,
            actor_id=identity.user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata,
        )
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("Could not record activity %s for org %s: %s", action, identity.org_id, exc)


def create_app(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    app = FastAPI(title=APP_TITLE)
    app.state.services = build_services(settings, transport=transport)
    app.state.limiter = SlidingWindowLimiter(
        settings.portal.rate_limit_requests,
        settings.portal.rate_limit_window_seconds,
    )

    # Add monitoring endpoints
    app.include_router(monitoring_router, prefix="/api")

    @app.middleware("http")
    async def security_middleware(request: Request, call_next):
        if request.url.path.startswith("/api") and request.url.path not in _RATE_LIMIT_EXCLUDED_PATHS:
            limiter: SlidingWindowLimiter = request.app.state.limiter
            if limiter.is_limited(_client_key(request), time.monotonic()):
                return JSONResponse(
                    status_code=429,
                    content={"detail": "Rate limit exceeded. Retry later."},
                    headers={"Retry-After": str(limiter.window_seconds)},
                )

        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.exception_handler(InsightError)
    async def insight_error_handler(request: Request, exc: InsightError) -> JSONResponse:
        status_code = status_for_error(exc)
        if status_code >= 500:
            LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    # ──────────────────────────────────────────────────────────────────────
    # Scans and reports
    # ──────────────────────────────────────────────────────────────────────

    @app.post("/api/scans")
    async def run_scan(
        body: ScanBody,
        identity: Identity = Depends(get_identity),
        services: Services = Depends(get_services),
    ) -> JSONResponse:
        """Research a service or vendor and persist its assessment."""
        outcome = await services.pipeline.run(
            ScanRequest(
                subject_name=body.subject_name,
                url=body.url,
                kind=body.kind,
                org_id=identity.org_id,
                user_id=identity.user_id,
                tool_id=body.tool_id,
                request_id=body.request_id,
                report_id=body.report_id,
            )
        )
        await asyncio.to_thread(
            _log_activity,
            services,
            identity,
            "scan_completed" if outcome.success else "scan_failed",
            body.kind,
            outcome.report_id,
            {"subject": body.subject_name, "trustScore": outcome.assessment.trust_score if outcome.assessment else None},
        )
        return JSONResponse(status_code=200 if outcome.success else 502, content=outcome.to_dict())

    @app.get("/api/reports")
    def get_reports(
        limit: int = Query(50, ge=1, le=500),
        identity: Identity = Depends(require_org),
        services: Services = Depends(get_services),
    ) -> list[dict]:
        return services.store.list_reports(identity.org_id, limit=limit)

    @app.get("/api/reports/{report_id}")
    def get_report(report_id: str, services: Services = Depends(get_services)) -> dict:
        report = services.store.get_report(report_id)
        if report is None:
            raise NotFoundError(f"report {report_id} not found")
        return report

    # ──────────────────────────────────────────────────────────────────────
    # Governance
    # ──────────────────────────────────────────────────────────────────────

    @app.post("/api/maturity")
    async def compute_maturity(
        identity: Identity = Depends(require_org),
        services: Services = Depends(get_services),
    ) -> dict:
        """Governance maturity score with an optional narrative."""
        result = await derive_maturity(services.store, services.completion, identity.org_id)
        return result.to_dict()

    @app.post("/api/advisor")
    async def advisor(
        body: AdvisorBody,
        identity: Identity = Depends(get_identity),
        services: Services = Depends(get_services),
    ) -> StreamingResponse:
        """
        Stream an advisory answer as server-sent events.
        Upstream failures before the first frame come back as JSON errors.
        """
        org_id = identity.org_id if body.include_org_context else None
        frames = await services.advisory.open_stream(body.messages, org_id=org_id)
        return StreamingResponse(frames, media_type="text/event-stream")

    @app.get("/api/tools")
    def get_tools(identity: Identity = Depends(require_org), services: Services = Depends(get_services)) -> list[dict]:
        return services.store.list_tools(identity.org_id)

    @app.post("/api/tools")
    def create_tool(
        body: ToolBody,
        identity: Identity = Depends(require_org),
        services: Services = Depends(get_services),
    ) -> dict:
        """Register an AI tool for the organization."""
        name = body.name.strip()
        if not name:
            raise ValidationError("tool name is required")
        if body.status not in TOOL_STATUSES:
            raise ValidationError(f"invalid tool status: {body.status}")
        tool_id = services.store.create_tool(
            identity.org_id,
            name,
            url=body.url,
            category=body.category,
            status=body.status,
            created_by=identity.user_id,
            description=body.description,
        )
        _log_activity(services, identity, "tool_created", "tool", tool_id, {"name": name})
        return services.store.get_tool(tool_id)

    @app.patch("/api/tools/{tool_id}")
    def patch_tool(
        tool_id: str,
        body: ToolStatusBody,
        identity: Identity = Depends(require_org),
        services: Services = Depends(get_services),
    ) -> dict:
        tool = set_tool_status(services.store, tool_id, body.status, org_id=identity.org_id)
        _log_activity(services, identity, "tool_status_changed", "tool", tool_id, {"status": body.status})
        return tool

    # ──────────────────────────────────────────────────────────────────────
    # Tool requests
    # ──────────────────────────────────────────────────────────────────────

    @app.get("/api/requests")
    def get_requests(identity: Identity = Depends(require_org), services: Services = Depends(get_services)) -> list[dict]:
        return services.store.list_requests(identity.org_id)

    @app.post("/api/requests")
    async def create_request(
        body: RequestBody,
        identity: Identity = Depends(require_org),
        services: Services = Depends(get_services),
    ) -> JSONResponse:
        """Request a new tool and run its security scan."""
        submission = await submit_request(
            services.store,
            services.pipeline,
            identity.org_id,
            identity.user_id,
            body.tool_name,
            url=body.url,
            notes=body.notes,
        )
        await asyncio.to_thread(
            _log_activity,
            services,
            identity,
            "request_created",
            "request",
            submission.request_id,
            {"toolName": body.tool_name.strip(), "scanSucceeded": submission.outcome.success},
        )
        return JSONResponse(status_code=200 if submission.outcome.success else 502, content=submission.to_dict())

    @app.patch("/api/requests/{request_id}")
    def patch_request(
        request_id: str,
        body: RequestStageBody,
        identity: Identity = Depends(require_org),
        services: Services = Depends(get_services),
    ) -> dict:
        """Move a request through review; approval and rejection carry over to its tool."""
        request_record = advance_request(
            services.store, request_id, body.workflow_stage, identity.user_id, org_id=identity.org_id
        )
        _log_activity(services, identity, "request_stage_changed", "request", request_id, {"stage": body.workflow_stage})
        return request_record

    @app.get("/api/vendors")
    def get_vendors(identity: Identity = Depends(require_org), services: Services = Depends(get_services)) -> list[dict]:
        return services.store.list_vendors(identity.org_id)

    @app.get("/api/frameworks")
    def get_frameworks(identity: Identity = Depends(require_org), services: Services = Depends(get_services)) -> list[dict]:
        return catalog_with_stats(services.store.list_controls(identity.org_id))

    @app.get("/api/controls")
    def get_controls(identity: Identity = Depends(require_org), services: Services = Depends(get_services)) -> list[dict]:
        return services.store.list_controls(identity.org_id)

    @app.put("/api/controls")
    def put_control(
        body: ControlBody,
        identity: Identity = Depends(require_org),
        services: Services = Depends(get_services),
    ) -> dict:
        """Attest a compliance control."""
        control = attest_control(
            services.store,
            identity.org_id,
            body.framework,
            body.control_ref,
            body.status,
            identity.user_id,
            note=body.attestation,
        )
        _log_activity(
            services,
            identity,
            "control_attested",
            "control",
            control["id"],
            {"framework": body.framework, "controlRef": body.control_ref, "status": body.status},
        )
        return control

    @app.post("/api/controls/toggle")
    def post_control_toggle(
        body: ControlToggleBody,
        identity: Identity = Depends(require_org),
        services: Services = Depends(get_services),
    ) -> dict:
        """Flip a control between compliant and not applicable."""
        control = toggle_control(services.store, identity.org_id, body.framework, body.control_ref, identity.user_id)
        _log_activity(
            services,
            identity,
            "control_attested",
            "control",
            control["id"],
            {"framework": body.framework, "controlRef": body.control_ref, "status": control["status"]},
        )
        return control

    @app.patch("/api/controls/{control_id}/attestation")
    def patch_control_attestation(
        control_id: str,
        body: AttestationNoteBody,
        identity: Identity = Depends(require_org),
        services: Services = Depends(get_services),
    ) -> dict:
        """Replace the attestation note; an empty or null note clears it."""
        control = update_attestation_note(services.store, control_id, body.attestation, org_id=identity.org_id)
        _log_activity(services, identity, "control_note_updated", "control", control_id)
        return control

    @app.post("/api/compliance-plans")
    async def create_compliance_plan(
        body: CompliancePlanBody,
        identity: Identity = Depends(get_identity),
        services: Services = Depends(get_services),
    ) -> dict:
        plan_id = await generate_compliance_plan(
            services.store,
            services.completion,
            body.report_id,
            identity.user_id,
            company_id=identity.org_id,
        )
        await asyncio.to_thread(
            _log_activity, services, identity, "compliance_plan_generated", "compliance_plan", plan_id, {"reportId": body.report_id}
        )
        return {"planId": plan_id}

    @app.get("/api/compliance-plans/{plan_id}")
    def get_compliance_plan(plan_id: str, services: Services = Depends(get_services)) -> dict:
        plan = services.store.get_compliance_plan(plan_id)
        if plan is None:
            raise NotFoundError(f"compliance plan {plan_id} not found")
        return plan

    @app.patch("/api/compliance-plans/{plan_id}/steps/{step_id}")
    def patch_compliance_step(
        plan_id: str,
        step_id: int,
        body: PlanStepBody,
        identity: Identity = Depends(get_identity),
        services: Services = Depends(get_services),
    ) -> dict:
        plan = complete_plan_step(services.store, plan_id, step_id, body.is_completed)
        _log_activity(
            services,
            identity,
            "compliance_step_updated",
            "compliance_plan",
            plan_id,
            {"stepId": step_id, "isCompleted": body.is_completed, "planStatus": plan["status"]},
        )
        return plan

    @app.get("/api/activity")
    def get_activity(
        limit: int = Query(50, ge=1, le=500),
        identity: Identity = Depends(require_org),
        services: Services = Depends(get_services),
    ) -> list[dict]:
        return services.store.list_activity(identity.org_id, limit=limit)

    return app


def build_app() -> FastAPI:
    """Application factory for `uvicorn portal.app:build_app --factory`."""
    return create_app(resolve_settings(os.getenv("AEGIS_SETTINGS")))


def main() -> None:
    import uvicorn

    uvicorn.run(
        "portal.app:build_app",
        factory=True,
        host=os.getenv("PORTAL_HOST", "0.0.0.0"),
        port=int(os.getenv("PORTAL_PORT", "8080")),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
