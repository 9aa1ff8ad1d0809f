from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx

from insight.advisory import AdvisoryChannel
from insight.config import Settings
from insight.derivation import apply_assessment
from insight.errors import InsightError, ValidationError
from insight.evidence import gather_evidence
from insight.llm import CompletionClient
from insight.models import SUBJECT_KINDS, ScanOutcome, ScanRequest, SubjectRef
from insight.search import SearchGateway
from insight.storage import Store
from insight.synthesis import RiskSynthesizer

LOGGER = logging.getLogger(__name__)


def validate_scan_request(request: ScanRequest) -> ScanRequest:
    name = (request.subject_name or "").strip()
    if not name:
        raise ValidationError("subject name is required")
    if request.kind not in SUBJECT_KINDS:
        raise ValidationError(f"unsupported subject kind: {request.kind}")
    request.subject_name = name
    return request


class ScanPipeline:
    """Evidence gathering, synthesis and persistence for one subject per run."""

    def __init__(self, store: Store, gateway: SearchGateway, synthesizer: RiskSynthesizer) -> None:
        self.store = store
        self.gateway = gateway
        self.synthesizer = synthesizer

    async def execute(self, request: ScanRequest, report_id: str | None) -> ScanOutcome:
        corpus = await gather_evidence(self.gateway, request.subject_name)
        if report_id:
            await asyncio.to_thread(self.store.save_evidence, report_id, corpus)
        assessment = await self.synthesizer.synthesize(request.subject_name, corpus)
        failed = await apply_assessment(self.store, SubjectRef.from_request(request, report_id), assessment)
        return ScanOutcome(success=True, report_id=report_id, assessment=assessment, failed_writes=failed)

    async def run(self, request: ScanRequest) -> ScanOutcome:
        request = validate_scan_request(request)
        report_id = request.report_id
        if report_id is None:
            report_id = await asyncio.to_thread(
                self.store.create_report,
                request.subject_name,
                request.kind,
                request.url,
                request.org_id,
                request.user_id,
            )

        LOGGER.info("Starting scan for subject=%s kind=%s report=%s", request.subject_name, request.kind, report_id)
        try:
            outcome = await self.execute(request, report_id)
        except InsightError as exc:
            LOGGER.exception("Scan failed for subject=%s", request.subject_name)
            if report_id:
                await self._mark_error(report_id, str(exc))
            return ScanOutcome(success=False, report_id=report_id, error=str(exc))

        if outcome.failed_writes:
            LOGGER.warning("Scan for %s completed with failed writes: %s", request.subject_name, outcome.failed_writes)
        return outcome

    async def _mark_error(self, report_id: str, message: str) -> None:
        try:
            await asyncio.to_thread(self.store.mark_report_error, report_id, message)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Could not mark report %s as errored: %s", report_id, exc)


@dataclass
class Services:
    settings: Settings
    store: Store
    completion: CompletionClient
    pipeline: ScanPipeline
    advisory: AdvisoryChannel


def build_services(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> Services:
    store = Store(settings.db_path)
    store.init_db()
    completion = CompletionClient(settings.completion, transport=transport)
    gateway = SearchGateway(settings.search, transport=transport)
    pipeline = ScanPipeline(store, gateway, RiskSynthesizer(completion))
    return Services(
        settings=settings,
        store=store,
        completion=completion,
        pipeline=pipeline,
        advisory=AdvisoryChannel(store, completion),
    )
