"""
runner.py - Lifecycle of one worker run.

  Fetch → (skip if already completed/failed) → Dispatch by report.type →
  Persist completed | Persist failed → Cleanup (always)

This is the only place that turns an error into a persisted status. The
failure patch is best-effort: if it fails too, that is logged and the run
ends as failed without raising.

Known gap: nothing claims the report before processing, so two concurrent
runs on the same pending report both pass the status check and both patch
(last write wins).
"""

import logging
from enum import Enum
from typing import Any, Protocol

from worker.ai.audit_pipeline import AuditPipeline
from worker.ai.deepfake_pipeline import DeepfakePipeline
from worker.ai.inference_client import InferenceClient
from worker.core.config import Settings
from worker.core.errors import UnknownReportType
from worker.core.run_context import RunContext
from worker.models.report import TERMINAL_STATUSES, Report
from worker.services.object_storage import ObjectStorage
from worker.services.report_store import ReportStoreClient

logger = logging.getLogger(__name__)

FAILURE_SUMMARY = "worker failed"


class RunOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class Pipeline(Protocol):
    async def run(self, report: Report, ctx: RunContext) -> dict[str, Any]: ...


class ReportRunner:
    def __init__(
        self,
        settings: Settings,
        store: ReportStoreClient,
        storage: ObjectStorage,
        inference: InferenceClient,
        pipelines: dict[str, Pipeline] | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.pipelines: dict[str, Pipeline] = pipelines or {
            "deepfake": DeepfakePipeline(settings, storage, inference),
            "audit": AuditPipeline(storage, inference),
        }

    def select_pipeline(self, report_type: str) -> Pipeline:
        try:
            return self.pipelines[report_type]
        except KeyError:
            raise UnknownReportType(report_type) from None

    async def run(self, report_id: str) -> RunOutcome:
        logger.info("Worker processing report: %s", report_id)

        try:
            # Opening the context creates TEMP_DIR, so it is guarded too
            with RunContext.open(report_id, self.settings.temp_dir) as ctx:
                report = await self.store.get(report_id)
                if report.status in TERMINAL_STATUSES:
                    logger.info("Report already %s; skipping: %s", report.status, report_id)
                    return RunOutcome.SKIPPED

                pipeline = self.select_pipeline(report.type)
                result = await pipeline.run(report, ctx)
                await self.store.patch(report_id, result, "completed")
        except Exception as exc:
            logger.exception("Worker error for report %s: %s", report_id, exc)
            await self._persist_failure(report_id, exc)
            return RunOutcome.FAILED

        logger.info("Report %s completed (run=%s)", report_id, ctx.run_id)
        return RunOutcome.COMPLETED

    async def _persist_failure(self, report_id: str, exc: Exception) -> None:
        try:
            await self.store.patch(
                report_id,
                {"summary": FAILURE_SUMMARY, "notes": str(exc) or exc.__class__.__name__},
                "failed",
            )
        except Exception as patch_exc:
            logger.error("Failed to mark report %s as failed: %s", report_id, patch_exc)


def build_runner(settings: Settings) -> ReportRunner:
    """Wire the production collaborators from one Settings instance."""
    return ReportRunner(
        settings,
        store=ReportStoreClient(settings),
        storage=ObjectStorage(settings),
        inference=InferenceClient(settings),
    )
