"""
audit_pipeline.py - Single-shot ethics audit of model metadata.

The report's metadata is embedded in a prompt for the text model. A JSON
answer becomes the result; anything else is kept as the summary of a
default-scored result. The raw model output is always uploaded as a
diagnostic artifact and referenced from result.artifacts.raw_output.
"""

import json
import logging
from typing import Any

from worker.ai.inference_client import InferenceClient
from worker.ai.json_output import parse_json_object
from worker.core.run_context import RunContext
from worker.models.report import Report
from worker.services.object_storage import ObjectStorage

logger = logging.getLogger(__name__)

SUMMARY_MAX_CHARS = 1000

# Placeholder scores used when the model answer cannot be parsed
DEFAULT_SCORES = {"transparency": 60, "fairness": 50, "privacy": 60, "robustness": 55}

_AUDIT_PROMPT = """\
You are an ethics auditor. Given the model metadata below produce JSON with fields: \
summary,type='audit',scores{{transparency,fairness,privacy,robustness}},metrics,flagged_issues[],recommendations[]. \
Output JSON only.

MODEL METADATA:

{metadata}"""


def build_audit_prompt(metadata: dict[str, Any]) -> str:
    return _AUDIT_PROMPT.format(metadata=json.dumps(metadata, indent=2, default=str))


def fallback_audit(raw: str) -> dict[str, Any]:
    return {
        "summary": raw[:SUMMARY_MAX_CHARS],
        "type": "audit",
        "scores": dict(DEFAULT_SCORES),
        "metrics": {},
        "flagged_issues": [],
        "recommendations": [],
    }


class AuditPipeline:
    def __init__(self, storage: ObjectStorage, inference: InferenceClient) -> None:
        self.storage = storage
        self.inference = inference

    async def run(self, report: Report, ctx: RunContext) -> dict[str, Any]:
        logger.info("Starting audit pipeline (report=%s, run=%s)", report.id, ctx.run_id)

        raw = await self.inference.text_inference(
            build_audit_prompt(report.metadata or {}), response_key="audit"
        )

        parsed = parse_json_object(raw)
        if parsed is None:
            logger.warning("Audit model output was not a JSON object; using default scores")
            result = fallback_audit(raw)
        else:
            result = dict(parsed)
            if not result.get("summary"):
                result["summary"] = raw[:SUMMARY_MAX_CHARS]
            result.setdefault("type", "audit")

        raw_local = ctx.temp_path(f"audit-raw-{ctx.run_id}.txt")
        raw_local.write_text(raw, encoding="utf-8")
        artifact_uri = await self.storage.upload(
            raw_local, f"diagnostics/audit-raw-{ctx.run_id}.txt"
        )

        artifacts = result.get("artifacts")
        result["artifacts"] = dict(artifacts) if isinstance(artifacts, dict) else {}
        result["artifacts"]["raw_output"] = artifact_uri

        logger.info("Audit pipeline complete (report=%s)", report.id)
        return result
