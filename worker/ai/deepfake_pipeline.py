"""
deepfake_pipeline.py - Frame-sampling deepfake analysis for a stored video.

Stages:
  1. Download      - fetch the report's video from object storage.
  2. Extract       - ffmpeg samples frames at FRAMES_PER_SECOND; zero frames
                     fails the run.
  3. Classify      - the first MAX_FRAMES frames, one at a time, in order.
                     A failed frame becomes an error marker, not a failure.
  4. Aggregate     - votes + confidence → AggregateVerdict.
  5. Synthesise    - report model sees the aggregate stats, per-frame labels
                     and up to 3 frames; unparseable output falls back to a
                     report built from the aggregate.
  6. Diagnostics   - frame results, aggregate and parsed report uploaded as
                     one JSON bundle.

The returned dict is what gets persisted into Report.result.
"""

import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from worker.ai.fallback import Strategy, first_success
from worker.ai.frame_aggregator import aggregate_frame_results
from worker.ai.inference_client import InferenceClient
from worker.ai.json_output import as_text, parse_json_object
from worker.core.config import Settings
from worker.core.errors import ExtractionError, MissingInputError
from worker.core.run_context import RunContext
from worker.models.frames import (
    VERDICTS,
    AggregateVerdict,
    ErrorOutput,
    FrameResult,
    StructuredOutput,
)
from worker.models.report import Report
from worker.services.frame_extractor import extract_frames
from worker.services.object_storage import ObjectStorage

logger = logging.getLogger(__name__)

FrameExtractor = Callable[..., Awaitable[list[Path]]]

REPORT_IMAGE_COUNT = 3
ANNOTATED_FRAMES = 3
FALLBACK_EVIDENCE_LINES = 6
SUMMARY_MAX_CHARS = 1000


_SYNTH_PROMPT = """\
You are an expert forensic analyst. Using the evidence below (frame classifier labels and confidences), \
produce JSON with fields: summary, type='deepfake', verdict(one of 'likely_fake','likely_real','inconclusive'), \
confidence(0-100), evidence[], recommendations[].

AGGREGATED STATS:

{stats}

SAMPLE FRAME RESULTS (frame: label [score]):

{frames}

Make evidence[] an array of short strings citing frame filenames and reasons. Keep JSON valid. \
If unsure, set verdict to 'inconclusive'."""


# ── Formatting helpers ────────────────────────────────────────────────────────

def summarize_frame(fr: FrameResult) -> str:
    """One prompt line per frame: 'frame: label score=NN'."""
    out = fr.output
    if isinstance(out, ErrorOutput):
        return f"{fr.frame}: ERROR({out.message})"
    if isinstance(out, StructuredOutput):
        best = out.top
        score = f"score={round(best.score * 100)}" if best.score else ""
        return f"{fr.frame}: {best.label} {score}".rstrip()
    return f"{fr.frame}: {json.dumps(fr.to_dict(), default=str)[:200]}"


def annotate_frame(fr: FrameResult) -> dict[str, Any]:
    out = fr.output
    if isinstance(out, ErrorOutput):
        reason = f"error: {out.message}"
    elif isinstance(out, StructuredOutput):
        best = out.top
        reason = f"{best.label} ({round((best.score or 0) * 100)}%)"
    else:
        reason = json.dumps(fr.to_dict(), default=str)[:200]
    return {"frame": fr.frame, "reason": reason, "heatmap": None}


def _pick_verdict(parsed: dict, agg: AggregateVerdict) -> str:
    verdict = parsed.get("verdict")
    return verdict if verdict in VERDICTS else agg.verdict


def _pick_confidence(parsed: dict, agg: AggregateVerdict) -> float:
    conf = parsed.get("confidence")
    if isinstance(conf, (int, float)) and not isinstance(conf, bool):
        return max(0, min(100, conf))
    return agg.confidence


# ── Pipeline ──────────────────────────────────────────────────────────────────

class DeepfakePipeline:
    """Runs one deepfake report end-to-end and returns its result payload."""

    def __init__(
        self,
        settings: Settings,
        storage: ObjectStorage,
        inference: InferenceClient,
        extractor: FrameExtractor = extract_frames,
    ) -> None:
        self.settings = settings
        self.storage = storage
        self.inference = inference
        self.extractor = extractor

    async def run(self, report: Report, ctx: RunContext) -> dict[str, Any]:
        if not report.file_url:
            raise MissingInputError("report.fileUrl missing")

        logger.info("Starting deepfake pipeline (report=%s, run=%s)", report.id, ctx.run_id)

        local_video = await self.storage.download(report.file_url, ctx.temp_dir)
        ctx.register(local_video)

        frames_dir = ctx.temp_path(f"frames-{ctx.run_id}")
        frames = await self.extractor(
            local_video,
            frames_dir,
            self.settings.frames_per_second,
            ffmpeg_bin=self.settings.ffmpeg_bin,
        )
        if not frames:
            raise ExtractionError("No frames extracted")

        sample = list(frames)[: self.settings.max_frames]
        frame_results = await self._classify(sample)

        agg = aggregate_frame_results(frame_results)
        logger.info(
            "Aggregate: verdict=%s confidence=%d ratio=%.2f (%d/%d fake votes)",
            agg.verdict, agg.confidence, agg.ratio, agg.fake_votes, agg.total,
        )

        summaries = [summarize_frame(fr) for fr in frame_results]
        prompt = _SYNTH_PROMPT.format(
            stats=json.dumps(agg.to_dict(), indent=2),
            frames="\n".join(summaries),
        )
        parsed = await self._synthesise(prompt, sample[:REPORT_IMAGE_COUNT], agg, summaries)

        diag = {
            "sampledFrames": [p.name for p in sample],
            "frameResults": [fr.to_dict() for fr in frame_results],
            "aggregator": agg.to_dict(),
            "parsedReport": parsed,
        }
        diag_local = ctx.temp_path(f"diag-deepfake-{ctx.run_id}.json")
        diag_local.write_text(json.dumps(diag, indent=2, default=str), encoding="utf-8")
        artifact_uri = await self.storage.upload(
            diag_local, f"diagnostics/deepfake-{ctx.run_id}.json"
        )

        verdict = _pick_verdict(parsed, agg)
        confidence = _pick_confidence(parsed, agg)
        logger.info("Deepfake pipeline complete: verdict=%s confidence=%s", verdict, confidence)

        return {
            "summary": parsed.get("summary") or f"Deepfake analysis: {agg.verdict} (conf {agg.confidence})",
            "type": "deepfake",
            "verdict": verdict,
            "confidence": confidence,
            "traces": {
                "temporal_inconsistency": agg.ratio,
                "facial_artifact_score": agg.ratio,
                "metadata_mismatch_score": 0,
            },
            "frame_annotations": [annotate_frame(fr) for fr in frame_results[:ANNOTATED_FRAMES]],
            "notes": (
                f"sampled={len(sample)}, "
                f"frameClassifier={self.settings.hf_frame_classifier_model}, "
                f"reportModel={self._report_model_name()}"
            ),
            "artifacts": {"diagnostic": artifact_uri},
            "raw": {"parsedReport": parsed},
        }

    async def _classify(self, sample: list[Path]) -> list[FrameResult]:
        results = []
        for frame in sample:
            try:
                output = await self.inference.classify_frame(frame)
            except Exception as exc:
                logger.warning("Frame classification failed for %s: %s", frame.name, exc)
                output = ErrorOutput(str(exc) or "classifier error")
            results.append(FrameResult(frame=frame.name, output=output))
        return results

    async def _synthesise(
        self,
        prompt: str,
        images: list[Path],
        agg: AggregateVerdict,
        summaries: list[str],
    ) -> dict[str, Any]:
        raw = await first_success(
            [Strategy("report-model", lambda: self.inference.report_inference(prompt, images))],
            default=lambda: None,
        )
        parsed = parse_json_object(raw)
        if parsed is not None:
            return parsed

        logger.warning("Report model output was not a JSON object; using aggregate verdict")
        summary = (
            as_text(raw)[:SUMMARY_MAX_CHARS]
            if raw is not None
            else f"Deepfake analysis: {agg.verdict} (conf {agg.confidence})"
        )
        return {
            "summary": summary,
            "type": "deepfake",
            "verdict": agg.verdict,
            "confidence": agg.confidence,
            "evidence": summaries[:FALLBACK_EVIDENCE_LINES],
            "recommendations": [],
        }

    def _report_model_name(self) -> str:
        if self.settings.report_provider == "gemini":
            return self.settings.gemini_report_model
        return self.settings.hf_report_model
