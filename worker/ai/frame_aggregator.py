"""
frame_aggregator.py - Turns noisy per-frame classifier outputs into one verdict.

Pure and deterministic: no I/O, never raises on odd provider shapes.

Voting:
  StructuredOutput → top-ranked label votes fake if it mentions fake /
                     synthetic / manipul*; its score (0–1) becomes a 0–100
                     confidence sample.
  TextOutput       → same substring test on the lower-cased text, plus an
                     optional "confidence: NN" sample.
  OpaqueOutput     → substring test on the JSON serialisation.
  ErrorOutput      → counts toward the total, never votes.

Verdict policy (fixed):
  ratio > 0.4 → likely_fake, ratio < 0.1 → likely_real, else inconclusive.
Confidence is the mean of the samples, or min(100, max(40, ratio*100 + 40))
when no frame produced one.
"""

import json
import math
import re
from typing import Iterable

from worker.models.frames import (
    AggregateVerdict,
    ErrorOutput,
    FrameResult,
    OpaqueOutput,
    StructuredOutput,
    TextOutput,
    Verdict,
)

FAKE_MARKERS = ("fake", "synthetic", "manipul")
FAKE_RATIO_THRESHOLD = 0.4
REAL_RATIO_THRESHOLD = 0.1
MIN_ESTIMATED_CONFIDENCE = 40
MAX_CONFIDENCE = 100

_CONFIDENCE_RE = re.compile(r"confidence[:=]\s*(\d{1,3})")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp_confidence(value: float) -> int:
    return max(0, min(MAX_CONFIDENCE, _round_half_up(value)))


def is_fake_signal(text: str) -> bool:
    """Permissive substring test; tolerates provider label drift."""
    lowered = text.lower()
    return any(marker in lowered for marker in FAKE_MARKERS)


def classify_ratio(ratio: float) -> Verdict:
    if ratio > FAKE_RATIO_THRESHOLD:
        return "likely_fake"
    if ratio < REAL_RATIO_THRESHOLD:
        return "likely_real"
    return "inconclusive"


def estimate_confidence(ratio: float) -> int:
    return _round_half_up(min(MAX_CONFIDENCE, max(MIN_ESTIMATED_CONFIDENCE, ratio * 100 + 40)))


def aggregate_frame_results(frame_results: Iterable[FrameResult]) -> AggregateVerdict:
    results = list(frame_results)
    total = len(results) or 1
    fake_votes = 0
    samples: list[int] = []

    for fr in results:
        out = fr.output
        if isinstance(out, StructuredOutput):
            best = out.top
            if is_fake_signal(best.label):
                fake_votes += 1
            if best.score is not None:
                samples.append(_clamp_confidence(best.score * 100))
        elif isinstance(out, TextOutput):
            if is_fake_signal(out.text):
                fake_votes += 1
            m = _CONFIDENCE_RE.search(out.text.lower())
            if m:
                samples.append(_clamp_confidence(int(m.group(1))))
        elif isinstance(out, OpaqueOutput):
            if is_fake_signal(json.dumps(out.data, default=str)):
                fake_votes += 1
        elif isinstance(out, ErrorOutput):
            continue

    ratio = fake_votes / total
    avg_conf = _round_half_up(sum(samples) / len(samples)) if samples else None
    confidence = avg_conf if avg_conf is not None else estimate_confidence(ratio)

    return AggregateVerdict(
        verdict=classify_ratio(ratio),
        confidence=confidence,
        ratio=ratio,
        fake_votes=fake_votes,
        total=total,
        avg_confidence=avg_conf,
        confidence_samples=samples,
    )
