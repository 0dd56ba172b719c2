"""
frames.py - Per-frame classifier outputs and the aggregate verdict.

Classifier providers answer in three shapes (a ranked label array, free
text, or arbitrary JSON). The inference client converts the raw body into
one of the FrameOutput variants below so downstream code can match on type.
A fourth variant marks frames whose classification call failed.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Union

Verdict = Literal["likely_fake", "likely_real", "inconclusive"]
VERDICTS: tuple[str, ...] = ("likely_fake", "likely_real", "inconclusive")


@dataclass(frozen=True)
class LabelScore:
    label: str
    score: float | None = None


@dataclass(frozen=True)
class StructuredOutput:
    """Ranked classifier array, e.g. [{"label": "fake", "score": 0.93}, ...]."""
    candidates: tuple[LabelScore, ...]

    @property
    def top(self) -> LabelScore:
        # Highest score wins; the first entry wins ties or missing scores
        best = self.candidates[0]
        for cand in self.candidates[1:]:
            if cand.score is not None and (best.score is None or cand.score > best.score):
                best = cand
        return best

    def to_json(self) -> list[dict[str, Any]]:
        return [asdict(c) for c in self.candidates]


@dataclass(frozen=True)
class TextOutput:
    text: str

    def to_json(self) -> str:
        return self.text


@dataclass(frozen=True)
class OpaqueOutput:
    data: Any

    def to_json(self) -> Any:
        return self.data


@dataclass(frozen=True)
class ErrorOutput:
    message: str

    def to_json(self) -> dict[str, str]:
        return {"error": self.message}


FrameOutput = Union[StructuredOutput, TextOutput, OpaqueOutput, ErrorOutput]


def parse_classifier_output(raw: Any) -> FrameOutput:
    """Turn a raw provider body into a FrameOutput variant. Never raises."""
    if isinstance(raw, str):
        return TextOutput(raw)
    if isinstance(raw, list) and raw and all(
        isinstance(item, dict) and "label" in item for item in raw
    ):
        candidates = []
        for item in raw:
            score = item.get("score")
            candidates.append(
                LabelScore(
                    label=str(item["label"]),
                    score=float(score) if isinstance(score, (int, float)) else None,
                )
            )
        return StructuredOutput(tuple(candidates))
    return OpaqueOutput(raw)


@dataclass(frozen=True)
class FrameResult:
    frame: str  # image filename, e.g. frame-000001.jpg
    output: FrameOutput

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.output, ErrorOutput):
            return {"frame": self.frame, "error": self.output.message}
        return {"frame": self.frame, "classifier": self.output.to_json()}


@dataclass(frozen=True)
class AggregateVerdict:
    verdict: Verdict
    confidence: int              # 0–100
    ratio: float                 # fraction of frames voting fake, 0–1
    fake_votes: int
    total: int
    avg_confidence: int | None = None
    confidence_samples: list[int] = field(default_factory=list, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "verdict": self.verdict,
            "confidence": self.confidence,
            "ratio": self.ratio,
            "fakeVotes": self.fake_votes,
            "total": self.total,
            "avgConf": self.avg_confidence,
        }
