"""
pytest configuration and shared fixtures for the worker tests.

Key concern: tests must not touch a live Report Store, GCS bucket, ffmpeg
binary, or inference provider. We achieve this by:
  1. Serving an in-memory Report Store as a FastAPI app and pointing the
     real ReportStoreClient at it through httpx.ASGITransport.
  2. Replacing object storage with FakeStorage (records uploads).
  3. Replacing ffmpeg with make_extractor() fakes that write frame files.
  4. Replacing inference with FakeInference, or using InferenceClient in
     mock mode.
"""

import itertools
from pathlib import Path
from typing import Any

import pytest
from fastapi import Body, Depends, FastAPI, Header, HTTPException
from httpx import ASGITransport

from worker.core.config import Settings
from worker.models.frames import LabelScore, StructuredOutput
from worker.models.report import REPORT_STATUSES
from worker.services.report_store import ReportStoreClient

SERVICE_KEY = "svc-test-key"
BUCKET = "aethra-test"


# ── Settings ──────────────────────────────────────────────────────────────────

def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "api_base": "http://store.test",
        "service_key": SERVICE_KEY,
        "gcs_bucket_name": BUCKET,
        "hf_api_key": "hf-test-key",
        "temp_dir": str(tmp_path / "work"),
        "retry_base_delay_ms": 0,
        "ai_mock_mode": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture()
def settings(tmp_path):
    return make_settings(tmp_path)


# ── Fake Report Store ─────────────────────────────────────────────────────────

class InMemoryReportStore:
    """Backing state for the fake reports API."""

    def __init__(self) -> None:
        self.reports: dict[str, dict[str, Any]] = {}
        self.patches: list[tuple[str, dict[str, Any]]] = []
        self.gets: list[str] = []

    def add(self, report_id: str, type: str, status: str = "pending", **fields: Any) -> dict:
        record = {"id": report_id, "type": type, "status": status, "result": {}, "metadata": {}}
        record.update(fields)
        self.reports[report_id] = record
        return record


def make_store_app(store: InMemoryReportStore, service_key: str = SERVICE_KEY) -> FastAPI:
    app = FastAPI()

    def require_service_key(authorization: str | None = Header(default=None)) -> None:
        if authorization != f"Bearer {service_key}":
            raise HTTPException(status_code=401, detail="Unauthorized")

    @app.get("/reports/{report_id}", dependencies=[Depends(require_service_key)])
    async def get_report(report_id: str):
        store.gets.append(report_id)
        if report_id not in store.reports:
            raise HTTPException(status_code=404, detail="Report not found")
        return store.reports[report_id]

    @app.patch("/reports/{report_id}", dependencies=[Depends(require_service_key)])
    async def patch_report(report_id: str, body: dict = Body(...)):
        store.patches.append((report_id, body))
        if report_id not in store.reports:
            raise HTTPException(status_code=404, detail="Report not found")
        report = store.reports[report_id]
        if body.get("result"):
            report["result"] = body["result"]
        # Unknown statuses are ignored, as the real store does
        if body.get("status") in REPORT_STATUSES:
            report["status"] = body["status"]
        return report

    return app


@pytest.fixture()
def report_store():
    return InMemoryReportStore()


@pytest.fixture()
def store_client(settings, report_store):
    return ReportStoreClient(settings, transport=ASGITransport(app=make_store_app(report_store)))


# ── Fake object storage ───────────────────────────────────────────────────────

class FakeStorage:
    def __init__(self, video_bytes: bytes = b"\x00\x00\x00\x18ftypmp42") -> None:
        self.video_bytes = video_bytes
        self.downloads: list[str] = []
        self.uploads: dict[str, bytes] = {}

    async def download(self, uri: str, dest_dir) -> Path:
        self.downloads.append(uri)
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        dest = dest_dir / f"{len(self.downloads)}-{uri.rsplit('/', 1)[-1]}"
        dest.write_bytes(self.video_bytes)
        return dest

    async def upload(self, local_path, dest_name: str | None = None) -> str:
        local_path = Path(local_path)
        name = dest_name or f"diagnostics/{local_path.name}"
        self.uploads[name] = local_path.read_bytes()
        return f"gs://{BUCKET}/{name}"


@pytest.fixture()
def fake_storage():
    return FakeStorage()


# ── Fake frame extractor ──────────────────────────────────────────────────────

def make_extractor(frame_count: int):
    """An extract_frames stand-in that writes frame_count JPEG stubs."""
    calls: list[dict[str, Any]] = []

    async def _extract(video_path, output_dir, frames_per_second, ffmpeg_bin="ffmpeg", timeout=None):
        calls.append({"video": Path(video_path), "dir": Path(output_dir), "fps": frames_per_second})
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        # Written in reverse to prove callers rely on the returned sort order
        for i in reversed(range(1, frame_count + 1)):
            (output_dir / f"frame-{i:06d}.jpg").write_bytes(b"\xff\xd8\xff\xd9")
        return sorted(output_dir.glob("frame-*.jpg"))

    _extract.calls = calls
    return _extract


# ── Fake inference ────────────────────────────────────────────────────────────

def structured(label: str, score: float | None) -> StructuredOutput:
    return StructuredOutput((LabelScore(label, score),))


class FakeInference:
    """
    Scripted InferenceClient stand-in.

    frame_outputs: cycled per classify_frame() call; Exception instances
    are raised instead of returned.
    """

    def __init__(
        self,
        frame_outputs: list[Any] | None = None,
        report_output: Any = '{"summary": "ok", "verdict": "likely_real", "confidence": 70}',
        text_output: str = "not json",
    ) -> None:
        self._frames = itertools.cycle(frame_outputs or [structured("real", 0.9)])
        self.report_output = report_output
        self.text_output = text_output
        self.classified: list[str] = []
        self.prompts: list[str] = []
        self.report_images: list[list[Path]] = []

    async def classify_frame(self, image_path):
        self.classified.append(Path(image_path).name)
        out = next(self._frames)
        if isinstance(out, Exception):
            raise out
        return out

    async def text_inference(self, prompt, response_key="default", model=None):
        self.prompts.append(prompt)
        if isinstance(self.text_output, Exception):
            raise self.text_output
        return self.text_output

    async def report_inference(self, prompt_text, image_paths=()):
        self.prompts.append(prompt_text)
        self.report_images.append([Path(p) for p in image_paths])
        if isinstance(self.report_output, Exception):
            raise self.report_output
        return self.report_output
