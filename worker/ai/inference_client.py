"""
InferenceClient - Async wrapper around the remote model endpoints.

Three capability groups:
  - classify_frame()    → binary frame classifier (HF image-classification)
  - text_inference()    → general reasoning model (HF text generation)
  - report_inference()  → multimodal report synthesis, with a text-only
                          fallback when the multimodal call fails

The multimodal backend is chosen by REPORT_PROVIDER:
  - "huggingface" (default): multipart form, prompt + image_<i> parts
  - "gemini": Google Generative AI SDK, images sent as inline data

Supports two runtime modes (AI_MOCK_MODE):
  - MOCK mode: returns deterministic canned responses, no network.
  - REAL mode: calls the providers. Requires HF_API_KEY (and
    GEMINI_API_KEY when the Gemini provider is selected).

Every provider call goes through retry().
"""

import base64
import json
import logging
from pathlib import Path
from typing import Any, Sequence

import google.generativeai as genai
import httpx

from worker.ai.fallback import TRY_NEXT, Strategy, first_success
from worker.core.config import Settings
from worker.core.retry import retry
from worker.models.frames import FrameOutput, parse_classifier_output

logger = logging.getLogger(__name__)

HF_INFERENCE_URL = "https://api-inference.huggingface.co/models"

CLASSIFY_TIMEOUT_SECONDS = 120.0
TEXT_TIMEOUT_SECONDS = 120.0
REPORT_TIMEOUT_SECONDS = 180.0
MAX_REPORT_IMAGES = 3

REPORT_FALLBACK_INSTRUCTIONS = (
    "You are an expert forensic analyst. Using the evidence below (labels & confidences), "
    "produce JSON: summary, type='deepfake', verdict('likely_fake'|'likely_real'|'inconclusive'), "
    "confidence(0-100), evidence[], recommendations[]."
)

_MIME_MAP = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


def mime_from_path(path: Path) -> str:
    return _MIME_MAP.get(path.suffix.lower(), "application/octet-stream")


# Canned responses for mock mode, keyed by response_key.
_MOCK_RESPONSES: dict[str, Any] = {
    "default": (
        "[MOCK] This is a placeholder model response. "
        "Set AI_MOCK_MODE=false and provide HF_API_KEY for real responses."
    ),
    "frame": [
        {"label": "real", "score": 0.91},
        {"label": "fake", "score": 0.09},
    ],
    "audit": json.dumps({
        "summary": "[MOCK] Model card is present and licensing is declared; dataset provenance is thin.",
        "type": "audit",
        "scores": {"transparency": 72, "fairness": 58, "privacy": 66, "robustness": 61},
        "metrics": {"model_card_present": True, "licensing_check": True},
        "flagged_issues": ["Training data sources are not enumerated."],
        "recommendations": ["Publish a datasheet for the training corpus."],
    }),
    "deepfake_report": json.dumps({
        "summary": "[MOCK] Sampled frames show no consistent manipulation signal.",
        "type": "deepfake",
        "verdict": "likely_real",
        "confidence": 88,
        "evidence": ["frame-000001.jpg: real (91%)"],
        "recommendations": [],
    }),
}


def extract_generated_text(data: Any) -> str | None:
    """
    Pull the generated text out of a provider response.

    Handles a plain string body and an array of {generated_text|text}
    objects. Returns None for any other shape.
    """
    if isinstance(data, str):
        return data
    if isinstance(data, list) and data and isinstance(data[0], dict):
        text = data[0].get("generated_text") or data[0].get("text")
        if text:
            return text
    return None


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class InferenceClient:
    """
    Central interface to the inference providers for one worker run.

    Construct once per process with the run's Settings; pass an httpx
    transport to stub the Hugging Face endpoints in tests.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.mock_mode = settings.ai_mock_mode
        self._transport = transport
        self._genai = None

        if not self.mock_mode and settings.report_provider == "gemini":
            genai.configure(api_key=settings.gemini_api_key)
            self._genai = genai

        if self.mock_mode:
            logger.info("InferenceClient initialised in MOCK mode")
        else:
            logger.info(
                "InferenceClient initialised in REAL mode (report provider: %s)",
                settings.report_provider,
            )

    # ── HTTP plumbing ─────────────────────────────────────────────────────────

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"Authorization": f"Bearer {self.settings.hf_api_key}"},
            timeout=timeout,
            transport=self._transport,
        )

    async def _post(self, model: str, timeout: float, **request_kwargs: Any) -> Any:
        url = f"{HF_INFERENCE_URL}/{model}"

        async def _call() -> Any:
            async with self._client(timeout) as client:
                response = await client.post(url, **request_kwargs)
                response.raise_for_status()
                return _decode_body(response)

        try:
            return await retry(
                _call, self.settings.retry_attempts, self.settings.retry_base_delay_ms
            )
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Inference API error (model=%s): %s - %s",
                model, exc.response.status_code, exc.response.text[:200],
            )
            raise
        except Exception as exc:
            logger.error("Inference request failed (model=%s): %s", model, exc)
            raise

    # ── Frame classifier ──────────────────────────────────────────────────────

    async def classify_frame(self, image_path: str | Path) -> FrameOutput:
        """Classify a single frame image; returns a FrameOutput variant."""
        image_path = Path(image_path)
        if self.mock_mode:
            return parse_classifier_output(_MOCK_RESPONSES["frame"])

        files = {"image": (image_path.name, image_path.read_bytes(), mime_from_path(image_path))}
        raw = await self._post(
            self.settings.hf_frame_classifier_model, CLASSIFY_TIMEOUT_SECONDS, files=files
        )
        return parse_classifier_output(raw)

    # ── Text model ────────────────────────────────────────────────────────────

    async def text_inference(
        self,
        prompt: str,
        response_key: str = "default",
        model: str | None = None,
    ) -> str:
        """
        Single prompt → completion against the general reasoning model.

        Args:
            prompt:       The full prompt string.
            response_key: Mock response key (ignored in real mode).
            model:        Override of HF_AUDIT_MODEL.

        Returns:
            The generated text, or the JSON serialisation of an unrecognised
            response body.
        """
        if self.mock_mode:
            return _MOCK_RESPONSES.get(response_key, _MOCK_RESPONSES["default"])

        payload = {"inputs": prompt, "options": {"wait_for_model": True}}
        data = await self._post(
            model or self.settings.hf_audit_model, TEXT_TIMEOUT_SECONDS, json=payload
        )
        text = extract_generated_text(data)
        return text if text is not None else json.dumps(data)

    # ── Report synthesis ──────────────────────────────────────────────────────

    async def report_inference(
        self,
        prompt_text: str,
        image_paths: Sequence[str | Path] = (),
    ) -> str | Any:
        """
        Multimodal report synthesis with a text-only fallback.

        Tries the multimodal provider with the prompt and up to 3 images; on
        any failure, asks the text model for the same report in JSON. Errors
        from the multimodal attempt are logged, never raised.
        """
        if self.mock_mode:
            return _MOCK_RESPONSES["deepfake_report"]

        images = [Path(p) for p in image_paths][:MAX_REPORT_IMAGES]
        fallback_prompt = "\n\n".join([REPORT_FALLBACK_INSTRUCTIONS, "", prompt_text])

        return await first_success([
            Strategy(
                f"multimodal:{self.settings.report_provider}",
                lambda: self._multimodal_report(prompt_text, images),
            ),
            Strategy(
                "text-fallback",
                lambda: self.text_inference(fallback_prompt, response_key="deepfake_report"),
            ),
        ])

    async def _multimodal_report(self, prompt_text: str, images: list[Path]) -> Any:
        if self.settings.report_provider == "gemini":
            return await self._gemini_report(prompt_text, images)
        return await self._huggingface_report(prompt_text, images)

    async def _huggingface_report(self, prompt_text: str, images: list[Path]) -> Any:
        # The prompt travels as a form part so the body is multipart even
        # without images
        files: dict[str, Any] = {"inputs": (None, json.dumps({"text": prompt_text}))}
        for i, p in enumerate(images):
            files[f"image_{i}"] = (p.name, p.read_bytes(), mime_from_path(p))
        data = await self._post(
            self.settings.hf_report_model,
            REPORT_TIMEOUT_SECONDS,
            files=files,
        )
        text = extract_generated_text(data)
        return text if text is not None else data

    async def _gemini_report(self, prompt_text: str, images: list[Path]) -> Any:
        if not images:
            # Nothing visual to add; the text model handles it
            return TRY_NEXT

        contents: list[dict[str, Any]] = [{"text": prompt_text}]
        for p in images:
            contents.append({
                "inline_data": {
                    "mime_type": mime_from_path(p),
                    "data": base64.b64encode(p.read_bytes()).decode(),
                }
            })

        gemini_model = self._genai.GenerativeModel(self.settings.gemini_report_model)

        async def _call() -> str:
            response = await gemini_model.generate_content_async(contents)
            return response.text

        try:
            return await retry(
                _call, self.settings.retry_attempts, self.settings.retry_base_delay_ms
            )
        except Exception as exc:
            logger.error("Gemini Vision API error (model=%s): %s", self.settings.gemini_report_model, exc)
            raise
