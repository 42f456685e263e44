"""Vision extraction backends (OpenRouter and Gemini)."""

import asyncio
import base64
from typing import Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from app.core.config import settings
from app.core.exceptions import APIClientError, APITimeoutError, ConfigurationError, OCRExtractionError
from app.core.llm_client import OpenRouterClient
from app.services.ocr.ocr_base import OCRExtraction, VisionExtractor, parse_extraction_response
from app.services.ocr.prompts import EXTRACTION_PROMPT
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def failure_kind_for_status(status_code: Optional[int]) -> str:
    if status_code == 429:
        return OCRExtractionError.RATE_LIMITED
    if status_code == 402:
        return OCRExtractionError.QUOTA_EXHAUSTED
    return OCRExtractionError.UPSTREAM_ERROR


class OpenRouterVisionExtractor(VisionExtractor):
    """Extraction through an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str,
        api_url: str,
        timeout: int = 120,
        max_retries: int = 2,
    ):
        self.model = model
        self.client = OpenRouterClient(
            api_key=api_key,
            api_url=api_url,
            timeout=timeout,
            max_retries=max_retries,
            app_title=settings.app_name,
        )

    def get_service_name(self) -> str:
        return "OpenRouter Vision"

    @staticmethod
    def _file_part(content: bytes, mime_type: str) -> dict:
        data_uri = f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"
        if mime_type == "application/pdf":
            return {"type": "file", "file": {"filename": "document.pdf", "file_data": data_uri}}
        return {"type": "image_url", "image_url": {"url": data_uri}}

    async def extract(self, content: bytes, mime_type: str) -> OCRExtraction:
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": EXTRACTION_PROMPT},
                    self._file_part(content, mime_type),
                ],
            }
        ]

        try:
            text = await self.client.complete(messages=messages, model=self.model)
        except APITimeoutError as e:
            raise OCRExtractionError(
                OCRExtractionError.UPSTREAM_ERROR, "Extraction service timed out", original_error=e
            )
        except APIClientError as e:
            kind = failure_kind_for_status(e.status_code)
            raise OCRExtractionError(kind, _failure_message(kind, str(e)), original_error=e)

        if not text:
            raise OCRExtractionError(
                OCRExtractionError.UNPARSEABLE_RESPONSE, "Extraction service returned no content"
            )
        return parse_extraction_response(text)


class GeminiVisionExtractor(VisionExtractor):
    """Extraction through the Google GenAI SDK."""

    def __init__(self, api_key: str, model: str, max_retries: int = 2, retry_delay: int = 2):
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.client = genai.Client(api_key=api_key)
        LOGGER.info(f"Initialized Gemini vision extractor with model {self.model}")

    def get_service_name(self) -> str:
        return "Gemini Vision"

    async def extract(self, content: bytes, mime_type: str) -> OCRExtraction:
        config = types.GenerateContentConfig(
            temperature=0.0,
            response_mime_type="application/json",
        )
        contents = [types.Part.from_bytes(data=content, mime_type=mime_type), EXTRACTION_PROMPT]

        for attempt in range(self.max_retries):
            try:
                response = await self.client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=config,
                )
                if not response.text:
                    raise OCRExtractionError(
                        OCRExtractionError.UNPARSEABLE_RESPONSE,
                        "Extraction service returned no content",
                    )
                return parse_extraction_response(response.text)

            except genai_errors.APIError as e:
                kind = failure_kind_for_status(e.code)
                LOGGER.warning(
                    f"Gemini API error (Attempt {attempt + 1}/{self.max_retries}): {e}",
                    extra={"status_code": e.code},
                )
                retryable = e.code is None or e.code >= 500
                if not retryable or attempt == self.max_retries - 1:
                    raise OCRExtractionError(kind, _failure_message(kind, str(e)), original_error=e)
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

            except httpx.HTTPError as e:
                LOGGER.warning(f"Gemini request failed (Attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt == self.max_retries - 1:
                    raise OCRExtractionError(
                        OCRExtractionError.UPSTREAM_ERROR,
                        _failure_message(OCRExtractionError.UPSTREAM_ERROR, str(e)),
                        original_error=e,
                    )
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

        raise OCRExtractionError(OCRExtractionError.UPSTREAM_ERROR, "Gemini extraction failed")


def _failure_message(kind: str, detail: str) -> str:
    if kind == OCRExtractionError.RATE_LIMITED:
        return "Extraction service rate limit reached, try again in a few seconds"
    if kind == OCRExtractionError.QUOTA_EXHAUSTED:
        return "Extraction service credits exhausted"
    return f"Extraction service error: {detail}"


def get_vision_extractor() -> VisionExtractor:
    """Build the configured vision extractor.

    Raises:
        ConfigurationError: If the provider is unknown or its key is missing.
    """
    provider = settings.llm_provider
    if provider == "gemini":
        if not settings.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY is not configured")
        return GeminiVisionExtractor(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            max_retries=settings.llm.ocr_max_retries,
        )
    if provider == "openrouter":
        if not settings.openrouter_api_key:
            raise ConfigurationError("OPENROUTER_API_KEY is not configured")
        return OpenRouterVisionExtractor(
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            api_url=settings.openrouter_api_url,
            timeout=settings.llm.ocr_timeout,
            max_retries=settings.llm.ocr_max_retries,
        )
    raise ConfigurationError(f"Unsupported vision provider: {provider}")
