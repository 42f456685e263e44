"""Vision extraction of tax payment slips."""

from app.services.ocr.ocr_base import (
    DocumentKind,
    ExtractedFields,
    OCRExtraction,
    VisionExtractor,
    guess_mime_type,
    parse_extraction_response,
)
from app.services.ocr.vision_extractor import (
    GeminiVisionExtractor,
    OpenRouterVisionExtractor,
    get_vision_extractor,
)

__all__ = [
    "DocumentKind",
    "ExtractedFields",
    "OCRExtraction",
    "VisionExtractor",
    "guess_mime_type",
    "parse_extraction_response",
    "GeminiVisionExtractor",
    "OpenRouterVisionExtractor",
    "get_vision_extractor",
]
