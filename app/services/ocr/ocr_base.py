"""Vision extraction contract for tax payment slips.

Providers return free text; everything downstream depends only on the
typed ``OCRExtraction`` produced by ``parse_extraction_response``.
"""

import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import OCRExtractionError
from app.services.obligations.competence import normalize_competence
from app.utils.json_parser import parse_json_safely
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentKind(str, Enum):
    DARF = "darf"
    GPS = "gps"
    UNKNOWN = "unknown"


def _parse_amount(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value)).quantize(Decimal("0.01"))

    text = re.sub(r"[^\d,.\-]", "", str(value))
    if "," in text and "." in text:
        # 1.234,56 or 1,234.56: the right-most separator is the decimal one
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(",", ".")
    try:
        return Decimal(text).quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValueError(f"Unreadable amount: {value!r}")


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unreadable date: {value!r}")


class ExtractedFields(BaseModel):
    """Fields read from the slip. Portuguese keys are accepted as aliases."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tax_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("tax_id", "cpf"))
    social_insurance_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("social_insurance_id", "nit_nis", "nit")
    )
    fiscal_code: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("fiscal_code", "codigo", "codigo_receita")
    )
    competence: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("competence", "competencia")
    )
    due_date: Optional[date] = Field(
        default=None, validation_alias=AliasChoices("due_date", "vencimento")
    )
    amount: Optional[Decimal] = Field(default=None, validation_alias=AliasChoices("amount", "valor"))

    @field_validator("tax_id", "social_insurance_id", "fiscal_code", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("competence", mode="before")
    @classmethod
    def _competence(cls, value: Any) -> Optional[str]:
        if value is None or str(value).strip() == "":
            return None
        normalized = normalize_competence(str(value))
        if normalized is None:
            raise ValueError(f"Unreadable competence: {value!r}")
        return normalized

    @field_validator("due_date", mode="before")
    @classmethod
    def _due_date(cls, value: Any) -> Optional[date]:
        return _parse_date(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value: Any) -> Optional[Decimal]:
        amount = _parse_amount(value)
        if amount is not None and amount < 0:
            raise ValueError("Amount cannot be negative")
        return amount


class OCRExtraction(BaseModel):
    """Typed result of a successful extraction."""

    document_type: DocumentKind = DocumentKind.UNKNOWN
    confidence: float = 0.0
    extracted_data: ExtractedFields = Field(default_factory=ExtractedFields)
    raw_text: Optional[str] = None

    @field_validator("document_type", mode="before")
    @classmethod
    def _document_type(cls, value: Any) -> DocumentKind:
        try:
            return DocumentKind(str(value or "unknown").strip().lower())
        except ValueError:
            return DocumentKind.UNKNOWN

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        if value is None:
            return 0.0
        confidence = float(value)
        if confidence > 1.0 and confidence <= 100.0:
            # Percent scale
            confidence = confidence / 100.0
        return max(0.0, min(1.0, confidence))

    @property
    def identifier(self) -> Optional[str]:
        """The client identifier relevant for the document kind."""
        if self.document_type == DocumentKind.DARF:
            return self.extracted_data.tax_id
        if self.document_type == DocumentKind.GPS:
            return self.extracted_data.social_insurance_id
        return None


def parse_extraction_response(text: str) -> OCRExtraction:
    """Turn a provider's text answer into an ``OCRExtraction``.

    Raises:
        OCRExtractionError: ``unparseable_response`` if no valid payload can be recovered.
    """
    data = parse_json_safely(text)
    if not isinstance(data, dict):
        raise OCRExtractionError(
            OCRExtractionError.UNPARSEABLE_RESPONSE,
            "Extraction response did not contain a JSON object",
        )
    try:
        return OCRExtraction.model_validate(data)
    except (PydanticValidationError, ValueError, TypeError) as e:
        LOGGER.warning(f"Extraction payload failed validation: {e}")
        raise OCRExtractionError(
            OCRExtractionError.UNPARSEABLE_RESPONSE,
            f"Extraction payload is invalid: {e}",
            original_error=e,
        )


def guess_mime_type(file_name: str, declared: Optional[str] = None) -> str:
    if declared and declared != "application/octet-stream":
        return declared
    lowered = file_name.lower()
    if lowered.endswith(".pdf"):
        return "application/pdf"
    if lowered.endswith(".png"):
        return "image/png"
    if lowered.endswith((".jpg", ".jpeg")):
        return "image/jpeg"
    if lowered.endswith(".webp"):
        return "image/webp"
    return declared or "application/octet-stream"


class VisionExtractor(ABC):
    """A vision-capable extraction backend."""

    @abstractmethod
    async def extract(self, content: bytes, mime_type: str) -> OCRExtraction:
        """Extract typed fields from raw file bytes.

        Raises:
            OCRExtractionError: With one of the typed failure kinds.
        """

    @abstractmethod
    def get_service_name(self) -> str:
        pass
