from datetime import date
from decimal import Decimal

import pytest

from app.core.exceptions import OCRExtractionError
from app.services.ocr.ocr_base import DocumentKind, guess_mime_type, parse_extraction_response


def test_parses_darf_payload_with_portuguese_keys():
    text = """```json
    {
        "document_type": "DARF",
        "confidence": 0.93,
        "extracted_data": {
            "cpf": "529.982.247-25",
            "codigo_receita": "0190",
            "competencia": "03/2025",
            "vencimento": "31/03/2025",
            "valor": "R$ 1.234,56"
        }
    }
    ```"""

    extraction = parse_extraction_response(text)

    assert extraction.document_type == DocumentKind.DARF
    assert extraction.identifier == "529.982.247-25"
    fields = extraction.extracted_data
    assert fields.fiscal_code == "0190"
    assert fields.competence == "03/2025"
    assert fields.due_date == date(2025, 3, 31)
    assert fields.amount == Decimal("1234.56")


def test_gps_identifier_is_nit():
    extraction = parse_extraction_response(
        '{"document_type": "gps", "confidence": 87, "extracted_data": {"nit": "123.45678.90-1", "competencia": "032025"}}'
    )

    assert extraction.identifier == "123.45678.90-1"
    assert extraction.confidence == pytest.approx(0.87)
    assert extraction.extracted_data.competence == "03/2025"


def test_unknown_document_type_is_kept_as_unknown():
    extraction = parse_extraction_response('{"document_type": "boleto", "confidence": 0.5}')

    assert extraction.document_type == DocumentKind.UNKNOWN
    assert extraction.identifier is None


def test_non_json_answer_is_unparseable():
    with pytest.raises(OCRExtractionError) as exc_info:
        parse_extraction_response("I could not read this document.")

    assert exc_info.value.kind == OCRExtractionError.UNPARSEABLE_RESPONSE


def test_invalid_fields_are_unparseable():
    with pytest.raises(OCRExtractionError) as exc_info:
        parse_extraction_response('{"document_type": "darf", "extracted_data": {"vencimento": "amanhã"}}')

    assert exc_info.value.kind == OCRExtractionError.UNPARSEABLE_RESPONSE


def test_negative_amount_is_rejected():
    with pytest.raises(OCRExtractionError):
        parse_extraction_response('{"document_type": "darf", "extracted_data": {"valor": "-10,00"}}')


@pytest.mark.parametrize(
    "file_name,declared,expected",
    [
        ("darf.PDF", None, "application/pdf"),
        ("gps.jpeg", "application/octet-stream", "image/jpeg"),
        ("scan.bin", "image/png", "image/png"),
        ("scan.bin", None, "application/octet-stream"),
    ],
)
def test_guess_mime_type(file_name, declared, expected):
    assert guess_mime_type(file_name, declared) == expected
