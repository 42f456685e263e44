"""Prompt contract for tax slip extraction."""

EXTRACTION_PROMPT = """You are reading a Brazilian tax payment slip.

Identify whether the document is a DARF (Documento de Arrecadação de Receitas Federais)
or a GPS (Guia da Previdência Social) and extract its fields.

Respond with ONLY a JSON object, no markdown, using exactly this shape:
{
  "document_type": "darf" | "gps" | "unknown",
  "confidence": <number between 0 and 1>,
  "extracted_data": {
    "tax_id": "<CPF of the taxpayer, DARF only, or null>",
    "social_insurance_id": "<NIT/NIS/PIS of the contributor, GPS only, or null>",
    "fiscal_code": "<revenue code (DARF 'Código da Receita') or payment code (GPS), or null>",
    "competence": "<period of assessment as MM/YYYY, or null>",
    "due_date": "<due date as YYYY-MM-DD, or null>",
    "amount": <total amount as a number with a dot as decimal separator, or null>
  },
  "raw_text": "<the relevant text you read from the document>"
}

Rules:
- Use null for any field you cannot read with certainty. Never guess identifiers.
- The DARF "Período de Apuração" and the GPS "Competência" are the competence.
- Lower the confidence when the image is blurry, cropped or partially unreadable.
"""
