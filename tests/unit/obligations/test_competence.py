from datetime import date

import pytest

from app.core.exceptions import ValidationError
from app.services.obligations.competence import (
    current_competence,
    normalize_competence,
    parse_competence,
)


def test_parse_month_and_week_tokens():
    assert parse_competence("03/2025").month == 3
    assert parse_competence("2025-W09").week == 9


@pytest.mark.parametrize("token", ["13/2025", "00/2025", "2025-W54", "march", "3/2025", ""])
def test_parse_rejects_malformed_tokens(token):
    with pytest.raises(ValidationError):
        parse_competence(token)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("032025", "03/2025"),
        ("3/2025", "03/2025"),
        ("03-2025", "03/2025"),
        ("31/03/2025", "03/2025"),
        ("2025-03", "03/2025"),
        ("03/2025", "03/2025"),
    ],
)
def test_normalize_recovers_ocr_variants(raw, expected):
    assert normalize_competence(raw) == expected


def test_normalize_gives_up_on_garbage():
    assert normalize_competence("sem competência") is None
    assert normalize_competence("14/2025") is None
    assert normalize_competence(None) is None


def test_shift_crosses_year_boundaries():
    assert parse_competence("12/2024").shift(1).token == "01/2025"
    assert parse_competence("01/2025").shift(-1).token == "12/2024"
    assert parse_competence("2024-W52").shift(1).token == "2025-W01"


def test_current_competence_per_frequency():
    today = date(2025, 3, 12)

    assert current_competence("monthly", today).token == "03/2025"
    assert current_competence("annual", today).token == "03/2025"
    assert current_competence("weekly", today).token == "2025-W11"
