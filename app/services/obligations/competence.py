"""Competence period tokens.

Monthly and annual obligations use ``MM/YYYY``. Weekly obligations use the
ISO week token ``YYYY-Www``.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from app.core.exceptions import ValidationError

MONTH = "month"
WEEK = "week"

_MONTH_TOKEN = re.compile(r"^(\d{2})/(\d{4})$")
_WEEK_TOKEN = re.compile(r"^(\d{4})-W(\d{2})$")
_LOOSE_MONTH = re.compile(r"^\s*(\d{1,2})\s*[/\-.]?\s*(\d{4})\s*$")
_FULL_DATE = re.compile(r"^\s*(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})\s*$")
_ISO_MONTH = re.compile(r"^\s*(\d{4})-(\d{1,2})\s*$")


@dataclass(frozen=True)
class Competence:
    kind: str
    year: int
    number: int  # month 1..12 or ISO week 1..53

    @property
    def token(self) -> str:
        if self.kind == WEEK:
            return f"{self.year:04d}-W{self.number:02d}"
        return f"{self.number:02d}/{self.year:04d}"

    @property
    def month(self) -> Optional[int]:
        return self.number if self.kind == MONTH else None

    @property
    def week(self) -> Optional[int]:
        return self.number if self.kind == WEEK else None

    def shift(self, periods: int) -> "Competence":
        """Move ``periods`` months (or ISO weeks) forward; negative moves back."""
        if self.kind == MONTH:
            index = self.year * 12 + (self.number - 1) + periods
            return Competence(MONTH, index // 12, index % 12 + 1)

        monday = date.fromisocalendar(self.year, self.number, 1)
        shifted = date.fromordinal(monday.toordinal() + 7 * periods)
        iso_year, iso_week, _ = shifted.isocalendar()
        return Competence(WEEK, iso_year, iso_week)

    def __str__(self) -> str:
        return self.token


def parse_competence(token: str) -> Competence:
    """Parse a competence token.

    Raises:
        ValidationError: If the token is not ``MM/YYYY`` or ``YYYY-Www``.
    """
    if not isinstance(token, str):
        raise ValidationError(f"Invalid competence: {token!r}")

    value = token.strip()
    match = _MONTH_TOKEN.match(value)
    if match:
        month, year = int(match.group(1)), int(match.group(2))
        if not 1 <= month <= 12 or year < 1900:
            raise ValidationError(f"Invalid competence month: {token!r}")
        return Competence(MONTH, year, month)

    match = _WEEK_TOKEN.match(value)
    if match:
        year, week = int(match.group(1)), int(match.group(2))
        try:
            date.fromisocalendar(year, week, 1)
        except ValueError as e:
            raise ValidationError(f"Invalid competence week: {token!r}", original_error=e)
        return Competence(WEEK, year, week)

    raise ValidationError(f"Invalid competence format: {token!r} (expected MM/YYYY or YYYY-Www)")


def normalize_competence(raw: Optional[str]) -> Optional[str]:
    """Recover OCR spellings such as ``032025``, ``3/2025`` or ``03-2025``.

    Returns:
        The canonical token, or None when nothing valid can be recovered.
    """
    if not raw:
        return None
    try:
        return parse_competence(raw).token
    except ValidationError:
        pass

    text = str(raw)
    match = _LOOSE_MONTH.match(text)
    if match:
        month, year = int(match.group(1)), int(match.group(2))
    elif _FULL_DATE.match(text):
        # A period of assessment written as a full date, e.g. 31/03/2025
        match = _FULL_DATE.match(text)
        month, year = int(match.group(2)), int(match.group(3))
    elif _ISO_MONTH.match(text):
        match = _ISO_MONTH.match(text)
        month, year = int(match.group(2)), int(match.group(1))
    else:
        return None
    if not 1 <= month <= 12:
        return None
    return Competence(MONTH, year, month).token


def kind_for_frequency(frequency: str) -> str:
    if frequency == "weekly":
        return WEEK
    if frequency in ("monthly", "annual"):
        return MONTH
    raise ValidationError(f"Unknown obligation frequency: {frequency!r}")


def current_competence(frequency: str, today: date) -> Competence:
    """The period that contains ``today`` for the given frequency."""
    if kind_for_frequency(frequency) == WEEK:
        iso_year, iso_week, _ = today.isocalendar()
        return Competence(WEEK, iso_year, iso_week)
    return Competence(MONTH, today.year, today.month)
