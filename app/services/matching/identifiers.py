"""Brazilian personal identifier helpers (CPF and NIT/NIS)."""

import re
from typing import Optional

_NON_DIGITS = re.compile(r"\D")


def digits_only(value: Optional[str]) -> str:
    return _NON_DIGITS.sub("", value or "")


def format_cpf(value: str) -> str:
    """``12345678901`` -> ``123.456.789-01``. Values that are not 11 digits are returned as digits."""
    digits = digits_only(value)
    if len(digits) != 11:
        return digits
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"


def format_nit_nis(value: str) -> str:
    """``12345678901`` -> ``123.45678.90-1``."""
    digits = digits_only(value)
    if len(digits) != 11:
        return digits
    return f"{digits[:3]}.{digits[3:8]}.{digits[8:10]}-{digits[10]}"


def is_valid_cpf(value: str) -> bool:
    """Check the two CPF verification digits."""
    digits = digits_only(value)
    if len(digits) != 11 or digits == digits[0] * 11:
        return False

    for position in (9, 10):
        total = sum(int(digits[i]) * (position + 1 - i) for i in range(position))
        check = (total * 10) % 11 % 10
        if check != int(digits[position]):
            return False
    return True
