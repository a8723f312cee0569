from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

# How many digits the numeric part of a registration number is padded to (e.g., A + 7 -> A0007)
ANIMAL_ID_DIGITS = 4

_DECIMAL_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_DIGIT_RE = re.compile(r"[0-9]")
_NON_DIGIT_RE = re.compile(r"[^0-9\s]")


class FormatError(ValueError):
    """Raised when a numeric cell cannot be parsed."""


def _clean_str(val: Any) -> str:
    if val is None:
        return ""
    return str(val).strip()


def parse_number(raw: Optional[str]) -> Optional[Decimal]:
    """
    Parse a numeric cell written with a decimal comma or a decimal point.

    Blank and missing cells return None; ``"12,5"`` and ``"12.5"`` both give
    ``Decimal("12.5")``.
    """
    s = _clean_str(raw)
    if not s:
        return None
    s = s.replace(",", ".")
    if not _DECIMAL_RE.match(s):
        raise FormatError(f"Invalid number: {raw!r}")
    try:
        return Decimal(s)
    except InvalidOperation as exc:
        raise FormatError(f"Invalid number: {raw!r}") from exc


def build_animal_id(series: Optional[str], reg_number: Optional[str], digits: int = ANIMAL_ID_DIGITS) -> str:
    """Combine herd series and registration number into the canonical animal id.

    Letters and digits of the registration number are split in order of
    appearance, the digit run is zero-padded to ``digits`` places (never
    truncated) and appended after the letters:

        ("A", "B7")    -> "AB0007"
        ("A", "12")    -> "A0012"
        ("A", "12345") -> "A12345"
        ("A", "XY")    -> "AXY"
    """
    serie = _clean_str(series)
    rgn = _clean_str(reg_number)
    if not rgn:
        return serie

    num = "".join(_DIGIT_RE.findall(rgn))
    if not num:
        return f"{serie}{rgn}"

    letters = "".join(_NON_DIGIT_RE.findall(rgn))
    padded = num if len(num) >= digits else f"{int(num):0{digits}d}"
    return f"{serie}{letters}{padded}"
