"""
Parsers for the free-text values FIPE embeds in its payloads
"""

import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import NamedTuple, Tuple

from core.exceptions import PeriodLabelError, ValidationError

MONTHS = {
    "janeiro": 1,
    "fevereiro": 2,
    "marco": 3,
    "abril": 4,
    "maio": 5,
    "junho": 6,
    "julho": 7,
    "agosto": 8,
    "setembro": 9,
    "outubro": 10,
    "novembro": 11,
    "dezembro": 12,
}

_YEAR_VALUE = re.compile(r"^\s*(\d+)-(\d+)\s*$")


class YearFuel(NamedTuple):
    year: int
    fuel_code: int


def parse_year_value(value: str) -> YearFuel:
    """
    Split a model-year value into year and fuel code.

    "2020-1" -> YearFuel(year=2020, fuel_code=1). FIPE uses year 32000 for
    zero-km vehicles, which is kept as-is.
    """
    match = _YEAR_VALUE.match(value or "")
    if not match:
        raise ValidationError(
            f"Invalid model-year value: {value!r}",
            context={"field_name": "Value", "field_value": value},
        )
    return YearFuel(year=int(match.group(1)), fuel_code=int(match.group(2)))


def parse_price(amount: str) -> str:
    """
    Normalise a FIPE currency string to a plain decimal string.

    "R$ 4.147,00" -> "4147.00", "R$ 12.345,67" -> "12345.67"
    """
    text = (amount or "").replace("R$", "").replace("\xa0", " ").strip()
    text = text.replace(".", "").replace(",", ".")
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise ValidationError(
            f"Invalid price: {amount!r}",
            context={"field_name": "Valor", "field_value": amount},
        )
    if not value.is_finite() or value < 0:
        raise ValidationError(
            f"Invalid price: {amount!r}",
            context={"field_name": "Valor", "field_value": amount},
        )
    return str(value.quantize(Decimal("0.01")))


def _fold(text: str) -> str:
    """Lowercase and strip accents ("Março" -> "marco")"""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def parse_reference_month(label: str) -> Tuple[int, int]:
    """
    Parse a reference period label into (month, year).

    "dezembro/2025 " -> (12, 2025). Unknown month names raise
    PeriodLabelError instead of silently yielding month 0.
    """
    parts = (label or "").strip().split("/")
    if len(parts) != 2:
        raise PeriodLabelError(
            f"Invalid reference label: {label!r}",
            context={"field_name": "Mes", "field_value": label},
        )

    month_name, year_text = parts[0].strip(), parts[1].strip()
    month = MONTHS.get(_fold(month_name))
    if month is None:
        raise PeriodLabelError(
            f"Unknown month name {month_name!r} in reference label",
            context={"field_name": "Mes", "field_value": label},
        )
    if not year_text.isdigit():
        raise PeriodLabelError(
            f"Invalid year {year_text!r} in reference label",
            context={"field_name": "Mes", "field_value": label},
        )
    return month, int(year_text)
