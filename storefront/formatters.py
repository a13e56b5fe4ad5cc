"""
Display formatters for the Colombian storefront (COP amounts, mobile numbers).
"""
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from storefront.models import UnitKind

CURRENCY_SYMBOL = "$"
THOUSANDS_SEPARATOR = "."

UNIT_KIND_LABELS = {
    UnitKind.UNIT.value: "Unidad",
    UnitKind.WEIGHT.value: "Peso",
}


def format_currency(amount: Union[Decimal, int, float, None]) -> str:
    """
    Format an amount in pesos with no decimals.

    1200 -> "$1.200", 0 -> "$0", -1500 -> "-$1.500"
    """
    if not amount:
        return f"{CURRENCY_SYMBOL}0"
    value = Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    digits = f"{abs(int(value)):,}".replace(",", THOUSANDS_SEPARATOR)
    return f"{sign}{CURRENCY_SYMBOL}{digits}"


def format_phone_number(phone: Optional[str]) -> str:
    """
    Format a phone number for display.

    "573235725922" -> "+57 323 572 5922", "3235725922" -> "323 572 5922"
    """
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        return ""
    if digits.startswith("57") and len(digits) == 12:
        return f"+{digits[:2]} {digits[2:5]} {digits[5:8]} {digits[8:]}"
    if digits.startswith("3") and len(digits) == 10:
        return f"{digits[:3]} {digits[3:6]} {digits[6:]}"
    return f"+{digits}"


def format_unit_kind(unit_kind: Union[UnitKind, str]) -> str:
    value = unit_kind.value if isinstance(unit_kind, UnitKind) else unit_kind
    return UNIT_KIND_LABELS.get(value, value)


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}..."


def pluralize(count: int, singular: str, plural: Optional[str] = None) -> str:
    if count == 1:
        return singular
    return plural or f"{singular}s"
