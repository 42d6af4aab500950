"""Number utilities and tax arithmetic shared by validators and analysis rules."""

import math
import re
from collections.abc import Sequence

from taxdocs.shared.config import DEFAULT_IRPEF_BRACKETS, IrpefBracket

_NON_AMOUNT_CHARS = re.compile(r"[^\d.]")


def round2(value: float) -> float:
    """Round half away from zero to two decimals.

    Python's round() is banker's rounding on binary floats, which disagrees
    with invoice arithmetic on values like 2.675.
    """
    scaled = abs(value) * 100
    rounded = math.floor(scaled + 0.5 + 1e-9) / 100
    return math.copysign(rounded, value) if value else 0.0


def parse_amount(raw: str | None) -> float:
    """Parse an OCR amount such as '€ 1234,56' into a float.

    Comma is treated as the decimal separator, every other character except
    digits and dots is dropped. Empty or unparseable input yields 0.
    """
    if not raw:
        return 0.0
    if "," in raw and "." in raw:
        # Italian thousands separator: 1.234,56
        raw = raw.replace(".", "")
    cleaned = _NON_AMOUNT_CHARS.sub("", raw.replace(",", "."))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def to_float(value: object, default: float = 0.0) -> float:
    """Coerce an XML text value or loose field into a float."""
    if value is None or value == "":
        return default
    try:
        return float(str(value).strip())
    except ValueError:
        return default


def expected_vat(taxable_amount: float, rate: float) -> float:
    """VAT due on a taxable amount at a percentage rate, rounded to cents."""
    return round2(taxable_amount * rate / 100)


def vat_mismatch(
    taxable_amount: float, rate: float, declared_tax: float, tolerance: float = 0.01
) -> bool:
    """Whether declared VAT differs from the computed value beyond tolerance."""
    # Compare in cents so 0.01 differences aren't lost to binary float noise
    diff_cents = round(abs(expected_vat(taxable_amount, rate) - declared_tax) * 100, 6)
    return diff_cents > round(tolerance * 100, 6)


def expected_inps(gross_pay: float, rate: float = 0.0919) -> float:
    """Employee social-security contribution on a monthly gross pay."""
    return gross_pay * rate


def calculate_irpef(
    annual_income: float, brackets: Sequence[IrpefBracket] = DEFAULT_IRPEF_BRACKETS
) -> float:
    """Progressive income tax on an annual income.

    Each bracket taxes min(remaining, bracket width) at its rate, in ascending
    order, until the remaining income is exhausted.
    """
    tax = 0.0
    remaining = annual_income
    for bracket in sorted(brackets, key=lambda b: b.lower):
        if remaining <= 0:
            break
        taxable = min(remaining, bracket.width)
        tax += taxable * bracket.rate
        remaining -= taxable
    return tax


def monthly_irpef(
    monthly_gross: float, brackets: Sequence[IrpefBracket] = DEFAULT_IRPEF_BRACKETS
) -> float:
    """Monthly IRPEF estimate: annualize gross pay, apply brackets, divide by 12."""
    return calculate_irpef(monthly_gross * 12, brackets) / 12
