"""Italian tax identifier checks (Codice Fiscale, Partita IVA)."""

import re

PERSONAL_FISCAL_CODE = re.compile(r"^[A-Z]{6}\d{2}[A-Z]\d{2}[A-Z]\d{3}[A-Z]$")
ITALIAN_VAT_NUMBER = re.compile(r"^\d{11}$")

_ODD_VALUES = {
    **dict(zip("0123456789", [1, 0, 5, 7, 9, 13, 15, 17, 19, 21])),
    **dict(
        zip(
            "ABCDEFGHIJKLMNOPQRSTUVWXYZ",
            [1, 0, 5, 7, 9, 13, 15, 17, 19, 21, 2, 4, 18, 20, 11, 3, 6, 8, 12, 14, 16, 10, 22, 25, 24, 23],
        )
    ),
}
_EVEN_VALUES = {
    **{str(d): d for d in range(10)},
    **{chr(ord("A") + i): i for i in range(26)},
}


def is_personal_fiscal_code(value: str | None) -> bool:
    """Whether value has the 16-character natural-person fiscal code shape."""
    return bool(value) and PERSONAL_FISCAL_CODE.match(value.strip().upper()) is not None


def fiscal_code_checksum_ok(code: str) -> bool:
    """Verify the control character of a 16-character fiscal code.

    Odd positions (1-based) and even positions map through different tables;
    the sum modulo 26 gives the expected final letter.
    """
    code = code.strip().upper()
    if not PERSONAL_FISCAL_CODE.match(code):
        return False
    total = 0
    for index, char in enumerate(code[:15]):
        table = _ODD_VALUES if index % 2 == 0 else _EVEN_VALUES
        total += table[char]
    return chr(ord("A") + total % 26) == code[15]


def vat_number_checksum_ok(vat_number: str) -> bool:
    """Verify an 11-digit Italian Partita IVA.

    Repeated-digit sequences such as 00000000000 are rejected even though
    they satisfy the check digit.
    """
    if not ITALIAN_VAT_NUMBER.match(vat_number):
        return False
    if len(set(vat_number)) == 1:
        return False
    digits = [int(d) for d in vat_number]
    total = 0
    for index, digit in enumerate(digits[:10]):
        if index % 2 == 0:
            total += digit
        else:
            doubled = digit * 2
            total += doubled - 9 if doubled > 9 else doubled
    return (10 - total % 10) % 10 == digits[10]
