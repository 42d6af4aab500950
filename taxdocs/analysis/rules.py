"""Deterministic offline checks used when no analysis provider is reachable.

The INPS tolerance is settings.fallback_inps_tolerance (10 by default),
separate from the tolerance applied to OCR-derived payslips.
"""

from pydantic import BaseModel, Field

from taxdocs.invoice.schema import InvoiceBody
from taxdocs.payslip.schema import PayslipDocument
from taxdocs.shared.config import Settings
from taxdocs.shared.tax_rules import expected_inps, round2, vat_mismatch


class RuleFindings(BaseModel):
    recommendations: list[str] = Field(default_factory=list)
    optimizations: list[str] = Field(default_factory=list)


def check_invoice(body: InvoiceBody, settings: Settings) -> RuleFindings:
    """Flag non-standard VAT rates and VAT arithmetic mismatches."""
    findings = RuleFindings()
    standard_rates = set(settings.standard_vat_rates)
    for index, entry in enumerate(body.vat_summary, start=1):
        # Zero-rate entries are exempt lines carrying a nature code
        if entry.rate and entry.rate not in standard_rates:
            findings.recommendations.append(
                f"VAT rate {entry.rate:g}% is non-standard - verify applicability"
            )
        if entry.rate and vat_mismatch(
            entry.taxable_amount, entry.rate, entry.tax_amount, settings.vat_tolerance
        ):
            findings.recommendations.append(
                f"Verify VAT calculation of summary entry {index} - possible rounding error"
            )
    return findings


def check_payslip(payslip: PayslipDocument, settings: Settings) -> RuleFindings:
    """Flag INPS contributions not aligned with the employee rate."""
    findings = RuleFindings()
    gross = payslip.earnings.gross_pay
    declared = payslip.contributions.social_security
    if gross and declared:
        computed = round2(expected_inps(gross, settings.inps_employee_rate))
        if abs(computed - declared) > settings.fallback_inps_tolerance:
            findings.recommendations.append(
                f"Verify INPS contributions - may not be aligned with "
                f"{settings.inps_employee_rate * 100:.2f}%"
            )
    return findings
