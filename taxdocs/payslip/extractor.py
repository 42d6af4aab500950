"""Scanned payslip extraction: OCR, labeled field matching, payroll checks.

Field extraction is pattern based. Each field has one or more Italian label
synonyms followed by optional whitespace/colon and an amount written with
comma or dot decimals, optionally prefixed by a currency sign. The first
match in the text wins, except that income tax skips IRPEF labels qualified
as a surtax earlier on the same line.

OCR-derived numbers are uncertain, so payroll discrepancies are recorded as
medium-severity warnings and never invalidate the document.
"""

import logging
import re
from pathlib import Path

from pydantic import ValidationError

from taxdocs.ocr.service import OCRService
from taxdocs.payslip.schema import (
    Contributions,
    Earnings,
    PayslipDocument,
    PayslipExtraction,
    PayslipIdentity,
    Taxes,
)
from taxdocs.shared import metrics
from taxdocs.shared.config import Settings, get_settings
from taxdocs.shared.errors import ExtractionPipelineError
from taxdocs.shared.tax_rules import expected_inps, monthly_irpef, parse_amount
from taxdocs.shared.validation import ValidationReport

logger = logging.getLogger(__name__)

# 1.234,56 | 2000,00 | 2000.00
AMOUNT = r"\d{1,3}(?:\.\d{3})+,\d{2}|\d+[.,]\d{2}"
# Extra words allowed between a label and its amount ("Stipendio base")
QUALIFIER = r"(?:[ \t]+[A-Za-zÀ-ÿ.']+)*?"


def _amount_pattern(labels: str, qualified: bool = False) -> re.Pattern[str]:
    qualifier = QUALIFIER if qualified else ""
    return re.compile(
        rf"(?:{labels}){qualifier}[\s:]*(?:€|EUR)?\s*({AMOUNT})",
        re.IGNORECASE,
    )


TEXT_PATTERNS: dict[str, re.Pattern[str]] = {
    "name": re.compile(
        r"(?:Cognome\s+e\s+Nome|Nome\s+e\s+Cognome|Nome|Cognome)[ \t]*:?[ \t]*([A-Za-zÀ-ÿ' ]+)",
        re.IGNORECASE,
    ),
    "fiscal_code": re.compile(
        r"(?:C\.F\.|Codice\s+Fiscale)[\s:]+([A-Z]{6}\d{2}[A-Z]\d{2}[A-Z]\d{3}[A-Z])",
        re.IGNORECASE,
    ),
    "employee_id": re.compile(r"(?:Matricola|Matr\.)[\s:]+(\d+)", re.IGNORECASE),
    "period": re.compile(
        r"(?:Periodo|Mese)(?:[ \t]+di[ \t]+paga)?[\s:]+(\d{1,2}[-/]\d{4}|[A-Za-zÀ-ÿ]+[ \t]+\d{4})",
        re.IGNORECASE,
    ),
}

AMOUNT_PATTERNS: dict[str, re.Pattern[str]] = {
    "base_salary": _amount_pattern(r"Stipendio|Retribuzione", qualified=True),
    "allowance": _amount_pattern(r"Super[\s-]?minimo"),
    "overtime": _amount_pattern(r"Straordinari?"),
    "social_security": _amount_pattern(r"INPS"),
    "accident_insurance": _amount_pattern(r"INAIL"),
    "income_tax": _amount_pattern(r"IRPEF"),
    "regional_surtax": _amount_pattern(r"Add\.|Addizional[ei]", qualified=True),
    "net_pay": _amount_pattern(r"Totale\s+Netto|Netto", qualified=True),
}

# Line text before a match that disqualifies it ("Addizionale regionale IRPEF")
EXCLUDED_PREFIXES: dict[str, re.Pattern[str]] = {
    "income_tax": re.compile(r"Add(?:\.|izional[ei])[A-Za-zÀ-ÿ.' \t]*$", re.IGNORECASE),
}


def _match(
    pattern: re.Pattern[str], text: str, excluded_prefix: re.Pattern[str] | None = None
) -> str | None:
    for match in pattern.finditer(text):
        line_start = text.rfind("\n", 0, match.start()) + 1
        if excluded_prefix is None or not excluded_prefix.search(text, line_start, match.start()):
            return match.group(1).strip()
    return None


def parse_payslip_text(text: str) -> PayslipDocument:
    """Build a PayslipDocument from OCR text.

    Missing text fields are None, missing amounts are 0.
    """
    amounts = {
        field: parse_amount(_match(pattern, text, EXCLUDED_PREFIXES.get(field)))
        for field, pattern in AMOUNT_PATTERNS.items()
    }
    fiscal_code = _match(TEXT_PATTERNS["fiscal_code"], text)

    return PayslipDocument(
        identity=PayslipIdentity(
            name=_match(TEXT_PATTERNS["name"], text),
            fiscal_code=fiscal_code.upper() if fiscal_code else None,
            employee_id=_match(TEXT_PATTERNS["employee_id"], text),
        ),
        earnings=Earnings(
            base_salary=amounts["base_salary"],
            allowance=amounts["allowance"],
            overtime=amounts["overtime"],
        ),
        contributions=Contributions(
            social_security=amounts["social_security"],
            accident_insurance=amounts["accident_insurance"],
        ),
        taxes=Taxes(
            income_tax=amounts["income_tax"],
            regional_surtax=amounts["regional_surtax"],
        ),
        net_pay=amounts["net_pay"],
        period=_match(TEXT_PATTERNS["period"], text),
    )


def validate_payslip(data: PayslipDocument, settings: Settings | None = None) -> ValidationReport:
    """Cross-check INPS and IRPEF against the amounts expected from gross pay.

    Never raises; missing fields have already defaulted to 0. Net pay is
    reported in totals but not reconciled against gross minus deductions.
    """
    settings = settings or get_settings()
    report = ValidationReport()
    gross = data.earnings.gross_pay

    inps_expected = expected_inps(gross, settings.inps_employee_rate)
    inps_declared = data.contributions.social_security
    if abs(inps_expected - inps_declared) > settings.inps_tolerance:
        report.add_warning(
            "INPS_CALCULATION_WARNING",
            f"INPS computed €{inps_expected:.2f}, declared €{inps_declared:.2f}",
        )

    irpef_expected = monthly_irpef(gross, settings.irpef_brackets)
    irpef_declared = data.taxes.income_tax
    if abs(irpef_expected - irpef_declared) > settings.irpef_tolerance:
        report.add_warning(
            "IRPEF_CALCULATION_WARNING",
            f"IRPEF estimated €{irpef_expected:.2f}, declared €{irpef_declared:.2f}",
        )

    report.totals = {
        "lordo": gross,
        "contributi": data.contributions.social_security + data.contributions.accident_insurance,
        "imposte": data.taxes.income_tax + data.taxes.regional_surtax,
        "netto": data.net_pay,
    }
    return report


class PayslipExtractor:
    """PDF payslip pipeline: rasterize, OCR, parse fields, validate.

    Extraction is all-or-nothing: any stage failure raises
    ExtractionPipelineError and no partial payslip is returned.
    """

    def __init__(self, settings: Settings | None = None, ocr_service: OCRService | None = None) -> None:
        """Initialize extractor.

        Args:
            settings: Application settings
            ocr_service: OCR backend, created from settings when omitted
        """
        self.settings = settings or get_settings()
        self.ocr_service = ocr_service or OCRService(self.settings)

    def extract(self, pdf_path: str | Path) -> PayslipExtraction:
        """Extract and validate a scanned payslip.

        Args:
            pdf_path: Path to the PDF file

        Returns:
            PayslipExtraction with raw OCR text, parsed data and validation

        Raises:
            ExtractionPipelineError: stage read, rasterize, ocr or parse failed
        """
        path = Path(pdf_path)
        try:
            self._check_readable(path)
            ocr_result = self.ocr_service.extract_text(path)
            try:
                parsed = parse_payslip_text(ocr_result.text)
            except ValidationError as e:
                raise ExtractionPipelineError("parse", str(e)) from e
        except ExtractionPipelineError as e:
            metrics.documents_extracted_total.labels(document_type="payslip", status="failed").inc()
            logger.error(f"Payslip extraction failed for {path.name} ({e.stage})")
            raise

        validation = validate_payslip(parsed, self.settings)
        metrics.documents_extracted_total.labels(document_type="payslip", status="success").inc()
        logger.info(
            f"Extracted payslip {path.name}: gross={parsed.earnings.gross_pay:.2f}, "
            f"{len(validation.warnings)} warning(s)"
        )
        return PayslipExtraction(raw_text=ocr_result.text, parsed_data=parsed, validation=validation)

    def _check_readable(self, path: Path) -> None:
        """Fail in stage 'read' unless path is a readable PDF file."""
        try:
            with path.open("rb") as fh:
                signature = fh.read(5)
        except OSError as e:
            raise ExtractionPipelineError("read", f"Cannot read {path}: {e}") from e
        if signature != b"%PDF-":
            raise ExtractionPipelineError("read", f"{path.name} is not a PDF document")


def extract_payslip(pdf_path: str | Path, settings: Settings | None = None) -> PayslipExtraction:
    """Run the scanned payslip pipeline on one PDF.

    Raises:
        ExtractionPipelineError: see PayslipExtractor.extract
    """
    return PayslipExtractor(settings).extract(pdf_path)
