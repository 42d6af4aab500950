"""Provider-agnostic prompts for tax analysis.

A prompt is three blocks: current Italian tax reference figures, a
document-type specific checklist embedding the serialized document, and the
JSON output schema the response parser expects.
"""

import json
from typing import Any

from taxdocs.analysis.schema import DocumentType

TAX_REFERENCE = """ITALIAN TAX REGULATIONS 2025:

VAT (IVA):
- Standard rates: 4% (essential goods), 10% (food, pharmaceuticals), 22% (standard)
- Split payment: mandatory for public administration and large companies
- Flat-rate regime (forfettario): 5% flat tax first 5 years, then 15%

INCOME TAX (IRPEF) 2025:
- First bracket: 23% (0 - 28,000 EUR)
- Second bracket: 35% (28,001 - 50,000 EUR)
- Third bracket: 43% (over 50,000 EUR)

SOCIAL SECURITY (INPS):
- Employee contributions: 9.19%
- Employer contributions: ~30%

DEDUCTIONS 2025:
- Employee work: 1,880 EUR up to 15,000 EUR income, decreasing
- Dependents: 800-950 EUR per child
- Fringe benefits: threshold 1,000 EUR (2,000 EUR with dependent children)

ANALYZE THE DOCUMENT AND IDENTIFY:
1. Tax inconsistencies
2. Possible regulation application errors
3. Missed tax optimizations
4. Tax audit risks"""

INVOICE_CHECKLIST = """CHECK SPECIFICALLY:
- Correct VAT rate for the type of goods/services
- Split payment application if required
- Nature code (natura) and regulatory reference on exempt lines
- Consistency between taxable amount, VAT and total in vat_summary
- Presence of the SDI recipient code if necessary"""

PAYSLIP_CHECKLIST = """CHECK SPECIFICALLY:
- Correct application of 2025 IRPEF brackets
- INPS contributions in correct measure (9.19% of gross)
- Family and work deductions (detrazioni)
- Fringe benefits within the exemption threshold
- Consistency between gross pay (earnings), deductions and net_pay"""

OUTPUT_FORMAT = """RESPOND ONLY WITH ONE JSON OBJECT INSIDE A ```json FENCED BLOCK, IN THIS FORMAT:
```json
{
    "summary": "Brief analysis summary",
    "confidence": 0.95,
    "recommendations": ["First specific recommendation", "Second recommendation"],
    "risks": ["First identified risk", "Second risk"],
    "optimizations": ["First possible optimization", "Second optimization"]
}
```"""


def serialize_document(document: dict[str, Any]) -> str:
    """Stable JSON rendering of a document, shared by prompts and cache keys."""
    return json.dumps(document, sort_keys=True, ensure_ascii=False, default=str)


def build_prompt(document: dict[str, Any], document_type: DocumentType) -> str:
    """Assemble the full analysis prompt for one document."""
    if document_type == "invoice":
        label, checklist = "INVOICE TO ANALYZE", INVOICE_CHECKLIST
    else:
        label, checklist = "PAYSLIP TO ANALYZE", PAYSLIP_CHECKLIST

    rendered = json.dumps(document, indent=2, ensure_ascii=False, default=str)
    return f"{TAX_REFERENCE}\n\n{label}:\n{rendered}\n\n{checklist}\n\n{OUTPUT_FORMAT}"
