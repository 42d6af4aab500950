#!/usr/bin/env python3
"""Run extraction and tax analysis on a local document.

Prints the validation report and the analysis as JSON.

Usage:
    python scripts/analyze_document.py fattura.xml
    python scripts/analyze_document.py busta_paga.pdf --type payslip

Requirements:
    - GROQ_API_KEY and/or HUGGINGFACE_API_KEY for AI analysis
      (without them the offline rule checks are used)
    - tesseract and poppler installed for payslips
"""

import argparse
import json
import sys

from taxdocs.processor import DocumentProcessor
from taxdocs.shared.config import get_settings
from taxdocs.shared.errors import TaxDocumentError
from taxdocs.shared.logging import configure_logging
from taxdocs.shared.metrics import get_metrics


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("path", help="FatturaPA XML invoice or scanned payslip PDF")
    parser.add_argument("--type", choices=["invoice", "payslip"], dest="document_type")
    parser.add_argument("--full", action="store_true", help="Also print the extracted record")
    parser.add_argument("--metrics", action="store_true", help="Print Prometheus metrics at exit")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)

    try:
        processed = DocumentProcessor(settings).process(args.path, args.document_type)
    except TaxDocumentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    output = {
        "document_type": processed.document_type,
        "validation": processed.validation.model_dump(),
        "analysis": processed.analysis.model_dump(),
    }
    if args.full:
        output["extraction"] = processed.extraction.model_dump(mode="json")
    print(json.dumps(output, indent=2, ensure_ascii=False))
    if args.metrics:
        print(get_metrics()[0].decode())
    return 0 if processed.validation.is_valid else 2


if __name__ == "__main__":
    sys.exit(main())
