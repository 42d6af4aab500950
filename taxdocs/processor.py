"""Document pipeline: extraction followed by tax analysis.

The document type comes from the file extension unless given explicitly:
.xml files are FatturaPA invoices, .pdf files are scanned payslips.
"""

import logging
from pathlib import Path

from pydantic import BaseModel

from taxdocs.analysis.engine import TaxAnalysisEngine
from taxdocs.analysis.schema import AnalysisResult, DocumentType
from taxdocs.invoice.parser import InvoiceParser
from taxdocs.invoice.schema import InvoiceDocument
from taxdocs.payslip.extractor import PayslipExtractor
from taxdocs.payslip.schema import PayslipExtraction
from taxdocs.shared.config import Settings, get_settings
from taxdocs.shared.errors import InvalidAnalysisInputError
from taxdocs.shared.validation import ValidationReport

logger = logging.getLogger(__name__)

EXTENSION_TYPES: dict[str, DocumentType] = {".xml": "invoice", ".pdf": "payslip"}


class ProcessedDocument(BaseModel):
    """Extraction and analysis of one file."""

    source: str
    document_type: DocumentType
    extraction: InvoiceDocument | PayslipExtraction
    analysis: AnalysisResult

    @property
    def validation(self) -> ValidationReport:
        return self.extraction.validation


def detect_document_type(path: Path) -> DocumentType:
    """Map a file extension to its document type.

    Raises:
        InvalidAnalysisInputError: Extension is neither .xml nor .pdf
    """
    try:
        return EXTENSION_TYPES[path.suffix.lower()]
    except KeyError:
        raise InvalidAnalysisInputError(
            f"Cannot infer document type from '{path.name}'; expected .xml or .pdf"
        ) from None


class DocumentProcessor:
    """Run the matching extractor, then the analysis engine."""

    def __init__(
        self,
        settings: Settings | None = None,
        invoice_parser: InvoiceParser | None = None,
        payslip_extractor: PayslipExtractor | None = None,
        engine: TaxAnalysisEngine | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.invoice_parser = invoice_parser or InvoiceParser(self.settings)
        self.payslip_extractor = payslip_extractor or PayslipExtractor(self.settings)
        self.engine = engine or TaxAnalysisEngine(self.settings)

    def process(self, path: str | Path, document_type: DocumentType | None = None) -> ProcessedDocument:
        """Extract and analyze a document file.

        Raises:
            StructuralParseError: Invoice XML is malformed or incomplete
            ExtractionPipelineError: Payslip could not be read, rasterized or OCRed
            InvalidAnalysisInputError: Type cannot be determined
        """
        path = Path(path)
        document_type = document_type or detect_document_type(path)
        logger.info(f"Processing {path.name} as {document_type}")

        extraction: InvoiceDocument | PayslipExtraction
        if document_type == "invoice":
            extraction = self.invoice_parser.parse(path)
            analysis = self.engine.analyze_document(extraction.body, "invoice")
        elif document_type == "payslip":
            extraction = self.payslip_extractor.extract(path)
            analysis = self.engine.analyze_document(extraction.parsed_data, "payslip")
        else:
            raise InvalidAnalysisInputError('document_type must be "invoice" or "payslip"')

        return ProcessedDocument(
            source=str(path),
            document_type=document_type,
            extraction=extraction,
            analysis=analysis,
        )
