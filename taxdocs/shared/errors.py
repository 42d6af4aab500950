"""Exception taxonomy for the document pipeline.

Extraction paths fail fast with these errors. Arithmetic discrepancies are
never exceptions: they are recorded in a ValidationReport. Provider failures
are recovered inside the analysis engine and never reach callers.
"""


class TaxDocumentError(Exception):
    """Base class for all pipeline errors."""


class StructuralParseError(TaxDocumentError):
    """Structured invoice is malformed or lacks a mandatory section."""


class ExtractionPipelineError(TaxDocumentError):
    """A payslip extraction stage failed.

    Attributes:
        stage: Pipeline stage that failed (read, rasterize, ocr, parse)
    """

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(f"Payslip extraction failed at stage '{stage}': {message}")


class InvalidAnalysisInputError(TaxDocumentError, ValueError):
    """Analysis was requested with an unknown type tag or an unusable record."""


class ProviderError(TaxDocumentError):
    """An analysis provider could not produce a response.

    Attributes:
        provider: Name of the provider that failed
    """

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}")


# Short names used at the public call sites
ParseError = StructuralParseError
ExtractionError = ExtractionPipelineError
