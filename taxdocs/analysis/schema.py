"""Analysis result models and the analysis input union."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator

from taxdocs.invoice.schema import InvoiceBody
from taxdocs.payslip.schema import PayslipDocument

DocumentType = Literal["invoice", "payslip"]

# Analysis input: either document body, discriminated by its 'kind' tag
TaxDocument = Annotated[InvoiceBody | PayslipDocument, Field(discriminator="kind")]


class ProviderResponse(BaseModel):
    """Plain-text completion returned by an analysis provider.

    Attributes:
        text: Raw model output, expected to contain one JSON object
        model: Model identifier that produced the text
        processing_time_ms: Wall time of the provider call
    """

    text: str
    model: str
    processing_time_ms: int = 0


class AnalysisMetadata(BaseModel):
    """Provenance of an analysis result."""

    provider: str
    model: str | None = None
    processing_time_ms: int = 0
    request_id: str | None = None
    timestamp: str
    used_fallback_provider: bool = False
    from_cache: bool = False
    fallback: bool = False


class AnalysisResult(BaseModel):
    """Tax assessment of one document.

    Confidence is clamped to [0, 1] and list fields are never null.
    """

    summary: str
    confidence: float
    recommendations: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    optimizations: list[str] = Field(default_factory=list)
    from_cache: bool = False
    fallback: bool = False
    error: str | None = Field(None, description="Provider failure behind a fallback result")
    parse_error: str | None = Field(None, description="Why a provider response was unusable")
    metadata: AnalysisMetadata | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        return max(0.0, min(1.0, float(value)))

    @field_validator("recommendations", "risks", "optimizations", mode="before")
    @classmethod
    def coerce_string_list(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value else []
        return [str(item) for item in value if item]


class AnalysisStats(BaseModel):
    """Process-local usage counters of an engine instance."""

    total_requests: int
    total_errors: int
    error_rate: float
    cache_size: int
    uptime_seconds: float


class ConnectionCheck(BaseModel):
    """Outcome of a provider round-trip test."""

    success: bool
    provider: str
    response_time_ms: int | None = None
    error: str | None = None
