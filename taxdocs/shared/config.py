"""Shared configuration management for the tax document pipeline.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class IrpefBracket(BaseModel):
    """One progressive income-tax bracket.

    Attributes:
        lower: Inclusive lower bound of annual income
        upper: Exclusive upper bound, None for the open-ended top bracket
        rate: Marginal rate as a fraction (0.23 = 23%)
    """

    lower: float
    upper: float | None
    rate: float

    @property
    def width(self) -> float:
        """Income span covered by this bracket."""
        if self.upper is None:
            return float("inf")
        return self.upper - self.lower


DEFAULT_IRPEF_BRACKETS = [
    IrpefBracket(lower=0, upper=28000, rate=0.23),
    IrpefBracket(lower=28000, upper=50000, rate=0.35),
    IrpefBracket(lower=50000, upper=None, rate=0.43),
]


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LOG_LEVEL=debug

    Provider credentials also accept the vendor's conventional variable names
    (GROQ_API_KEY, HUGGINGFACE_API_KEY).
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    service_name: str = Field(
        default="taxdocs",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # OCR configuration (payslip path)
    ocr_language: str = Field(
        default="ita",
        description="Tesseract language pack",
    )
    ocr_psm: int = Field(
        default=6,
        description="Tesseract page segmentation mode (6 = single uniform block of text)",
    )
    ocr_oem: int = Field(
        default=1,
        description="Tesseract OCR engine mode (1 = LSTM only)",
    )
    ocr_dpi: int = Field(default=300, description="Rasterization density for PDF pages")
    ocr_max_page_size: int = Field(
        default=2000,
        description="Upper bound in pixels for each side of a rasterized page",
    )
    ocr_workers: int = Field(
        default=1,
        ge=1,
        description="Number of pages recognized in parallel for one document",
    )
    poppler_path: str | None = Field(
        default=None,
        description="Directory containing poppler binaries, if not on PATH",
    )
    tesseract_cmd: str | None = Field(
        default=None,
        validation_alias=AliasChoices("APP_TESSERACT_CMD", "TESSERACT_CMD"),
        description="Override for the tesseract executable path",
    )

    # Analysis provider configuration
    analysis_primary_provider: str = Field(
        default="groq",
        description="Primary analysis provider: groq, huggingface, ollama",
    )
    analysis_fallback_provider: str | None = Field(
        default="huggingface",
        description="Provider tried when the primary fails (None disables failover)",
    )
    groq_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("APP_GROQ_API_KEY", "GROQ_API_KEY"),
        description="Groq API key",
    )
    groq_model: str = Field(default="llama-3.3-70b-versatile", description="Groq model id")
    groq_base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Groq OpenAI-compatible endpoint",
    )
    huggingface_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("APP_HUGGINGFACE_API_KEY", "HUGGINGFACE_API_KEY"),
        description="HuggingFace Inference API token",
    )
    huggingface_model: str = Field(
        default="mistralai/Mistral-7B-Instruct-v0.3",
        description="HuggingFace model id",
    )
    huggingface_base_url: str = Field(
        default="https://api-inference.huggingface.co/models",
        description="HuggingFace Inference API base URL",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="qwen2.5:7b",
        description="Ollama model used for analysis",
    )
    analysis_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to each provider call independently",
    )
    analysis_max_retries: int = Field(
        default=2,
        ge=1,
        description="Attempts per provider call on transient errors",
    )
    analysis_temperature: float = Field(default=0.1, ge=0, le=2)
    analysis_max_tokens: int = Field(default=1000, gt=0)

    # Analysis cache
    analysis_cache_enabled: bool = Field(default=True)
    analysis_cache_ttl_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Cache entry lifetime measured from insertion",
    )
    analysis_cache_max_entries: int = Field(default=1000, ge=1)

    # Tax policy (Italian rules in force for 2025)
    vat_tolerance: float = Field(default=0.01, description="Allowed VAT rounding difference")
    standard_vat_rates: list[float] = Field(default_factory=lambda: [4.0, 10.0, 22.0])
    inps_employee_rate: float = Field(default=0.0919, description="Employee INPS rate")
    inps_tolerance: float = Field(
        default=5.0,
        description="INPS difference tolerated on OCR-derived payslips",
    )
    fallback_inps_tolerance: float = Field(
        default=10.0,
        description="INPS difference tolerated by the offline analysis rules",
    )
    irpef_tolerance: float = Field(
        default=20.0,
        description="Monthly IRPEF difference tolerated on OCR-derived payslips",
    )
    irpef_brackets: list[IrpefBracket] = Field(
        default_factory=lambda: list(DEFAULT_IRPEF_BRACKETS),
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
