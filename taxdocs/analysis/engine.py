"""Tax analysis engine with provider failover, caching and offline fallback.

Flow for one document:
1. Validate the type tag and coerce the record into InvoiceBody/PayslipDocument
2. Return a cached result if an unexpired one exists for the same content
3. Prompt the primary provider, then the fallback provider on failure
4. Parse the response (degraded result if unusable)
5. If every provider failed, run the deterministic rule checks instead

Only step 1 can raise. Everything after it degrades instead of failing.
"""

import logging
import threading
import time
import uuid
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from taxdocs.analysis.base import AnalysisProvider
from taxdocs.analysis.cache import AnalysisCache, cache_key
from taxdocs.analysis.factory import create_analysis_provider, create_provider_chain
from taxdocs.analysis.prompts import build_prompt, serialize_document
from taxdocs.analysis.response_parser import parse_analysis_response
from taxdocs.analysis.rules import check_invoice, check_payslip
from taxdocs.analysis.schema import (
    AnalysisMetadata,
    AnalysisResult,
    AnalysisStats,
    ConnectionCheck,
    DocumentType,
    ProviderResponse,
    TaxDocument,
)
from taxdocs.invoice.schema import InvoiceBody, InvoiceDocument
from taxdocs.payslip.schema import PayslipDocument
from taxdocs.shared import metrics
from taxdocs.shared.config import Settings, get_settings
from taxdocs.shared.errors import InvalidAnalysisInputError, ProviderError

logger = logging.getLogger(__name__)

DOCUMENT_TYPES: tuple[DocumentType, ...] = ("invoice", "payslip")
FALLBACK_CONFIDENCE = 0.4
FALLBACK_SUMMARY = "Basic analysis completed (AI unavailable)"

_document_adapter: TypeAdapter[InvoiceBody | PayslipDocument] = TypeAdapter(TaxDocument)


class TaxAnalysisEngine:
    """AI-assisted tax analysis of extracted documents.

    The response cache and the request/error counters are the only state
    shared across calls; both are safe to use from several threads. Two
    concurrent calls for the same uncached document both reach the
    providers.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        providers: Sequence[AnalysisProvider] | None = None,
        cache: AnalysisCache | None = None,
    ) -> None:
        """Initialize engine.

        Args:
            settings: Application settings (credentials, timeouts, cache policy)
            providers: Ordered provider chain; built from settings on first use when omitted
            cache: Result cache; built from settings when omitted
        """
        self.settings = settings or get_settings()
        self._providers = list(providers) if providers is not None else None
        self.cache = cache or AnalysisCache(
            ttl_seconds=self.settings.analysis_cache_ttl_seconds,
            max_entries=self.settings.analysis_cache_max_entries,
        )
        self._request_count = 0
        self._error_count = 0
        self._stats_lock = threading.Lock()
        self._started_at = time.monotonic()

    @property
    def providers(self) -> list[AnalysisProvider]:
        """Provider chain in call order, created lazily from settings."""
        if self._providers is None:
            self._providers = create_provider_chain(self.settings)
        return self._providers

    def analyze_document(self, document: Any, document_type: str) -> AnalysisResult:
        """Analyze an invoice body or payslip.

        Args:
            document: InvoiceBody, InvoiceDocument, PayslipDocument, or a mapping
                of their fields
            document_type: 'invoice' or 'payslip'

        Returns:
            AnalysisResult from a provider, the cache, or the offline rules

        Raises:
            InvalidAnalysisInputError: Unknown type tag or unusable record
        """
        record = self._coerce_document(document, document_type)
        start_time = time.time()
        with self._stats_lock:
            self._request_count += 1

        payload = record.model_dump(mode="json")
        key = cache_key(document_type, serialize_document(payload))

        if self.settings.analysis_cache_enabled:
            cached = self.cache.get(key)
            if cached is not None:
                logger.info(f"Using cached {document_type} analysis")
                cached.from_cache = True
                if cached.metadata is not None:
                    cached.metadata.from_cache = True
                metrics.analysis_requests_total.labels(
                    document_type=document_type, outcome="cache"
                ).inc()
                metrics.analysis_duration_seconds.observe(time.time() - start_time)
                return cached

        prompt = build_prompt(payload, document_type)  # type: ignore[arg-type]
        try:
            response, provider, used_fallback = self._call_providers(prompt)
        except ProviderError as e:
            with self._stats_lock:
                self._error_count += 1
            logger.error(f"All analysis providers failed, using offline rules: {e}")
            metrics.analysis_requests_total.labels(
                document_type=document_type, outcome="fallback"
            ).inc()
            result = self._fallback_analysis(record, str(e))
            metrics.analysis_duration_seconds.observe(time.time() - start_time)
            return result

        result = parse_analysis_response(response.text)
        result.metadata = AnalysisMetadata(
            provider=provider.provider_name,
            model=response.model,
            processing_time_ms=response.processing_time_ms,
            request_id=self._generate_request_id(),
            timestamp=datetime.now(UTC).isoformat(),
            used_fallback_provider=used_fallback,
        )

        outcome = "degraded" if result.parse_error else "provider"
        if self.settings.analysis_cache_enabled and not result.parse_error:
            self.cache.set(key, result)

        metrics.analysis_requests_total.labels(document_type=document_type, outcome=outcome).inc()
        metrics.analysis_duration_seconds.observe(time.time() - start_time)
        logger.info(
            f"Analysis completed: provider={provider.provider_name}, "
            f"confidence={result.confidence:.2f}, time={response.processing_time_ms}ms"
        )
        return result

    def _coerce_document(self, document: Any, document_type: str) -> InvoiceBody | PayslipDocument:
        if document_type not in DOCUMENT_TYPES:
            raise InvalidAnalysisInputError('document_type must be "invoice" or "payslip"')
        if document is None:
            raise InvalidAnalysisInputError("document must be a structured record, got None")

        if isinstance(document, InvoiceDocument):
            document = document.body
        if isinstance(document, (InvoiceBody, PayslipDocument)):
            if document.kind != document_type:
                raise InvalidAnalysisInputError(
                    f"{type(document).__name__} cannot be analyzed as '{document_type}'"
                )
            return document
        if isinstance(document, BaseModel):
            document = document.model_dump()
        if not isinstance(document, Mapping):
            raise InvalidAnalysisInputError(
                f"document must be a structured record, got {type(document).__name__}"
            )

        fields = dict(document)
        if fields.setdefault("kind", document_type) != document_type:
            raise InvalidAnalysisInputError(
                f"document kind '{fields['kind']}' does not match '{document_type}'"
            )
        try:
            return _document_adapter.validate_python(fields)
        except ValidationError as e:
            raise InvalidAnalysisInputError(f"Invalid {document_type} record: {e}") from e

    def _call_providers(self, prompt: str) -> tuple[ProviderResponse, AnalysisProvider, bool]:
        """Try each provider in order, strictly one after another.

        Each call gets the full analysis timeout of its own.

        Raises:
            ProviderError: Every provider failed
        """
        try:
            providers = self.providers
        except ValueError as e:
            raise ProviderError("analysis", str(e)) from e

        failures: list[str] = []
        for position, provider in enumerate(providers):
            if position:
                logger.info(f"Falling back to {provider.provider_name}...")
            try:
                response = provider.send_prompt(prompt, timeout=self.settings.analysis_timeout_seconds)
            except Exception as e:
                logger.warning(f"Analysis provider {provider.provider_name} failed: {e}")
                metrics.analysis_provider_calls_total.labels(
                    provider=provider.provider_name, status="failed"
                ).inc()
                failures.append(str(e))
                continue
            metrics.analysis_provider_calls_total.labels(
                provider=provider.provider_name, status="success"
            ).inc()
            return response, provider, position > 0

        raise ProviderError("analysis", "; ".join(failures) or "no provider configured")

    def _fallback_analysis(
        self, record: InvoiceBody | PayslipDocument, error_message: str
    ) -> AnalysisResult:
        """Offline rule-based result, tagged fallback."""
        if isinstance(record, InvoiceBody):
            findings = check_invoice(record, self.settings)
        else:
            findings = check_payslip(record, self.settings)

        return AnalysisResult(
            summary=FALLBACK_SUMMARY,
            confidence=FALLBACK_CONFIDENCE,
            recommendations=findings.recommendations,
            risks=["AI service temporarily unavailable"],
            optimizations=findings.optimizations,
            fallback=True,
            error=error_message,
            metadata=AnalysisMetadata(
                provider="fallback",
                processing_time_ms=0,
                request_id=self._generate_request_id(),
                timestamp=datetime.now(UTC).isoformat(),
                fallback=True,
            ),
        )

    @staticmethod
    def _generate_request_id() -> str:
        return f"ai_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

    def get_stats(self) -> AnalysisStats:
        """Usage counters since the engine was created."""
        with self._stats_lock:
            requests, errors = self._request_count, self._error_count
        return AnalysisStats(
            total_requests=requests,
            total_errors=errors,
            error_rate=errors / requests if requests else 0.0,
            cache_size=len(self.cache),
            uptime_seconds=time.monotonic() - self._started_at,
        )

    def clear_cache(self) -> None:
        self.cache.clear()

    def check_connection(self, provider_name: str | None = None) -> ConnectionCheck:
        """Round-trip a trivial prompt through one provider.

        Args:
            provider_name: Registered provider name; the primary provider when omitted

        Returns:
            ConnectionCheck with response time or error
        """
        name = provider_name or self.settings.analysis_primary_provider
        try:
            provider = next((p for p in self.providers if p.provider_name == name), None)
            if provider is None:
                provider = create_analysis_provider(name, self.settings)
            prompt = f'Test AI connection. Respond with: {{"status": "ok", "provider": "{name}"}}'
            response = provider.send_prompt(prompt, timeout=self.settings.analysis_timeout_seconds)
        except (ProviderError, ValueError) as e:
            return ConnectionCheck(success=False, provider=name, error=str(e))
        return ConnectionCheck(
            success=True, provider=name, response_time_ms=response.processing_time_ms
        )
