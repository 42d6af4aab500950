"""Unit tests for TaxAnalysisEngine.

Tests cover:
- Input validation before any provider call
- Caching of provider results
- Primary/fallback provider failover
- Offline rule-based fallback when every provider fails
- Usage statistics and connection checks
"""

import json
import re
from collections.abc import Iterable

import pytest

from taxdocs.analysis.base import AnalysisProvider
from taxdocs.analysis.cache import AnalysisCache
from taxdocs.analysis.engine import TaxAnalysisEngine
from taxdocs.analysis.schema import ProviderResponse
from taxdocs.invoice.schema import (
    InvoiceBody,
    InvoiceDocument,
    InvoiceHeader,
    InvoiceLine,
    Issuer,
    Recipient,
    VatSummaryEntry,
)
from taxdocs.payslip.schema import Contributions, Earnings, PayslipDocument
from taxdocs.shared.config import Settings
from taxdocs.shared.errors import InvalidAnalysisInputError, ProviderError
from taxdocs.shared.validation import ValidationReport

GOOD_RESPONSE = json.dumps(
    {
        "summary": "Invoice consistent with VAT rules",
        "confidence": 0.92,
        "recommendations": ["Archive the SDI receipt"],
        "risks": [],
        "optimizations": ["Consider split payment review"],
    }
)


class FakeProvider(AnalysisProvider):
    """Provider returning canned text, or raising, in call order."""

    def __init__(self, name: str, outcomes: Iterable[str | Exception]) -> None:
        self._name = name
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, float]] = []

    def send_prompt(self, prompt: str, timeout: float) -> ProviderResponse:
        self.calls.append((prompt, timeout))
        outcome = self._outcomes[min(len(self.calls), len(self._outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return ProviderResponse(text=outcome, model=f"{self._name}-model", processing_time_ms=42)

    def is_available(self) -> bool:
        return True

    @property
    def provider_name(self) -> str:
        return self._name

    @property
    def model_name(self) -> str:
        return f"{self._name}-model"


def _failing(name: str) -> FakeProvider:
    return FakeProvider(name, [ProviderError(name, "401 Invalid API Key")])


@pytest.fixture
def invoice() -> InvoiceBody:
    return InvoiceBody(
        lines=[InvoiceLine(line_number=1, description="Consulenza", unit_price=1000, total_price=1000, vat_rate=22)],
        vat_summary=[VatSummaryEntry(rate=22, taxable_amount=1000, tax_amount=220)],
    )


@pytest.fixture
def payslip() -> PayslipDocument:
    return PayslipDocument(
        earnings=Earnings(base_salary=2000),
        contributions=Contributions(social_security=183.80),
        net_pay=1356.20,
    )


def _engine(settings: Settings, *providers: AnalysisProvider, **kwargs: object) -> TaxAnalysisEngine:
    return TaxAnalysisEngine(settings, providers=list(providers), **kwargs)  # type: ignore[arg-type]


class TestInputValidation:
    @pytest.mark.parametrize("document_type", ["receipt", "", "INVOICE"])
    def test_unknown_type_rejected(self, settings: Settings, invoice: InvoiceBody, document_type: str) -> None:
        provider = FakeProvider("groq", [GOOD_RESPONSE])

        with pytest.raises(InvalidAnalysisInputError):
            _engine(settings, provider).analyze_document(invoice, document_type)

        assert provider.calls == []

    @pytest.mark.parametrize("document", [None, "invoice text", 42, ["a"]])
    def test_non_record_rejected(self, settings: Settings, document: object) -> None:
        provider = FakeProvider("groq", [GOOD_RESPONSE])

        with pytest.raises(ValueError):
            _engine(settings, provider).analyze_document(document, "invoice")

        assert provider.calls == []

    def test_model_of_other_type_rejected(self, settings: Settings, payslip: PayslipDocument) -> None:
        with pytest.raises(InvalidAnalysisInputError, match="cannot be analyzed as 'invoice'"):
            _engine(settings, FakeProvider("groq", [GOOD_RESPONSE])).analyze_document(payslip, "invoice")

    def test_mapping_with_conflicting_kind_rejected(self, settings: Settings) -> None:
        with pytest.raises(InvalidAnalysisInputError, match="does not match"):
            _engine(settings, FakeProvider("groq", [GOOD_RESPONSE])).analyze_document(
                {"kind": "payslip", "net_pay": 1000}, "invoice"
            )

    def test_invalid_mapping_rejected(self, settings: Settings) -> None:
        with pytest.raises(InvalidAnalysisInputError, match="Invalid payslip record"):
            _engine(settings, FakeProvider("groq", [GOOD_RESPONSE])).analyze_document(
                {"net_pay": "not a number"}, "payslip"
            )

    def test_mapping_coerced(self, settings: Settings) -> None:
        provider = FakeProvider("groq", [GOOD_RESPONSE])

        result = _engine(settings, provider).analyze_document(
            {"vat_summary": [{"rate": 22, "taxable_amount": 100, "tax_amount": 22}]}, "invoice"
        )

        assert result.fallback is False
        assert '"taxable_amount": 100.0' in provider.calls[0][0]

    def test_full_invoice_document_accepted(self, settings: Settings, invoice: InvoiceBody) -> None:
        document = InvoiceDocument(
            header=InvoiceHeader(issuer=Issuer(vat_number="01234567897"), recipient=Recipient()),
            body=invoice,
            validation=ValidationReport(),
        )

        result = _engine(settings, FakeProvider("groq", [GOOD_RESPONSE])).analyze_document(document, "invoice")

        assert result.summary == "Invoice consistent with VAT rules"


class TestProviderResults:
    def test_successful_analysis(self, settings: Settings, invoice: InvoiceBody) -> None:
        provider = FakeProvider("groq", [GOOD_RESPONSE])

        result = _engine(settings, provider).analyze_document(invoice, "invoice")

        assert result.confidence == 0.92
        assert result.from_cache is False
        assert result.fallback is False
        assert result.metadata is not None
        assert result.metadata.provider == "groq"
        assert result.metadata.model == "groq-model"
        assert result.metadata.processing_time_ms == 42
        assert result.metadata.used_fallback_provider is False
        assert re.fullmatch(r"ai_\d+_[0-9a-f]{9}", result.metadata.request_id or "")

    def test_prompt_and_timeout(self, settings: Settings, payslip: PayslipDocument) -> None:
        provider = FakeProvider("groq", [GOOD_RESPONSE])

        _engine(settings, provider).analyze_document(payslip, "payslip")

        prompt, timeout = provider.calls[0]
        assert "PAYSLIP TO ANALYZE" in prompt
        assert '"social_security": 183.8' in prompt
        assert "```json" in prompt
        assert timeout == 30.0

    @pytest.mark.parametrize(("raw", "expected"), [(1.5, 1.0), (-0.2, 0.0)])
    def test_confidence_clamped(
        self, settings: Settings, invoice: InvoiceBody, raw: float, expected: float
    ) -> None:
        text = json.dumps({"summary": "s", "confidence": raw, "recommendations": ["r"]})

        result = _engine(settings, FakeProvider("groq", [text])).analyze_document(invoice, "invoice")

        assert result.confidence == expected

    def test_unparseable_response_degrades(self, settings: Settings, invoice: InvoiceBody) -> None:
        provider = FakeProvider("groq", ["Sorry, I cannot help with that."])

        result = _engine(settings, provider).analyze_document(invoice, "invoice")

        assert result.confidence == 0.5
        assert result.parse_error is not None
        assert result.fallback is False


class TestFailover:
    def test_fallback_provider_used(self, settings: Settings, invoice: InvoiceBody) -> None:
        primary = _failing("groq")
        secondary = FakeProvider("huggingface", [GOOD_RESPONSE])

        result = _engine(settings, primary, secondary).analyze_document(invoice, "invoice")

        assert result.fallback is False
        assert result.metadata is not None
        assert result.metadata.provider == "huggingface"
        assert result.metadata.used_fallback_provider is True
        assert len(primary.calls) == 1
        assert len(secondary.calls) == 1

    def test_fallback_provider_not_called_on_success(self, settings: Settings, invoice: InvoiceBody) -> None:
        secondary = FakeProvider("huggingface", [GOOD_RESPONSE])

        _engine(settings, FakeProvider("groq", [GOOD_RESPONSE]), secondary).analyze_document(invoice, "invoice")

        assert secondary.calls == []

    def test_unexpected_provider_exception_fails_over(self, settings: Settings, invoice: InvoiceBody) -> None:
        primary = FakeProvider("groq", [RuntimeError("socket closed")])
        secondary = FakeProvider("huggingface", [GOOD_RESPONSE])

        result = _engine(settings, primary, secondary).analyze_document(invoice, "invoice")

        assert result.metadata is not None
        assert result.metadata.provider == "huggingface"


class TestOfflineFallback:
    def test_all_providers_fail(self, settings: Settings, invoice: InvoiceBody) -> None:
        result = _engine(settings, _failing("groq"), _failing("huggingface")).analyze_document(
            invoice, "invoice"
        )

        assert result.fallback is True
        assert result.confidence == 0.4
        assert result.summary == "Basic analysis completed (AI unavailable)"
        assert result.risks == ["AI service temporarily unavailable"]
        assert "Invalid API Key" in (result.error or "")
        assert result.metadata is not None
        assert result.metadata.provider == "fallback"
        assert result.metadata.fallback is True

    def test_no_credentials_never_raises(
        self, settings: Settings, invoice: InvoiceBody, payslip: PayslipDocument
    ) -> None:
        """Default chain (Groq, HuggingFace) without keys falls back offline."""
        engine = TaxAnalysisEngine(settings)

        for document, document_type in ((invoice, "invoice"), (payslip, "payslip")):
            result = engine.analyze_document(document, document_type)
            assert result.fallback is True
            assert result.confidence == 0.4

    def test_invoice_rules(self, settings: Settings) -> None:
        invoice = InvoiceBody(
            vat_summary=[
                VatSummaryEntry(rate=5, taxable_amount=100, tax_amount=5),
                VatSummaryEntry(rate=22, taxable_amount=1000, tax_amount=200),
                VatSummaryEntry(rate=0, taxable_amount=50, tax_amount=0, nature="N2.2"),
            ]
        )

        result = _engine(settings, _failing("groq")).analyze_document(invoice, "invoice")

        assert result.recommendations == [
            "VAT rate 5% is non-standard - verify applicability",
            "Verify VAT calculation of summary entry 2 - possible rounding error",
        ]

    def test_payslip_rules(self, settings: Settings) -> None:
        payslip = PayslipDocument(
            earnings=Earnings(base_salary=2000), contributions=Contributions(social_security=150)
        )

        result = _engine(settings, _failing("groq")).analyze_document(payslip, "payslip")

        assert result.recommendations == [
            "Verify INPS contributions - may not be aligned with 9.19%"
        ]

    def test_fallback_not_cached(self, settings: Settings, invoice: InvoiceBody) -> None:
        engine = _engine(settings, _failing("groq"))

        engine.analyze_document(invoice, "invoice")
        second = engine.analyze_document(invoice, "invoice")

        assert second.from_cache is False
        assert second.fallback is True


class TestCaching:
    def test_second_call_served_from_cache(self, settings: Settings, invoice: InvoiceBody) -> None:
        provider = FakeProvider("groq", [GOOD_RESPONSE])
        engine = _engine(settings, provider)

        first = engine.analyze_document(invoice, "invoice")
        second = engine.analyze_document(invoice.model_copy(deep=True), "invoice")

        assert first.from_cache is False
        assert second.from_cache is True
        assert second.metadata is not None
        assert second.metadata.from_cache is True
        assert second.summary == first.summary
        assert len(provider.calls) == 1

    def test_different_document_misses(self, settings: Settings, invoice: InvoiceBody) -> None:
        provider = FakeProvider("groq", [GOOD_RESPONSE])
        engine = _engine(settings, provider)
        other = invoice.model_copy(deep=True)
        other.vat_summary[0].taxable_amount = 2000

        engine.analyze_document(invoice, "invoice")
        engine.analyze_document(other, "invoice")

        assert len(provider.calls) == 2

    def test_expired_entry_calls_provider(self, settings: Settings, invoice: InvoiceBody) -> None:
        now = [0.0]
        cache = AnalysisCache(ttl_seconds=3600, clock=lambda: now[0])
        provider = FakeProvider("groq", [GOOD_RESPONSE])
        engine = _engine(settings, provider, cache=cache)

        engine.analyze_document(invoice, "invoice")
        now[0] = 3601.0
        result = engine.analyze_document(invoice, "invoice")

        assert result.from_cache is False
        assert len(provider.calls) == 2

    def test_cache_disabled(self, clean_env: None, invoice: InvoiceBody) -> None:
        settings = Settings(_env_file=None, analysis_cache_enabled=False)
        provider = FakeProvider("groq", [GOOD_RESPONSE])
        engine = _engine(settings, provider)

        engine.analyze_document(invoice, "invoice")
        engine.analyze_document(invoice, "invoice")

        assert len(provider.calls) == 2
        assert engine.get_stats().cache_size == 0

    def test_degraded_result_not_cached(self, settings: Settings, invoice: InvoiceBody) -> None:
        provider = FakeProvider("groq", ["no json here", GOOD_RESPONSE])
        engine = _engine(settings, provider)

        engine.analyze_document(invoice, "invoice")
        second = engine.analyze_document(invoice, "invoice")

        assert second.from_cache is False
        assert second.parse_error is None

    def test_clear_cache(self, settings: Settings, invoice: InvoiceBody) -> None:
        provider = FakeProvider("groq", [GOOD_RESPONSE])
        engine = _engine(settings, provider)
        engine.analyze_document(invoice, "invoice")

        engine.clear_cache()
        engine.analyze_document(invoice, "invoice")

        assert len(provider.calls) == 2


class TestStatsAndConnection:
    def test_stats(self, settings: Settings, invoice: InvoiceBody, payslip: PayslipDocument) -> None:
        engine = _engine(settings, FakeProvider("groq", [GOOD_RESPONSE, ProviderError("groq", "down")]))

        engine.analyze_document(invoice, "invoice")
        engine.analyze_document(payslip, "payslip")
        stats = engine.get_stats()

        assert stats.total_requests == 2
        assert stats.total_errors == 1
        assert stats.error_rate == 0.5
        assert stats.cache_size == 1
        assert stats.uptime_seconds >= 0

    def test_stats_before_any_request(self, settings: Settings) -> None:
        stats = _engine(settings).get_stats()

        assert stats.total_requests == 0
        assert stats.error_rate == 0.0

    def test_check_connection_success(self, settings: Settings) -> None:
        engine = _engine(settings, FakeProvider("groq", ['{"status": "ok"}']))

        check = engine.check_connection()

        assert check.success is True
        assert check.provider == "groq"
        assert check.response_time_ms == 42

    def test_check_connection_failure(self, settings: Settings) -> None:
        engine = _engine(settings, _failing("groq"), FakeProvider("huggingface", ["{}"]))

        assert engine.check_connection("groq").success is False
        assert engine.check_connection("huggingface").success is True

    def test_check_connection_unknown_provider(self, settings: Settings) -> None:
        check = _engine(settings, FakeProvider("groq", ["{}"])).check_connection("gemini")

        assert check.success is False
        assert "Unknown analysis provider" in (check.error or "")
