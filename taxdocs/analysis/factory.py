"""Factory for creating analysis providers based on configuration.

Implements Factory Pattern for provider selection with registry pattern for extensibility.

Based on:
- Factory Pattern: https://refactoring.guru/design-patterns/factory-method/python
- Registry Pattern: Python Cookbook 3rd Edition, Recipe 9.22

Adding a provider means registering a class; caching, prompting and parsing
in the engine stay untouched.
"""

import logging

from taxdocs.analysis.base import AnalysisProvider
from taxdocs.analysis.groq_provider import GroqAnalysisProvider
from taxdocs.analysis.huggingface_provider import HuggingFaceAnalysisProvider
from taxdocs.analysis.ollama_provider import OllamaAnalysisProvider
from taxdocs.shared.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry of available analysis providers.

    Maintains a mapping of provider names to their implementation classes.
    Supports runtime registration of new providers.
    """

    _providers: dict[str, type[AnalysisProvider]] = {
        "groq": GroqAnalysisProvider,
        "huggingface": HuggingFaceAnalysisProvider,
        "ollama": OllamaAnalysisProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: type[AnalysisProvider]) -> None:
        """Register a new provider.

        Args:
            name: Provider identifier (as used in Settings.analysis_*_provider)
            provider_class: Provider class implementing AnalysisProvider interface
        """
        cls._providers[name] = provider_class
        logger.info(f"Registered analysis provider: {name}")

    @classmethod
    def get_provider_class(cls, name: str) -> type[AnalysisProvider]:
        """Get provider class by name.

        Raises:
            ValueError: If provider not found in registry
        """
        if name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(
                f"Unknown analysis provider: '{name}'. Available providers: {available}"
            )
        return cls._providers[name]

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers.keys())


def create_analysis_provider(name: str, settings: Settings) -> AnalysisProvider:
    """Instantiate a registered provider.

    Logs a warning if the provider is not configured (e.g., missing API key);
    the engine will then fail over at call time.

    Raises:
        ValueError: If provider is unknown
    """
    provider = ProviderRegistry.get_provider_class(name)(settings)
    if not provider.is_available():
        logger.warning(
            f"Analysis provider '{name}' is not fully available. "
            f"Check configuration (e.g., API keys, server URL)."
        )
    logger.info(f"Created analysis provider: {name}")
    return provider


def create_provider_chain(settings: Settings) -> list[AnalysisProvider]:
    """Primary provider followed by the fallback provider, if configured.

    Raises:
        ValueError: If a configured provider is unknown
    """
    chain = [create_analysis_provider(settings.analysis_primary_provider, settings)]
    fallback = settings.analysis_fallback_provider
    if fallback and fallback != settings.analysis_primary_provider:
        chain.append(create_analysis_provider(fallback, settings))
    return chain
