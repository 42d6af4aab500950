"""Abstract base class for analysis providers.

Enables switching between hosted language-model providers (Groq, HuggingFace,
self-hosted Ollama) behind one "send prompt, receive text" interface. The
engine owns prompting, caching and response parsing; providers only handle
authentication and request/response translation.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_before_delay,
    wait_exponential_jitter,
)

from taxdocs.analysis.schema import ProviderResponse
from taxdocs.shared.config import Settings

SYSTEM_PROMPT = (
    "You are an expert Italian tax consultant specialized in fiscal document analysis. "
    "Always respond in valid JSON format in English."
)

# Floor for the per-attempt timeout handed to HTTP clients
MIN_ATTEMPT_TIMEOUT = 0.01


class AnalysisProvider(ABC):
    """Abstract base class for analysis providers.

    All providers must implement this interface. Failures of any kind
    (missing credential, timeout, HTTP error) are raised as ProviderError so
    the engine can fail over to the next provider.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def send_prompt(self, prompt: str, timeout: float) -> ProviderResponse:
        """Send a prompt and return the model's text output.

        Args:
            prompt: Provider-agnostic prompt
            timeout: Seconds allowed for this provider call

        Returns:
            ProviderResponse with raw text and model id

        Raises:
            ProviderError: If no usable response was obtained
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured (e.g., credential present).

        Returns:
            True if provider can be used, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'groq', 'huggingface')
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier used by this provider."""
        pass

    def _call_with_retries(
        self,
        attempt: Callable[[float], Any],
        retry_on: tuple[type[BaseException], ...],
        timeout: float,
    ) -> Any:
        """Run attempt(attempt_timeout) with exponential backoff inside one deadline.

        Every attempt is given what is left of ``timeout``, and no backoff
        wait is started that would end past the deadline, so the whole call
        takes at most ``timeout`` seconds plus the client's own overhead.

        Args:
            attempt: Callable receiving the seconds left for this attempt
            retry_on: Transient exception types worth another attempt
            timeout: Seconds allowed for all attempts together

        Returns:
            Whatever the first successful attempt returns
        """
        deadline = time.monotonic() + timeout
        retryer = Retrying(
            retry=retry_if_exception_type(retry_on),
            wait=wait_exponential_jitter(initial=1, max=8),
            stop=stop_after_attempt(self.settings.analysis_max_retries)
            | stop_before_delay(timeout),
            reraise=True,
        )
        return retryer(
            lambda: attempt(max(deadline - time.monotonic(), MIN_ATTEMPT_TIMEOUT))
        )
