"""Groq analysis provider.

Groq exposes an OpenAI-compatible chat completions API, so the official
OpenAI SDK is used with Groq's base URL.

Includes retry logic with exponential backoff for transient API errors.
"""

import logging
import time
from functools import partial

from openai import (
    APIConnectionError,
    InternalServerError,
    OpenAI,
    OpenAIError,
    RateLimitError,
)

from taxdocs.analysis.base import SYSTEM_PROMPT, AnalysisProvider
from taxdocs.analysis.schema import ProviderResponse
from taxdocs.shared.config import Settings
from taxdocs.shared.errors import ProviderError

logger = logging.getLogger(__name__)

# APITimeoutError is a subclass of APIConnectionError
TRANSIENT_ERRORS = (APIConnectionError, RateLimitError, InternalServerError)


class GroqAnalysisProvider(AnalysisProvider):
    """Groq-hosted LLM provider (Llama family models).

    Requires a Groq API key in settings (APP_GROQ_API_KEY or GROQ_API_KEY).
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize Groq provider. The HTTP client is created on first use.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        return "groq"

    @property
    def model_name(self) -> str:
        return self.settings.groq_model

    def is_available(self) -> bool:
        """Check if a Groq API key is configured."""
        key = self.settings.groq_api_key
        return key is not None and bool(key.get_secret_value())

    def _get_client(self) -> OpenAI:
        if not self.is_available():
            raise ProviderError(self.provider_name, "GROQ_API_KEY not configured")
        if self._client is None:
            assert self.settings.groq_api_key is not None
            self._client = OpenAI(
                api_key=self.settings.groq_api_key.get_secret_value(),
                base_url=self.settings.groq_base_url,
                max_retries=0,  # retries handled by _call_with_retries
            )
        return self._client

    def send_prompt(self, prompt: str, timeout: float) -> ProviderResponse:
        """Send prompt to Groq chat completions.

        Args:
            prompt: Analysis prompt
            timeout: Seconds allowed for this provider call (all attempts)

        Returns:
            ProviderResponse with the assistant message text

        Raises:
            ProviderError: Missing key, API error, or empty response
        """
        client = self._get_client()
        start_time = time.time()

        try:
            response = self._call_with_retries(
                partial(self._create_completion, client, prompt), TRANSIENT_ERRORS, timeout
            )
        except OpenAIError as e:
            raise ProviderError(self.provider_name, f"API call failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderError(self.provider_name, "Empty completion in API response")

        return ProviderResponse(
            text=content,
            model=self.model_name,
            processing_time_ms=int((time.time() - start_time) * 1000),
        )

    def _create_completion(self, client: OpenAI, prompt: str, timeout: float):  # type: ignore[no-untyped-def]
        logger.debug(f"Calling Groq model {self.model_name}")
        return client.chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=self.settings.analysis_temperature,
            max_tokens=self.settings.analysis_max_tokens,
            timeout=timeout,
        )
