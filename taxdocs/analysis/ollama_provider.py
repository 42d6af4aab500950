"""Ollama-based analysis provider for self-hosted LLM inference.

Uses a local Ollama server, so documents never leave the premises.
Not part of the default primary/fallback pair; select it with
APP_ANALYSIS_PRIMARY_PROVIDER=ollama or APP_ANALYSIS_FALLBACK_PROVIDER=ollama.

Requires Ollama server running on localhost:11434.
See: https://ollama.ai/
"""

import logging
import time
from functools import partial

import httpx

from taxdocs.analysis.base import SYSTEM_PROMPT, AnalysisProvider
from taxdocs.analysis.schema import ProviderResponse
from taxdocs.shared.config import Settings
from taxdocs.shared.errors import ProviderError

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.NetworkError)


class OllamaAnalysisProvider(AnalysisProvider):
    """Ollama-based provider for self-hosted LLM inference.

    Supports models like Qwen2.5, Llama3, Mistral.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize Ollama provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = httpx.Client()

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def model_name(self) -> str:
        return self.settings.ollama_model

    def is_available(self) -> bool:
        """Check if Ollama server is running and model is available.

        Returns:
            True if Ollama server responds and model is loaded
        """
        try:
            response = self._client.get(f"{self._base_url}/api/tags", timeout=5.0)
            if response.status_code != 200:
                return False
            models = response.json().get("models", [])
            model_names = [m.get("name", "").split(":")[0] for m in models]
            return self.model_name.split(":")[0] in model_names
        except httpx.HTTPError:
            return False

    def send_prompt(self, prompt: str, timeout: float) -> ProviderResponse:
        """Send prompt to Ollama's generate endpoint.

        Args:
            prompt: Analysis prompt
            timeout: Seconds allowed for this provider call (all attempts)

        Returns:
            ProviderResponse with the generated text

        Raises:
            ProviderError: Server unreachable, HTTP error, or empty response
        """
        start_time = time.time()
        try:
            text = self._call_with_retries(
                partial(self._generate, prompt), TRANSIENT_ERRORS, timeout
            )
        except httpx.HTTPError as e:
            raise ProviderError(self.provider_name, f"API call failed: {e}") from e

        if not text:
            raise ProviderError(self.provider_name, "Empty response from Ollama")

        return ProviderResponse(
            text=text,
            model=self.model_name,
            processing_time_ms=int((time.time() - start_time) * 1000),
        )

    def _generate(self, prompt: str, timeout: float) -> str:
        response = self._client.post(
            f"{self._base_url}/api/generate",
            json={
                "model": self.model_name,
                "system": SYSTEM_PROMPT,
                "prompt": prompt,
                "stream": False,
                "format": "json",
                "options": {
                    "temperature": self.settings.analysis_temperature,
                    "num_predict": self.settings.analysis_max_tokens,
                },
            },
            timeout=timeout,
        )
        response.raise_for_status()
        result: str = response.json().get("response", "")
        return result
