"""HuggingFace Inference API analysis provider.

Uses the text-generation task of the serverless Inference API over httpx.
See: https://huggingface.co/docs/api-inference/
"""

import logging
import time
from functools import partial
from typing import Any

import httpx

from taxdocs.analysis.base import SYSTEM_PROMPT, AnalysisProvider
from taxdocs.analysis.schema import ProviderResponse
from taxdocs.shared.config import Settings
from taxdocs.shared.errors import ProviderError

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.NetworkError)


class HuggingFaceAnalysisProvider(AnalysisProvider):
    """HuggingFace-hosted model provider.

    Requires an access token in settings (APP_HUGGINGFACE_API_KEY or
    HUGGINGFACE_API_KEY).
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize HuggingFace provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client = httpx.Client()

    @property
    def provider_name(self) -> str:
        return "huggingface"

    @property
    def model_name(self) -> str:
        return self.settings.huggingface_model

    @property
    def endpoint(self) -> str:
        return f"{self.settings.huggingface_base_url.rstrip('/')}/{self.model_name}"

    def is_available(self) -> bool:
        """Check if a HuggingFace token is configured."""
        key = self.settings.huggingface_api_key
        return key is not None and bool(key.get_secret_value())

    def send_prompt(self, prompt: str, timeout: float) -> ProviderResponse:
        """Send prompt to the Inference API.

        Args:
            prompt: Analysis prompt
            timeout: Seconds allowed for this provider call (all attempts)

        Returns:
            ProviderResponse with generated text

        Raises:
            ProviderError: Missing token, HTTP error, or unexpected payload
        """
        if not self.is_available():
            raise ProviderError(self.provider_name, "HUGGINGFACE_API_KEY not configured")

        start_time = time.time()
        try:
            payload = self._call_with_retries(
                partial(self._post, prompt), TRANSIENT_ERRORS, timeout
            )
        except httpx.HTTPError as e:
            raise ProviderError(self.provider_name, f"API call failed: {e}") from e

        text = self._generated_text(payload)
        if not text:
            raise ProviderError(self.provider_name, "Empty generated_text in API response")

        return ProviderResponse(
            text=text,
            model=self.model_name,
            processing_time_ms=int((time.time() - start_time) * 1000),
        )

    def _post(self, prompt: str, timeout: float) -> Any:
        assert self.settings.huggingface_api_key is not None
        response = self._client.post(
            self.endpoint,
            headers={
                "Authorization": f"Bearer {self.settings.huggingface_api_key.get_secret_value()}",
            },
            json={
                "inputs": f"{SYSTEM_PROMPT}\n\n{prompt}",
                "parameters": {
                    "max_new_tokens": min(self.settings.analysis_max_tokens, 800),
                    "temperature": self.settings.analysis_temperature,
                    "return_full_text": False,
                },
            },
            timeout=timeout,
        )
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _generated_text(payload: Any) -> str | None:
        """Text of a text-generation payload: a list of dicts, a dict, or a bare string."""
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if isinstance(payload, dict):
            payload = payload.get("generated_text")
        if isinstance(payload, str):
            return payload
        return None
