"""LLM utilities using Mistral API for text generation."""

import logging
import threading
import time

from data_models.settings import EvaluatorConfig

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """LLM call failed or the client is not configured."""


class MistralLLM:
    """Wrapper for Mistral API text generation with rate limiting."""

    def __init__(self, config: EvaluatorConfig | None = None):
        """Initialize Mistral LLM client.

        Args:
            config: API key, model, retry budget and request spacing.
        """
        self.config = config or EvaluatorConfig()
        self.api_key = self.config.api_key
        self.model = self.config.model
        self.max_retries = self.config.max_retries
        self.base_delay = self.config.base_delay_seconds
        self._client = None
        self._last_request_time = 0.0
        self._lock = threading.Lock()

    def is_configured(self) -> bool:
        """Whether an API key is set."""
        return bool(self.api_key)

    @property
    def client(self):
        """Lazy-load Mistral client."""
        if self._client is None:
            from mistralai import Mistral

            self._client = Mistral(api_key=self.api_key)
        return self._client

    def _wait_for_rate_limit(self):
        """Space requests at least base_delay apart, across threads."""
        with self._lock:
            elapsed = time.time() - self._last_request_time
            if elapsed < self.base_delay:
                time.sleep(self.base_delay - elapsed)
            self._last_request_time = time.time()

    def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Generate text from prompt with retry logic.

        Args:
            prompt: User prompt
            system_prompt: Optional system prompt
            max_tokens: Maximum tokens to generate (defaults to config)
            temperature: Sampling temperature (defaults to config)

        Returns:
            Generated text

        Raises:
            LLMError: Not configured, or still rate limited after max_retries
        """
        if not self.is_configured():
            raise LLMError("MISTRAL_API_KEY not configured")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        for attempt in range(self.max_retries):
            try:
                self._wait_for_rate_limit()
                response = self.client.chat.complete(
                    model=self.model,
                    messages=messages,
                    max_tokens=max_tokens or self.config.max_tokens,
                    temperature=self.config.temperature if temperature is None else temperature,
                )
                return response.choices[0].message.content or ""

            except Exception as e:
                error_str = str(e).lower()
                if "429" in error_str or "rate" in error_str:
                    wait_time = self.base_delay * (2 ** attempt) + 1
                    logger.warning(f"LLM rate limited, waiting {wait_time:.1f}s (attempt {attempt + 1}/{self.max_retries})")
                    time.sleep(wait_time)
                    continue
                else:
                    raise

        raise LLMError(f"LLM generation failed after {self.max_retries} retries")
