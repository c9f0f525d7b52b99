"""
Provider-agnostic LLM client for Notary.

Supports a local Ollama server plus Anthropic, OpenAI, and Google Gemini
behind one text-generation interface. Provider exceptions are translated
into Notary's transport errors so callers can decide what to retry without
knowing which SDK produced the failure.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from .errors import (
    GenerationTimeout,
    HttpStatusError,
    NetworkError,
    ProviderError,
)

logger = logging.getLogger("notary.common.llm_client")

DEFAULT_OLLAMA_HOST = "http://localhost:11434"
SUPPORTED_PROVIDERS = ("ollama", "anthropic", "openai", "google")


class TextGenerator(ABC):
    """Anything that turns a prompt into text.

    Implementations raise NetworkError, GenerationTimeout or HttpStatusError
    (all TransportError subclasses) when the call fails.
    """

    @abstractmethod
    def generate(self, model: str, prompt: str, *, timeout: float) -> str:
        ...


class LLMClient(TextGenerator):
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "ollama",
        model: str = "",
        *,
        ollama_host: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        max_tokens: int = 1024,
        connect_timeout: float = 5.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.provider = (provider or "ollama").lower()
        self.model = model
        self.max_tokens = max_tokens
        self._client = None
        self._google_models = {}

        if self.provider == "ollama":
            self.base_url = (ollama_host or DEFAULT_OLLAMA_HOST).rstrip("/")
            if not self.base_url.startswith(("http://", "https://")):
                raise ValueError(f"Invalid Ollama host: {self.base_url}")
            self._client = http_client or httpx.Client(
                timeout=httpx.Timeout(60.0, connect=connect_timeout),
            )
            return

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import OpenAI

                self._client = OpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, models are built per name
            except ImportError:
                logger.warning("google-generativeai package not installed")
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(self, model: str, prompt: str, *, timeout: float = 60.0) -> str:
        """Generate a completion for ``prompt``.

        Args:
            model: Model name; falls back to the client's default when empty
            prompt: Full prompt text
            timeout: Per-request timeout in seconds

        Raises:
            NetworkError, GenerationTimeout, HttpStatusError, ProviderError
        """
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        model = model or self.model
        if not model:
            raise ValueError("No model specified and no default model configured")

        logger.debug("Generating with %s/%s (%d prompt chars)", self.provider, model, len(prompt))

        if self.provider == "ollama":
            return self._generate_ollama(model, prompt, timeout)
        if self.provider == "anthropic":
            return self._generate_anthropic(model, prompt, timeout)
        if self.provider == "openai":
            return self._generate_openai(model, prompt, timeout)
        if self.provider == "google":
            return self._generate_google(model, prompt, timeout)

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

    def list_models(self) -> List[str]:
        """List models installed on the Ollama server, largest first."""
        if self.provider != "ollama":
            raise RuntimeError(f"Model listing is not supported for provider: {self.provider}")

        try:
            response = self._client.get(f"{self.base_url}/api/tags")
        except httpx.TimeoutException as e:
            raise GenerationTimeout(str(e)) from e
        except httpx.HTTPError as e:
            raise NetworkError(str(e)) from e

        if response.status_code >= 400:
            raise HttpStatusError(response.status_code)

        try:
            models = response.json().get("models") or []
        except ValueError as e:
            raise ProviderError(f"Malformed model list from Ollama: {e}") from e

        entries = [
            (m["name"], m.get("size") or 0)
            for m in models
            if isinstance(m, dict) and m.get("name")
        ]
        entries.sort(key=lambda entry: entry[1], reverse=True)
        return [name for name, _ in entries]

    def close(self) -> None:
        if self.provider == "ollama" and self._client is not None:
            self._client.close()

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def _generate_ollama(self, model: str, prompt: str, timeout: float) -> str:
        try:
            response = self._client.post(
                f"{self.base_url}/api/generate",
                json={"model": model, "prompt": prompt, "stream": False},
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise GenerationTimeout(str(e)) from e
        except httpx.HTTPError as e:
            raise NetworkError(str(e)) from e

        if response.status_code >= 400:
            raise HttpStatusError(response.status_code, response.text[:200])

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Malformed response from Ollama: {e}") from e

        text = data.get("response") if isinstance(data, dict) else None
        if text is None:
            raise ProviderError("Ollama response has no 'response' field")
        return text.strip()

    def _generate_anthropic(self, model: str, prompt: str, timeout: float) -> str:
        import anthropic

        try:
            response = self._client.messages.create(
                model=model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
        except anthropic.APITimeoutError as e:
            raise GenerationTimeout(str(e)) from e
        except anthropic.APIConnectionError as e:
            raise NetworkError(str(e)) from e
        except anthropic.APIStatusError as e:
            raise HttpStatusError(e.status_code, str(e)) from e
        return response.content[0].text.strip()

    def _generate_openai(self, model: str, prompt: str, timeout: float) -> str:
        import openai

        try:
            response = self._client.chat.completions.create(
                model=model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
        except openai.APITimeoutError as e:
            raise GenerationTimeout(str(e)) from e
        except openai.APIConnectionError as e:
            raise NetworkError(str(e)) from e
        except openai.APIStatusError as e:
            raise HttpStatusError(e.status_code, str(e)) from e
        return (response.choices[0].message.content or "").strip()

    def _generate_google(self, model: str, prompt: str, timeout: float) -> str:
        from google.api_core import exceptions as google_exceptions

        if model not in self._google_models:
            self._google_models[model] = self._client.GenerativeModel(model_name=model)
        try:
            response = self._google_models[model].generate_content(
                prompt,
                generation_config={"max_output_tokens": self.max_tokens},
                request_options={"timeout": timeout},
            )
        except google_exceptions.DeadlineExceeded as e:
            raise GenerationTimeout(str(e)) from e
        except google_exceptions.GoogleAPICallError as e:
            raise HttpStatusError(e.code or 500, str(e)) from e
        except google_exceptions.RetryError as e:
            raise NetworkError(str(e)) from e
        return response.text.strip()
