"""LiteLLM-backed embedding and completion providers.

All model calls in the ingest and query paths go through the two capability
interfaces defined here, so pipeline components never hold global clients
and tests can pass in doubles. LiteLLM's built-in retry handles transient
errors (num_retries, exponential backoff). API key presence is validated
before the first call.
"""

from __future__ import annotations

import math
import os
from abc import ABC, abstractmethod

import litellm

from docqa.errors import EmbeddingError
from docqa.log import get_logger

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

logger = get_logger(__name__)


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_env_var(model: str) -> tuple[str, str | None]:
    """Return (provider, API key env var) for *model*; the var is None for local providers."""
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    return provider, _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider, env_var = provider_env_var(model)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


# ------------------------------------------------------------------
# Capability interfaces
# ------------------------------------------------------------------


class EmbeddingProvider(ABC):
    """Maps text to a fixed-dimension vector.

    The same instance embeds chunks at ingest time and questions at query
    time, so both sides of a similarity comparison come from one model.
    """

    model: str
    dimensions: int

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Return the embedding of *text*.

        Raises:
            EmbeddingError: On service failure or a malformed vector.
        """


class CompletionProvider(ABC):
    """Turns a single prompt into generated text."""

    model: str

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Return the model's text output for *prompt*."""


# ------------------------------------------------------------------
# LiteLLM implementations
# ------------------------------------------------------------------


class LiteLLMEmbeddingProvider(EmbeddingProvider):
    """Embedding provider backed by ``litellm.aembedding``."""

    def __init__(self, model: str, dimensions: int, num_retries: int = 3) -> None:
        self.model = model
        self.dimensions = dimensions
        self.num_retries = num_retries

    async def embed(self, text: str) -> list[float]:
        try:
            response = await litellm.aembedding(
                model=self.model,
                input=[text],
                num_retries=self.num_retries,
            )
            vector = list(response.data[0]["embedding"])
        except Exception as exc:
            logger.warning("embedding_call_failed", model=self.model, error=str(exc))
            raise EmbeddingError(f"Embedding call to '{self.model}' failed: {exc}") from exc

        if len(vector) != self.dimensions:
            raise EmbeddingError(
                f"Model '{self.model}' returned {len(vector)} dimensions, "
                f"expected {self.dimensions}"
            )
        if not all(math.isfinite(v) for v in vector):
            raise EmbeddingError(f"Model '{self.model}' returned a non-finite vector")
        if not any(vector):
            raise EmbeddingError(f"Model '{self.model}' returned a zero vector")
        return vector


class LiteLLMCompletionProvider(CompletionProvider):
    """Completion provider backed by ``litellm.acompletion``."""

    def __init__(
        self,
        model: str,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        num_retries: int = 3,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.num_retries = num_retries

    async def complete(self, prompt: str) -> str:
        """Send *prompt* as one user message. Returns the first choice's content.

        Raises:
            litellm.exceptions.APIError: On persistent API failure after retries.
        """
        response = await litellm.acompletion(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            num_retries=self.num_retries,
        )
        return response.choices[0].message.content or ""
