"""Text-generation capabilities used for query synthesis.

The synthesis client only needs ``generate(prompt) -> str``. Anything that
implements :class:`TextGenerator` can be plugged in, which is how tests
substitute deterministic fakes for the network.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import openai
from openai import OpenAI

from shopassist.exceptions import ConfigurationError, SynthesisError

SYSTEM_MESSAGE = (
    "You translate repair-shop search requests into a single read-only "
    "PostgreSQL SELECT statement and answer with one JSON object only."
)


class TextGenerator(ABC):
    """Interface for text-generation providers.

    Implementations translate their own transport failures into
    :class:`SynthesisError` so callers deal with a single error type.
    """

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """Return the model's raw text answer to ``prompt``.

        Raises:
            SynthesisError: On timeout, transport failure or an empty answer.
        """
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier for logs."""
        ...


class OpenAITextGenerator(TextGenerator):
    """Chat-completions provider for OpenAI or any compatible endpoint.

    Example:
        >>> generator = OpenAITextGenerator(api_key="sk-...")
        >>> generator.generate("find customer Bob Johnson")
        '{"interpretation": "...", "sql": "SELECT ..."}'
    """

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str | None = None,
        timeout: float = 15.0,
    ) -> None:
        """Initialize the provider.

        Args:
            api_key: API key for the endpoint.
            model: Model name.
            base_url: Override for OpenAI-compatible endpoints.
            timeout: Per-request timeout in seconds.
        """
        # Retries are decided by the gateway, not hidden inside the SDK
        self._client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        self._model = model

    def generate(self, prompt: str) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_MESSAGE},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                temperature=0,
            )
        except openai.APITimeoutError as e:
            raise SynthesisError("Text generation timed out", retryable=True) from e
        except openai.APIConnectionError as e:
            raise SynthesisError("Text generation service unreachable", retryable=True) from e
        except openai.RateLimitError as e:
            raise SynthesisError("Text generation rate limited", retryable=True) from e
        except openai.APIStatusError as e:
            raise SynthesisError(
                f"Text generation failed with status {e.status_code}",
                retryable=e.status_code >= 500,
            ) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise SynthesisError("Text generation returned an empty answer")
        return content

    @property
    def model_name(self) -> str:
        return self._model


def get_generator(
    api_key: str | None,
    model: str = OpenAITextGenerator.DEFAULT_MODEL,
    base_url: str | None = None,
    timeout: float = 15.0,
) -> TextGenerator:
    """Build the configured text generator.

    Raises:
        ConfigurationError: If no API key is configured.
    """
    if not api_key:
        raise ConfigurationError(
            "No text-generation API key configured. "
            "Set SHOPASSIST_LLM_API_KEY or OPENAI_API_KEY."
        )
    return OpenAITextGenerator(api_key=api_key, model=model, base_url=base_url, timeout=timeout)
