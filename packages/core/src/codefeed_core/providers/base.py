"""Base provider implementing the Template Method pattern.

Every provider exposes the same single operation:
    generate(prompt) → _call_api()   ← only this differs per provider
                     → error classification

Subclasses implement two things only:
  - __init__: validate the credential and store the SDK client
  - _call_api: make one raw API call and return the text response

Retries, fallback between providers and JSON parsing are not done here. They
live in codefeed_core.retry and codefeed_core.structured so that a provider
call is always exactly one request, which keeps call counts predictable for
the retry policy and for tests.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from codefeed_core.errors import ContextLengthError, ProviderError, ProviderTransportError

logger = logging.getLogger(__name__)

_MAX_TOKENS = 4096

# Conservative default for a provider family that does not declare its own.
_DEFAULT_CONTEXT_BUDGET = 4_000

_CONTEXT_LENGTH_CODES = {"context_length_exceeded"}
_CONTEXT_LENGTH_PHRASES = (
    "token limit",
    "context length",
    "context_length_exceeded",
    "maximum context",
    "prompt is too long",
)


def is_context_length_error(error: BaseException) -> bool:
    """Return True if an SDK error says the prompt did not fit the context window.

    Checks the provider-reported error code first (OpenAI sets
    ``code="context_length_exceeded"``; both SDKs carry the JSON error body on
    ``.body``), then falls back to the message text.
    """
    if isinstance(error, ContextLengthError):
        return True
    if getattr(error, "code", None) in _CONTEXT_LENGTH_CODES:
        return True

    body = getattr(error, "body", None)
    if isinstance(body, dict):
        detail = body.get("error", body)
        if isinstance(detail, dict):
            if detail.get("code") in _CONTEXT_LENGTH_CODES:
                return True
            message = detail.get("message")
            if isinstance(message, str) and any(p in message.lower() for p in _CONTEXT_LENGTH_PHRASES):
                return True

    message = str(error).lower()
    return any(phrase in message for phrase in _CONTEXT_LENGTH_PHRASES)


class BaseProvider(ABC):
    FAMILY: str = ""
    MODEL: str = ""
    MAX_TOKENS: int = _MAX_TOKENS
    # Estimated prompt tokens this family accepts in one call. Compared against
    # codefeed_core.utils.chunking.estimate_tokens, so it is a budget for an
    # approximation, not a hard API limit.
    CONTEXT_BUDGET: int = _DEFAULT_CONTEXT_BUDGET

    def __init__(self, model: str | None = None, context_budget: int | None = None):
        self.model = model or self.MODEL
        self.context_budget = context_budget or self.CONTEXT_BUDGET

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def generate(self, prompt: str, model: str | None = None) -> str:
        """Send one prompt and return the model's text.

        SDK exceptions are translated so callers only ever see
        ContextLengthError or ProviderTransportError.
        """
        logger.debug("%s: sending prompt (%d chars)", self.name, len(prompt))
        try:
            return self._call_api(model or self.model, prompt)
        except ProviderError:
            raise
        except Exception as e:
            if is_context_length_error(e):
                raise ContextLengthError(f"{self.name}: prompt exceeds the context window ({e})") from e
            raise ProviderTransportError(f"{self.name} API error: {e}") from e

    @property
    def name(self) -> str:
        return f"{self.FAMILY}:{self.model}"

    def __call__(self, prompt: str) -> str:
        return self.generate(prompt)

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, model: str, prompt: str) -> str:
        """Make a single API call and return the raw text response.

        This is the only method subclasses must implement. It should raise
        the SDK's own exception on failure; generate() classifies it.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _build_system_prompt(self) -> str:
        """Persona shared by every provider so summaries read the same."""
        return (
            "You are an expert senior software engineer who explains git changes "
            "to teammates. Be concise, concrete and faithful to the diff. "
            "When asked for JSON, return only JSON."
        )
