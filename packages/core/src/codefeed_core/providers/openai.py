from __future__ import annotations

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from codefeed_core.errors import MissingCredentialError
from codefeed_core.providers.base import BaseProvider


class OpenAIProvider(BaseProvider):
    FAMILY = "openai"
    MODEL = "gpt-4o"
    ENV_VAR = "OPENAI_API_KEY"
    # The small-budget family: batches above this are map-reduced.
    CONTEXT_BUDGET = 8_000
    # temperature=0.2 for OpenAI, lower than Anthropic's 0.3, to lean toward
    # more deterministic, structured JSON output.
    TEMPERATURE = 0.2

    def __init__(self, api_key: str | None, model: str | None = None, context_budget: int | None = None):
        if not api_key:
            raise MissingCredentialError(self.ENV_VAR)
        if _OpenAI is None:
            raise ImportError("The 'openai' package is required for this provider. Install it with: pip install openai")
        super().__init__(model, context_budget)
        self.client = _OpenAI(api_key=api_key)

    def _call_api(self, model: str, prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": self._build_system_prompt()},
                {"role": "user", "content": prompt},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        return (response.choices[0].message.content or "").strip()
