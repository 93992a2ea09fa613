from __future__ import annotations

from codefeed_core.errors import MissingCredentialError
from codefeed_core.providers.base import BaseProvider


class AnthropicProvider(BaseProvider):
    FAMILY = "anthropic"
    MODEL = "claude-sonnet-4-20250514"
    ENV_VAR = "ANTHROPIC_API_KEY"
    # The large-budget family: most batches fit in one call.
    CONTEXT_BUDGET = 150_000
    # temperature=0.3 for Anthropic, slightly higher than OpenAI's 0.2, for more
    # natural narrative phrasing while keeping JSON structure consistent.
    TEMPERATURE = 0.3

    def __init__(self, api_key: str | None, model: str | None = None, context_budget: int | None = None):
        if not api_key:
            raise MissingCredentialError(self.ENV_VAR)
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. Install it with: pip install anthropic"
            )
        super().__init__(model, context_budget)
        self.client = Anthropic(api_key=api_key)

    def _call_api(self, model: str, prompt: str) -> str:
        # Imported inside the method because __init__ is where the package is
        # validated; by the time we get here it is known to be importable.
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=model,
            system=self._build_system_prompt(),
            messages=[{"role": "user", "content": prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
