from __future__ import annotations

from prsage_core.providers.base import BaseModelClient


class AnthropicModelClient(BaseModelClient):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.3
    # The Messages API has no JSON-mode flag; the schema always travels as text.
    STRUCTURED_MODELS = ()

    def __init__(self, api_key: str, model: str | None = None, guidelines: str = "", **options):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'prsage[anthropic]'"
            )
        super().__init__(model=model, guidelines=guidelines, **options)
        self.client = Anthropic(api_key=api_key)

    def _call_api(self, system_prompt: str, user_prompt: str, structured: bool) -> str:
        # Imported inside the method because the anthropic package is optional;
        # __init__ already validated it is installed before we reach here.
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
