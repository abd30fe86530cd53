from __future__ import annotations

try:
    from openai import BadRequestError as _BadRequestError
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]
    _BadRequestError = None  # type: ignore[assignment,misc]

from prsage_core.providers.base import BaseModelClient, StructuredModeRejected


class OpenAIModelClient(BaseModelClient):
    MODEL = "gpt-4o"
    # Kept low so JSON output stays stable across runs.
    TEMPERATURE = 0.2
    # JSON mode is only accepted by these model families.
    STRUCTURED_MODELS = ("gpt-4", "gpt-3.5-turbo-1106", "gpt-3.5-turbo-0125", "o1", "o3", "o4")

    def __init__(self, api_key: str, model: str | None = None, guidelines: str = "", **options):
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install 'prsage[openai]'"
            )
        super().__init__(model=model, guidelines=guidelines, **options)
        self.client = _OpenAI(api_key=api_key)

    def _call_api(self, system_prompt: str, user_prompt: str, structured: bool) -> str:
        options = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if structured:
            options["response_format"] = {"type": "json_object"}
        try:
            response = self.client.chat.completions.create(**options)
        except Exception as e:
            if structured and _BadRequestError is not None and isinstance(e, _BadRequestError):
                if "response_format" in str(e):
                    raise StructuredModeRejected(str(e)) from e
            raise
        return response.choices[0].message.content or ""
