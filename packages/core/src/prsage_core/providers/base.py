"""Base completion client implementing the Template Method pattern.

All providers share the same algorithm:
    analyze_with_retry() → analyze() → _request() → _call_api()   ← only this differs per provider
                                     → parse_model_output()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

Everything else (system instructions, structured-output capability checks,
JSON validation and the retry/degrade policy) lives here so it is defined
once and inherited consistently by every provider.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

from prsage_core.response import ModelResponse, ParseResult, degraded_response, parse_model_output

logger = logging.getLogger(__name__)

# Shared defaults; subclasses may override as class attributes if needed.
_MAX_RETRIES = 2
_MAX_TOKENS = 4000

_SYSTEM_PROMPT = """You are an expert code reviewer with many years of experience. \
Analyze code changes and give the feedback a senior software engineer would.

Your expertise includes:
- Security vulnerabilities and secure coding practice
- Performance
- Architecture and design
- Error handling and edge cases
- Maintainability and readability

Provide constructive, actionable feedback."""

_STRUCTURED_SUFFIX = "\n\nIMPORTANT: respond with valid JSON that matches the schema given in the user prompt."

_FREE_TEXT_SUFFIX = (
    "\n\nIMPORTANT: respond ONLY with valid JSON that matches the schema given in the user prompt. "
    "Do not include any text before or after the JSON. Start your response with '{' and end with '}'."
)


class StructuredModeRejected(Exception):
    """Raised by a provider when the service refuses the structured-output flag."""


class BaseModelClient(ABC):
    MODEL: str = ""
    TEMPERATURE: float = 0.3
    MAX_TOKENS: int = _MAX_TOKENS
    MAX_RETRIES: int = _MAX_RETRIES
    # Model names (exact or prefix) that accept a strict structured-output flag.
    STRUCTURED_MODELS: tuple[str, ...] = ()

    def __init__(
        self,
        model: str | None = None,
        guidelines: str = "",
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        self.model = model or self.MODEL
        self.guidelines = guidelines
        self.temperature = self.TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or self.MAX_TOKENS

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def analyze(self, prompt: str) -> ModelResponse:
        """Run one analysis request.

        Transport errors propagate so analyze_with_retry can back off and try
        again; unparseable output never raises and yields the degraded default.
        """
        result = self.parse(self._request(prompt))
        if not result.ok:
            logger.warning("%s: %s; using degraded response", self.__class__.__name__, result.error)
        return result.response

    def analyze_with_retry(self, prompt: str, max_retries: int | None = None) -> ModelResponse:
        """Make up to ``max_retries + 1`` attempts with ``2**attempt`` second backoff.

        Never raises: when every attempt fails the degraded default is returned.
        """
        retries = self.MAX_RETRIES if max_retries is None else max_retries
        attempts = retries + 1
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                return self.analyze(prompt)
            except Exception as e:
                last_error = e
                if attempt == attempts - 1:
                    break
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    attempts,
                    e,
                    delay,
                )
                time.sleep(delay)

        logger.error("%s API failed after %d attempts: %s", self.__class__.__name__, attempts, last_error)
        return degraded_response("Failed after multiple attempts")

    def supports_structured_output(self) -> bool:
        return any(self.model.startswith(name) for name in self.STRUCTURED_MODELS)

    def parse(self, raw: str | None) -> ParseResult:
        return parse_model_output(raw)

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str, structured: bool) -> str:
        """Make a single API call and return the raw text response.

        Should raise on failure; raise StructuredModeRejected when the service
        refuses the structured flag so the request is resent as free text.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _request(self, prompt: str) -> str:
        structured = self.supports_structured_output()
        try:
            return self._call_api(self.build_system_prompt(structured), prompt, structured)
        except StructuredModeRejected as e:
            if not structured:
                raise
            logger.info("%s rejected structured output (%s); retrying in free-text mode", self.model, e)
            return self._call_api(self.build_system_prompt(False), prompt, False)

    def build_system_prompt(self, structured: bool) -> str:
        prompt = _SYSTEM_PROMPT
        if self.guidelines:
            prompt += f"\n\nTeam review guidelines:\n{self.guidelines}"
        return prompt + (_STRUCTURED_SUFFIX if structured else _FREE_TEXT_SUFFIX)
