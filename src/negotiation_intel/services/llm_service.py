"""
LLM service backing the pipeline's text-generation capability.

Supports Claude (Anthropic) and GPT-4o (OpenAI) with provider fallback.
"""

from functools import lru_cache

import structlog
from anthropic import Anthropic
from openai import OpenAI
from tenacity import RetryCallState, retry, wait_exponential

from negotiation_intel.config import get_settings
from negotiation_intel.exceptions import ModelInvocationError
from negotiation_intel.models import ComposeResult

logger = structlog.get_logger(__name__)


def _stop_after_configured_attempts(retry_state: RetryCallState) -> bool:
    service = retry_state.args[0]
    return retry_state.attempt_number >= service.settings.llm_max_attempts


class LLMService:
    """
    Blocking text-generation client.

    Callers bound each call with their own timeout; this class only handles
    provider selection, retries and fallback.
    """

    def __init__(self):
        settings = get_settings()
        self.settings = settings

        # Initialize clients
        self._anthropic: Anthropic | None = None
        self._openai: OpenAI | None = None

        if settings.anthropic_api_key:
            self._anthropic = Anthropic(api_key=settings.anthropic_api_key)
        if settings.openai_api_key:
            self._openai = OpenAI(api_key=settings.openai_api_key)

        self.primary_provider = settings.primary_llm_provider
        self.primary_model = settings.primary_llm_model
        self.fallback_provider = settings.fallback_llm_provider
        self.fallback_model = settings.fallback_llm_model

    @property
    def available_providers(self) -> list[str]:
        providers = []
        if self._anthropic:
            providers.append("anthropic")
        if self._openai:
            providers.append("openai")
        return providers

    # =========================================================================
    # Core LLM Calls
    # =========================================================================

    @retry(
        stop=_stop_after_configured_attempts,
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _call_anthropic(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
    ) -> str:
        """Call Anthropic Claude API."""
        response = self._anthropic.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=self.settings.llm_temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        return response.content[0].text

    @retry(
        stop=_stop_after_configured_attempts,
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _call_openai(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
    ) -> str:
        """Call OpenAI chat completions API."""
        response = self._openai.chat.completions.create(
            model=model,
            max_tokens=max_tokens,
            temperature=self.settings.llm_temperature,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        )
        return response.choices[0].message.content or ""

    def _call(self, provider: str, model: str, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        if provider == "anthropic" and self._anthropic:
            return self._call_anthropic(model, system_prompt, user_prompt, max_tokens)
        if provider == "openai" and self._openai:
            return self._call_openai(model, system_prompt, user_prompt, max_tokens)
        raise ModelInvocationError(f"Provider {provider!r} is not configured")

    def compose_text(
        self,
        prompt: str,
        system_instruction: str,
        max_output_tokens: int,
        use_fallback: bool = True,
    ) -> ComposeResult:
        """
        Generate text with one configured provider.

        The fallback provider stands in when the primary has no key. It is
        tried after a primary failure only with `llm_fallback_on_error`, and
        each provider gets `llm_max_attempts` requests, so the defaults send
        exactly one request per call.

        Raises ModelInvocationError when no provider is configured or the
        providers tried all fail.
        """
        if not self.available_providers:
            raise ModelInvocationError(
                "No LLM provider available. Set ANTHROPIC_API_KEY or OPENAI_API_KEY."
            )

        attempts = [(self.primary_provider, self.primary_model)]
        if use_fallback and (self.fallback_provider, self.fallback_model) not in attempts:
            attempts.append((self.fallback_provider, self.fallback_model))

        last_error: Exception | None = None
        for provider, model in attempts:
            if provider not in self.available_providers:
                continue
            try:
                text = self._call(provider, model, system_instruction, prompt, max_output_tokens)
                return ComposeResult(text=text, provider=provider, model=model)
            except Exception as e:
                logger.warning("llm_provider_failed", provider=provider, model=model, error=str(e))
                if not self.settings.llm_fallback_on_error:
                    raise ModelInvocationError(f"LLM provider {provider!r} failed: {e}") from e
                last_error = e

        if last_error is None:
            raise ModelInvocationError(
                f"None of the requested providers are configured: {[p for p, _ in attempts]}"
            )
        raise ModelInvocationError(f"All LLM providers failed: {last_error}") from last_error


@lru_cache()
def get_llm_service() -> LLMService:
    """Get cached LLM service instance."""
    return LLMService()
