"""
Generative AI providers and the provider-chain caller.

Providers wrap one vendor SDK each (Groq, Gemini). A GenerativeCaller walks a
configured provider chain with a configured retry count, so a stage can be
single-shot (insights) or primary-plus-fallback (stories) without its own
retry logic.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel

from datastory.core.config import Settings, get_settings
from datastory.core.errors import GenerationAttemptsExhausted, ProviderError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_CODE_FENCE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)


@dataclass
class Completion:
    text: str
    provider: str
    model: str
    tokens_used: int = 0


class GenerativeProvider(ABC):
    """One generative-AI service and model."""

    name: str = "provider"

    def __init__(self, model: str, timeout: float = 60.0):
        self.model = model
        self.timeout = timeout

    @abstractmethod
    def generate(self, system_prompt: str, prompt: str, max_tokens: int, temperature: float) -> Completion:
        """Run one completion that is expected to return a JSON document."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"


class GroqProvider(GenerativeProvider):
    """Groq chat completions in JSON mode."""

    name = "groq"

    def __init__(self, api_key: Optional[str], model: str, timeout: float = 60.0, client=None):
        super().__init__(model, timeout)
        self._api_key = api_key
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self._api_key:
                raise ProviderError("GROQ_API_KEY is not configured", provider=self.name)
            from groq import Groq
            self._client = Groq(api_key=self._api_key)
            logger.info("Groq AI client initialized")
        return self._client

    def generate(self, system_prompt: str, prompt: str, max_tokens: int, temperature: float) -> Completion:
        response = self._get_client().chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt}
            ],
            max_tokens=max_tokens,
            temperature=temperature,
            response_format={"type": "json_object"},
            timeout=self.timeout,
        )
        usage = getattr(response, "usage", None)
        return Completion(
            text=response.choices[0].message.content or "",
            provider=self.name,
            model=self.model,
            tokens_used=getattr(usage, "total_tokens", 0) or 0,
        )


class GeminiProvider(GenerativeProvider):
    """Google Gemini via google-generativeai, JSON response MIME type."""

    name = "gemini"

    def __init__(self, api_key: Optional[str], model: str, timeout: float = 60.0, client=None):
        super().__init__(model, timeout)
        self._api_key = api_key
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self._api_key:
                raise ProviderError("GEMINI_API_KEY is not configured", provider=self.name)
            import google.generativeai as genai
            genai.configure(api_key=self._api_key)
            self._client = genai.GenerativeModel(self.model)
            logger.info(f"Gemini AI client initialized with model: {self.model}")
        return self._client

    def generate(self, system_prompt: str, prompt: str, max_tokens: int, temperature: float) -> Completion:
        # The system prompt is prepended; the SDK model is shared across prompts
        response = self._get_client().generate_content(
            f"{system_prompt}\n\n{prompt}",
            generation_config={
                "max_output_tokens": max_tokens,
                "temperature": temperature,
                "response_mime_type": "application/json",
            },
            request_options={"timeout": self.timeout},
        )
        usage = getattr(response, "usage_metadata", None)
        return Completion(
            text=response.text or "",
            provider=self.name,
            model=self.model,
            tokens_used=getattr(usage, "total_token_count", 0) or 0,
        )


def build_provider(name: str, settings: Optional[Settings] = None) -> GenerativeProvider:
    """Construct a provider from its configured name."""
    settings = settings or get_settings()
    if name == "groq":
        return GroqProvider(settings.groq_api_key, settings.groq_model, settings.ai_timeout_seconds)
    if name == "gemini":
        return GeminiProvider(settings.gemini_api_key, settings.gemini_model, settings.ai_timeout_seconds)
    raise ValueError(f"Unknown generative provider: {name}")


def parse_json_response(text: str) -> Any:
    """Parse a model response as JSON, tolerating markdown code fences."""
    cleaned = _CODE_FENCE.sub('', (text or '').strip())
    if not cleaned:
        raise ValueError("Empty response from provider")
    return json.loads(cleaned)


class GenerativeCaller:
    """
    Calls a provider chain for a JSON document of a given shape.

    `retry_count + 1` attempts are made; attempt i uses provider
    min(i, len(providers) - 1), so [primary, secondary] with retry_count=1
    tries each once and [primary] with retry_count=0 tries once.
    """

    def __init__(
        self,
        providers: Sequence[GenerativeProvider],
        retry_count: int = 0,
        max_tokens: int = 2000,
        temperature: float = 0.7,
    ):
        if not providers:
            raise ValueError("GenerativeCaller needs at least one provider")
        if retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        self.providers = list(providers)
        self.retry_count = retry_count
        self.max_tokens = max_tokens
        self.temperature = temperature

    def attempt_plan(self) -> List[GenerativeProvider]:
        last = len(self.providers) - 1
        return [self.providers[min(i, last)] for i in range(self.retry_count + 1)]

    def generate(self, system_prompt: str, prompt: str, response_model: Type[ModelT]) -> Tuple[ModelT, Completion]:
        """
        Return the first response that parses and validates as `response_model`.

        Raises:
            GenerationAttemptsExhausted: every attempt failed; the first
                failure is available as `primary_error`
        """
        failures: List[Tuple[str, Exception]] = []
        plan = self.attempt_plan()

        for attempt, provider in enumerate(plan, start=1):
            try:
                completion = provider.generate(system_prompt, prompt, self.max_tokens, self.temperature)
                result = response_model.model_validate(parse_json_response(completion.text))
            except Exception as e:
                failures.append((provider.name, e))
                if attempt < len(plan):
                    logger.warning(
                        f"{provider.name} attempt {attempt}/{len(plan)} failed, "
                        f"trying {plan[attempt].name}: {e}"
                    )
                else:
                    logger.error(f"{provider.name} attempt {attempt}/{len(plan)} failed: {e}")
                continue

            if attempt > 1:
                logger.info(f"AI response from {provider.name} (fallback, attempt {attempt})")
            else:
                logger.debug(f"AI response from {provider.name}")
            return result, completion

        raise GenerationAttemptsExhausted(failures)


def build_caller(
    provider_names: Sequence[str],
    retry_count: int,
    max_tokens: int,
    temperature: float,
    settings: Optional[Settings] = None,
) -> GenerativeCaller:
    settings = settings or get_settings()
    return GenerativeCaller(
        [build_provider(name, settings) for name in provider_names],
        retry_count=retry_count,
        max_tokens=max_tokens,
        temperature=temperature,
    )


def build_insight_caller(settings: Optional[Settings] = None) -> GenerativeCaller:
    """Insight stage caller: INSIGHT_PROVIDERS / INSIGHT_RETRY_COUNT (single attempt by default)."""
    settings = settings or get_settings()
    return build_caller(
        settings.insight_provider_chain,
        settings.insight_retry_count,
        settings.insight_max_tokens,
        settings.insight_temperature,
        settings,
    )


def build_story_caller(settings: Optional[Settings] = None) -> GenerativeCaller:
    """Story stage caller: STORY_PROVIDERS / STORY_RETRY_COUNT (primary plus one fallback by default)."""
    settings = settings or get_settings()
    return build_caller(
        settings.story_provider_chain,
        settings.story_retry_count,
        settings.story_max_tokens,
        settings.story_temperature,
        settings,
    )
