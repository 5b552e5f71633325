"""LLM-based MQM quality evaluator with retry and circuit breaking."""

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import openai
from openai import OpenAI

from ..config import config
from ..exceptions import (
    CircuitOpenError,
    MalformedResponseError,
    PermanentProviderError,
    ProviderError,
    TransientProviderError,
)
from ..logging_config import get_logger
from ..models.entities import QualityConfig
from ..models.quality_score import IssueType, QualityIssue, Severity, TranslationPair
from ..models.related_key import RelatedKeyCandidate
from ..scoring import clamp_score
from .circuit_breaker import CircuitBreaker, CircuitBreakerRegistry, breaker_registry
from .prompts import (
    MQM_MULTI_LANGUAGE_SYSTEM_PROMPT,
    MQM_SYSTEM_PROMPT,
    REFORMAT_INSTRUCTION,
    build_mqm_user_prompt,
    build_multi_language_prompt,
)
from .response_parser import LanguageEvaluation, parse_mqm_response, parse_multi_language_response
from .retry import RetryPolicy, is_transient_error, with_retry

logger = get_logger(__name__)

SUPPORTED_PROVIDERS = {"openai"}

# openai exception classes that are worth retrying
_TRANSIENT_OPENAI_ERRORS = (
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.InternalServerError,
)
_PERMANENT_OPENAI_ERRORS = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.BadRequestError,
    openai.NotFoundError,
    openai.UnprocessableEntityError,
)


@dataclass
class ProviderSettings:
    """Which provider, model and credential an evaluation uses."""

    provider: str
    model: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None

    @classmethod
    def from_quality_config(cls, quality_config: QualityConfig) -> "ProviderSettings":
        return cls(
            provider=quality_config.provider,
            model=quality_config.model,
            api_key=quality_config.api_key or config.openai_api_key or None,
            base_url=quality_config.base_url or config.openai_base_url or None,
        )


@dataclass
class AIEvaluationResult:
    """MQM dimensions for one translation."""

    accuracy: int
    fluency: int
    terminology: int
    issues: List[QualityIssue] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0


def classify_provider_error(error: Exception) -> ProviderError:
    """Map a raw client error to a transient or permanent provider error."""
    if isinstance(error, ProviderError):
        return error
    if isinstance(error, _TRANSIENT_OPENAI_ERRORS):
        return TransientProviderError(str(error))
    if isinstance(error, _PERMANENT_OPENAI_ERRORS):
        return PermanentProviderError(str(error))
    if isinstance(error, openai.APIStatusError):
        if error.status_code == 429 or error.status_code >= 500:
            return TransientProviderError(str(error))
        return PermanentProviderError(str(error))
    if isinstance(error, TimeoutError) or is_transient_error(error):
        return TransientProviderError(str(error))
    return PermanentProviderError(str(error))


def _is_retryable(error: Exception) -> bool:
    # An open breaker is transient but retrying it would only spin
    return isinstance(error, TransientProviderError) and not isinstance(error, CircuitOpenError)


class AIEvaluator:
    """Scores translations on accuracy, fluency and terminology with an LLM."""

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        client_factory: Optional[Callable[[ProviderSettings], object]] = None,
        timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the evaluator.

        Args:
            retry_policy: Backoff settings, defaults to the configured policy
            breakers: Breaker registry, defaults to the process-wide one
            client_factory: Builds an OpenAI-compatible client for the settings
            timeout: Per-request timeout in seconds
            sleep: Sleep function used between retries
        """
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self.breakers = breakers or breaker_registry
        self.timeout = timeout or config.ai_timeout_seconds
        self.temperature = config.openai_temperature
        self.sleep = sleep
        self._client_factory = client_factory or self._default_client
        self._clients: Dict[Tuple, object] = {}
        self._clients_lock = threading.Lock()

    def _default_client(self, settings: ProviderSettings) -> OpenAI:
        if not settings.api_key:
            raise PermanentProviderError(f"No API key configured for provider '{settings.provider}'")
        # Retries are handled here, not by the SDK
        return OpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url or None,
            timeout=self.timeout,
            max_retries=0,
        )

    def _client(self, settings: ProviderSettings):
        key = (settings.provider, settings.api_key, settings.base_url)
        with self._clients_lock:
            client = self._clients.get(key)
            if client is None:
                client = self._client_factory(settings)
                self._clients[key] = client
            return client

    def breaker_for(self, settings: ProviderSettings) -> CircuitBreaker:
        return self.breakers.get(settings.provider, settings.api_key)

    def evaluate_single(
        self,
        pair: TranslationPair,
        settings: ProviderSettings,
        related_keys: Optional[List[RelatedKeyCandidate]] = None,
    ) -> AIEvaluationResult:
        """
        Evaluate one translation.

        Raises:
            CircuitOpenError: The provider's breaker is open
            TransientProviderError: Retries exhausted
            PermanentProviderError: Auth, bad request or unsupported provider
            MalformedResponseError: The reply stayed unusable after one reformat request
        """
        messages = [
            {"role": "system", "content": MQM_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": build_mqm_user_prompt(
                    pair.key_name,
                    pair.source_text,
                    pair.target_text,
                    pair.source_language,
                    pair.target_language,
                    related_keys,
                ),
            },
        ]

        evaluation, usage = self._evaluate(settings, messages, parse_mqm_response)
        result = self._to_result(evaluation)
        result.input_tokens, result.output_tokens = usage
        logger.debug(
            f"AI evaluation for {pair.translation_id}: accuracy={result.accuracy} "
            f"fluency={result.fluency} terminology={result.terminology}"
        )
        return result

    def evaluate_multi_language(
        self,
        key_name: str,
        source: str,
        source_lang: str,
        translations: Dict[str, str],
        settings: ProviderSettings,
        related_keys: Optional[List[RelatedKeyCandidate]] = None,
    ) -> Dict[str, AIEvaluationResult]:
        """
        Evaluate every target language of a key in one call.

        Args:
            key_name: Translation key name
            source: Source text
            source_lang: Source language code
            translations: {language: target text}
            settings: Provider settings
            related_keys: Optional related keys for context

        Returns:
            {language: AIEvaluationResult}, token usage split evenly across languages
        """
        if not translations:
            return {}

        languages = list(translations)
        messages = [
            {"role": "system", "content": MQM_MULTI_LANGUAGE_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": build_multi_language_prompt(
                    key_name, source, source_lang, translations, related_keys
                ),
            },
        ]

        evaluations, (input_tokens, output_tokens) = self._evaluate(
            settings,
            messages,
            lambda text: parse_multi_language_response(text, languages),
        )

        results = {}
        for language, evaluation in evaluations.items():
            result = self._to_result(evaluation)
            result.input_tokens = input_tokens // len(languages)
            result.output_tokens = output_tokens // len(languages)
            results[language] = result
        return results

    def _evaluate(self, settings: ProviderSettings, messages: List[dict], parse: Callable):
        """Call the provider and parse; one reformat turn if the reply is malformed."""
        if settings.provider not in SUPPORTED_PROVIDERS:
            raise PermanentProviderError(f"Unsupported AI provider: {settings.provider}")

        breaker = self.breaker_for(settings)
        text, usage = self._complete(settings, breaker, messages)

        try:
            return parse(text), usage
        except MalformedResponseError as e:
            logger.warning(f"Malformed AI response, requesting reformat: {e}")
            follow_up = messages + [
                {"role": "assistant", "content": text},
                {"role": "user", "content": REFORMAT_INSTRUCTION.format(error=e)},
            ]
            text, retry_usage = self._complete(settings, breaker, follow_up)
            usage = (usage[0] + retry_usage[0], usage[1] + retry_usage[1])
            return parse(text), usage

    def _complete(
        self,
        settings: ProviderSettings,
        breaker: CircuitBreaker,
        messages: List[dict],
    ) -> Tuple[str, Tuple[int, int]]:
        """One chat completion behind the breaker, retried per policy."""
        client = self._client(settings)

        def attempt():
            if not breaker.allow_request():
                raise CircuitOpenError(settings.provider, breaker.remaining_open_time())
            try:
                response = client.chat.completions.create(
                    model=settings.model,
                    messages=messages,
                    temperature=self.temperature,
                    response_format={"type": "json_object"},
                    timeout=self.timeout,
                )
            except Exception as e:
                breaker.record_failure()
                raise classify_provider_error(e) from e
            breaker.record_success()
            return response

        response = with_retry(attempt, self.retry_policy, _is_retryable, sleep=self.sleep)

        content = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "prompt_tokens", 0) or 0
        output_tokens = getattr(usage, "completion_tokens", 0) or 0
        return content.strip(), (input_tokens, output_tokens)

    def _to_result(self, evaluation: LanguageEvaluation) -> AIEvaluationResult:
        return AIEvaluationResult(
            accuracy=clamp_score(evaluation.accuracy),
            fluency=clamp_score(evaluation.fluency),
            terminology=clamp_score(evaluation.terminology),
            issues=[
                QualityIssue(
                    type=IssueType(issue.type),
                    severity=Severity(issue.severity),
                    message=issue.message,
                    check=f"ai_{issue.type}",
                )
                for issue in evaluation.issues
            ],
        )
