"""AI evaluation and the resilience layer around it."""

from .ai_evaluator import AIEvaluator, AIEvaluationResult, ProviderSettings, classify_provider_error
from .circuit_breaker import CircuitBreaker, CircuitBreakerRegistry, breaker_registry
from .retry import RetryPolicy, calculate_backoff, is_transient_error, retrying, should_retry, with_retry

__all__ = [
    "AIEvaluator",
    "AIEvaluationResult",
    "ProviderSettings",
    "classify_provider_error",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "breaker_registry",
    "RetryPolicy",
    "calculate_backoff",
    "is_transient_error",
    "retrying",
    "should_retry",
    "with_retry",
]
