"""Exception hierarchy for the quality scoring engine."""


class QualityGateError(Exception):
    """Base class for all qualitygate errors."""
    pass


class ValidationError(QualityGateError):
    """Input rejected before any evaluation happened."""
    pass


class NotFoundError(QualityGateError):
    """A translation, key or job could not be resolved."""
    pass


class ProviderError(QualityGateError):
    """The AI provider call failed."""
    pass


class TransientProviderError(ProviderError):
    """Rate limit, timeout, 5xx or network failure. Safe to retry."""
    pass


class CircuitOpenError(TransientProviderError):
    """The provider's circuit breaker is open; no request was sent."""

    def __init__(self, provider: str, remaining: float):
        self.provider = provider
        self.remaining = remaining
        super().__init__(
            f"Circuit breaker open for {provider}, retry in {remaining:.1f}s"
        )


class PermanentProviderError(ProviderError):
    """Authentication, permission or bad request. Retrying will not help."""
    pass


class MalformedResponseError(ProviderError):
    """The provider answered but the reply did not match the expected shape."""

    def __init__(self, message: str, raw: str = ""):
        self.raw = raw
        super().__init__(message)
