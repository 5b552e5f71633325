"""
Pytest configuration and shared fixtures for qualitygate tests.
"""
import json
import threading
from types import SimpleNamespace

import httpx
import openai
import pytest

from qualitygate.evaluation.ai_evaluator import AIEvaluator
from qualitygate.evaluation.circuit_breaker import CircuitBreakerRegistry
from qualitygate.evaluation.retry import RetryPolicy
from qualitygate.services.quality_service import QualityEstimationService
from qualitygate.services.score_repository import ScoreRepository
from qualitygate.services.store import TranslationStore


# ============================================================================
# Fakes
# ============================================================================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that records delays instead of waiting."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_response(content: str, prompt_tokens: int = 120, completion_tokens: int = 30):
    """Shape of an openai chat completion, as far as the evaluator reads it."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def mqm_json(accuracy=90, fluency=80, terminology=80, issues=None) -> str:
    return json.dumps({
        "accuracy": accuracy,
        "fluency": fluency,
        "terminology": terminology,
        "issues": issues or [],
    })


def connection_error() -> openai.APIConnectionError:
    return openai.APIConnectionError(
        request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    )


def auth_error() -> openai.AuthenticationError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.AuthenticationError(
        "Incorrect API key provided", response=httpx.Response(401, request=request), body=None
    )


class FakeCompletions:
    """
    Stand-in for client.chat.completions.

    Replies are consumed in order; the last one repeats. A reply may be a
    string (message content), a ready response object, or an exception to raise.
    """

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []
        self._lock = threading.Lock()

    def create(self, **kwargs):
        with self._lock:
            self.calls.append(kwargs)
            reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return make_response(reply)
        return reply


class FakeOpenAIClient:
    def __init__(self, *replies):
        self.completions = FakeCompletions(replies or [mqm_json()])
        self.chat = SimpleNamespace(completions=self.completions)

    def respond_with(self, *replies) -> None:
        self.completions.replies = list(replies)

    @property
    def calls(self):
        return self.completions.calls


# ============================================================================
# Fixtures: Resilience & Evaluator
# ============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def breakers(clock):
    return CircuitBreakerRegistry(failure_threshold=5, reset_timeout=60, clock=clock)


@pytest.fixture
def fake_client():
    return FakeOpenAIClient()


@pytest.fixture
def evaluator(fake_client, breakers, sleep):
    return AIEvaluator(
        retry_policy=RetryPolicy(max_retries=2, initial_delay=1.0, max_delay=30.0, multiplier=2.0),
        breakers=breakers,
        client_factory=lambda settings: fake_client,
        timeout=5,
        sleep=sleep,
    )


# ============================================================================
# Fixtures: Sample Data
# ============================================================================

AI_QUALITY_CONFIG = {
    "ai_enabled": True,
    "provider": "openai",
    "model": "gpt-4o-mini",
    "api_key": "test-key",
}


def sample_data(quality_config=None) -> dict:
    project = {"project_id": "app", "default_language": "en", "languages": ["en", "de", "fr"]}
    if quality_config:
        project["quality_config"] = quality_config
    return {
        "projects": [project],
        "keys": [
            {
                "key_id": "k1", "name": "button.save", "project_id": "app", "branch_id": "main",
                "source_file": "Save.tsx", "source_line": 10, "source_component": "SaveButton",
                "translations": [
                    {"language": "en", "value": "Save"},
                    {"language": "de", "value": "Speichern"},
                    {"language": "fr", "value": "Enregistrer"},
                ],
            },
            {
                "key_id": "k2", "name": "button.cancel", "project_id": "app", "branch_id": "main",
                "source_file": "Save.tsx", "source_line": 14, "source_component": "CancelButton",
                "translations": [
                    {"language": "en", "value": "Cancel"},
                    {"language": "de", "value": "Abbrechen", "approved": True},
                    {"language": "fr", "value": "Annuler"},
                ],
            },
            {
                "key_id": "k3", "name": "greeting.user", "project_id": "app", "branch_id": "main",
                "source_file": "Home.tsx", "source_line": 5,
                "translations": [
                    {"language": "en", "value": "Hello {name}!"},
                    {"language": "de", "value": "Hallo!"},
                    {"language": "fr", "value": "Bonjour {name} !"},
                ],
            },
            {
                "key_id": "k4", "name": "error.network.timeout", "project_id": "app", "branch_id": "main",
                "source_file": "Api.ts", "source_line": 40,
                "translations": [
                    {"language": "en", "value": "The request timed out."},
                    {"language": "de", "value": "Zeitüberschreitung der Anfrage."},
                ],
            },
            {
                "key_id": "k5", "name": "welcome.title", "project_id": "app", "branch_id": "release",
                "translations": [
                    {"language": "de", "value": "Willkommen {name"},
                ],
            },
        ],
    }


@pytest.fixture
def store():
    """Store whose project has AI evaluation configured."""
    return TranslationStore.from_dict(sample_data(AI_QUALITY_CONFIG))


@pytest.fixture
def store_without_ai():
    return TranslationStore.from_dict(sample_data())


@pytest.fixture
def scores():
    return ScoreRepository()


@pytest.fixture
def service(store, scores, evaluator):
    return QualityEstimationService(store, scores, evaluator=evaluator, concurrency=4, pass_threshold=80)


@pytest.fixture
def service_without_ai(store_without_ai, scores, evaluator):
    return QualityEstimationService(
        store_without_ai, scores, evaluator=evaluator, concurrency=4, pass_threshold=80
    )
