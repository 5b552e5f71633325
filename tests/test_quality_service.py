"""Tests for the tiered quality estimation service."""

import json
import threading
import time

import pytest
from conftest import AI_QUALITY_CONFIG, auth_error, connection_error, mqm_json

from qualitygate.exceptions import NotFoundError, ValidationError
from qualitygate.models.entities import Project, QualityConfig, TranslationKey
from qualitygate.models.quality_score import EvaluationType, FallbackReason
from qualitygate.scoring import content_fingerprint
from qualitygate.services.quality_service import QualityEstimationService
from qualitygate.services.score_repository import ScoreRepository
from qualitygate.services.store import TranslationStore


def checks(score):
    return [issue.check for issue in score.issues]


class TestHeuristicTier:
    def test_passing_pair_skips_ai(self, service, fake_client):
        score = service.evaluate("k1:de")

        assert score.score == 100
        assert score.passed
        assert score.evaluation_type == EvaluationType.HEURISTIC
        assert score.content_hash == content_fingerprint("Save", "Speichern")
        assert not score.ai_fallback
        assert fake_client.calls == []

    def test_format_only_without_source(self, service, fake_client):
        score = service.evaluate("k5:de")

        assert checks(score) == ["icu_syntax"]
        assert score.score == 75
        assert not score.passed
        assert score.content_hash == content_fingerprint("", "Willkommen {name")
        assert fake_client.calls == []

    def test_ai_not_configured_keeps_heuristic(self, service_without_ai, fake_client):
        score = service_without_ai.evaluate("k3:de")

        assert score.evaluation_type == EvaluationType.HEURISTIC
        assert score.score == 75
        assert not score.ai_fallback
        assert fake_client.calls == []

    def test_inactive_provider_keeps_heuristic(self, service, store, fake_client):
        store.set_quality_config("app", QualityConfig(**AI_QUALITY_CONFIG, provider_active=False))
        score = service.evaluate("k3:de")
        assert score.evaluation_type == EvaluationType.HEURISTIC
        assert fake_client.calls == []

    def test_unknown_translation(self, service):
        with pytest.raises(NotFoundError):
            service.evaluate("missing")

    def test_empty_translation(self, service, store):
        store.set_translation("k1", "de", "")
        with pytest.raises(ValidationError):
            service.evaluate("k1:de")


class TestAITier:
    def test_failed_heuristics_escalate(self, service, fake_client):
        fake_client.respond_with(mqm_json(90, 80, 80))

        score = service.evaluate("k3:de")

        # 0.40*90 + 0.25*80 + 0.15*80 + 0.20*75
        assert score.score == 83
        assert score.passed
        assert score.evaluation_type == EvaluationType.AI
        assert score.format == 75
        assert (score.accuracy, score.fluency, score.terminology) == (90, 80, 80)
        assert score.provider == "openai"
        assert score.model == "gpt-4o-mini"
        assert score.input_tokens == 120
        assert score.output_tokens == 30
        assert "placeholder_missing" in checks(score)
        assert len(fake_client.calls) == 1

    def test_ai_issues_are_kept(self, service, fake_client):
        fake_client.respond_with(mqm_json(40, 80, 80, issues=[
            {"type": "accuracy", "severity": "critical", "message": "Name dropped"},
        ]))
        score = service.evaluate("k3:de")
        assert checks(score) == ["placeholder_missing", "ai_accuracy"]
        assert not score.passed

    def test_force_ai(self, service, fake_client):
        score = service.evaluate("k1:de", force_ai=True)
        assert score.evaluation_type == EvaluationType.AI
        assert len(fake_client.calls) == 1

    def test_cache_wins_over_force_ai(self, service, fake_client):
        service.evaluate("k1:de")
        score = service.evaluate("k1:de", force_ai=True)
        assert score.cached
        assert score.evaluation_type == EvaluationType.HEURISTIC
        assert fake_client.calls == []

    def test_provider_failure_falls_back(self, service, fake_client):
        fake_client.respond_with(connection_error())

        score = service.evaluate("k3:de")

        assert score.evaluation_type == EvaluationType.HEURISTIC
        assert score.ai_fallback
        assert score.score == 75
        assert score.fallback_reason == FallbackReason.TRANSIENT

    def test_malformed_reply_falls_back(self, service, fake_client):
        fake_client.respond_with("not json")
        score = service.evaluate("k3:de")
        assert score.ai_fallback
        assert score.fallback_reason == FallbackReason.MALFORMED
        assert len(fake_client.calls) == 2

    def test_unexpected_error_falls_back(self, store, scores):
        class BrokenEvaluator:
            def evaluate_single(self, *args, **kwargs):
                raise RuntimeError("boom")

        service = QualityEstimationService(store, scores, evaluator=BrokenEvaluator())
        score = service.evaluate("k3:de")
        assert score.ai_fallback
        assert score.fallback_reason == FallbackReason.UNEXPECTED

    def test_auth_failure_is_distinguishable_from_outage(self, store, evaluator, fake_client):
        fake_client.respond_with(auth_error())
        auth_scores = ScoreRepository()
        QualityEstimationService(store, auth_scores, evaluator=evaluator).evaluate("k3:de")

        fake_client.respond_with(connection_error())
        outage_scores = ScoreRepository()
        QualityEstimationService(store, outage_scores, evaluator=evaluator).evaluate("k3:de")

        auth = auth_scores.find("k3:de")
        outage = outage_scores.find("k3:de")
        assert auth.fallback_reason == FallbackReason.PERMANENT
        assert outage.fallback_reason == FallbackReason.TRANSIENT
        assert auth.to_dict()["fallback_reason"] == "permanent"
        assert outage.to_dict()["fallback_reason"] == "transient"

    def test_open_circuit_is_recorded(self, service, breakers, fake_client):
        breaker = breakers.get("openai", "test-key")
        for _ in range(5):
            breaker.record_failure()

        score = service.evaluate("k3:de")

        assert score.fallback_reason == FallbackReason.CIRCUIT_OPEN
        assert fake_client.calls == []

    def test_reason_survives_reload(self, store, evaluator, fake_client, tmp_path):
        fake_client.respond_with(auth_error())
        QualityEstimationService(store, ScoreRepository(tmp_path), evaluator=evaluator).evaluate("k3:de")

        reloaded = ScoreRepository(tmp_path).find("k3:de")

        assert reloaded.ai_fallback
        assert reloaded.fallback_reason == FallbackReason.PERMANENT

    def test_heuristic_only_has_no_reason(self, service_without_ai):
        score = service_without_ai.evaluate("k3:de")
        assert not score.ai_fallback
        assert score.fallback_reason is None


class TestCaching:
    def test_second_evaluation_is_cached(self, service, fake_client):
        first = service.evaluate("k3:de")
        second = service.evaluate("k3:de")

        assert not first.cached
        assert second.cached
        assert second.score == first.score
        assert second.content_hash == first.content_hash
        assert len(fake_client.calls) == 1

    def test_target_change_forces_reevaluation(self, service, store, fake_client):
        first = service.evaluate("k3:de")
        store.set_translation("k3", "de", "Hallo {name}!")

        second = service.evaluate("k3:de")

        assert not second.cached
        assert second.content_hash != first.content_hash
        assert second.score == 100

    def test_source_change_forces_reevaluation(self, service, store):
        first = service.evaluate("k1:de")
        store.set_translation("k1", "en", "Save all")
        second = service.evaluate("k1:de")
        assert not second.cached
        assert second.content_hash != first.content_hash

    def test_get_cached_score(self, service):
        assert service.get_cached_score("k1:de") is None
        service.evaluate("k1:de")
        assert service.get_cached_score("k1:de").cached


class TestGlossary:
    def test_missing_term_lowers_heuristic_score(self, service_without_ai, store_without_ai):
        store_without_ai.set_glossary("app", {"save": {"de": "Sichern"}})

        score = service_without_ai.evaluate("k1:de")

        assert score.score == 90
        assert score.format == 100
        assert score.passed
        assert checks(score) == ["glossary_missing"]

    def test_missing_term_escalates_to_ai(self, service, store, fake_client):
        store.set_glossary("app", {"save": {"de": "Sichern"}})
        fake_client.respond_with(mqm_json(100, 100, 50))

        score = service.evaluate("k1:de")

        assert score.evaluation_type == EvaluationType.AI
        # Terminology already reflects the glossary miss, so format stays at 100
        assert score.score == 93
        assert "glossary_missing" in checks(score)


def unreachable_store(count):
    store = TranslationStore()
    store.add_project(Project(project_id="p", default_language="en"))
    store.set_quality_config("p", QualityConfig(**AI_QUALITY_CONFIG))
    for i in range(count):
        store.add_key(TranslationKey(key_id=f"k{i}", name=f"item.{i}", project_id="p", branch_id="main"))
        store.set_translation(f"k{i}", "en", f"Item {{count}} number {i}")
        store.set_translation(f"k{i}", "de", f"Artikel Nummer {i}")
    return store


class TestBatch:
    def test_unreachable_provider_degrades_gracefully(self, evaluator, fake_client):
        fake_client.respond_with(connection_error())
        store = unreachable_store(5)
        service = QualityEstimationService(store, ScoreRepository(), evaluator=evaluator, concurrency=2)

        outcome = service.evaluate_batch([f"k{i}:de" for i in range(5)])

        assert outcome.failed == 0
        assert len(outcome.results) == 5
        for score in outcome.results.values():
            assert score.evaluation_type == EvaluationType.HEURISTIC
            assert score.ai_fallback

    def test_failures_are_isolated(self, service):
        outcome = service.evaluate_batch(["k1:de", "missing", "k2:de"])
        assert set(outcome.results) == {"k1:de", "k2:de"}
        assert outcome.failures[0].translation_id == "missing"
        assert outcome.succeeded == 2
        assert outcome.failed == 1

    def test_duplicates_evaluated_once(self, service):
        outcome = service.evaluate_batch(["k1:de", "k1:de"])
        assert outcome.succeeded == 1

    def test_progress_callback(self, service):
        progress = []
        service.evaluate_batch(
            ["k1:de", "k2:de", "k1:fr"],
            progress_callback=lambda done, total, tid: progress.append((done, total)),
        )
        assert progress == [(1, 3), (2, 3), (3, 3)]

    def test_windows_never_exceed_concurrency(self, store, scores):

        lock = threading.Lock()
        state = {"active": 0, "peak": 0}
        service = QualityEstimationService(store, scores, concurrency=2)
        original = service.evaluate

        def tracked(translation_id, force_ai=False):
            with lock:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            time.sleep(0.01)
            try:
                return original(translation_id, force_ai)
            finally:
                with lock:
                    state["active"] -= 1

        service.evaluate = tracked
        service.evaluate_batch(["k1:de", "k1:fr", "k2:de", "k2:fr", "k4:de"])
        assert state["peak"] <= 2


class TestKeyAllLanguages:
    def test_single_ai_call(self, service, fake_client):
        fake_client.respond_with(json.dumps({"evaluations": {
            "de": json.loads(mqm_json(50, 80, 80)),
            "fr": json.loads(mqm_json(95, 95, 95)),
        }}))

        results = service.evaluate_key_all_languages("k3", force_ai=True)

        assert set(results) == {"de", "fr"}
        assert all(score.evaluation_type == EvaluationType.AI for score in results.values())
        assert len(fake_client.calls) == 1

    def test_passing_languages_skip_ai(self, service, fake_client):
        fake_client.respond_with(json.dumps({"evaluations": {"de": json.loads(mqm_json())}}))

        results = service.evaluate_key_all_languages("k3")

        assert results["fr"].evaluation_type == EvaluationType.HEURISTIC
        assert results["de"].evaluation_type == EvaluationType.AI

    def test_failure_falls_back_per_language(self, service, fake_client):
        fake_client.respond_with(connection_error())
        results = service.evaluate_key_all_languages("k3", force_ai=True)
        assert all(score.ai_fallback for score in results.values())
        assert {score.fallback_reason for score in results.values()} == {FallbackReason.TRANSIENT}

    def test_unknown_key(self, service):
        with pytest.raises(NotFoundError):
            service.evaluate_key_all_languages("missing")


class TestContextAndSummary:
    def test_build_context(self, service):
        context = service.build_context("k1", "de")
        assert context.related_translations[0].key_id == "k2"

    def test_build_context_unknown_key(self, service):
        with pytest.raises(NotFoundError):
            service.build_context("missing", "de")

    def test_branch_summary(self, service_without_ai):
        service_without_ai.evaluate_batch(["k1:de", "k1:fr", "k3:de"])

        summary = service_without_ai.get_branch_summary("main")

        assert summary.total_translations == 7
        assert summary.total_scored == 3
        assert summary.excellent == 2
        assert summary.good == 1
        assert summary.needs_review == 0
        assert summary.average_score == pytest.approx(91.7)
        assert summary.by_language["de"] == {"average": 87.5, "count": 2}
        assert summary.to_dict()["distribution"] == {"excellent": 2, "good": 1, "needs_review": 0}

    def test_empty_branch_summary(self, service):
        summary = service.get_branch_summary("nope")
        assert summary.average_score is None
        assert summary.total_translations == 0

    def test_validate_icu_syntax(self, service):
        assert service.validate_icu_syntax("{n, plural, other {#}}").valid
        assert not service.validate_icu_syntax("{n, plural, one {#}}").valid


class TestProjectSettings:
    def test_defaults(self, service_without_ai):
        settings = service_without_ai.get_quality_settings("app")

        assert not settings.ai_configured
        assert settings.auto_approve_threshold == 80
        assert settings.flag_threshold == 60
        assert "api_key" not in settings.to_dict()

    def test_unknown_project(self, service):
        with pytest.raises(NotFoundError):
            service.get_quality_settings("nope")
        with pytest.raises(NotFoundError):
            service.update_quality_settings("nope", {"ai_enabled": False})

    def test_partial_update_keeps_other_fields(self, service, store):
        settings = service.update_quality_settings("app", {"auto_approve_threshold": 90})

        assert settings.auto_approve_threshold == 90
        assert settings.ai_configured
        assert store.get_quality_config("app").api_key == "test-key"

    def test_rejects_invalid_thresholds(self, service):
        with pytest.raises(ValidationError):
            service.update_quality_settings("app", {"auto_approve_threshold": 101})
        with pytest.raises(ValidationError):
            service.update_quality_settings("app", {"flag_threshold": 85})
        with pytest.raises(ValidationError):
            service.update_quality_settings("app", {"colour": "red"})

    def test_project_threshold_decides_pass(self, service_without_ai):
        assert service_without_ai.evaluate("k3:de").passed is False

        service_without_ai.update_quality_settings("app", {"auto_approve_threshold": 70, "flag_threshold": 50})
        service_without_ai.scores.delete("k3:de")

        score = service_without_ai.evaluate("k3:de")
        assert score.score == 75
        assert score.passed

    def test_disabling_ai_keeps_heuristic(self, service, fake_client):
        service.update_quality_settings("app", {"ai_enabled": False})

        score = service.evaluate("k3:de")

        assert score.evaluation_type == EvaluationType.HEURISTIC
        assert not score.ai_fallback
        assert fake_client.calls == []


class TestDeleteTranslation:
    def test_removes_translation_and_score(self, service_without_ai, store_without_ai, scores):
        service_without_ai.evaluate("k1:de")

        assert service_without_ai.delete_translation("k1:de")

        assert store_without_ai.get_translation("k1:de") is None
        assert scores.find("k1:de") is None
        assert not service_without_ai.delete_translation("k1:de")
