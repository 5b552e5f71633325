"""Tiered quality estimation: cache, heuristics, glossary, then AI."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, List, Optional

from ..config import config
from ..context.key_context import KeyContextService
from ..evaluation.ai_evaluator import AIEvaluationResult, AIEvaluator, ProviderSettings
from ..exceptions import (
    CircuitOpenError,
    MalformedResponseError,
    NotFoundError,
    PermanentProviderError,
    ProviderError,
    ValidationError,
)
from ..logging_config import get_logger
from ..models.entities import QualityConfig
from ..models.quality_score import EvaluationType, FallbackReason, QualityIssue, QualityScore, TranslationPair
from ..models.related_key import AIContext, RelatedKeyCandidate
from ..scoring import clamp_score, combine_scores, content_fingerprint
from ..validation.glossary_evaluator import GlossaryEvaluator
from ..validation.icu_validator import ICUValidationResult, validate_icu
from ..validation.quality_scorer import HeuristicResult, QualityScorer
from .score_repository import ScoreRepository
from .store import TranslationStore

logger = get_logger(__name__)

EXCELLENT_THRESHOLD = 80
GOOD_THRESHOLD = 60


@dataclass
class HeuristicAssessment:
    """Everything the AI tier needs from the cheap tier."""

    pair: TranslationPair
    content_hash: str
    heuristic: HeuristicResult
    score: int  # heuristic score after the glossary penalty
    issues: List[QualityIssue]
    needs_ai: bool

    @property
    def can_skip_ai(self) -> bool:
        return self.heuristic.passed and not self.needs_ai


@dataclass
class BatchFailure:
    translation_id: str
    error: str


@dataclass
class BatchEvaluationResult:
    """Scores for the ids that evaluated, errors for the ones that did not."""

    results: Dict[str, QualityScore] = field(default_factory=dict)
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.failures)


@dataclass
class BranchSummary:
    """Aggregate quality of a branch."""

    branch_id: str
    average_score: Optional[float]
    excellent: int
    good: int
    needs_review: int
    total_scored: int
    total_translations: int
    by_language: Dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "branch_id": self.branch_id,
            "average_score": self.average_score,
            "distribution": {
                "excellent": self.excellent,
                "good": self.good,
                "needs_review": self.needs_review,
            },
            "by_language": self.by_language,
            "total_scored": self.total_scored,
            "total_translations": self.total_translations,
        }


@dataclass
class ProjectQualitySettings:
    """A project's quality config with thresholds resolved against the defaults."""

    project_id: str
    ai_enabled: bool
    provider: Optional[str]
    model: Optional[str]
    provider_active: bool
    ai_configured: bool
    auto_approve_threshold: int
    flag_threshold: int

    def to_dict(self) -> dict:
        return asdict(self)


class QualityEstimationService:
    """
    Scores translations as cheaply as possible.

    1. Reuse the stored score when the content fingerprint is unchanged
    2. Format-only check when there is no source text
    3. Heuristic checks, then the glossary check
    4. Persist the heuristic score when it passes and nothing asks for AI
    5. Otherwise ask the AI evaluator and combine its dimensions with the
       heuristic score; any AI failure falls back to the heuristic score
    """

    def __init__(
        self,
        store: TranslationStore,
        scores: ScoreRepository,
        evaluator: Optional[AIEvaluator] = None,
        context_service: Optional[KeyContextService] = None,
        scorer: Optional[QualityScorer] = None,
        concurrency: Optional[int] = None,
        pass_threshold: Optional[int] = None,
        related_keys_limit: Optional[int] = None,
    ):
        self.store = store
        self.scores = scores
        self.evaluator = evaluator or AIEvaluator()
        self.context_service = context_service or KeyContextService(store)
        self.pass_threshold = pass_threshold if pass_threshold is not None else config.quality_pass_threshold
        self.scorer = scorer or QualityScorer(pass_threshold=self.pass_threshold)
        self.concurrency = concurrency or config.evaluation_concurrency
        self.related_keys_limit = related_keys_limit or config.related_keys_limit

    # Single evaluation

    def evaluate(self, translation_id: str, force_ai: bool = False) -> QualityScore:
        """
        Evaluate one translation.

        Args:
            translation_id: Translation to score
            force_ai: Use the AI tier even when heuristics pass (cache still applies)

        Returns:
            The stored or freshly computed QualityScore

        Raises:
            NotFoundError: Unknown translation
            ValidationError: Translation has no text
        """
        pair = self._resolve(translation_id)
        content_hash = content_fingerprint(pair.source_text, pair.target_text)

        cached = self._cached_if_fresh(translation_id, content_hash)
        if cached:
            return cached

        if not pair.source_text:
            return self._save_format_only(pair, content_hash)

        assessment = self._assess(pair, content_hash)
        if assessment.can_skip_ai and not force_ai:
            return self._save_heuristic(assessment)

        if assessment.needs_ai:
            logger.info(f"Escalating {translation_id} to AI: {self._escalation_reason(assessment)}")

        quality_config = self.store.get_quality_config(pair.project_id)
        if not quality_config.ai_configured or not quality_config.provider_active:
            logger.info(f"AI evaluation not configured for project {pair.project_id}, keeping heuristic score")
            return self._save_heuristic(assessment)

        settings = ProviderSettings.from_quality_config(quality_config)
        related = self._related_keys(pair.key_id, pair.target_language, pair.source_language)

        try:
            ai_result = self.evaluator.evaluate_single(pair, settings, related)
        except Exception as e:
            reason = self._ai_failure_reason(translation_id, e)
            return self._save_heuristic(assessment, fallback_reason=reason)

        return self._save_ai(assessment, ai_result, settings)

    def get_cached_score(self, translation_id: str) -> Optional[QualityScore]:
        """Stored score for a translation, without evaluating."""
        return self.scores.find(translation_id)

    # Batch evaluation

    def evaluate_batch(
        self,
        translation_ids: List[str],
        force_ai: bool = False,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> BatchEvaluationResult:
        """
        Evaluate many translations in fixed windows of `concurrency`.

        A window starts only after every evaluation in the previous one has
        finished. A failing id is recorded and does not affect the others.

        Args:
            translation_ids: Translations to score
            force_ai: Passed to every evaluation
            progress_callback: Optional callback(done, total, translation_id)
        """
        ids = list(dict.fromkeys(translation_ids))
        outcome = BatchEvaluationResult()
        total = len(ids)
        done = 0

        with self.scores.deferred_writes(), ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            for start in range(0, total, self.concurrency):
                window = ids[start:start + self.concurrency]
                futures = {tid: pool.submit(self.evaluate, tid, force_ai) for tid in window}

                for translation_id, future in futures.items():
                    try:
                        outcome.results[translation_id] = future.result()
                    except Exception as e:
                        logger.warning(f"Batch evaluation failed for {translation_id}: {e}")
                        outcome.failures.append(BatchFailure(translation_id, str(e)))
                    done += 1
                    if progress_callback:
                        progress_callback(done, total, translation_id)

        logger.info(f"Batch evaluation finished: {outcome.succeeded} scored, {outcome.failed} failed")
        return outcome

    def evaluate_key_all_languages(self, key_id: str, force_ai: bool = False) -> Dict[str, QualityScore]:
        """
        Evaluate every target-language translation of a key with one AI call.

        Languages whose stored score is still fresh are returned as is.
        Languages missing from the AI reply, or all of them when the call
        fails, fall back to their heuristic score.
        """
        key = self.store.get_key(key_id)
        if not key:
            raise NotFoundError(f"Key not found: {key_id}")

        source_language = self.store.source_language(key_id)
        results: Dict[str, QualityScore] = {}
        pending: Dict[str, HeuristicAssessment] = {}

        for translation in self.store.translations_for_key(key_id):
            if translation.language == source_language or not translation.value:
                continue

            pair = self.store.get_pair(translation.translation_id)
            content_hash = content_fingerprint(pair.source_text, pair.target_text)

            cached = self._cached_if_fresh(translation.translation_id, content_hash)
            if cached:
                results[translation.language] = cached
                continue

            if not pair.source_text:
                results[translation.language] = self._save_format_only(pair, content_hash)
                continue

            assessment = self._assess(pair, content_hash)
            if assessment.can_skip_ai and not force_ai:
                results[translation.language] = self._save_heuristic(assessment)
            else:
                pending[translation.language] = assessment

        if not pending:
            return results

        quality_config = self.store.get_quality_config(key.project_id)
        if not quality_config.ai_configured or not quality_config.provider_active:
            for language, assessment in pending.items():
                results[language] = self._save_heuristic(assessment)
            return results

        settings = ProviderSettings.from_quality_config(quality_config)
        first = next(iter(pending.values())).pair
        related = self._related_keys(key_id, first.target_language, source_language)

        try:
            ai_results = self.evaluator.evaluate_multi_language(
                key.name,
                first.source_text,
                source_language,
                {language: a.pair.target_text for language, a in pending.items()},
                settings,
                related,
            )
        except Exception as e:
            reason = self._ai_failure_reason(key_id, e)
            ai_results = {}
        else:
            reason = FallbackReason.MALFORMED

        for language, assessment in pending.items():
            ai_result = ai_results.get(language)
            if ai_result is None:
                results[language] = self._save_heuristic(assessment, fallback_reason=reason)
            else:
                results[language] = self._save_ai(assessment, ai_result, settings)
        return results

    # Context and reporting

    def build_context(
        self,
        key_id: str,
        target_language: str,
        source_language: Optional[str] = None,
    ) -> AIContext:
        if not self.store.get_key(key_id):
            raise NotFoundError(f"Key not found: {key_id}")
        return self.context_service.build_context(
            key_id, target_language, source_language, limit=self.related_keys_limit
        )

    def get_branch_summary(self, branch_id: str) -> BranchSummary:
        """Score distribution and per-language averages for a branch."""
        scored = []
        total = 0
        for translation in self.store.translations_in_branch(branch_id):
            if translation.language == self.store.source_language(translation.key_id):
                continue
            total += 1
            score = self.scores.find(translation.translation_id)
            if score:
                scored.append((translation.language, score.score))

        by_language: Dict[str, dict] = {}
        for language in sorted({language for language, _ in scored}):
            values = [s for lang, s in scored if lang == language]
            by_language[language] = {
                "average": round(sum(values) / len(values), 1),
                "count": len(values),
            }

        values = [s for _, s in scored]
        return BranchSummary(
            branch_id=branch_id,
            average_score=round(sum(values) / len(values), 1) if values else None,
            excellent=sum(1 for s in values if s >= EXCELLENT_THRESHOLD),
            good=sum(1 for s in values if GOOD_THRESHOLD <= s < EXCELLENT_THRESHOLD),
            needs_review=sum(1 for s in values if s < GOOD_THRESHOLD),
            total_scored=len(values),
            total_translations=total,
            by_language=by_language,
        )

    # Project settings

    def get_quality_settings(self, project_id: str) -> ProjectQualitySettings:
        if not self.store.get_project(project_id):
            raise NotFoundError(f"Project not found: {project_id}")
        return self._settings_view(project_id, self.store.get_quality_config(project_id))

    def update_quality_settings(self, project_id: str, changes: dict) -> ProjectQualitySettings:
        """
        Apply a partial update to a project's quality config.

        Raises:
            NotFoundError: Unknown project
            ValidationError: Unknown field, threshold outside 0-100, or flag above auto-approve
        """
        current = self.get_quality_settings(project_id)
        for name in ("auto_approve_threshold", "flag_threshold"):
            value = changes.get(name)
            if value is not None and not 0 <= value <= 100:
                raise ValidationError(f"{name} must be between 0 and 100")
        auto_approve = changes.get("auto_approve_threshold", current.auto_approve_threshold)
        flag = changes.get("flag_threshold", current.flag_threshold)
        if auto_approve is not None and flag is not None and flag > auto_approve:
            raise ValidationError("flag_threshold cannot be above auto_approve_threshold")

        updated = self.store.update_quality_config(project_id, changes)
        logger.info(f"Updated quality config for project {project_id}: {sorted(changes)}")
        return self._settings_view(project_id, updated)

    def delete_translation(self, translation_id: str) -> bool:
        """Remove a translation and its stored score."""
        removed = self.store.delete_translation(translation_id)
        self.scores.delete(translation_id)
        return removed

    @staticmethod
    def validate_icu_syntax(text: str) -> ICUValidationResult:
        return validate_icu(text)

    # Internals

    def _pass_threshold(self, project_id: str) -> int:
        threshold = self.store.get_quality_config(project_id).auto_approve_threshold
        return threshold if threshold is not None else self.pass_threshold

    def _settings_view(self, project_id: str, quality_config: QualityConfig) -> ProjectQualitySettings:
        return ProjectQualitySettings(
            project_id=project_id,
            ai_enabled=quality_config.ai_enabled,
            provider=quality_config.provider,
            model=quality_config.model,
            provider_active=quality_config.provider_active,
            ai_configured=quality_config.ai_configured,
            auto_approve_threshold=self._pass_threshold(project_id),
            flag_threshold=(
                quality_config.flag_threshold
                if quality_config.flag_threshold is not None
                else config.quality_flag_threshold
            ),
        )

    def _resolve(self, translation_id: str) -> TranslationPair:
        pair = self.store.get_pair(translation_id)
        if not pair:
            raise NotFoundError(f"Translation not found: {translation_id}")
        if not pair.target_text:
            raise ValidationError(f"Translation {translation_id} has no text to evaluate")
        return pair

    def _cached_if_fresh(self, translation_id: str, content_hash: str) -> Optional[QualityScore]:
        cached = self.scores.find(translation_id)
        if cached and cached.content_hash == content_hash:
            logger.debug(f"Cache hit for {translation_id}")
            return cached
        if cached:
            logger.debug(f"Stale score for {translation_id}, content changed")
        return None

    def _assess(self, pair: TranslationPair, content_hash: str) -> HeuristicAssessment:
        heuristic = self.scorer.check(
            pair.source_text, pair.target_text, pair.source_language, pair.target_language
        )
        issues = list(heuristic.issues)
        score = heuristic.score
        needs_ai = heuristic.needs_ai_evaluation

        glossary = GlossaryEvaluator(self.store.get_glossary(pair.project_id)).evaluate(
            pair.source_text, pair.target_text, pair.target_language
        )
        if glossary and not glossary.passed:
            score = max(0, score - GlossaryEvaluator.calculate_penalty(glossary))
            issues.append(glossary.issue)
            needs_ai = True

        return HeuristicAssessment(
            pair=pair,
            content_hash=content_hash,
            heuristic=heuristic,
            score=score,
            issues=issues,
            needs_ai=needs_ai,
        )

    def _related_keys(self, key_id: str, target_language: str, source_language: str) -> List[RelatedKeyCandidate]:
        """Related keys for prompt context. Evaluation proceeds without them on error."""
        try:
            return self.context_service.get_related_candidates(
                key_id, target_language, source_language, limit=self.related_keys_limit
            )
        except Exception as e:
            logger.warning(f"Could not load related keys for {key_id}, continuing without context: {e}")
            return []

    def _save_format_only(self, pair: TranslationPair, content_hash: str) -> QualityScore:
        heuristic = self.scorer.check_format_only(pair.target_text)
        score = QualityScore(
            score=heuristic.score,
            format=heuristic.score,
            passed=heuristic.score >= self._pass_threshold(pair.project_id),
            evaluation_type=EvaluationType.HEURISTIC,
            content_hash=content_hash,
            issues=heuristic.issues,
        )
        return self.scores.save(pair.translation_id, score)

    def _save_heuristic(
        self,
        assessment: HeuristicAssessment,
        fallback_reason: Optional[FallbackReason] = None,
    ) -> QualityScore:
        score = QualityScore(
            score=assessment.score,
            format=assessment.heuristic.score,
            passed=assessment.score >= self._pass_threshold(assessment.pair.project_id),
            evaluation_type=EvaluationType.HEURISTIC,
            content_hash=assessment.content_hash,
            issues=assessment.issues,
            ai_fallback=fallback_reason is not None,
            fallback_reason=fallback_reason,
        )
        return self.scores.save(assessment.pair.translation_id, score)

    def _save_ai(
        self,
        assessment: HeuristicAssessment,
        ai_result: AIEvaluationResult,
        settings: ProviderSettings,
    ) -> QualityScore:
        # The glossary penalty is not applied again here: terminology already covers it
        format_score = assessment.heuristic.score
        combined = clamp_score(
            combine_scores(ai_result.accuracy, ai_result.fluency, ai_result.terminology, format_score)
        )
        score = QualityScore(
            score=combined,
            format=format_score,
            passed=combined >= self._pass_threshold(assessment.pair.project_id),
            evaluation_type=EvaluationType.AI,
            content_hash=assessment.content_hash,
            accuracy=ai_result.accuracy,
            fluency=ai_result.fluency,
            terminology=ai_result.terminology,
            issues=assessment.issues + ai_result.issues,
            provider=settings.provider,
            model=settings.model,
            input_tokens=ai_result.input_tokens,
            output_tokens=ai_result.output_tokens,
        )
        logger.info(f"AI score for {assessment.pair.translation_id}: {combined}")
        return self.scores.save(assessment.pair.translation_id, score)

    def _escalation_reason(self, assessment: HeuristicAssessment) -> str:
        checks = sorted({i.check for i in assessment.issues if i.check})
        return ", ".join(checks) or "heuristics failed"

    def _ai_failure_reason(self, subject: str, error: Exception) -> FallbackReason:
        """Log an AI failure and classify it for the persisted score."""
        if isinstance(error, PermanentProviderError):
            logger.error(f"AI evaluation for {subject} failed permanently, using heuristic score: {error}")
            return FallbackReason.PERMANENT
        if isinstance(error, MalformedResponseError):
            logger.warning(f"AI returned an unusable response for {subject}, using heuristic score: {error}")
            return FallbackReason.MALFORMED
        if isinstance(error, CircuitOpenError):
            logger.warning(f"AI provider circuit open for {subject}, using heuristic score: {error}")
            return FallbackReason.CIRCUIT_OPEN
        if isinstance(error, ProviderError):
            logger.warning(f"AI provider unavailable for {subject}, using heuristic score: {error}")
            return FallbackReason.TRANSIENT
        logger.exception(f"Unexpected error during AI evaluation for {subject}, using heuristic score")
        return FallbackReason.UNEXPECTED
