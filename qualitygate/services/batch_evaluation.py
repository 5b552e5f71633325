"""Branch-level batch evaluation: cache pre-filter, job enqueue and job handler."""

import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

from ..config import config
from ..exceptions import ValidationError
from ..logging_config import get_logger
from ..scoring import content_fingerprint
from .quality_service import QualityEstimationService
from .score_repository import ScoreRepository
from .store import TranslationStore

logger = get_logger(__name__)

QUALITY_BATCH_JOB = "quality-batch"
PREFILTER_MAX_WORKERS = 32


class WorkQueue(Protocol):
    """Anything that accepts a named job payload and returns a job id."""

    def add(self, name: str, payload: dict) -> str:
        ...


class InMemoryWorkQueue:
    """Records jobs and runs them on demand. Used by the CLI and tests."""

    def __init__(self):
        self.jobs: Dict[str, tuple] = {}

    def add(self, name: str, payload: dict) -> str:
        job_id = str(uuid.uuid4())
        self.jobs[job_id] = (name, payload)
        return job_id

    def drain(self, handler: "QualityBatchHandler") -> Dict[str, "BatchJobResult"]:
        """Run every recorded job with the handler, oldest first."""
        results = {}
        while self.jobs:
            job_id = next(iter(self.jobs))
            _, payload = self.jobs.pop(job_id)
            results[job_id] = handler.execute(payload)
        return results


@dataclass
class BatchJobSummary:
    """What evaluate_branch decided before any evaluation ran."""

    job_id: str  # empty when nothing was queued
    total: int
    cached: int
    queued: int

    def to_dict(self) -> dict:
        return {"job_id": self.job_id, "total": self.total, "cached": self.cached, "queued": self.queued}


@dataclass
class BranchPlan:
    """Translations of a branch split into fresh and to-be-scored."""

    branch_id: str
    project_id: Optional[str]
    translation_ids: List[str]
    queued: List[str]
    force_ai: bool = False

    @property
    def cached(self) -> int:
        return len(self.translation_ids) - len(self.queued)


@dataclass
class BatchJobResult:
    """Outcome of running a queued batch job."""

    processed: int
    succeeded: int
    failed: int
    errors: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": self.errors,
        }


class BatchEvaluationService:
    """
    Queues the translations of a branch that need (re)scoring.

    Translations whose stored score still matches their content fingerprint
    are counted as cached and never reach the queue.
    """

    def __init__(
        self,
        store: TranslationStore,
        scores: ScoreRepository,
        queue: WorkQueue,
        max_batch_size: Optional[int] = None,
    ):
        self.store = store
        self.scores = scores
        self.queue = queue
        self.max_batch_size = max_batch_size or config.max_batch_size

    def evaluate_branch(
        self,
        branch_id: str,
        translation_ids: Optional[List[str]] = None,
        force_ai: bool = False,
    ) -> BatchJobSummary:
        """
        Pre-filter and enqueue a branch evaluation.

        Args:
            branch_id: Branch to evaluate
            translation_ids: Subset to evaluate, defaults to every target translation
            force_ai: Passed on to the job

        Raises:
            ValidationError: More ids than max_batch_size
        """
        return self.enqueue(self.plan_branch(branch_id, translation_ids, force_ai))

    def plan_branch(
        self,
        branch_id: str,
        translation_ids: Optional[List[str]] = None,
        force_ai: bool = False,
    ) -> BranchPlan:
        """Decide which translations need scoring. Blocking, run it off the event loop."""
        if translation_ids is None:
            translation_ids = self._branch_translation_ids(branch_id)
        ids = list(dict.fromkeys(translation_ids))

        if len(ids) > self.max_batch_size:
            raise ValidationError(
                f"Batch size exceeds maximum of {self.max_batch_size} translations ({len(ids)} given)"
            )
        if not ids:
            return BranchPlan(branch_id, self._project_id(branch_id), [], [], force_ai)

        # Read-only checks, safe to run all at once
        with ThreadPoolExecutor(max_workers=min(PREFILTER_MAX_WORKERS, len(ids))) as pool:
            fresh = list(pool.map(self._has_fresh_score, ids))

        queued = [tid for tid, is_fresh in zip(ids, fresh) if not is_fresh]
        return BranchPlan(branch_id, self._project_id(branch_id), ids, queued, force_ai)

    def enqueue(self, plan: BranchPlan) -> BatchJobSummary:
        """Hand the planned translations to the work queue, if any are left."""
        total = len(plan.translation_ids)
        if not plan.queued:
            if total:
                logger.info(f"Branch {plan.branch_id}: all {plan.cached} translations already scored")
            return BatchJobSummary(job_id="", total=total, cached=plan.cached, queued=0)

        job_id = self.queue.add(
            QUALITY_BATCH_JOB,
            {
                "type": QUALITY_BATCH_JOB,
                "project_id": plan.project_id,
                "branch_id": plan.branch_id,
                "translation_ids": plan.queued,
                "force_ai": plan.force_ai,
            },
        )
        logger.info(
            f"Branch {plan.branch_id}: queued {len(plan.queued)} translations as job {job_id} ({plan.cached} cached)"
        )
        return BatchJobSummary(job_id=job_id, total=total, cached=plan.cached, queued=len(plan.queued))

    def _has_fresh_score(self, translation_id: str) -> bool:
        pair = self.store.get_pair(translation_id)
        if not pair or not pair.source_text:
            return False
        stored = self.scores.find(translation_id)
        return bool(stored) and stored.content_hash == content_fingerprint(pair.source_text, pair.target_text)

    def _branch_translation_ids(self, branch_id: str) -> List[str]:
        return [
            t.translation_id
            for t in self.store.translations_in_branch(branch_id)
            if t.value and t.language != self.store.source_language(t.key_id)
        ]

    def _project_id(self, branch_id: str) -> Optional[str]:
        keys = self.store.keys_in_branch(branch_id)
        return keys[0].project_id if keys else None


class QualityBatchHandler:
    """Runs a queued quality-batch job."""

    def __init__(self, quality_service: QualityEstimationService):
        self.quality_service = quality_service

    def execute(
        self,
        payload: dict,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> BatchJobResult:
        translation_ids = payload.get("translation_ids", [])
        outcome = self.quality_service.evaluate_batch(
            translation_ids,
            force_ai=payload.get("force_ai", False),
            progress_callback=progress_callback,
        )
        return BatchJobResult(
            processed=len(translation_ids),
            succeeded=outcome.succeeded,
            failed=outcome.failed,
            errors=[{"translation_id": f.translation_id, "error": f.error} for f in outcome.failures],
        )
