"""Persistence for quality scores, keyed by translation id."""

import json
import threading
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterator, Optional

from ..logging_config import get_logger
from ..models.quality_score import QualityScore

logger = get_logger(__name__)


class ScoreRepository:
    """
    Stores one QualityScore per translation.

    Scores are overwritten on every evaluation. A score is reused only while
    its content_hash matches the current source/target fingerprint, which is
    the caller's job to compare. When base_dir is given, scores are mirrored
    to a JSON file so they survive restarts. The file is replaced atomically,
    and inside `deferred_writes()` it is written once when the block exits.
    """

    FILE_NAME = "quality_scores.json"

    def __init__(self, base_dir: Optional[Path] = None):
        """
        Initialize the score repository.

        Args:
            base_dir: Optional directory to store the scores file in
        """
        self.base_dir = Path(base_dir) if base_dir else None
        self._scores: Dict[str, QualityScore] = {}
        self._lock = threading.Lock()
        self._deferred = 0
        self._dirty = False

        if self.base_dir:
            self._load()

    @property
    def path(self) -> Optional[Path]:
        return self.base_dir / self.FILE_NAME if self.base_dir else None

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable score file {self.path}: {e}")
            return
        for translation_id, record in data.get("scores", {}).items():
            self._scores[translation_id] = QualityScore.from_dict(record)

    def _persist(self) -> None:
        """Write all scores to disk unless writes are deferred. Caller holds the lock."""
        if not self.path:
            return
        if self._deferred:
            self._dirty = True
            return
        self.base_dir.mkdir(parents=True, exist_ok=True)
        data = {"scores": {tid: score.to_dict() for tid, score in self._scores.items()}}
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self.path)
        self._dirty = False

    @contextmanager
    def deferred_writes(self) -> Iterator[None]:
        """Hold file writes until the outermost block exits, then flush once."""
        with self._lock:
            self._deferred += 1
        try:
            yield
        finally:
            with self._lock:
                self._deferred -= 1
                if not self._deferred and self._dirty:
                    self._persist()

    def find(self, translation_id: str) -> Optional[QualityScore]:
        """Return the stored score, flagged as cached, or None."""
        with self._lock:
            score = self._scores.get(translation_id)
        if score is None:
            return None
        return replace(score, cached=True, issues=list(score.issues))

    def save(self, translation_id: str, score: QualityScore) -> QualityScore:
        """Upsert the score for a translation."""
        stored = replace(score, translation_id=translation_id, cached=False, issues=list(score.issues))
        with self._lock:
            self._scores[translation_id] = stored
            self._persist()
        return stored

    def delete(self, translation_id: str) -> bool:
        """Remove a score when its translation is deleted."""
        with self._lock:
            removed = self._scores.pop(translation_id, None) is not None
            if removed:
                self._persist()
        return removed

    def __len__(self) -> int:
        return len(self._scores)
