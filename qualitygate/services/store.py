"""In-memory translation store, loadable from a JSON data file."""

import json
import threading
from dataclasses import asdict, fields, replace
from pathlib import Path
from typing import Dict, List, Optional

from ..exceptions import NotFoundError, ValidationError
from ..models.entities import Project, QualityConfig, Translation, TranslationKey
from ..models.quality_score import TranslationPair


class TranslationStore:
    """
    Holds projects, keys, translations, glossaries and per-project AI settings.

    Data file format:
        {
          "projects": [{"project_id": "app", "default_language": "en",
                        "languages": ["en", "de"],
                        "quality_config": {"ai_enabled": true, "provider": "openai", ...},
                        "glossary": {"save": {"de": "speichern"}}}],
          "keys": [{"key_id": "k1", "name": "button.save", "project_id": "app",
                    "branch_id": "main", "source_file": "Save.tsx", "source_line": 12,
                    "translations": [{"language": "en", "value": "Save"},
                                     {"language": "de", "value": "Speichern", "approved": true}]}]
        }

    Translation ids default to "<key_id>:<language>".
    """

    def __init__(self):
        self.projects: Dict[str, Project] = {}
        self.keys: Dict[str, TranslationKey] = {}
        self.translations: Dict[str, Translation] = {}
        self._by_key: Dict[str, Dict[str, Translation]] = {}  # key_id -> language -> translation
        self.quality_configs: Dict[str, QualityConfig] = {}
        self.glossaries: Dict[str, Dict[str, Dict[str, str]]] = {}
        self._lock = threading.Lock()

    # Loading

    @classmethod
    def load(cls, path: Path) -> "TranslationStore":
        """Load a store from a JSON data file."""
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid data file {path}: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "TranslationStore":
        store = cls()
        for project_data in data.get("projects", []):
            project_data = dict(project_data)
            quality_config = project_data.pop("quality_config", None)
            glossary = project_data.pop("glossary", None)
            project = store.add_project(Project(**project_data))
            if quality_config:
                store.set_quality_config(project.project_id, QualityConfig(**quality_config))
            if glossary:
                store.set_glossary(project.project_id, glossary)

        for key_data in data.get("keys", []):
            key_data = dict(key_data)
            translations = key_data.pop("translations", [])
            key = store.add_key(TranslationKey(**key_data))
            for item in translations:
                store.set_translation(
                    key.key_id,
                    item["language"],
                    item["value"],
                    approved=item.get("approved", False),
                    translation_id=item.get("translation_id"),
                )
        return store

    def to_dict(self) -> dict:
        projects = []
        for project in self.projects.values():
            entry = asdict(project)
            if project.project_id in self.quality_configs:
                entry["quality_config"] = asdict(self.quality_configs[project.project_id])
            if project.project_id in self.glossaries:
                entry["glossary"] = self.glossaries[project.project_id]
            projects.append(entry)

        keys = []
        for key in self.keys.values():
            entry = asdict(key)
            entry["translations"] = [
                {
                    "translation_id": t.translation_id,
                    "language": t.language,
                    "value": t.value,
                    "approved": t.approved,
                }
                for t in self.translations_for_key(key.key_id)
            ]
            keys.append(entry)
        return {"projects": projects, "keys": keys}

    def save(self, path: Path) -> None:
        Path(path).write_text(json.dumps(self.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")

    # Writes

    def add_project(self, project: Project) -> Project:
        with self._lock:
            self.projects[project.project_id] = project
        return project

    def add_key(self, key: TranslationKey) -> TranslationKey:
        if key.project_id not in self.projects:
            raise ValidationError(f"Unknown project: {key.project_id}")
        with self._lock:
            self.keys[key.key_id] = key
        return key

    def set_translation(
        self,
        key_id: str,
        language: str,
        value: str,
        approved: bool = False,
        translation_id: Optional[str] = None,
    ) -> Translation:
        """Create or update the translation of a key in one language."""
        if key_id not in self.keys:
            raise ValidationError(f"Unknown key: {key_id}")
        with self._lock:
            existing = self._find_translation(key_id, language)
            if existing:
                existing.value = value
                existing.approved = approved
                return existing
            translation = Translation(
                translation_id=translation_id or f"{key_id}:{language}",
                key_id=key_id,
                language=language,
                value=value,
                approved=approved,
            )
            self.translations[translation.translation_id] = translation
            self._by_key.setdefault(key_id, {})[language] = translation
            return translation

    def delete_translation(self, translation_id: str) -> bool:
        with self._lock:
            translation = self.translations.pop(translation_id, None)
            if translation is None:
                return False
            self._by_key.get(translation.key_id, {}).pop(translation.language, None)
            return True

    def set_quality_config(self, project_id: str, quality_config: QualityConfig) -> None:
        with self._lock:
            self.quality_configs[project_id] = quality_config

    def update_quality_config(self, project_id: str, changes: dict) -> QualityConfig:
        """Apply a partial update to a project's quality config and return the result."""
        if project_id not in self.projects:
            raise NotFoundError(f"Project not found: {project_id}")
        unknown = set(changes) - {f.name for f in fields(QualityConfig)}
        if unknown:
            raise ValidationError(f"Unknown quality config fields: {', '.join(sorted(unknown))}")
        with self._lock:
            updated = replace(self.quality_configs.get(project_id) or QualityConfig(), **changes)
            self.quality_configs[project_id] = updated
        return updated

    def set_glossary(self, project_id: str, glossary: Dict[str, Dict[str, str]]) -> None:
        with self._lock:
            self.glossaries[project_id] = glossary

    # Reads

    def get_project(self, project_id: str) -> Optional[Project]:
        return self.projects.get(project_id)

    def get_key(self, key_id: str) -> Optional[TranslationKey]:
        return self.keys.get(key_id)

    def get_translation(self, translation_id: str) -> Optional[Translation]:
        return self.translations.get(translation_id)

    def get_quality_config(self, project_id: str) -> QualityConfig:
        return self.quality_configs.get(project_id) or QualityConfig()

    def get_glossary(self, project_id: str) -> Dict[str, Dict[str, str]]:
        return self.glossaries.get(project_id, {})

    def translations_for_key(self, key_id: str) -> List[Translation]:
        return list(self._by_key.get(key_id, {}).values())

    def keys_in_branch(self, branch_id: str) -> List[TranslationKey]:
        return [k for k in list(self.keys.values()) if k.branch_id == branch_id]

    def translations_in_branch(self, branch_id: str) -> List[Translation]:
        return [t for key in self.keys_in_branch(branch_id) for t in self.translations_for_key(key.key_id)]

    def source_language(self, key_id: str) -> str:
        key = self.keys.get(key_id)
        project = self.projects.get(key.project_id) if key else None
        return project.default_language if project else "en"

    def get_pair(self, translation_id: str) -> Optional[TranslationPair]:
        """Resolve a translation into a source/target pair."""
        translation = self.translations.get(translation_id)
        if not translation:
            return None
        key = self.keys.get(translation.key_id)
        if not key:
            return None

        source_language = self.source_language(key.key_id)
        source = self._find_translation(key.key_id, source_language)

        return TranslationPair(
            translation_id=translation.translation_id,
            key_id=key.key_id,
            key_name=key.name,
            project_id=key.project_id,
            branch_id=key.branch_id,
            source_text=source.value if source else "",
            target_text=translation.value,
            source_language=source_language,
            target_language=translation.language,
        )

    def _find_translation(self, key_id: str, language: str) -> Optional[Translation]:
        return self._by_key.get(key_id, {}).get(language)
