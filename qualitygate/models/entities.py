"""Records owned by the surrounding platform (projects, keys, translations)."""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Project:
    """A localization project."""

    project_id: str
    default_language: str = "en"
    languages: List[str] = field(default_factory=list)


@dataclass
class TranslationKey:
    """A translatable key and where it lives in the source code."""

    key_id: str
    name: str
    project_id: str
    branch_id: str
    source_file: Optional[str] = None
    source_line: Optional[int] = None
    source_component: Optional[str] = None


@dataclass
class Translation:
    """One language's value for a key."""

    translation_id: str
    key_id: str
    language: str
    value: str
    approved: bool = False


@dataclass
class QualityConfig:
    """Per-project AI evaluation settings."""

    ai_enabled: bool = False
    provider: Optional[str] = None  # e.g. "openai"
    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    provider_active: bool = True
    # None means the process-wide default from config
    auto_approve_threshold: Optional[int] = None
    flag_threshold: Optional[int] = None

    @property
    def ai_configured(self) -> bool:
        return bool(self.ai_enabled and self.provider and self.model)
