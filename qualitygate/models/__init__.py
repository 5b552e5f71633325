"""Data models for the quality scoring engine."""

from .entities import Project, TranslationKey, Translation, QualityConfig
from .quality_score import (
    IssueType,
    Severity,
    EvaluationType,
    FallbackReason,
    TranslationPair,
    QualityIssue,
    QualityScore,
)
from .related_key import RelationshipType, RelatedKeyCandidate, AIContext

__all__ = [
    "Project",
    "TranslationKey",
    "Translation",
    "QualityConfig",
    "IssueType",
    "Severity",
    "EvaluationType",
    "FallbackReason",
    "TranslationPair",
    "QualityIssue",
    "QualityScore",
    "RelationshipType",
    "RelatedKeyCandidate",
    "AIContext",
]
