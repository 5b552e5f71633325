"""Validation modules for translation quality."""

from .glossary_evaluator import GlossaryEvaluator, GlossaryResult
from .icu_validator import validate_icu, ICUValidationResult
from .placeholder_validator import PlaceholderValidator
from .quality_scorer import QualityScorer, HeuristicResult

__all__ = [
    "GlossaryEvaluator",
    "GlossaryResult",
    "validate_icu",
    "ICUValidationResult",
    "PlaceholderValidator",
    "QualityScorer",
    "HeuristicResult",
]
