"""Glossary term compliance check."""

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..models.quality_score import IssueType, QualityIssue, Severity

GLOSSARY_MISSING_TERM_PENALTY = 15
GLOSSARY_MAX_PENALTY = 10


@dataclass
class GlossaryResult:
    """Outcome of checking a translation against the glossary."""

    passed: bool
    score: int  # 0-100
    issue: Optional[QualityIssue] = None


class GlossaryEvaluator:
    """
    Checks that glossary terms found in the source use their approved translation.

    Glossary format: {source_term: {lang_code: translation}}
    """

    def __init__(self, glossary: Optional[Dict[str, Dict[str, str]]] = None):
        self.glossary = glossary or {}

    def evaluate(self, source: str, translation: str, target_lang: str) -> Optional[GlossaryResult]:
        """Check a translation against the terms for one target language."""
        return self.evaluate_with_terms(self.terms_for(target_lang), source, translation)

    def terms_for(self, target_lang: str) -> Dict[str, Optional[str]]:
        """Flatten the glossary to {source_term: translation or None} for a language."""
        terms = {}
        for term, translations in self.glossary.items():
            if isinstance(translations, dict):
                terms[term] = translations.get(target_lang)
            else:
                terms[term] = None
        return terms

    def evaluate_with_terms(
        self,
        terms: Dict[str, Optional[str]],
        source: str,
        translation: str,
    ) -> Optional[GlossaryResult]:
        """
        Score glossary compliance.

        Returns None when no glossary term occurs in the source. Terms without
        an approved translation for the language count as satisfied.
        """
        if not terms:
            return None

        source_lower = source.lower()
        translation_lower = translation.lower()

        relevant = {term: expected for term, expected in terms.items() if term.lower() in source_lower}
        if not relevant:
            return None

        missing: List[str] = [
            expected
            for expected in relevant.values()
            if expected and expected.lower() not in translation_lower
        ]

        if not missing:
            return GlossaryResult(passed=True, score=100)

        score = max(0, 100 - len(missing) * GLOSSARY_MISSING_TERM_PENALTY)
        expected_terms = ", ".join(f'"{term}"' for term in missing)
        return GlossaryResult(
            passed=False,
            score=score,
            issue=QualityIssue(
                type=IssueType.TERMINOLOGY,
                severity=Severity.MINOR,
                message=f"Glossary terms not used: expected {expected_terms}",
                check="glossary_missing",
            ),
        )

    @staticmethod
    def calculate_penalty(result: Optional[GlossaryResult]) -> int:
        """Capped score deduction for a failed glossary check."""
        if result is None or result.passed:
            return 0
        return min(GLOSSARY_MAX_PENALTY, 100 - result.score)
