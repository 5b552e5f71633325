"""Heuristic quality checks for translations."""

from dataclasses import dataclass, field
from typing import List, Optional

from ..models.quality_score import IssueType, QualityIssue, Severity
from .icu_validator import validate_icu
from .placeholder_validator import PlaceholderValidator

SEVERITY_PENALTIES = {
    Severity.CRITICAL: 25,
    Severity.MAJOR: 10,
    Severity.MINOR: 3,
}

# Full-width and ellipsis forms count as the same terminal punctuation
PUNCTUATION_EQUIVALENTS = {
    "。": ".",
    "．": ".",
    "！": "!",
    "？": "?",
    "：": ":",
    "；": ";",
    "…": "...",
}
TERMINAL_PUNCTUATION = (".", "!", "?", ":", ";", "...")


@dataclass
class HeuristicResult:
    """Outcome of the heuristic checker."""

    score: int
    passed: bool
    needs_ai_evaluation: bool
    issues: List[QualityIssue] = field(default_factory=list)


class QualityScorer:
    """
    Scores translation quality with deterministic, AI-free checks.

    Each issue subtracts a penalty by severity (critical 25, major 10, minor 3)
    from 100. A translation passes when it scores at least the pass threshold
    and has no critical issue. Any critical or major issue asks for an AI
    evaluation, whatever the score.

    Checks:
    - Placeholder parity (missing = critical, extra = major)
    - ICU syntax of the target (critical)
    - Length ratio against the source (minor / major / critical)
    - Terminal punctuation and whitespace consistency (minor)
    """

    LENGTH_MIN_BASE = 10
    LENGTH_RATIO_MINOR = 2.0
    LENGTH_RATIO_MAJOR = 3.0
    LENGTH_RATIO_CRITICAL = 5.0

    def __init__(self, pass_threshold: int = 80):
        self.pass_threshold = pass_threshold
        self.placeholder_validator = PlaceholderValidator()

    def check(
        self,
        source: str,
        translation: str,
        source_lang: str = "en",
        target_lang: str = "",
    ) -> HeuristicResult:
        """
        Run every heuristic over a source/translation pair.

        Args:
            source: Original source text
            translation: Translated text
            source_lang: Source language code
            target_lang: Target language code

        Returns:
            HeuristicResult with score, pass flag and issues
        """
        issues = []
        issues.extend(self._check_placeholders(source, translation))
        issues.extend(self._check_icu(translation))
        issues.extend(self._check_length(source, translation))
        issues.extend(self._check_punctuation(source, translation))
        issues.extend(self._check_whitespace(source, translation))
        return self._result(issues)

    def check_format_only(self, translation: str) -> HeuristicResult:
        """Score a translation that has no source text to compare against."""
        return self._result(self._check_icu(translation))

    def _result(self, issues: List[QualityIssue]) -> HeuristicResult:
        penalty = sum(SEVERITY_PENALTIES[issue.severity] for issue in issues)
        score = max(0, 100 - penalty)
        has_critical = any(i.severity == Severity.CRITICAL for i in issues)
        has_major = any(i.severity == Severity.MAJOR for i in issues)
        return HeuristicResult(
            score=score,
            passed=score >= self.pass_threshold and not has_critical,
            needs_ai_evaluation=has_critical or has_major,
            issues=issues,
        )

    def _check_placeholders(self, source: str, translation: str) -> List[QualityIssue]:
        """Every source argument must reappear in the translation."""
        _, ph_issues = self.placeholder_validator.validate(source, translation)
        return [
            QualityIssue(
                type=IssueType.ACCURACY,
                severity=Severity(issue.severity),
                message=issue.message,
                check=f"placeholder_{issue.error_type}",
            )
            for issue in ph_issues
        ]

    def _check_icu(self, translation: str) -> List[QualityIssue]:
        result = validate_icu(translation)
        if result.valid:
            return []
        return [
            QualityIssue(
                type=IssueType.FLUENCY,
                severity=Severity.CRITICAL,
                message=f"Invalid ICU message syntax: {result.error}",
                check="icu_syntax",
            )
        ]

    def _check_length(self, source: str, translation: str) -> List[QualityIssue]:
        """Flag translations far longer than the source."""
        if not source or not translation:
            return []

        ratio = len(translation) / max(len(source), self.LENGTH_MIN_BASE)

        if ratio > self.LENGTH_RATIO_CRITICAL:
            return [
                QualityIssue(
                    type=IssueType.ACCURACY,
                    severity=Severity.CRITICAL,
                    message=f"Translation is {ratio:.1f}x the source length, "
                    "likely not a translation",
                    check="length_extreme",
                )
            ]
        elif ratio > self.LENGTH_RATIO_MAJOR:
            return [
                QualityIssue(
                    type=IssueType.ACCURACY,
                    severity=Severity.MAJOR,
                    message=f"Translation is significantly longer ({ratio:.1f}x)",
                    check="length_critical",
                )
            ]
        elif ratio > self.LENGTH_RATIO_MINOR:
            return [
                QualityIssue(
                    type=IssueType.ACCURACY,
                    severity=Severity.MINOR,
                    message=f"Translation is {ratio:.1f}x longer than source",
                    check="length_too_long",
                )
            ]
        return []

    def _check_punctuation(self, source: str, translation: str) -> List[QualityIssue]:
        """Terminal punctuation should survive translation."""
        source_end = self._terminal_punctuation(source)
        trans_end = self._terminal_punctuation(translation)

        if source_end == trans_end:
            return []

        if source_end and trans_end:
            message = f"Ending punctuation changed: '{source_end}' → '{trans_end}'"
        elif source_end:
            message = f"Missing ending punctuation '{source_end}'"
        else:
            message = f"Unexpected ending punctuation '{trans_end}'"

        return [
            QualityIssue(
                type=IssueType.FLUENCY,
                severity=Severity.MINOR,
                message=message,
                check="punctuation_mismatch",
            )
        ]

    def _check_whitespace(self, source: str, translation: str) -> List[QualityIssue]:
        """Check format preservation (whitespace, newlines, etc.)."""
        found = []

        if source[:1].isspace() != translation[:1].isspace():
            found.append(("whitespace_leading", "Leading whitespace changed"))

        if source[-1:].isspace() != translation[-1:].isspace():
            found.append(("whitespace_trailing", "Trailing whitespace changed"))

        # Common translation artifacts
        if "  " not in source and "  " in translation:
            found.append(("whitespace_double", "Double spaces introduced"))

        if "\t" not in source and "\t" in translation:
            found.append(("whitespace_tab", "Tab characters introduced"))

        source_newlines = source.count("\n")
        trans_newlines = translation.count("\n")
        if source_newlines != trans_newlines:
            found.append(
                ("whitespace_newline", f"Newline count changed: {source_newlines} → {trans_newlines}")
            )

        return [
            QualityIssue(
                type=IssueType.FLUENCY,
                severity=Severity.MINOR,
                message=message,
                check=check,
            )
            for check, message in found
        ]

    def _terminal_punctuation(self, text: str) -> Optional[str]:
        stripped = text.rstrip()
        if not stripped:
            return None
        if stripped.endswith("..."):
            return "..."
        last = PUNCTUATION_EQUIVALENTS.get(stripped[-1], stripped[-1])
        return last if last in TERMINAL_PUNCTUATION else None
