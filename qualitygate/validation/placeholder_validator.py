"""Validator for ICU argument placeholders."""

import re
from dataclasses import dataclass
from typing import List, Set, Tuple

from .icu_validator import validate_icu


@dataclass
class PlaceholderIssue:
    """Represents a placeholder validation issue."""

    error_type: str  # missing, extra
    placeholder: str
    message: str
    severity: str  # critical, major


class PlaceholderValidator:
    """
    Validates that ICU arguments are preserved in translations.

    Arguments include:
    - {name} - Simple argument
    - {count, number} - Typed argument
    - {count, plural, one {...} other {...}} - Complex argument (nested ones count too)
    """

    # Used when the text is not valid ICU and the parser gave up early
    FALLBACK_PATTERN = re.compile(r"\{\s*([\w.\-]+)\s*[,}]")

    def validate(self, source: str, translation: str) -> Tuple[bool, List[PlaceholderIssue]]:
        """
        Validate that placeholders in source match those in translation.

        Args:
            source: Original source text
            translation: Translated text

        Returns:
            Tuple of (is_valid, list of issues)
        """
        issues = []

        source_set = self.extract_placeholders(source)
        trans_set = self.extract_placeholders(translation)

        for placeholder in sorted(source_set - trans_set):
            issues.append(
                PlaceholderIssue(
                    error_type="missing",
                    placeholder=placeholder,
                    message=f"Missing placeholder in translation: {{{placeholder}}}",
                    severity="critical",
                )
            )

        for placeholder in sorted(trans_set - source_set):
            issues.append(
                PlaceholderIssue(
                    error_type="extra",
                    placeholder=placeholder,
                    message=f"Extra placeholder in translation: {{{placeholder}}}",
                    severity="major",
                )
            )

        is_valid = not any(issue.severity == "critical" for issue in issues)
        return is_valid, issues

    def extract_placeholders(self, text: str) -> Set[str]:
        """Extract the set of argument names from text."""
        result = validate_icu(text)
        if result.valid:
            return set(result.arguments)
        return set(self.FALLBACK_PATTERN.findall(text))
