"""Tests for ICU message validation and placeholder extraction."""

from qualitygate.validation.icu_validator import validate_icu
from qualitygate.validation.placeholder_validator import PlaceholderValidator


class TestValidateICU:
    def test_plain_text(self):
        result = validate_icu("Save changes")
        assert result.valid
        assert result.arguments == []

    def test_simple_arguments_in_order(self):
        result = validate_icu("{greeting}, {name}!")
        assert result.valid
        assert result.arguments == ["greeting", "name"]

    def test_typed_argument(self):
        result = validate_icu("Total: {price, number, ::currency/EUR}")
        assert result.valid
        assert result.arguments == ["price"]

    def test_plural(self):
        result = validate_icu("{count, plural, one {# item} other {# items}}")
        assert result.valid
        assert result.arguments == ["count"]

    def test_plural_with_offset_and_exact_match(self):
        result = validate_icu("{n, plural, offset:1 =0 {nobody} one {you} other {you and # others}}")
        assert result.valid

    def test_nested_arguments(self):
        result = validate_icu("{gender, select, male {{name} said} other {They said}}")
        assert result.valid
        assert result.arguments == ["gender", "name"]

    def test_missing_other(self):
        result = validate_icu("{n, plural, one {# file}}")
        assert not result.valid
        assert "Missing 'other' clause in plural argument 'n'" in result.error

    def test_unclosed_brace(self):
        result = validate_icu("Hello {name")
        assert not result.valid
        assert "Unclosed '{'" in result.error

    def test_unexpected_closing_brace(self):
        result = validate_icu("Hello }")
        assert not result.valid
        assert "Unexpected '}'" in result.error

    def test_empty_argument(self):
        result = validate_icu("Hello {}")
        assert not result.valid
        assert "Empty argument" in result.error

    def test_quoted_braces_are_literal(self):
        result = validate_icu("Use '{name}' as a literal")
        assert result.valid
        assert result.arguments == []

    def test_doubled_apostrophe(self):
        result = validate_icu("It''s {name}")
        assert result.valid
        assert result.arguments == ["name"]


class TestPlaceholderValidator:
    def setup_method(self):
        self.validator = PlaceholderValidator()

    def test_matching_placeholders(self):
        is_valid, issues = self.validator.validate("Hello {name}", "Hallo {name}")
        assert is_valid
        assert issues == []

    def test_missing_placeholder_is_critical(self):
        is_valid, issues = self.validator.validate("Hello {name}", "Hallo")
        assert not is_valid
        assert len(issues) == 1
        assert issues[0].error_type == "missing"
        assert issues[0].severity == "critical"
        assert issues[0].message == "Missing placeholder in translation: {name}"

    def test_extra_placeholder_is_major(self):
        is_valid, issues = self.validator.validate("Hello", "Hallo {name}")
        assert is_valid
        assert issues[0].error_type == "extra"
        assert issues[0].severity == "major"

    def test_plural_arguments_compare_by_name(self):
        is_valid, issues = self.validator.validate(
            "{count, plural, one {# item} other {# items}}",
            "{count, plural, one {# Element} other {# Elemente}}",
        )
        assert is_valid
        assert issues == []

    def test_invalid_icu_falls_back_to_pattern(self):
        assert self.validator.extract_placeholders("{count, plural, one {# item}}") == {"count"}
