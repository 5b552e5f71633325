"""Tests for related-key discovery and prompt context."""

import pytest

from qualitygate.context.key_context import (
    EXAMPLES_HEADER,
    KeyContextService,
    build_examples_prompt,
    build_structured_context,
    compute_relationships,
    escape_xml,
)
from qualitygate.models.entities import TranslationKey
from qualitygate.models.related_key import RelatedKeyCandidate, RelationshipType


def key(key_id, name, source_file=None, source_line=None, source_component=None):
    return TranslationKey(
        key_id=key_id,
        name=name,
        project_id="app",
        branch_id="main",
        source_file=source_file,
        source_line=source_line,
        source_component=source_component,
    )


def candidate(name, confidence, translations, approved=False):
    return RelatedKeyCandidate(
        key_id=name,
        key_name=name,
        relationship_type=RelationshipType.KEY_PATTERN,
        confidence=confidence,
        translations=translations,
        is_approved=approved,
    )


class TestEscapeXml:
    def test_special_characters(self):
        assert escape_xml('<a href="x">Tom & Jerry\'s</a>') == (
            "&lt;a href=&quot;x&quot;&gt;Tom &amp; Jerry&apos;s&lt;/a&gt;"
        )

    def test_control_characters_removed(self):
        assert escape_xml("Save\x00\x07 now\n") == "Save now\n"


class TestComputeRelationships:
    def test_same_file_different_component(self):
        found = compute_relationships(
            key("a", "save", "Form.tsx", 10, "SaveButton"),
            key("b", "cancel", "Form.tsx", 14, "CancelButton"),
        )
        assert set(found) == {RelationshipType.SAME_FILE, RelationshipType.NEARBY}
        assert found[RelationshipType.NEARBY] == pytest.approx(0.766, abs=1e-3)

    def test_same_component_is_not_nearby(self):
        found = compute_relationships(
            key("a", "save", "Form.tsx", 10, "Form"),
            key("b", "cancel", "Form.tsx", 14, "Form"),
        )
        assert RelationshipType.SAME_COMPONENT in found
        assert RelationshipType.NEARBY not in found

    def test_far_apart_in_same_file(self):
        found = compute_relationships(
            key("a", "save", "Form.tsx", 10),
            key("b", "cancel", "Form.tsx", 100),
        )
        assert set(found) == {RelationshipType.SAME_FILE}

    def test_unknown_lines(self):
        found = compute_relationships(key("a", "save", "Form.tsx"), key("b", "cancel", "Form.tsx"))
        assert found == {RelationshipType.SAME_FILE: 1.0}

    def test_key_pattern(self):
        found = compute_relationships(key("a", "form.email.label"), key("b", "form.email.placeholder"))
        assert found[RelationshipType.KEY_PATTERN] == pytest.approx(0.6)

    def test_weak_key_pattern_is_ignored(self):
        found = compute_relationships(key("a", "button.save"), key("b", "button.cancel"))
        assert RelationshipType.KEY_PATTERN not in found

    def test_semantic(self):
        found = compute_relationships(
            key("a", "signup"),
            key("b", "login"),
            "Please enter your email address",
            "Please enter your e-mail address",
        )
        assert set(found) == {RelationshipType.SEMANTIC}

    def test_unrelated(self):
        assert compute_relationships(key("a", "save"), key("b", "cancel"), "Save", "Cancel") == {}


class TestKeyContextService:
    def test_related_candidates(self, store):
        related = KeyContextService(store).get_related_candidates("k1", "de")
        assert [c.key_id for c in related] == ["k2"]
        assert related[0].relationship_type == RelationshipType.SAME_FILE
        assert related[0].confidence == pytest.approx(0.969, abs=1e-3)
        assert related[0].is_approved
        assert related[0].translations["de"] == "Abbrechen"

    def test_requires_target_translation(self, store):
        store.delete_translation("k2:de")
        assert KeyContextService(store).get_related_candidates("k1", "de") == []

    def test_unknown_key(self, store):
        assert KeyContextService(store).get_related_candidates("missing", "de") == []

    def test_sorted_and_limited(self, store):
        store.add_key(key("k6", "button.save.label", "Save.tsx", 11, "SaveButton"))
        store.set_translation("k6", "en", "Save label")
        store.set_translation("k6", "de", "Speichern-Beschriftung")

        service = KeyContextService(store)
        related = service.get_related_candidates("k1", "de")
        assert [c.key_id for c in related] == ["k6", "k2"]
        assert related[0].confidence >= related[1].confidence
        assert len(service.get_related_candidates("k1", "de", limit=1)) == 1

    def test_build_context(self, store):
        context = KeyContextService(store).build_context("k1", "de")
        assert context.related_translations[0].key_id == "k2"
        assert (
            '<related_key name="button.cancel" type="SAME_FILE" confidence="0.97" approved="true">'
            in context.context_prompt
        )
        assert context.examples_prompt == f'{EXAMPLES_HEADER}\n- "Cancel" → "Abbrechen"'


class TestPromptRendering:
    def test_examples_limited_to_three(self):
        related = [candidate(f"k{i}", 0.9, {"en": f"Source {i}", "de": f"Ziel {i}"}) for i in range(5)]
        prompt = build_examples_prompt(related, "de", "en")
        assert prompt.count("\n- ") == 3

    def test_examples_skip_incomplete_pairs(self):
        related = [candidate("a", 0.9, {"en": "Only source"})]
        assert build_examples_prompt(related, "de", "en") == ""

    def test_structured_context_escapes(self):
        related = [candidate("form.<b>", 0.856, {"en": "Tom & Jerry", "de": "Tom & Jerry"})]
        xml = build_structured_context(related, "de", "en")
        assert xml.startswith("<related_keys>")
        assert xml.endswith("</related_keys>")
        assert 'name="form.&lt;b&gt;"' in xml
        assert 'confidence="0.86"' in xml
        assert '<source lang="en">Tom &amp; Jerry</source>' in xml
        assert "approved" not in xml

    def test_structured_context_empty(self):
        assert build_structured_context([], "de", "en") == ""
