"""Related-key discovery and context rendering for AI prompts."""

import re
from typing import Dict, List, Optional

from ..logging_config import get_logger
from ..models.entities import TranslationKey
from ..models.related_key import AIContext, RelatedKeyCandidate, RelationshipType
from ..services.store import TranslationStore
from .confidence import (
    KEY_PATTERN_MIN_CONFIDENCE,
    NEARBY_MAX_DISTANCE,
    SEMANTIC_MIN_SIMILARITY,
    key_pattern_confidence,
    nearby_confidence,
    same_component_confidence,
    same_file_confidence,
    semantic_similarity,
)

logger = get_logger(__name__)

MAX_EXAMPLES = 3
EXAMPLES_HEADER = "Here are similar translations in this project for context:"

# Characters not allowed in XML 1.0 documents
_INVALID_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def escape_xml(text: str) -> str:
    """Escape XML special characters and drop invalid control characters."""
    text = _INVALID_XML_CHARS.sub("", text)
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def _line_distance(a: TranslationKey, b: TranslationKey) -> int:
    if a.source_line is None or b.source_line is None:
        return -1
    return abs(a.source_line - b.source_line)


def compute_relationships(
    key: TranslationKey,
    other: TranslationKey,
    key_source: str = "",
    other_source: str = "",
) -> Dict[RelationshipType, float]:
    """All relationships between two keys with their confidence."""
    found: Dict[RelationshipType, float] = {}
    distance = _line_distance(key, other)

    if key.source_file and key.source_file == other.source_file:
        found[RelationshipType.SAME_FILE] = same_file_confidence(distance)
        # Keys sharing a component are already covered by SAME_COMPONENT
        if 0 <= distance <= NEARBY_MAX_DISTANCE and key.source_component != other.source_component:
            confidence = nearby_confidence(distance)
            if confidence > 0:
                found[RelationshipType.NEARBY] = confidence

    if key.source_component and key.source_component == other.source_component:
        found[RelationshipType.SAME_COMPONENT] = same_component_confidence(distance)

    if "." in key.name and "." in other.name:
        confidence = key_pattern_confidence(key.name, other.name)
        if confidence >= KEY_PATTERN_MIN_CONFIDENCE:
            found[RelationshipType.KEY_PATTERN] = confidence

    if key_source and other_source:
        similarity = semantic_similarity(key_source, other_source)
        if similarity >= SEMANTIC_MIN_SIMILARITY:
            found[RelationshipType.SEMANTIC] = similarity

    return found


class KeyContextService:
    """Finds keys related to a given key and renders them as prompt context."""

    def __init__(self, store: TranslationStore):
        self.store = store

    def get_related_candidates(
        self,
        key_id: str,
        target_language: str,
        source_language: Optional[str] = None,
        limit: int = 10,
    ) -> List[RelatedKeyCandidate]:
        """
        Related keys that have both a source and a target translation.

        Each key appears once, under its strongest relationship. Results are
        sorted by confidence, highest first.
        """
        key = self.store.get_key(key_id)
        if not key:
            return []
        source_language = source_language or self.store.source_language(key_id)

        values = self._translations_by_key(key.branch_id)
        key_source = values.get(key_id, {}).get(source_language, ("", False))[0]

        candidates = []
        for other in self.store.keys_in_branch(key.branch_id):
            if other.key_id == key_id:
                continue

            other_values = values.get(other.key_id, {})
            if source_language not in other_values or target_language not in other_values:
                continue

            other_source = other_values[source_language][0]
            relationships = compute_relationships(key, other, key_source, other_source)
            if not relationships:
                continue

            relationship_type, confidence = max(relationships.items(), key=lambda item: item[1])
            candidates.append(
                RelatedKeyCandidate(
                    key_id=other.key_id,
                    key_name=other.name,
                    relationship_type=relationship_type,
                    confidence=min(1.0, max(0.0, confidence)),
                    translations={lang: value for lang, (value, _) in other_values.items()},
                    is_approved=other_values[target_language][1],
                )
            )

        candidates.sort(key=lambda c: c.confidence, reverse=True)
        return candidates[:limit]

    def build_context(
        self,
        key_id: str,
        target_language: str,
        source_language: Optional[str] = None,
        limit: int = 10,
    ) -> AIContext:
        source_language = source_language or self.store.source_language(key_id)
        related = self.get_related_candidates(key_id, target_language, source_language, limit)
        logger.debug(f"Found {len(related)} related keys for {key_id} ({target_language})")
        return AIContext(
            related_translations=related,
            context_prompt=build_structured_context(related, target_language, source_language),
            examples_prompt=build_examples_prompt(related, target_language, source_language),
        )

    def _translations_by_key(self, branch_id: str) -> Dict[str, Dict[str, tuple]]:
        """{key_id: {language: (value, approved)}} for non-empty translations."""
        values: Dict[str, Dict[str, tuple]] = {}
        for translation in self.store.translations_in_branch(branch_id):
            if translation.value:
                values.setdefault(translation.key_id, {})[translation.language] = (
                    translation.value,
                    translation.approved,
                )
        return values


def _with_both(
    related: List[RelatedKeyCandidate], target_language: str, source_language: str
) -> List[RelatedKeyCandidate]:
    return [
        r for r in related
        if r.translations.get(source_language) and r.translations.get(target_language)
    ]


def build_examples_prompt(
    related: List[RelatedKeyCandidate], target_language: str, source_language: str
) -> str:
    """Natural-language list of up to three example translations."""
    usable = _with_both(related, target_language, source_language)
    if not usable:
        return ""

    examples = "\n".join(
        f'- "{r.translations[source_language]}" → "{r.translations[target_language]}"'
        for r in usable[:MAX_EXAMPLES]
    )
    return f"{EXAMPLES_HEADER}\n{examples}"


def build_structured_context(
    related: List[RelatedKeyCandidate], target_language: str, source_language: str
) -> str:
    """<related_keys> XML block for the AI evaluator."""
    usable = _with_both(related, target_language, source_language)
    if not usable:
        return ""

    lines = ["<related_keys>"]
    for r in usable:
        approved = ' approved="true"' if r.is_approved else ""
        lines.append(
            f'  <related_key name="{escape_xml(r.key_name)}" type="{r.relationship_type.value}" '
            f'confidence="{r.confidence:.2f}"{approved}>'
        )
        lines.append(
            f'    <source lang="{escape_xml(source_language)}">'
            f"{escape_xml(r.translations[source_language])}</source>"
        )
        lines.append(
            f'    <target lang="{escape_xml(target_language)}">'
            f"{escape_xml(r.translations[target_language])}</target>"
        )
        lines.append("  </related_key>")
    lines.append("</related_keys>")
    return "\n".join(lines)
