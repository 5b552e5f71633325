"""Data models for related-key context."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List


class RelationshipType(str, Enum):
    """How two keys are related."""
    NEARBY = "NEARBY"
    KEY_PATTERN = "KEY_PATTERN"
    SAME_COMPONENT = "SAME_COMPONENT"
    SAME_FILE = "SAME_FILE"
    SEMANTIC = "SEMANTIC"


@dataclass
class RelatedKeyCandidate:
    """A key related to the one being evaluated, with its translations."""

    key_id: str
    key_name: str
    relationship_type: RelationshipType
    confidence: float  # 0-1
    translations: Dict[str, str] = field(default_factory=dict)  # language -> text
    is_approved: bool = False

    def to_dict(self) -> dict:
        return {
            "key_id": self.key_id,
            "key_name": self.key_name,
            "relationship_type": self.relationship_type.value,
            "confidence": round(self.confidence, 4),
            "translations": dict(self.translations),
            "is_approved": self.is_approved,
        }


@dataclass
class AIContext:
    """Related translations plus both prompt renderings."""

    related_translations: List[RelatedKeyCandidate] = field(default_factory=list)
    context_prompt: str = ""  # structured XML block
    examples_prompt: str = ""  # natural language examples

    def to_dict(self) -> dict:
        return {
            "related_translations": [c.to_dict() for c in self.related_translations],
            "context_prompt": self.context_prompt,
            "examples_prompt": self.examples_prompt,
        }
