"""Confidence formulas for key relationships."""

import math
from difflib import SequenceMatcher

NEARBY_MAX_DISTANCE = 30
NEARBY_DECAY = 15
SAME_FILE_DECAY = 50
SAME_COMPONENT_DECAY = 20
KEY_PATTERN_MIN_CONFIDENCE = 0.5
SEMANTIC_MIN_SIMILARITY = 0.7
SEMANTIC_MIN_LENGTH = 10


def nearby_confidence(distance: int) -> float:
    """e^(-d/15) for keys within 30 lines of each other, else 0."""
    if distance < 0 or distance > NEARBY_MAX_DISTANCE:
        return 0.0
    return math.exp(-distance / NEARBY_DECAY)


def same_file_confidence(distance: int) -> float:
    """0.6 to 1.0; a negative distance means the line is unknown."""
    if distance < 0:
        return 1.0
    return 0.6 + 0.4 * math.exp(-distance / SAME_FILE_DECAY)


def same_component_confidence(distance: int) -> float:
    """0.8 to 1.0; a negative distance means the line is unknown."""
    if distance < 0:
        return 1.0
    return 0.8 + 0.2 * math.exp(-distance / SAME_COMPONENT_DECAY)


def key_pattern_confidence(name_a: str, name_b: str) -> float:
    """
    Similarity of two dotted key names.

    0.6 * (common prefix segments / longer segment count)
    + 0.4 * Jaccard similarity of the segment sets.
    """
    if not name_a or not name_b:
        return 0.0

    segments_a = [s for s in name_a.split(".") if s]
    segments_b = [s for s in name_b.split(".") if s]
    if not segments_a or not segments_b:
        return 0.0

    lcp = 0
    for a, b in zip(segments_a, segments_b):
        if a != b:
            break
        lcp += 1
    lcp_ratio = lcp / max(len(segments_a), len(segments_b))

    set_a, set_b = set(segments_a), set(segments_b)
    union = set_a | set_b
    jaccard = len(set_a & set_b) / len(union) if union else 0.0

    return 0.6 * lcp_ratio + 0.4 * jaccard


def semantic_similarity(text_a: str, text_b: str) -> float:
    """Case-insensitive similarity ratio of two source texts in [0, 1]."""
    if len(text_a) <= SEMANTIC_MIN_LENGTH or len(text_b) <= SEMANTIC_MIN_LENGTH:
        return 0.0
    return SequenceMatcher(None, text_a.lower(), text_b.lower()).ratio()
