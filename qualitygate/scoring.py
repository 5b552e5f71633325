"""Pure scoring helpers: content fingerprint and score combination."""

import hashlib
from decimal import Decimal, ROUND_HALF_UP

# MQM combination weights
ACCURACY_WEIGHT = 0.40
FLUENCY_WEIGHT = 0.25
TERMINOLOGY_WEIGHT = 0.15
FORMAT_WEIGHT = 0.20


def content_fingerprint(source: str, target: str) -> str:
    """
    Compute a stable fingerprint of a source/target pair.

    The source is length-prefixed so that ("ab", "c") and ("a", "bc")
    never share an encoding.
    """
    content = f"{len(source)}:{source}|{target}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def combine_scores(accuracy: float, fluency: float, terminology: float, format_score: float) -> float:
    """Weighted MQM combination of the three AI dimensions and the heuristic score."""
    return (
        accuracy * ACCURACY_WEIGHT
        + fluency * FLUENCY_WEIGHT
        + terminology * TERMINOLOGY_WEIGHT
        + format_score * FORMAT_WEIGHT
    )


def clamp_score(value: float) -> int:
    """Round half up and clamp into [0, 100]."""
    rounded = int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(0, min(100, rounded))
