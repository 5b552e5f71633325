"""Data models for translation pairs and quality scores."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import List, Optional


class IssueType(str, Enum):
    """MQM dimension an issue belongs to."""
    ACCURACY = "accuracy"
    FLUENCY = "fluency"
    TERMINOLOGY = "terminology"


class Severity(str, Enum):
    """Issue severity."""
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class EvaluationType(str, Enum):
    """Which tier produced a score."""
    HEURISTIC = "heuristic"
    AI = "ai"


class FallbackReason(str, Enum):
    """Why an AI evaluation degraded to the heuristic score."""
    PERMANENT = "permanent"  # auth, permission, bad request: fix the configuration
    TRANSIENT = "transient"  # rate limit, timeout or 5xx after retries
    CIRCUIT_OPEN = "circuit_open"
    MALFORMED = "malformed"
    UNEXPECTED = "unexpected"


@dataclass
class TranslationPair:
    """A source string and one candidate translation, resolved from the store."""

    translation_id: str
    key_id: str
    key_name: str
    project_id: str
    branch_id: str
    source_text: str
    target_text: str
    source_language: str
    target_language: str


@dataclass
class QualityIssue:
    """A single problem found in a translation."""

    type: IssueType
    severity: Severity
    message: str
    check: Optional[str] = None  # heuristic that raised it, e.g. "placeholder_missing"

    def to_dict(self) -> dict:
        data = {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.check:
            data["check"] = self.check
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "QualityIssue":
        return cls(
            type=IssueType(data["type"]),
            severity=Severity(data["severity"]),
            message=data["message"],
            check=data.get("check"),
        )


@dataclass
class QualityScore:
    """Represents the quality assessment of a translation."""

    score: int  # 0-100
    format: int  # 0-100, heuristic score
    passed: bool
    evaluation_type: EvaluationType
    content_hash: str
    translation_id: str = ""
    accuracy: Optional[int] = None  # 0-100, AI only
    fluency: Optional[int] = None  # 0-100, AI only
    terminology: Optional[int] = None  # 0-100, AI only
    issues: List[QualityIssue] = field(default_factory=list)
    provider: Optional[str] = None
    model: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    ai_fallback: bool = False
    fallback_reason: Optional[FallbackReason] = None
    cached: bool = False
    evaluated_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        data = asdict(self)
        data["evaluation_type"] = self.evaluation_type.value
        data["fallback_reason"] = self.fallback_reason.value if self.fallback_reason else None
        data["issues"] = [issue.to_dict() for issue in self.issues]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "QualityScore":
        data = dict(data)
        data["evaluation_type"] = EvaluationType(data["evaluation_type"])
        if data.get("fallback_reason"):
            data["fallback_reason"] = FallbackReason(data["fallback_reason"])
        data["issues"] = [QualityIssue.from_dict(i) for i in data.get("issues", [])]
        return cls(**data)
