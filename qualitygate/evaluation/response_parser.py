"""Extraction and validation of JSON replies from the AI evaluator."""

import json
from typing import Annotated, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, Field, ValidationError, create_model, field_validator

from ..exceptions import MalformedResponseError
from ..logging_config import get_logger

logger = get_logger(__name__)

DimensionScore = Annotated[float, Field(strict=True, ge=0, le=100)]


class MQMIssue(BaseModel):
    """One issue reported by the model."""

    type: Literal["accuracy", "fluency", "terminology"]
    severity: Literal["critical", "major", "minor"]
    message: str


class LanguageEvaluation(BaseModel):
    """MQM scores for one target language."""

    accuracy: DimensionScore
    fluency: DimensionScore
    terminology: DimensionScore
    issues: List[MQMIssue] = Field(default_factory=list)

    @field_validator("issues", mode="before")
    @classmethod
    def drop_malformed_issues(cls, value):
        """Keep well-formed issues, discard the rest individually."""
        if not isinstance(value, list):
            return []
        kept = []
        for item in value:
            try:
                kept.append(MQMIssue.model_validate(item))
            except ValidationError:
                logger.debug(f"Dropping malformed issue from AI response: {item!r}")
        return kept


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} span in text, or None.

    Handles markdown code fences and prose around the JSON. Braces inside
    JSON strings do not count towards the balance.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def format_parse_error(error: Exception) -> str:
    """One-line diagnostic that can be fed back to the model."""
    if isinstance(error, json.JSONDecodeError):
        return f"JSON syntax error: {error.msg} (line {error.lineno}, column {error.colno})"
    if isinstance(error, ValidationError):
        first = error.errors()[0]
        path = ".".join(str(part) for part in first["loc"]) or "(root)"
        return f"Path: {path}, Error: {first['msg']}"
    return str(error)


def _load_json(text: str) -> dict:
    span = extract_json_object(text or "")
    if span is None:
        raise MalformedResponseError("No JSON object found in response", raw=text or "")
    try:
        return json.loads(span)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(format_parse_error(e), raw=text) from e


def parse_mqm_response(text: str) -> LanguageEvaluation:
    """Parse a single-language MQM reply."""
    data = _load_json(text)
    try:
        return LanguageEvaluation.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(format_parse_error(e), raw=text) from e


def create_multi_language_model(languages: List[str]) -> Type[BaseModel]:
    """
    Build a response model requiring an evaluation for each language.

    Expected shape: {"evaluations": {"de": {...}, "fr": {...}}}
    """
    if not languages:
        raise ValueError("Languages list must not be empty")

    # Language codes are not valid identifiers ("zh-Hans"), so map them through aliases
    fields = {
        f"lang_{i}": (LanguageEvaluation, Field(alias=language))
        for i, language in enumerate(languages)
    }
    evaluations_model = create_model("LanguageEvaluations", **fields)
    return create_model("MultiLanguageEvaluation", evaluations=(evaluations_model, ...))


def parse_multi_language_response(text: str, languages: List[str]) -> Dict[str, LanguageEvaluation]:
    """Parse a multi-language reply into {language: LanguageEvaluation}."""
    model = create_multi_language_model(languages)
    data = _load_json(text)
    try:
        parsed = model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(format_parse_error(e), raw=text) from e

    return {
        language: getattr(parsed.evaluations, f"lang_{i}")
        for i, language in enumerate(languages)
    }
