"""Prompts for MQM quality evaluation."""

from typing import Dict, List

from ..context.key_context import escape_xml
from ..models.related_key import RelatedKeyCandidate

_SCORING_GUIDE = """Score each dimension 0-100:

1. ACCURACY: Is the meaning of the source preserved?
   - 100: Perfect semantic fidelity
   - 80-99: Minor omissions that do not change the meaning
   - 50-79: Some meaning lost
   - 0-49: Wrong meaning, hallucinated content, or an explanation instead of a translation

2. FLUENCY: Does it read naturally in the target language?
   - 100: Native-level, perfect grammar
   - 80-99: Minor issues, still natural
   - 50-79: Awkward phrasing
   - 0-49: Hard to understand

3. TERMINOLOGY: Are domain terms translated correctly and consistently?
   - 100: All terms correct
   - 80-99: Minor inconsistencies
   - 50-79: Some wrong terms
   - 0-49: Major term errors"""

_RELATED_KEYS_GUIDE = """When <related_keys> are provided, use them as reference:
- NEARBY: adjacent UI elements in the same code location, match tone and formality
- KEY_PATTERN: same feature area (form.*, button.*), match terminology
- SAME_COMPONENT: same UI component, keep the UI consistent
- SAME_FILE: same source file, keep the style
- SEMANTIC: similar source text, check the translations agree
- Treat high-confidence (>0.8) and approved="true" translations as authoritative"""

MQM_SYSTEM_PROMPT = f"""You are an MQM (Multidimensional Quality Metrics) translation quality evaluator for software UI strings.

{_SCORING_GUIDE}

IMPORTANT: If the target looks like an AI answer rather than a translation (it asks questions, requests clarification, or is much longer than expected), score ACCURACY as 0.

{_RELATED_KEYS_GUIDE}

RESPONSE FORMAT (JSON only):
{{"accuracy": N, "fluency": N, "terminology": N, "issues": [{{"type": "accuracy|fluency|terminology", "severity": "critical|major|minor", "message": "..."}}]}}

If there are no issues, return an empty issues array."""

MQM_MULTI_LANGUAGE_SYSTEM_PROMPT = f"""You are an MQM (Multidimensional Quality Metrics) translation quality evaluator for software UI strings.

You are evaluating ALL translations of a single key. Score CONSISTENTLY across languages:
- The same problem gets the same severity in every language
- Calibrate the translations against each other
- Do not be harsher on one language than another

{_SCORING_GUIDE}

IMPORTANT: If any translation looks like an AI answer rather than a translation, score its ACCURACY as 0.

{_RELATED_KEYS_GUIDE}

RESPONSE FORMAT (JSON only):
{{
  "evaluations": {{
    "<language code>": {{
      "accuracy": N,
      "fluency": N,
      "terminology": N,
      "issues": [{{"type": "accuracy", "severity": "major", "message": "..."}}]
    }}
  }}
}}

Issue fields:
- type: one of "accuracy", "fluency", "terminology"
- severity: one of "critical", "major", "minor"
- message: what is wrong

Use an empty issues array for a language without issues. Use exactly the language codes from the request."""

REFORMAT_INSTRUCTION = (
    "Your previous response could not be used: {error}\n"
    "Return ONLY valid JSON in the required format, with no other text."
)


def _related_key_attributes(related: RelatedKeyCandidate) -> str:
    approved = ' approved="true"' if related.is_approved else ""
    return (
        f'name="{escape_xml(related.key_name)}" type="{related.relationship_type.value}" '
        f'confidence="{related.confidence:.2f}"{approved}'
    )


def build_mqm_user_prompt(
    key_name: str,
    source: str,
    target: str,
    source_lang: str,
    target_lang: str,
    related_keys: List[RelatedKeyCandidate] = None,
) -> str:
    """Build the user prompt for a single-language evaluation."""
    prompt = f'''Key: {key_name}
Source ({source_lang}): "{source}"
Target ({target_lang}): "{target}"'''

    usable = [
        r for r in (related_keys or [])
        if r.translations.get(source_lang) and r.translations.get(target_lang)
    ]
    if usable:
        lines = ["<related_keys>"]
        for r in usable:
            lines.append(f"  <related_key {_related_key_attributes(r)}>")
            lines.append(f'    <source lang="{source_lang}">{escape_xml(r.translations[source_lang])}</source>')
            lines.append(f'    <target lang="{target_lang}">{escape_xml(r.translations[target_lang])}</target>')
            lines.append("  </related_key>")
        lines.append("</related_keys>")
        prompt += "\n\n" + "\n".join(lines)

    return prompt


def build_multi_language_prompt(
    key_name: str,
    source: str,
    source_lang: str,
    translations: Dict[str, str],
    related_keys: List[RelatedKeyCandidate] = None,
) -> str:
    """Build the <evaluation_request> prompt covering every target language of a key."""
    languages = list(translations)

    lines = [
        "<evaluation_request>",
        f"  <key>{escape_xml(key_name)}</key>",
        f'  <source lang="{source_lang}">{escape_xml(source)}</source>',
        "",
        "  <translations>",
    ]
    for language, value in translations.items():
        lines.append(f'    <translation lang="{language}">{escape_xml(value)}</translation>')
    lines.append("  </translations>")

    related = [r for r in (related_keys or []) if r.translations.get(source_lang)]
    if related:
        lines.append("")
        lines.append("  <related_keys>")
        for r in related:
            lines.append(f"    <related_key {_related_key_attributes(r)}>")
            lines.append(f'      <source lang="{source_lang}">{escape_xml(r.translations[source_lang])}</source>')
            for language in languages:
                if r.translations.get(language):
                    lines.append(
                        f'      <translation lang="{language}">{escape_xml(r.translations[language])}</translation>'
                    )
            lines.append("    </related_key>")
        lines.append("  </related_keys>")

    lines.append("</evaluation_request>")
    return "\n".join(lines)
