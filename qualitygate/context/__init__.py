"""Related-key context for AI evaluation."""

from .key_context import KeyContextService, build_examples_prompt, build_structured_context

__all__ = ["KeyContextService", "build_examples_prompt", "build_structured_context"]
