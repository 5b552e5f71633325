"""Minimal ICU MessageFormat syntax validator and argument extractor."""

import re
from dataclasses import dataclass, field
from typing import List, Optional

COMPLEX_TYPES = {"plural", "select", "selectordinal"}

ARGUMENT_NAME = re.compile(r"^[\w.\-]+$")
SELECTOR = re.compile(r"=-?\d+(?:\.\d+)?|[A-Za-z_][\w\-]*")
OFFSET = re.compile(r"offset:\s*\d+")


class ICUSyntaxError(ValueError):
    """Raised by the parser with the offending position."""

    def __init__(self, message: str, position: int):
        self.position = position
        super().__init__(f"{message} at position {position}")


@dataclass
class ICUValidationResult:
    """Outcome of validating one message."""

    valid: bool
    error: Optional[str] = None
    arguments: List[str] = field(default_factory=list)


class _MessageParser:
    """
    Recursive-descent walk over an ICU message.

    Supports simple arguments ({name}), typed arguments ({n, number, ::percent})
    and the complex plural/select/selectordinal forms, with ICU apostrophe
    quoting ('' is a literal quote, '{...}' is literal text).
    """

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.arguments: List[str] = []

    def parse(self) -> List[str]:
        self._message(in_plural=False, nested=False)
        return self.arguments

    def _message(self, in_plural: bool, nested: bool) -> None:
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == "'":
                self._quoted(in_plural)
            elif ch == "{":
                self._argument(in_plural)
            elif ch == "}":
                if nested:
                    return
                raise ICUSyntaxError("Unexpected '}'", self.pos)
            else:
                self.pos += 1
        if nested:
            raise ICUSyntaxError("Unclosed '{'", len(self.text))

    def _quoted(self, in_plural: bool) -> None:
        following = self.text[self.pos + 1:self.pos + 2]
        if following == "'":
            self.pos += 2
            return
        if following not in ("{", "}") and not (in_plural and following == "#"):
            # A lone apostrophe is literal text
            self.pos += 1
            return

        i = self.pos + 1
        while True:
            end = self.text.find("'", i)
            if end == -1:
                # Unterminated quote runs to the end of the message
                self.pos = len(self.text)
                return
            if self.text[end + 1:end + 2] == "'":
                i = end + 2
                continue
            self.pos = end + 1
            return

    def _read_until(self, delimiters: str) -> str:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in delimiters:
            if self.text[self.pos] == "{":
                raise ICUSyntaxError("Unexpected '{' in argument", self.pos)
            self.pos += 1
        if self.pos >= len(self.text):
            raise ICUSyntaxError("Unclosed '{'", len(self.text))
        return self.text[start:self.pos]

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def _argument(self, in_plural: bool) -> None:
        start = self.pos
        self.pos += 1

        name = self._read_until(",}").strip()
        if not name:
            raise ICUSyntaxError("Empty argument", start)
        if not ARGUMENT_NAME.match(name):
            raise ICUSyntaxError(f"Invalid argument name '{name}'", start)
        self.arguments.append(name)

        if self.text[self.pos] == "}":
            self.pos += 1
            return

        self.pos += 1  # ','
        arg_type = self._read_until(",}").strip()
        if not arg_type:
            raise ICUSyntaxError(f"Missing type for argument '{name}'", start)

        if arg_type in COMPLEX_TYPES:
            if self.text[self.pos] != ",":
                raise ICUSyntaxError(f"Missing options for {arg_type} argument '{name}'", start)
            self.pos += 1
            self._options(arg_type, name, in_plural or arg_type != "select")
            return

        if self.text[self.pos] == ",":
            self.pos += 1
            self._read_until("}")
        self.pos += 1  # '}'

    def _options(self, arg_type: str, name: str, in_plural: bool) -> None:
        selectors = set()

        self._skip_whitespace()
        if arg_type != "select" and self.text.startswith("offset:", self.pos):
            match = OFFSET.match(self.text, self.pos)
            if not match:
                raise ICUSyntaxError(f"Invalid offset in '{name}'", self.pos)
            self.pos = match.end()

        while True:
            self._skip_whitespace()
            if self.pos >= len(self.text):
                raise ICUSyntaxError("Unclosed '{'", len(self.text))
            if self.text[self.pos] == "}":
                self.pos += 1
                break

            match = SELECTOR.match(self.text, self.pos)
            if not match:
                raise ICUSyntaxError(f"Invalid selector in {arg_type} argument '{name}'", self.pos)
            selector = match.group(0)
            self.pos = match.end()

            self._skip_whitespace()
            if self.text[self.pos:self.pos + 1] != "{":
                raise ICUSyntaxError(f"Missing message for selector '{selector}'", self.pos)
            self.pos += 1
            self._message(in_plural=in_plural, nested=True)
            self.pos += 1  # '}'
            selectors.add(selector)

        if "other" not in selectors:
            raise ICUSyntaxError(
                f"Missing 'other' clause in {arg_type} argument '{name}'", self.pos
            )


def validate_icu(text: str) -> ICUValidationResult:
    """Validate ICU syntax and collect argument names in order of appearance."""
    parser = _MessageParser(text)
    try:
        arguments = parser.parse()
    except ICUSyntaxError as e:
        return ICUValidationResult(valid=False, error=str(e), arguments=parser.arguments)
    return ICUValidationResult(valid=True, arguments=arguments)
