"""Compiler for expected-body placeholders.

An expected body mixes literal text with typed placeholders::

    {"id": "{{$anyGuid}}", "code": "{{$regexp '[A-Z0-9]+'}}", "at": "{{$anyDatetime iso8601}}"}

``compile_expected_body`` tokenizes the body into a list of variants (one
dataclass per placeholder kind), turns each into a regex fragment with its own
compiler function and joins them into one pattern anchored at both ends.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

from ..errors import PatternCompileError

GUID_PATTERN = (
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}"
)
TIMESTAMP_PATTERN = r"\d+"
ANY_PATTERN = r"(?s:.*?)"

DATETIME_KEYWORD_PATTERNS: Dict[str, str] = {
    "rfc1123": (
        r"[A-Z][a-z]{2}, \d{2} [A-Z][a-z]{2} \d{4} \d{2}:\d{2}:\d{2} "
        r"(?:GMT|UTC|[A-Z]{3,4}|[+-]\d{4})"
    ),
    "iso8601": r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})",
    "rfc3339": r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})",
    "timestamp": r"\d+",
}

_JAVA_LAYOUT_PATTERNS = {
    "yyyy": r"\d{4}",
    "YYYY": r"\d{4}",
    "yy": r"\d{2}",
    "MM": r"\d{2}",
    "dd": r"\d{2}",
    "DD": r"\d{2}",
    "HH": r"\d{2}",
    "hh": r"\d{2}",
    "mm": r"\d{2}",
    "ss": r"\d{2}",
    "SSS": r"\d{3}",
}
_JAVA_LAYOUT_TOKEN = re.compile(r"yyyy|YYYY|yy|MM|dd|DD|HH|hh|mm|ss|SSS|[A-Za-z]+|[^A-Za-z]+")

_STRFTIME_PATTERNS = {
    "Y": r"\d{4}",
    "y": r"\d{2}",
    "m": r"\d{2}",
    "d": r"\d{2}",
    "H": r"\d{2}",
    "I": r"\d{2}",
    "M": r"\d{2}",
    "S": r"\d{2}",
    "f": r"\d{6}",
    "j": r"\d{3}",
    "z": r"[+-]\d{4}",
    "Z": r"[A-Z]{2,5}",
    "a": r"[A-Z][a-z]{2}",
    "b": r"[A-Z][a-z]{2}",
    "p": r"(?:AM|PM)",
    "%": "%",
}

# JSON punctuation around which whitespace is optional when relaxing
_JSON_PUNCTUATION = set("{}[],:")

_TOKEN_PATTERN = re.compile(
    r"\{\{\s*\$(?:"
    r"regexp\s+(?:'(?P<single>.*?)'|\"(?P<double>.*?)\"|`(?P<backtick>.*?)`"
    r"|(?P<raw>(?:[^{}]|\{[^{}]*\})+?))"
    r"|(?P<guid>anyGuid)"
    r"|(?P<timestamp>anyTimestamp)"
    r"|anyDatetime(?P<datetime>(?:\s+(?:'[^']*'|\"[^\"]*\"|[^\s}]+))?)"
    r"|(?P<any>any)"
    r")\s*\}\}",
    re.DOTALL,
)


# ---------------------------------------------------------------------------
# Token variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class RegexPlaceholder:
    pattern: str
    source: str


@dataclass(frozen=True)
class AnyGuid:
    source: str


@dataclass(frozen=True)
class AnyTimestamp:
    source: str


@dataclass(frozen=True)
class AnyDatetime:
    format: str  # as written, quotes included; "" when missing
    source: str


@dataclass(frozen=True)
class AnyText:
    source: str


Token = Union[Literal, RegexPlaceholder, AnyGuid, AnyTimestamp, AnyDatetime, AnyText]


@dataclass
class CompiledBody:
    """Anchored pattern compiled from an expected body."""

    pattern: str
    regex: "re.Pattern[str]"
    tokens: List[Token]

    def matches(self, actual: str) -> bool:
        return self.regex.fullmatch(actual) is not None


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


def tokenize(text: str) -> List[Token]:
    """Split an expected body into literal and placeholder tokens."""
    tokens: List[Token] = []
    position = 0
    for match in _TOKEN_PATTERN.finditer(text):
        if match.start() > position:
            tokens.append(Literal(text[position:match.start()]))
        tokens.append(_token_from_match(match))
        position = match.end()
    if position < len(text):
        tokens.append(Literal(text[position:]))
    return tokens


def _token_from_match(match: "re.Match[str]") -> Token:
    source = match.group(0)
    if match.group("guid"):
        return AnyGuid(source)
    if match.group("timestamp"):
        return AnyTimestamp(source)
    if match.group("any"):
        return AnyText(source)
    if match.group("datetime") is not None:
        return AnyDatetime(match.group("datetime").strip(), source)
    for group in ("single", "double", "backtick"):
        if match.group(group) is not None:
            return RegexPlaceholder(match.group(group), source)
    return RegexPlaceholder(match.group("raw").strip(), source)


def has_validation_placeholders(text: str) -> bool:
    return _TOKEN_PATTERN.search(text) is not None


# ---------------------------------------------------------------------------
# Per-variant compilers
# ---------------------------------------------------------------------------


def _compile_literal(token: Literal, relax_whitespace: bool) -> str:
    if not relax_whitespace:
        return re.escape(token.text)
    return _compile_json_literal(token.text, in_string=False)[0]


def _compile_json_literal(text: str, in_string: bool) -> Tuple[str, bool]:
    """Relax whitespace outside JSON string literals only.

    Returns the pattern fragment and whether the text ends inside a string,
    so the quote state carries over placeholders to the next literal.
    """
    parts: List[str] = []
    escaped = False
    for char in text:
        if in_string:
            parts.append(re.escape(char))
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            parts.append(re.escape(char))
            in_string = True
        elif char.isspace():
            parts.append(r"\s*")
        elif char in _JSON_PUNCTUATION:
            parts.extend([r"\s*", re.escape(char), r"\s*"])
        else:
            parts.append(re.escape(char))
    return _squeeze_whitespace("".join(parts)), in_string


def _squeeze_whitespace(pattern: str) -> str:
    while r"\s*\s*" in pattern:
        pattern = pattern.replace(r"\s*\s*", r"\s*")
    return pattern


def _compile_regex(token: RegexPlaceholder, relax_whitespace: bool) -> str:
    try:
        re.compile(token.pattern)
    except re.error as e:
        raise PatternCompileError(
            f"failed to compile regular expression placeholder: {e}", token.pattern
        ) from e
    return f"(?:{token.pattern})"


def _compile_guid(token: AnyGuid, relax_whitespace: bool) -> str:
    return GUID_PATTERN


def _compile_timestamp(token: AnyTimestamp, relax_whitespace: bool) -> str:
    return TIMESTAMP_PATTERN


def _compile_any(token: AnyText, relax_whitespace: bool) -> str:
    return ANY_PATTERN


def _compile_datetime(token: AnyDatetime, relax_whitespace: bool) -> str:
    raw = token.format
    if not raw:
        raise PatternCompileError(
            "missing format argument for $anyDatetime placeholder", token.source
        )
    quoted = len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "'\"`"
    value = raw[1:-1] if quoted else raw

    keyword_pattern = DATETIME_KEYWORD_PATTERNS.get(value.lower())
    if keyword_pattern is not None:
        return f"(?:{keyword_pattern})"
    if quoted and value:
        layout = _layout_pattern(value)
        if layout is not None:
            return f"(?:{layout})"
    raise PatternCompileError(
        f"unsupported datetime format {raw!r} for $anyDatetime placeholder "
        f"(expected one of {', '.join(sorted(DATETIME_KEYWORD_PATTERNS))} "
        f"or a quoted layout)",
        token.source,
    )


def _layout_pattern(layout: str) -> Optional[str]:
    """Regex for a custom date layout (strftime or yyyy-MM-dd style)."""
    if "%" in layout:
        parts = []
        position = 0
        for match in re.finditer(r"%(.)", layout):
            parts.append(re.escape(layout[position:match.start()]))
            directive = _STRFTIME_PATTERNS.get(match.group(1))
            if directive is None:
                return None
            parts.append(directive)
            position = match.end()
        parts.append(re.escape(layout[position:]))
        return "".join(parts)

    parts = []
    for token in _JAVA_LAYOUT_TOKEN.findall(layout):
        if token in _JAVA_LAYOUT_PATTERNS:
            parts.append(_JAVA_LAYOUT_PATTERNS[token])
        elif token[0].isalpha():
            return None
        else:
            parts.append(re.escape(token))
    return "".join(parts)


_COMPILERS: Dict[type, Callable[..., str]] = {
    Literal: _compile_literal,
    RegexPlaceholder: _compile_regex,
    AnyGuid: _compile_guid,
    AnyTimestamp: _compile_timestamp,
    AnyDatetime: _compile_datetime,
    AnyText: _compile_any,
}


def compile_expected_body(text: str, relax_whitespace: bool = False) -> CompiledBody:
    """Compile an expected body into one anchored pattern.

    Args:
        text: Expected body, already normalized
        relax_whitespace: Treat literal whitespace as optional (JSON bodies)

    Returns:
        CompiledBody with the pattern source and compiled regex

    Raises:
        PatternCompileError: For an invalid user regex or datetime format
    """
    tokens = tokenize(text)
    fragments: List[str] = []
    in_string = False
    for token in tokens:
        if relax_whitespace and isinstance(token, Literal):
            fragment, in_string = _compile_json_literal(token.text, in_string)
        else:
            fragment = _COMPILERS[type(token)](token, relax_whitespace)
        fragments.append(fragment)
    pattern = "^" + "".join(fragments) + "$"
    try:
        regex = re.compile(pattern, re.DOTALL)
    except re.error as e:
        raise PatternCompileError(f"failed to compile expected body pattern: {e}", pattern) from e
    return CompiledBody(pattern=pattern, regex=regex, tokens=tokens)
