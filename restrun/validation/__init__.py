"""Expected-response validation: placeholder compiler and response matcher."""

from .matcher import (
    BODY_PATTERN_FAILED,
    json_equal,
    match_body,
    match_headers,
    match_response,
    match_status,
    normalize_body,
    validate_responses,
)
from .placeholders import (
    AnyDatetime,
    AnyGuid,
    AnyText,
    AnyTimestamp,
    CompiledBody,
    Literal,
    RegexPlaceholder,
    compile_expected_body,
    has_validation_placeholders,
    tokenize,
)

__all__ = [
    # Matcher
    "BODY_PATTERN_FAILED",
    "json_equal",
    "match_body",
    "match_headers",
    "match_response",
    "match_status",
    "normalize_body",
    "validate_responses",
    # Placeholders
    "AnyDatetime",
    "AnyGuid",
    "AnyText",
    "AnyTimestamp",
    "CompiledBody",
    "Literal",
    "RegexPlaceholder",
    "compile_expected_body",
    "has_validation_placeholders",
    "tokenize",
]
