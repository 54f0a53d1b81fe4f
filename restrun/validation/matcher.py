"""Compare actual responses against expected ones."""

from __future__ import annotations

import difflib
import json
import logging
from typing import Any, List, Optional, Sequence

from ..errors import MismatchError, PatternCompileError, ValidationError
from ..models import ExpectedResponse, MatchResult, Response
from .placeholders import compile_expected_body, has_validation_placeholders

logger = logging.getLogger(__name__)

BODY_PATTERN_FAILED = "body mismatch (regexp/placeholder evaluation failed)"


def normalize_body(text: str) -> str:
    """CRLF to LF, surrounding whitespace trimmed."""
    return text.replace("\r\n", "\n").strip()


def _leading_numeral(status: str) -> str:
    parts = status.split(None, 1)
    return parts[0] if parts else ""


def _parse_json(text: str) -> Any:
    """Parsed JSON document, or a sentinel when the text is not JSON."""
    if not text:
        return _NOT_JSON
    try:
        return json.loads(text)
    except ValueError:
        return _NOT_JSON


_NOT_JSON = object()


def json_equal(left: Any, right: Any) -> bool:
    """Structural JSON equality that keeps booleans and numbers apart."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    if isinstance(left, dict):
        if left.keys() != right.keys():
            return False
        return all(json_equal(left[key], right[key]) for key in left)
    if isinstance(left, list):
        if len(left) != len(right):
            return False
        return all(json_equal(a, b) for a, b in zip(left, right))
    return left == right


def unified_diff(expected: str, actual: str) -> str:
    lines = difflib.unified_diff(
        expected.splitlines(keepends=True),
        actual.splitlines(keepends=True),
        fromfile="Expected Body",
        tofile="Actual Body",
        n=3,
    )
    return "".join(line if line.endswith("\n") else line + "\n" for line in lines)


# ---------------------------------------------------------------------------
# Dimension matchers
# ---------------------------------------------------------------------------


def match_status(expected: ExpectedResponse, actual: Response, result: MatchResult) -> None:
    """Check status code and status text; one mismatch per failing dimension."""
    if expected.status_code is not None and actual.status_code != expected.status_code:
        result.add(
            "status_code",
            f"status code mismatch: expected {expected.status_code}, got {actual.status_code}",
        )

    if not expected.status:
        return
    actual_status = actual.status or str(actual.status_code)
    if expected.has_reason_phrase:
        matches = " ".join(expected.status.split()) == " ".join(actual_status.split())
    else:
        matches = _leading_numeral(expected.status) == _leading_numeral(actual_status)
    if not matches:
        result.add(
            "status",
            f"status string mismatch: expected '{expected.status}', got '{actual_status}'",
        )


def match_headers(expected: ExpectedResponse, actual: Response, result: MatchResult) -> None:
    """Each expected header needs at least one of its values among the actual ones.

    Keys compare case-insensitively and extra actual headers are ignored.
    """
    for key, expected_values in expected.header_map().items():
        actual_values = actual.header_values(key)
        if not actual_values:
            result.add("header", f"expected header '{key}' not found")
            continue

        candidates = set(actual_values)
        for value in actual_values:
            candidates.update(item.strip() for item in value.split(","))
        if any(value in candidates for value in expected_values):
            continue

        missing = ", ".join(f"'{value}'" for value in expected_values)
        result.add(
            "header",
            f"expected value {missing} for header '{key}' not found in actual values {actual_values}",
        )


def match_body(expected: ExpectedResponse, actual: Response, result: MatchResult) -> None:
    if expected.body is None:
        return
    expected_body = normalize_body(expected.body)
    actual_body = normalize_body(actual.text)
    actual_json = _parse_json(actual_body)

    if has_validation_placeholders(expected_body):
        try:
            compiled = compile_expected_body(
                expected_body, relax_whitespace=actual_json is not _NOT_JSON
            )
        except PatternCompileError as e:
            result.add("compile", f"failed to compile expected body: {e}")
            return
        if not compiled.matches(actual_body):
            logger.debug("Body did not match pattern %s", compiled.pattern)
            result.add(
                "body",
                f"{BODY_PATTERN_FAILED}\nCompiled Regex: {compiled.pattern}\n"
                f"Actual Body: {actual_body}",
            )
        return

    expected_json = _parse_json(expected_body)
    if expected_json is not _NOT_JSON and actual_json is not _NOT_JSON:
        if not json_equal(expected_json, actual_json):
            diff = unified_diff(
                json.dumps(expected_json, indent=2, sort_keys=True),
                json.dumps(actual_json, indent=2, sort_keys=True),
            )
            result.add("body", f"body mismatch (JSON structure differs):\n{diff}")
        return

    if expected_body != actual_body:
        result.add("body", f"body mismatch:\n{unified_diff(expected_body, actual_body)}")


def match_response(expected: ExpectedResponse, actual: Response) -> MatchResult:
    """Compare one actual response with one expected response.

    Status, headers and body are all checked; mismatches accumulate in order.
    """
    result = MatchResult()
    match_status(expected, actual, result)
    match_headers(expected, actual, result)
    match_body(expected, actual, result)
    return result


def validate_responses(
    expected: Sequence[ExpectedResponse],
    actual: Sequence[Optional[Response]],
    source: str = "",
) -> Optional[ValidationError]:
    """Validate responses pairwise and aggregate every mismatch.

    Args:
        expected: Expected responses in document order
        actual: Actual responses; None entries are not counted
        source: Name of the expected-response document for messages

    Returns:
        ValidationError with one entry per mismatch, or None when all pass
    """
    errors = ValidationError()
    responses: List[Response] = [response for response in actual if response is not None]
    where = f" ('{source}')" if source else ""

    if len(responses) != len(expected):
        errors.append(
            MismatchError(
                f"mismatch in number of responses: got {len(responses)} actual, "
                f"but expected {len(expected)}" + (f" from file '{source}'" if source else ""),
                kind="count",
            )
        )
        return errors

    for index, (exp, response) in enumerate(zip(expected, responses), start=1):
        prefix = f"validation for response #{index}{where}: "
        if response.error is not None:
            errors.append(
                MismatchError(f"{prefix}request failed: {response.error}", index, "request")
            )
            continue
        for mismatch in match_response(exp, response):
            errors.append(MismatchError(prefix + mismatch.message, index, mismatch.kind))

    return errors.error_or_none()
