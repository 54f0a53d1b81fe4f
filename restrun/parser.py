"""Parsers for request scripts (.http/.rest) and expected responses (.hresp)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .errors import ScriptParseError, VariableDefinitionError
from .models import ExpectedDocument, ExpectedResponse, ParsedFile, Request

logger = logging.getLogger(__name__)

REQUEST_SEPARATOR = "###"

HTTP_METHODS = frozenset(
    {"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS", "TRACE", "CONNECT"}
)

SUPPORTED_ENCODINGS = frozenset(
    {"utf-8", "utf8", "latin1", "iso-8859-1", "cp1252", "windows-1252", "ascii"}
)


def _comment_content(stripped: str) -> Optional[str]:
    """Text after a leading ``#`` or ``//``; None when the line is not a comment."""
    if stripped.startswith("//"):
        return stripped[2:].strip()
    if stripped.startswith("#"):
        return stripped.lstrip("#").strip()
    return None


def parse_variable_definition(
    stripped: str, line_number: int = 0, file_path: str = ""
) -> Tuple[str, str]:
    """Split ``@name = value`` into its name and raw expression.

    Raises:
        VariableDefinitionError: When '=' is missing or the name is empty
    """
    body = stripped[1:]
    if "=" not in body:
        raise VariableDefinitionError(
            f"malformed in-place variable definition, missing '=': {stripped}",
            file_path=file_path,
            line_number=line_number,
        )
    name, value = body.split("=", 1)
    name = name.strip()
    if not name:
        raise VariableDefinitionError(
            f"malformed in-place variable definition, variable name cannot be empty: {stripped}",
            file_path=file_path,
            line_number=line_number,
        )
    return name, value.strip()


class _RequestScriptParser:
    """Line-oriented state machine over one request script.

    States: ``idle`` (between requests), ``headers`` (after the request line)
    and ``body`` (after the first blank line or a non-header line).
    """

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        self.requests: List[Request] = []
        self.variables: Dict[str, str] = {}
        self.current: Optional[Request] = None
        self.body_lines: List[str] = []
        self.state = "idle"
        self._pending: Dict[str, object] = {}

    # -- entry point -------------------------------------------------------

    def parse(self, text: str) -> ParsedFile:
        for line_number, line in enumerate(text.splitlines(), start=1):
            self._feed(line, line_number)
        self._finalize()
        return ParsedFile(
            path=Path(self.file_path) if self.file_path else Path("."),
            requests=self.requests,
            variables=self.variables,
        )

    # -- line dispatch -----------------------------------------------------

    def _feed(self, line: str, line_number: int) -> None:
        stripped = line.strip()

        if stripped.startswith(REQUEST_SEPARATOR):
            self._finalize()
            name = stripped[len(REQUEST_SEPARATOR):].strip().lstrip("#").strip()
            if name:
                self._pending["name"] = name
            return

        if self.state == "body":
            self._feed_body(line, stripped, line_number)
            return

        comment = _comment_content(stripped)
        if comment is not None:
            self._apply_directive(comment, line_number)
            return

        if self.state == "idle":
            if not stripped:
                return
            if stripped.startswith("@"):
                name, value = parse_variable_definition(stripped, line_number, self.file_path)
                self.variables[name] = value
                return
            self._start_request(stripped, line_number)
            return

        # headers
        if not stripped:
            self.state = "body"
            return
        if not self.current.headers and stripped[0] in "?&":
            self.current.raw_url += stripped
            return
        if ":" in stripped and stripped[0] not in "<{[":
            key, value = stripped.split(":", 1)
            self.current.headers.append((key.strip(), value.strip()))
            return
        self.state = "body"
        self._feed_body(line, stripped, line_number)

    def _feed_body(self, line: str, stripped: str, line_number: int) -> None:
        if not self.body_lines and stripped.startswith("<") and (
            stripped.startswith("< ") or stripped.startswith("<@")
        ):
            self._set_external_body(stripped)
            return
        self.body_lines.append(line)

    # -- request lifecycle -------------------------------------------------

    def _start_request(self, stripped: str, line_number: int) -> None:
        parts = stripped.split(None, 1)
        method = parts[0].upper()
        if method in HTTP_METHODS and len(parts) == 2:
            target = parts[1].strip()
        elif method in HTTP_METHODS:
            raise ScriptParseError(
                f"request line has no URL: {stripped}",
                file_path=self.file_path,
                line_number=line_number,
            )
        elif stripped.startswith(("http://", "https://", "{{")):
            method, target = "GET", stripped
        else:
            logger.warning(
                "Ignoring line %d in %s: not a request line: %s",
                line_number,
                self.file_path or "<text>",
                stripped,
            )
            return

        http_version = ""
        url_part, _, last = target.rpartition(" ")
        if url_part and last.upper().startswith("HTTP/"):
            target, http_version = url_part.strip(), last

        self.current = Request(
            method=method,
            raw_url=target,
            http_version=http_version,
            line_number=line_number,
            file_path=self.file_path,
            name=str(self._pending.pop("name", "")),
            no_redirect=bool(self._pending.pop("no_redirect", False)),
            no_cookie_jar=bool(self._pending.pop("no_cookie_jar", False)),
            timeout_ms=self._pending.pop("timeout_ms", None),  # type: ignore[arg-type]
        )
        self.body_lines = []
        self.state = "headers"

    def _apply_directive(self, comment: str, line_number: int) -> None:
        target: Union[Request, Dict[str, object]]
        target = self.current if self.current is not None else self._pending

        def assign(key: str, value: object) -> None:
            if isinstance(target, Request):
                setattr(target, key, value)
            else:
                target[key] = value

        if comment.startswith("@name "):
            name = comment[len("@name "):].strip()
            if name:
                assign("name", name)
        elif comment.startswith("@no-redirect"):
            assign("no_redirect", True)
        elif comment.startswith("@no-cookie-jar"):
            assign("no_cookie_jar", True)
        elif comment.startswith("@timeout"):
            value = comment[len("@timeout"):].strip()
            try:
                timeout_ms = int(value)
            except ValueError:
                timeout_ms = 0
            if timeout_ms <= 0:
                logger.warning(
                    "Invalid @timeout value %r on line %d of %s",
                    value,
                    line_number,
                    self.file_path or "<text>",
                )
                return
            assign("timeout_ms", timeout_ms)

    def _set_external_body(self, stripped: str) -> None:
        content = stripped[1:].strip()
        if content.startswith("@"):
            self.current.external_body_with_variables = True
            parts = content[1:].split()
            if len(parts) >= 2 and parts[0].lower() in SUPPORTED_ENCODINGS:
                self.current.external_body_encoding = parts[0].lower()
                self.current.external_body_path = " ".join(parts[1:])
            else:
                self.current.external_body_path = content[1:].strip()
        else:
            self.current.external_body_path = content

    def _finalize(self) -> None:
        if self.current is not None and self.current.method and self.current.raw_url:
            if self.current.external_body_path is None:
                self.current.raw_body = "\n".join(self.body_lines).rstrip()
            self.current.index = len(self.requests)
            self.requests.append(self.current)
        self.current = None
        self.body_lines = []
        self.state = "idle"


def parse_requests(text: str, file_path: str = "") -> ParsedFile:
    """Parse request script text into request records and in-place variables.

    Raises:
        VariableDefinitionError: For a malformed ``@name = value`` line
    """
    return _RequestScriptParser(file_path).parse(text)


def parse_request_file(path: Union[str, Path]) -> ParsedFile:
    """Read and parse a request script from disk."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ScriptParseError(f"failed to read file {path}: {e}", file_path=str(path)) from e
    parsed = parse_requests(text, str(path))
    parsed.path = path
    return parsed


# ---------------------------------------------------------------------------
# Expected responses
# ---------------------------------------------------------------------------


def extract_defines(text: str) -> Tuple[Dict[str, str], str]:
    """Pull ``@name = value`` lines out of an expected-response document.

    Malformed define lines are dropped.

    Returns:
        (defines, remaining text)
    """
    defines: Dict[str, str] = {}
    kept: List[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped.startswith("@"):
            kept.append(line)
            continue
        try:
            name, value = parse_variable_definition(stripped)
        except VariableDefinitionError:
            logger.debug("Dropping malformed define line: %s", stripped)
            continue
        defines[name] = value
    return defines, "\n".join(kept)


def _parse_status_line(stripped: str, line_number: int, file_path: str) -> Tuple[int, str]:
    tokens = stripped.split()
    if tokens and tokens[0].upper().startswith("HTTP/"):
        tokens = tokens[1:]
    if not tokens:
        raise ScriptParseError(
            f"invalid status line: '{stripped}'. Expected [HTTP_VERSION] STATUS_CODE [STATUS_TEXT]",
            file_path=file_path,
            line_number=line_number,
        )
    try:
        code = int(tokens[0])
    except ValueError:
        raise ScriptParseError(
            f"invalid status code '{tokens[0]}' in status line '{stripped}'",
            file_path=file_path,
            line_number=line_number,
        ) from None
    return code, " ".join(tokens)


def parse_expected_responses(text: str, file_path: str = "") -> ExpectedDocument:
    """Parse an expected-response document.

    Each response is a status line, optional ``Key: Value`` headers, a blank
    line and an optional body. Responses are separated by ``###``; ``#`` lines
    are comments and ``@name = value`` lines are document-scoped defines.

    Raises:
        ScriptParseError: For an invalid status or header line
    """
    document = ExpectedDocument(file_path=file_path)
    current = ExpectedResponse()
    body_lines: List[str] = []
    in_body = False

    def flush() -> None:
        nonlocal current, body_lines, in_body
        if current.status_code is not None or current.headers or body_lines:
            current.body = "\n".join(body_lines) if body_lines else None
            document.responses.append(current)
        current = ExpectedResponse()
        body_lines = []
        in_body = False

    for line_number, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()

        if stripped.startswith(REQUEST_SEPARATOR):
            flush()
            continue
        if not in_body and stripped.startswith("#"):
            continue
        if not in_body and stripped.startswith("@"):
            try:
                name, value = parse_variable_definition(stripped, line_number, file_path)
            except VariableDefinitionError:
                continue
            document.defines[name] = value
            continue

        if in_body:
            body_lines.append(line)
            continue
        if not stripped:
            if current.status_code is not None:
                in_body = True
            continue
        if current.status_code is None:
            current.status_code, current.status = _parse_status_line(
                stripped, line_number, file_path
            )
            current.line_number = line_number
            continue
        if ":" not in stripped:
            raise ScriptParseError(
                f"invalid header line: '{stripped}'. Expected 'Key: Value'",
                file_path=file_path,
                line_number=line_number,
            )
        key, value = stripped.split(":", 1)
        current.headers.append((key.strip(), value.strip()))

    flush()
    return document


def parse_expected_file(path: Union[str, Path]) -> ExpectedDocument:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ScriptParseError(f"failed to read file {path}: {e}", file_path=str(path)) from e
    return parse_expected_responses(text, str(path))
