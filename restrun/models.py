"""Dataclasses shared by the parser, runner and validator."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

# Header pairs keep duplicates and source order
HeaderList = List[Tuple[str, str]]


@dataclass
class Request:
    """A single request record as written in a script, before substitution."""

    method: str
    raw_url: str
    headers: HeaderList = field(default_factory=list)
    raw_body: str = ""
    name: str = ""
    http_version: str = ""
    # External body: "< path" or "<@[encoding] path"
    external_body_path: Optional[str] = None
    external_body_encoding: Optional[str] = None
    external_body_with_variables: bool = False
    # Directives
    no_redirect: bool = False
    no_cookie_jar: bool = False
    timeout_ms: Optional[int] = None
    # Position
    index: int = 0  # 0-based position among executable records
    line_number: int = 0
    file_path: str = ""

    @property
    def label(self) -> str:
        """Human label used in error messages."""
        return f"{self.method} {self.raw_url}"


@dataclass
class ParsedFile:
    """Parsed request script: ordered requests plus raw in-place definitions."""

    path: Path
    requests: List[Request] = field(default_factory=list)
    variables: Dict[str, str] = field(default_factory=dict)


@dataclass
class PreparedRequest:
    """A request with every placeholder substituted, ready for the transport."""

    method: str
    url: str
    headers: HeaderList = field(default_factory=list)
    body: Optional[bytes] = None
    no_redirect: bool = False
    no_cookie_jar: bool = False
    timeout: Optional[float] = None  # seconds
    source: Optional[Request] = None


@dataclass
class Response:
    """Outcome of one request slot.

    A failed slot carries only ``error`` (and ``request`` when it is known).
    """

    request: Optional[Request] = None
    prepared: Optional[PreparedRequest] = None
    status_code: int = 0
    status: str = ""  # e.g. "200 OK"
    http_version: str = ""
    headers: HeaderList = field(default_factory=list)
    body: bytes = b""
    duration: float = 0.0
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def header_values(self, name: str) -> List[str]:
        """All values of a header, matched case-insensitively."""
        lowered = name.lower()
        return [value for key, value in self.headers if key.lower() == lowered]


@dataclass
class ExpectedResponse:
    """One expected response from an ``.hresp`` document."""

    status_code: Optional[int] = None
    status: Optional[str] = None  # "200" or "200 OK", as written
    headers: HeaderList = field(default_factory=list)
    body: Optional[str] = None
    line_number: int = 0

    @property
    def has_reason_phrase(self) -> bool:
        return bool(self.status) and len(self.status.split(None, 1)) > 1

    def header_map(self) -> Dict[str, List[str]]:
        """Expected headers grouped by lower-cased key, in first-seen order."""
        grouped: Dict[str, List[str]] = {}
        for key, value in self.headers:
            grouped.setdefault(key.lower(), []).append(value)
        return grouped


@dataclass
class ExpectedDocument:
    """Parsed expected-response script: responses plus its own defines."""

    responses: List[ExpectedResponse] = field(default_factory=list)
    defines: Dict[str, str] = field(default_factory=dict)
    file_path: str = ""


@dataclass
class Mismatch:
    """A single difference between an expected and an actual response."""

    kind: str  # status_code, status, header, body, compile
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class MatchResult:
    """Ordered mismatches for one response; empty means pass."""

    mismatches: List[Mismatch] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.mismatches

    def add(self, kind: str, message: str) -> None:
        self.mismatches.append(Mismatch(kind, message))

    def __len__(self) -> int:
        return len(self.mismatches)

    def __iter__(self):
        return iter(self.mismatches)


@dataclass
class ExecutionResult:
    """Responses of one script execution plus the aggregate error, if any."""

    responses: List[Response] = field(default_factory=list)
    error: Optional[BaseException] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None
