"""Build transport-ready requests from script records."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import urlencode

import httpx

from .config import ClientConfig
from .errors import ExternalBodyError, MultipartBodyError
from .models import HeaderList, PreparedRequest, Request
from .variables import RequestScopeContext, ScopeChain

logger = logging.getLogger(__name__)

FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART_FORM_DATA = "multipart/form-data"

_BOUNDARY = re.compile(r"boundary=([^;]+)", re.IGNORECASE)
_PART_NAME = re.compile(r'\bname="([^"]+)"')
_PART_FILENAME = re.compile(r'\bfilename="([^"]+)"')
_PART_HEADER_PREFIXES = (
    "Content-Disposition:",
    "Content-Type:",
    "Content-Length:",
    "Content-Encoding:",
)

# Encoding names accepted after "<@" mapped to Python codec names
ENCODINGS = {
    "utf-8": "utf-8",
    "utf8": "utf-8",
    "latin1": "latin-1",
    "iso-8859-1": "latin-1",
    "cp1252": "cp1252",
    "windows-1252": "cp1252",
    "ascii": "ascii",
}


def resolve_body_path(reference: str, base_dir: Path) -> Path:
    path = Path(reference).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def load_external_body(
    reference: str, base_dir: Path, encoding: Optional[str] = None
) -> str:
    """Read an external body file as text for ``<@`` references.

    Raises:
        ExternalBodyError: If the file is missing, unreadable or not decodable
    """
    path = resolve_body_path(reference, base_dir)
    codec = ENCODINGS.get((encoding or "utf-8").lower())
    if codec is None:
        raise ExternalBodyError(f"unsupported encoding '{encoding}' for external body {path}")
    try:
        return path.read_bytes().decode(codec)
    except OSError as e:
        raise ExternalBodyError(f"failed to read external body file {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ExternalBodyError(
            f"failed to decode external body file {path} as {codec}: {e}"
        ) from e


def load_static_body(reference: str, base_dir: Path) -> bytes:
    """Read an external body file verbatim for ``<`` references."""
    path = resolve_body_path(reference, base_dir)
    try:
        return path.read_bytes()
    except OSError as e:
        raise ExternalBodyError(f"failed to read external body file {path}: {e}") from e


def join_base_url(base_url: Optional[str], url: str) -> str:
    if not base_url or "://" in url:
        return url
    return base_url.rstrip("/") + "/" + url.lstrip("/")


def header_value(headers: HeaderList, name: str) -> str:
    lowered = name.lower()
    for key, value in headers:
        if key.lower() == lowered:
            return value
    return ""


# ---------------------------------------------------------------------------
# Form bodies
# ---------------------------------------------------------------------------


def encode_form_body(text: str) -> str:
    """Re-encode an ``application/x-www-form-urlencoded`` body.

    Pairs are split on ``&`` (body lines are joined the same way) and on the
    first ``=``. Keys and values are taken literally, so ``a+b`` goes out as
    ``a%2Bb``. Keys are sorted; values of one key keep their order.
    """
    pairs: List[Tuple[str, str]] = []
    for line in text.splitlines():
        for segment in line.strip().split("&"):
            if not segment:
                continue
            key, _, value = segment.partition("=")
            pairs.append((key, value))
    pairs.sort(key=lambda pair: pair[0])
    return urlencode(pairs)


@dataclass
class MultipartPart:
    """One section of a ``multipart/form-data`` body as written in a script."""

    name: str
    filename: str = ""
    content_type: str = ""
    content: str = ""
    file_reference: bool = False  # content is a "< path" reference


def has_multipart_file_parts(content_type: str, body: str) -> bool:
    return MULTIPART_FORM_DATA in content_type.lower() and "< " in body


def parse_multipart_body(body: str, boundary: str) -> List[MultipartPart]:
    """Split a multipart body into parts; sections without a name are skipped."""
    parts: List[MultipartPart] = []
    for section in body.split("--" + boundary):
        section = section.strip()
        if not section or section == "--":
            continue
        part = _parse_multipart_section(section)
        if part is not None:
            parts.append(part)
    return parts


def _parse_multipart_section(section: str) -> Optional[MultipartPart]:
    lines = section.splitlines()
    blank = next((i for i, line in enumerate(lines) if not line.strip()), None)
    if blank is not None:
        header_lines, content_lines = lines[:blank], lines[blank + 1:]
    else:
        # No separator line: headers run until the first non-header line
        split_at = next(
            (
                i
                for i, line in enumerate(lines)
                if ":" not in line or not line.strip().startswith(_PART_HEADER_PREFIXES)
            ),
            len(lines),
        )
        header_lines, content_lines = lines[:split_at], lines[split_at:]

    part = MultipartPart(name="")
    for line in header_lines:
        if "Content-Disposition:" in line:
            name = _PART_NAME.search(line)
            filename = _PART_FILENAME.search(line)
            part.name = name.group(1) if name else ""
            part.filename = filename.group(1) if filename else ""
        elif "Content-Type:" in line:
            part.content_type = line.split(":", 1)[1].strip()
    if not part.name:
        return None

    content = "\n".join(content_lines).strip()
    if content.startswith("< "):
        part.file_reference = True
        part.content = content[2:].strip()
    else:
        part.content = content
    return part


def _multipart_file_value(part: MultipartPart, base_dir: Path) -> Tuple:
    if not part.file_reference:
        return (None, part.content.encode("utf-8"))
    content = load_static_body(part.content, base_dir)
    if part.filename:
        return (part.filename, content, part.content_type or None)
    if part.content_type:
        return (Path(part.content).name, content, part.content_type)
    return (None, content)


def build_multipart_body(body: str, content_type: str, base_dir: Path) -> bytes:
    """Rebuild a multipart body, replacing ``< path`` parts with file content.

    The boundary of the request's Content-Type header is kept so the header
    stays valid.

    Raises:
        MultipartBodyError: No boundary in the header or no usable part
        ExternalBodyError: A referenced file cannot be read
    """
    match = _BOUNDARY.search(content_type)
    if match is None:
        raise MultipartBodyError(f"no boundary found in Content-Type header: {content_type}")
    boundary = match.group(1).strip().strip('"')

    parts = parse_multipart_body(body, boundary)
    if not parts:
        raise MultipartBodyError("no valid multipart sections found in body")

    files = [(part.name, _multipart_file_value(part, base_dir)) for part in parts]
    encoder = httpx.Request(
        "POST",
        "http://localhost/",
        headers={"Content-Type": f"{MULTIPART_FORM_DATA}; boundary={boundary}"},
        files=files,
    )
    return encoder.read()


class RequestAssembler:
    """Substitute variables into one request record.

    URL, headers and body are substituted independently but share the
    request's ``RequestScopeContext``.
    """

    def __init__(
        self,
        chain: ScopeChain,
        config: Optional[ClientConfig] = None,
        base_dir: Optional[Path] = None,
    ) -> None:
        self.chain = chain
        self.config = config or ClientConfig()
        self.base_dir = base_dir or Path.cwd()

    def assemble(
        self, request: Request, context: Optional[RequestScopeContext] = None
    ) -> PreparedRequest:
        """Resolve placeholders and apply client defaults.

        Raises:
            ExternalBodyError: If an external body cannot be loaded
            MultipartBodyError: If a multipart body with file parts is malformed
        """
        if context is None:
            context = RequestScopeContext(label=request.label)
        substitute = self.chain.substitute

        url = join_base_url(self.config.base_url, substitute(request.raw_url, context).strip())

        headers: HeaderList = [
            (key, substitute(value, context)) for key, value in request.headers
        ]
        present = {key.lower() for key, _ in headers}
        for key, value in self.config.default_headers.items():
            if key.lower() not in present:
                headers.append((key, substitute(value, context)))

        body = self._body(request, headers, context)

        timeout = self.config.timeout
        if request.timeout_ms is not None:
            timeout = request.timeout_ms / 1000.0

        prepared = PreparedRequest(
            method=request.method,
            url=url,
            headers=headers,
            body=body,
            no_redirect=request.no_redirect or not self.config.follow_redirects,
            no_cookie_jar=request.no_cookie_jar or not self.config.cookie_jar,
            timeout=timeout,
            source=request,
        )
        logger.debug("Assembled %s %s", prepared.method, prepared.url)
        return prepared

    def _body(
        self, request: Request, headers: HeaderList, context: RequestScopeContext
    ) -> Optional[bytes]:
        if request.external_body_path is not None:
            reference = self.chain.substitute(request.external_body_path, context)
            if not request.external_body_with_variables:
                return load_static_body(reference, self.base_dir)
            text = load_external_body(reference, self.base_dir, request.external_body_encoding)
            return self.chain.substitute(text, context).encode("utf-8")
        if not request.raw_body:
            return None

        text = self.chain.substitute(request.raw_body, context)
        content_type = header_value(headers, "Content-Type")
        if FORM_URLENCODED in content_type.lower():
            return encode_form_body(text).encode("ascii") or None
        if has_multipart_file_parts(content_type, text):
            logger.debug("Rebuilding multipart body with file parts")
            return build_multipart_body(text, content_type, self.base_dir)
        return text.encode("utf-8")
