"""Custom exceptions for script execution and response validation."""

from typing import Iterable, Iterator, List, Optional


class RestRunError(Exception):
    """Base exception for all restrun errors."""

    pass


# ---------------------------------------------------------------------------
# Script structural errors (raised before any request is dispatched)
# ---------------------------------------------------------------------------


class ScriptParseError(RestRunError):
    """Raised when a request or expected-response script cannot be parsed.

    Attributes:
        file_path: Script the error was found in (may be empty for in-memory text)
        line_number: 1-based line number, or None when not tied to a line
    """

    def __init__(
        self,
        message: str,
        file_path: str = "",
        line_number: Optional[int] = None,
    ):
        self.file_path = file_path
        self.line_number = line_number
        location = ""
        if line_number is not None:
            location = f"line {line_number}: "
        super().__init__(f"{location}{message}")


class NoRequestsError(ScriptParseError):
    """Raised when a script holds no executable request."""

    def __init__(self, file_path: str):
        super().__init__(f"no requests found in file {file_path}", file_path=file_path)


class VariableDefinitionError(ScriptParseError):
    """Raised for a malformed in-place variable definition (missing '=' or name)."""

    pass


class VariableCycleError(RestRunError):
    """Raised when in-place variables reference each other in a loop.

    Attributes:
        chain: Variable names forming the cycle, first name repeated at the end
    """

    def __init__(self, chain: List[str]):
        self.chain = chain
        super().__init__(
            "circular in-place variable reference detected: " + " → ".join(chain)
        )


# ---------------------------------------------------------------------------
# Per-request errors (captured on the response slot)
# ---------------------------------------------------------------------------


class RequestError(RestRunError):
    """Raised when a single request cannot be built or sent."""

    pass


class ExternalBodyError(RequestError):
    """Raised when an external request body file cannot be read or decoded."""

    pass


class MultipartBodyError(RequestError):
    """Raised when a multipart body with file parts cannot be rebuilt."""

    pass


class TransportError(RequestError):
    """Raised when the HTTP transport fails (connection refused, bad scheme, TLS)."""

    pass


class RequestCancelledError(RequestError):
    """Raised when a request is aborted by the cancellation signal."""

    pass


# ---------------------------------------------------------------------------
# Validation errors
# ---------------------------------------------------------------------------


class PatternCompileError(RestRunError):
    """Raised when an expected body cannot be compiled into a pattern.

    Attributes:
        pattern: The offending pattern text
    """

    def __init__(self, message: str, pattern: str):
        self.pattern = pattern
        super().__init__(f"{message} (pattern: {pattern})")


class MismatchError(RestRunError):
    """One difference found while validating a response.

    Attributes:
        index: 1-based response number
        kind: Mismatch category (status_code, status, header, body, compile, count)
    """

    def __init__(self, message: str, index: Optional[int] = None, kind: str = ""):
        self.index = index
        self.kind = kind
        super().__init__(message)


class ConfigError(RestRunError):
    """Raised when a run configuration or environment file is invalid."""

    pass


# ---------------------------------------------------------------------------
# Aggregate error
# ---------------------------------------------------------------------------


class MultiError(RestRunError):
    """Ordered collection of independent failures.

    Nested ``MultiError`` instances are flattened on insertion, so ``errors``
    is always a flat list of leaf exceptions.
    """

    def __init__(self, errors: Optional[Iterable[BaseException]] = None):
        self.errors: List[BaseException] = []
        super().__init__()
        if errors:
            self.extend(errors)

    def append(self, error: BaseException) -> None:
        if isinstance(error, MultiError):
            self.errors.extend(error.errors)
        else:
            self.errors.append(error)

    def extend(self, errors: Iterable[BaseException]) -> None:
        for error in errors:
            self.append(error)

    @property
    def count(self) -> int:
        return len(self.errors)

    def error_or_none(self) -> Optional["MultiError"]:
        """Return self when it holds at least one error, otherwise None."""
        return self if self.errors else None

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self) -> Iterator[BaseException]:
        return iter(self.errors)

    def __bool__(self) -> bool:
        # An exception instance is truthy; keep that regardless of size.
        return True

    def __str__(self) -> str:
        if len(self.errors) == 1:
            return f"1 error occurred:\n\t* {self.errors[0]}"
        lines = [f"{len(self.errors)} errors occurred:"]
        for error in self.errors:
            lines.append(f"\t* {error}")
        return "\n".join(lines)


class ExecutionError(MultiError):
    """Aggregate of per-request failures from one script execution."""

    pass


class ValidationError(MultiError):
    """Aggregate of every mismatch found while validating responses."""

    pass
