"""Script runner that executes requests in order and validates responses."""

from __future__ import annotations

import logging
import os
import random
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Optional, Sequence, Union

from .assembler import RequestAssembler
from .config import ClientConfig
from .environment import load_environment
from .errors import (
    ExecutionError,
    MismatchError,
    NoRequestsError,
    RequestCancelledError,
    RequestError,
    ScriptParseError,
    ValidationError,
    VariableCycleError,
)
from .models import ExecutionResult, ParsedFile, PreparedRequest, Request, Response
from .parser import extract_defines, parse_expected_responses, parse_request_file
from .transport import HttpxTransport
from .validation import validate_responses as match_all
from .variables import RequestScopeContext, ScopeChain

if TYPE_CHECKING:
    from .display import Display

logger = logging.getLogger(__name__)


class ScriptRunner:
    """Executes request scripts sequentially against one transport.

    Requests run strictly in document order. A failing request is recorded
    on its slot and the run continues; every failure ends up in one
    ``ExecutionError`` on the result.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[HttpxTransport] = None,
        display: Optional["Display"] = None,
        rng: Optional[random.Random] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.transport = transport or HttpxTransport(
            verify=self.config.verify_tls, timeout=self.config.timeout
        )
        self.rng = rng or random.Random()
        self.environ = os.environ if environ is None else environ
        self._display = display

    # -- execution ---------------------------------------------------------

    def build_chain(self, parsed: ParsedFile) -> ScopeChain:
        """Scope chain for one file execution.

        Raises:
            VariableCycleError: If in-place variables reference each other in a loop
        """
        environment = load_environment(parsed.path.parent, self.config.environment)
        chain = ScopeChain(
            programmatic=self.config.vars,
            in_place=parsed.variables,
            private_env=environment.private,
            public_env=environment.public,
            environ=self.environ,
            dotenv=environment.dotenv,
            rng=self.rng,
        )
        chain.validate()
        return chain

    def execute_file(
        self,
        path: Union[str, Path],
        cancel: Optional[threading.Event] = None,
    ) -> ExecutionResult:
        """Parse and execute every request of a script file.

        Args:
            path: Request script (.http / .rest)
            cancel: Optional event; once set, remaining requests are skipped

        Returns:
            ExecutionResult with one response slot per executed request

        Raises:
            ScriptParseError: Malformed script or in-place definition
            NoRequestsError: The script holds no request
            VariableCycleError: In-place variables form a cycle
        """
        parsed = parse_request_file(path)
        return self.execute_parsed(parsed, cancel=cancel)

    def execute_parsed(
        self,
        parsed: ParsedFile,
        cancel: Optional[threading.Event] = None,
    ) -> ExecutionResult:
        if not parsed.requests:
            raise NoRequestsError(str(parsed.path))

        chain = self.build_chain(parsed)
        assembler = RequestAssembler(chain, self.config, parsed.path.parent)
        result = ExecutionResult()
        errors = ExecutionError()
        total = len(parsed.requests)
        start_time = time.time()

        if self._display:
            self._display.print_header(parsed, self.config)

        for request in parsed.requests:
            if cancel is not None and cancel.is_set():
                result.cancelled = True
                break
            if self._display:
                self._display.print_request_start(request, total)

            try:
                response = self._execute_one(assembler, request, cancel)
            except RequestCancelledError:
                logger.info("Execution cancelled before request %d", request.index + 1)
                result.cancelled = True
                break
            except (RequestError, VariableCycleError) as e:
                response = Response(request=request, error=e)
                errors.append(
                    RequestError(
                        f"request {request.index + 1} ({request.method} {request.raw_url}) "
                        f"processing resulted in error: {e}"
                    )
                )

            result.responses.append(response)
            if self._display:
                self._display.print_request_result(response)

        result.error = errors.error_or_none()
        if self._display:
            self._display.print_summary(result, time.time() - start_time)
        return result

    def _execute_one(
        self,
        assembler: RequestAssembler,
        request: Request,
        cancel: Optional[threading.Event],
    ) -> Response:
        context = RequestScopeContext(label=request.label)
        prepared: PreparedRequest = assembler.assemble(request, context)
        response = self.transport.send(prepared, cancel)
        response.request = request
        return response

    # -- validation --------------------------------------------------------

    def validate_responses(
        self,
        expected_path: Union[str, Path],
        responses: Sequence[Optional[Response]],
    ) -> Optional[ValidationError]:
        """Validate responses against an expected-response file.

        ``@name = value`` defines in the file, programmatic variables and OS
        environment values are substituted into the expected text before it
        is parsed. Parse failures are reported with a count mismatch.

        Returns:
            ValidationError aggregating every problem, or None when all pass
        """
        path = Path(expected_path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            return ValidationError(
                [MismatchError(f"failed to read expected response file '{path}': {e}", kind="parse")]
            )
        return self.validate_text(text, responses, source=str(path))

    def validate_text(
        self,
        text: str,
        responses: Sequence[Optional[Response]],
        source: str = "",
    ) -> Optional[ValidationError]:
        defines, remaining = extract_defines(text)
        chain = ScopeChain(
            programmatic=self.config.vars,
            in_place=defines,
            environ=self.environ,
            rng=self.rng,
        )
        errors = ValidationError()
        try:
            chain.validate()
            resolved = chain.substitute(remaining, RequestScopeContext(label="expected"))
            document = parse_expected_responses(resolved, source)
        except (ScriptParseError, VariableCycleError) as e:
            errors.append(
                MismatchError(
                    f"failed to parse expected response file '{source}': {e}", kind="parse"
                )
            )
            actual_count = len([r for r in responses if r is not None])
            errors.append(
                MismatchError(
                    f"mismatch in number of responses: got {actual_count} actual, "
                    f"but expected 0 from file '{source}'",
                    kind="count",
                )
            )
        else:
            mismatches = match_all(document.responses, responses, source)
            if mismatches is not None:
                errors.extend(mismatches)

        result = errors.error_or_none()
        if self._display:
            self._display.print_validation_result(source, result)
        return result

    # -- lifecycle ---------------------------------------------------------

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "ScriptRunner":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

