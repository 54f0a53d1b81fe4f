"""HTTP transport built on httpx."""

from __future__ import annotations

import logging
import threading
import time
from typing import List, Optional, Tuple

import httpx

from .errors import RequestCancelledError, TransportError
from .models import HeaderList, PreparedRequest, Response

logger = logging.getLogger(__name__)


def encode_headers(headers: HeaderList) -> List[Tuple[str, bytes]]:
    """Header values go out as raw UTF-8 bytes; httpx would encode str as ASCII."""
    return [(key, value.encode("utf-8")) for key, value in headers]


class HttpxTransport:
    """Sends prepared requests through two httpx clients.

    The primary client owns the shared cookie jar. Requests carrying the
    ``no_cookie_jar`` directive go through an isolated client whose cookies
    are cleared around every use, so they neither send nor store cookies.
    """

    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        verify: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self._transport = transport or httpx.HTTPTransport(verify=verify)
        self._client = httpx.Client(transport=self._transport, timeout=timeout)
        self._isolated = httpx.Client(transport=self._transport, timeout=timeout)

    @property
    def cookies(self) -> httpx.Cookies:
        return self._client.cookies

    def send(
        self,
        prepared: PreparedRequest,
        cancel: Optional[threading.Event] = None,
    ) -> Response:
        """Dispatch one request and read the full response body.

        The cancellation event is checked before sending and between body
        chunks.

        Raises:
            RequestCancelledError: If ``cancel`` is set
            TransportError: On any httpx failure or a header that cannot be encoded
        """
        if cancel is not None and cancel.is_set():
            raise RequestCancelledError(f"request cancelled: {prepared.method} {prepared.url}")

        client = self._isolated if prepared.no_cookie_jar else self._client
        if prepared.no_cookie_jar:
            client.cookies.clear()

        start = time.perf_counter()
        try:
            try:
                request = client.build_request(
                    prepared.method,
                    prepared.url,
                    headers=encode_headers(prepared.headers),
                    content=prepared.body,
                    timeout=prepared.timeout if prepared.timeout is not None else httpx.USE_CLIENT_DEFAULT,
                )
            except ValueError as e:
                raise TransportError(f"invalid request: {e}") from e
            http_response = client.send(
                request, follow_redirects=not prepared.no_redirect, stream=True
            )
            try:
                chunks = []
                for chunk in http_response.iter_bytes():
                    if cancel is not None and cancel.is_set():
                        raise RequestCancelledError(
                            f"request cancelled: {prepared.method} {prepared.url}"
                        )
                    chunks.append(chunk)
            finally:
                http_response.close()
        except httpx.TimeoutException as e:
            raise TransportError(f"request timeout: {e}") from e
        except httpx.ConnectError as e:
            raise TransportError(f"connection error: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"request error: {e}") from e
        except httpx.InvalidURL as e:
            raise TransportError(f"invalid URL '{prepared.url}': {e}") from e
        finally:
            if prepared.no_cookie_jar:
                client.cookies.clear()

        duration = time.perf_counter() - start
        reason = http_response.reason_phrase or ""
        logger.debug(
            "%s %s -> %d in %.3fs",
            prepared.method,
            prepared.url,
            http_response.status_code,
            duration,
        )
        return Response(
            request=prepared.source,
            prepared=prepared,
            status_code=http_response.status_code,
            status=f"{http_response.status_code} {reason}".strip(),
            http_version=http_response.http_version,
            headers=list(http_response.headers.multi_items()),
            body=b"".join(chunks),
            duration=duration,
        )

    def close(self) -> None:
        self._isolated.close()
        self._client.close()

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
