"""Shared test fixtures and configuration."""

import random
from typing import Callable, Dict, List

import httpx
import pytest
from unittest.mock import MagicMock, patch

from restrun.display import Display
from restrun.transport import HttpxTransport


@pytest.fixture(autouse=True)
def mock_display():
    """Auto-mock the display for all tests.

    This prevents actual terminal output during tests and provides
    a consistent mock interface for display operations.
    """
    display = MagicMock()
    display.console = MagicMock()

    with patch("restrun.display.Display.get_instance", return_value=display):
        with patch("restrun.display.get_display", return_value=display):
            with patch("restrun.cli.get_display", return_value=display):
                with patch("restrun.selector.get_display", return_value=display):
                    yield display
    Display.verbose = False


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source so provider output is reproducible."""
    return random.Random(1234)


@pytest.fixture
def recorded_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def make_transport(recorded_requests) -> Callable[..., HttpxTransport]:
    """Build an HttpxTransport over httpx.MockTransport.

    The handler receives each httpx.Request; every request is also appended
    to ``recorded_requests`` for later inspection.
    """
    created: List[HttpxTransport] = []

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> HttpxTransport:
        def recording(request: httpx.Request) -> httpx.Response:
            recorded_requests.append(request)
            return handler(request)

        transport = HttpxTransport(transport=httpx.MockTransport(recording))
        created.append(transport)
        return transport

    yield factory
    for transport in created:
        transport.close()


@pytest.fixture
def write_script(tmp_path):
    """Write a request script (and optional sibling files) into tmp_path."""

    def writer(text: str, name: str = "api.http", files: Dict[str, str] = None):
        for filename, content in (files or {}).items():
            (tmp_path / filename).write_text(content, encoding="utf-8")
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return writer
