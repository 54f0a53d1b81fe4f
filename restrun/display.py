"""CI-style terminal display for script runs.

One line per request with a status icon, followed by a compact summary.
In verbose mode response headers and bodies are printed under each line.

Usage:
    from restrun.display import get_display

    display = get_display()
    display.print_request_start(request, total)
    display.print_request_result(response)
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from .config import ClientConfig
    from .models import ExecutionResult, ParsedFile, Request, Response


ICONS = {
    "check": "✓",
    "cross": "✗",
    "dot": "•",
    "arrow": "→",
    "diamond": "◆",
    "stop": "■",
    "file": "▤",
}


class StatusIcons:
    """Status icons with colors for CI-style display."""

    RUNNING = "[cyan][bold]•[/bold][/cyan]"
    SUCCESS = "[green][bold]✓[/bold][/green]"
    FAILED = "[red][bold]✗[/bold][/red]"
    CANCELLED = "[yellow]■[/yellow]"


def _format_duration(seconds: float) -> str:
    """Format duration in human-readable format."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}m {secs:02d}s"


def _status_style(status_code: int) -> str:
    if status_code >= 500:
        return "red"
    if status_code >= 400:
        return "yellow"
    if status_code >= 300:
        return "cyan"
    return "green"


class Display:
    """Rich console output for the runner and CLI."""

    verbose: bool = False

    _instance: Optional["Display"] = None

    @classmethod
    def get_instance(cls) -> "Display":
        """Get or create the singleton display instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton instance (useful for testing)."""
        cls._instance = None

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    # -- header ------------------------------------------------------------

    def print_header(self, parsed: "ParsedFile", config: "ClientConfig") -> None:
        """Print script path and a one-line configuration summary."""
        self.console.print()
        self.console.print(f"[bold]Script:[/bold] {parsed.path}")
        parts = [f"Requests: {len(parsed.requests)}"]
        parts.append(f"Environment: {config.environment or 'none'}")
        if config.base_url:
            parts.append(f"Base URL: {config.base_url}")
        if not config.verify_tls:
            parts.append("[yellow]TLS verification: OFF[/yellow]")
        self.console.print(" | ".join(parts))
        self.console.print()

    # -- per request -------------------------------------------------------

    def print_request_start(self, request: "Request", total: int) -> None:
        if not self.verbose:
            return
        label = request.name or request.label
        self.console.print(
            f"[{StatusIcons.RUNNING}] [dim]{request.index + 1}/{total}[/dim] {escape(label)}"
        )

    def print_request_result(self, response: "Response") -> None:
        """Format: [✓] GET https://host/path  200 OK  120ms"""
        request = response.request
        if response.prepared is not None:
            label = escape(f"{response.prepared.method} {response.prepared.url}")
        elif request is not None:
            label = escape(request.label)
        else:
            label = "?"
        if request is not None and request.name:
            label = f"{escape(request.name)} [dim]({label})[/dim]"

        if response.error is not None:
            self.console.print(f"[{StatusIcons.FAILED}] {label}  [red]{escape(str(response.error))}[/red]")
            return

        style = _status_style(response.status_code)
        self.console.print(
            f"[{StatusIcons.SUCCESS}] {label}  [{style}]{response.status}[/{style}]  "
            f"[dim]{_format_duration(response.duration)}[/dim]"
        )
        if self.verbose:
            self._print_response_detail(response)

    def _print_response_detail(self, response: "Response") -> None:
        table = Table(box=box.SIMPLE, show_header=False, padding=(0, 1))
        table.add_column(style="bold")
        table.add_column()
        for key, value in response.headers:
            table.add_row(key, value)
        self.console.print(table)
        if response.body:
            self.console.print(Text(response.text))
        self.console.print()

    # -- summaries ---------------------------------------------------------

    def print_summary(self, result: "ExecutionResult", total_elapsed: float) -> None:
        """Format: ✓ 3 requests | 1.2s"""
        self.console.print()
        self.console.print("─" * 40)
        failed = sum(1 for response in result.responses if response.error is not None)
        count = len(result.responses)
        duration = _format_duration(total_elapsed)
        if result.cancelled:
            self.console.print(
                f"[yellow]{ICONS['stop']} Cancelled[/yellow] | {count} requests | {duration}"
            )
        elif failed:
            self.console.print(
                f"[red]{ICONS['cross']} {failed} of {count} requests failed[/red] | {duration}"
            )
        else:
            self.console.print(
                f"[green]{ICONS['check']} {count} requests[/green] | {duration}"
            )
        self.console.print()

    def print_validation_result(self, source: str, error: Optional[BaseException]) -> None:
        name = Path(source).name if source else "expected responses"
        if error is None:
            self.console.print(f"[green]{ICONS['check']} Responses match {name}[/green]")
            return
        self.print_error_panel(str(error), title=f"Validation failed: {name}")

    def print_error_panel(self, message: str, title: str = "Error") -> None:
        self.console.print()
        self.console.print(
            Panel(
                Text(message),
                title=f"[bold red]{title}[/bold red]",
                border_style="red",
                box=box.ROUNDED,
                expand=False,
            )
        )
        self.console.print()


def get_display() -> Display:
    """Get the display instance."""
    return Display.get_instance()
