"""
restrun CLI

Runs .http / .rest request scripts and optionally validates the responses
against an expected-response file.

Usage:
    restrun run api.http
    restrun run api.http -e dev --expect api.expected.http
    restrun validate-config restrun.yml
    restrun envs api.http
"""

import argparse
import logging
import signal
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from rich import box
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from restrun.config import ClientConfig, find_config, load_config, validate_config_file
from restrun.display import ICONS, Display, get_display
from restrun.environment import list_environments
from restrun.errors import ConfigError, RestRunError, ScriptParseError, VariableCycleError
from restrun.models import ExecutionResult
from restrun.runner import ScriptRunner
from restrun.selector import format_environment_list, select_environment_interactive

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _print_error(message: str, title: str = "Error") -> None:
    console = get_display().console
    console.print()
    console.print(
        Panel(
            Text.from_markup(message),
            title=f"[bold red]{title}[/bold red]",
            border_style="red",
            box=box.ROUNDED,
            expand=False,
        )
    )
    console.print()


def parse_var_assignments(assignments: List[str]) -> Dict[str, str]:
    """Parse repeated ``--var name=value`` options.

    Raises:
        ValueError: If an assignment has no ``=`` or an empty name
    """
    result: Dict[str, str] = {}
    for assignment in assignments:
        name, sep, value = assignment.partition("=")
        name = name.strip()
        if not sep or not name:
            raise ValueError(f"invalid variable assignment '{assignment}', expected name=value")
        result[name] = value
    return result


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="restrun",
        description="Run HTTP request scripts and validate their responses",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
{ICONS['arrow']} Examples:
    restrun run api.http
    restrun run api.http -e dev --var token=abc
    restrun run api.http --expect api.expected.http
    restrun envs api.http

{ICONS['file']} Files next to the script:
    - http-client.env.json / http-client.private.env.json
    - .env
    - restrun.yml (client configuration)
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Execute a request script")
    run.add_argument("script", help="Path to a .http or .rest file")
    run.add_argument("-e", "--env", dest="environment", default=None, help="Environment name")
    run.add_argument(
        "--expect",
        dest="expected_file",
        default=None,
        help="Expected-response file to validate the responses against",
    )
    run.add_argument(
        "--var",
        dest="variables",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Programmatic variable (highest precedence, repeatable)",
    )
    run.add_argument("--config", dest="config_file", default=None, help="Client config YAML")
    run.add_argument("--base-url", dest="base_url", default=None, help="Base URL for relative URLs")
    run.add_argument(
        "--insecure",
        action="store_true",
        default=False,
        help="Disable TLS certificate verification",
    )
    run.add_argument(
        "--pick-env",
        action="store_true",
        default=False,
        help="Pick the environment interactively when none is given",
    )
    run.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Print response headers, bodies and debug logging",
    )

    validate = subparsers.add_parser("validate-config", help="Validate a client config file")
    validate.add_argument("config_file", help="Path to the YAML config")

    envs = subparsers.add_parser("envs", help="List environments available to a script")
    envs.add_argument("script", help="Path to a .http or .rest file")

    return parser


def _configure_logging(verbose: bool) -> None:
    Display.verbose = verbose
    Display.reset()
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=get_display().console, show_path=False)],
        )


def _load_client_config(args: argparse.Namespace, script: Path) -> ClientConfig:
    if args.config_file:
        config = load_config(Path(args.config_file).resolve())
    else:
        found = find_config(script.parent)
        config = load_config(found) if found else ClientConfig()

    overrides = {}
    if args.environment:
        overrides["environment"] = args.environment
    if args.base_url:
        overrides["base_url"] = args.base_url
    if args.insecure:
        overrides["verify_tls"] = False
    if args.variables:
        overrides["vars"] = {**config.vars, **parse_var_assignments(args.variables)}
    return replace(config, **overrides)


def _execute(runner: ScriptRunner, script: Path) -> ExecutionResult:
    """Run the script; the first Ctrl+C cancels remaining requests, a second one aborts."""
    cancel = threading.Event()

    def on_interrupt(signum, frame) -> None:
        if cancel.is_set():
            raise KeyboardInterrupt
        cancel.set()
        get_display().console.print(f"\n[yellow]{ICONS['stop']} Cancelling...[/yellow]")

    previous = signal.signal(signal.SIGINT, on_interrupt)
    try:
        return runner.execute_file(script, cancel=cancel)
    finally:
        signal.signal(signal.SIGINT, previous)


def cmd_run(args: argparse.Namespace) -> int:
    _configure_logging(args.verbose)
    console = get_display().console

    script = Path(args.script).resolve()
    if not script.is_file():
        _print_error(f"[bold red]{ICONS['cross']} Script not found:[/bold red] {escape(str(script))}")
        return EXIT_USAGE

    try:
        config = _load_client_config(args, script)
    except FileNotFoundError as e:
        _print_error(f"[bold red]{ICONS['cross']} {escape(str(e))}[/bold red]")
        return EXIT_USAGE
    except yaml.YAMLError as e:
        _print_error(f"[bold red]{ICONS['cross']} Invalid YAML in config file:[/bold red]\n  {escape(str(e))}")
        return EXIT_USAGE
    except (ConfigError, ValueError) as e:
        _print_error(f"[bold red]{ICONS['cross']} {escape(str(e))}[/bold red]")
        return EXIT_USAGE

    if config.environment is None and args.pick_env:
        names = list_environments(script.parent)
        if len(names) == 1:
            config = replace(config, environment=names[0])
        elif names:
            selected = select_environment_interactive(names)
            if selected is None:
                console.print(f"[yellow]{ICONS['stop']} Cancelled[/yellow]")
                return EXIT_OK
            config = replace(config, environment=selected)

    with ScriptRunner(config, display=get_display()) as runner:
        try:
            result = _execute(runner, script)
        except KeyboardInterrupt:
            console.print(f"\n[yellow]{ICONS['stop']} Aborted[/yellow]")
            return EXIT_INTERRUPTED
        except (ScriptParseError, VariableCycleError, ConfigError) as e:
            _print_error(escape(str(e)), title="Invalid script")
            return EXIT_USAGE
        except RestRunError as e:
            _print_error(escape(str(e)))
            return EXIT_FAILED

        if result.error is not None:
            _print_error(escape(str(result.error)), title="Execution failed")

        validation_error = None
        if args.expected_file and not result.cancelled:
            validation_error = runner.validate_responses(
                Path(args.expected_file).resolve(), result.responses
            )

    if result.cancelled:
        return EXIT_INTERRUPTED
    if result.error is not None or validation_error is not None:
        return EXIT_FAILED
    return EXIT_OK


def cmd_validate_config(args: argparse.Namespace) -> int:
    console = get_display().console
    path = Path(args.config_file).resolve()
    is_valid, error_msg = validate_config_file(path)
    if not is_valid:
        _print_error(
            f"[bold red]{ICONS['cross']} Invalid config file![/bold red]\n\n"
            f"[white]File:[/white] [cyan]{path}[/cyan]\n\n"
            f"[white]Error:[/white] {escape(error_msg or '')}"
        )
        return EXIT_FAILED
    console.print(f"[green]{ICONS['check']} {path.name} is valid[/green]")
    return EXIT_OK


def cmd_envs(args: argparse.Namespace) -> int:
    console = get_display().console
    script = Path(args.script).resolve()
    try:
        names = list_environments(script.parent)
    except ConfigError as e:
        _print_error(escape(str(e)))
        return EXIT_USAGE
    if not names:
        console.print(f"[yellow]No environments defined next to {script.name}[/yellow]")
        return EXIT_OK
    console.print(format_environment_list(names))
    return EXIT_OK


COMMANDS = {
    "run": cmd_run,
    "validate-config": cmd_validate_config,
    "envs": cmd_envs,
}


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    args = _build_parser().parse_args(argv)
    sys.exit(COMMANDS[args.command](args))


if __name__ == "__main__":
    main()
