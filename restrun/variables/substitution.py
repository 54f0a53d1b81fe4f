"""Placeholder scanning and single-pass template substitution."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, List, Optional, Tuple

if TYPE_CHECKING:
    from .context import RequestScopeContext
    from .scope import ScopeChain

logger = logging.getLogger(__name__)

# Matches {{ name }} or {{$provider arg1 arg2}}; never spans lines
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(.+?)\s*\}\}")

# Provider arguments: quoted strings stay whole (quotes included)
_ARGUMENT_PATTERN = re.compile(r"\"[^\"]*\"|'[^']*'|`[^`]*`|\S+")


def parse_invocation(expression: str) -> Tuple[str, Tuple[str, ...]]:
    """Split a placeholder body into its name and argument tuple.

    ``$randomInt 1 10`` becomes ``("$randomInt", ("1", "10"))``.
    """
    expression = expression.strip()
    parts = expression.split(None, 1)
    if not parts:
        return "", ()
    name = parts[0]
    if len(parts) == 1:
        return name, ()
    return name, tuple(_ARGUMENT_PATTERN.findall(parts[1]))


def find_references(text: str) -> List[str]:
    """Plain (non-system) variable names referenced in ``text``."""
    names = []
    for match in PLACEHOLDER_PATTERN.finditer(text):
        name, args = parse_invocation(match.group(1))
        if name and not name.startswith("$") and not args:
            names.append(name)
    return names


def has_placeholders(text: str) -> bool:
    return PLACEHOLDER_PATTERN.search(text) is not None


def substitute(
    text: str,
    chain: "ScopeChain",
    context: Optional["RequestScopeContext"] = None,
) -> str:
    """Replace every resolvable placeholder in ``text``.

    The scan is a single left-to-right pass: substituted values are not
    scanned again. Placeholders nothing can resolve are kept verbatim.

    Args:
        text: Template text
        chain: Scope chain used for lookups
        context: Request-scoped cache for system variables

    Returns:
        The substituted text
    """
    if "{{" not in text:
        return text

    def replace(match: re.Match) -> str:
        name, args = parse_invocation(match.group(1))
        value = chain.resolve(name, args, context)
        if value is None:
            logger.debug("Leaving placeholder unresolved: %s", match.group(0))
            return match.group(0)
        return value

    return PLACEHOLDER_PATTERN.sub(replace, text)
