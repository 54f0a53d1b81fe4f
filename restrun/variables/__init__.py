"""Variable resolution: stores, scope chain, providers and substitution."""

from .context import RequestScopeContext
from .providers import ProviderEnvironment, ProviderRegistry
from .scope import InPlaceStore, MappingStore, ScopeChain, Store
from .substitution import (
    PLACEHOLDER_PATTERN,
    find_references,
    has_placeholders,
    parse_invocation,
    substitute,
)

__all__ = [
    "InPlaceStore",
    "MappingStore",
    "PLACEHOLDER_PATTERN",
    "ProviderEnvironment",
    "ProviderRegistry",
    "RequestScopeContext",
    "ScopeChain",
    "Store",
    "find_references",
    "has_placeholders",
    "parse_invocation",
    "substitute",
]
