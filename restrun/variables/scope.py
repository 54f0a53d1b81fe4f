"""Variable stores and the precedence-ordered scope chain."""

from __future__ import annotations

import logging
import os
import random
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Container, Dict, List, Mapping, Optional, Tuple

from ..errors import VariableCycleError
from .context import RequestScopeContext
from .providers import ProviderEnvironment, ProviderRegistry
from .substitution import find_references, substitute

logger = logging.getLogger(__name__)


class Store(ABC):
    """A named source of plain variable values."""

    name: str = ""

    @abstractmethod
    def lookup(self, variable: str, chain: "ScopeChain") -> Optional[str]:
        """Return the value of ``variable`` or None if this store lacks it."""
        pass


class MappingStore(Store):
    """Store backed by a static string mapping."""

    def __init__(self, name: str, values: Optional[Mapping[str, str]] = None) -> None:
        self.name = name
        self.values: Mapping[str, str] = values if values is not None else {}

    def lookup(self, variable: str, chain: "ScopeChain") -> Optional[str]:
        value = self.values.get(variable)
        if value is None:
            return None
        return str(value)

    def __repr__(self) -> str:
        return f"MappingStore({self.name!r}, {len(self.values)} values)"


class InPlaceStore(Store):
    """File-scoped ``@name = expression`` variables.

    Expressions are resolved on first reference through the full chain and
    cached for the rest of the file's execution. System variables inside
    them draw from one file-level context, so ``@id = {{$uuid}}`` is stable
    across every request.
    """

    name = "in-place"

    def __init__(self, definitions: Optional[Dict[str, str]] = None) -> None:
        self.definitions: Dict[str, str] = dict(definitions or {})
        self.context = RequestScopeContext(label="file")
        self._cache: Dict[str, str] = {}
        self._resolving: List[str] = []

    def lookup(self, variable: str, chain: "ScopeChain") -> Optional[str]:
        if variable not in self.definitions:
            return None
        if variable in self._cache:
            return self._cache[variable]

        self.push(variable)
        try:
            value = substitute(self.definitions[variable], chain, self.context)
        finally:
            self.pop()

        self._cache[variable] = value
        logger.debug("Resolved in-place variable %s", variable)
        return value

    def push(self, variable: str) -> None:
        """Mark ``variable`` as being resolved.

        Raises:
            VariableCycleError: If it is already on the resolution stack
        """
        if variable in self._resolving:
            start = self._resolving.index(variable)
            raise VariableCycleError(self._resolving[start:] + [variable])
        self._resolving.append(variable)

    def pop(self) -> str:
        return self._resolving.pop()

    def check_cycles(self, shadowed: Container[str] = ()) -> None:
        """Detect reference cycles among the definitions without resolving them.

        Names in ``shadowed`` are served by a higher-precedence store and
        therefore do not form edges.

        Raises:
            VariableCycleError: On the first cycle found
        """
        edges = {
            name: [
                ref
                for ref in find_references(expression)
                if ref in self.definitions and ref not in shadowed
            ]
            for name, expression in self.definitions.items()
        }
        done: set = set()

        def visit(name: str, path: List[str]) -> None:
            if name in path:
                raise VariableCycleError(path[path.index(name):] + [name])
            if name in done:
                return
            for ref in edges[name]:
                visit(ref, path + [name])
            done.add(name)

        for name in edges:
            visit(name, [])

    def __repr__(self) -> str:
        return f"InPlaceStore({sorted(self.definitions)})"


class ScopeChain:
    """Ordered variable stores consulted in fixed precedence.

    Plain names walk: programmatic > in-place > private environment file >
    public environment file > OS environment. Names starting with ``$`` go
    to the system providers, cached per ``RequestScopeContext``.
    """

    def __init__(
        self,
        programmatic: Optional[Mapping[str, str]] = None,
        in_place: Optional[Dict[str, str]] = None,
        private_env: Optional[Mapping[str, str]] = None,
        public_env: Optional[Mapping[str, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
        dotenv: Optional[Mapping[str, str]] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        environ = os.environ if environ is None else environ
        self.programmatic = MappingStore("programmatic", programmatic)
        self.in_place = InPlaceStore(in_place)
        self.stores: Tuple[Store, ...] = (
            self.programmatic,
            self.in_place,
            MappingStore("private environment", private_env),
            MappingStore("public environment", public_env),
            MappingStore("os environment", environ),
        )
        self.providers = ProviderEnvironment(
            rng=rng or random.Random(),
            environ=environ,
            dotenv=dotenv or {},
            lookup=self.lookup,
            clock=clock or (lambda: datetime.now(timezone.utc)),
        )

    def validate(self) -> None:
        """Fail fast on in-place variable cycles."""
        self.in_place.check_cycles(shadowed=self.programmatic.values)

    def lookup(self, variable: str) -> Optional[str]:
        """Resolve a plain variable name through the stores."""
        for store in self.stores:
            value = store.lookup(variable, self)
            if value is not None:
                return value
        return None

    def resolve(
        self,
        name: str,
        args: Tuple[str, ...] = (),
        context: Optional[RequestScopeContext] = None,
    ) -> Optional[str]:
        """Resolve a placeholder invocation; None leaves it unresolved."""
        if not name:
            return None
        if name.startswith("$"):
            return self._resolve_system(name, args, context)
        if args:
            return None
        return self.lookup(name)

    def _resolve_system(
        self,
        name: str,
        args: Tuple[str, ...],
        context: Optional[RequestScopeContext],
    ) -> Optional[str]:
        if context is not None:
            cached = context.get(name, args)
            if cached is not None:
                return cached
        value = ProviderRegistry.call(name, list(args), self.providers)
        if value is not None and context is not None:
            context.store(name, args, value)
        return value

    def substitute(self, text: str, context: Optional[RequestScopeContext] = None) -> str:
        return substitute(text, self, context)
