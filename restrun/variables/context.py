"""Per-request cache for system variable values."""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

CacheKey = Tuple[str, Tuple[str, ...]]


@dataclass
class RequestScopeContext:
    """Cache of provider results for one outgoing request.

    Every ``{{$name args}}`` with the same name and arguments inside the URL,
    headers and body of one request resolves to the value generated first.
    A new context is created for each request and discarded afterwards.
    """

    label: str = ""
    values: Dict[CacheKey, str] = field(default_factory=dict)

    def get(self, name: str, args: Tuple[str, ...]) -> Optional[str]:
        return self.values.get((name, args))

    def store(self, name: str, args: Tuple[str, ...], value: str) -> None:
        self.values[(name, args)] = value

    def __contains__(self, key: CacheKey) -> bool:
        return key in self.values
