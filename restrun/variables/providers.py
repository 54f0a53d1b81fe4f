"""System variable providers (``{{$name args...}}``).

A provider receives the parsed argument list and a ``ProviderEnvironment``
and returns the generated value. Returning ``None`` leaves the placeholder
text untouched in the output; malformed arguments are never fatal.
"""

from __future__ import annotations

import logging
import random
import re
import string
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Callable, Dict, List, Mapping, Optional

from . import fake_data

logger = logging.getLogger(__name__)

CHARSET_HEX = "0123456789abcdef"
CHARSET_ALPHABETIC = string.ascii_letters
CHARSET_ALPHANUMERIC = string.ascii_letters + string.digits
CHARSET_ALPHANUMERIC_UNDERSCORE = CHARSET_ALPHANUMERIC + "_"
CHARSET_FULL = CHARSET_ALPHANUMERIC + "!@#$%^&*()_+-=[]{};':\",./<>?"

RANDOM_WORDS = ["apple", "banana", "cherry", "date", "elderberry", "fig", "grape"]

DEFAULT_STRING_LENGTH = 16
DEFAULT_PASSWORD_LENGTH = 12

# Tokens of Java-style date layouts mapped to strftime directives
_JAVA_DATE_TOKENS = {
    "yyyy": "%Y",
    "YYYY": "%Y",
    "yy": "%y",
    "MM": "%m",
    "dd": "%d",
    "DD": "%d",
    "HH": "%H",
    "hh": "%I",
    "mm": "%M",
    "ss": "%S",
}
_JAVA_TOKEN_PATTERN = re.compile(
    r"yyyy|YYYY|yy|MM|dd|DD|HH|hh|mm|ss|SSS|[A-Za-z]+|[^A-Za-z]+"
)


@dataclass
class ProviderEnvironment:
    """Everything a provider may consult besides its own arguments.

    Attributes:
        rng: Random source shared by all providers of one execution
        environ: OS environment mapping
        dotenv: Values of the ``.env`` file next to the script
        lookup: Resolves a plain variable name through the scope chain
            (used for ``%name`` indirection)
        clock: Returns the current aware UTC datetime
    """

    rng: random.Random = field(default_factory=random.Random)
    environ: Mapping[str, str] = field(default_factory=dict)
    dotenv: Mapping[str, str] = field(default_factory=dict)
    lookup: Callable[[str], Optional[str]] = lambda name: None
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)


ProviderFunc = Callable[[List[str], ProviderEnvironment], Optional[str]]


class ProviderRegistry:
    """Registry of system variable providers keyed by ``$name``.

    Exact names are registered with ``register``; names that carry their
    argument in the name itself (``$env.HOME``) use ``register_prefix``.
    """

    _providers: Dict[str, ProviderFunc] = {}
    _prefixed: Dict[str, Callable[[str, List[str], ProviderEnvironment], Optional[str]]] = {}

    @classmethod
    def register(cls, *names: str) -> Callable[[ProviderFunc], ProviderFunc]:
        """Decorator registering a provider under one or more names."""

        def decorator(func: ProviderFunc) -> ProviderFunc:
            for name in names:
                cls._providers[name] = func
            return func

        return decorator

    @classmethod
    def register_prefix(cls, prefix: str):
        def decorator(func):
            cls._prefixed[prefix] = func
            return func

        return decorator

    @classmethod
    def is_known(cls, name: str) -> bool:
        if name in cls._providers:
            return True
        return any(name.startswith(prefix) for prefix in cls._prefixed)

    @classmethod
    def call(
        cls, name: str, args: List[str], env: ProviderEnvironment
    ) -> Optional[str]:
        """Invoke the provider for ``name``; None when unknown or unresolvable."""
        func = cls._providers.get(name)
        if func is not None:
            return func(args, env)
        for prefix, prefixed_func in cls._prefixed.items():
            if name.startswith(prefix) and len(name) > len(prefix):
                return prefixed_func(name[len(prefix):], args, env)
        logger.debug("Unknown system variable %s", name)
        return None

    @classmethod
    def available(cls) -> List[str]:
        return sorted(cls._providers) + [f"{p}<NAME>" for p in sorted(cls._prefixed)]


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def unquote(value: str) -> str:
    """Strip one pair of matching quotes (' " or `)."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"`":
        return value[1:-1]
    return value


def _parse_length(args: List[str], default: int) -> Optional[int]:
    if not args:
        return default
    if len(args) != 1:
        return None
    try:
        length = int(args[0])
    except ValueError:
        return None
    return length if length >= 0 else None


def _random_string(rng: random.Random, length: int, charset: str) -> str:
    return "".join(rng.choice(charset) for _ in range(length))


# ---------------------------------------------------------------------------
# Identifiers and time
# ---------------------------------------------------------------------------


@ProviderRegistry.register("$uuid", "$guid", "$random.uuid", "$randomUUID")
def _uuid(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if args:
        return None
    return str(uuid.UUID(int=env.rng.getrandbits(128), version=4))


@ProviderRegistry.register("$timestamp")
def _timestamp(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if args:
        return None
    return str(int(env.clock().timestamp()))


@ProviderRegistry.register("$isoTimestamp")
def _iso_timestamp(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if args:
        return None
    return env.clock().astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _format_java_layout(moment: datetime, layout: str) -> Optional[str]:
    """Render a ``yyyy-MM-dd HH:mm`` style layout; None if a letter run is unknown."""
    parts = []
    for token in _JAVA_TOKEN_PATTERN.findall(layout):
        if token == "SSS":
            parts.append(f"{moment.microsecond // 1000:03d}")
        elif token in _JAVA_DATE_TOKENS:
            parts.append(moment.strftime(_JAVA_DATE_TOKENS[token]))
        elif token[0].isalpha():
            return None
        else:
            parts.append(token)
    return "".join(parts)


def format_datetime_value(moment: datetime, fmt: str, utc: bool) -> Optional[str]:
    """Format ``moment`` with a keyword or an explicit layout; None if invalid."""
    keyword = unquote(fmt).strip()
    lowered = keyword.lower()
    if lowered == "rfc1123":
        return format_datetime(moment, usegmt=utc)
    if lowered == "iso8601":
        if utc:
            return moment.strftime("%Y-%m-%dT%H:%M:%SZ")
        return moment.isoformat(timespec="seconds")
    if lowered == "timestamp":
        return str(int(moment.timestamp()))

    # Explicit layouts must be quoted
    if keyword == fmt.strip() or not keyword:
        return None
    if "%" in keyword:
        return moment.strftime(keyword)
    return _format_java_layout(moment, keyword)


def _datetime_provider(utc: bool) -> ProviderFunc:
    def provider(args: List[str], env: ProviderEnvironment) -> Optional[str]:
        now = env.clock()
        now = now.astimezone(timezone.utc) if utc else now.astimezone()
        fmt = " ".join(args) if args else "iso8601"
        return format_datetime_value(now, fmt, utc)

    return provider


ProviderRegistry.register("$datetime")(_datetime_provider(utc=True))
ProviderRegistry.register("$localDatetime")(_datetime_provider(utc=False))


# ---------------------------------------------------------------------------
# Random numbers and strings
# ---------------------------------------------------------------------------


@ProviderRegistry.register("$randomInt", "$random.integer")
def _random_int(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if not args:
        return str(env.rng.randint(0, 1000))
    if len(args) != 2:
        return None
    try:
        low, high = int(args[0]), int(args[1])
    except ValueError:
        return None
    if low > high:
        return None
    return str(env.rng.randint(low, high))


@ProviderRegistry.register("$randomFloat", "$random.float")
def _random_float(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    low, high = 0.0, 1.0
    if args:
        if len(args) != 2:
            return None
        try:
            low, high = float(args[0]), float(args[1])
        except ValueError:
            return None
        if low > high:
            return None
    return "%f" % env.rng.uniform(low, high)


@ProviderRegistry.register("$randomBoolean", "$random.boolean")
def _random_boolean(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if args:
        return None
    return "true" if env.rng.random() < 0.5 else "false"


def _charset_provider(charset: str, default_length: int) -> ProviderFunc:
    def provider(args: List[str], env: ProviderEnvironment) -> Optional[str]:
        length = _parse_length(args, default_length)
        if length is None:
            return None
        return _random_string(env.rng, length, charset)

    return provider


ProviderRegistry.register("$randomHex", "$random.hexadecimal")(
    _charset_provider(CHARSET_HEX, DEFAULT_STRING_LENGTH)
)
ProviderRegistry.register("$randomAlphaNumeric")(
    _charset_provider(CHARSET_ALPHANUMERIC_UNDERSCORE, DEFAULT_STRING_LENGTH)
)
ProviderRegistry.register("$random.alphabetic")(
    _charset_provider(CHARSET_ALPHABETIC, DEFAULT_STRING_LENGTH)
)
ProviderRegistry.register("$random.alphanumeric")(
    _charset_provider(CHARSET_ALPHANUMERIC, DEFAULT_STRING_LENGTH)
)
ProviderRegistry.register("$randomString")(
    _charset_provider(CHARSET_FULL, DEFAULT_STRING_LENGTH)
)
ProviderRegistry.register("$randomPassword")(
    _charset_provider(CHARSET_FULL, DEFAULT_PASSWORD_LENGTH)
)


@ProviderRegistry.register("$randomEmail", "$random.email")
def _random_email(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if args:
        return None
    local = _random_string(env.rng, 10, CHARSET_ALPHANUMERIC)
    domain = _random_string(env.rng, 7, CHARSET_ALPHABETIC)
    return f"{local}@{domain}.com"


@ProviderRegistry.register("$randomDomain")
def _random_domain(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if args:
        return None
    return f"{_random_string(env.rng, 10, CHARSET_ALPHABETIC)}.com"


@ProviderRegistry.register("$randomIPv4")
def _random_ipv4(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if args:
        return None
    return ".".join(str(env.rng.randint(0, 255)) for _ in range(4))


@ProviderRegistry.register("$randomIPv6")
def _random_ipv6(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if args:
        return None
    return ":".join(f"{env.rng.randint(0, 0xFFFF):x}" for _ in range(8))


@ProviderRegistry.register("$randomColor")
def _random_color(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if args:
        return None
    return "#" + "".join(f"{env.rng.randint(0, 255):02x}" for _ in range(3))


@ProviderRegistry.register("$randomWord")
def _random_word(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if args:
        return None
    return env.rng.choice(RANDOM_WORDS)


def _faker_provider(accessor: str) -> ProviderFunc:
    def provider(args: List[str], env: ProviderEnvironment) -> Optional[str]:
        if args:
            return None
        return fake_data.generate(accessor, env.rng)

    return provider


for _accessor in fake_data.FAKERS:
    ProviderRegistry.register(
        "$random" + _accessor[0].upper() + _accessor[1:],
        "$random." + _accessor,
    )(_faker_provider(_accessor))


# ---------------------------------------------------------------------------
# Environment lookups
# ---------------------------------------------------------------------------


def _indirect_name(arg: str, env: ProviderEnvironment) -> Optional[str]:
    """Resolve ``%var`` to the value of ``var``; plain names pass through."""
    if arg.startswith("%"):
        return env.lookup(arg[1:])
    return arg


@ProviderRegistry.register("$processEnv")
def _process_env(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if len(args) != 1:
        return None
    name = _indirect_name(args[0], env)
    if not name:
        return None
    return env.environ.get(name)


@ProviderRegistry.register("$dotenv")
def _dotenv(args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if len(args) != 1:
        return None
    name = _indirect_name(args[0], env)
    if not name:
        return None
    return env.dotenv.get(name, "")


@ProviderRegistry.register_prefix("$env.")
def _env_dot(name: str, args: List[str], env: ProviderEnvironment) -> Optional[str]:
    if args:
        return None
    return env.environ.get(name, "")
